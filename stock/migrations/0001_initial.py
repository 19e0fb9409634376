import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="DocumentSequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("prefix", models.CharField(max_length=10)),
                ("year", models.PositiveIntegerField()),
                ("last_value", models.PositiveIntegerField(default=0)),
            ],
            options={
                "unique_together": {("prefix", "year")},
            },
        ),
        migrations.CreateModel(
            name="Item",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                ("category", models.CharField(blank=True, db_index=True, max_length=100)),
                ("unit_of_measure", models.CharField(default="Nos", max_length=20)),
                ("reorder_level", models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ("standard_cost", models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ("standard_selling_price", models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ("is_raw_material", models.BooleanField(default=False)),
                ("is_finished_good", models.BooleanField(default=False)),
                ("is_purchased", models.BooleanField(default=True)),
                ("is_manufactured", models.BooleanField(default=False)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["is_raw_material", "is_active"], name="stock_item_is_raw__0b1f2c_idx"),
                    models.Index(fields=["is_finished_good", "is_active"], name="stock_item_is_fini_5d7e41_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Warehouse",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("code", models.CharField(max_length=50, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("location", models.CharField(blank=True, max_length=255)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="BillOfMaterials",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("bom_number", models.CharField(max_length=30, unique=True)),
                ("name", models.CharField(max_length=200)),
                ("output_quantity", models.DecimalField(decimal_places=4, help_text="Quantity of the output item produced by one batch", max_digits=15)),
                ("description", models.TextField(blank=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="boms_created", to=settings.AUTH_USER_MODEL)),
                ("output_item", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="boms", to="stock.item")),
            ],
            options={
                "verbose_name": "bill of materials",
                "verbose_name_plural": "bills of materials",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("output_quantity__gt", 0)), name="bom_output_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BomLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.DecimalField(decimal_places=4, max_digits=15)),
                ("sort_order", models.PositiveIntegerField(default=0)),
                ("bom", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="stock.billofmaterials")),
                ("item", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="bom_lines", to="stock.item")),
            ],
            options={
                "ordering": ["sort_order", "id"],
                "unique_together": {("bom", "item")},
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gt", 0)), name="bom_line_quantity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Production",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("production_number", models.CharField(max_length=30, unique=True)),
                ("output_quantity", models.DecimalField(decimal_places=4, max_digits=15)),
                ("production_date", models.DateField()),
                ("remarks", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("bom", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="productions", to="stock.billofmaterials")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="productions_created", to=settings.AUTH_USER_MODEL)),
                ("output_item", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="productions", to="stock.item")),
                ("raw_materials_warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="productions_consumed", to="stock.warehouse")),
                ("finished_goods_warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="productions_received", to="stock.warehouse")),
            ],
            options={
                "ordering": ["-production_date", "-id"],
                "indexes": [
                    models.Index(fields=["output_item", "production_date"], name="stock_produ_output__8a3c9e_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockBalance",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("quantity", models.DecimalField(decimal_places=4, default=0, max_digits=15)),
                ("last_movement_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("item", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="balances", to="stock.item")),
                ("warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="balances", to="stock.warehouse")),
            ],
            options={
                "ordering": ["item_id", "warehouse_id"],
                "unique_together": {("item", "warehouse")},
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity__gte", 0)), name="stock_balance_non_negative"),
                ],
            },
        ),
        migrations.CreateModel(
            name="StockMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uuid", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("movement_number", models.CharField(max_length=30, unique=True)),
                ("movement_type", models.CharField(choices=[("PURCHASE", "Purchase"), ("SALE", "Sale"), ("PRODUCTION_IN", "Production Output"), ("PRODUCTION_OUT", "Production Consumption"), ("ADJUSTMENT", "Adjustment")], max_length=20)),
                ("quantity", models.DecimalField(decimal_places=4, help_text="Signed: positive adds stock, negative removes it", max_digits=15)),
                ("balance_after", models.DecimalField(decimal_places=4, max_digits=15)),
                ("unit_cost", models.DecimalField(blank=True, decimal_places=4, max_digits=15, null=True)),
                ("reference_type", models.CharField(blank=True, max_length=30)),
                ("reference_id", models.PositiveBigIntegerField(blank=True, null=True)),
                ("reference_number", models.CharField(blank=True, max_length=50)),
                ("movement_date", models.DateField()),
                ("remarks", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="stock_movements", to=settings.AUTH_USER_MODEL)),
                ("item", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="movements", to="stock.item")),
                ("warehouse", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="movements", to="stock.warehouse")),
            ],
            options={
                "ordering": ["-movement_date", "-id"],
                "indexes": [
                    models.Index(fields=["item", "warehouse", "movement_date"], name="stock_stock_item_id_4c2e7b_idx"),
                    models.Index(fields=["reference_type", "reference_id"], name="stock_stock_referen_9f1d3a_idx"),
                    models.Index(fields=["movement_type", "movement_date"], name="stock_stock_movemen_2b8f6d_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("quantity", 0), _negated=True), name="stock_movement_non_zero"),
                ],
            },
        ),
    ]
