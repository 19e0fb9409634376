import uuid as uuid_lib

from django.conf import settings
from django.db import models
from django.db.models import Q


class Warehouse(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    location = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} - {self.name}"


class Item(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True, db_index=True)
    unit_of_measure = models.CharField(max_length=20, default="Nos")

    reorder_level = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    standard_cost = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    standard_selling_price = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    is_raw_material = models.BooleanField(default=False)
    is_finished_good = models.BooleanField(default=False)
    is_purchased = models.BooleanField(default=True)
    is_manufactured = models.BooleanField(default=False)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_raw_material", "is_active"], name="stock_item_is_raw__0b1f2c_idx"),
            models.Index(fields=["is_finished_good", "is_active"], name="stock_item_is_fini_5d7e41_idx"),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    @property
    def can_be_produced(self):
        return self.is_finished_good or self.is_manufactured


class BillOfMaterials(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    bom_number = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=200)
    output_item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name="boms",
    )
    output_quantity = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        help_text="Quantity of the output item produced by one batch",
    )
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="boms_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "bill of materials"
        verbose_name_plural = "bills of materials"
        constraints = [
            models.CheckConstraint(
                condition=Q(output_quantity__gt=0),
                name="bom_output_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.bom_number} - {self.name}"


class BomLine(models.Model):
    bom = models.ForeignKey(
        BillOfMaterials,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name="bom_lines",
    )
    quantity = models.DecimalField(max_digits=15, decimal_places=4)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "id"]
        unique_together = [["bom", "item"]]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="bom_line_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.bom.bom_number}: {self.quantity} x {self.item.code}"


class StockBalance(models.Model):
    """Cached running total of the movement log for one item in one warehouse."""

    item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name="balances",
    )
    warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        related_name="balances",
    )
    quantity = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    last_movement_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["item_id", "warehouse_id"]
        unique_together = [["item", "warehouse"]]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gte=0),
                name="stock_balance_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.item.code} @ {self.warehouse.code}: {self.quantity}"


class StockMovementQuerySet(models.QuerySet):
    def update(self, **kwargs):
        from stock.services.base_service import ImmutableRecordError
        raise ImmutableRecordError("Stock movements cannot be updated")

    def delete(self):
        from stock.services.base_service import ImmutableRecordError
        raise ImmutableRecordError("Stock movements cannot be deleted")


class StockMovement(models.Model):
    class MovementType(models.TextChoices):
        PURCHASE = "PURCHASE", "Purchase"
        SALE = "SALE", "Sale"
        PRODUCTION_IN = "PRODUCTION_IN", "Production Output"
        PRODUCTION_OUT = "PRODUCTION_OUT", "Production Consumption"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    movement_number = models.CharField(max_length=30, unique=True)
    item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name="movements",
    )
    warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        related_name="movements",
    )
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    quantity = models.DecimalField(
        max_digits=15,
        decimal_places=4,
        help_text="Signed: positive adds stock, negative removes it",
    )
    balance_after = models.DecimalField(max_digits=15, decimal_places=4)
    unit_cost = models.DecimalField(max_digits=15, decimal_places=4, null=True, blank=True)

    reference_type = models.CharField(max_length=30, blank=True)
    reference_id = models.PositiveBigIntegerField(null=True, blank=True)
    reference_number = models.CharField(max_length=50, blank=True)

    movement_date = models.DateField()
    remarks = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="stock_movements",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    objects = StockMovementQuerySet.as_manager()

    class Meta:
        ordering = ["-movement_date", "-id"]
        indexes = [
            models.Index(fields=["item", "warehouse", "movement_date"], name="stock_stock_item_id_4c2e7b_idx"),
            models.Index(fields=["reference_type", "reference_id"], name="stock_stock_referen_9f1d3a_idx"),
            models.Index(fields=["movement_type", "movement_date"], name="stock_stock_movemen_2b8f6d_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~Q(quantity=0),
                name="stock_movement_non_zero",
            ),
        ]

    def __str__(self):
        return f"{self.movement_number} {self.movement_type} {self.item.code} {self.quantity}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            from stock.services.base_service import ImmutableRecordError
            raise ImmutableRecordError("Stock movements cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        from stock.services.base_service import ImmutableRecordError
        raise ImmutableRecordError("Stock movements cannot be deleted")


class Production(models.Model):
    REFERENCE_TYPE = "PRODUCTION"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    production_number = models.CharField(max_length=30, unique=True)
    bom = models.ForeignKey(
        BillOfMaterials,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="productions",
    )
    output_item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name="productions",
    )
    output_quantity = models.DecimalField(max_digits=15, decimal_places=4)
    raw_materials_warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        related_name="productions_consumed",
    )
    finished_goods_warehouse = models.ForeignKey(
        Warehouse,
        on_delete=models.PROTECT,
        related_name="productions_received",
    )
    production_date = models.DateField()
    remarks = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="productions_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-production_date", "-id"]
        indexes = [
            models.Index(fields=["output_item", "production_date"], name="stock_produ_output__8a3c9e_idx"),
        ]

    def __str__(self):
        return f"{self.production_number} - {self.output_quantity} x {self.output_item.code}"

    @property
    def movements(self):
        return StockMovement.objects.filter(
            reference_type=self.REFERENCE_TYPE,
            reference_id=self.id,
        ).select_related("item", "warehouse").order_by("id")


class DocumentSequence(models.Model):
    """Per-prefix, per-year counter behind PREFIX-YEAR-NNNN document numbers."""

    prefix = models.CharField(max_length=10)
    year = models.PositiveIntegerField()
    last_value = models.PositiveIntegerField(default=0)

    class Meta:
        unique_together = [["prefix", "year"]]

    def __str__(self):
        return f"{self.prefix}-{self.year}: {self.last_value}"
