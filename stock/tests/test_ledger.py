from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from stock.models import StockBalance, StockMovement
from stock.services import (
    StockLedgerService, MovementDraft, DocumentSequenceService,
    StockConflictError, InsufficientStockError, ImmutableRecordError,
    ValidationError, BusinessRuleError, ItemNotFoundError, WarehouseNotFoundError,
    InvalidQuantityError,
)
from stock.tests.helpers import make_item, make_warehouse, receive, balance


class TestAppendMovements(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.w1 = make_warehouse("W1")
        cls.w2 = make_warehouse("W2")
        cls.a = make_item("A", raw=True)
        cls.b = make_item("B", raw=True)

    def draft(self, item, warehouse, movement_type, quantity):
        return MovementDraft(
            item_id=item.id,
            warehouse_id=warehouse.id,
            movement_type=movement_type,
            quantity=Decimal(str(quantity)),
        )

    def test_missing_balance_reads_as_zero(self):
        assert StockLedgerService.get_balance(self.a.id, self.w1.id) == Decimal("0")

    def test_batch_updates_every_balance(self):
        movements = StockLedgerService.append_movements([
            self.draft(self.a, self.w1, "PURCHASE", 10),
            self.draft(self.b, self.w1, "PURCHASE", 4),
            self.draft(self.a, self.w2, "ADJUSTMENT", "2.5"),
        ])

        assert len(movements) == 3
        assert balance(self.a, self.w1) == Decimal("10")
        assert balance(self.b, self.w1) == Decimal("4")
        assert balance(self.a, self.w2) == Decimal("2.5")
        assert [m.balance_after for m in movements] == [Decimal("10"), Decimal("4"), Decimal("2.5")]

    def test_movement_numbers_are_consecutive(self):
        year = timezone.localdate().year

        StockLedgerService.append_movements([
            self.draft(self.a, self.w1, "PURCHASE", 1),
            self.draft(self.b, self.w1, "PURCHASE", 1),
        ])
        StockLedgerService.append_movements([self.draft(self.a, self.w1, "PURCHASE", 1)])

        numbers = list(StockMovement.objects.order_by("id").values_list("movement_number", flat=True))
        assert numbers == [f"STK-{year}-0001", f"STK-{year}-0002", f"STK-{year}-0003"]

    def test_rejected_batch_writes_nothing_and_reports_every_conflict(self):
        receive(self.a, self.w1, 5)
        movements = StockMovement.objects.count()
        sequence = DocumentSequenceService.current_value(DocumentSequenceService.STOCK_MOVEMENT)

        with pytest.raises(StockConflictError) as exc:
            StockLedgerService.append_movements([
                self.draft(self.b, self.w1, "PURCHASE", 3),
                self.draft(self.a, self.w1, "SALE", -6),
                self.draft(self.b, self.w2, "SALE", -1),
            ])

        conflicts = {(c["item_id"], c["warehouse_id"]): c for c in exc.value.conflicts}
        assert set(conflicts) == {(self.a.id, self.w1.id), (self.b.id, self.w2.id)}
        assert conflicts[(self.a.id, self.w1.id)]["available"] == Decimal("5")
        assert conflicts[(self.a.id, self.w1.id)]["required"] == Decimal("6")

        assert balance(self.a, self.w1) == Decimal("5")
        assert balance(self.b, self.w1) == Decimal("0")
        assert StockMovement.objects.count() == movements
        assert DocumentSequenceService.current_value(DocumentSequenceService.STOCK_MOVEMENT) == sequence

    def test_batch_may_consume_what_it_receives(self):
        StockLedgerService.append_movements([
            self.draft(self.a, self.w1, "PURCHASE", 5),
            self.draft(self.a, self.w1, "SALE", -5),
        ])

        assert balance(self.a, self.w1) == Decimal("0")

    def test_intermediate_negative_is_rejected(self):
        with pytest.raises(StockConflictError):
            StockLedgerService.append_movements([
                self.draft(self.a, self.w1, "SALE", -5),
                self.draft(self.a, self.w1, "PURCHASE", 5),
            ])

    def test_sign_rules(self):
        for movement_type, quantity in (
            ("PURCHASE", -1),
            ("SALE", 1),
            ("PRODUCTION_IN", -1),
            ("PRODUCTION_OUT", 1),
            ("ADJUSTMENT", 0),
            ("TRANSFER", 1),
        ):
            with pytest.raises(ValidationError):
                StockLedgerService.append_movements([self.draft(self.a, self.w1, movement_type, quantity)])

    def test_empty_batch(self):
        with pytest.raises(ValidationError):
            StockLedgerService.append_movements([])

    def test_balance_equals_movement_sum(self):
        receive(self.a, self.w1, 10)
        StockLedgerService.post_movement(self.a.id, self.w1.id, "SALE", "3.25")
        StockLedgerService.post_movement(self.a.id, self.w1.id, "ADJUSTMENT", "-1.5")
        StockLedgerService.post_movement(self.a.id, self.w1.id, "ADJUSTMENT", "0.75")

        assert balance(self.a, self.w1) == Decimal("6")
        assert StockLedgerService.recompute_balance(self.a.id, self.w1.id) == balance(self.a, self.w1)


class TestImmutability(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.warehouse = make_warehouse("W1")
        cls.item = make_item("A", raw=True)

    def setUp(self):
        receive(self.item, self.warehouse, 10)
        self.movement = StockMovement.objects.get()

    def test_save_existing_movement(self):
        self.movement.quantity = Decimal("99")
        with pytest.raises(ImmutableRecordError):
            self.movement.save()

    def test_delete_movement(self):
        with pytest.raises(ImmutableRecordError):
            self.movement.delete()

    def test_queryset_update_and_delete(self):
        with pytest.raises(ImmutableRecordError):
            StockMovement.objects.filter(id=self.movement.id).update(quantity=1)
        with pytest.raises(ImmutableRecordError):
            StockMovement.objects.all().delete()

        assert StockMovement.objects.get().quantity == Decimal("10")

    def test_database_refuses_negative_balance(self):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                StockBalance.objects.filter(item=self.item).update(quantity=Decimal("-1"))


class TestPostMovement(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.warehouse = make_warehouse("W1")
        cls.item = make_item("A", raw=True)

    def test_purchase_and_sale(self):
        result = StockLedgerService.post_movement(
            self.item.id, self.warehouse.id, "PURCHASE", "12", unit_cost="1.5", remarks="PO 77"
        )
        movement = result["movement"]
        assert movement["quantity"] == "12.0000"
        assert movement["unit_cost"] == "1.5000"
        assert movement["reference_type"] == "MANUAL"

        sale = StockLedgerService.post_movement(self.item.id, self.warehouse.id, "SALE", 5)["movement"]
        assert sale["quantity"] == "-5.0000"
        assert sale["balance_after"] == "7.0000"

    def test_sale_beyond_stock(self):
        receive(self.item, self.warehouse, 2)

        with pytest.raises(InsufficientStockError) as exc:
            StockLedgerService.post_movement(self.item.id, self.warehouse.id, "SALE", 3)

        shortfall = exc.value.shortfalls[0]
        assert shortfall["item_code"] == "A"
        assert shortfall["available"] == Decimal("2")
        assert shortfall["required"] == Decimal("3")
        assert balance(self.item, self.warehouse) == Decimal("2")

    def test_production_types_are_reserved(self):
        for movement_type in ("PRODUCTION_IN", "PRODUCTION_OUT"):
            with pytest.raises(BusinessRuleError):
                StockLedgerService.post_movement(self.item.id, self.warehouse.id, movement_type, 1)

    def test_rejects_bad_input(self):
        with pytest.raises(InvalidQuantityError):
            StockLedgerService.post_movement(self.item.id, self.warehouse.id, "PURCHASE", 0)
        with pytest.raises(ValidationError):
            StockLedgerService.post_movement(self.item.id, self.warehouse.id, "PURCHASE", -3)
        with pytest.raises(ValidationError):
            StockLedgerService.post_movement(self.item.id, self.warehouse.id, "BOGUS", 1)
        with pytest.raises(ItemNotFoundError):
            StockLedgerService.post_movement(404, self.warehouse.id, "PURCHASE", 1)
        with pytest.raises(WarehouseNotFoundError):
            StockLedgerService.post_movement(self.item.id, 404, "PURCHASE", 1)

    def test_rejects_non_finite_unit_cost(self):
        for value in ("NaN", "Infinity", "-1", "abc"):
            with pytest.raises(ValidationError) as exc:
                StockLedgerService.post_movement(self.item.id, self.warehouse.id, "PURCHASE", 1, unit_cost=value)
            assert exc.value.field == "unit_cost"

        assert StockMovement.objects.count() == 0

    def test_inactive_warehouse(self):
        closed = make_warehouse("OLD")
        closed.is_active = False
        closed.save()

        with pytest.raises(WarehouseNotFoundError):
            StockLedgerService.post_movement(self.item.id, closed.id, "PURCHASE", 1)
