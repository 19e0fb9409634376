from datetime import date
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from stock.models import StockBalance
from stock.services import (
    StockQueryService, StockLedgerService, ProductionService,
    ValidationError, ItemNotFoundError,
)
from stock.tests.helpers import ScenarioMixin, make_item, make_warehouse, receive


class TestBalanceQueries(ScenarioMixin, TestCase):

    def setUp(self):
        receive(self.r1, self.w1, 10)
        receive(self.r1, self.w2, 3)

    def test_balance_by_item_and_warehouse(self):
        assert StockQueryService.get_balance(self.r1.id, self.w1.id)["quantity"] == "10.0000"
        assert StockQueryService.get_balance(self.r2.id, self.w1.id)["quantity"] == "0"

    def test_total_across_warehouses(self):
        result = StockQueryService.get_total_balance(self.r1.id)

        assert result["total_quantity"] == "13.0000"
        assert {w["warehouse_code"] for w in result["warehouses"]} == {"W1", "W2"}

    def test_reads_are_idempotent(self):
        first = StockQueryService.list_balances()
        second = StockQueryService.list_balances()

        assert first == second
        assert first["pagination"]["total_items"] == 2

    def test_committed_production_is_visible_to_next_read(self):
        receive(self.r2, self.w1, 10)

        ProductionService.create(self.production_payload(2))

        assert StockQueryService.get_balance(self.r1.id, self.w1.id)["quantity"] == "6.0000"
        assert StockQueryService.get_balance(self.f.id, self.w2.id)["quantity"] == "2.0000"

    def test_list_balances_filters(self):
        assert StockQueryService.list_balances(warehouse_id=self.w2.id)["pagination"]["total_items"] == 1
        StockLedgerService.post_movement(self.r1.id, self.w2.id, "SALE", 3)
        assert StockQueryService.list_balances(warehouse_id=self.w2.id)["pagination"]["total_items"] == 0
        assert StockQueryService.list_balances(warehouse_id=self.w2.id, include_zero=True)["pagination"]["total_items"] == 1


class TestMovementQueries(ScenarioMixin, TestCase):

    def setUp(self):
        StockLedgerService.post_movement(self.r1.id, self.w1.id, "PURCHASE", 10, movement_date="2025-03-01")
        StockLedgerService.post_movement(self.r2.id, self.w1.id, "PURCHASE", 10, movement_date="2025-03-02")
        StockLedgerService.post_movement(self.r1.id, self.w1.id, "SALE", 1, movement_date="2025-03-05")
        StockLedgerService.post_movement(self.r1.id, self.w1.id, "ADJUSTMENT", "-0.5", movement_date="2025-03-09")

    def test_newest_first_with_pagination(self):
        result = StockQueryService.list_movements(per_page=3)

        assert result["pagination"]["total_items"] == 4
        assert result["pagination"]["has_next"] is True
        assert [m["movement_date"] for m in result["movements"]] == ["2025-03-09", "2025-03-05", "2025-03-02"]

    def test_filters(self):
        def count(**filters):
            return StockQueryService.list_movements(**filters)["pagination"]["total_items"]

        assert count(item_id=self.r1.id) == 3
        assert count(movement_type="SALE") == 1
        assert count(warehouse_id=self.w2.id) == 0
        assert count(date_from=date(2025, 3, 2), date_to=date(2025, 3, 5)) == 2
        assert count(reference_type="MANUAL") == 4

    def test_unknown_movement_type(self):
        with pytest.raises(ValidationError):
            StockQueryService.list_movements(movement_type="GIFT")

    def test_item_ledger_runs_oldest_first(self):
        ledger = StockQueryService.get_item_ledger(self.r1.id)

        assert ledger["count"] == 3
        assert [m["balance_after"] for m in ledger["movements"]] == ["10.0000", "9.0000", "8.5000"]

    def test_item_ledger_for_missing_item(self):
        with pytest.raises(ItemNotFoundError):
            StockQueryService.get_item_ledger(12345)


class TestStockSummary(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.warehouse = make_warehouse("W1")
        cls.bolts = make_item("BOLT", raw=True, category="Hardware",
                              reorder_level=Decimal("50"), standard_cost=Decimal("0.2"))
        cls.nuts = make_item("NUT", raw=True, category="Hardware",
                             reorder_level=Decimal("10"), standard_cost=Decimal("0.1"))
        cls.paint = make_item("PAINT", raw=True, category="Finish")

    def setUp(self):
        receive(self.bolts, self.warehouse, 40)
        receive(self.nuts, self.warehouse, 100)

    def test_summary_values_and_low_stock_flag(self):
        summary = StockQueryService.get_stock_summary(category="Hardware")
        rows = {row["item_code"]: row for row in summary["items"]}

        assert rows["BOLT"]["is_low_stock"] is True
        assert rows["BOLT"]["stock_value"] == "8.0000"
        assert rows["NUT"]["is_low_stock"] is False
        assert summary["total_value"] == "18.0000"

    def test_zero_reorder_level_is_never_low(self):
        low = StockQueryService.get_low_stock()

        assert [row["item_code"] for row in low["items"]] == ["BOLT"]


class TestLedgerVerification(ScenarioMixin, TestCase):

    def setUp(self):
        receive(self.r1, self.w1, 10)

    def test_consistent_ledger(self):
        assert StockQueryService.verify_balances()["is_consistent"] is True

        out = StringIO()
        call_command("verify_stock_ledger", stdout=out)
        assert "consistent" in out.getvalue()

    def test_detects_drift(self):
        StockBalance.objects.filter(item=self.r1, warehouse=self.w1).update(quantity=Decimal("7"))

        result = StockQueryService.verify_balances()
        assert result["is_consistent"] is False
        assert result["drift"][0]["cached"] == "7.0000"
        assert result["drift"][0]["from_movements"] == "10.0000"

        with pytest.raises(CommandError):
            call_command("verify_stock_ledger", "--fail-on-drift", stdout=StringIO())
