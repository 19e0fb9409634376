from decimal import Decimal

import pytest
from django.test import TestCase

from stock.models import Item, Warehouse
from stock.services import (
    ItemService, WarehouseService,
    ValidationError, BusinessRuleError, ItemNotFoundError, WarehouseNotFoundError,
)
from stock.tests.helpers import make_item, make_warehouse, receive


class TestItemRegistry(TestCase):

    def test_create_with_defaults(self):
        result = ItemService.create("BOLT-M6", "Bolt M6", category="Hardware", reorder_level="25")

        item = result["item"]
        assert item["unit_of_measure"] == "Nos"
        assert item["reorder_level"] == "25.0000"
        assert item["is_purchased"] is True
        assert item["is_manufactured"] is False
        assert Item.objects.get(id=result["id"]).category == "Hardware"

    def test_code_is_unique_ignoring_case(self):
        ItemService.create("BOLT", "Bolt")

        with pytest.raises(ValidationError) as exc:
            ItemService.create("bolt", "Another bolt")
        assert exc.value.field == "code"

    def test_requires_code_and_name(self):
        with pytest.raises(ValidationError):
            ItemService.create("", "Nameless")
        with pytest.raises(ValidationError):
            ItemService.create("X1", "  ")

    def test_rejects_negative_amounts(self):
        with pytest.raises(ValidationError):
            ItemService.create("X1", "Thing", standard_cost="-1")

    def test_rejects_non_finite_amounts(self):
        for value in ("NaN", "Infinity", "-inf", "sNaN"):
            with pytest.raises(ValidationError) as exc:
                ItemService.create("X1", "Thing", standard_cost=value)
            assert exc.value.field == "standard_cost"
        with pytest.raises(ValidationError):
            ItemService.create("X1", "Thing", reorder_level="Infinity")
        assert not Item.objects.filter(code="X1").exists()

    def test_flags_parse_text(self):
        item = ItemService.create("X1", "Thing", is_manufactured="true", is_purchased="false")["item"]

        assert item["is_manufactured"] is True
        assert item["is_purchased"] is False

        with pytest.raises(ValidationError) as exc:
            ItemService.create("X2", "Other", is_raw_material="maybe")
        assert exc.value.field == "is_raw_material"

    def test_update_keeps_code(self):
        item = make_item("PAINT", raw=True)

        result = ItemService.update(item.id, name="Blue paint", is_manufactured=True, code="PAINT")
        assert result["item"]["name"] == "Blue paint"
        assert result["item"]["is_manufactured"] is True

        with pytest.raises(BusinessRuleError):
            ItemService.update(item.id, code="PAINT-2")

    def test_deactivate_hides_from_list(self):
        keep = make_item("KEEP", raw=True)
        gone = make_item("GONE", raw=True)

        ItemService.deactivate(gone.id)

        listed = [i["id"] for i in ItemService.list()["items"]]
        assert listed == [keep.id]
        assert len(ItemService.list(include_inactive=True)["items"]) == 2

    def test_list_filters(self):
        make_item("R1", raw=True, category="Metals", name="Steel sheet")
        make_item("R2", raw=True, category="Paints", name="Primer")
        make_item("F1", finished=True, category="Cabinets", name="Steel cabinet")

        def codes(**filters):
            return [i["code"] for i in ItemService.list(**filters)["items"]]

        assert codes(search="steel") == ["F1", "R1"]
        assert codes(category="Paints") == ["R2"]
        assert codes(is_finished_good=True) == ["F1"]
        assert codes(is_raw_material=True) == ["R2", "R1"]

    def test_categories(self):
        make_item("A", category="Metals")
        make_item("B", category="Metals")
        make_item("C", category="")
        make_item("D", category="Adhesives")

        assert ItemService.get_categories()["categories"] == ["Adhesives", "Metals"]

    def test_get_includes_stock_per_warehouse(self):
        item = make_item("A", raw=True)
        receive(item, make_warehouse("W1"), 4)
        receive(item, make_warehouse("W2"), "1.5")

        data = ItemService.get(item.id)["item"]

        assert data["total_stock"] == "5.5000"
        assert {s["warehouse_code"] for s in data["stock"]} == {"W1", "W2"}
        assert ItemService.get_stock_by_warehouse(item.id)["total_stock"] == "5.5000"

    def test_missing_item(self):
        with pytest.raises(ItemNotFoundError):
            ItemService.get(5050)
        with pytest.raises(ItemNotFoundError):
            ItemService.update(5050, name="x")


class TestWarehouseRegistry(TestCase):

    def test_create_and_get_with_stats(self):
        warehouse_id = WarehouseService.create("MAIN", "Main store", "Building A")["id"]
        receive(make_item("A", raw=True), Warehouse.objects.get(id=warehouse_id), Decimal("3"))

        data = WarehouseService.get(warehouse_id)["warehouse"]

        assert data["location"] == "Building A"
        assert data["stats"] == {"item_count": 1, "total_quantity": "3.0000"}

    def test_duplicate_code(self):
        make_warehouse("MAIN")

        with pytest.raises(ValidationError):
            WarehouseService.create("main", "Second main")

    def test_update_keeps_code(self):
        warehouse = make_warehouse("MAIN")

        assert WarehouseService.update(warehouse.id, name="Main store")["warehouse"]["name"] == "Main store"
        with pytest.raises(BusinessRuleError):
            WarehouseService.update(warehouse.id, code="OTHER")
        with pytest.raises(ValidationError):
            WarehouseService.update(warehouse.id, name="")

    def test_deactivated_warehouse_is_not_active(self):
        warehouse = make_warehouse("OLD")

        WarehouseService.deactivate(warehouse.id)

        assert WarehouseService.list()["count"] == 0
        assert WarehouseService.list(include_inactive=True)["count"] == 1
        with pytest.raises(WarehouseNotFoundError):
            WarehouseService.get_active_or_raise(warehouse.id)

    def test_search(self):
        make_warehouse("RM", "Raw materials")
        make_warehouse("FG", "Finished goods")

        assert [w["code"] for w in WarehouseService.list(search="goods")["warehouses"]] == ["FG"]
