import json
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse

from stock.models import Production, StockMovement
from stock.tests.helpers import ScenarioMixin, make_item, receive, balance


class StockApiTestCase(ScenarioMixin, TestCase):

    def post_json(self, name, payload, **kwargs):
        return self.client.post(
            reverse(f"stock:{name}", kwargs=kwargs),
            data=json.dumps(payload),
            content_type="application/json",
        )

    def get_json(self, name, params=None, **kwargs):
        return self.client.get(reverse(f"stock:{name}", kwargs=kwargs), params or {})


class TestProductionApi(StockApiTestCase):

    def test_create_production(self):
        receive(self.r1, self.w1, 10)
        receive(self.r2, self.w1, 10)

        response = self.post_json("production-list", self.production_payload(3, remarks="Batch 7"))

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        production = body["production"]
        assert production["production_number"].startswith("PROD-")
        assert production["output_quantity"] == "3.0000"
        assert len(production["movement_numbers"]) == 3
        assert {m["movement_type"] for m in production["movements"]} == {"PRODUCTION_OUT", "PRODUCTION_IN"}

        detail = self.get_json("production-detail", production_id=body["id"]).json()
        assert detail["production"]["remarks"] == "Batch 7"

    def test_insufficient_stock_is_a_conflict(self):
        receive(self.r1, self.w1, 10)
        receive(self.r2, self.w1, 10)

        response = self.post_json("production-list", self.production_payload(6))

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "INSUFFICIENT_STOCK"
        assert error["details"]["shortfalls"] == [{
            "item_id": self.r1.id,
            "item_code": "R1",
            "available": "10.0000",
            "required": "12.0000",
        }]
        assert Production.objects.count() == 0

    def test_unknown_bom(self):
        response = self.post_json("production-list", self.production_payload(1, bom_id=999999))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "BOM_NOT_FOUND"

    def test_invalid_quantity(self):
        response = self.post_json("production-list", self.production_payload(0))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_QUANTITY"

    def test_malformed_body(self):
        response = self.client.post(
            reverse("stock:production-list"), data="{not json", content_type="application/json"
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_fractional_bom_id(self):
        receive(self.r1, self.w1, 10)
        receive(self.r2, self.w1, 10)

        response = self.post_json("production-list", self.production_payload(1, bom_id=self.bom.id + 0.9))

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "bom_id"
        assert Production.objects.count() == 0

    def test_ad_hoc_production(self):
        receive(self.r1, self.w1, 10)
        receive(self.r2, self.w1, 10)

        response = self.post_json("production-list", {
            "output_item_id": self.f.id,
            "output_quantity": "4",
            "raw_materials_warehouse_id": self.w1.id,
            "finished_goods_warehouse_id": self.w2.id,
            "input_items": [
                {"item_id": self.r1.id, "quantity": "8"},
                {"item_id": self.r2.id, "quantity": "4"},
            ],
        })

        assert response.status_code == 201
        assert response.json()["production"]["bom_id"] is None
        assert balance(self.r1, self.w1) == Decimal("2")
        assert balance(self.f, self.w2) == Decimal("4")

    def test_delete_reverses_stock(self):
        receive(self.r1, self.w1, 10)
        receive(self.r2, self.w1, 10)
        production_id = self.post_json("production-list", self.production_payload(2)).json()["id"]

        response = self.client.delete(reverse("stock:production-detail", kwargs={"production_id": production_id}))

        assert response.status_code == 200
        assert response.json()["reversal_movements"] == 3
        assert balance(self.r1, self.w1) == 10
        assert balance(self.f, self.w2) == 0

    def test_missing_production(self):
        response = self.get_json("production-detail", production_id=31337)

        assert response.status_code == 404


class TestLedgerApi(StockApiTestCase):

    def test_balance_lookup(self):
        receive(self.r1, self.w1, "7.5")

        body = self.get_json("balance-detail", item_id=self.r1.id, warehouse_id=self.w1.id).json()
        assert body["quantity"] == "7.5000"

        body = self.get_json("balance-detail", item_id=self.r2.id, warehouse_id=self.w1.id).json()
        assert body["quantity"] == "0"

    def test_post_and_list_movements(self):
        response = self.post_json("movement-list", {
            "item_id": self.r1.id,
            "warehouse_id": self.w1.id,
            "movement_type": "PURCHASE",
            "quantity": "4",
            "unit_cost": "2.25",
        })
        assert response.status_code == 201
        assert response.json()["movement"]["movement_number"].startswith("STK-")

        body = self.get_json("movement-list", {"item_id": self.r1.id}).json()
        assert body["pagination"]["total_items"] == 1
        assert body["movements"][0]["unit_cost"] == "2.2500"

    def test_oversold_movement_is_a_conflict(self):
        response = self.post_json("movement-list", {
            "item_id": self.r1.id,
            "warehouse_id": self.w1.id,
            "movement_type": "SALE",
            "quantity": "1",
        })

        assert response.status_code == 409
        assert StockMovement.objects.count() == 0

    def test_production_movement_types_are_refused(self):
        response = self.post_json("movement-list", {
            "item_id": self.r1.id,
            "warehouse_id": self.w1.id,
            "movement_type": "PRODUCTION_IN",
            "quantity": "1",
        })

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BUSINESS_RULE_VIOLATION"

    def test_non_finite_unit_cost(self):
        response = self.post_json("movement-list", {
            "item_id": self.r1.id,
            "warehouse_id": self.w1.id,
            "movement_type": "PURCHASE",
            "quantity": "1",
            "unit_cost": "NaN",
        })

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "unit_cost"
        assert StockMovement.objects.count() == 0

    def test_non_finite_item_cost(self):
        response = self.post_json("item-list", {"code": "X1", "name": "Thing", "standard_cost": "Infinity"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_bad_query_parameter(self):
        response = self.get_json("movement-list", {"item_id": "abc"})

        assert response.status_code == 400
        assert response.json()["error"]["details"]["field"] == "item_id"

    def test_verify(self):
        receive(self.r1, self.w1, 3)

        assert self.get_json("ledger-verify").json()["is_consistent"] is True


class TestBomApi(StockApiTestCase):

    def test_create_get_and_explode(self):
        output = make_item("F2", finished=True)

        response = self.post_json("bom-list", {
            "name": "F2 batch",
            "output_item_id": output.id,
            "output_quantity": "4",
            "lines": [
                {"item_id": self.r1.id, "quantity": "1"},
                {"item_id": self.r2.id, "quantity": "3"},
            ],
        })
        assert response.status_code == 201
        bom_id = response.json()["id"]

        detail = self.get_json("bom-detail", bom_id=bom_id).json()["bom"]
        assert [line["item_code"] for line in detail["lines"]] == ["R1", "R2"]

        explosion = self.get_json("bom-explode", {"quantity": "2"}, bom_id=bom_id).json()
        assert [r["required_quantity"] for r in explosion["requirements"]] == ["0.5000", "1.5000"]

    def test_explode_without_quantity(self):
        response = self.get_json("bom-explode", bom_id=self.bom.id)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_QUANTITY"

    def test_availability_requires_warehouse(self):
        response = self.get_json("bom-availability", {"quantity": "1"}, bom_id=self.bom.id)

        assert response.status_code == 400
