from decimal import Decimal

from stock.models import Item, Warehouse, BillOfMaterials, BomLine
from stock.services import StockLedgerService, DocumentSequenceService


def make_warehouse(code: str, name: str = None) -> Warehouse:
    return Warehouse.objects.create(code=code, name=name or f"Warehouse {code}")


def make_item(code: str, raw: bool = False, finished: bool = False, **kwargs) -> Item:
    return Item.objects.create(
        code=code,
        name=kwargs.pop("name", f"Item {code}"),
        is_raw_material=raw,
        is_finished_good=finished,
        **kwargs
    )


def make_bom(output_item: Item, output_quantity, lines, name: str = "Test BOM") -> BillOfMaterials:
    bom = BillOfMaterials.objects.create(
        bom_number=DocumentSequenceService.next_number(DocumentSequenceService.BOM),
        name=name,
        output_item=output_item,
        output_quantity=Decimal(str(output_quantity)),
    )
    for index, (item, quantity) in enumerate(lines):
        BomLine.objects.create(bom=bom, item=item, quantity=Decimal(str(quantity)), sort_order=index)
    return bom


def receive(item: Item, warehouse: Warehouse, quantity):
    return StockLedgerService.post_movement(
        item_id=item.id,
        warehouse_id=warehouse.id,
        movement_type="PURCHASE",
        quantity=quantity,
    )


def balance(item: Item, warehouse: Warehouse) -> Decimal:
    return StockLedgerService.get_balance(item.id, warehouse.id)


class ScenarioMixin:
    """BOM B1: 1 x F from 2 x R1 + 1 x R2; raw materials in W1, finished goods in W2."""

    @classmethod
    def setUpTestData(cls):
        cls.w1 = make_warehouse("W1", "Raw Materials")
        cls.w2 = make_warehouse("W2", "Finished Goods")
        cls.r1 = make_item("R1", raw=True)
        cls.r2 = make_item("R2", raw=True)
        cls.f = make_item("F", finished=True)
        cls.bom = make_bom(cls.f, 1, [(cls.r1, 2), (cls.r2, 1)], name="B1")

    def production_payload(self, quantity, **overrides):
        payload = {
            "bom_id": self.bom.id,
            "output_quantity": str(quantity),
            "raw_materials_warehouse_id": self.w1.id,
            "finished_goods_warehouse_id": self.w2.id,
        }
        payload.update(overrides)
        return payload
