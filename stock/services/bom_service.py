import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any, List, Tuple

from django.db import transaction
from django.db.models import Q, Count

from stock.models import BillOfMaterials, BomLine, Item, StockBalance
from stock.services.base_service import (
    BaseService, success_response,
    ValidationError, NotFoundError, BusinessRuleError,
    BomNotFoundError, EmptyRecipeError, ItemNotFoundError,
    parse_quantity, parse_id, round_decimal
)
from stock.services.sequence_service import DocumentSequenceService
from stock.services.warehouse_service import WarehouseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requirement:
    item_id: int
    item_code: str
    item_name: str
    required_quantity: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "item_code": self.item_code,
            "item_name": self.item_name,
            "required_quantity": str(self.required_quantity),
        }


class BomService(BaseService):
    model = BillOfMaterials

    @classmethod
    def serialize_line(cls, line: BomLine) -> Dict[str, Any]:
        return {
            "id": line.id,
            "item_id": line.item_id,
            "item_code": line.item.code,
            "item_name": line.item.name,
            "unit_of_measure": line.item.unit_of_measure,
            "quantity": str(line.quantity),
            "sort_order": line.sort_order,
        }

    @classmethod
    def serialize(cls, bom: BillOfMaterials, include_lines: bool = True) -> Dict[str, Any]:
        data = {
            "id": bom.id,
            "uuid": str(bom.uuid),
            "bom_number": bom.bom_number,
            "name": bom.name,
            "output_item_id": bom.output_item_id,
            "output_item": {
                "id": bom.output_item.id,
                "code": bom.output_item.code,
                "name": bom.output_item.name,
                "unit_of_measure": bom.output_item.unit_of_measure,
            },
            "output_quantity": str(bom.output_quantity),
            "description": bom.description,
            "is_active": bom.is_active,
            "created_by_id": bom.created_by_id,
            "created_at": bom.created_at.isoformat(),
            "updated_at": bom.updated_at.isoformat(),
        }

        if include_lines:
            lines = [cls.serialize_line(line) for line in bom.lines.select_related("item")]
            data["lines"] = lines
            data["item_count"] = len(lines)

        return data

    @classmethod
    def list(cls,
             active_only: bool = False,
             output_item_id: int = None,
             search: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("output_item").annotate(
            line_count=Count("lines")
        )

        if active_only:
            queryset = queryset.filter(is_active=True)

        if output_item_id:
            queryset = queryset.filter(output_item_id=output_item_id)

        if search:
            queryset = queryset.filter(
                Q(bom_number__icontains=search) |
                Q(name__icontains=search) |
                Q(output_item__name__icontains=search)
            )

        boms = []
        for bom in queryset.order_by("-created_at", "-id"):
            data = cls.serialize(bom, include_lines=False)
            data["item_count"] = bom.line_count
            boms.append(data)

        return success_response({"boms": boms, "count": len(boms)})

    @classmethod
    def get(cls, bom_id: int) -> Dict[str, Any]:
        bom = cls.model.objects.select_related("output_item").filter(id=bom_id).first()
        if not bom:
            raise NotFoundError("BOM", bom_id)

        return success_response({"bom": cls.serialize(bom)})

    @classmethod
    def get_for_item(cls, item_id: int) -> Dict[str, Any]:
        boms = cls.model.objects.select_related("output_item").filter(
            output_item_id=item_id, is_active=True
        ).order_by("-created_at", "-id")

        return success_response({
            "boms": [cls.serialize(bom) for bom in boms],
            "count": len(boms),
        })

    @classmethod
    def validate_output_item(cls, output_item_id: Any) -> Item:
        output_item_id = parse_id(output_item_id, "output_item_id")
        output_item = Item.objects.filter(id=output_item_id).first()
        if not output_item:
            raise ItemNotFoundError(output_item_id)
        if not output_item.can_be_produced:
            raise BusinessRuleError(
                f"Item {output_item.code} is not flagged as finished good or manufactured",
                "output_item_producible"
            )
        return output_item

    @classmethod
    def _validate_lines(cls, output_item: Item, lines: Any) -> List[Tuple[Item, Decimal]]:
        if not lines or not isinstance(lines, list):
            raise ValidationError("At least one input line is required", "lines")

        item_ids = []
        for index, line in enumerate(lines):
            if not isinstance(line, dict):
                raise ValidationError(f"Line {index + 1} must be an object", "lines")
            item_ids.append(parse_id(line.get("item_id"), f"lines[{index}].item_id"))

        if len(set(item_ids)) != len(item_ids):
            raise ValidationError("An item may appear only once per BOM", "lines")

        if output_item.id in item_ids:
            raise BusinessRuleError(
                f"Output item {output_item.code} cannot be its own input",
                "no_self_reference"
            )

        items = Item.objects.in_bulk(item_ids)
        missing = [i for i in item_ids if i not in items]
        if missing:
            raise ItemNotFoundError(missing[0])

        validated = []
        for index, (item_id, line) in enumerate(zip(item_ids, lines)):
            quantity = parse_quantity(line.get("quantity"), f"lines[{index}].quantity")
            validated.append((items[item_id], quantity))
        return validated

    @classmethod
    def _replace_lines(cls, bom: BillOfMaterials, lines: List[Tuple[Item, Decimal]]):
        bom.lines.all().delete()
        BomLine.objects.bulk_create([
            BomLine(bom=bom, item=item, quantity=quantity, sort_order=index)
            for index, (item, quantity) in enumerate(lines)
        ])

    @classmethod
    @transaction.atomic
    def create(cls,
               name: str,
               output_item_id: int,
               output_quantity: Any,
               lines: List[Dict[str, Any]],
               description: str = "",
               user_id: int = None) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationError("BOM name is required", "name")

        output_item = cls.validate_output_item(output_item_id)
        output_quantity = parse_quantity(output_quantity, "output_quantity")
        validated_lines = cls._validate_lines(output_item, lines)

        bom = cls.model.objects.create(
            bom_number=DocumentSequenceService.next_number(DocumentSequenceService.BOM),
            name=name,
            output_item=output_item,
            output_quantity=output_quantity,
            description=description or "",
            created_by_id=user_id,
        )
        cls._replace_lines(bom, validated_lines)
        logger.info("Created BOM %s for %s with %d line(s)",
                    bom.bom_number, output_item.code, len(validated_lines))

        return success_response({
            "id": bom.id,
            "uuid": str(bom.uuid),
            "bom": cls.serialize(bom)
        }, f"BOM '{name}' created")

    @classmethod
    @transaction.atomic
    def update(cls, bom_id: int, **kwargs) -> Dict[str, Any]:
        bom = cls.model.objects.select_for_update().filter(id=bom_id).first()
        if not bom:
            raise NotFoundError("BOM", bom_id)

        if "name" in kwargs:
            name = (kwargs["name"] or "").strip()
            if not name:
                raise ValidationError("BOM name is required", "name")
            bom.name = name

        if "output_item_id" in kwargs:
            bom.output_item = cls.validate_output_item(kwargs["output_item_id"])

        if "output_quantity" in kwargs:
            bom.output_quantity = parse_quantity(kwargs["output_quantity"], "output_quantity")

        if "description" in kwargs:
            bom.description = kwargs["description"] or ""

        if "lines" in kwargs:
            cls._replace_lines(bom, cls._validate_lines(bom.output_item, kwargs["lines"]))
        elif bom.lines.filter(item_id=bom.output_item_id).exists():
            raise BusinessRuleError(
                f"Output item {bom.output_item.code} cannot be its own input",
                "no_self_reference"
            )

        bom.save()
        logger.info("Updated BOM %s", bom.bom_number)

        return success_response({"bom": cls.serialize(bom)}, "BOM updated")

    @classmethod
    @transaction.atomic
    def toggle_active(cls, bom_id: int) -> Dict[str, Any]:
        bom = cls.get_by_id(bom_id)
        if not bom:
            raise NotFoundError("BOM", bom_id)

        bom.is_active = not bom.is_active
        bom.save(update_fields=["is_active", "updated_at"])
        logger.info("BOM %s is now %s", bom.bom_number, "active" if bom.is_active else "inactive")

        return success_response(
            {"bom": cls.serialize(bom, include_lines=False)},
            f"BOM {'activated' if bom.is_active else 'deactivated'}"
        )

    @classmethod
    @transaction.atomic
    def delete(cls, bom_id: int) -> Dict[str, Any]:
        bom = cls.get_by_id(bom_id)
        if not bom:
            raise NotFoundError("BOM", bom_id)

        if bom.productions.exists():
            raise BusinessRuleError(
                f"BOM {bom.bom_number} is used by productions; deactivate it instead",
                "bom_in_use"
            )

        bom_number = bom.bom_number
        bom.delete()
        logger.info("Deleted BOM %s", bom_number)

        return success_response(message=f"BOM {bom_number} deleted")

    # ==================== EXPLOSION ====================

    @classmethod
    def load_active(cls, bom_id: Any) -> BillOfMaterials:
        try:
            bom_id = parse_id(bom_id, "bom_id")
        except ValidationError:
            raise BomNotFoundError(bom_id)

        bom = cls.model.objects.select_related("output_item").filter(
            id=bom_id, is_active=True
        ).first()
        if not bom:
            raise BomNotFoundError(bom_id)
        return bom

    @classmethod
    def explode_bom(cls, bom: BillOfMaterials, quantity: Decimal) -> List[Requirement]:
        """
        Scale every line of ``bom`` to produce ``quantity`` of its output item.

        required = line quantity * (quantity / batch output quantity), rounded
        half-up to the stored precision. Lines keep their BOM order.
        """
        lines = list(bom.lines.select_related("item"))
        if not lines:
            raise EmptyRecipeError(bom.bom_number)

        return [
            Requirement(
                item_id=line.item_id,
                item_code=line.item.code,
                item_name=line.item.name,
                required_quantity=round_decimal(line.quantity * quantity / bom.output_quantity),
            )
            for line in lines
        ]

    @classmethod
    def explode(cls, bom_id: Any, quantity: Any) -> List[Requirement]:
        quantity = parse_quantity(quantity, "output_quantity")
        bom = cls.load_active(bom_id)
        return cls.explode_bom(bom, quantity)

    @classmethod
    def get_explosion(cls, bom_id: Any, quantity: Any) -> Dict[str, Any]:
        requirements = cls.explode(bom_id, quantity)
        return success_response({
            "bom_id": int(bom_id),
            "output_quantity": str(parse_quantity(quantity, "output_quantity")),
            "requirements": [r.to_dict() for r in requirements],
        })

    @classmethod
    def check_availability(cls, bom_id: Any, quantity: Any, warehouse_id: int) -> Dict[str, Any]:
        requirements = cls.explode(bom_id, quantity)
        warehouse = WarehouseService.get_active_or_raise(warehouse_id)

        balances = dict(
            StockBalance.objects.filter(
                warehouse=warehouse,
                item_id__in=[r.item_id for r in requirements],
            ).values_list("item_id", "quantity")
        )

        rows = []
        for r in requirements:
            available = balances.get(r.item_id, Decimal("0"))
            shortage = max(r.required_quantity - available, Decimal("0"))
            rows.append({
                **r.to_dict(),
                "available": str(available),
                "shortage": str(shortage),
                "is_available": shortage == 0,
            })

        return success_response({
            "bom_id": int(bom_id),
            "warehouse_id": warehouse.id,
            "output_quantity": str(parse_quantity(quantity, "output_quantity")),
            "can_produce": all(row["is_available"] for row in rows),
            "requirements": rows,
        })
