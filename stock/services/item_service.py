import logging
from typing import Dict, Any

from django.db import transaction
from django.db.models import Q, Sum

from stock.models import Item, StockBalance
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, ItemNotFoundError, BusinessRuleError,
    to_decimal, parse_amount, parse_bool, ledger_setting
)

logger = logging.getLogger(__name__)


ITEM_FLAGS = ("is_raw_material", "is_finished_good", "is_purchased", "is_manufactured")
ITEM_AMOUNTS = ("reorder_level", "standard_cost", "standard_selling_price")


class ItemService(BaseService):
    model = Item

    @classmethod
    def serialize(cls, item: Item, include_stock: bool = False) -> Dict[str, Any]:
        data = {
            "id": item.id,
            "uuid": str(item.uuid),
            "code": item.code,
            "name": item.name,
            "description": item.description,
            "category": item.category,
            "unit_of_measure": item.unit_of_measure,

            "reorder_level": str(item.reorder_level),
            "standard_cost": str(item.standard_cost),
            "standard_selling_price": str(item.standard_selling_price),

            "is_raw_material": item.is_raw_material,
            "is_finished_good": item.is_finished_good,
            "is_purchased": item.is_purchased,
            "is_manufactured": item.is_manufactured,
            "is_active": item.is_active,

            "created_at": item.created_at.isoformat(),
            "updated_at": item.updated_at.isoformat(),
        }

        if include_stock:
            balances = StockBalance.objects.filter(item=item).select_related("warehouse")
            data["stock"] = [
                {
                    "warehouse_id": b.warehouse_id,
                    "warehouse_code": b.warehouse.code,
                    "warehouse_name": b.warehouse.name,
                    "quantity": str(b.quantity),
                }
                for b in balances
            ]
            data["total_stock"] = str(sum((b.quantity for b in balances), to_decimal(0)))

        return data

    @classmethod
    def serialize_brief(cls, item: Item) -> Dict[str, Any]:
        return {
            "id": item.id,
            "code": item.code,
            "name": item.name,
            "unit_of_measure": item.unit_of_measure,
        }

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 50,
             search: str = None,
             category: str = None,
             is_raw_material: bool = None,
             is_finished_good: bool = None,
             include_inactive: bool = False) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if not include_inactive:
            queryset = queryset.filter(is_active=True)

        if search:
            queryset = queryset.filter(
                Q(code__icontains=search) |
                Q(name__icontains=search) |
                Q(description__icontains=search)
            )

        if category:
            queryset = queryset.filter(category=category)

        if is_raw_material is not None:
            queryset = queryset.filter(is_raw_material=is_raw_material)

        if is_finished_good is not None:
            queryset = queryset.filter(is_finished_good=is_finished_good)

        queryset = queryset.order_by("name")
        items, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "items": [cls.serialize(item) for item in items],
            "pagination": pagination,
        })

    @classmethod
    def get_categories(cls) -> Dict[str, Any]:
        categories = list(
            cls.model.objects.filter(is_active=True)
            .exclude(category="")
            .values_list("category", flat=True)
            .distinct()
            .order_by("category")
        )
        return success_response({"categories": categories})

    @classmethod
    def get(cls, item_id: int) -> Dict[str, Any]:
        item = cls.get_by_id(item_id)
        if not item:
            raise ItemNotFoundError(item_id)

        return success_response({"item": cls.serialize(item, include_stock=True)})

    @classmethod
    def _clean_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = {}
        for field in ("name", "description", "category", "unit_of_measure"):
            if field in data and data[field] is not None:
                cleaned[field] = str(data[field]).strip()

        for field in ITEM_AMOUNTS:
            if field in data and data[field] is not None:
                cleaned[field] = parse_amount(data[field], field)

        for field in ITEM_FLAGS:
            if field in data and data[field] is not None:
                cleaned[field] = parse_bool(data[field], field)

        return cleaned

    @classmethod
    @transaction.atomic
    def create(cls, code: str, name: str, **kwargs) -> Dict[str, Any]:
        code = (code or "").strip()
        name = (name or "").strip()
        if not code:
            raise ValidationError("Item code is required", "code")
        if not name:
            raise ValidationError("Item name is required", "name")

        if cls.model.objects.filter(code__iexact=code).exists():
            raise ValidationError(f"Item code '{code}' already exists", "code")

        fields = cls._clean_fields(kwargs)
        fields.setdefault("unit_of_measure", ledger_setting("DEFAULT_UNIT_OF_MEASURE"))
        item = cls.model.objects.create(code=code, name=name, **fields)
        logger.info("Created item %s", item.code)

        return success_response({
            "id": item.id,
            "uuid": str(item.uuid),
            "item": cls.serialize(item)
        }, f"Item '{name}' created")

    @classmethod
    @transaction.atomic
    def update(cls, item_id: int, **kwargs) -> Dict[str, Any]:
        item = cls.get_by_id(item_id)
        if not item:
            raise ItemNotFoundError(item_id)

        if "code" in kwargs and kwargs["code"] != item.code:
            raise BusinessRuleError("Item code cannot be changed", "item_code_immutable")

        fields = cls._clean_fields(kwargs)
        if "name" in fields and not fields["name"]:
            raise ValidationError("Item name is required", "name")

        for field, value in fields.items():
            setattr(item, field, value)
        item.save()

        return success_response({"item": cls.serialize(item)}, "Item updated")

    @classmethod
    @transaction.atomic
    def deactivate(cls, item_id: int) -> Dict[str, Any]:
        item = cls.get_by_id(item_id)
        if not item:
            raise ItemNotFoundError(item_id)

        item.is_active = False
        item.save(update_fields=["is_active", "updated_at"])
        logger.info("Deactivated item %s", item.code)

        return success_response({"item": cls.serialize(item)}, "Item deactivated")

    @classmethod
    def get_stock_by_warehouse(cls, item_id: int) -> Dict[str, Any]:
        item = cls.get_by_id(item_id)
        if not item:
            raise ItemNotFoundError(item_id)

        totals = StockBalance.objects.filter(item=item).aggregate(total=Sum("quantity"))
        return success_response({
            "item": cls.serialize_brief(item),
            "stock": cls.serialize(item, include_stock=True)["stock"],
            "total_stock": str(totals["total"] or 0),
        })
