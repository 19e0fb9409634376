import logging
from typing import Dict, Any

from django.db import transaction
from django.db.models import Q, Count, Sum

from stock.models import Warehouse, StockBalance
from stock.services.base_service import (
    BaseService, success_response,
    ValidationError, BusinessRuleError, WarehouseNotFoundError
)

logger = logging.getLogger(__name__)


class WarehouseService(BaseService):
    model = Warehouse

    @classmethod
    def serialize(cls, warehouse: Warehouse, include_stats: bool = False) -> Dict[str, Any]:
        data = {
            "id": warehouse.id,
            "uuid": str(warehouse.uuid),
            "code": warehouse.code,
            "name": warehouse.name,
            "location": warehouse.location,
            "is_active": warehouse.is_active,
            "created_at": warehouse.created_at.isoformat(),
        }

        if include_stats:
            stats = StockBalance.objects.filter(warehouse=warehouse, quantity__gt=0).aggregate(
                item_count=Count("id"),
                total_quantity=Sum("quantity"),
            )
            data["stats"] = {
                "item_count": stats["item_count"] or 0,
                "total_quantity": str(stats["total_quantity"] or 0),
            }

        return data

    @classmethod
    def list(cls, include_inactive: bool = False, search: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if not include_inactive:
            queryset = queryset.filter(is_active=True)

        if search:
            queryset = queryset.filter(
                Q(code__icontains=search) | Q(name__icontains=search)
            )

        warehouses = [cls.serialize(w) for w in queryset.order_by("code")]

        return success_response({
            "warehouses": warehouses,
            "count": len(warehouses),
        })

    @classmethod
    def get(cls, warehouse_id: int) -> Dict[str, Any]:
        warehouse = cls.get_by_id(warehouse_id)
        if not warehouse:
            raise WarehouseNotFoundError(warehouse_id)

        return success_response({"warehouse": cls.serialize(warehouse, include_stats=True)})

    @classmethod
    def get_active_or_raise(cls, warehouse_id: int) -> Warehouse:
        warehouse = cls.get_by_id(warehouse_id)
        if not warehouse or not warehouse.is_active:
            raise WarehouseNotFoundError(warehouse_id)
        return warehouse

    @classmethod
    @transaction.atomic
    def create(cls, code: str, name: str, location: str = "") -> Dict[str, Any]:
        code = (code or "").strip()
        name = (name or "").strip()
        if not code:
            raise ValidationError("Warehouse code is required", "code")
        if not name:
            raise ValidationError("Warehouse name is required", "name")

        if cls.model.objects.filter(code__iexact=code).exists():
            raise ValidationError(f"Warehouse code '{code}' already exists", "code")

        warehouse = cls.model.objects.create(code=code, name=name, location=location or "")
        logger.info("Created warehouse %s", warehouse.code)

        return success_response({
            "id": warehouse.id,
            "uuid": str(warehouse.uuid),
            "warehouse": cls.serialize(warehouse)
        }, f"Warehouse '{name}' created")

    @classmethod
    @transaction.atomic
    def update(cls, warehouse_id: int, **kwargs) -> Dict[str, Any]:
        warehouse = cls.get_by_id(warehouse_id)
        if not warehouse:
            raise WarehouseNotFoundError(warehouse_id)

        if "code" in kwargs and kwargs["code"] != warehouse.code:
            raise BusinessRuleError("Warehouse code cannot be changed", "warehouse_code_immutable")

        if "name" in kwargs:
            name = (kwargs["name"] or "").strip()
            if not name:
                raise ValidationError("Warehouse name is required", "name")
            warehouse.name = name

        if "location" in kwargs:
            warehouse.location = kwargs["location"] or ""

        warehouse.save()
        return success_response({"warehouse": cls.serialize(warehouse)}, "Warehouse updated")

    @classmethod
    @transaction.atomic
    def deactivate(cls, warehouse_id: int) -> Dict[str, Any]:
        warehouse = cls.get_by_id(warehouse_id)
        if not warehouse:
            raise WarehouseNotFoundError(warehouse_id)

        warehouse.is_active = False
        warehouse.save(update_fields=["is_active", "updated_at"])
        logger.info("Deactivated warehouse %s", warehouse.code)

        return success_response({"warehouse": cls.serialize(warehouse)}, "Warehouse deactivated")
