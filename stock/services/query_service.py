import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Any, List

from django.db.models import Sum

from stock.models import Item, StockBalance, StockMovement
from stock.services.base_service import (
    success_response, paginate_queryset,
    ValidationError, ItemNotFoundError, round_decimal
)
from stock.services.ledger_service import StockLedgerService

logger = logging.getLogger(__name__)


class StockQueryService:
    """Read-only projections over balances and the movement log."""

    @classmethod
    def serialize_balance(cls, balance: StockBalance) -> Dict[str, Any]:
        return {
            "item_id": balance.item_id,
            "item_code": balance.item.code,
            "item_name": balance.item.name,
            "unit_of_measure": balance.item.unit_of_measure,
            "warehouse_id": balance.warehouse_id,
            "warehouse_code": balance.warehouse.code,
            "warehouse_name": balance.warehouse.name,
            "quantity": str(balance.quantity),
            "last_movement_at": balance.last_movement_at.isoformat() if balance.last_movement_at else None,
        }

    @classmethod
    def get_balance(cls, item_id: int, warehouse_id: int) -> Dict[str, Any]:
        return success_response({
            "item_id": item_id,
            "warehouse_id": warehouse_id,
            "quantity": str(StockLedgerService.get_balance(item_id, warehouse_id)),
        })

    @classmethod
    def get_total_balance(cls, item_id: int) -> Dict[str, Any]:
        balances = StockBalance.objects.filter(item_id=item_id).select_related("item", "warehouse")
        total = sum((b.quantity for b in balances), Decimal("0"))
        return success_response({
            "item_id": item_id,
            "total_quantity": str(total),
            "warehouses": [cls.serialize_balance(b) for b in balances],
        })

    @classmethod
    def list_balances(cls,
                      warehouse_id: int = None,
                      item_id: int = None,
                      include_zero: bool = False,
                      page: int = 1,
                      per_page: int = 50) -> Dict[str, Any]:
        queryset = StockBalance.objects.select_related("item", "warehouse")

        if warehouse_id:
            queryset = queryset.filter(warehouse_id=warehouse_id)

        if item_id:
            queryset = queryset.filter(item_id=item_id)

        if not include_zero:
            queryset = queryset.exclude(quantity=0)

        queryset = queryset.order_by("item__name", "warehouse__code")
        balances, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "balances": [cls.serialize_balance(b) for b in balances],
            "pagination": pagination,
        })

    @classmethod
    def list_movements(cls,
                       page: int = 1,
                       per_page: int = 50,
                       item_id: int = None,
                       warehouse_id: int = None,
                       movement_type: str = None,
                       reference_type: str = None,
                       reference_id: int = None,
                       date_from: date = None,
                       date_to: date = None) -> Dict[str, Any]:
        queryset = StockMovement.objects.select_related("item", "warehouse")

        if item_id:
            queryset = queryset.filter(item_id=item_id)

        if warehouse_id:
            queryset = queryset.filter(warehouse_id=warehouse_id)

        if movement_type:
            valid_types = [c[0] for c in StockMovement.MovementType.choices]
            if movement_type not in valid_types:
                raise ValidationError(f"Invalid movement type. Valid: {valid_types}", "movement_type")
            queryset = queryset.filter(movement_type=movement_type)

        if reference_type:
            queryset = queryset.filter(reference_type=reference_type)

        if reference_id:
            queryset = queryset.filter(reference_id=reference_id)

        if date_from:
            queryset = queryset.filter(movement_date__gte=date_from)

        if date_to:
            queryset = queryset.filter(movement_date__lte=date_to)

        queryset = queryset.order_by("-movement_date", "-id")
        movements, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "movements": [StockLedgerService.serialize(m) for m in movements],
            "pagination": pagination,
            "movement_types": [
                {"value": c[0], "label": c[1]}
                for c in StockMovement.MovementType.choices
            ],
        })

    @classmethod
    def get_item_ledger(cls,
                        item_id: int,
                        warehouse_id: int = None,
                        date_from: date = None,
                        date_to: date = None) -> Dict[str, Any]:
        """Movements of one item in posting order, oldest first."""
        item = Item.objects.filter(id=item_id).first()
        if not item:
            raise ItemNotFoundError(item_id)

        queryset = StockMovement.objects.filter(item=item).select_related("item", "warehouse")

        if warehouse_id:
            queryset = queryset.filter(warehouse_id=warehouse_id)

        if date_from:
            queryset = queryset.filter(movement_date__gte=date_from)

        if date_to:
            queryset = queryset.filter(movement_date__lte=date_to)

        movements = [StockLedgerService.serialize(m) for m in queryset.order_by("movement_date", "id")]

        return success_response({
            "item": {"id": item.id, "code": item.code, "name": item.name},
            "movements": movements,
            "count": len(movements),
        })

    @classmethod
    def get_stock_summary(cls, category: str = None, low_stock_only: bool = False) -> Dict[str, Any]:
        queryset = Item.objects.filter(is_active=True).annotate(
            current_stock=Sum("balances__quantity")
        )

        if category:
            queryset = queryset.filter(category=category)

        rows = []
        total_value = Decimal("0")
        for item in queryset.order_by("name"):
            current = item.current_stock or Decimal("0")
            is_low = item.reorder_level > 0 and current <= item.reorder_level
            if low_stock_only and not is_low:
                continue
            value = round_decimal(current * item.standard_cost)
            total_value += value
            rows.append({
                "item_id": item.id,
                "item_code": item.code,
                "item_name": item.name,
                "category": item.category,
                "unit_of_measure": item.unit_of_measure,
                "current_stock": str(current),
                "reorder_level": str(item.reorder_level),
                "standard_cost": str(item.standard_cost),
                "stock_value": str(value),
                "is_low_stock": is_low,
            })

        return success_response({
            "items": rows,
            "count": len(rows),
            "total_value": str(total_value),
        })

    @classmethod
    def get_low_stock(cls) -> Dict[str, Any]:
        return cls.get_stock_summary(low_stock_only=True)

    @classmethod
    def find_balance_drift(cls) -> List[Dict[str, Any]]:
        """Balances whose cached quantity differs from the signed movement sum."""
        sums = {
            (row["item_id"], row["warehouse_id"]): row["total"]
            for row in StockMovement.objects.values("item_id", "warehouse_id").annotate(
                total=Sum("quantity")
            )
        }

        drift = []
        for balance in StockBalance.objects.select_related("item", "warehouse"):
            expected = sums.pop((balance.item_id, balance.warehouse_id), Decimal("0"))
            if balance.quantity != expected:
                drift.append({
                    "item_id": balance.item_id,
                    "item_code": balance.item.code,
                    "warehouse_id": balance.warehouse_id,
                    "warehouse_code": balance.warehouse.code,
                    "cached": str(balance.quantity),
                    "from_movements": str(expected),
                })

        # Movements without any balance row
        for (item_id, warehouse_id), total in sums.items():
            drift.append({
                "item_id": item_id,
                "item_code": None,
                "warehouse_id": warehouse_id,
                "warehouse_code": None,
                "cached": None,
                "from_movements": str(total),
            })

        if drift:
            logger.warning("Stock ledger verification found %d drifting balance(s)", len(drift))
        return drift

    @classmethod
    def verify_balances(cls) -> Dict[str, Any]:
        drift = cls.find_balance_drift()
        return success_response({
            "is_consistent": not drift,
            "drift": drift,
            "checked": StockBalance.objects.count(),
        })
