from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime

from django.conf import settings
from django.db.models import Model
from django.utils.dateparse import parse_date


LEDGER_DEFAULTS = {
    "COMMIT_RETRIES": 1,
    "QUANTITY_PLACES": 4,
    "DEFAULT_UNIT_OF_MEASURE": "Nos",
    "MAX_PAGE_SIZE": 100,
}


# Quantity columns are decimal(15, 4)
MAX_QUANTITY = Decimal("1e11")


def ledger_setting(name: str) -> Any:
    return getattr(settings, "STOCK_LEDGER", {}).get(name, LEDGER_DEFAULTS[name])


# ==================== ERRORS ====================

class ServiceError(Exception):
    code = "ERROR"

    def __init__(self, message: str, code: str = None, details: Dict = None):
        self.message = message
        self.code = code or self.code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, details=details)
        self.field = field


class NotFoundError(ServiceError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            details={"resource": resource, "identifier": str(identifier)}
        )


class BusinessRuleError(ServiceError):
    code = "BUSINESS_RULE_VIOLATION"

    def __init__(self, message: str, rule: str = None):
        super().__init__(message, details={"rule": rule})


class BomNotFoundError(NotFoundError):
    code = "BOM_NOT_FOUND"

    def __init__(self, bom_id: Any):
        super().__init__("Active BOM", bom_id)


class WarehouseNotFoundError(NotFoundError):
    code = "WAREHOUSE_NOT_FOUND"

    def __init__(self, warehouse_id: Any):
        super().__init__("Active warehouse", warehouse_id)


class ItemNotFoundError(NotFoundError):
    code = "ITEM_NOT_FOUND"

    def __init__(self, item_id: Any):
        super().__init__("Item", item_id)


class InvalidQuantityError(ValidationError):
    code = "INVALID_QUANTITY"

    def __init__(self, value: Any, field: str = "quantity"):
        super().__init__(
            f"{field} must be a number greater than zero, got {value!r}",
            field=field,
            details={"value": str(value)}
        )


class EmptyRecipeError(BusinessRuleError):
    code = "EMPTY_RECIPE"

    def __init__(self, bom_number: str):
        super().__init__(f"BOM {bom_number} has no input lines", rule="bom_has_lines")


class InsufficientStockError(ServiceError):
    """Raised with every shortfall found, not just the first one."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, shortfalls: List[Dict[str, Any]]):
        self.shortfalls = shortfalls
        names = ", ".join(s["item_code"] for s in shortfalls)
        super().__init__(
            f"Insufficient stock for {names}",
            details={"shortfalls": [
                {**s, "available": str(s["available"]), "required": str(s["required"])}
                for s in shortfalls
            ]}
        )


class StockConflictError(ServiceError):
    """The ledger refused a batch because a balance would go negative."""

    code = "STOCK_CONFLICT"

    def __init__(self, conflicts: List[Dict[str, Any]]):
        self.conflicts = conflicts
        super().__init__(
            f"Movement batch would drive {len(conflicts)} balance(s) negative",
            details={"conflicts": [
                {k: str(v) if isinstance(v, Decimal) else v for k, v in c.items()}
                for c in conflicts
            ]}
        )


class ConcurrentStockConflictError(ServiceError):
    code = "CONCURRENT_STOCK_CONFLICT"

    def __init__(self, attempts: int, conflicts: List[Dict[str, Any]] = None):
        super().__init__(
            f"Stock changed concurrently; production rejected after {attempts} attempt(s)",
            details={"attempts": attempts, "conflicts": [
                {k: str(v) if isinstance(v, Decimal) else v for k, v in c.items()}
                for c in conflicts or []
            ]}
        )


class ImmutableRecordError(ServiceError):
    code = "IMMUTABLE_RECORD"


# ==================== HELPERS ====================

def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def paginate_queryset(queryset, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page)
    per_page = min(max(1, per_page), ledger_setting("MAX_PAGE_SIZE"))

    total = queryset.count()
    total_pages = (total + per_page - 1) // per_page

    offset = (page - 1) * per_page
    items = list(queryset[offset:offset + per_page])

    return items, {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def round_decimal(value: Decimal, places: int = None) -> Decimal:
    if value is None:
        return Decimal("0")
    if places is None:
        places = ledger_setting("QUANTITY_PLACES")
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def parse_quantity(value: Any, field: str = "quantity", allow_negative: bool = False) -> Decimal:
    """
    Parse a client-supplied quantity into a rounded Decimal.

    Floats are converted through ``str`` so 0.1 stays 0.1. Zero is never
    accepted; negatives only when ``allow_negative`` is set.
    """
    if value is None or isinstance(value, bool) or value == "":
        raise InvalidQuantityError(value, field)
    try:
        quantity = Decimal(str(value))
        if not quantity.is_finite() or abs(quantity) >= MAX_QUANTITY:
            raise InvalidQuantityError(value, field)
        quantity = round_decimal(quantity)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidQuantityError(value, field)

    if quantity == 0 or (quantity < 0 and not allow_negative):
        raise InvalidQuantityError(value, field)
    return quantity


def parse_amount(value: Any, field: str) -> Decimal:
    """Parse a non-negative cost, price or stock level."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a non-negative number", field)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a non-negative number", field)
    if not amount.is_finite() or amount < 0 or amount >= MAX_QUANTITY:
        raise ValidationError(f"{field} must be a non-negative number", field)
    return round_decimal(amount)


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes"):
            return True
        if lowered in ("0", "false", "no"):
            return False
    raise ValidationError(f"{field} must be true or false", field)


def parse_id(value: Any, field: str) -> int:
    """Accept ints, integral floats and digit strings. Never truncates."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id", field=field)
    if isinstance(value, (float, Decimal)):
        try:
            integral = int(value)
        except (ValueError, OverflowError, InvalidOperation):
            raise ValidationError(f"{field} must be an integer id", field=field)
        if integral != value:
            raise ValidationError(f"{field} must be an integer id", field=field)
        return integral
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValidationError(f"{field} must be an integer id", field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id", field=field)


def parse_date_value(value: Any, field: str, default: date = None) -> Optional[date]:
    if value in (None, ""):
        return default
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format", field=field)
    return parsed


class BaseService:
    model = None

    @classmethod
    def get_by_id(cls, id: int) -> Optional[Model]:
        try:
            return cls.model.objects.get(id=id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            return None

    @classmethod
    def get_or_404(cls, id: int) -> Model:
        obj = cls.get_by_id(id)
        if not obj:
            raise NotFoundError(cls.model.__name__, id)
        return obj

    @classmethod
    def exists(cls, id: int) -> bool:
        return cls.model.objects.filter(id=id).exists()

    @classmethod
    def get_active(cls):
        if hasattr(cls.model, 'is_active'):
            return cls.model.objects.filter(is_active=True)
        return cls.model.objects.all()
