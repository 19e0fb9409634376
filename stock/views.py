import json
import logging

from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from stock.services import (
    ServiceError, ValidationError, NotFoundError, BusinessRuleError,
    InsufficientStockError, StockConflictError, ConcurrentStockConflictError,
    ImmutableRecordError,
    ItemService, WarehouseService, BomService,
    StockLedgerService, StockQueryService, ProductionService,
)
from stock.services.base_service import parse_date_value

logger = logging.getLogger(__name__)

CONFLICT_ERRORS = (
    InsufficientStockError, StockConflictError, ConcurrentStockConflictError, ImmutableRecordError,
)


def error_response(message: str, code: str = "ERROR", status: int = 400, details: dict = None):
    data = {"success": False, "error": {"code": code, "message": message}}
    if details:
        data["error"]["details"] = details
    return JsonResponse(data, status=status)


def handle_service_error(e: Exception):
    if isinstance(e, NotFoundError):
        return error_response(e.message, e.code, 404, e.details)
    elif isinstance(e, ValidationError):
        details = dict(e.details)
        if e.field:
            details["field"] = e.field
        return error_response(e.message, e.code, 400, details)
    elif isinstance(e, CONFLICT_ERRORS):
        return error_response(e.message, e.code, 409, e.details)
    elif isinstance(e, (BusinessRuleError, ServiceError)):
        return error_response(e.message, e.code, 400, e.details)
    else:
        logger.exception("Unhandled error in stock API")
        return error_response("Internal server error", "SERVER_ERROR", 500)


class BaseStockView(View):
    @method_decorator(csrf_exempt)
    def dispatch(self, request, *args, **kwargs):
        return super().dispatch(request, *args, **kwargs)

    def get_json_body(self, request):
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except json.JSONDecodeError:
            raise ValidationError("Request body must be valid JSON", "body")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object", "body")
        return data

    def get_user_id(self, request):
        if request.user.is_authenticated:
            return request.user.id
        return None

    def get_int(self, request, name: str, default: int = None):
        value = request.GET.get(name)
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            raise ValidationError(f"{name} must be an integer", name)

    def get_bool(self, request, name: str, default: bool = None):
        value = request.GET.get(name)
        if value is None or value == "":
            return default
        return value.lower() in ("1", "true", "yes")

    def get_date(self, request, name: str):
        return parse_date_value(request.GET.get(name), name)

    def success(self, data: dict, status: int = 200):
        return JsonResponse({"success": True, **data}, status=status)


# ==================== ITEMS ====================

class ItemListView(BaseStockView):

    def get(self, request):
        try:
            result = ItemService.list(
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 50),
                search=request.GET.get("search"),
                category=request.GET.get("category"),
                is_raw_material=self.get_bool(request, "is_raw_material"),
                is_finished_good=self.get_bool(request, "is_finished_good"),
                include_inactive=self.get_bool(request, "include_inactive", False),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = ItemService.create(
                code=data.pop("code", None),
                name=data.pop("name", None),
                **data
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class ItemCategoryView(BaseStockView):

    def get(self, request):
        try:
            return self.success(ItemService.get_categories())
        except Exception as e:
            return handle_service_error(e)


class ItemDetailView(BaseStockView):

    def get(self, request, item_id):
        try:
            return self.success(ItemService.get(item_id))
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, item_id):
        try:
            data = self.get_json_body(request)
            data.pop("item_id", None)
            return self.success(ItemService.update(item_id, **data))
        except Exception as e:
            return handle_service_error(e)

    def delete(self, request, item_id):
        try:
            return self.success(ItemService.deactivate(item_id))
        except Exception as e:
            return handle_service_error(e)


class ItemStockView(BaseStockView):

    def get(self, request, item_id):
        try:
            return self.success(ItemService.get_stock_by_warehouse(item_id))
        except Exception as e:
            return handle_service_error(e)


class ItemBomView(BaseStockView):

    def get(self, request, item_id):
        try:
            return self.success(BomService.get_for_item(item_id))
        except Exception as e:
            return handle_service_error(e)


class ItemLedgerView(BaseStockView):

    def get(self, request, item_id):
        try:
            result = StockQueryService.get_item_ledger(
                item_id,
                warehouse_id=self.get_int(request, "warehouse_id"),
                date_from=self.get_date(request, "date_from"),
                date_to=self.get_date(request, "date_to"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== WAREHOUSES ====================

class WarehouseListView(BaseStockView):

    def get(self, request):
        try:
            result = WarehouseService.list(
                include_inactive=self.get_bool(request, "include_inactive", False),
                search=request.GET.get("search"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = WarehouseService.create(
                code=data.get("code"),
                name=data.get("name"),
                location=data.get("location", ""),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class WarehouseDetailView(BaseStockView):

    def get(self, request, warehouse_id):
        try:
            return self.success(WarehouseService.get(warehouse_id))
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, warehouse_id):
        try:
            data = self.get_json_body(request)
            data.pop("warehouse_id", None)
            return self.success(WarehouseService.update(warehouse_id, **data))
        except Exception as e:
            return handle_service_error(e)

    def delete(self, request, warehouse_id):
        try:
            return self.success(WarehouseService.deactivate(warehouse_id))
        except Exception as e:
            return handle_service_error(e)


# ==================== BOMS ====================

class BomListView(BaseStockView):

    def get(self, request):
        try:
            result = BomService.list(
                active_only=self.get_bool(request, "active", False),
                output_item_id=self.get_int(request, "output_item_id"),
                search=request.GET.get("search"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = BomService.create(
                name=data.get("name"),
                output_item_id=data.get("output_item_id"),
                output_quantity=data.get("output_quantity"),
                lines=data.get("lines"),
                description=data.get("description", ""),
                user_id=self.get_user_id(request),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class BomDetailView(BaseStockView):

    def get(self, request, bom_id):
        try:
            return self.success(BomService.get(bom_id))
        except Exception as e:
            return handle_service_error(e)

    def put(self, request, bom_id):
        try:
            data = self.get_json_body(request)
            allowed = {k: v for k, v in data.items()
                       if k in ("name", "output_item_id", "output_quantity", "description", "lines")}
            return self.success(BomService.update(bom_id, **allowed))
        except Exception as e:
            return handle_service_error(e)

    def delete(self, request, bom_id):
        try:
            return self.success(BomService.delete(bom_id))
        except Exception as e:
            return handle_service_error(e)


class BomToggleActiveView(BaseStockView):

    def post(self, request, bom_id):
        try:
            return self.success(BomService.toggle_active(bom_id))
        except Exception as e:
            return handle_service_error(e)


class BomExplodeView(BaseStockView):

    def get(self, request, bom_id):
        try:
            return self.success(BomService.get_explosion(bom_id, request.GET.get("quantity")))
        except Exception as e:
            return handle_service_error(e)


class BomAvailabilityView(BaseStockView):

    def get(self, request, bom_id):
        try:
            warehouse_id = self.get_int(request, "warehouse_id")
            if warehouse_id is None:
                raise ValidationError("warehouse_id is required", "warehouse_id")
            result = BomService.check_availability(bom_id, request.GET.get("quantity"), warehouse_id)
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


# ==================== BALANCES & MOVEMENTS ====================

class BalanceListView(BaseStockView):

    def get(self, request):
        try:
            result = StockQueryService.list_balances(
                warehouse_id=self.get_int(request, "warehouse_id"),
                item_id=self.get_int(request, "item_id"),
                include_zero=self.get_bool(request, "include_zero", False),
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 50),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class BalanceItemView(BaseStockView):

    def get(self, request, item_id):
        try:
            return self.success(StockQueryService.get_total_balance(item_id))
        except Exception as e:
            return handle_service_error(e)


class BalanceDetailView(BaseStockView):

    def get(self, request, item_id, warehouse_id):
        try:
            return self.success(StockQueryService.get_balance(item_id, warehouse_id))
        except Exception as e:
            return handle_service_error(e)


class MovementListView(BaseStockView):

    def get(self, request):
        try:
            result = StockQueryService.list_movements(
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 50),
                item_id=self.get_int(request, "item_id"),
                warehouse_id=self.get_int(request, "warehouse_id"),
                movement_type=request.GET.get("movement_type"),
                reference_type=request.GET.get("reference_type"),
                reference_id=self.get_int(request, "reference_id"),
                date_from=self.get_date(request, "date_from"),
                date_to=self.get_date(request, "date_to"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = StockLedgerService.post_movement(
                item_id=data.get("item_id"),
                warehouse_id=data.get("warehouse_id"),
                movement_type=data.get("movement_type"),
                quantity=data.get("quantity"),
                unit_cost=data.get("unit_cost"),
                movement_date=data.get("movement_date"),
                remarks=data.get("remarks", ""),
                reference_number=data.get("reference_number", ""),
                user_id=self.get_user_id(request),
            )
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class StockSummaryView(BaseStockView):

    def get(self, request):
        try:
            result = StockQueryService.get_stock_summary(category=request.GET.get("category"))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class LowStockView(BaseStockView):

    def get(self, request):
        try:
            return self.success(StockQueryService.get_low_stock())
        except Exception as e:
            return handle_service_error(e)


class LedgerVerifyView(BaseStockView):

    def get(self, request):
        try:
            return self.success(StockQueryService.verify_balances())
        except Exception as e:
            return handle_service_error(e)


# ==================== PRODUCTIONS ====================

class ProductionListView(BaseStockView):

    def get(self, request):
        try:
            result = ProductionService.list(
                page=self.get_int(request, "page", 1),
                per_page=self.get_int(request, "per_page", 20),
                search=request.GET.get("search"),
                date_from=self.get_date(request, "start_date"),
                date_to=self.get_date(request, "end_date"),
                output_item_id=self.get_int(request, "output_item_id"),
                bom_id=self.get_int(request, "bom_id"),
                warehouse_id=self.get_int(request, "warehouse_id"),
                raw_materials_warehouse_id=self.get_int(request, "raw_materials_warehouse_id"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)

    def post(self, request):
        try:
            data = self.get_json_body(request)
            result = ProductionService.create(data, user_id=self.get_user_id(request))
            return self.success(result, 201)
        except Exception as e:
            return handle_service_error(e)


class ProductionDetailView(BaseStockView):

    def get(self, request, production_id):
        try:
            return self.success(ProductionService.get(production_id))
        except Exception as e:
            return handle_service_error(e)

    def delete(self, request, production_id):
        try:
            result = ProductionService.delete(production_id, user_id=self.get_user_id(request))
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)


class ProductionSummaryView(BaseStockView):

    def get(self, request):
        try:
            result = ProductionService.get_summary_by_item(
                date_from=self.get_date(request, "start_date"),
                date_to=self.get_date(request, "end_date"),
            )
            return self.success(result)
        except Exception as e:
            return handle_service_error(e)
