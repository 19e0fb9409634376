import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, Optional, List, Tuple

from django.db import transaction
from django.db.models import Q, Count, Sum, Min, Max
from django.utils import timezone

from stock.models import BillOfMaterials, Item, Production, StockMovement, Warehouse
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ServiceError, ValidationError, NotFoundError, BusinessRuleError,
    InvalidQuantityError, ItemNotFoundError, InsufficientStockError,
    StockConflictError, ConcurrentStockConflictError,
    parse_quantity, parse_id, parse_date_value, ledger_setting
)
from stock.services.bom_service import BomService, Requirement
from stock.services.ledger_service import StockLedgerService, MovementDraft
from stock.services.sequence_service import DocumentSequenceService
from stock.services.warehouse_service import WarehouseService

logger = logging.getLogger(__name__)

MovementType = StockMovement.MovementType


class ProductionStage(str, Enum):
    RECEIVED = "RECEIVED"
    EXPLODED = "EXPLODED"
    VALIDATED = "VALIDATED"
    COMMITTED = "COMMITTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class ProductionRequest:
    output_quantity: Decimal
    raw_materials_warehouse_id: int
    finished_goods_warehouse_id: int
    production_date: date
    bom_id: Optional[int] = None
    output_item_id: Optional[int] = None
    input_items: Tuple[Tuple[int, Decimal], ...] = ()
    remarks: str = ""
    user_id: Optional[int] = None

    @property
    def is_ad_hoc(self) -> bool:
        return self.bom_id is None

    @property
    def label(self) -> str:
        if self.is_ad_hoc:
            return f"item={self.output_item_id} (ad-hoc)"
        return f"bom={self.bom_id}"

    @classmethod
    def from_payload(cls, data: Dict[str, Any], user_id: int = None) -> "ProductionRequest":
        """
        Build a request from a JSON body.

        With ``bom_id`` the inputs come from exploding the BOM. Without it the
        production is ad-hoc and needs ``output_item_id`` plus ``input_items``,
        a list of ``{"item_id", "quantity"}`` consumed as given.

        ``warehouse_id`` is accepted as the finished-goods warehouse, and the
        raw-materials warehouse defaults to it when omitted.
        """
        if data.get("output_quantity") in (None, ""):
            raise ValidationError("output_quantity is required", "output_quantity")

        output_item_id = data.get("output_item_id")
        if output_item_id not in (None, ""):
            output_item_id = parse_id(output_item_id, "output_item_id")
        else:
            output_item_id = None

        bom_id = data.get("bom_id")
        if bom_id not in (None, ""):
            if data.get("input_items"):
                raise ValidationError("input_items cannot be combined with bom_id", "input_items")
            bom_id = parse_id(bom_id, "bom_id")
            input_items = ()
        elif output_item_id is None:
            raise ValidationError("bom_id or output_item_id is required", "bom_id")
        else:
            bom_id = None
            input_items = cls.parse_input_items(data.get("input_items"), output_item_id)

        finished_goods = data.get("finished_goods_warehouse_id")
        if finished_goods in (None, ""):
            finished_goods = data.get("warehouse_id")
        if finished_goods in (None, ""):
            raise ValidationError("finished_goods_warehouse_id is required", "finished_goods_warehouse_id")
        raw_materials = data.get("raw_materials_warehouse_id")
        if raw_materials in (None, ""):
            raw_materials = finished_goods

        return cls(
            bom_id=bom_id,
            output_item_id=output_item_id,
            input_items=input_items,
            output_quantity=parse_quantity(data["output_quantity"], "output_quantity"),
            raw_materials_warehouse_id=parse_id(raw_materials, "raw_materials_warehouse_id"),
            finished_goods_warehouse_id=parse_id(finished_goods, "finished_goods_warehouse_id"),
            production_date=parse_date_value(
                data.get("production_date"), "production_date", timezone.localdate()
            ),
            remarks=str(data.get("remarks") or ""),
            user_id=user_id,
        )

    @staticmethod
    def parse_input_items(value: Any, output_item_id: int) -> Tuple[Tuple[int, Decimal], ...]:
        if not value or not isinstance(value, list):
            raise ValidationError("input_items must list at least one input", "input_items")

        inputs = []
        for index, line in enumerate(value):
            if not isinstance(line, dict):
                raise ValidationError(f"input_items[{index}] must be an object", "input_items")
            item_id = parse_id(line.get("item_id"), f"input_items[{index}].item_id")
            if item_id == output_item_id:
                raise BusinessRuleError("The output item cannot be its own input", "no_self_reference")
            if any(item_id == seen for seen, _ in inputs):
                raise ValidationError("An item may appear only once in input_items", "input_items")
            inputs.append((item_id, parse_quantity(line.get("quantity"), f"input_items[{index}].quantity")))
        return tuple(inputs)


class ProductionRun:
    """Tracks one request through RECEIVED -> EXPLODED -> VALIDATED -> COMMITTED."""

    def __init__(self, request: ProductionRequest):
        self.request = request
        self.stage = ProductionStage.RECEIVED
        self.attempts = 0
        logger.info("Production request received: %s qty=%s raw=%s fg=%s",
                    request.label, request.output_quantity,
                    request.raw_materials_warehouse_id, request.finished_goods_warehouse_id)

    def advance(self, stage: ProductionStage, detail: str = ""):
        logger.info("Production %s qty=%s: %s -> %s %s",
                    self.request.label, self.request.output_quantity,
                    self.stage.value, stage.value, detail)
        self.stage = stage

    def reject(self, error: ServiceError):
        logger.warning("Production %s qty=%s rejected at %s: %s %s",
                       self.request.label, self.request.output_quantity,
                       self.stage.value, error.code, error.message)
        self.stage = ProductionStage.REJECTED


class ProductionService(BaseService):
    model = Production

    @classmethod
    def serialize(cls, production: Production, include_movements: bool = True) -> Dict[str, Any]:
        data = {
            "id": production.id,
            "uuid": str(production.uuid),
            "production_number": production.production_number,

            "bom_id": production.bom_id,
            "bom_number": production.bom.bom_number if production.bom else None,

            "output_item_id": production.output_item_id,
            "output_item": {
                "id": production.output_item.id,
                "code": production.output_item.code,
                "name": production.output_item.name,
                "unit_of_measure": production.output_item.unit_of_measure,
            },
            "output_quantity": str(production.output_quantity),

            "raw_materials_warehouse_id": production.raw_materials_warehouse_id,
            "raw_materials_warehouse": production.raw_materials_warehouse.code,
            "finished_goods_warehouse_id": production.finished_goods_warehouse_id,
            "finished_goods_warehouse": production.finished_goods_warehouse.code,

            "production_date": production.production_date.isoformat(),
            "remarks": production.remarks,
            "created_by_id": production.created_by_id,
            "created_at": production.created_at.isoformat(),
        }

        if include_movements:
            movements = [StockLedgerService.serialize(m) for m in production.movements]
            data["movements"] = movements
            data["movement_numbers"] = [m["movement_number"] for m in movements]

        return data

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             search: str = None,
             date_from: date = None,
             date_to: date = None,
             output_item_id: int = None,
             bom_id: int = None,
             warehouse_id: int = None,
             raw_materials_warehouse_id: int = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related(
            "bom", "output_item", "raw_materials_warehouse", "finished_goods_warehouse"
        )

        if search:
            queryset = queryset.filter(
                Q(production_number__icontains=search) |
                Q(output_item__name__icontains=search) |
                Q(output_item__code__icontains=search)
            )

        if date_from:
            queryset = queryset.filter(production_date__gte=date_from)

        if date_to:
            queryset = queryset.filter(production_date__lte=date_to)

        if output_item_id:
            queryset = queryset.filter(output_item_id=output_item_id)

        if bom_id:
            queryset = queryset.filter(bom_id=bom_id)

        if warehouse_id:
            queryset = queryset.filter(finished_goods_warehouse_id=warehouse_id)

        if raw_materials_warehouse_id:
            queryset = queryset.filter(raw_materials_warehouse_id=raw_materials_warehouse_id)

        queryset = queryset.order_by("-production_date", "-id")
        productions, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "productions": [cls.serialize(p, include_movements=False) for p in productions],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, production_id: int) -> Dict[str, Any]:
        production = cls.model.objects.select_related(
            "bom", "output_item", "raw_materials_warehouse", "finished_goods_warehouse"
        ).filter(id=production_id).first()
        if not production:
            raise NotFoundError("Production", production_id)

        return success_response({"production": cls.serialize(production)})

    @classmethod
    def get_summary_by_item(cls, date_from: date = None, date_to: date = None) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if date_from:
            queryset = queryset.filter(production_date__gte=date_from)

        if date_to:
            queryset = queryset.filter(production_date__lte=date_to)

        rows = queryset.values(
            "output_item_id", "output_item__code", "output_item__name"
        ).annotate(
            production_count=Count("id"),
            total_produced=Sum("output_quantity"),
            first_production=Min("production_date"),
            last_production=Max("production_date"),
        ).order_by("-total_produced", "output_item__code")

        return success_response({
            "items": [
                {
                    "item_id": row["output_item_id"],
                    "item_code": row["output_item__code"],
                    "item_name": row["output_item__name"],
                    "production_count": row["production_count"],
                    "total_produced": str(row["total_produced"]),
                    "first_production": row["first_production"].isoformat(),
                    "last_production": row["last_production"].isoformat(),
                }
                for row in rows
            ]
        })

    # ==================== ENGINE ====================

    @classmethod
    def find_shortfalls(cls, requirements: List[Requirement], warehouse_id: int) -> List[Dict[str, Any]]:
        balances = StockLedgerService.get_balances([r.item_id for r in requirements], warehouse_id)

        shortfalls = []
        for r in requirements:
            available = balances.get(r.item_id, Decimal("0"))
            if available < r.required_quantity:
                shortfalls.append({
                    "item_id": r.item_id,
                    "item_code": r.item_code,
                    "available": available,
                    "required": r.required_quantity,
                })
        return shortfalls

    @classmethod
    def resolve_ad_hoc(cls, request: ProductionRequest) -> Tuple[Item, List[Requirement]]:
        """Check the items of an ad-hoc request and turn its inputs into requirements."""
        output_item = BomService.validate_output_item(request.output_item_id)

        items = Item.objects.in_bulk([item_id for item_id, _ in request.input_items])
        missing = [item_id for item_id, _ in request.input_items if item_id not in items]
        if missing:
            raise ItemNotFoundError(missing[0])

        return output_item, [
            Requirement(
                item_id=item_id,
                item_code=items[item_id].code,
                item_name=items[item_id].name,
                required_quantity=quantity,
            )
            for item_id, quantity in request.input_items
        ]

    @classmethod
    def _commit(cls,
                request: ProductionRequest,
                bom: Optional[BillOfMaterials],
                output_item_id: int,
                requirements: List[Requirement],
                raw_materials: Warehouse,
                finished_goods: Warehouse) -> Production:
        drafts = [
            MovementDraft(
                item_id=r.item_id,
                warehouse_id=raw_materials.id,
                movement_type=MovementType.PRODUCTION_OUT,
                quantity=-r.required_quantity,
            )
            for r in requirements
        ]
        drafts.append(MovementDraft(
            item_id=output_item_id,
            warehouse_id=finished_goods.id,
            movement_type=MovementType.PRODUCTION_IN,
            quantity=request.output_quantity,
        ))

        with transaction.atomic():
            # Balances are locked and checked before the PROD and STK sequence rows
            balance_after = StockLedgerService.apply_balances(drafts, Production.REFERENCE_TYPE)

            production = cls.model.objects.create(
                production_number=DocumentSequenceService.next_number(DocumentSequenceService.PRODUCTION),
                bom=bom,
                output_item_id=output_item_id,
                output_quantity=request.output_quantity,
                raw_materials_warehouse=raw_materials,
                finished_goods_warehouse=finished_goods,
                production_date=request.production_date,
                remarks=request.remarks,
                created_by_id=request.user_id,
            )

            StockLedgerService.insert_movements(
                [
                    replace(d, remarks=f"{'Produced' if d.quantity > 0 else 'Consumed'} by "
                                       f"{production.production_number}")
                    for d in drafts
                ],
                balance_after,
                user_id=request.user_id,
                reference_type=Production.REFERENCE_TYPE,
                reference_id=production.id,
                reference_number=production.production_number,
                movement_date=request.production_date,
            )

        return production

    @classmethod
    def run(cls, request: ProductionRequest) -> Production:
        """
        Work out the inputs, check raw-material stock and commit the production.

        Inputs come from exploding the BOM, or are taken as given for an
        ad-hoc request. A commit the ledger rejects because stock moved since
        validation is re-validated and retried ``COMMIT_RETRIES`` times before
        failing with ConcurrentStockConflictError.
        """
        state = ProductionRun(request)
        try:
            if request.is_ad_hoc:
                bom = None
                output_item, requirements = cls.resolve_ad_hoc(request)
                output_item_id = output_item.id
            else:
                bom = BomService.load_active(request.bom_id)
                if request.output_item_id is not None and request.output_item_id != bom.output_item_id:
                    raise ValidationError(
                        f"BOM {bom.bom_number} produces item {bom.output_item_id}, not {request.output_item_id}",
                        "output_item_id"
                    )
                requirements = BomService.explode_bom(bom, request.output_quantity)
                output_item_id = bom.output_item_id
            if any(r.required_quantity <= 0 for r in requirements):
                raise InvalidQuantityError(request.output_quantity, "output_quantity")
            raw_materials = WarehouseService.get_active_or_raise(request.raw_materials_warehouse_id)
            finished_goods = WarehouseService.get_active_or_raise(request.finished_goods_warehouse_id)
            state.advance(ProductionStage.EXPLODED, f"{len(requirements)} requirement(s)")

            max_attempts = 1 + ledger_setting("COMMIT_RETRIES")
            while True:
                state.attempts += 1
                shortfalls = cls.find_shortfalls(requirements, raw_materials.id)
                if shortfalls:
                    raise InsufficientStockError(shortfalls)
                state.advance(ProductionStage.VALIDATED, f"attempt {state.attempts}")

                try:
                    production = cls._commit(
                        request, bom, output_item_id, requirements, raw_materials, finished_goods
                    )
                    break
                except StockConflictError as e:
                    if state.attempts >= max_attempts:
                        raise ConcurrentStockConflictError(state.attempts, e.conflicts) from e
                    logger.warning("Production %s: stock changed during commit, re-validating",
                                   request.label)
        except ServiceError as e:
            state.reject(e)
            raise

        state.advance(ProductionStage.COMMITTED, production.production_number)
        return production

    @classmethod
    def create(cls, data: Dict[str, Any], user_id: int = None) -> Dict[str, Any]:
        request = ProductionRequest.from_payload(data, user_id)
        production = cls.run(request)
        production = cls.model.objects.select_related(
            "bom", "output_item", "raw_materials_warehouse", "finished_goods_warehouse"
        ).get(id=production.id)

        return success_response({
            "id": production.id,
            "production": cls.serialize(production),
        }, f"Production {production.production_number} recorded")

    @classmethod
    def delete(cls, production_id: int, user_id: int = None) -> Dict[str, Any]:
        """
        Remove a production by reversing its stock effect.

        Compensating ADJUSTMENT movements return the consumed inputs and take
        the produced output back out; the original movements stay untouched.
        Fails without changes when the output has already been used.
        """
        with transaction.atomic():
            production = cls.model.objects.select_for_update().filter(id=production_id).first()
            if not production:
                raise NotFoundError("Production", production_id)

            drafts = [
                MovementDraft(
                    item_id=m.item_id,
                    warehouse_id=m.warehouse_id,
                    movement_type=MovementType.ADJUSTMENT,
                    quantity=-m.quantity,
                    remarks=f"Reversal of {m.movement_number}",
                )
                for m in production.movements
            ]

            if drafts:
                try:
                    StockLedgerService.append_movements(
                        drafts,
                        user_id=user_id,
                        reference_type="PRODUCTION_REVERSAL",
                        reference_id=production.id,
                        reference_number=production.production_number,
                    )
                except StockConflictError as e:
                    codes = dict(Item.objects.filter(
                        id__in=[c["item_id"] for c in e.conflicts]
                    ).values_list("id", "code"))
                    raise InsufficientStockError([
                        {**c, "item_code": codes.get(c["item_id"], str(c["item_id"]))}
                        for c in e.conflicts
                    ]) from e

            production_number = production.production_number
            production.delete()

        logger.info("Production %s deleted and reversed with %d movement(s)",
                    production_number, len(drafts))
        return success_response(
            {"reversal_movements": len(drafts)},
            f"Production {production_number} deleted"
        )
