"""
Append-only stock ledger.

Every change to on-hand stock is a StockMovement row; StockBalance is the
cached running sum per (item, warehouse). A batch is written in two phases
inside one transaction:

    ``apply_balances``
        1. locks the affected balance rows in sorted (item_id, warehouse_id) order
        2. rejects the whole batch if any balance would go negative
        3. applies the deltas with a compare-and-set UPDATE
    ``insert_movements``
        4. allocates STK numbers and inserts the movements

``append_movements`` runs both. Sequence rows are locked only after the batch
has passed the balance checks, so a rejected batch never waits on or holds a
sequence lock. Balance locks always come before sequence locks, so callers
that also allocate a document number (productions) cannot deadlock against
plain movement batches.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Any, Optional, List, Iterable, Tuple

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from stock.models import StockBalance, StockMovement, Item, Warehouse
from stock.services.base_service import (
    success_response,
    ValidationError, BusinessRuleError, ItemNotFoundError, WarehouseNotFoundError,
    InsufficientStockError, StockConflictError,
    parse_quantity, parse_id, parse_date_value, parse_amount, to_decimal, round_decimal
)
from stock.services.sequence_service import DocumentSequenceService

logger = logging.getLogger(__name__)

BalanceKey = Tuple[int, int]

MovementType = StockMovement.MovementType

# +1 must be positive, -1 must be negative, 0 either sign
SIGN_RULES = {
    MovementType.PURCHASE: 1,
    MovementType.SALE: -1,
    MovementType.PRODUCTION_IN: 1,
    MovementType.PRODUCTION_OUT: -1,
    MovementType.ADJUSTMENT: 0,
}

PRODUCTION_TYPES = {MovementType.PRODUCTION_IN, MovementType.PRODUCTION_OUT}


@dataclass(frozen=True)
class MovementDraft:
    item_id: int
    warehouse_id: int
    movement_type: str
    quantity: Decimal
    unit_cost: Optional[Decimal] = None
    remarks: str = ""

    @property
    def key(self) -> BalanceKey:
        return (self.item_id, self.warehouse_id)


class StockLedgerService:

    @classmethod
    def serialize(cls, movement: StockMovement) -> Dict[str, Any]:
        return {
            "id": movement.id,
            "uuid": str(movement.uuid),
            "movement_number": movement.movement_number,
            "movement_type": movement.movement_type,
            "movement_type_display": movement.get_movement_type_display(),

            "item_id": movement.item_id,
            "item_code": movement.item.code,
            "item_name": movement.item.name,
            "warehouse_id": movement.warehouse_id,
            "warehouse_code": movement.warehouse.code,

            "quantity": str(movement.quantity),
            "balance_after": str(movement.balance_after),
            "unit_cost": str(movement.unit_cost) if movement.unit_cost is not None else None,

            "reference_type": movement.reference_type,
            "reference_id": movement.reference_id,
            "reference_number": movement.reference_number,

            "movement_date": movement.movement_date.isoformat(),
            "remarks": movement.remarks,
            "created_by_id": movement.created_by_id,
            "created_at": movement.created_at.isoformat() if movement.created_at else None,
        }

    @classmethod
    def get_balance(cls, item_id: int, warehouse_id: int) -> Decimal:
        quantity = StockBalance.objects.filter(
            item_id=item_id, warehouse_id=warehouse_id
        ).values_list("quantity", flat=True).first()
        return quantity if quantity is not None else Decimal("0")

    @classmethod
    def get_balances(cls, item_ids: Iterable[int], warehouse_id: int) -> Dict[int, Decimal]:
        return dict(
            StockBalance.objects.filter(
                item_id__in=list(item_ids), warehouse_id=warehouse_id
            ).values_list("item_id", "quantity")
        )

    @classmethod
    def recompute_balance(cls, item_id: int, warehouse_id: int) -> Decimal:
        total = StockMovement.objects.filter(
            item_id=item_id, warehouse_id=warehouse_id
        ).aggregate(total=Sum("quantity"))["total"]
        return total if total is not None else Decimal("0")

    @classmethod
    def validate_draft(cls, draft: MovementDraft):
        if draft.movement_type not in SIGN_RULES:
            valid_types = [c[0] for c in MovementType.choices]
            raise ValidationError(f"Invalid movement type. Valid: {valid_types}", "movement_type")

        quantity = to_decimal(draft.quantity)
        if quantity == 0:
            raise ValidationError("Movement quantity cannot be zero", "quantity")

        sign = SIGN_RULES[draft.movement_type]
        if sign > 0 and quantity < 0 or sign < 0 and quantity > 0:
            raise ValidationError(
                f"{draft.movement_type} movements must be {'positive' if sign > 0 else 'negative'}",
                "quantity"
            )

    @classmethod
    def lock_balances(cls, keys: Iterable[BalanceKey]) -> Dict[BalanceKey, StockBalance]:
        """
        Create missing balance rows and lock every row for the rest of the
        current transaction. Keys are locked in sorted order.
        """
        locked = {}
        for item_id, warehouse_id in sorted(set(keys)):
            StockBalance.objects.get_or_create(item_id=item_id, warehouse_id=warehouse_id)
            locked[(item_id, warehouse_id)] = StockBalance.objects.select_for_update().get(
                item_id=item_id, warehouse_id=warehouse_id
            )
        return locked

    @classmethod
    def apply_balances(cls,
                       drafts: List[MovementDraft],
                       reference_type: str = "",
                       reference_number: str = "") -> List[Decimal]:
        """
        Lock the balances ``drafts`` touch and apply their deltas.

        Must run inside ``transaction.atomic`` together with the matching
        ``insert_movements`` call. Returns the balance after each draft.
        Raises StockConflictError listing every (item, warehouse) whose
        balance would drop below zero; nothing is written in that case.
        """
        if not drafts:
            raise ValidationError("A movement batch needs at least one movement", "movements")
        for draft in drafts:
            cls.validate_draft(draft)

        balances = cls.lock_balances(d.key for d in drafts)
        opening = {key: balance.quantity for key, balance in balances.items()}

        running = dict(opening)
        balance_after = []
        conflicts = {}
        for draft in drafts:
            running[draft.key] = round_decimal(running[draft.key] + draft.quantity)
            balance_after.append(running[draft.key])
            if running[draft.key] < 0 and draft.key not in conflicts:
                conflicts[draft.key] = {
                    "item_id": draft.item_id,
                    "warehouse_id": draft.warehouse_id,
                    "available": opening[draft.key],
                }

        if conflicts:
            for key, conflict in conflicts.items():
                conflict["required"] = -sum(
                    (d.quantity for d in drafts if d.key == key and d.quantity < 0),
                    Decimal("0")
                )
            logger.warning(
                "Ledger rejected batch %s %s: %d negative balance(s)",
                reference_type or "MANUAL", reference_number, len(conflicts)
            )
            raise StockConflictError(list(conflicts.values()))

        now = timezone.now()
        for key, balance in balances.items():
            if running[key] == opening[key]:
                continue
            updated = StockBalance.objects.filter(
                pk=balance.pk, quantity=opening[key]
            ).update(quantity=running[key], last_movement_at=now)
            if updated != 1:
                # Row changed under us; only possible where row locks are not enforced
                raise StockConflictError([{
                    "item_id": key[0],
                    "warehouse_id": key[1],
                    "available": cls.get_balance(*key),
                    "required": -sum(
                        (d.quantity for d in drafts if d.key == key and d.quantity < 0),
                        Decimal("0")
                    ),
                }])

        return balance_after

    @classmethod
    def insert_movements(cls,
                         drafts: List[MovementDraft],
                         balance_after: List[Decimal],
                         user_id: int = None,
                         reference_type: str = "",
                         reference_id: int = None,
                         reference_number: str = "",
                         movement_date: date = None) -> List[StockMovement]:
        """Number and insert the movements whose deltas ``apply_balances`` applied."""
        numbers = DocumentSequenceService.next_numbers(
            DocumentSequenceService.STOCK_MOVEMENT, len(drafts)
        )
        movements = StockMovement.objects.bulk_create([
            StockMovement(
                movement_number=number,
                item_id=draft.item_id,
                warehouse_id=draft.warehouse_id,
                movement_type=draft.movement_type,
                quantity=round_decimal(draft.quantity),
                balance_after=after,
                unit_cost=draft.unit_cost,
                reference_type=reference_type,
                reference_id=reference_id,
                reference_number=reference_number,
                movement_date=movement_date or timezone.localdate(),
                remarks=draft.remarks,
                created_by_id=user_id,
            )
            for number, draft, after in zip(numbers, drafts, balance_after)
        ])

        logger.info(
            "Ledger recorded %d movement(s) %s..%s for %s %s",
            len(movements), numbers[0], numbers[-1], reference_type or "MANUAL", reference_number
        )
        return movements

    @classmethod
    def append_movements(cls,
                         drafts: List[MovementDraft],
                         user_id: int = None,
                         reference_type: str = "",
                         reference_id: int = None,
                         reference_number: str = "",
                         movement_date: date = None) -> List[StockMovement]:
        """
        Record ``drafts`` as one all-or-nothing batch.

        Raises StockConflictError listing every (item, warehouse) whose
        balance would drop below zero; nothing is written in that case.
        """
        with transaction.atomic():
            balance_after = cls.apply_balances(drafts, reference_type, reference_number)
            return cls.insert_movements(
                drafts,
                balance_after,
                user_id=user_id,
                reference_type=reference_type,
                reference_id=reference_id,
                reference_number=reference_number,
                movement_date=movement_date,
            )

    @classmethod
    def post_movement(cls,
                      item_id: Any,
                      warehouse_id: Any,
                      movement_type: str,
                      quantity: Any,
                      unit_cost: Any = None,
                      movement_date: Any = None,
                      remarks: str = "",
                      reference_number: str = "",
                      user_id: int = None) -> Dict[str, Any]:
        """
        Record a single PURCHASE, SALE or ADJUSTMENT movement.

        PURCHASE and SALE take a positive quantity and are signed here;
        ADJUSTMENT takes a signed quantity. Production movements are written
        only by the production engine.
        """
        if movement_type in PRODUCTION_TYPES:
            raise BusinessRuleError(
                "Production movements can only be recorded by a production",
                "production_movements_reserved"
            )
        if movement_type not in SIGN_RULES:
            valid_types = [t for t in SIGN_RULES if t not in PRODUCTION_TYPES]
            raise ValidationError(f"Invalid movement type. Valid: {valid_types}", "movement_type")

        is_adjustment = movement_type == MovementType.ADJUSTMENT
        quantity = parse_quantity(quantity, "quantity", allow_negative=is_adjustment)
        if not is_adjustment and quantity < 0:
            raise ValidationError(f"{movement_type} quantity must be positive", "quantity")
        if SIGN_RULES[movement_type] < 0:
            quantity = -quantity

        item_id = parse_id(item_id, "item_id")
        warehouse_id = parse_id(warehouse_id, "warehouse_id")
        item = Item.objects.filter(id=item_id, is_active=True).first()
        if not item:
            raise ItemNotFoundError(item_id)
        if not Warehouse.objects.filter(id=warehouse_id, is_active=True).exists():
            raise WarehouseNotFoundError(warehouse_id)

        if unit_cost not in (None, ""):
            unit_cost = parse_amount(unit_cost, "unit_cost")
        else:
            unit_cost = None

        draft = MovementDraft(
            item_id=item_id,
            warehouse_id=warehouse_id,
            movement_type=movement_type,
            quantity=quantity,
            unit_cost=unit_cost,
            remarks=remarks or "",
        )
        try:
            movement, = cls.append_movements(
                [draft],
                user_id=user_id,
                reference_type="MANUAL",
                reference_number=reference_number or "",
                movement_date=parse_date_value(movement_date, "movement_date"),
            )
        except StockConflictError as e:
            conflict = e.conflicts[0]
            raise InsufficientStockError([{
                "item_id": item.id,
                "item_code": item.code,
                "available": conflict["available"],
                "required": conflict["required"],
            }]) from e

        movement = StockMovement.objects.select_related("item", "warehouse").get(
            movement_number=movement.movement_number
        )
        return success_response(
            {"movement": cls.serialize(movement)},
            f"Movement {movement.movement_number} recorded"
        )
