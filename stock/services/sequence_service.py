import logging
from datetime import date
from typing import List

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from stock.models import DocumentSequence

logger = logging.getLogger(__name__)


class DocumentSequenceService:
    """
    Allocates PREFIX-YEAR-NNNN document numbers from a locked counter row.

    The increment belongs to the caller's transaction: a rollback hands the
    numbers back, so committed numbers have no gaps. Never derive the next
    number from MAX() over the documents themselves.
    """

    STOCK_MOVEMENT = "STK"
    PRODUCTION = "PROD"
    BOM = "BOM"

    @staticmethod
    def format_number(prefix: str, year: int, value: int) -> str:
        return f"{prefix}-{year}-{value:04d}"

    @classmethod
    @transaction.atomic
    def next_numbers(cls, prefix: str, count: int = 1, on_date: date = None) -> List[str]:
        if count < 1:
            return []
        year = (on_date or timezone.localdate()).year

        counter, _ = DocumentSequence.objects.select_for_update().get_or_create(
            prefix=prefix, year=year
        )
        first = counter.last_value + 1
        DocumentSequence.objects.filter(pk=counter.pk).update(
            last_value=F("last_value") + count
        )

        numbers = [cls.format_number(prefix, year, value) for value in range(first, first + count)]
        logger.debug("Allocated %s %s..%s", prefix, numbers[0], numbers[-1])
        return numbers

    @classmethod
    def next_number(cls, prefix: str, on_date: date = None) -> str:
        return cls.next_numbers(prefix, 1, on_date)[0]

    @classmethod
    def current_value(cls, prefix: str, year: int = None) -> int:
        year = year or timezone.localdate().year
        counter = DocumentSequence.objects.filter(prefix=prefix, year=year).first()
        return counter.last_value if counter else 0
