"""
Stock Services - inventory ledger and BOM production business logic

Usage:
    from stock.services import ItemService, StockLedgerService, ProductionService

    # Receive stock
    StockLedgerService.post_movement(item_id=1, warehouse_id=1, movement_type="PURCHASE", quantity=100)

    # Produce 12.5 units with BOM 3, consuming from warehouse 1 into warehouse 2
    ProductionService.create({
        "bom_id": 3,
        "output_quantity": "12.5",
        "raw_materials_warehouse_id": 1,
        "finished_goods_warehouse_id": 2,
    })
"""

# Base utilities
from stock.services.base_service import (
    ServiceError,
    ValidationError,
    NotFoundError,
    BusinessRuleError,
    BomNotFoundError,
    WarehouseNotFoundError,
    ItemNotFoundError,
    InvalidQuantityError,
    EmptyRecipeError,
    InsufficientStockError,
    StockConflictError,
    ConcurrentStockConflictError,
    ImmutableRecordError,
    success_response,
    paginate_queryset,
    to_decimal,
    round_decimal,
    parse_quantity,
    ledger_setting,
    BaseService,
)
from .sequence_service import DocumentSequenceService

# Registries
from .item_service import ItemService
from .warehouse_service import WarehouseService
from .bom_service import BomService, Requirement

# Ledger
from .ledger_service import StockLedgerService, MovementDraft
from .query_service import StockQueryService

# Production
from .production_service import (
    ProductionService,
    ProductionRequest,
    ProductionStage,
)


__all__ = [
    # Base
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "BusinessRuleError",
    "BomNotFoundError",
    "WarehouseNotFoundError",
    "ItemNotFoundError",
    "InvalidQuantityError",
    "EmptyRecipeError",
    "InsufficientStockError",
    "StockConflictError",
    "ConcurrentStockConflictError",
    "ImmutableRecordError",
    "success_response",
    "paginate_queryset",
    "to_decimal",
    "round_decimal",
    "parse_quantity",
    "ledger_setting",
    "BaseService",
    "DocumentSequenceService",

    # Registries
    "ItemService",
    "WarehouseService",
    "BomService",
    "Requirement",

    # Ledger
    "StockLedgerService",
    "MovementDraft",
    "StockQueryService",

    # Production
    "ProductionService",
    "ProductionRequest",
    "ProductionStage",
]
