from .enums import DocumentStage, TransactionType, ConditionOperator, EDITABLE_STAGES, COMMITTED_STAGES, TERMINAL_STAGES
from .catalog import Store, ProductCategory, Product
from .parties import User, Customer, Supplier
from .sales import Sale, SaleItem, PaymentType, Collection, CollectionLine
from .inventory import (
    StockBalance,
    ProductTransaction,
    ExpiryBatch,
    StockAdjustment,
    StockAdjustmentItem,
    PhysicalInventory,
    PhysicalInventoryItem,
    PhysicalStockSnapshot,
)
from .procurement import Purchase, PurchaseItem
from .totals import ImmutableRecordError

__all__ = [
    'DocumentStage', 'TransactionType', 'ConditionOperator',
    'EDITABLE_STAGES', 'COMMITTED_STAGES', 'TERMINAL_STAGES',
    'Store', 'ProductCategory', 'Product',
    'User', 'Customer', 'Supplier',
    'Sale', 'SaleItem', 'PaymentType', 'Collection', 'CollectionLine',
    'StockBalance', 'ProductTransaction', 'ExpiryBatch', 'StockAdjustment', 'StockAdjustmentItem',
    'PhysicalInventory', 'PhysicalInventoryItem', 'PhysicalStockSnapshot',
    'Purchase', 'PurchaseItem',
    'ImmutableRecordError',
]
