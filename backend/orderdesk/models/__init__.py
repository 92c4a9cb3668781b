from .delivery import DeliverySettings, DayCounter
from .orders import Order
from .customers import Customer
from .inventory import Product, ProductVariant, InventoryMovement
from .ledger import LedgerEvent

__all__ = [
    'DeliverySettings', 'DayCounter',
    'Order',
    'Customer',
    'Product', 'ProductVariant', 'InventoryMovement',
    'LedgerEvent',
]
