from .tenancy import Branch
from .auth import User
from .inventory import Product, StockMovement, ImmutableMovementError
from .customers import Customer
from .sales import Sale, SaleItem, Receipt

__all__ = [
    'Branch',
    'User',
    'Product', 'StockMovement', 'ImmutableMovementError',
    'Customer',
    'Sale', 'SaleItem', 'Receipt',
]
