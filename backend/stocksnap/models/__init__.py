from .auth import User, SessionToken
from .catalog import Product, Customer
from .ledger import StockMovement
from .sales import Sale, SaleItem

__all__ = [
    'User', 'SessionToken',
    'Product', 'Customer',
    'StockMovement',
    'Sale', 'SaleItem',
]
