from .catalog import Category, Product
from .inventory import StockMovement
from .registers import CashRegisterSession, CashTransaction
from .sales import Sale, SaleItem
from .employees import Employee

__all__ = [
    'Category', 'Product',
    'StockMovement',
    'CashRegisterSession', 'CashTransaction',
    'Sale', 'SaleItem',
    'Employee',
]
