from .auth import User, SessionToken
from .catalog import Warehouse, Product, Presentation
from .inventory import StockLevel, InventoryMovement, Notification
from .sales import Sale, SaleItem, Order, OrderItem, ProductReturn
from .cash import CashDrawer, CashSession, CashMovement
from .expenses import Expense, Purchase, PurchaseItem, Loan, LoanPayment

__all__ = [
    'User', 'SessionToken',
    'Warehouse', 'Product', 'Presentation',
    'StockLevel', 'InventoryMovement', 'Notification',
    'Sale', 'SaleItem', 'Order', 'OrderItem', 'ProductReturn',
    'CashDrawer', 'CashSession', 'CashMovement',
    'Expense', 'Purchase', 'PurchaseItem', 'Loan', 'LoanPayment',
]
