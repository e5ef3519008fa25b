from .tenancy import Tenant, Branch
from .auth import User, SessionToken
from .catalog import Professional, Service, Client, BusinessHours
from .scheduling import Appointment
from .inventory import StockCategory, StockProduct, StockSale
from .purchasing import Supplier, SupplierProduct, Expense
from .security import SecurityEvent, AdminCredential, PendingAction

__all__ = [
    'Tenant', 'Branch',
    'User', 'SessionToken',
    'Professional', 'Service', 'Client', 'BusinessHours',
    'Appointment',
    'StockCategory', 'StockProduct', 'StockSale',
    'Supplier', 'SupplierProduct', 'Expense',
    'SecurityEvent', 'AdminCredential', 'PendingAction',
]
