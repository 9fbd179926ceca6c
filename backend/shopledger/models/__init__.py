from .auth import User, SessionToken
from .catalog import Product, ProductCost
from .customers import Customer, CustomerBalanceEvent, Transaction
from .sales import Sale, SaleLine
from .documents import SaleReturn, SaleReturnLine, DocumentSequence
from .communications import Task
from .activity import ActivityLog
from .settings import AppSettings

__all__ = [
    'User', 'SessionToken',
    'Product', 'ProductCost',
    'Customer', 'CustomerBalanceEvent', 'Transaction',
    'Sale', 'SaleLine',
    'SaleReturn', 'SaleReturnLine', 'DocumentSequence',
    'Task',
    'ActivityLog',
    'AppSettings',
]
