from .catalog import Product
from .auth import User, SessionToken
from .orders import CartItem, Order, OrderItem
from .ledger import Transaction, OrderReturn

__all__ = [
    'Product',
    'User', 'SessionToken',
    'CartItem', 'Order', 'OrderItem',
    'Transaction', 'OrderReturn',
]
