from .auth import User, SessionToken
from .inventory import Product, Balance, InventoryMovement

__all__ = [
    'User', 'SessionToken',
    'Product', 'Balance', 'InventoryMovement',
]
