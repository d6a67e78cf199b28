from .locations import StockLocation
from .catalog import Product, StockLevel
from .movements import Movement, MovementItem, MovementSequence, MovementEvent

__all__ = [
    'StockLocation',
    'Product', 'StockLevel',
    'Movement', 'MovementItem', 'MovementSequence', 'MovementEvent',
]
