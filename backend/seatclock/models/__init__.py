from .venue import Store, SeatType, Table, Cast, PosIntegration
from .sessions import TableSession, SeatChargeEvent, Nomination
from .orders import Order, OrderItem
from .checkouts import Checkout, CheckoutHistory, CheckoutOrderItem, CheckoutNomination

__all__ = [
    'Store', 'SeatType', 'Table', 'Cast', 'PosIntegration',
    'TableSession', 'SeatChargeEvent', 'Nomination',
    'Order', 'OrderItem',
    'Checkout', 'CheckoutHistory', 'CheckoutOrderItem', 'CheckoutNomination',
]
