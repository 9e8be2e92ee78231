from .auth import User, AuthToken
from .events import CaveEvent
from .tickets import CaveTicket
from .sessions import CaveSession
from .orders import CaveOrder

__all__ = [
    'User', 'AuthToken',
    'CaveEvent', 'CaveTicket', 'CaveSession', 'CaveOrder',
]
