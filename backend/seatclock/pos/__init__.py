from .auth import AuthMode, OAuth, StaticCredentials, resolve_auth_mode
from .client import PosClient, PosTransaction, PosTransactionLine
from .sync import PendingRegistration, PosSyncService

__all__ = [
    "AuthMode",
    "OAuth",
    "StaticCredentials",
    "resolve_auth_mode",
    "PosClient",
    "PosTransaction",
    "PosTransactionLine",
    "PendingRegistration",
    "PosSyncService",
]
