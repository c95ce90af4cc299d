from .identity_provider import (
    AuthEvent,
    AuthListener,
    AuthResult,
    AuthSession,
    AuthUser,
    IdentityProvider,
)
from .table_store import Row, TableStore

__all__ = [
    "AuthEvent",
    "AuthListener",
    "AuthResult",
    "AuthSession",
    "AuthUser",
    "IdentityProvider",
    "Row",
    "TableStore",
]
