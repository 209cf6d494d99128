"""LeaseGate database layer."""

from leasegate.db.base import Base, get_session, init_db
from leasegate.db.tables import IdentifierTable

__all__ = [
    "Base",
    "get_session",
    "init_db",
    "IdentifierTable",
]
