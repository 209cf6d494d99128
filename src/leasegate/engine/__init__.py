"""LeaseGate engine - lease state machine and pool queries."""

from leasegate.engine.core import LeaseManager
from leasegate.engine.errors import (
    ClientNotFound,
    IdentifierNotFound,
    LeaseGateError,
    OwnershipConflict,
    PoolExhausted,
    StoreUnavailable,
)
from leasegate.engine.queries import PoolQueries

__all__ = [
    "ClientNotFound",
    "IdentifierNotFound",
    "LeaseGateError",
    "LeaseManager",
    "OwnershipConflict",
    "PoolExhausted",
    "PoolQueries",
    "StoreUnavailable",
]
