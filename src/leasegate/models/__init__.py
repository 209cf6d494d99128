"""LeaseGate data models."""

from leasegate.models.enums import RenewStatus
from leasegate.models.identifier import Identifier, Lease, PoolCounts, RenewResult

__all__ = [
    "Identifier",
    "Lease",
    "PoolCounts",
    "RenewResult",
    "RenewStatus",
]
