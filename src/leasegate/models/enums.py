"""LeaseGate enumerations."""

from enum import Enum


class RenewStatus(str, Enum):
    """Outcome of a guarded renewal against the store."""

    OK = "ok"
    NOT_FOUND = "not_found"
    OWNER_MISMATCH = "owner_mismatch"
