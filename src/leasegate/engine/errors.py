"""LeaseGate engine errors."""


class LeaseGateError(Exception):
    """Base error for LeaseGate operations."""

    def __init__(self, message: str, code: str = "LEASEGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class PoolExhausted(LeaseGateError):
    """No free identifier is left to allocate."""

    def __init__(self, client_id: str):
        super().__init__(
            f"No available identifiers for client {client_id}",
            "POOL_EXHAUSTED",
        )
        self.client_id = client_id


class IdentifierNotFound(LeaseGateError):
    """Identifier is not part of the seeded pool."""

    def __init__(self, identifier: str):
        super().__init__(f"Identifier not found: {identifier}", "IDENTIFIER_NOT_FOUND")
        self.identifier = identifier


class ClientNotFound(LeaseGateError):
    """Client does not currently hold an identifier."""

    def __init__(self, client_id: str):
        super().__init__(f"Client not found: {client_id}", "CLIENT_NOT_FOUND")
        self.client_id = client_id


class OwnershipConflict(LeaseGateError):
    """Identifier is held by another client, or by nobody."""

    def __init__(self, identifier: str, client_id: str, actual_holder: str | None):
        super().__init__(
            f"Identifier {identifier} is held by {actual_holder or 'nobody'}, not {client_id}",
            "OWNERSHIP_CONFLICT",
        )
        self.identifier = identifier
        self.client_id = client_id
        self.actual_holder = actual_holder


class StoreUnavailable(LeaseGateError):
    """The lease store failed; safe to retry."""

    def __init__(self, operation: str, reason: str = ""):
        message = f"Lease store unavailable during {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "STORE_UNAVAILABLE")
        self.operation = operation


class HolderAlreadyLeased(LeaseGateError):
    """A concurrent claim already leased an identifier to this holder."""

    def __init__(self, holder: str):
        super().__init__(f"Holder {holder} already leases an identifier", "HOLDER_ALREADY_LEASED")
        self.holder = holder
