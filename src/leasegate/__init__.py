"""LeaseGate - lease manager for a bounded pool of unique identifiers."""

__version__ = "0.1.0"
