"""LeaseGate utilities."""
