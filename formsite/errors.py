"""
Error kinds surfaced by the storage layer and the route layer.
"""


class ValidationError(Exception):
    """Raised for malformed or missing caller input."""

    def __init__(self, reason: str = "Invalid payload"):
        super().__init__(reason)
        self.reason = reason


class StorageError(Exception):
    """Raised when the storage medium is unavailable or a write fails."""
    pass
