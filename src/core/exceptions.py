"""
Exception types shared across the identity service
"""

from typing import Optional


class IdentityServiceError(Exception):
    """Base class for all identity service errors"""


class InvalidPhoneFormat(IdentityServiceError, ValueError):
    """Raised when a phone number cannot be shaped into +91XXXXXXXXXX"""

    def __init__(self, message: str = "Invalid phone number format. Must be 10 digits."):
        super().__init__(message)
        self.message = message


class DataAccessFailure(IdentityServiceError):
    """
    A query against the backing store failed.

    Kept distinct from a "not found" result so callers can tell an
    unregistered number from an outage.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        collection: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.collection = collection

    def with_stage(self, stage: str) -> "DataAccessFailure":
        self.stage = stage
        return self


class LookupTimeout(DataAccessFailure):
    """A store query did not complete within the configured timeout"""


class StoreNotInitialized(IdentityServiceError, RuntimeError):
    """Raised when a store is used before initialize() completed"""
