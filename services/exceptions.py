"""
Errors raised by the entitlement engine
"""
from typing import Optional


class EntitlementError(Exception):
    """Base class for engine errors."""

    error_type = "internal"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class PlanChangeValidationError(EntitlementError):
    """Request rejected locally, before anything was sent to the processor."""

    error_type = "validation"


class SubscriptionNotFoundError(PlanChangeValidationError):
    pass


class ProcessorError(EntitlementError):
    """The payment processor failed or refused the call. Carries its message verbatim."""

    error_type = "processor"
