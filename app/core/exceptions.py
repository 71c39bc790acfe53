"""
Domain error taxonomy.

Services raise these; the API layer turns them into structured
responses (see app.main). HTTP status lives on the class so that
services never import FastAPI.
"""
from typing import Any, Dict, Optional


class CommissionError(Exception):
    """Base class for all domain errors."""
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "type": type(self).__name__,
            "details": self.details,
        }


class ValidationError(CommissionError):
    """Malformed input or invariant violation (cycle, duplicate parent, role mismatch)."""
    status_code = 400


class DuplicatePayoutError(ValidationError):
    """A payout already exists for this (period, manager)."""


class NotFoundError(CommissionError):
    """Referenced period/manager/edge/payout does not exist."""
    status_code = 404


class ConfigurationError(CommissionError):
    """Operation blocked until an admin fixes configuration (rule set, rate, lock)."""
    status_code = 409


class PeriodLockedError(ConfigurationError):
    """Mutation attempted on a LOCKED period."""

    def __init__(self, period_id: str, action: str = "modified"):
        super().__init__(
            f"Period {period_id} is locked and cannot be {action}",
            {"period_id": period_id},
        )


class TemporalError(CommissionError):
    """Exchange-rate fixing instant has not been reached yet."""
    status_code = 422


class ExternalServiceError(CommissionError):
    """All exchange-rate sources failed. Carries the fallback an operator may accept."""
    status_code = 502

    def __init__(
        self,
        message: str,
        fallback_rate: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.fallback_rate = fallback_rate
        if fallback_rate is not None:
            self.details.setdefault("fallback_rate", fallback_rate)
