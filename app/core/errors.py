"""
Domain errors for the subscription engine.

Every error carries a stable ``reason_code`` so API and CLI callers can report
failures without parsing messages.
"""

from typing import Optional


class DomainError(Exception):
    reason_code = "error"

    def __init__(self, message: str, reason_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if reason_code:
            self.reason_code = reason_code


class InvalidStateTransition(DomainError):
    """Transition attempted from a state that does not allow it. Nothing was written."""

    reason_code = "invalid_state_transition"

    def __init__(self, current_status: str, action: str):
        super().__init__(f"Cannot {action} a subscription in status '{current_status}'")
        self.current_status = current_status
        self.action = action


class ValidationError(DomainError):
    """Malformed input"""

    reason_code = "validation_error"

    def __init__(self, message: str, errors: Optional[list[str]] = None, reason_code: Optional[str] = None):
        super().__init__(message, reason_code)
        self.errors = errors or [message]


class NotFoundError(DomainError):
    """Entity missing or not owned by the caller"""

    reason_code = "not_found"


class PromoInvalid(DomainError):
    """Informational only: a promo code did not validate. Never blocks pricing."""

    reason_code = "promo_invalid"


class PersistenceConflict(DomainError):
    """Unique constraint hit; the row already exists."""

    reason_code = "persistence_conflict"


class UnexpectedError(DomainError):
    reason_code = "unexpected_error"
