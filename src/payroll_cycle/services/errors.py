"""Error taxonomy for payroll cycle operations.

Every rejected operation raises synchronously and leaves state untouched.
"""

from __future__ import annotations


class PayrollCycleError(Exception):
    """Base class for all payroll cycle errors."""


class ValidationError(PayrollCycleError):
    """Raised when caller input is malformed or out of range."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}" if field else message)


class InvalidStateError(PayrollCycleError):
    """Raised when an operation's state precondition does not hold."""

    def __init__(
        self,
        operation: str,
        current_state: str,
        reason: str | None = None,
    ):
        self.operation = operation
        self.current_state = current_state
        self.reason = reason
        msg = f"Cannot {operation} while '{current_state}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidTransitionError(InvalidStateError):
    """Raised when a window transition is not in the transition table."""

    def __init__(self, from_state: str, to_state: str, reason: str | None = None):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"transition to '{to_state}'", from_state, reason)


class NotFoundError(PayrollCycleError):
    """Raised when an id is not present in the owning store."""

    def __init__(self, kind: str, item_id: str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} '{item_id}' not found")


class PermissionDeniedError(PayrollCycleError):
    """Raised when the caller's role does not allow the operation."""

    def __init__(self, operation: str, role: str, required_role: str):
        self.operation = operation
        self.role = role
        self.required_role = required_role
        super().__init__(
            f"Role '{role}' cannot {operation}; requires '{required_role}'"
        )


class PaymentFailure(PayrollCycleError):
    """Raised by a payment rail when a single payment does not go through."""

    retryable = False

    def __init__(self, message: str, code: str | None = None):
        self.code = code
        super().__init__(message)


class TransientFailure(PaymentFailure):
    """Soft failure (timeout, bank busy). Eligible for auto-retry."""

    retryable = True


class TerminalFailure(PaymentFailure):
    """Hard failure (invalid account, rejected posting). Never retried."""
