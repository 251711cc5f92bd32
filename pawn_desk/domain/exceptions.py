"""Domain-specific exceptions"""

from dataclasses import dataclass
from typing import List, Sequence


@dataclass(frozen=True)
class FieldError:
    """Single unmet field, surfaced next to the input it concerns"""

    field: str
    message: str


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class FieldValidationException(DomainException):
    """Base for recoverable errors that report every unmet field at once"""

    def __init__(self, errors: Sequence[FieldError] | FieldError):
        if isinstance(errors, FieldError):
            errors = [errors]
        self.errors: List[FieldError] = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]


class InputValidationError(FieldValidationException):
    """Malformed ticket number, ID, amount or other user input"""

    pass


class TicketNotFoundError(InputValidationError):
    """Backend has no ticket with the requested number"""

    def __init__(self, ticket_number: str):
        self.ticket_number = ticket_number
        super().__init__(FieldError("ticket_number", f"Ticket {ticket_number} not found"))


class TicketNotEligibleError(InputValidationError):
    """Ticket exists but its status does not allow renewal or redemption"""

    def __init__(self, ticket_number: str, status: str):
        self.ticket_number = ticket_number
        self.status = status
        super().__init__(
            FieldError("ticket_number", f"Ticket {ticket_number} has status {status} and cannot be processed")
        )


class ReconciliationError(FieldValidationException):
    """Payment is insufficient or does not reconcile with the net amount"""

    pass


class AuthorizationDenied(FieldValidationException):
    """Credential invalid, duplicate staff, missing justification or permission"""

    pass


class StaffAuthenticationRejected(AuthorizationDenied):
    """Backend rejected a staff code / PIN pair"""

    def __init__(self, staff_id: str, field: str = "staff_id"):
        self.staff_id = staff_id
        super().__init__(FieldError(field, f"Staff {staff_id} could not be authenticated"))


class SessionExpiredError(DomainException):
    """Session ended; any uncommitted batch has been discarded"""

    def __init__(self, reason: str = "session_expired"):
        self.reason = reason
        super().__init__(reason)


class SessionRefreshRejected(SessionExpiredError):
    """Backend refused to renew the session token"""

    pass


class CommitFailure(DomainException):
    """Backend rejected or never acknowledged the finalized batch"""

    def __init__(self, message: str, retryable: bool = True):
        self.retryable = retryable
        super().__init__(message)


class SubmissionInProgress(DomainException):
    """A stage submission is already awaiting an external call"""

    pass


class WorkflowStateError(DomainException):
    """Operation is not allowed in the workflow's current stage"""

    pass


class BackendAPIError(DomainException):
    """Backend API returned an error or is unavailable"""

    pass
