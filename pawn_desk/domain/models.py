"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List, Optional, Set, Tuple

from pawn_desk.domain.exceptions import FieldError, InputValidationError
from pawn_desk.domain.identifiers import is_valid_ticket_number, normalize_nric
from pawn_desk.utils.money import ZERO, to_money


class OperationKind(str, Enum):
    RENEW = "renew"
    REDEEM = "redeem"


class Stage(str, Enum):
    """Transaction workflow stages, in strict forward order"""

    SELECTION = "selection"
    VERIFICATION = "verification"
    PAYMENT = "payment"
    REVIEW = "review"
    COMMITTED = "committed"

    @property
    def position(self) -> int:
        return STAGE_ORDER.index(self)


STAGE_ORDER: List[Stage] = [Stage.SELECTION, Stage.VERIFICATION, Stage.PAYMENT, Stage.REVIEW, Stage.COMMITTED]


class Confirmation(str, Enum):
    """Operator confirmations required at Review, each tracked on its own"""

    DOCUMENTS_VERIFIED = "documents_verified"
    COMPLIANCE_CHECKED = "compliance_checked"
    FINAL_CONFIRMATION = "final_confirmation"


class EvidenceKind(str, Enum):
    STANDARD_ID = "standard_id"
    REDEEMER_IDENTITY = "redeemer_identity"
    RELATIONSHIP = "relationship"
    SECURITY_CHALLENGE = "security_challenge"


class ApproverSlot(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    MANAGER = "manager"


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    ACTIVE = "active"
    WARNING = "warning"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


# Ticket statuses that still accept renewal or redemption: U (active), O (reopened)
ELIGIBLE_TICKET_STATUSES: FrozenSet[str] = frozenset({"U", "O"})


@dataclass(frozen=True)
class TicketRecord:
    """Ticket as returned by the backend lookup"""

    ticket_number: str
    customer_id: str
    customer_name: str
    customer_nric: str
    principal: Decimal
    interest: Decimal
    outstandings: Decimal
    status: str

    @property
    def is_eligible(self) -> bool:
        return self.status in ELIGIBLE_TICKET_STATUSES

    @property
    def renewal_amount(self) -> Decimal:
        """Renewal settles interest plus any outstanding charges"""
        return to_money(self.interest + self.outstandings)

    @property
    def redemption_amount(self) -> Decimal:
        """Redemption settles principal, interest and outstanding charges"""
        return to_money(self.principal + self.interest + self.outstandings)

    def amount_for(self, kind: OperationKind) -> Decimal:
        return self.renewal_amount if kind is OperationKind.RENEW else self.redemption_amount


@dataclass(frozen=True)
class TicketOperation:
    """One ticket scheduled for renewal or redemption"""

    ticket_number: str
    kind: OperationKind
    amount: Decimal
    customer_id: str
    customer_nric: str
    customer_name: str = ""

    @classmethod
    def from_record(cls, record: TicketRecord, kind: OperationKind) -> "TicketOperation":
        return cls(
            ticket_number=record.ticket_number,
            kind=kind,
            amount=record.amount_for(kind),
            customer_id=record.customer_id,
            customer_nric=record.customer_nric,
            customer_name=record.customer_name,
        )


class TransactionBatch:
    """
    Ordered set of ticket operations.

    Totals are always derived from the current operations; nothing is cached,
    so adding or removing a ticket can never leave a stale net amount behind.
    """

    def __init__(self, operations: Optional[List[TicketOperation]] = None):
        self._operations: List[TicketOperation] = []
        for operation in operations or []:
            self.add(operation)

    def add(self, operation: TicketOperation) -> None:
        errors = []
        if not is_valid_ticket_number(operation.ticket_number):
            errors.append(FieldError("ticket_number", f"Invalid ticket format: {operation.ticket_number!r}"))
        elif self.contains(operation.ticket_number):
            errors.append(FieldError("ticket_number", f"Ticket {operation.ticket_number} is already in this batch"))
        if to_money(operation.amount) <= ZERO:
            errors.append(FieldError("amount", "Amount must be greater than 0"))
        if errors:
            raise InputValidationError(errors)
        self._operations.append(operation)

    def remove(self, ticket_number: str) -> TicketOperation:
        for index, operation in enumerate(self._operations):
            if operation.ticket_number == ticket_number:
                return self._operations.pop(index)
        raise InputValidationError(FieldError("ticket_number", f"Ticket {ticket_number} is not in this batch"))

    def clear(self) -> None:
        self._operations.clear()

    def contains(self, ticket_number: str) -> bool:
        return any(op.ticket_number == ticket_number for op in self._operations)

    @property
    def operations(self) -> Tuple[TicketOperation, ...]:
        return tuple(self._operations)

    @property
    def ticket_count(self) -> int:
        return len(self._operations)

    @property
    def total_renewal_amount(self) -> Decimal:
        return to_money(sum((op.amount for op in self._operations if op.kind is OperationKind.RENEW), ZERO))

    @property
    def total_redemption_amount(self) -> Decimal:
        return to_money(sum((op.amount for op in self._operations if op.kind is OperationKind.REDEEM), ZERO))

    @property
    def net_amount(self) -> Decimal:
        """Positive: owed to the shop. Negative: owed to the customer."""
        return self.total_renewal_amount - self.total_redemption_amount

    @property
    def has_redemptions(self) -> bool:
        return any(op.kind is OperationKind.REDEEM for op in self._operations)

    @property
    def kinds(self) -> Set[OperationKind]:
        return {op.kind for op in self._operations}

    def redemption_customers(self) -> Dict[str, TicketOperation]:
        """Normalised customer NRIC -> first redemption operation for that customer"""
        customers: Dict[str, TicketOperation] = {}
        for op in self._operations:
            if op.kind is OperationKind.REDEEM:
                customers.setdefault(normalize_nric(op.customer_nric), op)
        return customers

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self) -> Iterator[TicketOperation]:
        return iter(tuple(self._operations))


@dataclass(frozen=True)
class RedeemerProfile:
    """Person physically collecting redeemed pledges"""

    name: str
    national_id: str
    contact: str = ""
    relationship: str = ""
    verification_method: str = "nric"
    id_number: str = ""
    security_question: str = ""
    security_answer: str = ""


@dataclass(frozen=True)
class PaymentSplit:
    """Tender split between cash and a digital channel"""

    cash_amount: Decimal = ZERO
    digital_amount: Decimal = ZERO
    digital_reference: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "cash_amount", to_money(self.cash_amount))
        object.__setattr__(self, "digital_amount", to_money(self.digital_amount))
        errors = []
        if self.cash_amount < 0:
            errors.append(FieldError("cash_amount", "Cash amount cannot be negative"))
        if self.digital_amount < 0:
            errors.append(FieldError("digital_amount", "Digital amount cannot be negative"))
        if errors:
            raise InputValidationError(errors)

    @property
    def collected_amount(self) -> Decimal:
        return self.cash_amount + self.digital_amount

    @property
    def has_reference(self) -> bool:
        return bool(self.digital_reference and self.digital_reference.strip())


@dataclass(frozen=True)
class ReconciliationResult:
    """Output of payment reconciliation"""

    amount_due: Decimal
    collected: Decimal
    change: Decimal
    is_sufficient: bool


@dataclass(frozen=True)
class RedeemerClassification:
    """Whether a third party collects, and the evidence that therefore applies"""

    different_redeemer: bool
    required_evidence: Tuple[EvidenceKind, ...] = ()
    mismatched_customers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AuthorizationRequirement:
    """Derived from batch shape; never stored"""

    requires_dual_staff: bool
    requires_manager_approval: bool

    @property
    def level(self) -> str:
        if self.requires_dual_staff and self.requires_manager_approval:
            return "dual_staff_and_manager"
        if self.requires_manager_approval:
            return "manager"
        if self.requires_dual_staff:
            return "dual_staff"
        return "standard"


@dataclass(frozen=True)
class StaffCredential:
    """Authenticated staff member"""

    staff_id: str
    name: str
    role: str
    permissions: FrozenSet[str] = frozenset()

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


@dataclass(frozen=True)
class StaffApprovals:
    """Credentials and justification attached to a batch at Review"""

    primary: Optional[StaffCredential] = None
    secondary: Optional[StaffCredential] = None
    manager: Optional[StaffCredential] = None
    manager_justification: str = ""


@dataclass
class Session:
    """Validity window of a staff authentication"""

    credential: StaffCredential
    token: str
    refresh_token: Optional[str]
    issued_at: datetime
    expires_at: datetime

    @property
    def refreshable(self) -> bool:
        return bool(self.refresh_token)


@dataclass(frozen=True)
class LoginResult:
    """Backend answer to a successful staff login"""

    credential: StaffCredential
    token: str
    refresh_token: Optional[str]
    expires_in: int


@dataclass(frozen=True)
class RefreshResult:
    token: str
    expires_in: int


@dataclass(frozen=True)
class CommitReceipt:
    """Backend acknowledgement of a committed batch"""

    transaction_id: str
    total_amount: Decimal
    change_amount: Decimal = ZERO
    updated_tickets: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CommitRequest:
    """Finalized, validated batch handed to the commit boundary"""

    batch_id: str
    operations: Tuple[TicketOperation, ...]
    total_renewal_amount: Decimal
    total_redemption_amount: Decimal
    net_amount: Decimal
    payment: PaymentSplit
    change_amount: Decimal
    requirement: AuthorizationRequirement
    approvals: StaffApprovals
    different_redeemer: bool
    redeemer: Optional[RedeemerProfile] = None
