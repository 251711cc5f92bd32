"""Four-stage transaction workflow: Selection -> Verification -> Payment -> Review -> commit"""

import logging
import secrets
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from pawn_desk.domain.authorization import credential_conflicts, decide, evaluate_approvals
from pawn_desk.domain.exceptions import (
    AuthorizationDenied,
    FieldError,
    InputValidationError,
    ReconciliationError,
    SessionExpiredError,
    SubmissionInProgress,
    TicketNotEligibleError,
    WorkflowStateError,
)
from pawn_desk.domain.identifiers import is_valid_pin, is_valid_staff_code, is_valid_ticket_number, normalize_nric
from pawn_desk.domain.models import (
    STAGE_ORDER,
    ApproverSlot,
    AuthorizationRequirement,
    CommitReceipt,
    CommitRequest,
    Confirmation,
    OperationKind,
    PaymentSplit,
    ReconciliationResult,
    RedeemerClassification,
    RedeemerProfile,
    Stage,
    StaffApprovals,
    StaffCredential,
    TicketOperation,
    TicketRecord,
    TransactionBatch,
)
from pawn_desk.domain.reconciliation import payment_errors, reconcile
from pawn_desk.domain.verification import classify, missing_evidence

logger = logging.getLogger(__name__)

T = TypeVar("T")
TicketLookup = Callable[[str], Awaitable[TicketRecord]]
StaffAuthenticator = Callable[[str, str], Awaitable[StaffCredential]]
TransactionCommitter = Callable[[CommitRequest], Awaitable[CommitReceipt]]

ABANDONED = "abandoned"

# Errors raised when advance() is refused at each stage
_STAGE_ERRORS = {
    Stage.SELECTION: InputValidationError,
    Stage.VERIFICATION: InputValidationError,
    Stage.PAYMENT: ReconciliationError,
    Stage.REVIEW: AuthorizationDenied,
}


def new_batch_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"batch-{ts}-{secrets.token_hex(6)}"


class TransactionWorkflow:
    """
    Guarded, forward-only pipeline over one TransactionBatch.

    Every upstream edit runs through _mark_stale(), which rewinds the current
    stage to the edited one and drops the completion marks and confirmations
    that were derived from the old data. User-entered values (payment split,
    redeemer details, justification text) are never cleared by an edit.

    Awaited boundary calls (ticket lookup, staff authentication, commit) hold
    the `processing` marker; a second submission while it is set raises
    SubmissionInProgress. terminate() may land while a call is awaited and
    always wins: the awaited result is discarded and SessionExpiredError raised.
    """

    def __init__(self, batch_id: Optional[str] = None):
        self.batch_id = batch_id or new_batch_id()
        self.batch = TransactionBatch()
        self.stage = Stage.SELECTION
        self.primary_customer_verified = False
        self.redeemer: Optional[RedeemerProfile] = None
        self.payment: Optional[PaymentSplit] = None
        self.approvals = StaffApprovals()
        self.confirmations: Dict[Confirmation, bool] = {c: False for c in Confirmation}
        self.processing: Optional[str] = None
        self.receipt: Optional[CommitReceipt] = None
        self.terminated_reason: Optional[str] = None
        self._completed: Set[Stage] = set()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def classification(self) -> RedeemerClassification:
        return classify(self.batch, self.redeemer)

    @property
    def requirement(self) -> AuthorizationRequirement:
        return decide(self.batch, self.classification.different_redeemer)

    @property
    def reconciliation(self) -> Optional[ReconciliationResult]:
        if self.payment is None:
            return None
        return reconcile(self.batch, self.payment)

    @property
    def payment_sufficient(self) -> bool:
        """Set once Payment has been passed with a sufficient split; cleared by upstream edits"""
        return Stage.PAYMENT in self._completed

    @property
    def is_terminated(self) -> bool:
        return self.terminated_reason is not None

    @property
    def is_committed(self) -> bool:
        return self.stage is Stage.COMMITTED

    def is_completed(self, stage: Stage) -> bool:
        return stage in self._completed

    def progress(self) -> int:
        """Percentage of stages passed, 100 once committed"""
        return int(100 * self.stage.position / (len(STAGE_ORDER) - 1))

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def validate(self, stage: Optional[Stage] = None) -> List[FieldError]:
        """Every unmet field for the stage (default: current), without raising"""
        stage = stage or self.stage
        if stage is Stage.SELECTION:
            if self.batch.ticket_count == 0:
                return [FieldError("tickets", "At least one ticket must be added to proceed")]
            return []
        if stage is Stage.VERIFICATION:
            return missing_evidence(self.classification, self.redeemer, self.primary_customer_verified)
        if stage is Stage.PAYMENT:
            return payment_errors(self.batch, self.payment)
        if stage is Stage.REVIEW:
            errors = evaluate_approvals(self.requirement, self.approvals, self.batch)
            for confirmation, confirmed in self.confirmations.items():
                if not confirmed:
                    errors.append(FieldError(confirmation.value, f"{confirmation.value.replace('_', ' ').capitalize()} is required"))
            return errors
        return []

    def can_advance(self) -> bool:
        if self.is_terminated or self.is_committed or self.processing is not None:
            return False
        return not self.validate()

    def advance(self) -> Stage:
        """
        Move one stage forward.

        Review is left only through commit().

        Raises:
            InputValidationError / ReconciliationError: Listing every unmet field
            WorkflowStateError: At Review or after commit
        """
        self._ensure_live()
        self._ensure_idle()
        if self.stage is Stage.REVIEW:
            raise WorkflowStateError("Review is completed by committing the transaction")

        errors = self.validate()
        if errors:
            raise _STAGE_ERRORS[self.stage](errors)

        self._completed.add(self.stage)
        previous = self.stage
        self.stage = STAGE_ORDER[self.stage.position + 1]
        logger.debug("Workflow advanced", extra={"batch_id": self.batch_id, "from": previous.value, "to": self.stage.value})
        return self.stage

    def go_back(self, stage: Stage) -> None:
        """Return to an earlier stage for re-editing; nothing is invalidated until an edit happens"""
        self._ensure_live()
        self._ensure_idle()
        if stage.position >= self.stage.position:
            raise WorkflowStateError(f"Cannot go back from {self.stage.value} to {stage.value}")
        self.stage = stage

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def add_operation(self, operation: TicketOperation) -> None:
        self._begin_edit(Stage.SELECTION)
        before = self._customer_ids()
        self.batch.add(operation)
        self._mark_stale(Stage.SELECTION, customers_changed=before != self._customer_ids())

    def remove_operation(self, ticket_number: str) -> TicketOperation:
        self._begin_edit(Stage.SELECTION)
        before = self._customer_ids()
        removed = self.batch.remove(ticket_number)
        self._mark_stale(Stage.SELECTION, customers_changed=before != self._customer_ids())
        return removed

    async def add_ticket(self, ticket_number: str, kind: OperationKind, lookup: TicketLookup) -> TicketOperation:
        """
        Validate, look up and append a ticket.

        Format and duplicate checks run before the backend is asked.

        Raises:
            InputValidationError: Malformed or duplicate ticket number
            TicketNotFoundError / TicketNotEligibleError: From the lookup result
        """
        self._check_editable(Stage.SELECTION)
        if not is_valid_ticket_number(ticket_number):
            raise InputValidationError(
                FieldError("ticket_number", "Invalid ticket format. Use B/MMYY/XXXX, S/MMYY/XXXX or T/MMYY/XXXX")
            )
        if self.batch.contains(ticket_number):
            raise InputValidationError(FieldError("ticket_number", f"Ticket {ticket_number} is already in this batch"))

        record = await self._call_boundary("ticket_lookup", lookup, ticket_number)

        if not record.is_eligible:
            raise TicketNotEligibleError(record.ticket_number, record.status)

        operation = TicketOperation.from_record(record, kind)
        self.add_operation(operation)
        return operation

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def set_primary_customer_verified(self, verified: bool) -> None:
        self._begin_edit(Stage.VERIFICATION)
        self.primary_customer_verified = verified
        self._mark_stale(Stage.VERIFICATION)

    def set_redeemer(self, redeemer: Optional[RedeemerProfile]) -> None:
        self._begin_edit(Stage.VERIFICATION)
        self.redeemer = redeemer
        self._mark_stale(Stage.VERIFICATION)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def set_payment(self, split: PaymentSplit) -> ReconciliationResult:
        self._begin_edit(Stage.PAYMENT)
        self.payment = split
        self._mark_stale(Stage.PAYMENT)
        return reconcile(self.batch, split)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def authenticate_approver(
        self,
        slot: ApproverSlot,
        staff_id: str,
        pin: str,
        authenticate: StaffAuthenticator,
    ) -> StaffCredential:
        """
        Authenticate a staff member against the credential store and attach them.

        A second credential equal to the primary is rejected, before and after
        the backend call, never silently dropped.

        Raises:
            InputValidationError: Malformed staff code or PIN
            AuthorizationDenied: Rejected credential or conflicting slot
        """
        self._check_editable(Stage.REVIEW)
        staff_id = staff_id.strip().upper()
        errors = []
        if not is_valid_staff_code(staff_id):
            errors.append(FieldError(slot.value, "Staff code must be 3-10 uppercase letters or digits"))
        if not is_valid_pin(pin):
            errors.append(FieldError(f"{slot.value}_pin", "PIN must be 4-8 digits"))
        if errors:
            raise InputValidationError(errors)

        primary = self.approvals.primary
        if slot is ApproverSlot.SECONDARY and primary is not None and primary.staff_id == staff_id:
            raise AuthorizationDenied(FieldError("secondary", "Second staff member must be different from primary staff"))

        credential = await self._call_boundary(f"authenticate_{slot.value}", authenticate, staff_id, pin)

        conflicts = credential_conflicts(slot, credential, self.approvals)
        if conflicts:
            raise AuthorizationDenied(conflicts)

        self._begin_edit(Stage.REVIEW)
        self.approvals = replace(self.approvals, **{slot.value: credential})
        logger.info(
            "Approver attached",
            extra={"batch_id": self.batch_id, "slot": slot.value, "staff_id": credential.staff_id},
        )
        return credential

    def remove_approver(self, slot: ApproverSlot) -> None:
        self._begin_edit(Stage.REVIEW)
        self.approvals = replace(self.approvals, **{slot.value: None})

    def set_manager_justification(self, text: str) -> None:
        self._begin_edit(Stage.REVIEW)
        self.approvals = replace(self.approvals, manager_justification=text)

    def confirm(self, confirmation: Confirmation, value: bool = True) -> None:
        self._begin_edit(Stage.REVIEW)
        self.confirmations[confirmation] = value

    def build_commit_request(self) -> CommitRequest:
        if self.payment is None:
            raise WorkflowStateError("Payment has not been entered")
        result = reconcile(self.batch, self.payment)
        classification = self.classification
        return CommitRequest(
            batch_id=self.batch_id,
            operations=self.batch.operations,
            total_renewal_amount=self.batch.total_renewal_amount,
            total_redemption_amount=self.batch.total_redemption_amount,
            net_amount=self.batch.net_amount,
            payment=self.payment,
            change_amount=result.change,
            requirement=decide(self.batch, classification.different_redeemer),
            approvals=self.approvals,
            different_redeemer=classification.different_redeemer,
            redeemer=self.redeemer,
        )

    async def commit(self, committer: TransactionCommitter) -> CommitReceipt:
        """
        Terminal transition, reachable only from a fully satisfied Review.

        On CommitFailure the workflow stays at Review with every entry intact
        so the operator can retry.

        Raises:
            AuthorizationDenied: Review not satisfied
            CommitFailure: Backend rejected the batch
            SessionExpiredError: Session ended while the commit was in flight
        """
        self._ensure_live()
        if self.stage is not Stage.REVIEW:
            raise WorkflowStateError(f"Cannot commit from {self.stage.value}")
        self._ensure_idle()

        # Re-run every stage guard; upstream data must still hold at the moment of commit
        errors: List[FieldError] = []
        for stage in (Stage.SELECTION, Stage.VERIFICATION, Stage.PAYMENT):
            errors.extend(self.validate(stage))
        if errors:
            raise WorkflowStateError("; ".join(f"{e.field}: {e.message}" for e in errors))
        review_errors = self.validate(Stage.REVIEW)
        if review_errors:
            raise AuthorizationDenied(review_errors)

        request = self.build_commit_request()
        receipt = await self._call_boundary("commit", committer, request)

        self._completed.add(Stage.REVIEW)
        self.stage = Stage.COMMITTED
        self.receipt = receipt
        return receipt

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def terminate(self, reason: str) -> None:
        """Discard all batch data; irreversible and idempotent"""
        if self.is_terminated or self.is_committed:
            return
        self.terminated_reason = reason
        self.batch.clear()
        self.redeemer = None
        self.payment = None
        self.approvals = StaffApprovals()
        self.confirmations = {c: False for c in Confirmation}
        self.primary_customer_verified = False
        self._completed.clear()
        logger.info("Workflow terminated", extra={"batch_id": self.batch_id, "reason": reason})

    def abandon(self) -> None:
        """Explicit operator reset"""
        self.terminate(ABANDONED)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_live(self) -> None:
        if self.terminated_reason == ABANDONED:
            raise WorkflowStateError("Transaction was abandoned")
        if self.terminated_reason is not None:
            raise SessionExpiredError(self.terminated_reason)
        if self.is_committed:
            raise WorkflowStateError("Transaction already committed; start a new batch")

    def _ensure_idle(self) -> None:
        if self.processing is not None:
            raise SubmissionInProgress(f"{self.processing} is still in progress")

    def _check_editable(self, stage: Stage) -> None:
        self._ensure_live()
        self._ensure_idle()
        if stage.position > self.stage.position:
            raise WorkflowStateError(f"Cannot edit {stage.value} while at {self.stage.value}")

    def _begin_edit(self, stage: Stage) -> None:
        self._check_editable(stage)
        if stage.position < self.stage.position:
            self.stage = stage

    def _mark_stale(self, edited: Stage, customers_changed: bool = False) -> None:
        """Drop everything downstream that was derived from the edited stage"""
        for stage in STAGE_ORDER[edited.position:]:
            self._completed.discard(stage)

        if edited is Stage.SELECTION and customers_changed:
            self.primary_customer_verified = False
        if edited.position <= Stage.VERIFICATION.position:
            # Approvals were given for the old batch shape
            self.approvals = StaffApprovals(manager_justification=self.approvals.manager_justification)
        if edited.position < Stage.REVIEW.position:
            self.confirmations = {c: False for c in Confirmation}

    def _customer_ids(self) -> Set[str]:
        return {normalize_nric(op.customer_nric) for op in self.batch.operations}

    @asynccontextmanager
    async def _submitting(self, what: str) -> AsyncIterator[None]:
        self._ensure_idle()
        self.processing = what
        try:
            yield
        finally:
            self.processing = None

    async def _call_boundary(self, what: str, call: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Await an external call; a termination that lands meanwhile overrides its outcome"""
        async with self._submitting(what):
            try:
                result = await call(*args)
            except Exception:
                self._ensure_live()
                raise
        if self.is_terminated:
            logger.warning(
                "Boundary call finished after workflow termination",
                extra={"batch_id": self.batch_id, "call": what},
            )
        self._ensure_live()
        return result
