"""Console coordinator - owns the staff session, the active transaction and the session poller"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import httpx

from pawn_desk.config import settings
from pawn_desk.domain.exceptions import (
    AuthorizationDenied,
    BackendAPIError,
    CommitFailure,
    FieldError,
    InputValidationError,
    SessionRefreshRejected,
    WorkflowStateError,
)
from pawn_desk.domain.identifiers import is_valid_pin, is_valid_staff_code
from pawn_desk.domain.models import (
    ApproverSlot,
    CommitReceipt,
    OperationKind,
    Session,
    SessionState,
    StaffCredential,
    TicketOperation,
)
from pawn_desk.domain.session import SessionLifecycle
from pawn_desk.domain.workflow import TransactionWorkflow
from pawn_desk.infrastructure.clients.auth import AuthClient
from pawn_desk.infrastructure.clients.tickets import TicketClient
from pawn_desk.infrastructure.clients.transactions import TransactionClient
from pawn_desk.infrastructure.observability.logging import (
    log_authorization,
    log_commit,
    log_session_event,
    setup_logging,
)
from pawn_desk.infrastructure.observability.metrics import (
    record_authorization,
    record_commit,
    record_session_transition,
)
from pawn_desk.utils.time_utils import format_countdown, format_remaining, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsoleEvent:
    """Notice pushed to subscribers (status bar, warning banner, toasts)"""

    kind: str
    message: str
    at: datetime


EventCallback = Callable[[ConsoleEvent], None]


class ConsoleCoordinator:
    """
    Single coordinating context for one console.

    The session and the active batch are only mutated through this object
    (or through the workflow it hands out). When the session leaves its live
    states, for whatever reason, the active workflow is terminated from the
    lifecycle listener, so expiry takes effect even while a stage submission
    is awaiting the backend.
    """

    def __init__(
        self,
        auth_client: Optional[AuthClient] = None,
        ticket_client: Optional[TicketClient] = None,
        transaction_client: Optional[TransactionClient] = None,
        clock: Callable[[], datetime] = utcnow,
        warning_window: Optional[timedelta] = None,
        poll_interval: Optional[float] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._clock = clock
        self.lifecycle = SessionLifecycle(
            warning_window or timedelta(seconds=settings.session_warning_seconds),
            clock=clock,
        )
        self.auth_client = auth_client or AuthClient(base_url, token_provider=self._token, transport=transport)
        self.ticket_client = ticket_client or TicketClient(base_url, token_provider=self._token, transport=transport)
        self.transaction_client = transaction_client or TransactionClient(
            base_url, token_provider=self._token, transport=transport
        )
        self.poll_interval = poll_interval if poll_interval is not None else settings.session_poll_interval_seconds

        self.workflow: Optional[TransactionWorkflow] = None
        self._staff_id: Optional[str] = None
        self._subscribers: List[EventCallback] = []
        self._poller: Optional[asyncio.Task] = None

        self.lifecycle.subscribe(self._on_session_transition)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def _emit(self, kind: str, message: str) -> None:
        event = ConsoleEvent(kind=kind, message=message, at=self._clock())
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Console subscriber failed", extra={"event_kind": kind})

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def session_state(self) -> SessionState:
        return self.lifecycle.state

    def status_text(self) -> str:
        """Remaining session time for the status bar"""
        if not self.lifecycle.is_live:
            return "Not signed in"
        return f"Session: {format_remaining(self.lifecycle.remaining())}"

    async def login(self, staff_code: str, pin: str) -> Session:
        """
        Authenticate a staff member and open a new session.

        Raises:
            InputValidationError: Malformed staff code or PIN (no backend call made)
            StaffAuthenticationRejected: Backend refused the credentials
            BackendAPIError: Backend unreachable
        """
        staff_code = staff_code.strip().upper()
        errors = []
        if not is_valid_staff_code(staff_code):
            errors.append(FieldError("staff_code", "Staff code must be 3-10 uppercase letters or digits"))
        if not is_valid_pin(pin):
            errors.append(FieldError("pin", "PIN must be 4-8 digits"))
        if errors:
            raise InputValidationError(errors)

        result = await self.auth_client.login(staff_code, pin)

        # A new login never inherits a batch built under another session
        self._discard_workflow("session_replaced")
        self._staff_id = result.credential.staff_id
        session = self.lifecycle.start(result)
        logger.info("Staff logged in", extra={"staff_id": self._staff_id, "expires_at": session.expires_at.isoformat()})
        return session

    async def logout(self) -> None:
        """End the session; the backend is told first while the token is still attached"""
        if self.lifecycle.is_live:
            try:
                await self.auth_client.logout()
            except BackendAPIError as e:
                # The console session ends regardless of whether the backend heard about it
                logger.warning("Backend logout failed", extra={"staff_id": self._staff_id, "error": str(e)})
        self.lifecycle.logout()

    async def refresh_session(self) -> Session:
        """
        Extend the session through the backend.

        Any failure moves the session to Expired, which discards the active batch.

        Raises:
            SessionExpiredError: Session already gone, or expired while the refresh was in flight
            SessionRefreshRejected: Refresh refused or the backend was unreachable
            SubmissionInProgress: A refresh is already awaiting the backend
        """
        refresh_token = self.lifecycle.begin_refresh()
        try:
            result = await self.auth_client.refresh_session(refresh_token)
        except SessionRefreshRejected as e:
            self.lifecycle.fail_refresh(e.reason)
            raise
        except BackendAPIError as e:
            self.lifecycle.fail_refresh("refresh_failed")
            raise SessionRefreshRejected("refresh_failed") from e
        return self.lifecycle.complete_refresh(result)

    def poll_once(self) -> SessionState:
        """One poller tick"""
        return self.lifecycle.evaluate()

    def start_polling(self) -> None:
        if self._poller is not None and not self._poller.done():
            return
        self._poller = asyncio.create_task(self._poll_loop())

    async def stop_polling(self) -> None:
        if self._poller is None:
            return
        self._poller.cancel()
        try:
            await self._poller
        except asyncio.CancelledError:
            pass
        self._poller = None

    async def _poll_loop(self) -> None:
        while True:
            self.poll_once()
            await asyncio.sleep(self.poll_interval)

    def _token(self) -> Optional[str]:
        return self.lifecycle.token

    def _on_session_transition(self, old_state: SessionState, new_state: SessionState) -> None:
        remaining = self.lifecycle.remaining()
        record_session_transition(new_state.value)
        log_session_event(self._staff_id, old_state.value, new_state.value, remaining.total_seconds())

        if new_state is SessionState.WARNING:
            self._emit("session_warning", f"Session expires in {format_countdown(remaining)}")
        elif new_state is SessionState.ACTIVE and old_state is SessionState.REFRESHING:
            self._emit("session_refreshed", f"Session extended, {format_remaining(remaining)} remaining")
        elif new_state is SessionState.EXPIRED:
            self._discard_workflow(self.lifecycle.end_reason or "session_expired")
            self._emit("session_expired", "Session expired, please log in again")
        elif new_state is SessionState.UNAUTHENTICATED:
            self._discard_workflow("logged_out")
            self._emit("logged_out", "Logged out")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def start_transaction(self) -> TransactionWorkflow:
        """
        Open a new batch under the live session.

        Raises:
            SessionExpiredError: No live session
            WorkflowStateError: An uncommitted batch is still open
        """
        self.lifecycle.require_live()
        if self.workflow is not None and not self.workflow.is_terminated and not self.workflow.is_committed:
            raise WorkflowStateError("A transaction is already in progress; reset it first")
        self.workflow = TransactionWorkflow()
        logger.info("Transaction started", extra={"batch_id": self.workflow.batch_id, "staff_id": self._staff_id})
        return self.workflow

    def reset_transaction(self) -> None:
        """Abandon the open batch; idempotent and leaves the session alone"""
        if self.workflow is not None:
            self.workflow.abandon()

    def active_workflow(self) -> TransactionWorkflow:
        """
        Raises:
            SessionExpiredError: No live session
            WorkflowStateError: No open batch
        """
        self.lifecycle.require_live()
        if self.workflow is None or self.workflow.is_terminated:
            raise WorkflowStateError("No transaction in progress")
        return self.workflow

    async def add_ticket(self, ticket_number: str, kind: OperationKind) -> TicketOperation:
        workflow = self.active_workflow()
        return await workflow.add_ticket(ticket_number, kind, self.ticket_client.lookup_ticket)

    async def authenticate_approver(self, slot: ApproverSlot, staff_id: str, pin: str) -> StaffCredential:
        workflow = self.active_workflow()
        return await workflow.authenticate_approver(slot, staff_id, pin, self.auth_client.authenticate_staff)

    async def commit(self) -> CommitReceipt:
        """
        Commit the open batch and record the outcome.

        Raises:
            AuthorizationDenied: Review not satisfied
            CommitFailure: Backend rejected the batch; it stays open at Review
            SessionExpiredError: Session ended before or during the commit
        """
        workflow = self.active_workflow()
        started = time.perf_counter()
        try:
            receipt = await workflow.commit(self.transaction_client.commit_transaction)
        except AuthorizationDenied:
            record_commit("rejected")
            raise
        except CommitFailure as e:
            record_commit("failed")
            log_commit(
                workflow.batch_id,
                "failed",
                workflow.batch.net_amount,
                workflow.batch.ticket_count,
                (time.perf_counter() - started) * 1000,
            )
            logger.warning("Commit failed", extra={"batch_id": workflow.batch_id, "retryable": e.retryable})
            raise

        requirement = workflow.requirement
        record_commit("committed")
        record_authorization(requirement)
        log_authorization(workflow.batch_id, requirement, workflow.classification.different_redeemer)
        log_commit(
            workflow.batch_id,
            "committed",
            workflow.batch.net_amount,
            workflow.batch.ticket_count,
            (time.perf_counter() - started) * 1000,
            transaction_id=receipt.transaction_id,
        )
        self._emit("transaction_committed", f"Transaction {receipt.transaction_id} committed")
        return receipt

    def _discard_workflow(self, reason: str) -> None:
        workflow = self.workflow
        if workflow is None or workflow.is_terminated or workflow.is_committed:
            return
        had_tickets = workflow.batch.ticket_count > 0
        workflow.terminate(reason)
        if had_tickets:
            self._emit("batch_discarded", f"Uncommitted transaction discarded ({reason})")


def create_console(**kwargs) -> ConsoleCoordinator:
    """Create a console wired to the configured backend, with structured logging installed"""
    setup_logging(settings.log_level)
    return ConsoleCoordinator(**kwargs)
