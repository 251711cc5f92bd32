"""Staff session lifecycle: Unauthenticated -> Active -> Warning -> Expired (+ Refreshing)"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from pawn_desk.domain.exceptions import SessionExpiredError, SessionRefreshRejected, SubmissionInProgress
from pawn_desk.domain.models import LoginResult, RefreshResult, Session, SessionState
from pawn_desk.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

TransitionListener = Callable[[SessionState, SessionState], None]

LIVE_STATES = (SessionState.ACTIVE, SessionState.WARNING, SessionState.REFRESHING)


class SessionLifecycle:
    """
    Tracks one staff credential's validity window.

    Remaining time is always recomputed from the absolute expires_at against
    the injected clock, so wall-clock jumps and suspended pollers are harmless:
    the next evaluate() simply sees the true remaining time.

    Expired is terminal for the session object; the only way out is start()
    with a fresh login, which builds a new Session.
    """

    def __init__(self, warning_window: timedelta, clock: Callable[[], datetime] = utcnow):
        self.warning_window = warning_window
        self._clock = clock
        self.state = SessionState.UNAUTHENTICATED
        self.session: Optional[Session] = None
        self.end_reason: Optional[str] = None
        self._listeners: List[TransitionListener] = []

    def subscribe(self, listener: TransitionListener) -> Callable[[], None]:
        """Register a transition callback; returns the matching unsubscribe"""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_STATES

    @property
    def token(self) -> Optional[str]:
        return self.session.token if self.session else None

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        if self.session is None:
            return timedelta(0)
        now = now or self._clock()
        return max(timedelta(0), self.session.expires_at - now)

    def start(self, login: LoginResult, now: Optional[datetime] = None) -> Session:
        """Create a new session from a successful authentication"""
        now = now or self._clock()
        self.session = Session(
            credential=login.credential,
            token=login.token,
            refresh_token=login.refresh_token,
            issued_at=now,
            expires_at=now + timedelta(seconds=login.expires_in),
        )
        self.end_reason = None
        self._transition(SessionState.ACTIVE)
        self.evaluate(now)
        return self.session

    def evaluate(self, now: Optional[datetime] = None) -> SessionState:
        """
        One poll step.

        - now >= expires_at: Expired, from any live state including Refreshing
        - remaining <= warning window: Warning (a notice only, nothing is blocked)
        - otherwise Active
        """
        if not self.is_live or self.session is None:
            return self.state

        now = now or self._clock()
        if now >= self.session.expires_at:
            self._expire("session_expired")
            return self.state

        if self.state is SessionState.REFRESHING:
            return self.state

        target = SessionState.WARNING if self.remaining(now) <= self.warning_window else SessionState.ACTIVE
        if target is not self.state:
            self._transition(target)
        return self.state

    def require_live(self, now: Optional[datetime] = None) -> Session:
        """
        Raises:
            SessionExpiredError: When there is no live session at `now`
        """
        self.evaluate(now)
        if not self.is_live or self.session is None:
            raise SessionExpiredError(self.end_reason or "unauthenticated")
        return self.session

    def begin_refresh(self, now: Optional[datetime] = None) -> str:
        """
        Enter Refreshing and hand out the refresh token.

        Raises:
            SessionExpiredError: Session already gone
            SessionRefreshRejected: Session cannot be refreshed (expires it)
            SubmissionInProgress: A refresh is already awaiting the backend
        """
        session = self.require_live(now)
        if self.state is SessionState.REFRESHING:
            raise SubmissionInProgress("Session refresh is already in progress")
        if not session.refreshable:
            self._expire("refresh_unavailable")
            raise SessionRefreshRejected("refresh_unavailable")
        self._transition(SessionState.REFRESHING)
        return session.refresh_token

    def complete_refresh(self, result: RefreshResult, now: Optional[datetime] = None) -> Session:
        """
        Apply a granted renewal. A refresh never shortens the session.

        Raises:
            SessionExpiredError: Expiry landed while the refresh was in flight
        """
        if self.state is not SessionState.REFRESHING or self.session is None:
            raise SessionExpiredError(self.end_reason or "session_expired")

        now = now or self._clock()
        granted = now + timedelta(seconds=result.expires_in)
        self.session.token = result.token
        self.session.expires_at = max(self.session.expires_at, granted)
        self._transition(SessionState.ACTIVE)
        self.evaluate(now)
        return self.session

    def fail_refresh(self, reason: str = "refresh_failed") -> None:
        """A failed refresh moves straight to Expired"""
        if self.is_live:
            self._expire(reason)

    def logout(self) -> None:
        self.session = None
        self.end_reason = "logged_out"
        if self.state is not SessionState.UNAUTHENTICATED:
            self._transition(SessionState.UNAUTHENTICATED)

    def _expire(self, reason: str) -> None:
        # The credential goes with the session
        self.session = None
        self.end_reason = reason
        self._transition(SessionState.EXPIRED)

    def _transition(self, new_state: SessionState) -> None:
        old_state = self.state
        if old_state is new_state:
            return
        self.state = new_state
        logger.debug("Session transition", extra={"from_state": old_state.value, "to_state": new_state.value})
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception(
                    "Session listener failed", extra={"from_state": old_state.value, "to_state": new_state.value}
                )
