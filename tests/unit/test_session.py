"""Unit tests for the session lifecycle manager"""

import pytest
from datetime import timedelta
from pawn_desk.domain.exceptions import SessionExpiredError, SessionRefreshRejected, SubmissionInProgress
from pawn_desk.domain.models import LoginResult, RefreshResult, SessionState
from pawn_desk.domain.session import SessionLifecycle

WARNING_WINDOW = timedelta(minutes=10)


@pytest.fixture
def lifecycle(clock) -> SessionLifecycle:
    return SessionLifecycle(WARNING_WINDOW, clock=clock)


def test_starts_unauthenticated(lifecycle):
    assert lifecycle.state is SessionState.UNAUTHENTICATED
    assert lifecycle.token is None
    with pytest.raises(SessionExpiredError):
        lifecycle.require_live()


def test_login_opens_active_session(lifecycle, login_result, clock):
    session = lifecycle.start(login_result)

    assert lifecycle.state is SessionState.ACTIVE
    assert session.expires_at == clock.now + timedelta(hours=1)
    assert lifecycle.token == "tok-1"


def test_scenario_warning_then_refresh(lifecycle, login_result, clock):
    """9 minutes left enters Warning; a refresh returns to Active with a later expiry"""
    lifecycle.start(login_result)
    original_expiry = lifecycle.session.expires_at

    clock.advance(minutes=51)
    assert lifecycle.evaluate() is SessionState.WARNING

    refresh_token = lifecycle.begin_refresh()
    assert refresh_token == "refresh-1"
    assert lifecycle.state is SessionState.REFRESHING

    session = lifecycle.complete_refresh(RefreshResult(token="tok-2", expires_in=3600))

    assert lifecycle.state is SessionState.ACTIVE
    assert session.expires_at == clock.now + timedelta(hours=1)
    assert session.expires_at >= original_expiry + timedelta(minutes=51)
    assert lifecycle.token == "tok-2"


def test_warning_is_a_notice_only(lifecycle, login_result, clock):
    lifecycle.start(login_result)
    clock.advance(minutes=55)

    session = lifecycle.require_live()

    assert lifecycle.state is SessionState.WARNING
    assert session.credential.staff_id == "ALICE01"


def test_warning_boundary_is_inclusive(lifecycle, login_result, clock):
    lifecycle.start(login_result)

    clock.advance(minutes=49, seconds=59)
    assert lifecycle.evaluate() is SessionState.ACTIVE
    clock.advance(seconds=1)
    assert lifecycle.evaluate() is SessionState.WARNING


def test_scenario_failed_refresh_expires(lifecycle, login_result, clock):
    lifecycle.start(login_result)
    clock.advance(minutes=51)
    lifecycle.evaluate()
    lifecycle.begin_refresh()

    lifecycle.fail_refresh("refresh_rejected")

    assert lifecycle.state is SessionState.EXPIRED
    assert lifecycle.session is None
    assert lifecycle.end_reason == "refresh_rejected"
    with pytest.raises(SessionExpiredError) as exc_info:
        lifecycle.require_live()
    assert exc_info.value.reason == "refresh_rejected"


def test_expiry_at_exact_deadline(lifecycle, login_result, clock):
    lifecycle.start(login_result)

    clock.advance(hours=1)

    assert lifecycle.evaluate() is SessionState.EXPIRED


def test_expired_is_irreversible(lifecycle, login_result, clock):
    lifecycle.start(login_result)
    clock.advance(hours=2)
    lifecycle.evaluate()

    clock.advance(hours=-2)

    assert lifecycle.evaluate() is SessionState.EXPIRED
    with pytest.raises(SessionExpiredError):
        lifecycle.begin_refresh()


def test_clock_jump_forward_is_seen_on_next_poll(lifecycle, login_result, clock):
    """Remaining time comes from absolute expiry, so a suspended poller catches up in one step"""
    lifecycle.start(login_result)

    clock.advance(days=1)

    assert lifecycle.remaining() == timedelta(0)
    assert lifecycle.evaluate() is SessionState.EXPIRED


def test_clock_jump_backward_leaves_warning(lifecycle, login_result, clock):
    lifecycle.start(login_result)
    clock.advance(minutes=55)
    assert lifecycle.evaluate() is SessionState.WARNING

    clock.advance(minutes=-30)

    assert lifecycle.evaluate() is SessionState.ACTIVE


def test_expiry_wins_over_in_flight_refresh(lifecycle, login_result, clock):
    lifecycle.start(login_result)
    clock.advance(minutes=59)
    lifecycle.evaluate()
    lifecycle.begin_refresh()

    clock.advance(minutes=2)
    assert lifecycle.evaluate() is SessionState.EXPIRED

    with pytest.raises(SessionExpiredError):
        lifecycle.complete_refresh(RefreshResult(token="tok-2", expires_in=3600))
    assert lifecycle.state is SessionState.EXPIRED


def test_refresh_never_shortens_session(lifecycle, login_result, clock):
    lifecycle.start(login_result)
    original_expiry = lifecycle.session.expires_at
    lifecycle.begin_refresh()

    session = lifecycle.complete_refresh(RefreshResult(token="tok-2", expires_in=60))

    assert session.expires_at == original_expiry


def test_concurrent_refresh_rejected(lifecycle, login_result):
    lifecycle.start(login_result)
    lifecycle.begin_refresh()

    with pytest.raises(SubmissionInProgress):
        lifecycle.begin_refresh()

    assert lifecycle.state is SessionState.REFRESHING


def test_non_refreshable_session_expires_on_refresh(lifecycle, alice):
    lifecycle.start(LoginResult(credential=alice, token="tok-1", refresh_token=None, expires_in=3600))

    with pytest.raises(SessionRefreshRejected):
        lifecycle.begin_refresh()

    assert lifecycle.state is SessionState.EXPIRED
    assert lifecycle.end_reason == "refresh_unavailable"


def test_listeners_see_every_transition(lifecycle, login_result, clock):
    seen = []
    unsubscribe = lifecycle.subscribe(lambda old, new: seen.append((old, new)))

    lifecycle.start(login_result)
    clock.advance(minutes=51)
    lifecycle.evaluate()
    lifecycle.evaluate()
    clock.advance(minutes=10)
    lifecycle.evaluate()
    unsubscribe()
    lifecycle.logout()

    assert seen == [
        (SessionState.UNAUTHENTICATED, SessionState.ACTIVE),
        (SessionState.ACTIVE, SessionState.WARNING),
        (SessionState.WARNING, SessionState.EXPIRED),
    ]


def test_logout_then_fresh_login(lifecycle, login_result, clock):
    lifecycle.start(login_result)
    lifecycle.logout()
    assert lifecycle.state is SessionState.UNAUTHENTICATED
    assert lifecycle.end_reason == "logged_out"

    lifecycle.start(login_result)

    assert lifecycle.state is SessionState.ACTIVE
    assert lifecycle.end_reason is None


def test_short_lived_login_starts_in_warning(lifecycle, alice):
    lifecycle.start(LoginResult(credential=alice, token="tok-1", refresh_token="r", expires_in=300))

    assert lifecycle.state is SessionState.WARNING


def test_failing_listener_does_not_block_transition(lifecycle, login_result, clock):
    seen = []

    def broken_listener(old_state, new_state):
        raise RuntimeError("status bar gone")

    lifecycle.subscribe(broken_listener)
    lifecycle.subscribe(lambda old_state, new_state: seen.append(new_state))
    lifecycle.start(login_result)
    clock.advance(minutes=61)

    assert lifecycle.evaluate() is SessionState.EXPIRED
    assert seen == [SessionState.ACTIVE, SessionState.EXPIRED]
