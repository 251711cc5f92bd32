"""Prometheus metrics for commit outcomes, approval escalation and session churn"""

from prometheus_client import Counter, Histogram

from pawn_desk.domain.models import AuthorizationRequirement

# Commit metrics
commit_counter = Counter(
    "pawn_commit_total",
    "Transaction batches submitted for commit",
    ["outcome"],  # committed | rejected | failed
)

commit_retry_counter = Counter(
    "pawn_commit_retry_total",
    "Commit attempts retried after transport or 5xx failures",
)

# Authorization metrics
authorization_counter = Counter(
    "pawn_authorization_requirement_total",
    "Approval level required by committed batches",
    ["level"],  # standard | dual_staff | manager | dual_staff_and_manager
)

# Session metrics
session_transition_counter = Counter(
    "pawn_session_transition_total",
    "Session state transitions",
    ["state"],
)

# Backend calls
backend_request_histogram = Histogram(
    "pawn_backend_request_seconds",
    "Backend boundary call latency",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def record_authorization(requirement: AuthorizationRequirement) -> None:
    authorization_counter.labels(level=requirement.level).inc()


def record_commit(outcome: str) -> None:
    commit_counter.labels(outcome=outcome).inc()


def record_session_transition(state: str) -> None:
    session_transition_counter.labels(state=state).inc()
