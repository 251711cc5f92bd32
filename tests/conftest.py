"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, List, Tuple
from pawn_desk.domain.models import (
    LoginResult,
    OperationKind,
    StaffCredential,
    TicketOperation,
    TicketRecord,
    TransactionBatch,
)


class FakeClock:
    """Injectable clock; tests move time explicitly, including backwards"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, when: datetime) -> None:
        self.now = when


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def alice() -> StaffCredential:
    """Counter staff allowed to renew and redeem"""
    return StaffCredential(
        staff_id="ALICE01",
        name="Alice Tan",
        role="appraiser",
        permissions=frozenset({"renewal", "redemption", "enquiry"}),
    )


@pytest.fixture
def bob() -> StaffCredential:
    return StaffCredential(
        staff_id="BOB02",
        name="Bob Lim",
        role="keyin",
        permissions=frozenset({"renewal", "redemption"}),
    )


@pytest.fixture
def manager() -> StaffCredential:
    return StaffCredential(
        staff_id="MGR01",
        name="Grace Ng",
        role="manager",
        permissions=frozenset({"renewal", "redemption", "admin"}),
    )


@pytest.fixture
def login_result(alice: StaffCredential) -> LoginResult:
    return LoginResult(credential=alice, token="tok-1", refresh_token="refresh-1", expires_in=3600)


@pytest.fixture
def make_operation() -> Callable[..., TicketOperation]:
    def _make(
        ticket_number: str,
        kind: OperationKind,
        amount: str,
        customer_nric: str = "S1234567A",
        customer_id: str = "cust-1",
    ) -> TicketOperation:
        return TicketOperation(
            ticket_number=ticket_number,
            kind=kind,
            amount=Decimal(amount),
            customer_id=customer_id,
            customer_nric=customer_nric,
            customer_name="Tan Ah Kow",
        )

    return _make


@pytest.fixture
def make_batch(make_operation) -> Callable[[List[Tuple[str, OperationKind, str]]], TransactionBatch]:
    """Batch from (ticket_number, kind, amount) triples, all for one customer"""

    def _make(rows: List[Tuple[str, OperationKind, str]]) -> TransactionBatch:
        return TransactionBatch([make_operation(number, kind, amount) for number, kind, amount in rows])

    return _make


@pytest.fixture
def make_record() -> Callable[..., TicketRecord]:
    def _make(
        ticket_number: str,
        principal: str = "500.00",
        interest: str = "24.00",
        outstandings: str = "0.00",
        status: str = "U",
        customer_nric: str = "S1234567A",
        customer_id: str = "cust-1",
    ) -> TicketRecord:
        return TicketRecord(
            ticket_number=ticket_number,
            customer_id=customer_id,
            customer_name="Tan Ah Kow",
            customer_nric=customer_nric,
            principal=Decimal(principal),
            interest=Decimal(interest),
            outstandings=Decimal(outstandings),
            status=status,
        )

    return _make
