"""In-memory mock of the pawnshop backend used for local runs and end-to-end tests"""

import itertools
import secrets
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from pawn_desk.infrastructure.clients.schemas import (
    CombinedTransactionRequest,
    LoginRequest,
    RefreshRequest,
)

TOKEN_TTL_SECONDS = 3600

STAFF: Dict[str, Dict[str, Any]] = {
    "ALICE01": {
        "id": "staff-1",
        "code": "ALICE01",
        "name": "Alice Tan",
        "role": "appraiser",
        "permissions": ["renewal", "redemption", "enquiry"],
        "pin": "1234",
    },
    "BOB02": {
        "id": "staff-2",
        "code": "BOB02",
        "name": "Bob Lim",
        "role": "keyin",
        "permissions": ["renewal", "redemption"],
        "pin": "5678",
    },
    "MGR01": {
        "id": "staff-3",
        "code": "MGR01",
        "name": "Grace Ng",
        "role": "manager",
        "permissions": ["renewal", "redemption", "enquiry", "lost_report", "admin"],
        "pin": "9999",
    },
}


def _ticket(number: str, customer: int, principal: str, interest: str, status: str = "U") -> Dict[str, Any]:
    customers = {
        1: {"id": "cust-1", "nric": "S1234567A", "name": "Tan Ah Kow", "contact": "91234567"},
        2: {"id": "cust-2", "nric": "S7654321B", "name": "Lee Mei Ling", "contact": "98765432"},
    }
    return {
        "ticketNo": number,
        "customerId": customers[customer]["id"],
        "customer": customers[customer],
        "financial": {"principal": principal, "interest": interest, "outstandings": "0.00"},
        "status": status,
    }


SEED_TICKETS = [
    _ticket("B/0125/0001", 1, "500.00", "24.00"),
    _ticket("B/0125/0002", 1, "450.00", "25.00"),
    _ticket("S/0125/0003", 2, "1200.00", "60.00"),
    _ticket("T/0125/0004", 1, "9800.00", "490.00"),
    _ticket("B/0125/0009", 1, "300.00", "15.00", status="R"),
]


@dataclass
class BackendState:
    staff: Dict[str, Dict[str, Any]]
    tickets: Dict[str, Dict[str, Any]]
    tokens: Dict[str, str] = field(default_factory=dict)
    refresh_tokens: Dict[str, str] = field(default_factory=dict)
    committed: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    sequence: Any = field(default_factory=lambda: itertools.count(1))


def _ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def create_app(state: Optional[BackendState] = None) -> FastAPI:
    state = state or BackendState(
        staff={code: dict(member) for code, member in STAFF.items()},
        tickets={t["ticketNo"]: dict(t) for t in SEED_TICKETS},
    )

    app = FastAPI(title="Mock Pawnshop Backend", version="1.0.0")
    app.state.backend = state
    router = APIRouter(prefix="/api")

    def public_staff(code: str) -> Dict[str, Any]:
        return {k: v for k, v in state.staff[code].items() if k != "pin"}

    def check_pin(staff_code: str, pin: str) -> bool:
        member = state.staff.get(staff_code)
        return member is not None and secrets.compare_digest(member["pin"], pin)

    def bearer_staff(authorization: Optional[str]) -> Optional[str]:
        if not authorization or not authorization.startswith("Bearer "):
            return None
        return state.tokens.get(authorization[len("Bearer "):])

    def issue_token(staff_code: str) -> str:
        token = secrets.token_hex(16)
        state.tokens[token] = staff_code
        return token

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @router.post("/auth/login")
    async def login(request: Request):
        try:
            body = LoginRequest.model_validate(await request.json())
        except ValidationError:
            return _fail(400, "staffCode and pin are required")
        if not check_pin(body.staff_code, body.pin):
            return _fail(401, "Invalid staff code or PIN")

        refresh_token = secrets.token_hex(16)
        state.refresh_tokens[refresh_token] = body.staff_code
        return _ok(
            {
                "token": issue_token(body.staff_code),
                "refreshToken": refresh_token,
                "staff": public_staff(body.staff_code),
                "expiresIn": TOKEN_TTL_SECONDS,
            }
        )

    @router.post("/auth/validate")
    async def validate(request: Request):
        try:
            body = LoginRequest.model_validate(await request.json())
        except ValidationError:
            return _fail(400, "staffCode and pin are required")
        if not check_pin(body.staff_code, body.pin):
            return _ok({"valid": False})
        return _ok({"valid": True, "staff": public_staff(body.staff_code)})

    @router.post("/auth/refresh")
    async def refresh(request: Request):
        try:
            body = RefreshRequest.model_validate(await request.json())
        except ValidationError:
            return _fail(400, "refreshToken is required")
        staff_code = state.refresh_tokens.get(body.refresh_token)
        if staff_code is None:
            return _fail(401, "Refresh token is not valid")
        return _ok({"token": issue_token(staff_code), "expiresIn": TOKEN_TTL_SECONDS})

    @router.post("/auth/logout")
    def logout(authorization: Optional[str] = Header(None)):
        if bearer_staff(authorization) is None:
            return _fail(401, "Not authenticated")
        state.tokens.pop(authorization[len("Bearer "):], None)
        return _ok({"loggedOut": True})

    @router.get("/tickets/{ticket_no:path}")
    def get_ticket(ticket_no: str, authorization: Optional[str] = Header(None)):
        if bearer_staff(authorization) is None:
            return _fail(401, "Not authenticated")
        ticket = state.tickets.get(ticket_no)
        if ticket is None:
            return _fail(404, f"Ticket {ticket_no} not found")
        return _ok(ticket)

    @router.post("/transactions/combined")
    async def combined(
        request: Request,
        authorization: Optional[str] = Header(None),
        idempotency_key: Optional[str] = Header(None),
    ):
        if bearer_staff(authorization) is None:
            return _fail(401, "Not authenticated")
        if idempotency_key and idempotency_key in state.committed:
            return _ok(state.committed[idempotency_key])

        try:
            body = CombinedTransactionRequest.model_validate(await request.json())
        except ValidationError as e:
            return _fail(422, f"Invalid transaction: {e.error_count()} errors")

        ticket_numbers = body.renewals + [item.ticket_no for item in body.redemptions]
        for number in ticket_numbers:
            ticket = state.tickets.get(number)
            if ticket is None:
                return _fail(404, f"Ticket {number} not found")
            if ticket["status"] not in ("U", "O"):
                return _fail(409, f"Ticket {number} cannot be processed")
        for approval in body.staff_auth:
            if approval.staff_code not in state.staff:
                return _fail(403, f"Unknown staff {approval.staff_code}")

        amount_due = abs(body.net_amount)
        collected = body.payment.cash_amount + body.payment.digital_amount
        if collected < amount_due - Decimal("0.01"):
            return _fail(422, "Payment does not cover the net amount")

        for item in body.redemptions:
            state.tickets[item.ticket_no]["status"] = "R"

        result = {
            "transactionId": f"TXN-{next(state.sequence):06d}",
            "receipts": [],
            "updatedTickets": ticket_numbers,
            "totalAmount": f"{amount_due:.2f}",
            "changeAmount": f"{body.change_amount:.2f}",
        }
        state.committed[idempotency_key or body.batch_id] = result
        return _ok(result)

    app.include_router(router)
    return app


app = create_app()
