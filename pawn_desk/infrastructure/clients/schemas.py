"""Pydantic schemas for the backend's JSON envelope and payloads"""

from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from pawn_desk.domain.models import (
    CommitReceipt,
    CommitRequest,
    LoginResult,
    OperationKind,
    RefreshResult,
    StaffCredential,
    TicketRecord,
)
from pawn_desk.utils.money import ZERO, to_money

T = TypeVar("T")


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ApiResponse(WireModel, Generic[T]):
    """Envelope wrapping every backend response"""

    success: bool
    data: Optional[T] = None
    message: Optional[str] = None


class StaffSchema(WireModel):
    id: str
    code: str
    name: str
    role: str
    permissions: List[str] = Field(default_factory=list)

    def to_domain(self) -> StaffCredential:
        return StaffCredential(
            staff_id=self.code,
            name=self.name,
            role=self.role,
            permissions=frozenset(self.permissions),
        )


class LoginRequest(WireModel):
    staff_code: str = Field(..., alias="staffCode")
    pin: str


class LoginData(WireModel):
    token: str
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
    staff: StaffSchema
    expires_in: Optional[int] = Field(None, alias="expiresIn")

    def to_domain(self, default_ttl: int) -> LoginResult:
        return LoginResult(
            credential=self.staff.to_domain(),
            token=self.token,
            refresh_token=self.refresh_token,
            expires_in=self.expires_in if self.expires_in is not None else default_ttl,
        )


class RefreshRequest(WireModel):
    refresh_token: str = Field(..., alias="refreshToken")


class RefreshData(WireModel):
    token: str
    expires_in: Optional[int] = Field(None, alias="expiresIn")

    def to_domain(self, default_ttl: int) -> RefreshResult:
        return RefreshResult(
            token=self.token,
            expires_in=self.expires_in if self.expires_in is not None else default_ttl,
        )


class ValidateData(WireModel):
    valid: bool
    staff: Optional[StaffSchema] = None


class CustomerSchema(WireModel):
    id: str
    nric: str
    name: str
    contact: str = ""


class FinancialSchema(WireModel):
    principal: Decimal
    interest: Decimal
    outstandings: Decimal = ZERO


class TicketSchema(WireModel):
    """Single ticket from GET /tickets/{ticketNo}"""

    ticket_no: str = Field(..., alias="ticketNo")
    customer_id: str = Field(..., alias="customerId")
    customer: CustomerSchema
    financial: FinancialSchema
    status: str

    def to_domain(self) -> TicketRecord:
        return TicketRecord(
            ticket_number=self.ticket_no,
            customer_id=self.customer_id,
            customer_name=self.customer.name,
            customer_nric=self.customer.nric,
            principal=to_money(self.financial.principal),
            interest=to_money(self.financial.interest),
            outstandings=to_money(self.financial.outstandings),
            status=self.status,
        )


class RedemptionItem(WireModel):
    ticket_no: str = Field(..., alias="ticketNo")
    redeemer_type: str = Field(..., alias="redeemerType")  # pawner | other
    redeemer_id: Optional[str] = Field(None, alias="redeemerId")


class PaymentSchema(WireModel):
    cash_amount: Decimal = Field(..., alias="cashAmount")
    digital_amount: Decimal = Field(..., alias="digitalAmount")
    reference_no: Optional[str] = Field(None, alias="referenceNo")


class StaffApprovalItem(WireModel):
    """Already-authenticated approver; PINs never leave the console"""

    staff_code: str = Field(..., alias="staffCode")
    role: str  # primary | secondary | manager


class CombinedTransactionRequest(WireModel):
    """Body of POST /transactions/combined"""

    batch_id: str = Field(..., alias="batchId")
    renewals: List[str]
    redemptions: List[RedemptionItem]
    payment: PaymentSchema
    staff_auth: List[StaffApprovalItem] = Field(..., alias="staffAuth")
    total_renewal_amount: Decimal = Field(..., alias="totalRenewalAmount")
    total_redemption_amount: Decimal = Field(..., alias="totalRedemptionAmount")
    net_amount: Decimal = Field(..., alias="netAmount")
    change_amount: Decimal = Field(..., alias="changeAmount")
    manager_justification: Optional[str] = Field(None, alias="managerJustification")

    @classmethod
    def from_domain(cls, request: CommitRequest) -> "CombinedTransactionRequest":
        redeemer_type = "other" if request.different_redeemer else "pawner"
        redeemer_id = request.redeemer.national_id if request.different_redeemer and request.redeemer else None

        approvals = request.approvals
        staff_auth = [
            StaffApprovalItem(staff_code=credential.staff_id, role=role)
            for role, credential in (
                ("primary", approvals.primary),
                ("secondary", approvals.secondary),
                ("manager", approvals.manager),
            )
            if credential is not None
        ]

        return cls(
            batch_id=request.batch_id,
            renewals=[op.ticket_number for op in request.operations if op.kind is OperationKind.RENEW],
            redemptions=[
                RedemptionItem(ticket_no=op.ticket_number, redeemer_type=redeemer_type, redeemer_id=redeemer_id)
                for op in request.operations
                if op.kind is OperationKind.REDEEM
            ],
            payment=PaymentSchema(
                cash_amount=request.payment.cash_amount,
                digital_amount=request.payment.digital_amount,
                reference_no=request.payment.digital_reference if request.payment.has_reference else None,
            ),
            staff_auth=staff_auth,
            total_renewal_amount=request.total_renewal_amount,
            total_redemption_amount=request.total_redemption_amount,
            net_amount=request.net_amount,
            change_amount=request.change_amount,
            manager_justification=approvals.manager_justification.strip() or None,
        )


class TransactionResultSchema(WireModel):
    transaction_id: str = Field(..., alias="transactionId")
    total_amount: Decimal = Field(..., alias="totalAmount")
    change_amount: Optional[Decimal] = Field(None, alias="changeAmount")
    updated_tickets: List[str] = Field(default_factory=list, alias="updatedTickets")

    def to_domain(self) -> CommitReceipt:
        return CommitReceipt(
            transaction_id=self.transaction_id,
            total_amount=to_money(self.total_amount),
            change_amount=to_money(self.change_amount) if self.change_amount is not None else ZERO,
            updated_tickets=tuple(self.updated_tickets),
        )
