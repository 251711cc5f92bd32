"""Risk-escalation policy - how many independent approvals a batch needs"""

from typing import List

from pawn_desk.domain.exceptions import AuthorizationDenied, FieldError
from pawn_desk.domain.models import (
    ApproverSlot,
    AuthorizationRequirement,
    OperationKind,
    StaffApprovals,
    StaffCredential,
    TransactionBatch,
)

# Escalation thresholds (strictly greater-than)
DUAL_STAFF_AMOUNT_THRESHOLD = 5000
DUAL_STAFF_TICKET_THRESHOLD = 5
MANAGER_AMOUNT_THRESHOLD = 10000
MANAGER_TICKET_THRESHOLD = 10

MANAGER_PERMISSION = "admin"
OPERATION_PERMISSIONS = {
    OperationKind.RENEW: "renewal",
    OperationKind.REDEEM: "redemption",
}


def decide(batch: TransactionBatch, different_redeemer: bool) -> AuthorizationRequirement:
    """
    Map batch shape to required approvals.

    - Dual staff: different redeemer, |net| > 5000, or more than 5 tickets
    - Manager: |net| > 10000, or more than 10 tickets

    The two flags are independent: manager approval never stands in for the
    second staff member, and both can apply at once. Never raises.
    """
    amount = abs(batch.net_amount)
    ticket_count = batch.ticket_count

    requires_dual_staff = (
        different_redeemer
        or amount > DUAL_STAFF_AMOUNT_THRESHOLD
        or ticket_count > DUAL_STAFF_TICKET_THRESHOLD
    )
    requires_manager_approval = amount > MANAGER_AMOUNT_THRESHOLD or ticket_count > MANAGER_TICKET_THRESHOLD

    return AuthorizationRequirement(
        requires_dual_staff=requires_dual_staff,
        requires_manager_approval=requires_manager_approval,
    )


def credential_conflicts(slot: ApproverSlot, candidate: StaffCredential, approvals: StaffApprovals) -> List[FieldError]:
    """Reasons a credential may not occupy the slot given the ones already attached"""
    errors = []
    primary = approvals.primary
    if slot is ApproverSlot.SECONDARY:
        if primary is not None and candidate.staff_id == primary.staff_id:
            errors.append(FieldError("secondary", "Second staff member must be different from primary staff"))
    elif slot is ApproverSlot.MANAGER:
        if not candidate.has_permission(MANAGER_PERMISSION):
            errors.append(FieldError("manager", f"Staff {candidate.staff_id} cannot approve high-value transactions"))
        if primary is not None and candidate.staff_id == primary.staff_id:
            errors.append(FieldError("manager", "Manager approval must come from someone other than the primary staff"))
    elif slot is ApproverSlot.PRIMARY:
        for other, name in ((approvals.secondary, "secondary"), (approvals.manager, "manager")):
            if other is not None and other.staff_id == candidate.staff_id:
                errors.append(FieldError("primary", f"Primary staff is already attached as {name}"))
    return errors


def evaluate_approvals(
    requirement: AuthorizationRequirement,
    approvals: StaffApprovals,
    batch: TransactionBatch,
) -> List[FieldError]:
    """Every unmet authorization condition, in a stable order"""
    errors = []
    primary = approvals.primary

    if primary is None:
        errors.append(FieldError("primary", "Primary staff authentication is required"))
    else:
        for kind in sorted(batch.kinds, key=lambda k: k.value):
            permission = OPERATION_PERMISSIONS[kind]
            if not primary.has_permission(permission):
                errors.append(FieldError("primary", f"Staff {primary.staff_id} lacks the {permission} permission"))

    if approvals.secondary is not None:
        errors.extend(credential_conflicts(ApproverSlot.SECONDARY, approvals.secondary, approvals))
    elif requirement.requires_dual_staff:
        errors.append(FieldError("secondary", "Second staff authentication is required"))

    if requirement.requires_manager_approval:
        if approvals.manager is None:
            errors.append(FieldError("manager", "Manager approval is required for this transaction"))
        else:
            errors.extend(credential_conflicts(ApproverSlot.MANAGER, approvals.manager, approvals))
        if not approvals.manager_justification.strip():
            errors.append(FieldError("manager_justification", "Manager approval reason is required"))

    return errors


def ensure_authorized(
    requirement: AuthorizationRequirement,
    approvals: StaffApprovals,
    batch: TransactionBatch,
) -> None:
    """
    Raises:
        AuthorizationDenied: Listing every unmet condition
    """
    errors = evaluate_approvals(requirement, approvals, batch)
    if errors:
        raise AuthorizationDenied(errors)
