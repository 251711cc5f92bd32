"""Redeemer identity checks"""

from typing import List, Optional

from pawn_desk.domain.exceptions import FieldError
from pawn_desk.domain.identifiers import (
    ID_DOCUMENT_PATTERNS,
    RELATIONSHIPS,
    SECURITY_QUESTIONS,
    is_valid_contact,
    is_valid_id_document,
    is_valid_nric,
    normalize_nric,
)
from pawn_desk.domain.models import EvidenceKind, RedeemerClassification, RedeemerProfile, TransactionBatch

STANDARD_EVIDENCE = (EvidenceKind.STANDARD_ID,)
ESCALATED_EVIDENCE = (
    EvidenceKind.STANDARD_ID,
    EvidenceKind.REDEEMER_IDENTITY,
    EvidenceKind.RELATIONSHIP,
    EvidenceKind.SECURITY_CHALLENGE,
)


def classify(batch: TransactionBatch, redeemer: Optional[RedeemerProfile] = None) -> RedeemerClassification:
    """
    Decide whether the person collecting differs from the registered customer.

    - No redemptions: nothing is handed over, no redeemer evidence applies.
    - The redeemer is checked against every customer referenced by a
      redemption, not just the first one; any mismatch escalates.
    - Without a redeemer profile the registered customer is assumed to collect,
      which is only possible when all redemptions belong to one customer.
    """
    customers = batch.redemption_customers()
    if not customers:
        return RedeemerClassification(different_redeemer=False)

    if redeemer is None:
        if len(customers) == 1:
            return RedeemerClassification(different_redeemer=False, required_evidence=STANDARD_EVIDENCE)
        mismatched = tuple(sorted(customers))
    else:
        redeemer_id = normalize_nric(redeemer.national_id)
        mismatched = tuple(sorted(nric for nric in customers if nric != redeemer_id))

    if not mismatched:
        return RedeemerClassification(different_redeemer=False, required_evidence=STANDARD_EVIDENCE)

    return RedeemerClassification(
        different_redeemer=True,
        required_evidence=ESCALATED_EVIDENCE,
        mismatched_customers=mismatched,
    )


def missing_evidence(
    classification: RedeemerClassification,
    redeemer: Optional[RedeemerProfile],
    primary_customer_verified: bool,
) -> List[FieldError]:
    """Every evidence field still missing for the classification"""
    errors = []
    if not primary_customer_verified:
        errors.append(FieldError("primary_customer_verified", "Primary customer identity must be verified"))

    if not classification.different_redeemer:
        return errors

    required = set(classification.required_evidence)
    if redeemer is None:
        errors.append(FieldError("redeemer", "Redeemer details are required for a different redeemer"))
        return errors

    if EvidenceKind.REDEEMER_IDENTITY in required:
        if len(redeemer.name.strip()) < 2 or len(redeemer.name.strip()) > 100:
            errors.append(FieldError("redeemer_name", "Redeemer name must be 2-100 characters"))
        if not is_valid_nric(redeemer.national_id):
            errors.append(FieldError("redeemer_national_id", "Valid redeemer NRIC is required"))
        if not is_valid_contact(redeemer.contact):
            errors.append(FieldError("redeemer_contact", "Valid redeemer contact is required"))
        if redeemer.verification_method not in ID_DOCUMENT_PATTERNS:
            errors.append(FieldError("verification_method", "Identity verification method is required"))
        elif redeemer.id_number and not is_valid_id_document(redeemer.verification_method, redeemer.id_number):
            errors.append(FieldError("id_number", f"ID number is not a valid {redeemer.verification_method}"))

    if EvidenceKind.RELATIONSHIP in required and redeemer.relationship not in RELATIONSHIPS:
        errors.append(FieldError("relationship", "Relationship to customer is required"))

    if EvidenceKind.SECURITY_CHALLENGE in required:
        if not redeemer.security_question.strip() or not redeemer.security_answer.strip():
            errors.append(FieldError("security_answer", "Security verification is required for a different redeemer"))
        elif redeemer.security_question.strip() not in SECURITY_QUESTIONS:
            errors.append(FieldError("security_question", "Security question must be one of the standard questions"))

    return errors
