"""Unit tests for redeemer classification and evidence checks"""

from decimal import Decimal
from pawn_desk.domain.identifiers import SECURITY_QUESTIONS
from pawn_desk.domain.models import EvidenceKind, OperationKind, RedeemerProfile, TransactionBatch
from pawn_desk.domain.verification import ESCALATED_EVIDENCE, STANDARD_EVIDENCE, classify, missing_evidence

RENEW = OperationKind.RENEW
REDEEM = OperationKind.REDEEM


def _full_redeemer(**overrides) -> RedeemerProfile:
    values = dict(
        name="Lim Wei Ming",
        national_id="S9876543C",
        contact="91234567",
        relationship="spouse",
        verification_method="nric",
        id_number="S9876543C",
        security_question="What is the customer's date of birth?",
        security_answer="01-02-1970",
    )
    values.update(overrides)
    return RedeemerProfile(**values)


def test_renewal_only_batch_needs_no_redeemer_evidence(make_batch):
    batch = make_batch([("B/0125/0001", RENEW, "24.00")])

    classification = classify(batch, _full_redeemer())

    assert classification.different_redeemer is False
    assert classification.required_evidence == ()


def test_same_customer_collecting_needs_standard_id(make_batch):
    batch = make_batch([("S/0125/0099", REDEEM, "1308.00")])

    classification = classify(batch, _full_redeemer(national_id="s1234567a"))

    assert classification.different_redeemer is False
    assert classification.required_evidence == STANDARD_EVIDENCE


def test_no_profile_means_registered_customer_collects(make_batch):
    batch = make_batch([("S/0125/0099", REDEEM, "1308.00")])

    assert classify(batch).different_redeemer is False


def test_scenario_different_redeemer_escalates(make_batch):
    """Redeemer NRIC differs from the ticket's customer"""
    batch = make_batch([("S/0125/0099", REDEEM, "1308.00")])

    classification = classify(batch, _full_redeemer())

    assert classification.different_redeemer is True
    assert classification.required_evidence == ESCALATED_EVIDENCE
    assert EvidenceKind.SECURITY_CHALLENGE in classification.required_evidence
    assert classification.mismatched_customers == ("S1234567A",)


def test_redeemer_checked_against_every_customer(make_operation):
    """Matching the first customer is not enough when a second customer is redeemed too"""
    batch = TransactionBatch(
        [
            make_operation("B/0125/0001", REDEEM, "500.00", customer_nric="S1234567A"),
            make_operation("B/0125/0002", REDEEM, "300.00", customer_nric="S7654321B", customer_id="cust-2"),
        ]
    )

    classification = classify(batch, _full_redeemer(national_id="S1234567A"))

    assert classification.different_redeemer is True
    assert classification.mismatched_customers == ("S7654321B",)


def test_multiple_customers_without_profile_is_different_redeemer(make_operation):
    batch = TransactionBatch(
        [
            make_operation("B/0125/0001", REDEEM, "500.00", customer_nric="S1234567A"),
            make_operation("B/0125/0002", REDEEM, "300.00", customer_nric="S7654321B", customer_id="cust-2"),
        ]
    )

    assert classify(batch).different_redeemer is True


def test_renewals_for_other_customers_do_not_escalate(make_operation):
    """Only customers referenced by a redemption are compared"""
    batch = TransactionBatch(
        [
            make_operation("B/0125/0001", REDEEM, "500.00", customer_nric="S1234567A"),
            make_operation("B/0125/0002", RENEW, "30.00", customer_nric="S7654321B", customer_id="cust-2"),
        ]
    )

    assert classify(batch, _full_redeemer(national_id="S1234567A")).different_redeemer is False


def test_missing_evidence_standard(make_batch):
    batch = make_batch([("S/0125/0099", REDEEM, "1308.00")])
    classification = classify(batch)

    assert [e.field for e in missing_evidence(classification, None, False)] == ["primary_customer_verified"]
    assert missing_evidence(classification, None, True) == []


def test_missing_evidence_lists_every_field(make_batch):
    batch = make_batch([("S/0125/0099", REDEEM, "1308.00")])
    redeemer = RedeemerProfile(name="L", national_id="X123", verification_method="passport", id_number="ab")
    classification = classify(batch, redeemer)

    errors = missing_evidence(classification, redeemer, False)

    assert [e.field for e in errors] == [
        "primary_customer_verified",
        "redeemer_name",
        "redeemer_national_id",
        "redeemer_contact",
        "id_number",
        "relationship",
        "security_answer",
    ]


def test_complete_escalated_evidence_passes(make_batch):
    batch = make_batch([("S/0125/0099", REDEEM, "1308.00")])
    redeemer = _full_redeemer(contact="+65 81234567", verification_method="passport", id_number="E1234567")
    classification = classify(batch, redeemer)

    assert missing_evidence(classification, redeemer, True) == []


def test_unanswered_security_question_blocks(make_batch):
    batch = make_batch([("S/0125/0099", REDEEM, "1308.00")])
    redeemer = _full_redeemer(security_answer="  ")
    classification = classify(batch, redeemer)

    assert [e.field for e in missing_evidence(classification, redeemer, True)] == ["security_answer"]


def test_amount_does_not_affect_classification(make_batch):
    small = make_batch([("S/0125/0099", REDEEM, "1.00")])
    large = make_batch([("S/0125/0099", REDEEM, "99999.00")])

    assert classify(small, _full_redeemer()) == classify(large, _full_redeemer())
    assert small.total_redemption_amount == Decimal("1.00")


def test_security_question_must_be_a_standard_one(make_batch):
    batch = make_batch([("S/0125/0099", REDEEM, "1308.00")])
    redeemer = _full_redeemer(security_question="Favourite colour?")
    classification = classify(batch, redeemer)

    assert [e.field for e in missing_evidence(classification, redeemer, True)] == ["security_question"]

    for question in SECURITY_QUESTIONS:
        redeemer = _full_redeemer(security_question=question)
        assert missing_evidence(classification, redeemer, True) == []
