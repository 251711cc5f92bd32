"""Text formats accepted at the console boundary"""

import re
from typing import Dict, List, Pattern

# Canonical ticket number: prefix B/S/T, 4-digit period (MMYY), 4-digit sequence
TICKET_NUMBER_PATTERN = re.compile(r"^[BST]/[0-9]{4}/[0-9]{4}$")
NRIC_PATTERN = re.compile(r"^[STFG][0-9]{7}[A-Z]$")
CONTACT_PATTERN = re.compile(r"^(\+65\s?)?[6789][0-9]{7}$")
STAFF_CODE_PATTERN = re.compile(r"^[A-Z0-9]{3,10}$")
PIN_PATTERN = re.compile(r"^[0-9]{4,8}$")

RELATIONSHIPS: List[str] = ["self", "spouse", "child", "parent", "sibling", "relative", "authorized", "other"]

ID_DOCUMENT_PATTERNS: Dict[str, Pattern[str]] = {
    "nric": NRIC_PATTERN,
    "passport": re.compile(r"^[A-Z0-9]{6,12}$"),
    "driving_license": re.compile(r"^[A-Z0-9]{8,15}$"),
    "work_permit": re.compile(r"^[A-Z0-9]{8,12}$"),
}

SECURITY_QUESTIONS: List[str] = [
    "What is the customer's mother's maiden name?",
    "What is the customer's date of birth?",
    "What was the customer's first pledge item?",
    "What is the customer's home address?",
    "What is the customer's emergency contact name?",
]


def is_valid_ticket_number(value: str) -> bool:
    """Exact match only: no surrounding whitespace, no lowercase prefix"""
    return bool(TICKET_NUMBER_PATTERN.fullmatch(value))


def format_ticket_number(value: str) -> str:
    """
    Re-insert slashes into loosely typed ticket input.

    "b01251234" -> "B/0125/1234". Partial input is formatted as far as it goes;
    the result still has to pass is_valid_ticket_number.
    """
    cleaned = re.sub(r"[^A-Z0-9]", "", value.upper())
    if len(cleaned) <= 1:
        return cleaned
    if len(cleaned) <= 5:
        return f"{cleaned[:1]}/{cleaned[1:]}"
    return f"{cleaned[:1]}/{cleaned[1:5]}/{cleaned[5:9]}"


def normalize_nric(value: str) -> str:
    return re.sub(r"\s+", "", value).upper()


def is_valid_nric(value: str) -> bool:
    return bool(NRIC_PATTERN.fullmatch(normalize_nric(value)))


def is_valid_contact(value: str) -> bool:
    return bool(CONTACT_PATTERN.fullmatch(value.strip()))


def is_valid_id_document(method: str, id_number: str) -> bool:
    pattern = ID_DOCUMENT_PATTERNS.get(method)
    if pattern is None:
        return False
    return bool(pattern.fullmatch(normalize_nric(id_number)))


def is_valid_staff_code(value: str) -> bool:
    return bool(STAFF_CODE_PATTERN.fullmatch(value.strip().upper()))


def is_valid_pin(value: str) -> bool:
    return bool(PIN_PATTERN.fullmatch(value))
