"""Lost-pledge report triage"""

from decimal import Decimal
from typing import Dict, List

LOW = "low"
MEDIUM = "medium"
HIGH = "high"
URGENT = "urgent"

# Reports at these priorities must carry a supervisor code
SUPERVISED_PRIORITIES = frozenset({HIGH, URGENT})

_REQUIRED_DOCUMENTS: Dict[str, List[str]] = {
    "stolen": ["Police Report (mandatory)", "Original receipt (if available)", "Photo identification"],
    "lost": ["Statutory Declaration", "Original receipt (if available)", "Photo identification"],
    "damaged": ["Photos of damage", "Incident report (if applicable)", "Original receipt"],
    "destroyed": ["Evidence of destruction", "Insurance report (if applicable)", "Original receipt"],
}
_DEFAULT_DOCUMENTS = ["Supporting documentation", "Original receipt (if available)", "Photo identification"]


def classify_report_priority(ticket_count: int, total_value: Decimal) -> str:
    """
    Priority of a lost-pledge report from its size.

    Requirements:
    - urgent: value > 10000 or more than 5 tickets
    - high: value > 5000 or more than 3 tickets
    - medium: value > 1000 or more than 1 ticket
    - low otherwise
    """
    if total_value > 10000 or ticket_count > 5:
        return URGENT
    if total_value > 5000 or ticket_count > 3:
        return HIGH
    if total_value > 1000 or ticket_count > 1:
        return MEDIUM
    return LOW


def requires_supervisor(priority: str) -> bool:
    return priority in SUPERVISED_PRIORITIES


def required_documents(circumstance: str) -> List[str]:
    return list(_REQUIRED_DOCUMENTS.get(circumstance, _DEFAULT_DOCUMENTS))
