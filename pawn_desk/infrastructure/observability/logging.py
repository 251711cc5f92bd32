"""Structured JSON logging for console operations"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from pawn_desk.config import settings
from pawn_desk.domain.models import AuthorizationRequirement
from pawn_desk.utils.money import format_money


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_commit(
    batch_id: str,
    outcome: str,
    net_amount: Decimal,
    ticket_count: int,
    duration_ms: float,
    transaction_id: Optional[str] = None,
) -> None:
    """Log structured commit outcome for reconciliation audits"""
    logging.info(
        "Transaction commit finished",
        extra={
            "batch_id": batch_id,
            "step": "commit",
            "outcome": outcome,
            "transaction_id": transaction_id,
            "net_amount": format_money(net_amount),
            "ticket_count": ticket_count,
            "duration_ms": duration_ms,
        },
    )


def log_authorization(batch_id: str, requirement: AuthorizationRequirement, different_redeemer: bool) -> None:
    """Log the approval level a batch was committed under"""
    logging.info(
        "Authorization requirement evaluated",
        extra={
            "batch_id": batch_id,
            "step": "authorization",
            "level": requirement.level,
            "requires_dual_staff": requirement.requires_dual_staff,
            "requires_manager_approval": requirement.requires_manager_approval,
            "different_redeemer": different_redeemer,
        },
    )


def log_session_event(staff_id: Optional[str], from_state: str, to_state: str, remaining_seconds: float) -> None:
    """Log a session state change"""
    logging.info(
        "Session state changed",
        extra={
            "staff_id": staff_id,
            "step": "session",
            "from_state": from_state,
            "to_state": to_state,
            "remaining_seconds": remaining_seconds,
        },
    )
