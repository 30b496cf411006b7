"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from rentease_ledger.config import settings

logger = logging.getLogger("rentease_ledger.audit")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_plan_transition(plan_id: str, tenant_id: str, from_status: str, to_status: str, **extra: Any) -> None:
    """Log one rent plan status change for the audit trail"""
    logger.info(
        "Rent plan transition",
        extra={
            "plan_id": plan_id,
            "tenant_id": tenant_id,
            "step": "plan_transition",
            "from_status": from_status,
            "to_status": to_status,
            **extra,
        },
    )


def log_points_movement(tenant_id: str, delta: int, reason: str, reference_id: Optional[str] = None) -> None:
    """Log a change to a tenant's points balance (positive = earned, negative = spent)"""
    logger.info(
        "Points balance changed",
        extra={
            "tenant_id": tenant_id,
            "step": "points_movement",
            "points_delta": delta,
            "reason": reason,
            "reference_id": reference_id,
        },
    )


def log_anomaly(kind: str, detail: str, entity_type: Optional[str], entity_id: Optional[str], intent_id: Optional[str]) -> None:
    logger.warning(
        "Reconciliation anomaly queued",
        extra={
            "step": "reconciliation_anomaly",
            "anomaly_kind": kind,
            "detail": detail,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "intent_id": intent_id,
        },
    )
