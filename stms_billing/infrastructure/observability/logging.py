"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from stms_billing.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_reconciliation(
    request_id: str,
    operation: str,
    outcome: str,
    duration_ms: float,
    client_id: Optional[int] = None,
    builty_id: Optional[int] = None,
    payment_id: Optional[int] = None,
    amount: Optional[str] = None,
) -> None:
    """Log one line per money-moving operation for audit and analysis"""
    logging.info(
        "Reconciliation completed",
        extra={
            "request_id": request_id,
            "step": "reconciliation_complete",
            "operation": operation,
            "outcome": outcome,
            "client_id": client_id,
            "builty_id": builty_id,
            "payment_id": payment_id,
            "amount": amount,
            "duration_ms": duration_ms,
        },
    )
