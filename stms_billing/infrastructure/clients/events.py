"""Billing event webhook client with exponential backoff retry logic"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from stms_billing.config import settings
from stms_billing.domain.models import Builty, Payment
from stms_billing.infrastructure.observability.metrics import webhook_failure_counter, webhook_latency_histogram

logger = logging.getLogger(__name__)

PAYMENT_BOUNCED = "PAYMENT_BOUNCED"
PAYMENT_REMINDER = "PAYMENT_REMINDER"


def payment_bounced_event(payment: Payment, restored_balance: str) -> Dict[str, Any]:
    return {
        "event_type": PAYMENT_BOUNCED,
        "payment_id": payment.id,
        "payment_number": payment.payment_number,
        "client_id": payment.client_id,
        "builty_id": payment.builty_id,
        "amount": str(payment.amount),
        "client_outstanding": restored_balance,
        "occurred_at": datetime.utcnow().isoformat(),
    }


def payment_reminder_event(builty: Builty, days_overdue: int) -> Dict[str, Any]:
    return {
        "event_type": PAYMENT_REMINDER,
        "builty_id": builty.id,
        "builty_number": builty.builty_number,
        "client_id": builty.client_id,
        "balance_amount": str(builty.balance_amount),
        "payment_due_date": builty.payment_due_date.isoformat() if builty.payment_due_date else None,
        "days_overdue": days_overdue,
        "occurred_at": datetime.utcnow().isoformat(),
    }


class BillingEventClient:
    """Client for posting billing events (bounced cheques, payment reminders)"""

    def __init__(self, webhook_url: str | None = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.webhook_url = webhook_url or settings.billing_events_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds
        self.transport = transport

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Send a billing event with retry logic.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base, ... between attempts
        - Retries on 4xx/5xx responses and network failures
        - Tracks latency histogram and failure counter

        Args:
            payload: Event body; must carry an event_type key
        """
        event_type = payload.get("event_type", "UNKNOWN")
        attempt = 0
        async with httpx.AsyncClient(transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload, timeout=self.timeout)
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.labels(event_type=event_type).inc()

                    if attempt >= self.max_retries:
                        logger.error(
                            "Billing event delivery failed",
                            extra={"event_type": event_type, "attempts": attempt, "error": str(e)},
                        )
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
