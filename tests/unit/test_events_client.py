"""Unit tests for the billing event webhook client"""

import asyncio
import json
import pytest
import httpx
from datetime import date
from stms_billing.domain.models import Builty, Payment
from stms_billing.infrastructure.clients.events import (
    PAYMENT_BOUNCED,
    PAYMENT_REMINDER,
    BillingEventClient,
    payment_bounced_event,
    payment_reminder_event,
)


def _client(handler, max_retries: int = 3) -> BillingEventClient:
    client = BillingEventClient(webhook_url="http://events.test/hook", transport=httpx.MockTransport(handler))
    client.max_retries = max_retries
    client.backoff_base = 0
    return client


def test_send_event_posts_json_payload():
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(200)

    asyncio.run(_client(handler).send_event({"event_type": PAYMENT_BOUNCED, "payment_id": 1}))

    assert received == [("POST", "http://events.test/hook", {"event_type": PAYMENT_BOUNCED, "payment_id": 1})]


def test_send_event_retries_server_errors():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(503 if len(attempts) < 3 else 200)

    asyncio.run(_client(handler, max_retries=5).send_event({"event_type": PAYMENT_REMINDER}))
    assert len(attempts) == 3


def test_send_event_gives_up_after_max_retries():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(httpx.ConnectError):
        asyncio.run(_client(handler, max_retries=2).send_event({"event_type": PAYMENT_REMINDER}))
    assert len(attempts) == 2


def test_event_payloads_carry_money_as_strings():
    payment = Payment(id=5, client_id=2, builty_id=3, amount="3000.00", payment_number="PAY-5")
    bounced = payment_bounced_event(payment, "10000.00")
    assert bounced["event_type"] == PAYMENT_BOUNCED
    assert bounced["amount"] == "3000.00"
    assert bounced["client_outstanding"] == "10000.00"

    builty = Builty(
        id=3,
        builty_number="BLT-0003",
        trip_id=1,
        client_id=2,
        freight_charges="7500.00",
        payment_due_date=date(2024, 1, 31),
    )
    reminder = payment_reminder_event(builty, days_overdue=12)
    assert reminder["event_type"] == PAYMENT_REMINDER
    assert reminder["balance_amount"] == "7500.00"
    assert reminder["payment_due_date"] == "2024-01-31"
    assert reminder["days_overdue"] == 12
