"""Builty endpoints - registering, amending and withdrawing freight charges"""

import time
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response

from stms_billing.api.dependencies import (
    get_event_client,
    get_ledger_store,
    get_reconciliation_service,
    get_request_id,
)
from stms_billing.api.errors import domain_errors
from stms_billing.api.v1.clients import check_credit
from stms_billing.api.v1.schemas import (
    BuiltyAmend,
    BuiltyCreate,
    BuiltyResponse,
    ChargeAdd,
    CreditCheckResponse,
    PaymentResponse,
    ReminderResponse,
)
from stms_billing.config import settings
from stms_billing.domain.exceptions import InvalidStateTransition
from stms_billing.domain.models import Builty
from stms_billing.domain.money import Money
from stms_billing.domain.reconciliation import ReconciliationService
from stms_billing.domain.reporting import UNPAID_STATUSES, due_date_of
from stms_billing.domain.statuses import BuiltyPaymentStatus
from stms_billing.infrastructure.clients.events import BillingEventClient, payment_reminder_event
from stms_billing.infrastructure.database.store import SqlLedgerStore
from stms_billing.infrastructure.observability.logging import log_reconciliation
from stms_billing.infrastructure.observability.metrics import record_reconciliation
from stms_billing.utils.date_utils import days_between

router = APIRouter()


@router.post("/builties", response_model=BuiltyResponse, status_code=201)
def create_builty(
    body: BuiltyCreate,
    request: Request,
    store: SqlLedgerStore = Depends(get_ledger_store),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Register a new builty and add its balance to the client's outstanding.

    Flow:
    1. Build the builty snapshot (balance and status are derived)
    2. Credit check against the client's limit (strict mode rejects with 402)
    3. Register the charge: builty insert + client balance update in one commit
    """
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, "register_charge"):
        builty = Builty(
            builty_number=body.builty_number,
            trip_id=body.trip_id,
            client_id=body.client_id,
            freight_charges=body.freight_charges,
            loading_charges=body.loading_charges,
            unloading_charges=body.unloading_charges,
            other_charges=body.other_charges,
            gst_amount=body.gst_amount,
            builty_date=body.builty_date or date.today(),
            payment_due_date=body.payment_due_date,
            consignor_name=body.consignor_name,
            consignee_name=body.consignee_name,
            goods_description=body.goods_description,
            goods_weight=body.goods_weight,
            remarks=body.remarks,
        )
        decision = check_credit(store.get_client(body.client_id), builty.balance_amount, request_id)
        builty = service.register_charge(builty)

    record_reconciliation("register_charge", "success")
    log_reconciliation(
        request_id,
        "register_charge",
        "success",
        (time.time() - start_time) * 1000,
        client_id=builty.client_id,
        builty_id=builty.id,
        amount=str(builty.balance_amount),
    )

    response = BuiltyResponse.model_validate(builty)
    response.credit_check = CreditCheckResponse.model_validate(decision)
    return response


@router.get("/builties", response_model=List[BuiltyResponse])
def list_builties(
    payment_status: Optional[BuiltyPaymentStatus] = None,
    trip_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """Filter by payment status, trip or builty date range (filters combine)"""
    if trip_id is not None:
        builties = store.builties.list_by_trip(trip_id)
    elif start_date is not None or end_date is not None:
        builties = store.builties.list_by_date_range(start_date or date.min, end_date or date.max)
    elif payment_status is not None:
        builties = store.builties.list_by_payment_status([payment_status.value])
    else:
        builties = store.builties.list_all()

    if payment_status is not None:
        builties = [b for b in builties if b.payment_status == payment_status]
    if start_date is not None:
        builties = [b for b in builties if b.builty_date >= start_date]
    if end_date is not None:
        builties = [b for b in builties if b.builty_date <= end_date]
    return [BuiltyResponse.model_validate(b) for b in builties]


@router.get("/builties/{builty_id}", response_model=BuiltyResponse)
def get_builty(builty_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "get_builty"):
        return BuiltyResponse.model_validate(store.get_builty(builty_id))


@router.get("/builties/{builty_id}/payments", response_model=List[PaymentResponse])
def builty_payments(builty_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "builty_payments"):
        store.get_builty(builty_id)
    return [PaymentResponse.model_validate(p) for p in store.payments.list_by_builty(builty_id)]


@router.patch("/builties/{builty_id}", response_model=BuiltyResponse)
def amend_builty(
    builty_id: int,
    body: BuiltyAmend,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Correct charges; the client's balance moves by the change in balance"""
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, "register_charge"):
        builty = service.amend_charges(builty_id, body.model_dump(exclude_none=True))

    record_reconciliation("register_charge", "success")
    log_reconciliation(
        request_id,
        "register_charge",
        "success",
        (time.time() - start_time) * 1000,
        client_id=builty.client_id,
        builty_id=builty.id,
        amount=str(builty.total_charges),
    )
    return BuiltyResponse.model_validate(builty)


@router.post("/builties/{builty_id}/charges", response_model=BuiltyResponse)
def add_charge(
    builty_id: int,
    body: ChargeAdd,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, "add_charge"):
        builty = service.add_charge(builty_id, body.charge_type, Money.of(body.amount))

    record_reconciliation("add_charge", "success")
    log_reconciliation(
        request_id,
        "add_charge",
        "success",
        (time.time() - start_time) * 1000,
        client_id=builty.client_id,
        builty_id=builty.id,
        amount=str(body.amount),
    )
    return BuiltyResponse.model_validate(builty)


@router.delete("/builties/{builty_id}", status_code=204)
def withdraw_builty(
    builty_id: int,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Remove an unpaid builty; refused once any payment references it"""
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, "withdraw_charge"):
        builty = service.withdraw_charge(builty_id)

    record_reconciliation("withdraw_charge", "success")
    log_reconciliation(
        request_id,
        "withdraw_charge",
        "success",
        (time.time() - start_time) * 1000,
        client_id=builty.client_id,
        builty_id=builty.id,
        amount=str(builty.balance_amount),
    )
    return Response(status_code=204)


@router.post("/builties/{builty_id}/reminder", response_model=ReminderResponse, status_code=202)
def send_reminder(
    builty_id: int,
    background_tasks: BackgroundTasks,
    request: Request,
    as_of: Optional[date] = None,
    store: SqlLedgerStore = Depends(get_ledger_store),
    event_client: BillingEventClient = Depends(get_event_client),
):
    """Queue a PAYMENT_REMINDER event for an overdue builty"""
    today = as_of or date.today()
    with domain_errors(get_request_id(request), "send_reminder"):
        builty = store.get_builty(builty_id)
        if builty.payment_status not in UNPAID_STATUSES:
            raise InvalidStateTransition(f"Builty {builty.builty_number} is already paid")
        due = due_date_of(builty, settings.default_credit_days)
        if due >= today:
            raise InvalidStateTransition(f"Builty {builty.builty_number} is not overdue until after {due}")

    days_overdue = days_between(due, today)
    background_tasks.add_task(event_client.send_event, payment_reminder_event(builty, days_overdue))
    return ReminderResponse(builty_id=builty.id, days_overdue=days_overdue, queued=True)
