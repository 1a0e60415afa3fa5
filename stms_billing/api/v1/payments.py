"""Payment endpoints - recording money received and driving payment status"""

import time
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from stms_billing.api.dependencies import (
    get_event_client,
    get_ledger_store,
    get_reconciliation_service,
    get_request_id,
)
from stms_billing.api.errors import domain_errors
from stms_billing.api.v1.schemas import PaymentAmend, PaymentCreate, PaymentResponse, PaymentStatusUpdate
from stms_billing.domain.models import Payment
from stms_billing.domain.money import Money
from stms_billing.domain.reconciliation import ReconciliationService
from stms_billing.domain.statuses import PaymentStatus
from stms_billing.infrastructure.clients.events import BillingEventClient, payment_bounced_event
from stms_billing.infrastructure.database.store import SqlLedgerStore
from stms_billing.infrastructure.observability.logging import log_reconciliation
from stms_billing.infrastructure.observability.metrics import record_reconciliation

router = APIRouter()


@router.post("/payments", response_model=PaymentResponse, status_code=201)
def record_payment(
    body: PaymentCreate,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """
    Record a payment from a client.

    RECEIVED and CLEARED payments are applied in the same commit: the builty's
    advance grows and the client's outstanding balance drops. PENDING payments
    are stored without any monetary effect until they move to RECEIVED.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, "record_payment"):
        payment = service.record_payment(
            Payment(
                client_id=body.client_id,
                builty_id=body.builty_id,
                amount=body.amount,
                payment_number=body.payment_number,
                payment_date=body.payment_date or date.today(),
                payment_type=body.payment_type,
                payment_mode=body.payment_mode,
                status=body.status,
                cleared_date=date.today() if body.status == PaymentStatus.CLEARED else None,
                cheque_number=body.cheque_number,
                bank_name=body.bank_name,
                transaction_reference=body.transaction_reference,
                remarks=body.remarks,
            )
        )

    record_reconciliation("record_payment", "success")
    log_reconciliation(
        request_id,
        "record_payment",
        "success",
        (time.time() - start_time) * 1000,
        client_id=payment.client_id,
        builty_id=payment.builty_id,
        payment_id=payment.id,
        amount=str(payment.amount),
    )
    return PaymentResponse.model_validate(payment)


@router.get("/payments", response_model=List[PaymentResponse])
def list_payments(status: Optional[PaymentStatus] = None, store: SqlLedgerStore = Depends(get_ledger_store)):
    payments = store.payments.list_by_status(status.value) if status else store.payments.list_all()
    return [PaymentResponse.model_validate(p) for p in payments]


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "get_payment"):
        return PaymentResponse.model_validate(store.get_payment(payment_id))


@router.post("/payments/{payment_id}/status", response_model=PaymentResponse)
def change_payment_status(
    payment_id: int,
    body: PaymentStatusUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    store: SqlLedgerStore = Depends(get_ledger_store),
    service: ReconciliationService = Depends(get_reconciliation_service),
    event_client: BillingEventClient = Depends(get_event_client),
):
    """
    Move a payment through PENDING -> RECEIVED -> CLEARED, or mark it BOUNCED.

    A bounce reverses the payment's effect and queues a PAYMENT_BOUNCED event.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    operation = "reverse_payment" if body.status == PaymentStatus.BOUNCED else "change_payment_status"

    with domain_errors(request_id, operation):
        payment = service.change_payment_status(payment_id, body.status, on=body.cleared_date)
        if payment.status == PaymentStatus.BOUNCED:
            client = store.get_client(payment.client_id)
            background_tasks.add_task(
                event_client.send_event, payment_bounced_event(payment, str(client.outstanding_balance))
            )

    record_reconciliation(operation, "success")
    log_reconciliation(
        request_id,
        operation,
        "success",
        (time.time() - start_time) * 1000,
        client_id=payment.client_id,
        builty_id=payment.builty_id,
        payment_id=payment.id,
        amount=str(payment.amount),
    )
    return PaymentResponse.model_validate(payment)


@router.patch("/payments/{payment_id}", response_model=PaymentResponse)
def amend_payment(
    payment_id: int,
    body: PaymentAmend,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Edit a payment that is still PENDING"""
    with domain_errors(get_request_id(request), "amend_payment"):
        payment = service.amend_payment(
            payment_id,
            amount=Money.of(body.amount) if body.amount is not None else None,
            payment_mode=body.payment_mode,
            payment_date=body.payment_date,
            transaction_reference=body.transaction_reference,
            remarks=body.remarks,
        )
    record_reconciliation("amend_payment", "success")
    return PaymentResponse.model_validate(payment)
