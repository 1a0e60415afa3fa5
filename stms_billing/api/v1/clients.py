"""Client endpoints - registration, credit checks and balance audits"""

import logging
from dataclasses import replace
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Request, Response

from stms_billing.api.dependencies import get_ledger_store, get_request_id
from stms_billing.api.errors import domain_errors
from stms_billing.api.v1.schemas import (
    BalanceCheckResponse,
    BuiltyResponse,
    ClientCreate,
    ClientResponse,
    CreditCheckRequest,
    CreditCheckResponse,
    PaymentResponse,
)
from stms_billing.config import settings
from stms_billing.domain import credit
from stms_billing.domain.credit import CreditDecision
from stms_billing.domain.exceptions import InvalidStateTransition
from stms_billing.domain.models import Client
from stms_billing.domain.money import Money
from stms_billing.domain.reporting import check_client_balance
from stms_billing.infrastructure.database.store import SqlLedgerStore
from stms_billing.infrastructure.observability.metrics import record_credit_check

router = APIRouter()


def check_credit(client: Client, amount: Money, request_id: str) -> CreditDecision:
    """
    Evaluate a proposed charge against the client's limit.

    In strict mode WOULD_EXCEED raises CreditLimitExceeded; in advisory mode it
    is logged and returned so the response can carry the warning.
    """
    decision = credit.evaluate(client, amount)
    record_credit_check(decision.ok, settings.credit_enforcement)
    if not decision.ok:
        logging.warning(
            "Credit limit would be exceeded",
            extra={
                "request_id": request_id,
                "client_id": client.id,
                "excess": str(decision.excess),
                "enforcement": settings.credit_enforcement,
            },
        )
        if settings.credit_enforcement == "strict":
            credit.enforce(decision)
    return decision


@router.post("/clients", response_model=ClientResponse, status_code=201)
def create_client(body: ClientCreate, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    request_id = get_request_id(request)
    with domain_errors(request_id, "create_client"):
        client = store.add(
            Client(
                name=body.name,
                client_number=body.client_number,
                credit_limit=body.credit_limit,
                credit_days=body.credit_days if body.credit_days is not None else settings.default_credit_days,
                registration_date=body.registration_date or date.today(),
            )
        )
    return ClientResponse.model_validate(client)


@router.get("/clients", response_model=List[ClientResponse])
def list_clients(active_only: bool = True, store: SqlLedgerStore = Depends(get_ledger_store)):
    clients = store.clients.list_active() if active_only else store.clients.list_all()
    return [ClientResponse.model_validate(c) for c in clients]


@router.get("/clients/{client_id}", response_model=ClientResponse)
def get_client(client_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "get_client"):
        return ClientResponse.model_validate(store.get_client(client_id))


@router.post("/clients/{client_id}/credit-check", response_model=CreditCheckResponse)
def credit_check(
    client_id: int,
    body: CreditCheckRequest,
    request: Request,
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """Advisory check only; never blocks, whatever the enforcement mode"""
    with domain_errors(get_request_id(request), "credit_check"):
        client = store.get_client(client_id)
        decision = credit.evaluate(client, Money.of(body.amount))
    record_credit_check(decision.ok, "advisory")
    return CreditCheckResponse.model_validate(decision)


@router.get("/clients/{client_id}/balance-check", response_model=BalanceCheckResponse)
def balance_check(client_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    """Compare the running outstanding balance with the client's open builties and income"""
    request_id = get_request_id(request)
    with domain_errors(request_id, "balance_check"):
        client = store.get_client(client_id)
        check = check_client_balance(client, store.builties_for_client(client_id), store.incomes_for_client(client_id))
    if not check.consistent:
        logging.error(
            "Client balance out of step with its documents",
            extra={"request_id": request_id, "client_id": client_id, "discrepancy": str(check.discrepancy)},
        )
    return BalanceCheckResponse.model_validate(check)


@router.get("/clients/{client_id}/builties", response_model=List[BuiltyResponse])
def client_builties(client_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "client_builties"):
        store.get_client(client_id)
    return [BuiltyResponse.model_validate(b) for b in store.builties_for_client(client_id)]


@router.get("/clients/{client_id}/payments", response_model=List[PaymentResponse])
def client_payments(client_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "client_payments"):
        store.get_client(client_id)
    return [PaymentResponse.model_validate(p) for p in store.payments.list_by_client(client_id)]


@router.post("/clients/{client_id}/deactivate", response_model=ClientResponse)
def deactivate_client(client_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    """Soft delete; the client keeps its history but cannot be billed"""
    with domain_errors(get_request_id(request), "deactivate_client"):
        client = store.get_client(client_id)
        client = store.commit([replace(client, is_active=False)])[0]
    return ClientResponse.model_validate(client)


@router.delete("/clients/{client_id}", status_code=204)
def delete_client(client_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    """Hard delete, only for clients that were never billed"""
    with domain_errors(get_request_id(request), "delete_client"):
        client = store.get_client(client_id)
        if store.clients.has_financial_history(client_id):
            raise InvalidStateTransition(f"Client {client_id} has financial history; deactivate it instead")
        store.commit([], deletes=[client])
    return Response(status_code=204)
