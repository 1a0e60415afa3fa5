"""Trip endpoints - lifecycle, expenses, income and profit/loss"""

import time
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response

from stms_billing.api.dependencies import get_ledger_store, get_reconciliation_service, get_request_id
from stms_billing.api.errors import domain_errors
from stms_billing.api.v1.clients import check_credit
from stms_billing.api.v1.schemas import (
    CreditCheckResponse,
    ExpenseCreate,
    ExpenseResponse,
    IncomeCreate,
    IncomeReceive,
    IncomeResponse,
    TripComplete,
    TripCreate,
    TripProfitLossResponse,
    TripResponse,
    TripStart,
)
from stms_billing.domain import trips
from stms_billing.domain.models import Expense, Income, Trip
from stms_billing.domain.money import Money
from stms_billing.domain.pnl import profit_loss
from stms_billing.domain.reconciliation import ReconciliationService
from stms_billing.domain.statuses import TripStatus
from stms_billing.infrastructure.database.store import SqlLedgerStore
from stms_billing.infrastructure.observability.logging import log_reconciliation
from stms_billing.infrastructure.observability.metrics import record_reconciliation
from stms_billing.utils.date_utils import to_naive_utc

router = APIRouter()


@router.post("/trips", response_model=TripResponse, status_code=201)
def create_trip(body: TripCreate, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "create_trip"):
        store.trucks.get(body.truck_id)
        store.drivers.get(body.driver_id)
        if body.client_id is not None:
            store.get_client(body.client_id)
        trip = store.add(
            Trip(
                trip_number=body.trip_number,
                truck_id=body.truck_id,
                driver_id=body.driver_id,
                client_id=body.client_id,
                source=body.source,
                destination=body.destination,
                planned_start=to_naive_utc(body.planned_start),
                planned_end=to_naive_utc(body.planned_end),
                trip_charges=body.trip_charges,
            )
        )
    return TripResponse.model_validate(trip)


@router.get("/trips", response_model=List[TripResponse])
def list_trips(status: Optional[TripStatus] = None, store: SqlLedgerStore = Depends(get_ledger_store)):
    trips_found = store.trips.list_by_status(status.value) if status else store.trips.list_all()
    return [TripResponse.model_validate(t) for t in trips_found]


@router.get("/trips/{trip_id}", response_model=TripResponse)
def get_trip(trip_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "get_trip"):
        return TripResponse.model_validate(store.get_trip(trip_id))


@router.post("/trips/{trip_id}/start", response_model=TripResponse)
def start_trip(
    trip_id: int,
    request: Request,
    body: TripStart = TripStart(),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    PENDING -> RUNNING.

    A trip billed to a client with agreed trip charges goes through the credit
    check first.
    """
    request_id = get_request_id(request)
    decision = None
    with domain_errors(request_id, "start_trip"):
        trip = store.get_trip(trip_id)
        if trip.client_id is not None and trip.trip_charges is not None and trip.trip_charges.is_positive():
            decision = check_credit(store.get_client(trip.client_id), trip.trip_charges, request_id)
        trip = store.commit([trips.start_trip(trip, body.started_at or datetime.utcnow())])[0]

    response = TripResponse.model_validate(trip)
    if decision is not None:
        response.credit_check = CreditCheckResponse.model_validate(decision)
    return response


@router.post("/trips/{trip_id}/complete", response_model=TripResponse)
def complete_trip(
    trip_id: int,
    request: Request,
    body: TripComplete = TripComplete(),
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    with domain_errors(get_request_id(request), "complete_trip"):
        trip = store.get_trip(trip_id)
        completed = trips.complete_trip(
            trip,
            body.ended_at or datetime.utcnow(),
            distance_km=body.distance_km,
            fuel_consumed=body.fuel_consumed,
        )
        trip = store.commit([completed])[0]
    return TripResponse.model_validate(trip)


@router.post("/trips/{trip_id}/cancel", response_model=TripResponse)
def cancel_trip(trip_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "cancel_trip"):
        trip = store.commit([trips.cancel_trip(store.get_trip(trip_id))])[0]
    return TripResponse.model_validate(trip)


@router.delete("/trips/{trip_id}", status_code=204)
def delete_trip(trip_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    """Remove a trip together with its expenses and income"""
    with domain_errors(get_request_id(request), "delete_trip"):
        trip = store.get_trip(trip_id)
        trips.ensure_trip_deletable(
            trip,
            store.builties.list_by_trip(trip_id),
            store.expenses.list_by_trip(trip_id),
            store.incomes.list_by_trip(trip_id),
        )
        store.commit([], deletes=[trip])
    return Response(status_code=204)


@router.get("/trips/{trip_id}/pnl", response_model=TripProfitLossResponse)
def trip_pnl(trip_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "trip_pnl"):
        store.get_trip(trip_id)
    result = profit_loss(trip_id, store.expenses.list_by_trip(trip_id), store.incomes.list_by_trip(trip_id))
    return TripProfitLossResponse.model_validate(result)


# ----------------------------------------------------------------------
# Expenses
# ----------------------------------------------------------------------


@router.post("/trips/{trip_id}/expenses", response_model=ExpenseResponse, status_code=201)
def add_expense(trip_id: int, body: ExpenseCreate, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "add_expense"):
        trip = store.get_trip(trip_id)
        expense = store.add(
            Expense(
                amount=body.amount,
                expense_date=body.expense_date or date.today(),
                category=body.category,
                description=body.description,
                trip_id=trip.id,
                truck_id=body.truck_id if body.truck_id is not None else trip.truck_id,
                driver_id=body.driver_id if body.driver_id is not None else trip.driver_id,
            )
        )
    return ExpenseResponse.model_validate(expense)


@router.get("/trips/{trip_id}/expenses", response_model=List[ExpenseResponse])
def list_expenses(trip_id: int, store: SqlLedgerStore = Depends(get_ledger_store)):
    return [ExpenseResponse.model_validate(e) for e in store.expenses.list_by_trip(trip_id)]


@router.post("/expenses/{expense_id}/pay", response_model=ExpenseResponse)
def pay_expense(expense_id: int, request: Request, store: SqlLedgerStore = Depends(get_ledger_store)):
    with domain_errors(get_request_id(request), "pay_expense"):
        expense = store.commit([trips.pay_expense(store.get_expense(expense_id))])[0]
    return ExpenseResponse.model_validate(expense)


# ----------------------------------------------------------------------
# Income
# ----------------------------------------------------------------------


@router.post("/trips/{trip_id}/incomes", response_model=IncomeResponse, status_code=201)
def add_income(
    trip_id: int,
    body: IncomeCreate,
    request: Request,
    store: SqlLedgerStore = Depends(get_ledger_store),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Client income with no builty is added to the client's outstanding balance"""
    start_time = time.time()
    request_id = get_request_id(request)
    with domain_errors(request_id, "register_income"):
        store.get_trip(trip_id)
        if body.builty_id is not None:
            store.get_builty(body.builty_id)
        income = service.register_income(
            Income(
                amount=body.amount,
                income_date=body.income_date or date.today(),
                category=body.category,
                description=body.description,
                trip_id=trip_id,
                client_id=body.client_id,
                builty_id=body.builty_id,
            )
        )

    record_reconciliation("register_income", "success")
    log_reconciliation(
        request_id,
        "register_income",
        "success",
        (time.time() - start_time) * 1000,
        client_id=income.client_id,
        builty_id=income.builty_id,
        amount=str(income.amount),
    )
    return IncomeResponse.model_validate(income)


@router.get("/trips/{trip_id}/incomes", response_model=List[IncomeResponse])
def list_incomes(trip_id: int, store: SqlLedgerStore = Depends(get_ledger_store)):
    return [IncomeResponse.model_validate(i) for i in store.incomes.list_by_trip(trip_id)]


@router.post("/incomes/{income_id}/receive", response_model=IncomeResponse)
def receive_income(
    income_id: int,
    body: IncomeReceive,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    start_time = time.time()
    request_id = get_request_id(request)
    with domain_errors(request_id, "receive_income"):
        income = service.receive_income(income_id, Money.of(body.amount))

    record_reconciliation("receive_income", "success")
    log_reconciliation(
        request_id,
        "receive_income",
        "success",
        (time.time() - start_time) * 1000,
        client_id=income.client_id,
        amount=str(body.amount),
    )
    return IncomeResponse.model_validate(income)


@router.delete("/incomes/{income_id}", status_code=204)
def withdraw_income(
    income_id: int,
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    start_time = time.time()
    request_id = get_request_id(request)
    with domain_errors(request_id, "withdraw_income"):
        income = service.withdraw_income(income_id)

    record_reconciliation("withdraw_income", "success")
    log_reconciliation(
        request_id,
        "withdraw_income",
        "success",
        (time.time() - start_time) * 1000,
        client_id=income.client_id,
        amount=str(income.unpaid_amount),
    )
    return Response(status_code=204)
