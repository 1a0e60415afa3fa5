"""Receivables reports - aging, outstanding totals, overdue and over-limit lists"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends

from stms_billing.api.dependencies import get_ledger_store
from stms_billing.api.v1.schemas import (
    AgingBucketSchema,
    AgingResponse,
    BuiltyResponse,
    ClientResponse,
    OutstandingResponse,
)
from stms_billing.config import settings
from stms_billing.domain import reporting
from stms_billing.domain.reporting import UNPAID_STATUSES
from stms_billing.infrastructure.database.store import SqlLedgerStore

router = APIRouter()


def _open_builties(store: SqlLedgerStore, client_id: Optional[int]):
    if client_id is not None:
        return reporting.pending_builties(store.builties_for_client(client_id))
    return reporting.pending_builties(store.builties.list_by_payment_status(s.value for s in UNPAID_STATUSES))


@router.get("/reports/aging", response_model=AgingResponse)
def aging_report(
    as_of: Optional[date] = None,
    client_id: Optional[int] = None,
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """Outstanding builty balances by age: CURRENT, 30_DAYS, 60_DAYS, 90_PLUS_DAYS"""
    summary = reporting.aging_summary(_open_builties(store, client_id), as_of or date.today())
    return AgingResponse(
        as_of=summary.as_of,
        buckets={
            bucket.value: AgingBucketSchema(amount=summary.amounts[bucket].amount, count=summary.counts[bucket])
            for bucket in reporting.AgingBucket
        },
        total=summary.total.amount,
    )


@router.get("/reports/outstanding", response_model=OutstandingResponse)
def outstanding_report(client_id: Optional[int] = None, store: SqlLedgerStore = Depends(get_ledger_store)):
    builties = _open_builties(store, client_id)
    return OutstandingResponse(
        client_id=client_id,
        total_outstanding=reporting.total_outstanding(builties).amount,
        builty_count=len(builties),
    )


@router.get("/reports/pending", response_model=List[BuiltyResponse])
def pending_report(client_id: Optional[int] = None, store: SqlLedgerStore = Depends(get_ledger_store)):
    return [BuiltyResponse.model_validate(b) for b in _open_builties(store, client_id)]


@router.get("/reports/overdue", response_model=List[BuiltyResponse])
def overdue_report(
    as_of: Optional[date] = None,
    client_id: Optional[int] = None,
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    overdue = reporting.overdue_builties(
        _open_builties(store, client_id), as_of or date.today(), settings.default_credit_days
    )
    return [BuiltyResponse.model_validate(b) for b in overdue]


@router.get("/reports/clients-over-limit", response_model=List[ClientResponse])
def clients_over_limit_report(store: SqlLedgerStore = Depends(get_ledger_store)):
    over = reporting.clients_over_limit(store.clients.list_with_outstanding())
    return [ClientResponse.model_validate(c) for c in over]
