"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from stms_billing.config import settings
from stms_billing.domain.reconciliation import ReconciliationService
from stms_billing.infrastructure.clients.events import BillingEventClient
from stms_billing.infrastructure.database.session import get_db
from stms_billing.infrastructure.database.store import SqlLedgerStore


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_ledger_store(db: Session = Depends(get_db)) -> SqlLedgerStore:
    """Ledger store bound to the request's database session"""
    return SqlLedgerStore(db)


def get_reconciliation_service(store: SqlLedgerStore = Depends(get_ledger_store)) -> ReconciliationService:
    return ReconciliationService(store, max_attempts=settings.reconciliation_max_attempts)


def get_event_client() -> BillingEventClient:
    """Provide billing event webhook client instance"""
    return BillingEventClient()
