"""Translation of domain errors into HTTP responses"""

import logging
from contextlib import contextmanager

from fastapi import HTTPException

from stms_billing.domain.exceptions import (
    BusinessValidationError,
    ConcurrentModification,
    CreditLimitExceeded,
    DomainException,
    DuplicateResource,
    InvalidAmount,
    InvalidStateTransition,
    ResourceNotFound,
)
from stms_billing.infrastructure.observability.metrics import record_reconciliation

STATUS_CODES = {
    InvalidAmount: 422,
    BusinessValidationError: 422,
    InvalidStateTransition: 409,
    ConcurrentModification: 409,
    DuplicateResource: 409,
    ResourceNotFound: 404,
    CreditLimitExceeded: 402,
}


def status_code_for(error: DomainException) -> int:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 400


@contextmanager
def domain_errors(request_id: str, operation: str):
    """
    Map DomainException raised inside the block to an HTTPException.

    Write conflicts that survived the service's retries count as "conflict",
    everything else the domain refused counts as "rejected".
    """
    try:
        yield
    except DomainException as e:
        outcome = "conflict" if isinstance(e, ConcurrentModification) else "rejected"
        record_reconciliation(operation, outcome)
        logging.warning(
            f"{operation} {outcome}: {e}",
            extra={"request_id": request_id, "operation": operation, "error_type": type(e).__name__},
        )
        detail = str(e)
        if isinstance(e, CreditLimitExceeded):
            detail = {"message": str(e), "client_id": e.client_id, "excess": str(e.excess)}
        raise HTTPException(status_code=status_code_for(e), detail=detail) from e
