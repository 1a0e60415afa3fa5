"""Status enums and the transition rules between them"""

from enum import Enum

from stms_billing.domain.exceptions import InvalidStateTransition


class TripStatus(str, Enum):
    """Trip lifecycle

    Transitions:
    - PENDING → RUNNING: trip started
    - RUNNING → COMPLETED: trip finished
    - PENDING | RUNNING → CANCELLED
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class BuiltyPaymentStatus(str, Enum):
    """Derived by the balance engine, never set directly"""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class PaymentStatus(str, Enum):
    """Payment lifecycle

    Transitions:
    - PENDING → RECEIVED: money in hand, effect applied
    - RECEIVED → CLEARED: instrument cleared by the bank
    - RECEIVED | CLEARED → BOUNCED: effect reversed (terminal)
    """

    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    CLEARED = "CLEARED"
    BOUNCED = "BOUNCED"


class PaymentType(str, Enum):
    ADVANCE = "ADVANCE"
    PARTIAL = "PARTIAL"
    FULL = "FULL"


class PaymentMode(str, Enum):
    CASH = "CASH"
    CHEQUE = "CHEQUE"
    BANK_TRANSFER = "BANK_TRANSFER"
    UPI = "UPI"
    NEFT = "NEFT"
    RTGS = "RTGS"


class ReconciliationState(str, Enum):
    """Whether a payment's monetary effect is currently on the books"""

    UNAPPLIED = "UNAPPLIED"
    APPLIED = "APPLIED"
    REVERSED = "REVERSED"


class ExpenseStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class IncomeStatus(str, Enum):
    """Derived from amount vs received_amount"""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    RECEIVED = "RECEIVED"


class ChargeType(str, Enum):
    """Additional charge heads that can be added to an existing builty"""

    LOADING = "LOADING"
    UNLOADING = "UNLOADING"
    OTHER = "OTHER"


TRIP_TRANSITIONS: dict[TripStatus, frozenset[TripStatus]] = {
    TripStatus.PENDING: frozenset({TripStatus.RUNNING, TripStatus.CANCELLED}),
    TripStatus.RUNNING: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.RECEIVED}),
    PaymentStatus.RECEIVED: frozenset({PaymentStatus.CLEARED, PaymentStatus.BOUNCED}),
    PaymentStatus.CLEARED: frozenset({PaymentStatus.BOUNCED}),
    PaymentStatus.BOUNCED: frozenset(),
}

# Statuses in which a payment's money is considered in hand
SETTLED_PAYMENT_STATUSES = frozenset({PaymentStatus.RECEIVED, PaymentStatus.CLEARED})


def check_trip_transition(current: TripStatus, target: TripStatus) -> None:
    if target not in TRIP_TRANSITIONS[current]:
        raise InvalidStateTransition(f"Trip cannot move from {current.value} to {target.value}")


def check_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidStateTransition(f"Payment cannot move from {current.value} to {target.value}")
