"""Trip lifecycle transitions"""

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from stms_billing.domain.exceptions import BusinessValidationError, InvalidStateTransition
from stms_billing.domain.models import Builty, Expense, Income, Trip
from stms_billing.domain.statuses import ExpenseStatus, TripStatus, check_trip_transition
from stms_billing.utils.date_utils import to_naive_utc


def start_trip(trip: Trip, started_at: datetime) -> Trip:
    check_trip_transition(trip.status, TripStatus.RUNNING)
    return replace(trip, status=TripStatus.RUNNING, actual_start=to_naive_utc(started_at))


def complete_trip(
    trip: Trip,
    ended_at: datetime,
    distance_km: Optional[Decimal] = None,
    fuel_consumed: Optional[Decimal] = None,
) -> Trip:
    """
    Finish a running trip.

    actual_end is stamped here and nowhere else; a completed trip can never
    transition again, so it is set exactly once.
    """
    check_trip_transition(trip.status, TripStatus.COMPLETED)
    if trip.actual_end is not None:
        raise InvalidStateTransition(f"Trip {trip.id} already has an end time")
    ended_at = to_naive_utc(ended_at)
    if trip.actual_start is not None and ended_at < to_naive_utc(trip.actual_start):
        raise BusinessValidationError("End time cannot be before start time")

    return replace(
        trip,
        status=TripStatus.COMPLETED,
        actual_end=ended_at,
        distance_km=distance_km if distance_km is not None else trip.distance_km,
        fuel_consumed=fuel_consumed if fuel_consumed is not None else trip.fuel_consumed,
    )


def cancel_trip(trip: Trip) -> Trip:
    check_trip_transition(trip.status, TripStatus.CANCELLED)
    return replace(trip, status=TripStatus.CANCELLED)


def ensure_trip_deletable(
    trip: Trip,
    builties: Iterable[Builty],
    expenses: Iterable[Expense],
    incomes: Iterable[Income],
) -> None:
    """
    A trip (and with it its expenses and income) may only be removed while no
    money has moved against it.

    Builties and client income must be withdrawn first so the client's balance
    is corrected.
    """
    if any(True for _ in builties):
        raise InvalidStateTransition(f"Trip {trip.id} still has builties; withdraw them first")
    if any(e.payment_status == ExpenseStatus.PAID for e in expenses):
        raise InvalidStateTransition(f"Trip {trip.id} has paid expenses")
    incomes = list(incomes)
    if any(i.received_amount.is_positive() for i in incomes):
        raise InvalidStateTransition(f"Trip {trip.id} has received income")
    if any(i.counts_towards_client_balance for i in incomes):
        raise InvalidStateTransition(f"Trip {trip.id} has client income on the books; withdraw it first")


def pay_expense(expense: Expense) -> Expense:
    if expense.payment_status == ExpenseStatus.PAID:
        raise InvalidStateTransition(f"Expense {expense.id} is already paid")
    return replace(expense, payment_status=ExpenseStatus.PAID)
