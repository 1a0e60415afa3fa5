"""Domain models - immutable snapshots of the ledger entities.

Entities reference each other by id only. Every snapshot is frozen; changes are
made with dataclasses.replace(), which re-runs __post_init__ so derived fields
(builty balance/status, income status) can only come from the balance engine.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from stms_billing.domain.balance import derive_balance, derive_income_status
from stms_billing.domain.exceptions import InvalidAmount
from stms_billing.domain.money import Money, parse_quantity
from stms_billing.domain.statuses import (
    BuiltyPaymentStatus,
    ExpenseStatus,
    IncomeStatus,
    PaymentMode,
    PaymentStatus,
    PaymentType,
    ReconciliationState,
    TripStatus,
)


def _set(obj, name: str, value) -> None:
    object.__setattr__(obj, name, value)


def _money_fields(obj, *names: str) -> None:
    """Coerce string/Decimal inputs on the named fields to Money"""
    for name in names:
        value = getattr(obj, name)
        if value is not None:
            _set(obj, name, Money.of(value))


def _non_negative(obj, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if value is not None and value.is_negative():
            raise InvalidAmount(f"{name} cannot be negative: {value}")


def _positive(obj, name: str) -> None:
    if not getattr(obj, name).is_positive():
        raise InvalidAmount(f"{name} must be greater than zero")


@dataclass(frozen=True)
class Client:
    """Billed party; outstanding_balance is written only by reconciliation"""

    name: str
    credit_limit: Money = field(default_factory=Money.zero)
    credit_days: int = 30
    outstanding_balance: Money = field(default_factory=Money.zero)
    is_active: bool = True
    client_number: Optional[str] = None
    registration_date: date = field(default_factory=date.today)
    id: Optional[int] = None
    version: int = 0

    def __post_init__(self) -> None:
        _money_fields(self, "credit_limit", "outstanding_balance")
        _non_negative(self, "credit_limit", "outstanding_balance")
        if self.credit_days < 0:
            raise InvalidAmount("credit_days cannot be negative")

    @property
    def has_credit_limit(self) -> bool:
        # A zero limit means credit is not enforced for this client
        return self.credit_limit.is_positive()


@dataclass(frozen=True)
class Truck:
    registration_number: str
    is_active: bool = True
    id: Optional[int] = None
    version: int = 0


@dataclass(frozen=True)
class Driver:
    name: str
    license_number: Optional[str] = None
    is_active: bool = True
    id: Optional[int] = None
    version: int = 0


@dataclass(frozen=True)
class Trip:
    """A truck run; owns its expense and income records"""

    trip_number: str
    truck_id: int
    driver_id: int
    client_id: Optional[int] = None
    source: str = ""
    destination: str = ""
    status: TripStatus = TripStatus.PENDING
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    distance_km: Optional[Decimal] = None
    fuel_consumed: Optional[Decimal] = None
    trip_charges: Optional[Money] = None
    id: Optional[int] = None
    version: int = 0

    def __post_init__(self) -> None:
        _set(self, "status", TripStatus(self.status))
        _money_fields(self, "trip_charges")
        _non_negative(self, "trip_charges")
        for name in ("distance_km", "fuel_consumed"):
            value = getattr(self, name)
            if value is not None:
                value = parse_quantity(value)
                if value < 0:
                    raise InvalidAmount(f"{name} cannot be negative")
                _set(self, name, value)


@dataclass(frozen=True)
class Builty:
    """Freight invoice for one trip/client pair"""

    builty_number: str
    trip_id: int
    client_id: int
    freight_charges: Money
    loading_charges: Money = field(default_factory=Money.zero)
    unloading_charges: Money = field(default_factory=Money.zero)
    other_charges: Money = field(default_factory=Money.zero)
    gst_amount: Money = field(default_factory=Money.zero)
    advance_received: Money = field(default_factory=Money.zero)
    builty_date: date = field(default_factory=date.today)
    payment_due_date: Optional[date] = None
    consignor_name: str = ""
    consignee_name: str = ""
    goods_description: str = ""
    goods_weight: Optional[Decimal] = None
    remarks: Optional[str] = None
    id: Optional[int] = None
    version: int = 0

    # Derived; written only here
    total_charges: Money = field(init=False)
    balance_amount: Money = field(init=False)
    payment_status: BuiltyPaymentStatus = field(init=False)

    CHARGE_FIELDS = ("freight_charges", "loading_charges", "unloading_charges", "other_charges", "gst_amount")

    def __post_init__(self) -> None:
        _money_fields(self, *self.CHARGE_FIELDS, "advance_received")
        _positive(self, "freight_charges")
        _non_negative(self, *self.CHARGE_FIELDS, "advance_received")
        if self.goods_weight is not None:
            _set(self, "goods_weight", parse_quantity(self.goods_weight))

        total = sum(getattr(self, name) for name in self.CHARGE_FIELDS)
        balance, status = derive_balance(total, self.advance_received)
        _set(self, "total_charges", total)
        _set(self, "balance_amount", balance)
        _set(self, "payment_status", status)

    @property
    def is_settled(self) -> bool:
        return self.payment_status == BuiltyPaymentStatus.PAID


@dataclass(frozen=True)
class Payment:
    """Money received from a client, optionally against a specific builty"""

    client_id: int
    amount: Money
    builty_id: Optional[int] = None
    payment_number: Optional[str] = None
    payment_date: date = field(default_factory=date.today)
    payment_type: Optional[PaymentType] = None
    payment_mode: PaymentMode = PaymentMode.CASH
    status: PaymentStatus = PaymentStatus.RECEIVED
    cleared_date: Optional[date] = None
    reconciliation: ReconciliationState = ReconciliationState.UNAPPLIED
    client_effect: Money = field(default_factory=Money.zero)
    cheque_number: Optional[str] = None
    bank_name: Optional[str] = None
    transaction_reference: Optional[str] = None
    remarks: Optional[str] = None
    id: Optional[int] = None
    version: int = 0

    def __post_init__(self) -> None:
        _money_fields(self, "amount", "client_effect")
        _positive(self, "amount")
        _non_negative(self, "client_effect")
        _set(self, "status", PaymentStatus(self.status))
        _set(self, "payment_mode", PaymentMode(self.payment_mode))
        _set(self, "reconciliation", ReconciliationState(self.reconciliation))
        if self.payment_type is not None:
            _set(self, "payment_type", PaymentType(self.payment_type))

    @property
    def is_applied(self) -> bool:
        return self.reconciliation == ReconciliationState.APPLIED


@dataclass(frozen=True)
class Expense:
    amount: Money
    expense_date: date = field(default_factory=date.today)
    category: str = "GENERAL"
    description: str = ""
    trip_id: Optional[int] = None
    truck_id: Optional[int] = None
    driver_id: Optional[int] = None
    payment_status: ExpenseStatus = ExpenseStatus.PENDING
    id: Optional[int] = None
    version: int = 0

    def __post_init__(self) -> None:
        _money_fields(self, "amount")
        _positive(self, "amount")
        _set(self, "payment_status", ExpenseStatus(self.payment_status))


@dataclass(frozen=True)
class Income:
    amount: Money
    income_date: date = field(default_factory=date.today)
    category: str = "FREIGHT"
    description: str = ""
    trip_id: Optional[int] = None
    client_id: Optional[int] = None
    builty_id: Optional[int] = None
    received_amount: Money = field(default_factory=Money.zero)
    id: Optional[int] = None
    version: int = 0

    unpaid_amount: Money = field(init=False)
    payment_status: IncomeStatus = field(init=False)

    def __post_init__(self) -> None:
        _money_fields(self, "amount", "received_amount")
        _positive(self, "amount")
        _non_negative(self, "received_amount")
        unpaid, status = derive_income_status(self.amount, self.received_amount)
        _set(self, "unpaid_amount", unpaid)
        _set(self, "payment_status", status)

    @property
    def counts_towards_client_balance(self) -> bool:
        """Client receivable not covered by any builty"""
        return self.client_id is not None and self.builty_id is None
