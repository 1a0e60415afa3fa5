"""Pydantic schemas for API request/response validation.

Money crosses the wire as decimal strings ("1250.50"). JSON floats are
rejected outright; integers are accepted since they are exact.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from stms_billing.domain.credit import CreditOutcome
from stms_billing.domain.exceptions import InvalidAmount
from stms_billing.domain.money import Money, parse_quantity
from stms_billing.domain.statuses import (
    BuiltyPaymentStatus,
    ChargeType,
    ExpenseStatus,
    IncomeStatus,
    PaymentMode,
    PaymentStatus,
    PaymentType,
    ReconciliationState,
    TripStatus,
)


def _parse_money(value: Any) -> Decimal:
    if isinstance(value, float):
        raise ValueError("monetary amounts must be sent as decimal strings, not floats")
    try:
        return Money.of(value).amount
    except InvalidAmount as e:
        raise ValueError(str(e)) from e


def _parse_quantity(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, float):
        raise ValueError("quantities must be sent as decimal strings, not floats")
    try:
        return parse_quantity(value)
    except InvalidAmount as e:
        raise ValueError(str(e)) from e


MoneyField = Annotated[Decimal, BeforeValidator(_parse_money)]
QuantityField = Annotated[Optional[Decimal], BeforeValidator(_parse_quantity)]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ----------------------------------------------------------------------
# Clients and credit
# ----------------------------------------------------------------------


class ClientCreate(BaseModel):
    """Request body for POST /v1/clients"""

    name: str = Field(..., min_length=1, max_length=100)
    client_number: Optional[str] = Field(None, max_length=20)
    credit_limit: MoneyField = Field(Decimal("0.00"), description="0 means no limit is enforced")
    credit_days: Optional[int] = Field(None, ge=0, description="Defaults to the configured credit period")
    registration_date: Optional[date] = None


class ClientResponse(ORMModel):
    id: int
    client_number: Optional[str]
    name: str
    credit_limit: MoneyField
    credit_days: int
    outstanding_balance: MoneyField
    is_active: bool
    registration_date: date
    version: int


class CreditCheckRequest(BaseModel):
    amount: MoneyField = Field(..., description="Proposed new charge")


class CreditCheckResponse(ORMModel):
    client_id: int
    outcome: CreditOutcome
    ok: bool
    proposed_charge: MoneyField
    projected_outstanding: MoneyField
    credit_limit: MoneyField
    excess: MoneyField
    available_credit: Optional[MoneyField] = Field(None, description="Empty when the client has no limit")
    credit_utilization: Optional[Decimal] = Field(None, description="Percent of the limit in use")


class BalanceCheckResponse(ORMModel):
    """Recorded outstanding balance vs. the sum of the client's open documents"""

    client_id: int
    recorded: MoneyField
    expected: MoneyField
    discrepancy: MoneyField
    consistent: bool


# ----------------------------------------------------------------------
# Fleet and trips
# ----------------------------------------------------------------------


class TruckCreate(BaseModel):
    registration_number: str = Field(..., min_length=1, max_length=20)


class TruckResponse(ORMModel):
    id: int
    registration_number: str
    is_active: bool


class DriverCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    license_number: Optional[str] = Field(None, max_length=30)


class DriverResponse(ORMModel):
    id: int
    name: str
    license_number: Optional[str]
    is_active: bool


class TripCreate(BaseModel):
    """Request body for POST /v1/trips"""

    trip_number: str = Field(..., min_length=1, max_length=20)
    truck_id: int
    driver_id: int
    client_id: Optional[int] = None
    source: str = ""
    destination: str = ""
    planned_start: Optional[datetime] = None
    planned_end: Optional[datetime] = None
    trip_charges: Optional[MoneyField] = None


class TripStart(BaseModel):
    started_at: Optional[datetime] = None


class TripComplete(BaseModel):
    ended_at: Optional[datetime] = None
    distance_km: QuantityField = None
    fuel_consumed: QuantityField = None


class TripResponse(ORMModel):
    id: int
    trip_number: str
    truck_id: int
    driver_id: int
    client_id: Optional[int]
    source: str
    destination: str
    status: TripStatus
    planned_start: Optional[datetime]
    planned_end: Optional[datetime]
    actual_start: Optional[datetime]
    actual_end: Optional[datetime]
    distance_km: Optional[Decimal]
    fuel_consumed: Optional[Decimal]
    trip_charges: Optional[MoneyField]
    version: int
    credit_check: Optional[CreditCheckResponse] = None


class TripProfitLossResponse(ORMModel):
    trip_id: int
    total_income: MoneyField
    total_expenses: MoneyField
    profit_loss: MoneyField
    is_profitable: bool


# ----------------------------------------------------------------------
# Builties
# ----------------------------------------------------------------------


class BuiltyCreate(BaseModel):
    """Request body for POST /v1/builties"""

    builty_number: str = Field(..., min_length=1, max_length=20)
    trip_id: int
    client_id: int
    freight_charges: MoneyField
    loading_charges: MoneyField = Decimal("0.00")
    unloading_charges: MoneyField = Decimal("0.00")
    other_charges: MoneyField = Decimal("0.00")
    gst_amount: MoneyField = Field(Decimal("0.00"), description="Opaque tax amount, not computed here")
    builty_date: Optional[date] = None
    payment_due_date: Optional[date] = None
    consignor_name: str = ""
    consignee_name: str = ""
    goods_description: str = ""
    goods_weight: QuantityField = None
    remarks: Optional[str] = None


class BuiltyAmend(BaseModel):
    """Charge correction; omitted fields keep their stored values"""

    freight_charges: Optional[MoneyField] = None
    loading_charges: Optional[MoneyField] = None
    unloading_charges: Optional[MoneyField] = None
    other_charges: Optional[MoneyField] = None
    gst_amount: Optional[MoneyField] = None
    payment_due_date: Optional[date] = None
    remarks: Optional[str] = None


class ChargeAdd(BaseModel):
    charge_type: ChargeType
    amount: MoneyField


class BuiltyResponse(ORMModel):
    id: int
    builty_number: str
    trip_id: int
    client_id: int
    freight_charges: MoneyField
    loading_charges: MoneyField
    unloading_charges: MoneyField
    other_charges: MoneyField
    gst_amount: MoneyField
    total_charges: MoneyField
    advance_received: MoneyField
    balance_amount: MoneyField
    payment_status: BuiltyPaymentStatus
    builty_date: date
    payment_due_date: Optional[date]
    consignor_name: str
    consignee_name: str
    goods_description: str
    goods_weight: Optional[Decimal]
    remarks: Optional[str]
    version: int
    credit_check: Optional[CreditCheckResponse] = None


class ReminderResponse(BaseModel):
    builty_id: int
    days_overdue: int
    queued: bool


# ----------------------------------------------------------------------
# Payments
# ----------------------------------------------------------------------


class PaymentCreate(BaseModel):
    """Request body for POST /v1/payments"""

    client_id: int
    builty_id: Optional[int] = None
    amount: MoneyField
    payment_number: Optional[str] = Field(None, max_length=50)
    payment_date: Optional[date] = None
    payment_type: Optional[PaymentType] = None
    payment_mode: PaymentMode = PaymentMode.CASH
    status: PaymentStatus = Field(PaymentStatus.RECEIVED, description="RECEIVED/CLEARED apply immediately")
    cheque_number: Optional[str] = None
    bank_name: Optional[str] = None
    transaction_reference: Optional[str] = None
    remarks: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    cleared_date: Optional[date] = None


class PaymentAmend(BaseModel):
    amount: Optional[MoneyField] = None
    payment_mode: Optional[PaymentMode] = None
    payment_date: Optional[date] = None
    transaction_reference: Optional[str] = None
    remarks: Optional[str] = None


class PaymentResponse(ORMModel):
    id: int
    payment_number: Optional[str]
    client_id: int
    builty_id: Optional[int]
    payment_date: date
    amount: MoneyField
    payment_type: Optional[PaymentType]
    payment_mode: PaymentMode
    status: PaymentStatus
    cleared_date: Optional[date]
    reconciliation: ReconciliationState
    client_effect: MoneyField
    cheque_number: Optional[str]
    bank_name: Optional[str]
    transaction_reference: Optional[str]
    remarks: Optional[str]
    version: int


# ----------------------------------------------------------------------
# Trip ledger
# ----------------------------------------------------------------------


class ExpenseCreate(BaseModel):
    amount: MoneyField
    expense_date: Optional[date] = None
    category: str = Field("GENERAL", max_length=50)
    description: str = ""
    truck_id: Optional[int] = None
    driver_id: Optional[int] = None


class ExpenseResponse(ORMModel):
    id: int
    amount: MoneyField
    expense_date: date
    category: str
    description: str
    trip_id: Optional[int]
    truck_id: Optional[int]
    driver_id: Optional[int]
    payment_status: ExpenseStatus


class IncomeCreate(BaseModel):
    amount: MoneyField
    income_date: Optional[date] = None
    category: str = Field("FREIGHT", max_length=50)
    description: str = ""
    client_id: Optional[int] = None
    builty_id: Optional[int] = None


class IncomeReceive(BaseModel):
    amount: MoneyField


class IncomeResponse(ORMModel):
    id: int
    amount: MoneyField
    income_date: date
    category: str
    description: str
    trip_id: Optional[int]
    client_id: Optional[int]
    builty_id: Optional[int]
    received_amount: MoneyField
    unpaid_amount: MoneyField
    payment_status: IncomeStatus


# ----------------------------------------------------------------------
# Reports
# ----------------------------------------------------------------------


class AgingBucketSchema(BaseModel):
    amount: MoneyField
    count: int


class AgingResponse(BaseModel):
    as_of: date
    buckets: Dict[str, AgingBucketSchema]
    total: MoneyField


class OutstandingResponse(BaseModel):
    client_id: Optional[int] = None
    total_outstanding: MoneyField
    builty_count: int


class BuiltyListResponse(BaseModel):
    builties: List[BuiltyResponse]
