"""SQLAlchemy ORM models for the billing ledger.

Money columns hold integer paise (suffix _paise) so no database float or
driver-specific decimal handling can touch an amount. Every table carries a
version column used for optimistic locking.
"""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ClientRow(Base):
    """Billed party with its running outstanding balance"""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_number = Column(String(20), unique=True, nullable=True)
    name = Column(String(100), nullable=False)
    credit_limit_paise = Column(BigInteger, nullable=False, default=0)
    credit_days = Column(Integer, nullable=False, default=30)
    outstanding_balance_paise = Column(BigInteger, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    registration_date = Column(Date, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    builties = relationship("BuiltyRow", back_populates="client")

    __mapper_args__ = {"version_id_col": version}


class TruckRow(Base):
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    registration_number = Column(String(20), unique=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class DriverRow(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    license_number = Column(String(30), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class TripRow(Base):
    """Truck run; expenses and incomes are deleted with it"""

    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_number = Column(String(20), unique=True, nullable=False)
    truck_id = Column(Integer, ForeignKey("trucks.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    source = Column(String(100), nullable=False, default="")
    destination = Column(String(100), nullable=False, default="")
    status = Column(String(20), nullable=False, default="PENDING", index=True)
    planned_start = Column(DateTime, nullable=True)
    planned_end = Column(DateTime, nullable=True)
    actual_start = Column(DateTime, nullable=True)
    actual_end = Column(DateTime, nullable=True)
    distance_km = Column(Numeric(10, 3, asdecimal=True), nullable=True)
    fuel_consumed = Column(Numeric(10, 3, asdecimal=True), nullable=True)
    trip_charges_paise = Column(BigInteger, nullable=True)
    version = Column(Integer, nullable=False)

    expenses = relationship("ExpenseRow", back_populates="trip", cascade="all, delete-orphan")
    incomes = relationship("IncomeRow", back_populates="trip", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}


class BuiltyRow(Base):
    """Freight invoice; balance and status columns are copies of derived values"""

    __tablename__ = "builties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    builty_number = Column(String(20), unique=True, nullable=False)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    freight_charges_paise = Column(BigInteger, nullable=False)
    loading_charges_paise = Column(BigInteger, nullable=False, default=0)
    unloading_charges_paise = Column(BigInteger, nullable=False, default=0)
    other_charges_paise = Column(BigInteger, nullable=False, default=0)
    gst_amount_paise = Column(BigInteger, nullable=False, default=0)
    total_charges_paise = Column(BigInteger, nullable=False)
    advance_received_paise = Column(BigInteger, nullable=False, default=0)
    balance_amount_paise = Column(BigInteger, nullable=False)
    payment_status = Column(String(20), nullable=False, index=True)
    builty_date = Column(Date, nullable=False, index=True)
    payment_due_date = Column(Date, nullable=True, index=True)
    consignor_name = Column(String(100), nullable=False, default="")
    consignee_name = Column(String(100), nullable=False, default="")
    goods_description = Column(String(200), nullable=False, default="")
    goods_weight = Column(Numeric(10, 3, asdecimal=True), nullable=True)
    remarks = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)

    client = relationship("ClientRow", back_populates="builties")

    __mapper_args__ = {"version_id_col": version}


class PaymentRow(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_number = Column(String(50), unique=True, nullable=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    builty_id = Column(Integer, ForeignKey("builties.id"), nullable=True, index=True)
    payment_date = Column(Date, nullable=False, index=True)
    amount_paise = Column(BigInteger, nullable=False)
    payment_type = Column(String(20), nullable=True)
    payment_mode = Column(String(20), nullable=False, default="CASH")
    status = Column(String(20), nullable=False, index=True)
    cleared_date = Column(Date, nullable=True)
    reconciliation = Column(String(20), nullable=False, default="UNAPPLIED")
    client_effect_paise = Column(BigInteger, nullable=False, default=0)
    cheque_number = Column(String(50), nullable=True)
    bank_name = Column(String(100), nullable=True)
    transaction_reference = Column(String(100), nullable=True)
    remarks = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class ExpenseRow(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount_paise = Column(BigInteger, nullable=False)
    expense_date = Column(Date, nullable=False, index=True)
    category = Column(String(50), nullable=False)
    description = Column(String(200), nullable=False, default="")
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=True, index=True)
    truck_id = Column(Integer, ForeignKey("trucks.id"), nullable=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    payment_status = Column(String(20), nullable=False, default="PENDING")
    version = Column(Integer, nullable=False)

    trip = relationship("TripRow", back_populates="expenses")

    __mapper_args__ = {"version_id_col": version}


class IncomeRow(Base):
    __tablename__ = "incomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount_paise = Column(BigInteger, nullable=False)
    income_date = Column(Date, nullable=False, index=True)
    category = Column(String(50), nullable=False)
    description = Column(String(200), nullable=False, default="")
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    builty_id = Column(Integer, ForeignKey("builties.id"), nullable=True)
    received_amount_paise = Column(BigInteger, nullable=False, default=0)
    payment_status = Column(String(20), nullable=False, default="PENDING")
    version = Column(Integer, nullable=False)

    trip = relationship("TripRow", back_populates="incomes")

    __mapper_args__ = {"version_id_col": version}
