"""Data access layer mapping ORM rows to ledger snapshots"""

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from stms_billing.domain.exceptions import ConcurrentModification, ResourceNotFound
from stms_billing.domain.models import Builty, Client, Driver, Expense, Income, Payment, Trip, Truck
from stms_billing.domain.money import Money
from stms_billing.infrastructure.database.models import (
    BuiltyRow,
    ClientRow,
    DriverRow,
    ExpenseRow,
    IncomeRow,
    PaymentRow,
    TripRow,
    TruckRow,
)


def _paise(amount: Optional[Money]) -> Optional[int]:
    return None if amount is None else amount.to_minor_units()


def _money(paise: Optional[int]) -> Optional[Money]:
    return None if paise is None else Money.from_minor_units(paise)


class _Repository:
    """Shared load/stage/delete logic; subclasses map fields"""

    row_type = None
    resource = ""

    def __init__(self, db: Session):
        self.db = db

    def _row(self, entity_id: int):
        row = self.db.get(self.row_type, entity_id)
        if row is None:
            raise ResourceNotFound(self.resource, entity_id)
        return row

    def get(self, entity_id: int):
        return self.to_domain(self._row(entity_id))

    def stage(self, entity):
        """Add or update the row for entity in the session (no flush)"""
        if entity.id is None:
            row = self.row_type()
            self.fill(row, entity)
            self.db.add(row)
            return row

        row = self._row(entity.id)
        if row.version != entity.version:
            raise ConcurrentModification(
                f"{self.resource} {entity.id} changed (expected v{entity.version}, found v{row.version})"
            )
        self.fill(row, entity)
        return row

    def stage_delete(self, entity) -> None:
        row = self._row(entity.id)
        if row.version != entity.version:
            raise ConcurrentModification(f"{self.resource} {entity.id} changed before delete")
        self.db.delete(row)

    def _all(self, *criteria) -> list:
        rows = self.db.query(self.row_type).filter(*criteria).order_by(self.row_type.id).all()
        return [self.to_domain(r) for r in rows]

    def fill(self, row, entity) -> None:
        raise NotImplementedError

    def to_domain(self, row):
        raise NotImplementedError


class ClientRepository(_Repository):
    """Repository for clients"""

    row_type = ClientRow
    resource = "Client"

    def fill(self, row: ClientRow, c: Client) -> None:
        row.client_number = c.client_number
        row.name = c.name
        row.credit_limit_paise = _paise(c.credit_limit)
        row.credit_days = c.credit_days
        row.outstanding_balance_paise = _paise(c.outstanding_balance)
        row.is_active = c.is_active
        row.registration_date = c.registration_date

    def to_domain(self, row: ClientRow) -> Client:
        return Client(
            id=row.id,
            version=row.version,
            client_number=row.client_number,
            name=row.name,
            credit_limit=_money(row.credit_limit_paise),
            credit_days=row.credit_days,
            outstanding_balance=_money(row.outstanding_balance_paise),
            is_active=row.is_active,
            registration_date=row.registration_date,
        )

    def list_all(self) -> List[Client]:
        return self._all()

    def list_active(self) -> List[Client]:
        return self._all(ClientRow.is_active.is_(True))

    def list_with_outstanding(self) -> List[Client]:
        return self._all(ClientRow.is_active.is_(True), ClientRow.outstanding_balance_paise > 0)

    def has_financial_history(self, client_id: int) -> bool:
        """True once any builty, payment or income references the client"""
        for row_type in (BuiltyRow, PaymentRow, IncomeRow):
            if self.db.query(row_type.id).filter(row_type.client_id == client_id).first() is not None:
                return True
        return False


class TruckRepository(_Repository):
    row_type = TruckRow
    resource = "Truck"

    def fill(self, row: TruckRow, t: Truck) -> None:
        row.registration_number = t.registration_number
        row.is_active = t.is_active

    def to_domain(self, row: TruckRow) -> Truck:
        return Truck(id=row.id, version=row.version, registration_number=row.registration_number, is_active=row.is_active)


class DriverRepository(_Repository):
    row_type = DriverRow
    resource = "Driver"

    def fill(self, row: DriverRow, d: Driver) -> None:
        row.name = d.name
        row.license_number = d.license_number
        row.is_active = d.is_active

    def to_domain(self, row: DriverRow) -> Driver:
        return Driver(
            id=row.id, version=row.version, name=row.name, license_number=row.license_number, is_active=row.is_active
        )


class TripRepository(_Repository):
    row_type = TripRow
    resource = "Trip"

    def fill(self, row: TripRow, t: Trip) -> None:
        row.trip_number = t.trip_number
        row.truck_id = t.truck_id
        row.driver_id = t.driver_id
        row.client_id = t.client_id
        row.source = t.source
        row.destination = t.destination
        row.status = t.status.value
        row.planned_start = t.planned_start
        row.planned_end = t.planned_end
        row.actual_start = t.actual_start
        row.actual_end = t.actual_end
        row.distance_km = t.distance_km
        row.fuel_consumed = t.fuel_consumed
        row.trip_charges_paise = _paise(t.trip_charges)

    def to_domain(self, row: TripRow) -> Trip:
        return Trip(
            id=row.id,
            version=row.version,
            trip_number=row.trip_number,
            truck_id=row.truck_id,
            driver_id=row.driver_id,
            client_id=row.client_id,
            source=row.source,
            destination=row.destination,
            status=row.status,
            planned_start=row.planned_start,
            planned_end=row.planned_end,
            actual_start=row.actual_start,
            actual_end=row.actual_end,
            distance_km=row.distance_km,
            fuel_consumed=row.fuel_consumed,
            trip_charges=_money(row.trip_charges_paise),
        )

    def list_all(self) -> List[Trip]:
        return self._all()

    def list_by_status(self, status: str) -> List[Trip]:
        return self._all(TripRow.status == status)


class BuiltyRepository(_Repository):
    """Repository for builties; derived columns are written from the snapshot"""

    row_type = BuiltyRow
    resource = "Builty"

    def fill(self, row: BuiltyRow, b: Builty) -> None:
        row.builty_number = b.builty_number
        row.trip_id = b.trip_id
        row.client_id = b.client_id
        row.freight_charges_paise = _paise(b.freight_charges)
        row.loading_charges_paise = _paise(b.loading_charges)
        row.unloading_charges_paise = _paise(b.unloading_charges)
        row.other_charges_paise = _paise(b.other_charges)
        row.gst_amount_paise = _paise(b.gst_amount)
        row.total_charges_paise = _paise(b.total_charges)
        row.advance_received_paise = _paise(b.advance_received)
        row.balance_amount_paise = _paise(b.balance_amount)
        row.payment_status = b.payment_status.value
        row.builty_date = b.builty_date
        row.payment_due_date = b.payment_due_date
        row.consignor_name = b.consignor_name
        row.consignee_name = b.consignee_name
        row.goods_description = b.goods_description
        row.goods_weight = b.goods_weight
        row.remarks = b.remarks

    def to_domain(self, row: BuiltyRow) -> Builty:
        # total, balance and status are rebuilt by the balance engine, not read back
        return Builty(
            id=row.id,
            version=row.version,
            builty_number=row.builty_number,
            trip_id=row.trip_id,
            client_id=row.client_id,
            freight_charges=_money(row.freight_charges_paise),
            loading_charges=_money(row.loading_charges_paise),
            unloading_charges=_money(row.unloading_charges_paise),
            other_charges=_money(row.other_charges_paise),
            gst_amount=_money(row.gst_amount_paise),
            advance_received=_money(row.advance_received_paise),
            builty_date=row.builty_date,
            payment_due_date=row.payment_due_date,
            consignor_name=row.consignor_name,
            consignee_name=row.consignee_name,
            goods_description=row.goods_description,
            goods_weight=row.goods_weight,
            remarks=row.remarks,
        )

    def list_all(self) -> List[Builty]:
        return self._all()

    def exists_number(self, builty_number: str) -> bool:
        return self.db.query(BuiltyRow.id).filter(BuiltyRow.builty_number == builty_number).first() is not None

    def list_by_client(self, client_id: int) -> List[Builty]:
        return self._all(BuiltyRow.client_id == client_id)

    def list_by_trip(self, trip_id: int) -> List[Builty]:
        return self._all(BuiltyRow.trip_id == trip_id)

    def list_by_payment_status(self, statuses: Iterable[str]) -> List[Builty]:
        return self._all(BuiltyRow.payment_status.in_([getattr(s, "value", s) for s in statuses]))

    def list_by_date_range(self, start: date, end: date) -> List[Builty]:
        return self._all(BuiltyRow.builty_date >= start, BuiltyRow.builty_date <= end)


class PaymentRepository(_Repository):
    row_type = PaymentRow
    resource = "Payment"

    def fill(self, row: PaymentRow, p: Payment) -> None:
        row.payment_number = p.payment_number
        row.client_id = p.client_id
        row.builty_id = p.builty_id
        row.payment_date = p.payment_date
        row.amount_paise = _paise(p.amount)
        row.payment_type = p.payment_type.value if p.payment_type else None
        row.payment_mode = p.payment_mode.value
        row.status = p.status.value
        row.cleared_date = p.cleared_date
        row.reconciliation = p.reconciliation.value
        row.client_effect_paise = _paise(p.client_effect)
        row.cheque_number = p.cheque_number
        row.bank_name = p.bank_name
        row.transaction_reference = p.transaction_reference
        row.remarks = p.remarks

    def to_domain(self, row: PaymentRow) -> Payment:
        return Payment(
            id=row.id,
            version=row.version,
            payment_number=row.payment_number,
            client_id=row.client_id,
            builty_id=row.builty_id,
            payment_date=row.payment_date,
            amount=_money(row.amount_paise),
            payment_type=row.payment_type,
            payment_mode=row.payment_mode,
            status=row.status,
            cleared_date=row.cleared_date,
            reconciliation=row.reconciliation,
            client_effect=_money(row.client_effect_paise),
            cheque_number=row.cheque_number,
            bank_name=row.bank_name,
            transaction_reference=row.transaction_reference,
            remarks=row.remarks,
        )

    def list_all(self) -> List[Payment]:
        return self._all()

    def exists_for_builty(self, builty_id: int) -> bool:
        return self.db.query(PaymentRow.id).filter(PaymentRow.builty_id == builty_id).first() is not None

    def list_by_client(self, client_id: int) -> List[Payment]:
        return self._all(PaymentRow.client_id == client_id)

    def list_by_builty(self, builty_id: int) -> List[Payment]:
        return self._all(PaymentRow.builty_id == builty_id)

    def list_by_status(self, status: str) -> List[Payment]:
        return self._all(PaymentRow.status == status)


class ExpenseRepository(_Repository):
    row_type = ExpenseRow
    resource = "Expense"

    def fill(self, row: ExpenseRow, e: Expense) -> None:
        row.amount_paise = _paise(e.amount)
        row.expense_date = e.expense_date
        row.category = e.category
        row.description = e.description
        row.trip_id = e.trip_id
        row.truck_id = e.truck_id
        row.driver_id = e.driver_id
        row.payment_status = e.payment_status.value

    def to_domain(self, row: ExpenseRow) -> Expense:
        return Expense(
            id=row.id,
            version=row.version,
            amount=_money(row.amount_paise),
            expense_date=row.expense_date,
            category=row.category,
            description=row.description,
            trip_id=row.trip_id,
            truck_id=row.truck_id,
            driver_id=row.driver_id,
            payment_status=row.payment_status,
        )

    def list_by_trip(self, trip_id: int) -> List[Expense]:
        return self._all(ExpenseRow.trip_id == trip_id)


class IncomeRepository(_Repository):
    row_type = IncomeRow
    resource = "Income"

    def fill(self, row: IncomeRow, i: Income) -> None:
        row.amount_paise = _paise(i.amount)
        row.income_date = i.income_date
        row.category = i.category
        row.description = i.description
        row.trip_id = i.trip_id
        row.client_id = i.client_id
        row.builty_id = i.builty_id
        row.received_amount_paise = _paise(i.received_amount)
        row.payment_status = i.payment_status.value

    def to_domain(self, row: IncomeRow) -> Income:
        return Income(
            id=row.id,
            version=row.version,
            amount=_money(row.amount_paise),
            income_date=row.income_date,
            category=row.category,
            description=row.description,
            trip_id=row.trip_id,
            client_id=row.client_id,
            builty_id=row.builty_id,
            received_amount=_money(row.received_amount_paise),
        )

    def list_by_trip(self, trip_id: int) -> List[Income]:
        return self._all(IncomeRow.trip_id == trip_id)

    def list_by_client(self, client_id: int) -> List[Income]:
        return self._all(IncomeRow.client_id == client_id)
