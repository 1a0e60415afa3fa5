"""SQLAlchemy implementation of the LedgerStore protocol"""

import logging
from typing import List, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stms_billing.domain.exceptions import ConcurrentModification, DomainException, DuplicateResource
from stms_billing.domain.models import Builty, Client, Driver, Expense, Income, Payment, Trip, Truck
from stms_billing.infrastructure.database.repositories import (
    BuiltyRepository,
    ClientRepository,
    DriverRepository,
    ExpenseRepository,
    IncomeRepository,
    PaymentRepository,
    TripRepository,
    TruckRepository,
)

logger = logging.getLogger(__name__)


class SqlLedgerStore:
    """
    One store per request session.

    commit() stages every save and delete, flushes once and commits. The
    version_id_col on each table turns the flush into a conditional write:
    if another transaction bumped a row since it was read, SQLAlchemy raises
    StaleDataError and nothing is written.
    """

    def __init__(self, db: Session):
        self.db = db
        self.clients = ClientRepository(db)
        self.trucks = TruckRepository(db)
        self.drivers = DriverRepository(db)
        self.trips = TripRepository(db)
        self.builties = BuiltyRepository(db)
        self.payments = PaymentRepository(db)
        self.expenses = ExpenseRepository(db)
        self.incomes = IncomeRepository(db)
        self._repositories = {
            Client: self.clients,
            Truck: self.trucks,
            Driver: self.drivers,
            Trip: self.trips,
            Builty: self.builties,
            Payment: self.payments,
            Expense: self.expenses,
            Income: self.incomes,
        }

    def get_client(self, client_id: int) -> Client:
        return self.clients.get(client_id)

    def get_trip(self, trip_id: int) -> Trip:
        return self.trips.get(trip_id)

    def get_builty(self, builty_id: int) -> Builty:
        return self.builties.get(builty_id)

    def get_payment(self, payment_id: int) -> Payment:
        return self.payments.get(payment_id)

    def get_income(self, income_id: int) -> Income:
        return self.incomes.get(income_id)

    def get_expense(self, expense_id: int) -> Expense:
        return self.expenses.get(expense_id)

    def builties_for_client(self, client_id: int) -> List[Builty]:
        return self.builties.list_by_client(client_id)

    def incomes_for_client(self, client_id: int) -> List[Income]:
        return self.incomes.list_by_client(client_id)

    def builty_number_exists(self, builty_number: str) -> bool:
        return self.builties.exists_number(builty_number)

    def has_payments(self, builty_id: int) -> bool:
        return self.payments.exists_for_builty(builty_id)

    def add(self, entity):
        return self.commit([entity])[0]

    def commit(self, saves: Sequence, deletes: Sequence = ()) -> List:
        try:
            staged = [(self._repositories[type(e)], self._repositories[type(e)].stage(e)) for e in saves]
            for entity in deletes:
                self._repositories[type(entity)].stage_delete(entity)
            self.db.flush()
            saved = [repository.to_domain(row) for repository, row in staged]
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise ConcurrentModification(f"Concurrent update detected: {e}") from e
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Integrity error on commit", extra={"error": str(e.orig)})
            raise DuplicateResource("A record with the same unique number already exists") from e
        except DomainException:
            self.db.rollback()
            raise
        return saved

    def rollback(self) -> None:
        self.db.rollback()
