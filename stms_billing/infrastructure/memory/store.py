"""In-process ledger store with optimistic version checks"""

import threading
from dataclasses import replace
from itertools import count
from typing import Dict, List, Sequence, Type

from stms_billing.domain.exceptions import ConcurrentModification, DuplicateResource, ResourceNotFound
from stms_billing.domain.models import Builty, Client, Driver, Expense, Income, Payment, Trip, Truck

ENTITY_TYPES: tuple[Type, ...] = (Client, Truck, Driver, Trip, Builty, Payment, Expense, Income)


class InMemoryLedgerStore:
    """
    Dict-backed implementation of the LedgerStore protocol.

    Snapshots are immutable, so reads hand out the stored objects directly.
    commit() validates every version before writing anything, under one lock,
    which gives the same all-or-nothing guarantee as a database transaction.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tables: Dict[Type, Dict[int, object]] = {t: {} for t in ENTITY_TYPES}
        self._ids = {t: count(1) for t in ENTITY_TYPES}

    def _get(self, entity_type: Type, entity_id: int):
        try:
            return self._tables[entity_type][entity_id]
        except KeyError:
            raise ResourceNotFound(entity_type.__name__, entity_id) from None

    def get_client(self, client_id: int) -> Client:
        return self._get(Client, client_id)

    def get_trip(self, trip_id: int) -> Trip:
        return self._get(Trip, trip_id)

    def get_builty(self, builty_id: int) -> Builty:
        return self._get(Builty, builty_id)

    def get_payment(self, payment_id: int) -> Payment:
        return self._get(Payment, payment_id)

    def get_income(self, income_id: int) -> Income:
        return self._get(Income, income_id)

    def get_expense(self, expense_id: int) -> Expense:
        return self._get(Expense, expense_id)

    def builties_for_client(self, client_id: int) -> List[Builty]:
        return [b for b in self._tables[Builty].values() if b.client_id == client_id]

    def incomes_for_client(self, client_id: int) -> List[Income]:
        return [i for i in self._tables[Income].values() if i.client_id == client_id]

    def builty_number_exists(self, builty_number: str) -> bool:
        return any(b.builty_number == builty_number for b in self._tables[Builty].values())

    def has_payments(self, builty_id: int) -> bool:
        return any(p.builty_id == builty_id for p in self._tables[Payment].values())

    def add(self, entity):
        """Insert a reference entity (client, truck, driver, trip) outside reconciliation"""
        return self.commit([entity])[0]

    def commit(self, saves: Sequence, deletes: Sequence = ()) -> List:
        with self._lock:
            for entity in list(saves) + list(deletes):
                if entity.id is None:
                    continue
                stored = self._get(type(entity), entity.id)
                if stored.version != entity.version:
                    raise ConcurrentModification(
                        f"{type(entity).__name__} {entity.id} changed (expected v{entity.version}, found v{stored.version})"
                    )
            self._check_unique(saves)

            saved = []
            for entity in saves:
                table = self._tables[type(entity)]
                entity_id = entity.id if entity.id is not None else next(self._ids[type(entity)])
                snapshot = replace(entity, id=entity_id, version=entity.version + 1)
                table[entity_id] = snapshot
                saved.append(snapshot)
            for entity in deletes:
                del self._tables[type(entity)][entity.id]
                if isinstance(entity, Trip):
                    self._drop_trip_ledger(entity.id)
            return saved

    def rollback(self) -> None:
        # Nothing is staged outside commit()
        pass

    def _drop_trip_ledger(self, trip_id: int) -> None:
        for entity_type in (Expense, Income):
            table = self._tables[entity_type]
            for entity_id in [k for k, v in table.items() if v.trip_id == trip_id]:
                del table[entity_id]

    def _check_unique(self, saves: Sequence) -> None:
        for entity in saves:
            if isinstance(entity, Builty) and entity.id is None and self.builty_number_exists(entity.builty_number):
                raise DuplicateResource(f"Builty number already exists: {entity.builty_number}")
