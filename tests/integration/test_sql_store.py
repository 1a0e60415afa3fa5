"""Integration tests for the SQLAlchemy ledger store"""

import pytest
from dataclasses import replace
from datetime import date
from sqlalchemy.orm import Session
from stms_billing.domain.exceptions import ConcurrentModification, DuplicateResource, ResourceNotFound
from stms_billing.domain.models import Builty, Client, Driver, Expense, Income, Payment, Trip, Truck
from stms_billing.domain.money import Money
from stms_billing.domain.reconciliation import ReconciliationService
from stms_billing.domain.statuses import BuiltyPaymentStatus, PaymentStatus, ReconciliationState
from stms_billing.infrastructure.database.models import ClientRow, TruckRow
from stms_billing.infrastructure.database.store import SqlLedgerStore


@pytest.fixture
def store(db: Session) -> SqlLedgerStore:
    return SqlLedgerStore(db)


@pytest.fixture
def seeded(store: SqlLedgerStore):
    client = store.add(Client(name="Acme Logistics", credit_limit="50000.00"))
    truck = store.add(Truck(registration_number="MH12AB1234"))
    driver = store.add(Driver(name="Ramesh Kumar"))
    trip = store.add(Trip(trip_number="TRP-001", truck_id=truck.id, driver_id=driver.id, client_id=client.id))
    return client, trip


def test_money_survives_round_trip_exactly(store: SqlLedgerStore, seeded):
    client, trip = seeded
    service = ReconciliationService(store)
    builty = service.register_charge(
        Builty(
            builty_number="BLT-0001",
            trip_id=trip.id,
            client_id=client.id,
            freight_charges="10000.01",
            gst_amount="1800.00",
            goods_weight="12.345",
            builty_date=date(2024, 1, 10),
        )
    )

    loaded = store.get_builty(builty.id)
    assert loaded.total_charges == Money.of("11800.01")
    assert loaded.balance_amount == Money.of("11800.01")
    assert loaded.goods_weight == builty.goods_weight
    assert loaded.payment_due_date == date(2024, 2, 9)
    assert store.get_client(client.id).outstanding_balance == Money.of("11800.01")


def test_versions_start_at_one_and_increment(store: SqlLedgerStore):
    client = store.add(Client(name="Versioned"))
    assert client.version == 1

    updated = store.commit([replace(client, name="Renamed")])[0]
    assert updated.version == 2


def test_stale_snapshot_is_rejected(store: SqlLedgerStore):
    client = store.add(Client(name="Versioned"))
    store.commit([replace(client, name="First writer")])

    with pytest.raises(ConcurrentModification):
        store.commit([replace(client, name="Second writer")])
    assert store.get_client(client.id).name == "First writer"


def test_concurrent_session_update_is_detected(db: Session, store: SqlLedgerStore):
    """A write from another session between our read and our commit fails the flush"""
    client = store.add(Client(name="Shared"))
    snapshot = store.get_client(client.id)

    other = Session(bind=db.get_bind())
    try:
        row = other.get(ClientRow, client.id)
        row.outstanding_balance_paise = 10_000
        other.commit()
    finally:
        other.close()

    with pytest.raises(ConcurrentModification):
        store.commit([replace(snapshot, outstanding_balance="5.00")])


def test_commit_is_all_or_nothing(store: SqlLedgerStore, seeded):
    client, trip = seeded
    stale = store.get_client(client.id)
    store.commit([replace(stale, name="Moved on")])

    new_truck = Truck(registration_number="KA01AA0001")
    with pytest.raises(ConcurrentModification):
        store.commit([new_truck, replace(stale, name="Stale")])

    assert store.db.query(TruckRow).filter(TruckRow.registration_number == "KA01AA0001").count() == 0
    assert store.get_client(client.id).name == "Moved on"


def test_duplicate_builty_number_maps_to_duplicate_resource(store: SqlLedgerStore, seeded):
    client, trip = seeded
    builty = Builty(builty_number="BLT-DUP", trip_id=trip.id, client_id=client.id, freight_charges="100.00")
    store.commit([builty])

    with pytest.raises(DuplicateResource):
        store.commit([builty])


def test_missing_entity_raises_not_found(store: SqlLedgerStore):
    with pytest.raises(ResourceNotFound) as exc_info:
        store.get_payment(404)
    assert exc_info.value.resource == "Payment"


def test_payment_apply_and_reverse_through_sql(store: SqlLedgerStore, seeded):
    client, trip = seeded
    service = ReconciliationService(store)
    builty = service.register_charge(
        Builty(builty_number="BLT-0002", trip_id=trip.id, client_id=client.id, freight_charges="10000.00")
    )

    payment = service.record_payment(Payment(client_id=client.id, builty_id=builty.id, amount="3000.00"))
    assert payment.reconciliation == ReconciliationState.APPLIED
    assert store.get_builty(builty.id).payment_status == BuiltyPaymentStatus.PARTIAL
    assert store.get_client(client.id).outstanding_balance == Money.of("7000.00")

    bounced = service.change_payment_status(payment.id, PaymentStatus.BOUNCED)
    assert bounced.reconciliation == ReconciliationState.REVERSED
    assert store.get_builty(builty.id).balance_amount == Money.of("10000.00")
    assert store.get_client(client.id).outstanding_balance == Money.of("10000.00")


def test_filtered_queries(store: SqlLedgerStore, seeded):
    client, trip = seeded
    service = ReconciliationService(store)
    jan = service.register_charge(
        Builty(
            builty_number="BLT-JAN",
            trip_id=trip.id,
            client_id=client.id,
            freight_charges="100.00",
            builty_date=date(2024, 1, 15),
        )
    )
    feb = service.register_charge(
        Builty(
            builty_number="BLT-FEB",
            trip_id=trip.id,
            client_id=client.id,
            freight_charges="200.00",
            builty_date=date(2024, 2, 15),
        )
    )
    service.record_payment(Payment(client_id=client.id, builty_id=feb.id, amount="200.00"))

    assert [b.id for b in store.builties.list_by_date_range(date(2024, 1, 1), date(2024, 1, 31))] == [jan.id]
    assert [b.id for b in store.builties.list_by_payment_status([BuiltyPaymentStatus.PAID])] == [feb.id]
    assert {b.id for b in store.builties.list_by_trip(trip.id)} == {jan.id, feb.id}
    assert len(store.payments.list_by_builty(feb.id)) == 1
    assert [c.id for c in store.clients.list_with_outstanding()] == [client.id]
    assert store.clients.has_financial_history(client.id)


def test_deleting_trip_removes_its_ledger(store: SqlLedgerStore, seeded):
    client, trip = seeded
    expense = store.add(Expense(amount="450.00", trip_id=trip.id, category="TOLL"))
    income = store.add(Income(amount="900.00", trip_id=trip.id))

    store.commit([], deletes=[store.get_trip(trip.id)])

    with pytest.raises(ResourceNotFound):
        store.get_expense(expense.id)
    with pytest.raises(ResourceNotFound):
        store.get_income(income.id)
