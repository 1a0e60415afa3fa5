"""Unit tests for the reconciliation service against the in-process ledger"""

import pytest
from dataclasses import replace
from datetime import date
from stms_billing.domain.exceptions import (
    BusinessValidationError,
    ConcurrentModification,
    DuplicateResource,
    InvalidAmount,
    InvalidStateTransition,
)
from stms_billing.domain.models import Builty, Client, Driver, Income, Payment, Trip, Truck
from stms_billing.domain.money import Money
from stms_billing.domain.reconciliation import ReconciliationService
from stms_billing.domain.reporting import expected_outstanding
from stms_billing.domain.statuses import (
    BuiltyPaymentStatus,
    ChargeType,
    PaymentStatus,
    PaymentType,
    ReconciliationState,
    TripStatus,
)
from stms_billing.infrastructure.memory.store import InMemoryLedgerStore


def _outstanding(ledger, client) -> Money:
    return ledger.get_client(client.id).outstanding_balance


def _assert_invariant(ledger, client) -> None:
    expected = expected_outstanding(ledger.builties_for_client(client.id), ledger.incomes_for_client(client.id))
    assert _outstanding(ledger, client) == expected


# ----------------------------------------------------------------------
# Charges
# ----------------------------------------------------------------------


def test_register_new_builty_adds_balance_to_client(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("10000.00", gst_amount="1800.00"))

    assert builty.id is not None
    assert builty.balance_amount == Money.of("11800.00")
    assert _outstanding(ledger, acme) == Money.of("11800.00")
    _assert_invariant(ledger, acme)


def test_new_builty_due_date_defaults_from_client_credit_days(ledger, service, trip):
    client = ledger.add(Client(name="Slow Payer", credit_days=45))
    builty = service.register_charge(
        Builty(
            builty_number="BLT-9000",
            trip_id=trip.id,
            client_id=client.id,
            freight_charges="100.00",
            builty_date=date(2024, 1, 1),
        )
    )
    assert builty.payment_due_date == date(2024, 2, 15)


def test_new_builty_rejects_advance(service, make_builty):
    with pytest.raises(BusinessValidationError):
        service.register_charge(make_builty(advance_received="100.00"))


def test_duplicate_builty_number_rejected(ledger, service, acme, make_builty):
    service.register_charge(make_builty(builty_number="BLT-DUP"))
    with pytest.raises(DuplicateResource):
        service.register_charge(make_builty(builty_number="BLT-DUP"))
    assert _outstanding(ledger, acme) == Money.of("10000.00")


def test_cannot_bill_inactive_client_or_cancelled_trip(ledger, service, acme, trip, make_builty):
    ledger.commit([replace(ledger.get_trip(trip.id), status=TripStatus.CANCELLED)])
    with pytest.raises(BusinessValidationError):
        service.register_charge(make_builty())

    inactive = ledger.add(Client(name="Gone", is_active=False))
    with pytest.raises(BusinessValidationError):
        service.register_charge(make_builty(client_id=inactive.id))


def test_amendment_after_full_payment_reopens_builty(ledger, service, acme, make_builty):
    """Scenario: PAID builty of 10,000 amended to 12,000 -> balance 2,000, PARTIAL"""
    builty = service.register_charge(make_builty("10000.00"))
    service.record_payment(Payment(client_id=acme.id, builty_id=builty.id, amount="10000.00"))
    assert ledger.get_builty(builty.id).payment_status == BuiltyPaymentStatus.PAID
    assert _outstanding(ledger, acme) == Money.zero()

    stored = ledger.get_builty(builty.id)
    amended = service.register_charge(replace(stored, freight_charges="12000.00"))

    assert amended.total_charges == Money.of("12000.00")
    assert amended.balance_amount == Money.of("2000.00")
    assert amended.payment_status == BuiltyPaymentStatus.PARTIAL
    assert _outstanding(ledger, acme) == Money.of("2000.00")
    _assert_invariant(ledger, acme)


def test_downward_correction_reduces_client_balance(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("10000.00", other_charges="500.00"))
    service.register_charge(replace(ledger.get_builty(builty.id), other_charges="0.00"))

    assert _outstanding(ledger, acme) == Money.of("10000.00")
    _assert_invariant(ledger, acme)


def test_amendment_cannot_touch_advance_or_move_builty(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty())
    with pytest.raises(BusinessValidationError):
        service.register_charge(replace(builty, advance_received="1.00"))

    other = ledger.add(Client(name="Other"))
    with pytest.raises(BusinessValidationError):
        service.register_charge(replace(builty, client_id=other.id))


def test_add_charge(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("10000.00"))
    updated = service.add_charge(builty.id, ChargeType.UNLOADING, Money.of("750.00"))

    assert updated.unloading_charges == Money.of("750.00")
    assert updated.total_charges == Money.of("10750.00")
    assert _outstanding(ledger, acme) == Money.of("10750.00")

    with pytest.raises(InvalidAmount):
        service.add_charge(builty.id, ChargeType.OTHER, Money.zero())


def test_stale_amendment_cannot_undo_added_charge(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("10000.00"))
    snapshot = ledger.get_builty(builty.id)
    service.add_charge(builty.id, ChargeType.LOADING, Money.of("500.00"))

    with pytest.raises(ConcurrentModification):
        service.register_charge(replace(snapshot, freight_charges="11000.00"))

    stored = ledger.get_builty(builty.id)
    assert stored.loading_charges == Money.of("500.00")
    assert stored.freight_charges == Money.of("10000.00")
    assert _outstanding(ledger, acme) == Money.of("10500.00")


def test_amend_charges_keeps_charges_added_meanwhile(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("10000.00"))
    service.add_charge(builty.id, ChargeType.LOADING, Money.of("500.00"))

    amended = service.amend_charges(builty.id, {"freight_charges": Money.of("11000.00")})

    assert amended.loading_charges == Money.of("500.00")
    assert amended.total_charges == Money.of("11500.00")
    assert _outstanding(ledger, acme) == Money.of("11500.00")


def test_amend_charges_rejects_non_charge_fields(service, make_builty):
    builty = service.register_charge(make_builty("10000.00"))

    with pytest.raises(BusinessValidationError):
        service.amend_charges(builty.id, {"advance_received": Money.of("1.00")})


def test_withdraw_charge(ledger, service, acme, make_builty):
    keep = service.register_charge(make_builty("5000.00"))
    drop = service.register_charge(make_builty("3000.00"))

    service.withdraw_charge(drop.id)

    assert _outstanding(ledger, acme) == Money.of("5000.00")
    assert [b.id for b in ledger.builties_for_client(acme.id)] == [keep.id]


def test_withdraw_charge_refused_once_paid_against(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("5000.00"))
    service.record_payment(Payment(client_id=acme.id, builty_id=builty.id, amount="100.00"))

    with pytest.raises(InvalidStateTransition):
        service.withdraw_charge(builty.id)


# ----------------------------------------------------------------------
# Payments
# ----------------------------------------------------------------------


def test_partial_then_full_payment(ledger, service, acme, make_builty):
    """Scenario: 10,000 builty, pay 4,000 then 6,000"""
    builty = service.register_charge(make_builty("10000.00"))
    assert builty.payment_status == BuiltyPaymentStatus.PENDING

    first = service.apply_payment(Payment(client_id=acme.id, builty_id=builty.id, amount="4000.00"))
    after_first = ledger.get_builty(builty.id)
    assert after_first.balance_amount == Money.of("6000.00")
    assert after_first.payment_status == BuiltyPaymentStatus.PARTIAL
    assert first.payment_type == PaymentType.ADVANCE
    assert first.reconciliation == ReconciliationState.APPLIED

    second = service.apply_payment(Payment(client_id=acme.id, builty_id=builty.id, amount="6000.00"))
    after_second = ledger.get_builty(builty.id)
    assert after_second.balance_amount == Money.zero()
    assert after_second.payment_status == BuiltyPaymentStatus.PAID
    assert second.payment_type == PaymentType.FULL

    assert _outstanding(ledger, acme) == Money.zero()
    _assert_invariant(ledger, acme)


def test_bounce_restores_exact_pre_payment_state(ledger, service, acme, make_builty):
    """Scenario: 3,000 applied then BOUNCED restores builty and client exactly"""
    builty = service.register_charge(make_builty("10000.55"))
    before_builty = ledger.get_builty(builty.id)
    before_client = ledger.get_client(acme.id)

    payment = service.record_payment(
        Payment(client_id=acme.id, builty_id=builty.id, amount="3000.00", payment_mode="CHEQUE")
    )
    assert ledger.get_builty(builty.id).balance_amount == Money.of("7000.55")
    assert _outstanding(ledger, acme) == Money.of("7000.55")

    bounced = service.change_payment_status(payment.id, PaymentStatus.BOUNCED)

    restored = ledger.get_builty(builty.id)
    assert bounced.status == PaymentStatus.BOUNCED
    assert bounced.reconciliation == ReconciliationState.REVERSED
    assert restored.advance_received == before_builty.advance_received
    assert restored.balance_amount == before_builty.balance_amount
    assert restored.payment_status == before_builty.payment_status
    assert _outstanding(ledger, acme) == before_client.outstanding_balance


def test_exact_balance_payment_is_paid(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("1234.56"))
    service.record_payment(Payment(client_id=acme.id, builty_id=builty.id, amount="1234.56"))
    assert ledger.get_builty(builty.id).payment_status == BuiltyPaymentStatus.PAID


def test_overpayment_only_settles_what_was_owed(ledger, service, acme, make_builty):
    other = service.register_charge(make_builty("500.00"))
    builty = service.register_charge(make_builty("1000.00"))

    payment = service.record_payment(Payment(client_id=acme.id, builty_id=builty.id, amount="1500.00"))

    assert ledger.get_builty(builty.id).balance_amount == Money.zero()
    assert payment.client_effect == Money.of("1000.00")
    assert _outstanding(ledger, acme) == other.balance_amount
    _assert_invariant(ledger, acme)

    service.reverse_payment(payment)
    assert _outstanding(ledger, acme) == Money.of("1500.00")
    _assert_invariant(ledger, acme)


def test_unmatched_payment_floors_client_balance_and_reverses_exactly(ledger, service, acme):
    payment = service.record_payment(Payment(client_id=acme.id, amount="500.00"))
    assert _outstanding(ledger, acme) == Money.zero()
    assert payment.client_effect == Money.zero()

    service.reverse_payment(payment)
    assert _outstanding(ledger, acme) == Money.zero()


def test_unmatched_payment_reduces_client_balance(ledger, service, acme, make_builty):
    service.register_charge(make_builty("10000.00"))
    payment = service.record_payment(Payment(client_id=acme.id, amount="3000.00"))

    assert _outstanding(ledger, acme) == Money.of("7000.00")
    service.reverse_payment(payment)
    assert _outstanding(ledger, acme) == Money.of("10000.00")


def test_reverse_requires_applied_payment(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty())
    pending = service.record_payment(
        Payment(client_id=acme.id, builty_id=builty.id, amount="100.00", status=PaymentStatus.PENDING)
    )
    with pytest.raises(InvalidStateTransition):
        service.reverse_payment(pending)


def test_double_reverse_is_rejected(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty())
    payment = service.record_payment(Payment(client_id=acme.id, builty_id=builty.id, amount="100.00"))

    service.reverse_payment(payment)
    with pytest.raises(InvalidStateTransition):
        service.reverse_payment(payment)
    assert _outstanding(ledger, acme) == Money.of("10000.00")


def test_stale_snapshot_cannot_apply_twice(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty())
    payment = service.record_payment(Payment(client_id=acme.id, builty_id=builty.id, amount="100.00"))

    stale = replace(payment, reconciliation=ReconciliationState.UNAPPLIED)
    with pytest.raises(InvalidStateTransition):
        service.apply_payment(stale)
    assert _outstanding(ledger, acme) == Money.of("9900.00")


def test_pending_payment_moves_money_only_when_received(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("10000.00"))
    pending = service.record_payment(
        Payment(client_id=acme.id, builty_id=builty.id, amount="2500.00", status=PaymentStatus.PENDING)
    )
    assert pending.reconciliation == ReconciliationState.UNAPPLIED
    assert _outstanding(ledger, acme) == Money.of("10000.00")

    received = service.change_payment_status(pending.id, PaymentStatus.RECEIVED)
    assert received.reconciliation == ReconciliationState.APPLIED
    assert _outstanding(ledger, acme) == Money.of("7500.00")

    cleared = service.change_payment_status(pending.id, PaymentStatus.CLEARED, on=date(2024, 2, 1))
    assert cleared.cleared_date == date(2024, 2, 1)
    assert _outstanding(ledger, acme) == Money.of("7500.00")
    _assert_invariant(ledger, acme)


def test_payment_state_machine_rejects_illegal_moves(ledger, service, acme):
    payment = service.record_payment(Payment(client_id=acme.id, amount="100.00"))
    with pytest.raises(InvalidStateTransition):
        service.change_payment_status(payment.id, PaymentStatus.PENDING)

    service.change_payment_status(payment.id, PaymentStatus.BOUNCED)
    with pytest.raises(InvalidStateTransition):
        service.change_payment_status(payment.id, PaymentStatus.RECEIVED)


def test_new_payment_cannot_be_recorded_bounced(service, acme):
    with pytest.raises(InvalidStateTransition):
        service.record_payment(Payment(client_id=acme.id, amount="100.00", status=PaymentStatus.BOUNCED))


def test_amend_payment_only_while_pending(ledger, service, acme):
    pending = service.record_payment(Payment(client_id=acme.id, amount="100.00", status=PaymentStatus.PENDING))
    amended = service.amend_payment(pending.id, amount=Money.of("150.00"), remarks="corrected")
    assert amended.amount == Money.of("150.00")
    assert amended.remarks == "corrected"

    received = service.record_payment(Payment(client_id=acme.id, amount="100.00"))
    with pytest.raises(InvalidStateTransition):
        service.amend_payment(received.id, amount=Money.of("1.00"))


def test_payment_against_another_clients_builty_changes_nothing(ledger, service, acme, make_builty):
    builty = service.register_charge(make_builty("10000.00"))
    stranger = ledger.add(Client(name="Stranger"))

    with pytest.raises(BusinessValidationError):
        service.record_payment(Payment(client_id=stranger.id, builty_id=builty.id, amount="100.00"))

    assert ledger.get_builty(builty.id).advance_received == Money.zero()
    assert _outstanding(ledger, acme) == Money.of("10000.00")


def test_invariant_holds_over_mixed_sequence(ledger, service, acme, make_builty):
    first = service.register_charge(make_builty("10000.00"))
    second = service.register_charge(make_builty("2500.25", loading_charges="120.10"))
    p1 = service.record_payment(Payment(client_id=acme.id, builty_id=first.id, amount="3333.33"))
    service.add_charge(first.id, ChargeType.OTHER, Money.of("99.99"))
    p2 = service.record_payment(Payment(client_id=acme.id, builty_id=second.id, amount="2620.35"))
    service.change_payment_status(p1.id, PaymentStatus.CLEARED)
    service.reverse_payment(p2)
    service.record_payment(Payment(client_id=acme.id, builty_id=first.id, amount="7000.00"))
    service.register_charge(replace(ledger.get_builty(second.id), freight_charges="2000.00"))

    _assert_invariant(ledger, acme)
    for builty in ledger.builties_for_client(acme.id):
        expected = builty.total_charges.subtract(builty.advance_received, clamp=True)
        assert builty.balance_amount == expected


# ----------------------------------------------------------------------
# Client income
# ----------------------------------------------------------------------


def test_client_income_counts_towards_outstanding(ledger, service, acme, trip):
    income = service.register_income(Income(amount="2000.00", client_id=acme.id, trip_id=trip.id, category="DETENTION"))
    assert _outstanding(ledger, acme) == Money.of("2000.00")

    income = service.receive_income(income.id, Money.of("500.00"))
    assert income.unpaid_amount == Money.of("1500.00")
    assert _outstanding(ledger, acme) == Money.of("1500.00")
    _assert_invariant(ledger, acme)

    with pytest.raises(InvalidStateTransition):
        service.withdraw_income(income.id)


def test_withdraw_unreceived_income(ledger, service, acme, trip):
    income = service.register_income(Income(amount="800.00", client_id=acme.id, trip_id=trip.id))
    service.withdraw_income(income.id)
    assert _outstanding(ledger, acme) == Money.zero()


def test_income_without_client_leaves_balances_alone(ledger, service, acme, trip):
    income = service.register_income(Income(amount="800.00", trip_id=trip.id))
    service.receive_income(income.id, Money.of("800.00"))
    with pytest.raises(InvalidStateTransition):
        service.receive_income(income.id, Money.of("1.00"))
    assert _outstanding(ledger, acme) == Money.zero()


# ----------------------------------------------------------------------
# Write conflicts
# ----------------------------------------------------------------------


class RacingLedgerStore(InMemoryLedgerStore):
    """Bills the client behind the service's back before each of the first `races` commits"""

    def __init__(self, races: int):
        super().__init__()
        self.races = races

    def commit(self, saves, deletes=()):
        client = next((e for e in saves if isinstance(e, Client) and e.id is not None), None)
        if client is not None and self.races > 0:
            self.races -= 1
            current = self.get_client(client.id)
            super().commit([replace(current, outstanding_balance=current.outstanding_balance.add(Money.of("100.00")))])
        return super().commit(saves, deletes)


def _racing_setup(races: int, max_attempts: int = 3):
    store = RacingLedgerStore(races=0)
    client = store.add(Client(name="Busy"))
    truck = store.add(Truck(registration_number="KA01AA0001"))
    driver = store.add(Driver(name="Suresh"))
    trip = store.add(Trip(trip_number="T-1", truck_id=truck.id, driver_id=driver.id))
    service = ReconciliationService(store, max_attempts=max_attempts)
    builty = service.register_charge(Builty(builty_number="B-1", trip_id=trip.id, client_id=client.id, freight_charges="10000.00"))
    store.races = races
    return store, service, client, builty


def test_conflict_is_retried_without_losing_the_other_write():
    store, service, client, builty = _racing_setup(races=1)

    service.record_payment(Payment(client_id=client.id, builty_id=builty.id, amount="4000.00"))

    assert store.get_builty(builty.id).balance_amount == Money.of("6000.00")
    # 10,000 billed + 100 from the concurrent writer - 4,000 paid
    assert store.get_client(client.id).outstanding_balance == Money.of("6100.00")


def test_conflict_gives_up_after_max_attempts():
    store, service, client, builty = _racing_setup(races=3, max_attempts=3)

    with pytest.raises(ConcurrentModification):
        service.record_payment(Payment(client_id=client.id, builty_id=builty.id, amount="4000.00"))

    assert store.get_builty(builty.id).advance_received == Money.zero()
    assert store.get_client(client.id).outstanding_balance == Money.of("10300.00")


def test_max_attempts_must_be_positive(ledger):
    with pytest.raises(ValueError):
        ReconciliationService(ledger, max_attempts=0)
