"""Reconciliation service - the single writer of money shared between entities.

Builty.advance_received, Client.outstanding_balance, Payment.reconciliation and
Income.received_amount change only through this module. Each public operation
is one unit of work: re-read the current snapshots, compute the new ones, and
hand all of them to the store in a single conditional commit. A version
conflict on commit restarts the unit, up to max_attempts times.
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TypeVar, Union

from stms_billing.domain.balance import suggest_payment_type
from stms_billing.domain.exceptions import (
    BusinessValidationError,
    ConcurrentModification,
    DuplicateResource,
    InvalidAmount,
    InvalidStateTransition,
)
from stms_billing.domain.models import Builty, Client, Income, Payment, Trip
from stms_billing.domain.money import Money
from stms_billing.domain.statuses import (
    SETTLED_PAYMENT_STATUSES,
    ChargeType,
    IncomeStatus,
    PaymentMode,
    PaymentStatus,
    ReconciliationState,
    TripStatus,
    check_payment_transition,
)
from stms_billing.utils.date_utils import calculate_payment_due_date

logger = logging.getLogger(__name__)

Entity = Union[Client, Builty, Payment, Income, Trip]
T = TypeVar("T")

CHARGE_FIELDS = {
    ChargeType.LOADING: "loading_charges",
    ChargeType.UNLOADING: "unloading_charges",
    ChargeType.OTHER: "other_charges",
}

# Fields a charge amendment may change; advance and ownership move only through payments
AMENDABLE_FIELDS = frozenset(
    {
        "freight_charges",
        "loading_charges",
        "unloading_charges",
        "other_charges",
        "gst_amount",
        "payment_due_date",
        "remarks",
    }
)


class LedgerStore(Protocol):
    """Persistence collaborator used by the reconciliation service"""

    def get_client(self, client_id: int) -> Client: ...

    def get_trip(self, trip_id: int) -> Trip: ...

    def get_builty(self, builty_id: int) -> Builty: ...

    def get_payment(self, payment_id: int) -> Payment: ...

    def get_income(self, income_id: int) -> Income: ...

    def builty_number_exists(self, builty_number: str) -> bool: ...

    def has_payments(self, builty_id: int) -> bool: ...

    def commit(self, saves: Sequence[Entity], deletes: Sequence[Entity] = ()) -> List[Entity]:
        """Write everything or nothing; raises ConcurrentModification on a stale version"""
        ...

    def rollback(self) -> None: ...


class ReconciliationService:
    """Applies, reverses and registers money movements atomically"""

    def __init__(self, store: LedgerStore, max_attempts: int = 3):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.max_attempts = max_attempts

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def apply_payment(self, payment: Payment) -> Payment:
        """
        Put a received payment's money on the books.

        The target builty's advance grows by the payment amount and the client's
        outstanding balance drops by the amount of debt the payment actually
        settled (floored at zero). Payments without a builty only reduce the
        client's balance.
        """
        return self._run("apply_payment", lambda: self._apply(self._current(payment)))

    def reverse_payment(self, payment: Payment) -> Payment:
        """Exact inverse of apply_payment; leaves the payment BOUNCED"""
        return self._run("reverse_payment", lambda: self._reverse(self._current(payment)))

    def record_payment(self, payment: Payment) -> Payment:
        """Persist a new payment, applying it in the same unit if money is in hand"""
        if payment.id is not None:
            raise BusinessValidationError("Payment is already recorded")
        if payment.reconciliation != ReconciliationState.UNAPPLIED:
            raise InvalidStateTransition("New payments start unapplied")

        def unit() -> Payment:
            if payment.status in SETTLED_PAYMENT_STATUSES:
                return self._apply(payment)
            if payment.status != PaymentStatus.PENDING:
                raise InvalidStateTransition(f"Cannot record a payment as {payment.status.value}")
            self._check_targets(payment)
            return self.store.commit([payment])[0]

        return self._run("record_payment", unit)

    def change_payment_status(self, payment_id: int, target: PaymentStatus, on: Optional[date] = None) -> Payment:
        """Drive the payment state machine, applying or reversing money as needed"""
        target = PaymentStatus(target)

        def unit() -> Payment:
            payment = self.store.get_payment(payment_id)
            check_payment_transition(payment.status, target)

            if target == PaymentStatus.BOUNCED:
                return self._reverse(payment)

            moved = replace(payment, status=target)
            if target == PaymentStatus.CLEARED:
                moved = replace(moved, cleared_date=on or date.today())
            if moved.reconciliation == ReconciliationState.UNAPPLIED:
                return self._apply(moved)
            return self.store.commit([moved])[0]

        return self._run("change_payment_status", unit)

    def amend_payment(
        self,
        payment_id: int,
        amount: Optional[Money] = None,
        payment_mode: Optional[PaymentMode] = None,
        payment_date: Optional[date] = None,
        transaction_reference: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> Payment:
        """Edit a payment's details; only allowed before any money has moved"""

        def unit() -> Payment:
            payment = self.store.get_payment(payment_id)
            if payment.status != PaymentStatus.PENDING or payment.reconciliation != ReconciliationState.UNAPPLIED:
                raise InvalidStateTransition(f"Payment {payment_id} is {payment.status.value} and can no longer be edited")
            changes = {
                "amount": amount,
                "payment_mode": payment_mode,
                "payment_date": payment_date,
                "transaction_reference": transaction_reference,
                "remarks": remarks,
            }
            amended = replace(payment, **{k: v for k, v in changes.items() if v is not None})
            return self.store.commit([amended])[0]

        return self._run("amend_payment", unit)

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------

    def register_charge(self, builty: Builty) -> Builty:
        """
        Bring a builty's charges onto the client's balance.

        A new builty (no id) adds its full balance. A builty with an id is a charge
        amendment: the client's balance moves by the change in the builty's balance,
        upwards for increases and downwards (floored at zero) for corrections.
        The amendment must be based on the stored version; a stale snapshot is
        refused with ConcurrentModification so it cannot undo another writer's
        charges. Use amend_charges to change individual fields instead.
        """
        if builty.id is None:
            return self._run("register_charge", lambda: self._register_new(builty))
        return self._run("register_charge", lambda: self._amend_from(builty))

    def amend_charges(self, builty_id: int, changes: Dict[str, Any]) -> Builty:
        """
        Apply only the given charge fields to the builty as currently stored.

        Charges other callers added in the meantime are kept; the client's balance
        moves by the change in balance, as for register_charge.
        """
        unknown = set(changes) - AMENDABLE_FIELDS
        if unknown:
            raise BusinessValidationError(f"Cannot amend {', '.join(sorted(unknown))} on a builty")

        def unit() -> Builty:
            stored = self.store.get_builty(builty_id)
            return self._amend(stored, replace(stored, **changes))

        return self._run("register_charge", unit)

    def add_charge(self, builty_id: int, charge_type: ChargeType, amount: Money) -> Builty:
        """Add loading, unloading or other charges to an existing builty"""
        amount = Money.of(amount)
        if not amount.is_positive():
            raise InvalidAmount("Charge amount must be greater than zero")
        column = CHARGE_FIELDS[ChargeType(charge_type)]

        def unit() -> Builty:
            stored = self.store.get_builty(builty_id)
            amended = replace(stored, **{column: getattr(stored, column).add(amount)})
            return self._amend(stored, amended)

        return self._run("add_charge", unit)

    def withdraw_charge(self, builty_id: int) -> Builty:
        """Delete a builty nobody has paid against and take its balance off the client"""

        def unit() -> Builty:
            stored = self.store.get_builty(builty_id)
            if stored.advance_received.is_positive() or self.store.has_payments(builty_id):
                raise InvalidStateTransition(f"Builty {stored.builty_number} has payments and cannot be removed")
            client = self.store.get_client(stored.client_id)
            client = replace(
                client,
                outstanding_balance=client.outstanding_balance.subtract(stored.balance_amount, clamp=True),
            )
            self.store.commit([client], deletes=[stored])
            logger.info("Builty withdrawn", extra={"builty_id": builty_id, "client_id": client.id})
            return stored

        return self._run("withdraw_charge", unit)

    # ------------------------------------------------------------------
    # Client income not covered by a builty
    # ------------------------------------------------------------------

    def register_income(self, income: Income) -> Income:
        if income.id is not None:
            raise BusinessValidationError("Income is already recorded")

        def unit() -> Income:
            if not income.counts_towards_client_balance:
                return self.store.commit([income])[0]
            client = self.store.get_client(income.client_id)
            client = replace(client, outstanding_balance=client.outstanding_balance.add(income.unpaid_amount))
            return self.store.commit([client, income])[1]

        return self._run("register_income", unit)

    def receive_income(self, income_id: int, amount: Money) -> Income:
        amount = Money.of(amount)
        if not amount.is_positive():
            raise InvalidAmount("Received amount must be greater than zero")

        def unit() -> Income:
            income = self.store.get_income(income_id)
            if income.payment_status == IncomeStatus.RECEIVED:
                raise InvalidStateTransition(f"Income {income_id} is already fully received")
            updated = replace(income, received_amount=income.received_amount.add(amount))
            if not income.counts_towards_client_balance:
                return self.store.commit([updated])[0]
            client = self._moved_client(income.client_id, income.unpaid_amount, updated.unpaid_amount)
            return self.store.commit([client, updated])[1]

        return self._run("receive_income", unit)

    def withdraw_income(self, income_id: int) -> Income:
        def unit() -> Income:
            income = self.store.get_income(income_id)
            if income.received_amount.is_positive():
                raise InvalidStateTransition(f"Income {income_id} has receipts and cannot be removed")
            saves: List[Entity] = []
            if income.counts_towards_client_balance:
                saves.append(self._moved_client(income.client_id, income.unpaid_amount, Money.zero()))
            self.store.commit(saves, deletes=[income])
            return income

        return self._run("withdraw_income", unit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, operation: str, unit: Callable[[], T]) -> T:
        """Run a unit of work, retrying only on write conflicts"""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return unit()
            except ConcurrentModification:
                self.store.rollback()
                logger.warning(
                    "Write conflict during reconciliation",
                    extra={"operation": operation, "attempt": attempt, "max_attempts": self.max_attempts},
                )
            except Exception:
                self.store.rollback()
                raise
        raise ConcurrentModification(f"{operation} gave up after {self.max_attempts} conflicting attempts")

    def _current(self, payment: Payment) -> Payment:
        # Stored state wins over the caller's snapshot so a stale copy cannot double-apply
        if payment.id is None:
            return payment
        return self.store.get_payment(payment.id)

    def _check_targets(self, payment: Payment) -> tuple[Client, Optional[Builty]]:
        client = self.store.get_client(payment.client_id)
        builty = None
        if payment.builty_id is not None:
            builty = self.store.get_builty(payment.builty_id)
            if builty.client_id != payment.client_id:
                raise BusinessValidationError(
                    f"Builty {builty.builty_number} does not belong to client {payment.client_id}"
                )
        return client, builty

    def _moved_client(self, client_id: int, old_debt: Money, new_debt: Money) -> Client:
        """Client snapshot with outstanding moved by (new_debt - old_debt), floored at zero"""
        client = self.store.get_client(client_id)
        outstanding = client.outstanding_balance.add(new_debt).subtract(old_debt, clamp=True)
        return replace(client, outstanding_balance=outstanding)

    def _apply(self, payment: Payment) -> Payment:
        if payment.status not in SETTLED_PAYMENT_STATUSES:
            raise InvalidStateTransition(f"Only received or cleared payments can be applied, got {payment.status.value}")
        if payment.reconciliation != ReconciliationState.UNAPPLIED:
            raise InvalidStateTransition(f"Payment is already {payment.reconciliation.value.lower()}")

        client, builty = self._check_targets(payment)
        saves: List[Entity] = []

        if builty is not None:
            paid = replace(builty, advance_received=builty.advance_received.add(payment.amount))
            settled = builty.balance_amount.subtract(paid.balance_amount, clamp=False)
            payment_type = payment.payment_type or suggest_payment_type(
                payment.amount, builty.balance_amount, builty.advance_received
            )
            saves.append(paid)
        else:
            settled = payment.amount
            payment_type = payment.payment_type or suggest_payment_type(
                payment.amount, client.outstanding_balance, Money.zero()
            )

        outstanding = client.outstanding_balance.subtract(settled, clamp=True)
        effect = client.outstanding_balance.subtract(outstanding, clamp=False)
        saves.insert(0, replace(client, outstanding_balance=outstanding))
        saves.append(
            replace(payment, reconciliation=ReconciliationState.APPLIED, client_effect=effect, payment_type=payment_type)
        )

        saved = self.store.commit(saves)
        logger.info(
            "Payment applied",
            extra={
                "payment_id": saved[-1].id,
                "client_id": client.id,
                "builty_id": payment.builty_id,
                "amount": str(payment.amount),
                "client_effect": str(effect),
            },
        )
        return saved[-1]

    def _reverse(self, payment: Payment) -> Payment:
        if payment.reconciliation != ReconciliationState.APPLIED:
            raise InvalidStateTransition(
                f"Payment {payment.id} is {payment.reconciliation.value.lower()} and cannot be reversed"
            )
        check_payment_transition(payment.status, PaymentStatus.BOUNCED)

        client, builty = self._check_targets(payment)
        saves: List[Entity] = []

        if builty is not None:
            unpaid = replace(builty, advance_received=builty.advance_received.subtract(payment.amount, clamp=True))
            restored = unpaid.balance_amount.subtract(builty.balance_amount, clamp=False)
            saves.append(unpaid)
        else:
            restored = payment.client_effect

        saves.insert(0, replace(client, outstanding_balance=client.outstanding_balance.add(restored)))
        saves.append(
            replace(
                payment,
                status=PaymentStatus.BOUNCED,
                cleared_date=None,
                reconciliation=ReconciliationState.REVERSED,
            )
        )

        saved = self.store.commit(saves)
        logger.info(
            "Payment reversed",
            extra={
                "payment_id": payment.id,
                "client_id": client.id,
                "builty_id": payment.builty_id,
                "amount": str(payment.amount),
                "restored": str(restored),
            },
        )
        return saved[-1]

    def _register_new(self, builty: Builty) -> Builty:
        client = self.store.get_client(builty.client_id)
        if not client.is_active:
            raise BusinessValidationError(f"Client {client.id} is inactive")
        trip = self.store.get_trip(builty.trip_id)
        if trip.status == TripStatus.CANCELLED:
            raise BusinessValidationError(f"Trip {trip.trip_number} is cancelled")
        if not builty.advance_received.is_zero():
            raise BusinessValidationError("Advances must be recorded as payments")
        if self.store.builty_number_exists(builty.builty_number):
            raise DuplicateResource(f"Builty number already exists: {builty.builty_number}")

        if builty.payment_due_date is None:
            builty = replace(builty, payment_due_date=calculate_payment_due_date(builty.builty_date, client.credit_days))

        client = replace(client, outstanding_balance=client.outstanding_balance.add(builty.balance_amount))
        saved = self.store.commit([client, builty])[1]
        logger.info(
            "Charge registered",
            extra={"builty_id": saved.id, "client_id": client.id, "amount": str(saved.balance_amount)},
        )
        return saved

    def _amend_from(self, builty: Builty) -> Builty:
        stored = self.store.get_builty(builty.id)
        if builty.version != stored.version:
            raise ConcurrentModification(
                f"Builty {stored.builty_number} changed since version {builty.version}; re-read and amend again"
            )
        if builty.client_id != stored.client_id or builty.trip_id != stored.trip_id:
            raise BusinessValidationError("A builty cannot be moved to another client or trip")
        if builty.advance_received != stored.advance_received:
            raise BusinessValidationError("Advance can only change through payments")

        amended = replace(
            stored,
            freight_charges=builty.freight_charges,
            loading_charges=builty.loading_charges,
            unloading_charges=builty.unloading_charges,
            other_charges=builty.other_charges,
            gst_amount=builty.gst_amount,
            payment_due_date=builty.payment_due_date or stored.payment_due_date,
            remarks=builty.remarks if builty.remarks is not None else stored.remarks,
        )
        return self._amend(stored, amended)

    def _amend(self, stored: Builty, amended: Builty) -> Builty:
        client = self._moved_client(stored.client_id, stored.balance_amount, amended.balance_amount)
        saved = self.store.commit([client, amended])[1]
        logger.info(
            "Charge amended",
            extra={
                "builty_id": stored.id,
                "client_id": client.id,
                "old_total": str(stored.total_charges),
                "new_total": str(saved.total_charges),
                "payment_status": saved.payment_status.value,
            },
        )
        return saved
