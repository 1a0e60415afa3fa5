"""Balance engine - derives balance and payment status from charges and receipts"""

from dataclasses import replace
from typing import TYPE_CHECKING, Tuple

from stms_billing.domain.money import Money
from stms_billing.domain.statuses import BuiltyPaymentStatus, IncomeStatus, PaymentType

if TYPE_CHECKING:
    from stms_billing.domain.models import Builty


def derive_balance(total_charges: Money, advance_received: Money) -> Tuple[Money, BuiltyPaymentStatus]:
    """
    Compute (balance_amount, payment_status) for a builty.

    Rules:
    - balance = total - advance, floored at zero (over-payment is never reported as debt)
    - PAID when nothing is left to pay
    - PARTIAL when something was received but a balance remains
    - PENDING otherwise

    Pure function of its inputs, so recomputing is always idempotent. Raising
    charges after full payment moves PAID back to PARTIAL.
    """
    balance = total_charges.subtract(advance_received, clamp=True)

    if balance.is_zero():
        status = BuiltyPaymentStatus.PAID
    elif advance_received.is_positive():
        status = BuiltyPaymentStatus.PARTIAL
    else:
        status = BuiltyPaymentStatus.PENDING

    return balance, status


def derive_income_status(amount: Money, received_amount: Money) -> Tuple[Money, IncomeStatus]:
    """Same rule as builties, applied to an income record's receipts"""
    unpaid = amount.subtract(received_amount, clamp=True)

    if unpaid.is_zero():
        status = IncomeStatus.RECEIVED
    elif received_amount.is_positive():
        status = IncomeStatus.PARTIAL
    else:
        status = IncomeStatus.PENDING

    return unpaid, status


def recompute(builty: "Builty") -> "Builty":
    """Return a fresh snapshot with derived fields rebuilt from the source fields"""
    return replace(builty)


def suggest_payment_type(amount: Money, balance_amount: Money, advance_received: Money) -> PaymentType:
    """Classify a payment that arrived without an explicit type"""
    if amount >= balance_amount:
        return PaymentType.FULL
    if advance_received.is_zero():
        return PaymentType.ADVANCE
    return PaymentType.PARTIAL
