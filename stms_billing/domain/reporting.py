"""Read-only aggregations over ledger snapshots for receivables reporting"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List

from stms_billing.domain.models import Builty, Client, Income
from stms_billing.domain.money import Money
from stms_billing.domain.statuses import BuiltyPaymentStatus
from stms_billing.utils.date_utils import calculate_payment_due_date, days_between

UNPAID_STATUSES = frozenset({BuiltyPaymentStatus.PENDING, BuiltyPaymentStatus.PARTIAL})


class AgingBucket(str, Enum):
    CURRENT = "CURRENT"  # up to 30 days
    DAYS_30 = "30_DAYS"  # 31-60
    DAYS_60 = "60_DAYS"  # 61-90
    DAYS_90_PLUS = "90_PLUS_DAYS"


@dataclass
class AgingSummary:
    as_of: date
    amounts: Dict[AgingBucket, Money] = field(default_factory=lambda: {b: Money.zero() for b in AgingBucket})
    counts: Dict[AgingBucket, int] = field(default_factory=lambda: {b: 0 for b in AgingBucket})

    @property
    def total(self) -> Money:
        return sum(self.amounts.values(), Money.zero())


@dataclass(frozen=True)
class BalanceCheck:
    """Recorded client balance vs. the balance implied by its documents"""

    client_id: int
    recorded: Money
    expected: Money

    @property
    def consistent(self) -> bool:
        return self.recorded == self.expected

    @property
    def discrepancy(self) -> Money:
        return self.recorded.subtract(self.expected, clamp=False)


def pending_builties(builties: Iterable[Builty]) -> List[Builty]:
    """Unpaid or partly paid builties, oldest first"""
    return sorted((b for b in builties if b.payment_status in UNPAID_STATUSES), key=lambda b: b.builty_date)


def due_date_of(builty: Builty, default_credit_days: int = 30) -> date:
    if builty.payment_due_date is not None:
        return builty.payment_due_date
    return calculate_payment_due_date(builty.builty_date, default_credit_days)


def overdue_builties(builties: Iterable[Builty], today: date, default_credit_days: int = 30) -> List[Builty]:
    """Unpaid builties whose due date has passed"""
    return [b for b in pending_builties(builties) if due_date_of(b, default_credit_days) < today]


def aging_bucket(builty_date: date, today: date) -> AgingBucket:
    age = days_between(builty_date, today)
    if age <= 30:
        return AgingBucket.CURRENT
    if age <= 60:
        return AgingBucket.DAYS_30
    if age <= 90:
        return AgingBucket.DAYS_60
    return AgingBucket.DAYS_90_PLUS


def aging_summary(builties: Iterable[Builty], today: date) -> AgingSummary:
    """Outstanding balances grouped by how old the builty is"""
    summary = AgingSummary(as_of=today)
    for builty in pending_builties(builties):
        bucket = aging_bucket(builty.builty_date, today)
        summary.amounts[bucket] = summary.amounts[bucket].add(builty.balance_amount)
        summary.counts[bucket] += 1
    return summary


def total_outstanding(builties: Iterable[Builty]) -> Money:
    return sum((b.balance_amount for b in builties), Money.zero())


def clients_over_limit(clients: Iterable[Client]) -> List[Client]:
    """Active clients past a non-zero credit limit (zero means unlimited)"""
    return [
        c for c in clients
        if c.is_active and c.has_credit_limit and c.outstanding_balance > c.credit_limit
    ]


def expected_outstanding(builties: Iterable[Builty], incomes: Iterable[Income] = ()) -> Money:
    """Sum of unpaid builty balances plus unreconciled client income"""
    from_builties = total_outstanding(builties)
    from_income = sum((i.unpaid_amount for i in incomes if i.counts_towards_client_balance), Money.zero())
    return from_builties.add(from_income)


def check_client_balance(client: Client, builties: Iterable[Builty], incomes: Iterable[Income] = ()) -> BalanceCheck:
    return BalanceCheck(
        client_id=client.id,
        recorded=client.outstanding_balance,
        expected=expected_outstanding(builties, incomes),
    )
