"""Trip profit and loss, computed on demand from the trip's own records"""

from dataclasses import dataclass
from typing import Iterable

from stms_billing.domain.models import Expense, Income
from stms_billing.domain.money import Money


@dataclass(frozen=True)
class TripProfitLoss:
    trip_id: int
    total_income: Money
    total_expenses: Money
    profit_loss: Money

    @property
    def is_profitable(self) -> bool:
        return self.profit_loss.is_positive()


def total_expenses(expenses: Iterable[Expense]) -> Money:
    return sum((e.amount for e in expenses), Money.zero())


def total_income(incomes: Iterable[Income]) -> Money:
    return sum((i.amount for i in incomes), Money.zero())


def profit_loss(trip_id: int, expenses: Iterable[Expense], incomes: Iterable[Income]) -> TripProfitLoss:
    """Income minus expenses; negative means the trip lost money"""
    spent = total_expenses(expenses)
    earned = total_income(incomes)
    return TripProfitLoss(
        trip_id=trip_id,
        total_income=earned,
        total_expenses=spent,
        profit_loss=earned.subtract(spent, clamp=False),
    )
