"""Credit policy - checks a client's exposure before new billing"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional, Tuple

from stms_billing.domain.exceptions import CreditLimitExceeded
from stms_billing.domain.models import Client
from stms_billing.domain.money import Money


class CreditOutcome(str, Enum):
    OK = "OK"
    WOULD_EXCEED = "WOULD_EXCEED"


@dataclass(frozen=True)
class CreditDecision:
    """
    Output of a credit check; excess is zero unless the limit would be exceeded.

    available_credit and credit_utilization describe the client before the
    proposed charge and are None for clients without a limit.
    """

    client_id: int
    outcome: CreditOutcome
    proposed_charge: Money
    projected_outstanding: Money
    credit_limit: Money
    excess: Money = field(default_factory=Money.zero)
    available_credit: Optional[Money] = None
    credit_utilization: Optional[Decimal] = None

    @property
    def ok(self) -> bool:
        return self.outcome == CreditOutcome.OK


def headroom(client: Client) -> Tuple[Optional[Money], Optional[Decimal]]:
    """Unused credit (floored at zero) and percentage of the limit in use"""
    if not client.has_credit_limit:
        return None, None
    available = client.credit_limit.subtract(client.outstanding_balance, clamp=True)
    utilization = (client.outstanding_balance.amount * 100 / client.credit_limit.amount).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    return available, utilization


def evaluate(client: Client, proposed_charge: Money) -> CreditDecision:
    """
    Evaluate whether billing proposed_charge keeps the client within its limit.

    NOTE: a credit_limit of 0 means *no limit enforced* (unlimited credit), not
    zero credit. This mirrors the stored default for new clients and must stay
    that way until the business confirms otherwise.

    Never mutates anything; the caller decides whether WOULD_EXCEED blocks the
    operation or only warns.
    """
    proposed_charge = Money.of(proposed_charge)
    projected = client.outstanding_balance.add(proposed_charge)
    available, utilization = headroom(client)
    common = dict(
        client_id=client.id,
        proposed_charge=proposed_charge,
        projected_outstanding=projected,
        credit_limit=client.credit_limit,
        available_credit=available,
        credit_utilization=utilization,
    )

    if client.has_credit_limit and projected > client.credit_limit:
        return CreditDecision(
            outcome=CreditOutcome.WOULD_EXCEED,
            excess=projected.subtract(client.credit_limit, clamp=False),
            **common,
        )

    return CreditDecision(outcome=CreditOutcome.OK, **common)


def enforce(decision: CreditDecision) -> None:
    """Treat WOULD_EXCEED as fatal"""
    if not decision.ok:
        raise CreditLimitExceeded(decision.client_id, decision.excess)
