"""Unit tests for the credit policy"""

import pytest
from decimal import Decimal
from stms_billing.domain.credit import CreditOutcome, enforce, evaluate
from stms_billing.domain.exceptions import CreditLimitExceeded
from stms_billing.domain.models import Client
from stms_billing.domain.money import Money


def test_within_limit_is_ok():
    client = Client(name="A", id=1, credit_limit="50000.00", outstanding_balance="45000.00")
    decision = evaluate(client, Money.of("5000.00"))
    assert decision.outcome == CreditOutcome.OK
    assert decision.projected_outstanding == Money.of("50000.00")
    assert decision.excess == Money.zero()


def test_exceeding_limit_reports_excess():
    """Scenario: limit 50,000, outstanding 45,000, new builty 10,000 -> excess 5,000"""
    client = Client(name="A", id=1, credit_limit="50000.00", outstanding_balance="45000.00")
    decision = evaluate(client, Money.of("10000.00"))
    assert decision.outcome == CreditOutcome.WOULD_EXCEED
    assert decision.excess == Money.of("5000.00")
    assert not decision.ok


def test_zero_limit_means_unlimited():
    client = Client(name="A", id=1, credit_limit="0.00", outstanding_balance="9999999.00")
    assert evaluate(client, Money.of("1000000.00")).ok


def test_evaluate_does_not_mutate_client():
    client = Client(name="A", id=1, credit_limit="100.00", outstanding_balance="90.00")
    evaluate(client, Money.of("50.00"))
    assert client.outstanding_balance == Money.of("90.00")


def test_enforce_raises_only_when_exceeding():
    client = Client(name="A", id=7, credit_limit="100.00", outstanding_balance="90.00")
    enforce(evaluate(client, Money.of("10.00")))

    with pytest.raises(CreditLimitExceeded) as exc_info:
        enforce(evaluate(client, Money.of("10.01")))
    assert exc_info.value.client_id == 7
    assert exc_info.value.excess == Money.of("0.01")


def test_decision_reports_available_credit_and_utilization():
    client = Client(name="A", id=1, credit_limit="50000.00", outstanding_balance="12500.00")
    decision = evaluate(client, Money.of("1000.00"))
    assert decision.available_credit == Money.of("37500.00")
    assert decision.credit_utilization == Decimal("25.00")


def test_over_limit_client_has_no_available_credit():
    client = Client(name="A", id=1, credit_limit="1000.00", outstanding_balance="1500.00")
    decision = evaluate(client, Money.of("1.00"))
    assert decision.available_credit == Money.zero()
    assert decision.credit_utilization == Decimal("150.00")


def test_unlimited_client_has_no_headroom_figures():
    decision = evaluate(Client(name="A", id=1, outstanding_balance="500.00"), Money.of("1.00"))
    assert decision.available_credit is None
    assert decision.credit_utilization is None
