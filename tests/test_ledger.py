import decimal
import importlib.util
import pathlib
import sys
from datetime import date
from decimal import Decimal

import pytest

from ledger_builders import buy, credit, debit, dividend, entry, sell
from portfolio_ledger.core.errors import LedgerInconsistencyError
from portfolio_ledger.domain import TransactionStatus, TransactionType
from portfolio_ledger.services.ledger import (
    cash_balance,
    cash_timeline,
    closed_positions,
    contribution_totals,
    dividends_for_current_holdings,
    holdings_as_of,
    lowest_cash_balance,
    replay_holdings,
)

D = Decimal
DOMAIN = pathlib.Path(__file__).resolve().parents[1] / "portfolio_ledger" / "domain.py"


def test_sale_reduces_cost_basis_by_average_cost_not_proceeds():
    ledger = [
        credit(date(2024, 1, 2), 5000),
        buy(date(2024, 1, 3), "AAA", 100, 10),
        buy(date(2024, 2, 3), "AAA", 100, 20),
        sell(date(2024, 3, 3), "AAA", 50, 40),
    ]

    position = replay_holdings(ledger).positions["AAA"]

    # average cost 15, so 50 shares remove 750 regardless of the 2000 received
    assert position.quantity == D("150")
    assert position.total_invested == D("2250")
    assert position.average_cost == D("15")


def test_cost_basis_holds_across_sales():
    ledger = [credit(date(2024, 1, 1), 10000), buy(date(2024, 1, 2), "AAA", 30, "12.5")]
    for month, (quantity, price) in enumerate([(7, 9), (3, 30), (11, "15.75")], start=2):
        before = replay_holdings(ledger).positions["AAA"]
        ledger.append(sell(date(2024, month, 1), "AAA", quantity, price))
        after = replay_holdings(ledger).positions["AAA"]
        assert after.total_invested == before.total_invested - before.average_cost * D(str(quantity))


def test_fully_sold_positions_are_excluded_from_holdings():
    ledger = [
        credit(date(2024, 1, 1), 1000),
        buy(date(2024, 1, 2), "AAA", 10, 50),
        sell(date(2024, 2, 2), "AAA", 10, 60, kind=TransactionType.SELL_WITHDRAWAL),
    ]

    result = replay_holdings(ledger)

    assert result.positions == {}
    assert result.ok


def test_oversell_is_clamped_and_reported():
    ledger = [
        credit(date(2024, 1, 1), 1000),
        buy(date(2024, 1, 2), "AAA", 5, 10),
        sell(date(2024, 1, 5), "AAA", 8, 10),
    ]

    result = replay_holdings(ledger)

    assert "AAA" not in result.positions
    assert len(result.inconsistencies) == 1
    issue = result.inconsistencies[0]
    assert issue.ticker == "AAA"
    assert issue.available_quantity == D("5")
    assert issue.excess == D("3")


def test_strict_replay_raises_on_oversell():
    ledger = [buy(date(2024, 1, 2), "AAA", 5, 10), sell(date(2024, 1, 5), "AAA", 8, 10)]

    with pytest.raises(LedgerInconsistencyError):
        replay_holdings(ledger, strict=True)


def test_same_day_transactions_commute():
    day = date(2024, 4, 10)
    base = [credit(date(2024, 4, 1), 3000), buy(date(2024, 4, 2), "AAA", 10, 10)]
    same_day = [sell(day, "AAA", 5, 30), buy(day, "AAA", 10, 20), credit(day, 100)]

    forward = replay_holdings(base + same_day).positions
    backward = replay_holdings(base + list(reversed(same_day))).positions

    assert forward == backward
    assert cash_balance(base + same_day) == cash_balance(base + list(reversed(same_day)))


def test_pending_and_rejected_rows_are_ignored():
    ledger = [
        credit(date(2024, 1, 1), 1000),
        buy(date(2024, 1, 2), "AAA", 10, 10, status=TransactionStatus.PENDING),
        buy(date(2024, 1, 2), "BBB", 10, 10, status=TransactionStatus.REJECTED),
        buy(date(2024, 1, 2), "CCC", 10, 10, status=TransactionStatus.CONFIRMED),
    ]

    assert set(replay_holdings(ledger).positions) == {"CCC"}
    assert cash_balance(ledger) == D("900")


def test_cash_balance_signs_per_type():
    ledger = [
        credit(date(2024, 1, 1), 1000),
        entry(date(2024, 1, 1), TransactionType.MONTHLY_CONTRIBUTION, 500),
        buy(date(2024, 1, 2), "AAA", 10, 30),
        buy(date(2024, 1, 2), "BBB", 5, 20, kind=TransactionType.BUY_REBALANCE),
        sell(date(2024, 1, 3), "AAA", 2, 35),
        sell(date(2024, 1, 3), "AAA", 1, 35, kind=TransactionType.SELL_WITHDRAWAL),
        dividend(date(2024, 1, 4), "AAA", "12.40"),
        debit(date(2024, 1, 5), 200),
    ]

    assert cash_balance(ledger) == D("1000") + D("500") - D("300") - D("100") + D("70") + D("35") + D("12.40") - D("200")


def test_cash_timeline_and_lowest_balance():
    ledger = [
        credit(date(2024, 1, 1), 100),
        buy(date(2024, 1, 2), "AAA", 15, 10),
        credit(date(2024, 1, 3), 100),
    ]

    steps = cash_timeline(ledger)

    assert [step.balance_after for step in steps] == [D("100"), D("-50"), D("50")]
    assert steps[1].balance_before == D("100")
    assert lowest_cash_balance(ledger) == D("-50")
    assert lowest_cash_balance([]) == D("0")


def test_contribution_totals_only_count_cash_debit_as_withdrawn():
    ledger = [
        credit(date(2024, 1, 1), 1000),
        buy(date(2024, 1, 2), "AAA", 10, 50),
        sell(date(2024, 1, 3), "AAA", 5, 60, kind=TransactionType.SELL_WITHDRAWAL),
        debit(date(2024, 1, 4), 100),
        dividend(date(2024, 1, 5), "AAA", 7),
    ]

    totals = contribution_totals(ledger)

    assert totals.total_invested == D("1000")
    assert totals.total_withdrawn == D("100")
    assert totals.total_dividends == D("7")
    assert totals.total_purchases == D("500")


def test_invested_falls_back_to_buys_without_credits():
    ledger = [
        buy(date(2024, 1, 2), "AAA", 10, 50),
        buy(date(2024, 1, 3), "BBB", 1, 20, kind=TransactionType.BUY_REBALANCE),
    ]

    assert contribution_totals(ledger).total_invested == D("500")


def test_dividend_apportioned_to_remaining_shares():
    ledger = [
        credit(date(2024, 1, 1), 10000),
        buy(date(2024, 1, 2), "AAA", 100, 50),
        dividend(date(2024, 2, 15), "AAA", 1000),
        sell(date(2024, 3, 1), "AAA", 80, 55),
    ]
    positions = replay_holdings(ledger).positions

    attributed = dividends_for_current_holdings(ledger, positions)

    assert attributed["AAA"] == D("200")


def test_dividend_fraction_is_capped_at_one():
    ledger = [
        credit(date(2024, 1, 1), 10000),
        buy(date(2024, 1, 2), "AAA", 10, 50),
        dividend(date(2024, 2, 15), "AAA", 30),
        buy(date(2024, 3, 1), "AAA", 40, 50),
    ]
    positions = replay_holdings(ledger).positions

    assert dividends_for_current_holdings(ledger, positions)["AAA"] == D("30")


def test_holdings_as_of_excludes_rows_on_the_day():
    ledger = [
        credit(date(2024, 1, 1), 1000),
        buy(date(2024, 1, 5), "AAA", 10, 10),
        buy(date(2024, 1, 10), "AAA", 5, 10),
    ]

    assert holdings_as_of(ledger, date(2024, 1, 10))["AAA"].quantity == D("10")
    assert holdings_as_of(ledger, date(2024, 1, 5)) == {}


def test_closed_position_includes_dividends_after_close():
    ledger = [
        credit(date(2024, 1, 1), 2000),
        buy(date(2024, 1, 2), "AAA", 10, 100),
        dividend(date(2024, 2, 1), "AAA", 15),
        sell(date(2024, 3, 1), "AAA", 10, 120),
        dividend(date(2024, 3, 20), "AAA", 5),
        buy(date(2024, 3, 2), "BBB", 1, 10),
    ]

    closed = closed_positions(ledger)

    assert [position.ticker for position in closed] == ["AAA"]
    position = closed[0]
    assert position.total_invested == D("1000")
    assert position.total_sold == D("1200")
    assert position.realized_return == D("200")
    assert position.realized_return_percentage == pytest.approx(0.2)
    assert position.total_dividends == D("20")
    assert position.total_return == D("220")
    assert position.closed_date == date(2024, 3, 1)


def test_importing_domain_leaves_decimal_context_alone(monkeypatch):
    module_spec = importlib.util.spec_from_file_location("ledger_domain_copy", DOMAIN)
    module = importlib.util.module_from_spec(module_spec)
    # dataclasses resolve annotations through sys.modules
    monkeypatch.setitem(sys.modules, "ledger_domain_copy", module)
    with decimal.localcontext() as context:
        context.prec = 10
        module_spec.loader.exec_module(module)
        assert decimal.getcontext().prec == 10
