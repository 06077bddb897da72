from decimal import Decimal

import pytest

from portfolio_ledger.core.errors import LedgerValidationError
from portfolio_ledger.services.allocation import (
    RebalanceThreshold,
    allocation_drift,
    current_allocations,
    needs_rebalancing,
    normalize_target_allocations,
    validate_target_allocations,
)

D = Decimal


@pytest.mark.parametrize(
    "actual,target,expected",
    [
        (0.30, 0.20, True),   # 10pp absolute, 50% relative
        (0.23, 0.20, False),  # 3pp absolute, 15% relative
        (0.25, 0.20, True),   # exactly 5pp, but 25% relative
        (0.55, 0.50, False),  # exactly 5pp and 10% relative: boundaries are exclusive
        (0.13, 0.10, True),   # 3pp absolute, 30% relative
        (0.01, 0.0, True),    # zero target with anything held
        (0.0, 0.0, False),
        (0.0, 0.40, True),
    ],
)
def test_needs_rebalancing_uses_one_rule(actual, target, expected):
    assert needs_rebalancing(actual, target) is expected


def test_threshold_is_configurable():
    loose = RebalanceThreshold(absolute=0.15, relative=0.60)

    assert needs_rebalancing(0.30, 0.20, loose) is False
    assert needs_rebalancing(0.40, 0.20, loose) is True


def test_current_allocations_share_of_holdings():
    shares = current_allocations({"AAA": D("300"), "BBB": D("700")})

    assert shares == {"AAA": pytest.approx(0.3), "BBB": pytest.approx(0.7)}
    assert current_allocations({"AAA": D("0")}) == {"AAA": 0.0}


def test_allocation_drift_covers_untargeted_holdings():
    drifts = {drift.ticker: drift for drift in allocation_drift({"AAA": D("500"), "ZZZ": D("500")}, {"AAA": D("1")})}

    assert drifts["ZZZ"].target == 0.0
    assert drifts["ZZZ"].needs_rebalancing
    assert drifts["AAA"].deviation == pytest.approx(-0.5)


def test_validate_target_allocations_rejects_bad_sums():
    validate_target_allocations([("AAA", D("0.5")), ("BBB", D("0.497"))], tolerance=0.005)

    with pytest.raises(LedgerValidationError):
        validate_target_allocations([("AAA", D("0.5")), ("BBB", D("0.49"))], tolerance=0.005)
    with pytest.raises(LedgerValidationError):
        validate_target_allocations([], tolerance=0.005)
    with pytest.raises(LedgerValidationError):
        validate_target_allocations([("AAA", D("0.5")), ("AAA", D("0.5"))], tolerance=0.005)


def test_normalize_target_allocations_sums_to_exactly_one():
    normalized = normalize_target_allocations({"AAA": D("0.333"), "BBB": D("0.333"), "CCC": D("0.337")})

    assert sum(normalized.values()) == D("1")
    assert normalized["CCC"] > normalized["AAA"]
