# tests/test_throttle_and_stats.py
import pytest

from farmcore.stats import EconomyStats, wealth_band, wealth_distribution
from farmcore.throttle import AntiCheatThrottle


# -----------------------------------------------------------------
# AntiCheatThrottle
# -----------------------------------------------------------------
def test_validate_is_inclusive_of_the_cap(clock):
    t = AntiCheatThrottle(100, 3600, clock=clock)
    assert t.validate_earnings(1, 100) is True
    t.record(1, 60)
    assert t.validate_earnings(1, 40) is True
    assert t.validate_earnings(1, 41) is False
    assert t.headroom(1) == 40


def test_reset_waits_for_the_full_window(clock):
    t = AntiCheatThrottle(100, 3600, clock=clock)
    t.record(1, 80)
    t.record(2, 20)

    clock.advance(3_599)
    assert t.maybe_reset() is False
    assert t.hourly_earned(1) == 80

    clock.advance(1)
    assert t.maybe_reset() is True
    assert t.hourly_earned(1) == 0
    assert t.hourly_earned(2) == 0


def test_late_reset_keeps_window_aligned(clock):
    t = AntiCheatThrottle(100, 3600, clock=clock)
    start = t.window_started_at
    clock.advance(3 * 3600 + 120)
    assert t.maybe_reset() is True
    assert t.window_started_at == start + 3 * 3600


# -----------------------------------------------------------------
# EconomyStats
# -----------------------------------------------------------------
@pytest.mark.parametrize(
    "coins,band",
    [(0, "poor"), (100, "poor"), (101, "middle"), (1000, "middle"),
     (1001, "rich"), (5000, "rich"), (5001, "wealthy")],
)
def test_wealth_band_edges(coins, band):
    assert wealth_band(coins) == band


def test_recompute_from_balances():
    s = EconomyStats()
    s.recompute({1: 50, 2: 500, 3: 6000, 4: 2000})

    report = s.report()
    assert report["active_players"] == 4
    assert report["average_wealth"] == pytest.approx(2137.5)
    assert report["wealth_distribution"] == {"poor": 1, "middle": 1, "rich": 1, "wealthy": 1}
    assert wealth_distribution([]) == {"poor": 0, "middle": 0, "rich": 0, "wealthy": 0}


def test_empty_recompute_has_zero_average():
    s = EconomyStats()
    s.recompute({})
    assert s.report()["average_wealth"] == 0.0


def test_circulation_tracks_sum_of_balances_across_sessions(ledger, stats):
    ledger.open_account(1)
    ledger.open_account(2, {"coins": 700})
    ledger.add_coins(1, 30)
    ledger.spend_coins(2, 200)
    ledger.set_coins(1, 5)
    assert stats.is_consistent_with(ledger.balances())
    assert stats.total_coins_in_circulation == 505

    ledger.close_account(2)
    assert stats.is_consistent_with(ledger.balances())
    assert stats.total_coins_in_circulation == 5
