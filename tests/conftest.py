# =============================================================================
# File: tests/conftest.py
# Purpose: Shared fixtures (fixed clocks, in-memory stack, quest catalog).
# =============================================================================
import datetime as dt

import pytest

from farmcore.collaborators import InMemoryEntitlements, OutboxNotifier
from farmcore.config import EconomyConfig
from farmcore.economy import StaticPriceTable
from farmcore.ledger import CurrencyLedger
from farmcore.persistence import MemorySnapshotStore
from farmcore.quests import QuestCatalog, QuestEngine, load_quest_data
from farmcore.rewards import RewardDistributor
from farmcore.services import build_services
from farmcore.stats import EconomyStats
from farmcore.throttle import AntiCheatThrottle

# Wednesday, mid-day UTC
NOW = dt.datetime(2024, 1, 10, 12, 0, tzinfo=dt.timezone.utc)


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start=1_700_000_000.0):
        self.now = float(start)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now


class FixedRng:
    """randint() always returns the same offset (0 = no target variance)."""

    def __init__(self, value=0):
        self.value = value

    def randint(self, a, b):
        return max(a, min(b, self.value))


class RecordingSink:
    def __init__(self, fail_currency=False):
        self.fail_currency = fail_currency
        self.coins = {}
        self.xp = {}
        self.items = {}

    def grant_currency(self, player_id, amount):
        if self.fail_currency:
            raise RuntimeError("wallet offline")
        self.coins[player_id] = self.coins.get(player_id, 0) + amount

    def grant_experience(self, player_id, amount):
        self.xp[player_id] = self.xp.get(player_id, 0) + amount

    def grant_item(self, player_id, item_id, qty=1):
        self.items.setdefault(player_id, []).extend([item_id] * qty)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return EconomyConfig()


@pytest.fixture
def stats():
    return EconomyStats()


@pytest.fixture
def throttle(clock, config):
    return AntiCheatThrottle(config.max_coins_per_hour, config.earnings_window_seconds, clock=clock)


@pytest.fixture
def ledger(throttle, stats, config, clock):
    return CurrencyLedger(
        throttle,
        stats,
        prices=StaticPriceTable(config.plants),
        starting_coins=config.starting_coins,
        history_size=config.history_size,
        max_coins_per_transaction=config.max_coins_per_transaction,
        rapid_transaction_seconds=config.rapid_transaction_seconds,
        clock=clock,
    )


@pytest.fixture
def entitlements():
    return InMemoryEntitlements()


@pytest.fixture
def notifier():
    return OutboxNotifier()


@pytest.fixture(scope="session")
def quest_data():
    return load_quest_data()


@pytest.fixture
def catalog(quest_data):
    templates, rarities = quest_data
    return QuestCatalog(templates, rarities, rng=FixedRng(0))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def engine(catalog, sink, notifier, entitlements):
    return QuestEngine(catalog, RewardDistributor(sink), notifier=notifier, entitlements=entitlements)


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def services(config, store, entitlements, notifier, clock):
    return build_services(
        config,
        store=store,
        entitlements=entitlements,
        notifier=notifier,
        rng=FixedRng(0),
        clock=clock,
        now=NOW,
    )
