# tests/conftest.py
import sys
from pathlib import Path

# ---------------------------------------------------------
# Ensure project root is on PYTHONPATH BEFORE app imports
# ---------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# ---------------------------------------------------------
# Now safe to import project modules
# ---------------------------------------------------------
from datetime import datetime, timezone

import pytest

from core.currency import BASE_STABLE, SECONDARY_STABLE, YIELD_TOKEN
from services.action_resolver import ActionResolver
from services.market import StaticRateSource, StaticYieldSource
from services.memory_gateway import InMemoryChainGateway

SENDER = "0x1111111111111111111111111111111111111111"
ALICE = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def gateway():
    return InMemoryChainGateway(
        address_book={"Alice": ALICE},
        balances={
            (SENDER, BASE_STABLE): "1000.50",
            (SENDER, SECONDARY_STABLE): "850.25",
            (SENDER, YIELD_TOKEN): "500.75",
        },
    )


@pytest.fixture
def yield_source():
    return StaticYieldSource(apy="5.0")


@pytest.fixture
def rate_source():
    return StaticRateSource()


@pytest.fixture
def resolver(gateway, rate_source, yield_source):
    return ActionResolver(
        gateway,
        rate_source,
        yield_source,
        timeout=1.0,
        fallback_gas="0.015",
        default_holding_days=30,
        clock=lambda: NOW,
    )
