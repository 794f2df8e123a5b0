"""Pytest configuration and shared fixtures."""

import asyncio
import json
import tempfile
from pathlib import Path

import pytest

from quantmesh_wizard.allocation import AllocationTree
from quantmesh_wizard.config import WizardConfig
from quantmesh_wizard.wizard import WizardSession


class FakeBackend:
    """In-memory stand-in for every wizard collaborator."""

    def __init__(
        self,
        exchanges=None,
        symbols=None,
        balances=None,
        strategy_types=None,
        recommendation=None,
    ):
        self.exchanges = exchanges if exchanges is not None else ["binance"]
        self.symbols = symbols if symbols is not None else {
            "binance": ["BTCUSDT", "ETHUSDT", "SOLUSDT"],
        }
        self.balances = balances if balances is not None else {"binance": 1000.0}
        self.strategy_types = strategy_types if strategy_types is not None else ["grid", "dca"]
        self.recommendation = recommendation
        self.fail = set()
        self.recommend_calls = []
        self.submitted = []
        self.applied = []
        self.preview = {"explanation": "generated", "grid_config": {"levels": 10}}
        # Set to an asyncio.Event to hold recommend() until released
        self.gate = None

    def _maybe_fail(self, name):
        if name in self.fail:
            raise ConnectionError(f"{name} unavailable")

    async def list_configured_exchanges(self):
        self._maybe_fail("exchanges")
        return list(self.exchanges)

    async def list_available_symbols(self, exchange):
        self._maybe_fail("symbols")
        return list(self.symbols.get(exchange, []))

    async def get_available_balance(self, exchange):
        self._maybe_fail("balance")
        return self.balances.get(exchange, 0.0)

    async def list_strategy_types(self):
        self._maybe_fail("strategy_types")
        return list(self.strategy_types)

    async def recommend(self, exchange, symbols, risk_profile, capital_context):
        self.recommend_calls.append((exchange, list(symbols), risk_profile, dict(capital_context)))
        if self.gate is not None:
            await self.gate.wait()
        self._maybe_fail("recommend")
        return self.recommendation or {}

    async def submit(self, payload):
        self.submitted.append(payload)
        self._maybe_fail("submit")
        return dict(self.preview)

    async def apply(self, preview):
        self.applied.append(preview)
        self._maybe_fail("apply")
        return {"success": True}


def make_session(backend, config=None):
    return WizardSession(
        exchange_source=backend,
        balance_source=backend,
        strategy_type_source=backend,
        sink=backend,
        recommender=backend,
        config=config or WizardConfig(),
    )


@pytest.fixture
def temp_config_dir():
    """Create a temporary directory for config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def valid_config_data():
    """Return valid configuration data."""
    return {
        "backend": {
            "base_url": "http://bot.local:28888",
            "api_token": "file_token",
            "timeout_seconds": 15,
            "max_retries": 2,
        },
        "wizard": {
            "default_risk_profile": "conservative",
            "default_total_capital": 5000,
            "fallback_strategy_types": ["grid", "dca", "trend"],
            "weight_sum_epsilon": 0.001,
            "capital_mode": "per_symbol",
        },
        "ai": {"enabled": True, "api_key": "file_gemini_key"},
    }


@pytest.fixture
def config_file(temp_config_dir, valid_config_data):
    """Create a valid config file."""
    config_path = temp_config_dir / "wizard.json"
    with open(config_path, "w") as f:
        json.dump(valid_config_data, f)
    return config_path


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def session(backend):
    """A wizard session opened against the fake backend."""
    wizard = make_session(backend)
    asyncio.run(wizard.open())
    return wizard


@pytest.fixture
def scenario_tree():
    """binance with 1000 total: BTCUSDT 600, ETHUSDT 400, no strategy weights."""
    tree = AllocationTree()
    tree.add_exchange("binance", total_capital=1000)
    tree.add_exchange_symbol("binance", "BTCUSDT", 600)
    tree.add_exchange_symbol("binance", "ETHUSDT", 400)
    return tree
