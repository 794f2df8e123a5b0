"""Tests for running the wizard from a JSON plan."""

import asyncio
import json

import pytest

from quantmesh_wizard.wizard import PlanError, WizardStep, check_plan, load_plan, run_plan

from conftest import FakeBackend, make_session


def run(session, plan, credential=""):
    return asyncio.run(run_plan(session, plan, ai_credential=credential))


class TestLoadPlan:

    def test_load_plan(self, temp_config_dir):
        path = temp_config_dir / "plan.json"
        path.write_text(json.dumps({"exchanges": {"binance": {"symbols": ["BTCUSDT"]}}}))

        assert load_plan(path)["exchanges"]["binance"]["symbols"] == ["BTCUSDT"]

    def test_missing_plan(self, temp_config_dir):
        with pytest.raises(PlanError):
            load_plan(temp_config_dir / "absent.json")

    def test_plan_must_be_object(self, temp_config_dir):
        path = temp_config_dir / "plan.json"
        path.write_text("[1, 2]")

        with pytest.raises(PlanError):
            load_plan(path)


class TestRunPlan:

    def test_symbol_list_uses_recommendation(self, backend, session):
        backend.recommendation = {"symbol_weights": {"BTCUSDT": 3, "ETHUSDT": 1}}
        plan = {"exchanges": {"binance": {"total_capital": 800, "symbols": ["BTCUSDT", "ETHUSDT"]}}}

        failure = run(session, plan, credential="key")

        assert failure is None
        assert session.step == WizardStep.PREVIEW
        payload = backend.submitted[0]
        assert payload["exchanges"]["binance"]["symbols"] == {"BTCUSDT": 600, "ETHUSDT": 200}
        assert payload["gemini_api_key"] == "key"

    def test_explicit_capitals_and_split_overrides(self, backend, session):
        plan = {
            "risk_profile": "aggressive",
            "exchanges": {"binance": {"symbols": {"BTCUSDT": 300, "ETHUSDT": 200}}},
            "strategy_splits": {"binance:BTCUSDT": {"grid": 0.6, "dca": 0.4}},
            "withdrawal_policy": {"withdraw_ratio": 0.25},
        }

        failure = run(session, plan)

        assert failure is None
        assert backend.recommend_calls == []
        payload = backend.submitted[0]
        assert payload["risk_profile"] == "aggressive"
        assert payload["strategy_splits"]["binance:BTCUSDT"] == [
            {"strategy_type": "grid", "weight": 0.6},
            {"strategy_type": "dca", "weight": 0.4},
        ]
        assert payload["withdrawal_policy"]["withdraw_ratio"] == 0.25

    def test_unknown_exchange_is_skipped(self, backend, session):
        plan = {"exchanges": {"kraken": {"symbols": {"BTCUSD": 100}}}}

        failure = run(session, plan)

        assert failure.step == WizardStep.ASSET_ALLOC
        assert failure.reason == "no allocation anywhere"
        assert not session.tree.has_exchange("kraken")

    def test_over_allocation_stops_on_asset_step(self, session):
        plan = {"exchanges": {"binance": {"symbols": {"BTCUSDT": 900, "ETHUSDT": 200}}}}

        failure = run(session, plan)

        assert failure.reason == "allocation exceeds total"
        assert "over by 100.00" in failure.message

    def test_submit_failure_is_returned(self):
        backend = FakeBackend()
        backend.fail = {"submit"}
        session = make_session(backend)
        asyncio.run(session.open())
        plan = {"exchanges": {"binance": {"symbols": {"BTCUSDT": 100}}}}

        failure = run(session, plan)

        assert failure.step == WizardStep.WITHDRAWAL_SETUP
        assert failure.message == "submit unavailable"


class TestPlanChecks:
    """Invalid plan values are reported as PlanError, never as a crash."""

    @pytest.mark.parametrize(
        "plan,fragment",
        [
            ({"capital_mode": "bogus", "exchanges": {}}, "capital_mode"),
            ({"risk_profile": 3, "exchanges": {}}, "risk_profile"),
            ({"exchanges": {"binance": ["BTCUSDT"]}}, "exchanges.binance must be an object"),
            ({"exchanges": {"binance": {"symbols": {"BTCUSDT": "lots"}}}}, "invalid capital for BTCUSDT"),
            ({"exchanges": {"binance": {"total_capital": -5}}}, "total_capital"),
            ({"exchanges": {}, "withdrawal_policy": {"modes": ["weekly_sweep"]}}, "withdrawal_policy"),
            ({"exchanges": {}, "withdrawal_policy": {"max_withdraw_amount": "plenty"}}, "withdrawal_policy"),
            ({"exchanges": {}, "strategy_splits": {"binance:BTCUSDT": [0.5]}}, "strategy_splits"),
        ],
    )
    def test_run_plan_rejects_bad_values(self, session, plan, fragment):
        with pytest.raises(PlanError, match=fragment):
            run(session, plan)

        assert session.step == WizardStep.AI_SETUP

    def test_load_plan_rejects_bad_values(self, temp_config_dir):
        path = temp_config_dir / "plan.json"
        path.write_text(json.dumps({"capital_mode": "per_exchange", "exchanges": {}}))

        with pytest.raises(PlanError, match="capital_mode"):
            load_plan(path)

    def test_every_problem_is_listed(self):
        plan = {"capital_mode": "bogus", "exchanges": {"binance": "BTCUSDT"}}

        with pytest.raises(PlanError) as exc:
            check_plan(plan)

        assert len(str(exc.value).splitlines()) == 2

    def test_quoted_numbers_are_accepted(self, backend, session):
        plan = {
            "exchanges": {"binance": {"total_capital": "1000", "symbols": {"BTCUSDT": "400"}}},
            "withdrawal_policy": {"max_withdraw_amount": "100"},
        }

        failure = run(session, plan)

        assert failure is None
        assert backend.submitted[0]["withdrawal_policy"]["max_withdraw_amount"] == 100.0

    def test_percentage_split_overrides_are_normalized(self, backend, session):
        plan = {
            "exchanges": {"binance": {"symbols": {"BTCUSDT": 500}}},
            "strategy_splits": {"binance:BTCUSDT": {"grid": 60, "dca": 40}},
        }

        failure = run(session, plan)

        assert failure is None
        assert backend.submitted[0]["strategy_splits"]["binance:BTCUSDT"] == [
            {"strategy_type": "grid", "weight": 0.6},
            {"strategy_type": "dca", "weight": 0.4},
        ]
