"""Tests for risk-profile weight templates."""

import math

import pytest
from hypothesis import given, settings, strategies as st

from quantmesh_wizard.allocation.templates import WEIGHT_TEMPLATES, base_weights, template_split
from quantmesh_wizard.models import RiskProfile

ALL_TYPES = list(WEIGHT_TEMPLATES[RiskProfile.BALANCED])


class TestWeightTemplates:

    @pytest.mark.parametrize("profile", list(RiskProfile))
    def test_full_rows_sum_to_one(self, profile):
        assert math.fsum(WEIGHT_TEMPLATES[profile].values()) == pytest.approx(1.0)

    def test_rows_cover_same_strategy_types(self):
        rows = [set(row) for row in WEIGHT_TEMPLATES.values()]
        assert all(row == rows[0] for row in rows)

    def test_base_weights_filters_to_available_types(self):
        weights = base_weights(RiskProfile.CONSERVATIVE, ["grid", "dca"])

        assert weights == {"grid": 0.35, "dca": 0.35}

    def test_unknown_type_gets_zero(self):
        weights = base_weights("balanced", ["grid", "arbitrage"])

        assert weights == {"grid": 0.25, "arbitrage": 0.0}

    def test_unknown_profile_uses_balanced(self):
        assert base_weights("yolo", ALL_TYPES) == WEIGHT_TEMPLATES[RiskProfile.BALANCED]

    def test_template_split_normalizes_filtered_row(self):
        split = template_split("aggressive", ["grid", "martingale", "trend"])

        # 0.15 : 0.15 : 0.20
        assert split["grid"] == pytest.approx(0.3)
        assert split["martingale"] == pytest.approx(0.3)
        assert split["trend"] == pytest.approx(0.4)

    def test_all_zero_row_falls_back_to_uniform(self):
        # Conservative has no martingale or breakout allocation
        split = template_split("conservative", ["martingale", "breakout"])

        assert split == {"martingale": 0.5, "breakout": 0.5}

    @given(
        profile=st.sampled_from(list(RiskProfile)),
        types=st.lists(st.sampled_from(ALL_TYPES), min_size=1, max_size=8, unique=True),
    )
    @settings(max_examples=100)
    def test_template_split_always_complete(self, profile, types):
        """*For any* profile and offered types, the split SHALL sum to 1.0."""
        split = template_split(profile, types)

        assert list(split) == types
        assert math.fsum(split.values()) == pytest.approx(1.0, abs=1e-9)
