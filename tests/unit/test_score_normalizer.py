"""
Unit Tests for Score Normalization and Category Aggregation
"""
import pytest

from skinwellness.models.analysis_models import ParameterDetail, ParameterScore
from skinwellness.services.score_normalizer import (
    calculate_category_score,
    get_normalized_score,
    round_half_up,
)


class TestNormalizedScore:
    """Per-parameter normalization rules."""

    def test_linear_rescale(self):
        assert get_normalized_score("complexion", 1) == 0
        assert get_normalized_score("complexion", 4) == 10
        assert get_normalized_score("complexion", 3) == pytest.approx(20 / 3)

    def test_unknown_parameter(self):
        assert get_normalized_score("not_a_parameter", 3) is None

    @pytest.mark.parametrize("key", ["is_rosacea", "is_acne", "is_allergic_reaction"])
    def test_conditional_parameters_never_contribute(self, key):
        assert get_normalized_score(key, 3) is None

    @pytest.mark.parametrize("key", ["freckles", "moles"])
    def test_excluded_parameters_never_contribute(self, key):
        assert get_normalized_score(key, 3) is None

    def test_boost_is_applied(self):
        assert get_normalized_score("redness_present", 3) == pytest.approx(6.5)
        assert get_normalized_score("couperose_present", 2) == pytest.approx(3.25)

    def test_boost_is_capped(self):
        assert get_normalized_score("redness_present", 5) == 10

    def test_half_weight(self):
        assert get_normalized_score("predictive_factors_hyperpigmentation", 2) == pytest.approx(5)
        assert get_normalized_score("predictive_factors_dryness", 4) == pytest.approx(5)
        assert get_normalized_score("predictive_factors_dehydration", 3) == pytest.approx(10 / 3)

    @pytest.mark.parametrize("score", [None, "high", float("nan"), True, [], {}])
    def test_malformed_scores_are_ignored(self, score):
        assert get_normalized_score("complexion", score) is None

    def test_numeric_string_is_accepted(self):
        assert get_normalized_score("complexion", "4") == 10

    def test_result_stays_in_range(self):
        assert get_normalized_score("complexion", 0) == 0
        assert get_normalized_score("complexion", 9) == 10


class TestRounding:

    @pytest.mark.parametrize("value,expected", [
        (0.0, 0),
        (2.5, 3),
        (3.5, 4),
        (6.5, 7),
        (3.333, 3),
        (6.667, 7),
        (10.0, 10),
    ])
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestCategoryScore:
    """Aggregation takes the worst parameter."""

    def test_empty_is_zero(self):
        assert calculate_category_score([]) == 0

    def test_max_not_average(self):
        params = [
            ParameterScore(key="complexion", score_value=1),
            ParameterScore(key="tiredness", score_value=1),
            ParameterScore(key="sun_damage", score_value=4),
        ]
        assert calculate_category_score(params) == 10

    def test_boosted_half_rounds_up(self):
        assert calculate_category_score([ParameterScore(key="redness_present", score_value=3)]) == 7

    def test_conditional_only_category_is_zero(self):
        params = [
            {"key": "is_rosacea", "scoreValue": 3},
            {"key": "is_sunburn", "scoreValue": 3},
        ]
        assert calculate_category_score(params) == 0

    def test_freckles_do_not_raise_tone(self):
        params = [
            {"key": "freckles", "score_value": 3},
            {"key": "moles", "score_value": 3},
            {"key": "skin_tone", "score_value": 2},
        ]
        assert calculate_category_score(params) == 3

    def test_accepts_parameter_details(self):
        details = [
            ParameterDetail(key="complexion", label="Complexion", score_value=3),
        ]
        assert calculate_category_score(details) == 7

    def test_skips_malformed_items(self):
        params = [
            {"scoreValue": 4},
            {"key": None, "scoreValue": 4},
            {"key": "complexion", "scoreValue": "bad"},
            {"key": "complexion", "scoreValue": 2},
        ]
        assert calculate_category_score(params) == 3

    def test_always_in_range(self):
        params = [{"key": key, "scoreValue": 99} for key in ("redness_present", "couperose_present")]
        assert calculate_category_score(params) == 10
