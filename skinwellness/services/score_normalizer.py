"""
Score normalization and category aggregation.

Converts raw 1..max_score parameter scores onto a shared 0-10 scale and
combines them into one visibility score per category.

Rules applied on top of the linear rescale:
- conditional (redness cause) parameters never contribute
- freckles and moles never contribute
- redness_present and couperose_present are boosted by 30%
- predictive factors count for half
- results are capped at 10

A category is as visible as its worst parameter: the aggregate is the
maximum normalized score, not an average.

Every function here is pure and tolerates malformed scores by treating them
as "no contribution".
"""

import math
from collections.abc import Iterable, Mapping
from typing import Any

from skinwellness.config.logging_config import get_logger
from skinwellness.models.analysis_models import ParameterScore, ParameterScoreType
from skinwellness.services.parameter_catalog import get_parameter_score_config

logger = get_logger(__name__)

MAX_NORMALIZED_SCORE = 10.0

# Incidental findings that must not drive a severity score
EXCLUDED_PARAMETERS = frozenset({"freckles", "moles"})

# Redness dominates perceived skin health
BOOSTED_PARAMETERS = frozenset({"redness_present", "couperose_present"})
BOOST_FACTOR = 1.3

# Risk predictors, not observed severity
HALF_WEIGHT_PARAMETERS = frozenset({
    "predictive_factors_hyperpigmentation",
    "predictive_factors_dryness",
    "predictive_factors_dehydration",
})
HALF_WEIGHT_DIVISOR = 2


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def _as_number(value: Any) -> float | None:
    """Coerce a raw score to float; None for anything non-numeric or non-finite."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def get_normalized_score(key: str, score: Any) -> float | None:
    """
    Calculate the normalized 0-10 contribution of a parameter score.

    Args:
        key: Parameter key from the catalog.
        score: Raw 1-indexed score.

    Returns:
        Normalized score in [0, 10], or None when the parameter must not
        contribute to a severity aggregate (unknown, conditional, excluded,
        or a score that is not a number).
    """
    config = get_parameter_score_config(key)
    if config is None:
        return None

    if config.type == ParameterScoreType.CONDITIONAL:
        return None

    if key in EXCLUDED_PARAMETERS:
        return None

    raw = _as_number(score)
    if raw is None:
        logger.debug("Ignoring non-numeric parameter score", parameter=key, score=repr(score))
        return None

    max_score = config.max_score
    normalized = ((raw - 1) / (max_score - 1)) * MAX_NORMALIZED_SCORE if max_score > 1 else 0.0

    if key in BOOSTED_PARAMETERS:
        normalized = normalized * BOOST_FACTOR

    if key in HALF_WEIGHT_PARAMETERS:
        normalized = normalized / HALF_WEIGHT_DIVISOR

    # Raw scores below 1 are out of scale; they carry no visibility
    return min(MAX_NORMALIZED_SCORE, max(0.0, normalized))


def _parameter_key_and_score(parameter: Any) -> tuple[str | None, Any]:
    if isinstance(parameter, ParameterScore):
        return parameter.key, parameter.score_value
    if isinstance(parameter, Mapping):
        score = parameter.get("scoreValue", parameter.get("score_value"))
        return parameter.get("key"), score
    return getattr(parameter, "key", None), getattr(parameter, "score_value", None)


def calculate_category_score(parameters: Iterable[Any]) -> int:
    """
    Calculate a category visibility score (0-10) from its parameter scores.

    The worst parameter determines the category score: one severe finding
    is not diluted by several mild ones.

    Args:
        parameters: Items carrying a parameter key and a raw score, either
            ParameterScore models, mappings with key/scoreValue, or objects
            with key/score_value attributes (such as ParameterDetail).

    Returns:
        Integer in [0, 10]; 0 when no parameter contributes.
    """
    max_normalized = 0.0

    for parameter in parameters:
        key, score = _parameter_key_and_score(parameter)
        if not isinstance(key, str):
            continue
        normalized = get_normalized_score(key, score)
        if normalized is not None and normalized > max_normalized:
            max_normalized = normalized

    return round_half_up(max_normalized)
