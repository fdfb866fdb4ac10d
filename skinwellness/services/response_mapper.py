"""
SkinXS Response Mapping

Maps the SkinXS diagnostic API response onto the internal category and
parameter model:

1. Tolerant decode of the raw JSON into the SkinXS schema
2. Color alias -> category id, with each score rounded and clamped to 0-10
3. Parameter multichoice scores and per-category parameter details
4. Patient attributes and image quality for display

Mapping is pure and deterministic. Missing data never raises: a category
without a score or parameters maps to 0.
"""

import copy
import math
from collections.abc import Mapping
from typing import Any

from skinwellness.models.analysis_models import (
    ImageQualityAssessment,
    ParameterDetail,
    ParameterScore,
    ParsedAnalysisResult,
    PatientAttributes,
    SkinAnalysisResult,
)
from skinwellness.models.skinxs_models import (
    SkinXSApiResponse,
    SkinXSCategoryData,
    SkinXSCharacteristics,
    SkinXSDiagnostic,
    SkinXSImageQuality,
)
from skinwellness.services.parameter_catalog import (
    HIDDEN_PARAMETERS,
    get_parameter_label,
    get_score_color,
    get_score_label,
)
from skinwellness.services.score_normalizer import (
    MAX_NORMALIZED_SCORE,
    calculate_category_score,
    round_half_up,
)
from skinwellness.services.skin_categories import (
    API_ALIAS_TO_CATEGORY_ID,
    API_ALIASES,
    CATEGORY_SCORE_FIELDS,
    SKIN_WELLNESS_CATEGORIES,
    get_category_by_alias,
)

MULTICHOICE_SUFFIX = "_multichoices"

_PHOTOTYPES = {1: "I", 2: "II", 3: "III", 4: "IV", 5: "V", 6: "VI"}

_EYE_COLORS = {
    "brown": "brown",
    "blue": "blue",
    "green": "green",
    "hazel": "hazel",
    "gray": "gray",
    "grey": "gray",
    "amber": "amber",
}

_SKIN_TYPES = {"normal", "dry", "oily", "combination", "sensitive"}

# Described under the hyphenated key even when SkinXS omits its score
DEFAULT_SCORED_DESCRIPTIONS = {"fine_lines_wrinkles": "fine-lines_wrinkles"}
DEFAULT_DESCRIPTION_SCORE = 1


# ============================================================================
# Key handling
# ============================================================================

def normalize_api_key(key: str) -> str:
    """API keys sometimes use hyphens ('fine-lines_wrinkles'); ours never do."""
    return key.replace("-", "_")


def _key_variants(key: str) -> tuple[str, ...]:
    hyphenated = key.replace("_", "-")
    # Only the first underscore is hyphenated in practice ('fine-lines_wrinkles')
    first_hyphen = key.replace("_", "-", 1)
    variants = [key, first_hyphen, hyphenated]
    return tuple(dict.fromkeys(variants))


def _read_parameter(category_data: SkinXSCategoryData, key: str) -> tuple[Any, Any]:
    """Return (description, score) for a parameter, trying hyphenated key variants."""
    for variant in _key_variants(key):
        description = category_data.get(variant)
        score = category_data.get(f"{variant}{MULTICHOICE_SUFFIX}")
        if description is not None or score is not None:
            return description, score
    return None, None


def _as_int_score(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return round_half_up(value)
    return None


def clamp_category_score(value: Any) -> int | None:
    """
    Bring a pre-aggregated category score into [0, 10].

    Returns None when the value is not a usable number.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return int(min(MAX_NORMALIZED_SCORE, max(0, round_half_up(value))))


# ============================================================================
# Category scores
# ============================================================================

def map_category_scores(
    scores_by_alias: Mapping[str, Any] | None,
    category_parameters: Mapping[str, list[ParameterScore]] | None = None,
) -> dict[str, int]:
    """
    Map color-aliased category scores to canonical category ids.

    A supplied numeric score is rounded and clamped into [0, 10]. When an
    alias has no usable score but parameter-level data is available for it,
    the category score is computed from its parameters. Otherwise it is 0.

    Args:
        scores_by_alias: Raw score per API color alias (yellow, pink, ...).
        category_parameters: Optional raw parameter scores per color alias.

    Returns:
        Score per category id, for all ten categories in display order.
    """
    scores_by_alias = scores_by_alias or {}
    category_parameters = category_parameters or {}
    mapped: dict[str, int] = {}

    for alias in API_ALIASES:
        category_id = API_ALIAS_TO_CATEGORY_ID[alias]
        score = clamp_category_score(scores_by_alias.get(alias))
        if score is None:
            score = calculate_category_score(category_parameters.get(alias, []))
        mapped[category_id] = score

    return mapped


def extract_category_parameters(diagnostic: SkinXSDiagnostic) -> dict[str, list[ParameterScore]]:
    """Raw parameter scores of each color block, keyed by alias."""
    by_alias: dict[str, list[ParameterScore]] = {}
    for category in SKIN_WELLNESS_CATEGORIES:
        category_data = diagnostic.category(category.api_alias)
        if category_data is None:
            continue
        parameters = []
        for key in category.parameter_keys:
            _, score = _read_parameter(category_data, key)
            int_score = _as_int_score(score)
            if int_score is not None:
                parameters.append(ParameterScore(key=key, score_value=int_score))
        by_alias[category.api_alias] = parameters
    return by_alias


def build_category_results(category_scores: Mapping[str, int]) -> list[SkinAnalysisResult]:
    """Category scores as an ordered result list (fixed display order)."""
    return [
        SkinAnalysisResult(
            category_id=category.id,
            visibility_level=category_scores.get(category.id, 0),
        )
        for category in SKIN_WELLNESS_CATEGORIES
    ]


# ============================================================================
# Parameters
# ============================================================================

def extract_parameter_scores(diagnostic: SkinXSDiagnostic) -> dict[str, int]:
    """Raw multichoice score of every parameter present, for storage."""
    scores: dict[str, int] = {}
    for category in SKIN_WELLNESS_CATEGORIES:
        category_data = diagnostic.category(category.api_alias)
        if category_data is None:
            continue
        for key in category.parameter_keys:
            _, score = _read_parameter(category_data, key)
            int_score = _as_int_score(score)
            if int_score is not None:
                scores[normalize_api_key(key)] = int_score
    return scores


def extract_category_details(
    category_data: SkinXSCategoryData | None,
    api_alias: str,
) -> list[ParameterDetail]:
    """
    Parameter details (description + score) for one color block.

    Only parameters with both a text description and a numeric score are
    included, except the hyphenated fine-lines description which defaults
    to the lowest score. Hidden parameters are left out.
    """
    category = get_category_by_alias(api_alias)
    if category is None or category_data is None:
        return []

    details: list[ParameterDetail] = []
    for key in category.parameter_keys:
        if key in HIDDEN_PARAMETERS:
            continue
        hyphenated = DEFAULT_SCORED_DESCRIPTIONS.get(key)
        if hyphenated and category_data.get(hyphenated) is not None:
            description = str(category_data.get(hyphenated))
            int_score = _as_int_score(category_data.get(f"{hyphenated}{MULTICHOICE_SUFFIX}"))
            if int_score is None:
                int_score = DEFAULT_DESCRIPTION_SCORE
        else:
            description, score = _read_parameter(category_data, key)
            int_score = _as_int_score(score)
        if not isinstance(description, str) or int_score is None:
            continue
        details.append(
            ParameterDetail(
                key=key,
                label=get_parameter_label(key),
                description=description,
                score_value=int_score,
                ai_score_value=int_score,
                score_label=get_score_label(key, int_score),
                score_color=get_score_color(key, int_score),
            )
        )
    return details


def get_all_category_details(diagnostic: SkinXSDiagnostic | Mapping[str, Any] | None) -> dict[str, list[ParameterDetail]]:
    """Parameter details for every color block present, keyed by category id."""
    if not isinstance(diagnostic, SkinXSDiagnostic):
        diagnostic = SkinXSDiagnostic.model_validate(diagnostic if isinstance(diagnostic, Mapping) else {})

    all_details: dict[str, list[ParameterDetail]] = {}
    for category in SKIN_WELLNESS_CATEGORIES:
        category_data = diagnostic.category(category.api_alias)
        if category_data is not None:
            all_details[category.id] = extract_category_details(category_data, category.api_alias)
    return all_details


# ============================================================================
# Patient attributes and image quality
# ============================================================================

def map_phototype(phototype: Any) -> str:
    """Phototype number -> Fitzpatrick roman numeral (default II)."""
    number = _as_int_score(phototype)
    return _PHOTOTYPES.get(number, "II") if number is not None else "II"


def map_gender(gender: str) -> str:
    normalized = (gender or "").lower()
    if normalized in ("male", "female"):
        return normalized
    return "other"


def map_eye_color(eye_color: str) -> str:
    return _EYE_COLORS.get((eye_color or "").lower(), "brown")


def map_skin_thickness(thickness: str) -> str:
    return "thick" if (thickness or "").lower() == "thick" else "thin"


def map_skin_type(skin_type: str) -> str:
    normalized = (skin_type or "").lower()
    return normalized if normalized in _SKIN_TYPES else "normal"


def map_patient_attributes(characteristics: SkinXSCharacteristics) -> PatientAttributes:
    """Map SkinXS characteristics onto the fixed attribute vocabulary."""
    return PatientAttributes(
        gender=map_gender(characteristics.gender),
        eye_color=map_eye_color(characteristics.eye_color),
        fitzpatrick_type=map_phototype(characteristics.phototype),
        skin_thickness=map_skin_thickness(characteristics.skin_thickness),
        skin_type=map_skin_type(characteristics.skin_type),
    )


def map_image_quality(image_quality: SkinXSImageQuality) -> ImageQualityAssessment:
    return ImageQualityAssessment(
        quality_score=image_quality.quality_score or 0,
        clear_image=image_quality.clear_image,
        lighting=image_quality.lighting,
        focus=image_quality.focus,
        true_colors=image_quality.true_colors,
        background=image_quality.background,
        preparation=image_quality.preparation,
        results_summary=image_quality.results_summary,
        tips_to_improve=image_quality.tips_to_improve_quality,
    )


# ============================================================================
# Full response
# ============================================================================

def _raw_diagnostic(raw_response: Any) -> dict[str, Any]:
    """The diagnostic section exactly as SkinXS sent it, for storage."""
    if isinstance(raw_response, SkinXSApiResponse):
        return raw_response.diagnostic.model_dump(mode="json")
    diagnostic = raw_response.get("diagnostic") if isinstance(raw_response, Mapping) else None
    return copy.deepcopy(diagnostic) if isinstance(diagnostic, dict) else {}


def parse_api_response(raw_response: Any) -> ParsedAnalysisResult:
    """
    Parse a SkinXS response into the database-ready result.

    Args:
        raw_response: Decoded JSON body of the analyze call (any shape).

    Returns:
        ParsedAnalysisResult; absent sections yield defaults and zero scores.
    """
    response = raw_response if isinstance(raw_response, SkinXSApiResponse) else SkinXSApiResponse.decode(raw_response)
    diagnostic = response.diagnostic
    characteristics = diagnostic.characteristics

    category_scores = map_category_scores(
        diagnostic.scores.model_dump(),
        extract_category_parameters(diagnostic),
    )
    flat_scores = {
        CATEGORY_SCORE_FIELDS[category_id]: score
        for category_id, score in category_scores.items()
    }

    return ParsedAnalysisResult(
        diagnostic_id=response.diagnostic_id,
        api_language=response.language,
        raw_response=_raw_diagnostic(raw_response),
        raw_response_translated=diagnostic.characteristics_translated,
        gender=characteristics.gender,
        age_group=characteristics.age_group,
        estimated_age=characteristics.estimated_age,
        ethnicity=characteristics.ethnicity,
        eye_color=characteristics.eye_color,
        hair_color=characteristics.hair_color,
        phototype=_as_int_score(characteristics.phototype),
        skin_thickness=characteristics.skin_thickness,
        skin_type=characteristics.skin_type,
        skin_age=characteristics.skin_age,
        skin_health_overview=diagnostic.summary.skin_health,
        priority_concerns=list(diagnostic.summary.skin_concerns_priority),
        **flat_scores,
        category_scores=category_scores,
        category_results=build_category_results(category_scores),
        parameter_scores=extract_parameter_scores(diagnostic),
        image_quality_score=diagnostic.image_quality.quality_score,
        image_quality_summary=diagnostic.image_quality.results_summary,
        patient_attributes=map_patient_attributes(characteristics),
        category_details=get_all_category_details(diagnostic),
        image_quality=map_image_quality(diagnostic.image_quality),
    )


def result_from_record(columns: Mapping[str, Any]) -> ParsedAnalysisResult:
    """
    Rebuild a ParsedAnalysisResult from a stored skin_analysis_results row.

    Category details are re-derived from the stored raw diagnostic, so
    displayed details always match what the API returned.
    """
    raw_response = columns.get("raw_response")
    diagnostic = SkinXSDiagnostic.model_validate(raw_response if isinstance(raw_response, dict) else {})

    category_scores = {
        category_id: clamp_category_score(columns.get(field)) or 0
        for category_id, field in CATEGORY_SCORE_FIELDS.items()
    }
    parameter_scores = columns.get("parameter_scores")
    priority_concerns = columns.get("priority_concerns")
    translated = columns.get("raw_response_translated")

    characteristics = SkinXSCharacteristics.model_validate({
        "gender": columns.get("gender"),
        "eye_color": columns.get("eye_color"),
        "phototype": columns.get("phototype"),
        "skin_thickness": columns.get("skin_thickness"),
        "skin_type": columns.get("skin_type"),
    })
    image_quality = diagnostic.image_quality.model_copy(update={
        "quality_score": SkinXSImageQuality.model_validate(
            {"quality_score": columns.get("image_quality_score")}
        ).quality_score,
        "results_summary": columns.get("image_quality_summary") or "",
    })

    return ParsedAnalysisResult(
        diagnostic_id=columns.get("diagnostic_id") or "",
        api_language=columns.get("api_language") or "",
        raw_response=copy.deepcopy(raw_response) if isinstance(raw_response, dict) else {},
        raw_response_translated=translated if isinstance(translated, dict) else None,
        gender=characteristics.gender,
        age_group=columns.get("age_group") or "",
        estimated_age=SkinXSCharacteristics.model_validate(
            {"estimated_age": columns.get("estimated_age")}
        ).estimated_age,
        ethnicity=columns.get("ethnicity") or "",
        eye_color=characteristics.eye_color,
        hair_color=columns.get("hair_color") or "",
        phototype=_as_int_score(characteristics.phototype),
        skin_thickness=characteristics.skin_thickness,
        skin_type=characteristics.skin_type,
        skin_age=columns.get("skin_age") or "",
        skin_health_overview=columns.get("skin_health_overview") or "",
        priority_concerns=[c for c in priority_concerns if isinstance(c, str)] if isinstance(priority_concerns, list) else [],
        **{CATEGORY_SCORE_FIELDS[cid]: score for cid, score in category_scores.items()},
        category_scores=category_scores,
        category_results=build_category_results(category_scores),
        parameter_scores={
            key: value for key, value in parameter_scores.items() if _as_int_score(value) is not None
        } if isinstance(parameter_scores, dict) else {},
        image_quality_score=image_quality.quality_score,
        image_quality_summary=image_quality.results_summary,
        patient_attributes=map_patient_attributes(characteristics),
        category_details=get_all_category_details(diagnostic),
        image_quality=map_image_quality(image_quality),
    )
