"""
Skin wellness categories.

The ten appearance categories in their fixed display order, each with the
color alias the SkinXS API uses for it and the parameter keys it owns.
Category order is part of the display contract and is never sorted by score.
"""

from types import MappingProxyType
from typing import Mapping

from skinwellness.models.analysis_models import SkinWellnessCategory

SKIN_WELLNESS_CATEGORIES: tuple[SkinWellnessCategory, ...] = (
    SkinWellnessCategory(
        id="radiance",
        name="Skin Radiance",
        color="#D4A84B",
        order=1,
        api_alias="yellow",
        parameter_keys=("complexion", "tiredness", "sun_damage"),
    ),
    SkinWellnessCategory(
        id="smoothness",
        name="Skin Aging",
        color="#D668B0",
        order=2,
        api_alias="pink",
        parameter_keys=("wrinkles", "fine_lines", "elasticity_sagging", "volume"),
    ),
    SkinWellnessCategory(
        id="redness",
        name="Visible Redness",
        color="#C13050",
        order=3,
        api_alias="red",
        parameter_keys=(
            "redness_present",
            "couperose_present",
            "is_rosacea",
            "is_sunburn",
            "is_contact_dermatitis",
            "is_eczema",
            "is_psoriasis",
            "is_infections",
            "is_acne",
            "is_allergic_reaction",
        ),
    ),
    SkinWellnessCategory(
        id="hydration",
        name="Hydration Appearance",
        color="#4A9BE8",
        order=4,
        api_alias="blue",
        parameter_keys=(
            "observed_dryness",
            "observed_dehydration",
            "predictive_factors_dryness",
            "predictive_factors_dehydration",
        ),
    ),
    SkinWellnessCategory(
        id="shine",
        name="Shine Appearance",
        color="#E07030",
        order=5,
        api_alias="orange",
        parameter_keys=("oiliness", "pores"),
    ),
    SkinWellnessCategory(
        id="texture",
        name="Skin Texture",
        color="#A89880",
        order=6,
        api_alias="grey",
        parameter_keys=(
            "rough_bumpy_skin",
            "dull_skin",
            "uneven_skin_texture",
            "roughness",
            "scarring",
        ),
    ),
    SkinWellnessCategory(
        id="blemishes",
        name="Visible Blemishes",
        color="#2DA850",
        order=7,
        api_alias="green",
        parameter_keys=("comedones", "pustules", "papules", "nodules", "cysts"),
    ),
    SkinWellnessCategory(
        id="tone",
        name="Uneven Tone & Dark Spots",
        color="#8B5A2B",
        order=8,
        api_alias="brown",
        parameter_keys=(
            "melasma",
            "post_inflammatory_hyperpigmentation",
            "age_sun_spots",
            "freckles",
            "moles",
            "skin_tone",
            "predictive_factors_hyperpigmentation",
        ),
    ),
    SkinWellnessCategory(
        id="eye-contour",
        name="Eye Contour",
        color="#9B7BB8",
        order=9,
        api_alias="eye",
        parameter_keys=(
            "fine_lines_wrinkles",
            "eye_bags",
            "hollowed_eyes",
            "puffy_eyes",
            "dark_circles",
        ),
    ),
    SkinWellnessCategory(
        id="neck-decollete",
        name="Neck & Decollete",
        color="#4AA8A0",
        order=10,
        api_alias="neck",
        parameter_keys=(
            "photoaging",
            "hyperpigmentation",
            "dryness_dehydration",
            "textural_changes",
            "elasticity_loss",
            "redness",
            "acne_prone_skin",
        ),
    ),
)

API_ALIAS_TO_CATEGORY_ID: Mapping[str, str] = MappingProxyType(
    {category.api_alias: category.id for category in SKIN_WELLNESS_CATEGORIES}
)

CATEGORY_ID_TO_API_ALIAS: Mapping[str, str] = MappingProxyType(
    {category.id: category.api_alias for category in SKIN_WELLNESS_CATEGORIES}
)

API_ALIASES: tuple[str, ...] = tuple(category.api_alias for category in SKIN_WELLNESS_CATEGORIES)

# Column suffix of each category's stored score (score_<suffix>)
CATEGORY_SCORE_FIELDS: Mapping[str, str] = MappingProxyType({
    "radiance": "score_radiance",
    "smoothness": "score_smoothness",
    "redness": "score_redness",
    "hydration": "score_hydration",
    "shine": "score_shine",
    "texture": "score_texture",
    "blemishes": "score_blemishes",
    "tone": "score_tone",
    "eye-contour": "score_eye_contour",
    "neck-decollete": "score_neck_decollete",
})


def get_category_by_id(category_id: str) -> SkinWellnessCategory | None:
    """Get a category by its id."""
    for category in SKIN_WELLNESS_CATEGORIES:
        if category.id == category_id:
            return category
    return None


def get_category_by_alias(api_alias: str) -> SkinWellnessCategory | None:
    """Get a category by the SkinXS color alias."""
    for category in SKIN_WELLNESS_CATEGORIES:
        if category.api_alias == api_alias:
            return category
    return None


def get_category_by_order(order: int) -> SkinWellnessCategory | None:
    """Get a category by its 1-based display position."""
    for category in SKIN_WELLNESS_CATEGORIES:
        if category.order == order:
            return category
    return None
