"""
Parameter Score Catalog

Standardized score scales for every skin parameter the diagnostic API rates.
Each raw score value has exactly one label; doctors pick from these labels
when they override an AI-assigned score, so the wording is stored and shown
as-is and must not be edited.

Two scale shapes exist:
- severity: 1 is least visible, max_score is most visible (max 2 to 5)
- conditional: redness causation flags on a fixed 1-3 scale
  (1 = no redness, 2 = redness not due to this cause, 3 = due to this cause)

Lookups never raise; unknown keys and out-of-range scores return None.
"""

from types import MappingProxyType
from typing import Mapping

from skinwellness.models.analysis_models import (
    ParameterScoreConfig,
    ParameterScoreType,
    ScoreOption,
)


def _scale(score_type: ParameterScoreType, labels: tuple[str, ...]) -> ParameterScoreConfig:
    return ParameterScoreConfig(
        type=score_type,
        max_score=len(labels),
        options=tuple(
            ScoreOption(value=value, label=label)
            for value, label in enumerate(labels, start=1)
        ),
    )


def _severity(*labels: str) -> ParameterScoreConfig:
    return _scale(ParameterScoreType.SEVERITY, labels)


def _conditional(*labels: str) -> ParameterScoreConfig:
    return _scale(ParameterScoreType.CONDITIONAL, labels)


PARAMETER_SCORE_OPTIONS: Mapping[str, ParameterScoreConfig] = MappingProxyType({
    # Radiance (yellow)
    "complexion": _severity(
        "Clear with a healthy glow; no signs of dullness.",
        "Slight dullness with a minor loss of radiance.",
        "Dull with noticeable uneven skin tone.",
        "Pronounced uneven skin tone and early signs of aging.",
    ),
    "tiredness": _severity(
        "Eyes appear refreshed with no dark circles or puffiness.",
        "Slight dark circles or minimal puffiness under the eyes.",
        "Noticeable dark circles and puffiness indicating tiredness.",
        "Pronounced dark circles, puffiness, and sagging skin under the eyes.",
    ),
    "sun_damage": _severity(
        "Even skin tone with no noticeable hyperpigmentation.",
        "Slight hyperpigmentation or minimal sunspots are present.",
        "Noticeable hyperpigmentation, sunspots, and uneven skin tone.",
        "Extensive hyperpigmentation and sunspots. Skin appears aged beyond chronological age.",
    ),

    # Skin aging (pink)
    "wrinkles": _severity(
        "No visible wrinkles; skin appears smooth.",
        "Visible wrinkles, especially around the eyes and mouth.",
        "Deep wrinkles across the forehead, around the eyes, and mouth.",
        "Extensive deep wrinkles covering most facial areas.",
    ),
    "fine_lines": _severity(
        "No visible fine lines; skin appears smooth and youthful.",
        "Fine lines are noticeable around the eyes and mouth.",
        "Fine lines are prominent and appear in multiple facial areas.",
        "Extensive fine lines across the face.",
    ),
    "elasticity_sagging": _severity(
        "Skin is firm and elastic; no sagging observed.",
        "Slight loss of elasticity; skin bounces back when gently pinched.",
        "Mild sagging observed, particularly around the jawline and cheeks.",
        "Extensive sagging and drooping skin across; skin lacks elasticity.",
    ),
    "volume": _severity(
        "Full facial contours with no signs of volume loss.",
        "Slight hollowing in cheeks or temples.",
        "Visible loss of volume in cheeks and temples. Hollow appearance.",
        "Pronounced hollowing in facial areas, affecting overall facial contours.",
    ),

    # Visible redness (red)
    "redness_present": _severity(
        "There is no visible redness on the skin.",
        "Barely noticeable redness upon close inspection, primarily in the cheeks.",
        "Noticeable redness particularly around the nose and cheeks.",
        "Clearly visible redness across the cheeks and nose area.",
        "Intense redness that is highly visible and covers extensive areas of the face.",
    ),
    "couperose_present": _severity(
        "No visible broken capillaries or spider veins.",
        "Some noticeable broken capillaries upon close examination.",
        "Noticeable broken capillaries, primarily on the cheeks.",
        "Clearly visible broken capillaries on cheeks and nose.",
        "Extensive presence of broken capillaries across multiple facial areas.",
    ),
    # Redness causes
    "is_rosacea": _conditional(
        "No redness detected.",
        "Redness not attributed to rosacea.",
        "Redness linked to rosacea, indicated by persistent redness and visible blood vessels.",
    ),
    "is_sunburn": _conditional(
        "No redness detected.",
        "Redness not attributed to sunburn.",
        "Redness caused by sunburn, with symptoms like peeling or overexposure to the sun.",
    ),
    "is_contact_dermatitis": _conditional(
        "No redness detected.",
        "Redness not attributed to contact dermatitis.",
        "Redness results from contact dermatitis, with symptoms like localized rash and itching.",
    ),
    "is_eczema": _conditional(
        "No redness detected.",
        "Redness not attributed to eczema.",
        "Redness is consistent with eczema, including dry, flaky, and itchy patches.",
    ),
    "is_infections": _conditional(
        "No redness detected.",
        "Redness not attributed to infections.",
        "Redness may be caused by a skin infection, evidenced by pustules or severe inflammation.",
    ),
    "is_acne": _conditional(
        "No redness detected.",
        "Redness not attributed to acne-prone skin.",
        "Redness is linked to acne-prone skin, with symptoms like pimples, blackheads, or cysts.",
    ),
    "is_allergic_reaction": _conditional(
        "No redness detected.",
        "Redness not attributed to allergic reaction.",
        "Redness linked to an allergic reaction, indicated by hives, swelling, or other allergic symptoms.",
    ),

    # Hydration (blue)
    "observed_dryness": _severity(
        "Skin is well-moisturized, smooth, and supple; no dryness observed.",
        "Minimal dryness; skin feels slightly tight after cleansing but normalizes quickly.",
        "Noticeable tightness and slight flakiness. Skin appears slightly dull.",
        "Clearly visible flakiness, rough texture and dry patches.",
    ),
    "observed_dehydration": _severity(
        "Skin is well-hydrated with a healthy glow.",
        "Minimal dehydration; skin feels slightly tight but retains elasticity.",
        "Visible dull skin with minor tightness; fine lines may be more noticeable.",
        "Skin is extremely dehydrated, lacks elasticity, and has pronounced fine lines, and roughness.",
    ),
    "predictive_factors_dryness": _severity(
        "None",
        "Age-related decrease in oil production.",
        "Thin skin prone to dryness.",
        "Skin conditions such as eczema and psoriasis contributing to dryness.",
    ),
    "predictive_factors_dehydration": _severity(
        "None",
        "Age-related decrease in natural moisturizing factors.",
        "Thin skin susceptible to dehydration.",
        "Skin conditions such as rosacea affecting hydration.",
    ),

    # Shine (orange)
    "oiliness": _severity(
        "Skin is matte with no oiliness or shine.",
        "Noticeable shine and slight greasiness in the T-zone.",
        "Greasy texture and shine extend to the cheeks.",
        "Intense shine and greasy feel across most of the face.",
    ),
    "pores": _severity(
        "No pores, skin texture appears smooth.",
        "Pores appear enlarged in the T-zone.",
        "Enlarged pores are more evident and extend beyond the T-zone.",
        "Pores are significantly enlarged and very visible across most of the face.",
    ),

    # Texture (grey)
    "rough_bumpy_skin": _severity(
        "Skin is smooth.",
        "Noticeable small raised bumps in cheeks or forehead.",
        "Pronounced roughness and bumps across multiple facial areas.",
        "Extensive roughness with numerous raised bumps covering large areas of the face.",
    ),
    "dull_skin": _severity(
        "Skin appears radiant and bright with no signs of dullness.",
        "Minimal loss of radiance; skin looks slightly less vibrant.",
        "Pronounced dullness; skin has a visible greyish appearance.",
        "Skin is extensively dull with a significant greyish tone, appearing lifeless.",
    ),
    "uneven_skin_texture": _severity(
        "Skin texture is smooth and even throughout.",
        "Noticeable unevenness with slight rough or flaky areas.",
        "Pronounced uneven texture with rough, flaky areas in several regions.",
        "Extensive unevenness with significant roughness and flakiness across the face.",
    ),
    "roughness": _severity(
        "Skin feels smooth and soft to the touch.",
        "Noticeable roughness making the skin feel slightly coarse.",
        "Skin feels rough in several areas, noticeable to the touch.",
        "Skin is very rough throughout, feeling coarse and abrasive.",
    ),
    "scarring": _severity(
        "No visible scars.",
        "Noticeable small scars, such as minor acne scars in specific areas.",
        "Pronounced scarring affecting skin texture in multiple areas.",
    ),

    # Blemishes (green)
    "comedones": _severity(
        "No visible blackheads or whiteheads.",
        "Presence of a few blackheads and whiteheads. Minimal clogged pores.",
        "Multiple blackheads and whiteheads in areas like the nose and chin.",
        "Numerous blackheads and whiteheads across various facial areas, indicating significant clogged pores.",
    ),
    "pustules": _severity(
        "No visible pustules.",
        "A few small, inflamed, pus-filled lesions are present.",
        "Multiple pustules are visible, often red at the base.",
        "Numerous pustules across various areas of the face, indicating significant inflammation.",
    ),
    "papules": _severity(
        "No visible papules.",
        "A few small, raised, red bumps are present.",
        "Multiple papules are noticeable in certain areas.",
        "Numerous papules across various facial areas, indicating increased inflammation.",
    ),
    "nodules": _severity(
        "No visible nodules.",
        "A few large, painful, solid lesions are present, lodged deep within the skin.",
        "Multiple nodules are noticeable, causing discomfort.",
        "Numerous nodules across various facial areas, indicating severe deep acne.",
    ),
    "cysts": _severity(
        "No visible cysts.",
        "A few deep, painful, pus-filled lesions are present; may cause scarring.",
        "Multiple cysts are noticeable, indicating severe acne.",
        "Numerous cysts across various facial areas, suggesting severe acne prone to scarring.",
    ),

    # Tone and dark spots (brown)
    "melasma": _severity(
        "No visible signs of melasma.",
        "Visible dark patches on the cheeks, forehead, or upper lip.",
        "Pronounced dark, symmetric patches on the face.",
        "Extensive dark patches covering large areas of the face.",
    ),
    "post_inflammatory_hyperpigmentation": _severity(
        "No visible signs of PIH.",
        "Noticeable dark spots from previous acne, eczema, or injuries.",
        "Pronounced dark spots clearly visible and contrasting with surrounding skin.",
        "Extensive dark spots covering large areas indicating significant PIH.",
    ),
    "age_sun_spots": _severity(
        "No visible signs of age or sun spots.",
        "Noticeable flat, brown or gray spots on sun-exposed areas.",
        "Pronounced age or sun spots that stand out against the surrounding skin.",
        "Extensive flat, dark spots in large areas of the face indicating advanced sun damage.",
    ),
    "freckles": _severity(
        "No visible freckles.",
        "Some minor, flat, brown marks, likely genetic freckles.",
        "Multiple freckles spread across the face; more pronounced with sun exposure.",
    ),
    "moles": _severity(
        "No visible moles.",
        "A few small, dark brown spots or growths are present; likely benign moles.",
        "Multiple moles of varying sizes and shapes are present.",
    ),
    "skin_tone": _severity(
        "Skin tone is even and uniform.",
        "Noticeable unevenness with areas of discoloration.",
        "Pronounced unevenness with clear areas of discoloration.",
        "Extensive unevenness with large areas of discoloration; highly conspicuous.",
    ),
    "predictive_factors_hyperpigmentation": _severity(
        "None",
        "Genetic and age-related factors indicate a higher risk of developing pigmentation disorders like melasma or sun spots.",
    ),

    # Eye contour
    "fine_lines_wrinkles": _severity(
        "No visible fine lines or wrinkles around the eyes.",
        "Visible fine lines and shallow wrinkles are noticeable.",
        "Significant wrinkles and fine lines are clearly visible.",
    ),
    "eye_bags": _severity(
        "No noticeable swelling or puffiness directly beneath the eyes.",
        "Visible swelling or puffiness beneath the eyes caused by natural aging.",
        "Significant and persistent swelling or puffiness giving a drooping look under the eyes.",
    ),
    "hollowed_eyes": _severity(
        "The area around the eyes does not appear sunken or hollowed.",
        "Noticeable sunken appearance around the eyes, making the eyes look tired.",
        "Significant hollowing around the eyes is clearly visible and affects facial appearance.",
    ),
    "puffy_eyes": _severity(
        "No visible swelling or puffiness around the eyes.",
        "Noticeable swelling around the eyes due to environmental factors.",
        "Extensive short-term swelling around the eyes, very prominent and affects appearance.",
    ),
    "dark_circles": _severity(
        "No dark discoloration is visible under the eyes.",
        "Visible dark circles under the eyes, noticeable but not severe.",
        "Significant dark discoloration under the eyes is clearly visible.",
    ),

    # Neck and decollete
    "photoaging": _severity(
        "Skin appears smooth with no visible fine lines or wrinkles.",
        "Slight fine lines or minimal texture changes observed.",
        "Visible wrinkles and fine lines are present, with moderate texture changes.",
        "Extensive wrinkles and pronounced texture changes indicating significant photoaging.",
    ),
    "hyperpigmentation": _severity(
        "Even skin tone with no visible sunspots or discoloration.",
        "Barely noticeable uneven skin tone or a few faint sunspots.",
        "Dark spots and uneven tone covering significant areas.",
        "Extensive, dark, and highly visible pigmentation changes.",
    ),
    "dryness_dehydration": _severity(
        "Skin is adequately hydrated with no visible dryness or flakiness.",
        "Slight dryness or minor flakiness in some areas.",
        "Visible dry patches or flakiness in multiple areas.",
        "Extensive dryness with significant flakiness or scaling.",
    ),
    "textural_changes": _severity(
        "Skin appears smooth and firm with no crepey texture.",
        "Slight crepey skin or minor irregularities.",
        "Visible crepey skin or moderate texture irregularities.",
        "Significant crepey skin and pronounced texture irregularities.",
    ),
    "elasticity_loss": _severity(
        "Skin appears firm with no visible sagging or loss of elasticity.",
        "Minor loss of firmness with slight sagging.",
        "Visible sagging and reduced skin firmness.",
        "Pronounced sagging and significant firmness loss.",
    ),
    "redness": _severity(
        "No visible redness or irritation in the neck or décolleté.",
        "Slight redness in localized areas.",
        "Visible redness across multiple areas.",
        "Pronounced redness covering significant portions of the neck and décolleté.",
    ),
    "acne_prone_skin": _severity(
        "No visible signs of acne.",
        "Mild acne signs, such as a few comedones, small pustules, or papules.",
        "Moderate acne with noticeable pustules, papules, or nodules.",
        "Severe acne, including multiple pustules, nodules, or cysts.",
    ),
})


# Short display names, keyed like PARAMETER_SCORE_OPTIONS
PARAMETER_LABELS: Mapping[str, str] = MappingProxyType({
    "complexion": "Complexion",
    "tiredness": "Tiredness Signs",
    "sun_damage": "Sun Damage",
    "wrinkles": "Wrinkles",
    "fine_lines": "Fine Lines",
    "elasticity_sagging": "Elasticity & Sagging",
    "volume": "Volume",
    "redness_present": "Redness Present",
    "couperose_present": "Couperose Present",
    "is_rosacea": "Is the redness due to rosacea?",
    "is_sunburn": "Is the redness due to sunburn?",
    "is_contact_dermatitis": "Is the redness due to contact dermatitis?",
    "is_eczema": "Is the redness due to eczema?",
    "is_psoriasis": "Is the redness due to psoriasis?",
    "is_infections": "Is the redness due to infections?",
    "is_acne": "Is the redness due to acne?",
    "is_allergic_reaction": "Is the redness due to allergic reaction?",
    "observed_dryness": "Observed Dryness",
    "observed_dehydration": "Observed Dehydration",
    "predictive_factors_dryness": "Predictive Factors for Dryness",
    "predictive_factors_dehydration": "Predictive Factors for Dehydration",
    "oiliness": "Oiliness",
    "pores": "Pores",
    "rough_bumpy_skin": "Rough & Bumpy Skin",
    "dull_skin": "Dull Skin",
    "uneven_skin_texture": "Uneven Skin Texture",
    "roughness": "Roughness",
    "scarring": "Scarring",
    "comedones": "Comedones",
    "pustules": "Pustules",
    "papules": "Papules",
    "nodules": "Nodules",
    "cysts": "Cysts",
    "melasma": "Melasma",
    "post_inflammatory_hyperpigmentation": "Post-Inflammatory Hyperpigmentation",
    "age_sun_spots": "Age & Sun Spots",
    "freckles": "Freckles",
    "moles": "Moles",
    "skin_tone": "Skin Tone",
    "predictive_factors_hyperpigmentation": "Predictive Factors for Hyperpigmentation",
    "fine_lines_wrinkles": "Fine Lines & Wrinkles",
    "eye_bags": "Eye Bags",
    "hollowed_eyes": "Hollowed Eyes",
    "puffy_eyes": "Puffy Eyes",
    "dark_circles": "Dark Circles",
    "photoaging": "Photoaging",
    "hyperpigmentation": "Hyperpigmentation",
    "dryness_dehydration": "Dryness & Dehydration",
    "textural_changes": "Textural Changes",
    "elasticity_loss": "Elasticity Loss",
    "redness": "Redness",
    "acne_prone_skin": "Acne-Prone Skin",
})

# Stored with the analysis but never displayed
HIDDEN_PARAMETERS = frozenset({"is_psoriasis"})

DEFAULT_SCORE_COLOR = "#9CA3AF"


def get_parameter_score_config(key: str) -> ParameterScoreConfig | None:
    """Get the score scale for a parameter, or None if the key is unknown."""
    return PARAMETER_SCORE_OPTIONS.get(key)


def get_score_label(key: str, score: int) -> str | None:
    """
    Get the standardized label for a raw score.

    Returns None when the parameter is unknown or the score is outside
    1..max_score; callers treat that as "no standardized label available".
    """
    config = PARAMETER_SCORE_OPTIONS.get(key)
    if config is None:
        return None
    for option in config.options:
        if option.value == score:
            return option.label
    return None


def get_parameter_label(key: str) -> str:
    """Display name of a parameter, falling back to the raw key."""
    return PARAMETER_LABELS.get(key, key)


def get_severity_color(score: float, max_score: int) -> str:
    """
    Color for a severity score, green (best) through red (worst).

    Args:
        score: Raw score, 1..max_score.
        max_score: Top of the parameter's scale.
    """
    if max_score <= 1:
        return "#10B981"
    ratio = (score - 1) / (max_score - 1)
    if ratio <= 0:
        return "#10B981"  # Green - best
    if ratio <= 0.33:
        return "#34D399"  # Light green
    if ratio <= 0.66:
        return "#FBBF24"  # Amber
    if ratio < 1:
        return "#F97316"  # Orange
    return "#EF4444"  # Red - worst


def get_conditional_color(score: float) -> str:
    """Color for a redness-cause flag: grey (no redness), blue (other cause), red (this cause)."""
    if score == 1:
        return DEFAULT_SCORE_COLOR
    if score == 2:
        return "#3B82F6"
    return "#EF4444"


def get_score_color(key: str, score: float) -> str:
    """Display color for a parameter score; unknown parameters are grey."""
    config = PARAMETER_SCORE_OPTIONS.get(key)
    if config is None:
        return DEFAULT_SCORE_COLOR

    if config.type == ParameterScoreType.CONDITIONAL:
        return get_conditional_color(score)
    return get_severity_color(score, config.max_score)
