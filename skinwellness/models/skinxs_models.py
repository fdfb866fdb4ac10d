"""
SkinXS diagnostic API response schema.

The API is external and its payloads are not guaranteed complete. Every
model here decodes tolerantly: a missing or ill-typed field falls back to its
default instead of failing validation, so a partial response still maps to a
result (with zero scores where data is absent).
"""

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _coerce_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _coerce_mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


class TolerantModel(BaseModel):
    """Base for SkinXS payload models: unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")


class SkinXSCharacteristics(TolerantModel):
    """Patient characteristics estimated by SkinXS."""
    gender: str = ""
    age_group: str = ""
    estimated_age: float | None = None
    ethnicity: str = ""
    eye_color: str = ""
    hair_color: str = ""
    phototype: float | None = None
    skin_thickness: str = ""
    skin_type: str = ""
    skin_age: str = ""

    @field_validator(
        "gender", "age_group", "ethnicity", "eye_color", "hair_color",
        "skin_thickness", "skin_type", "skin_age",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return _coerce_str(v)

    @field_validator("estimated_age", "phototype", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> float | None:
        return _coerce_number(v)


class SkinXSSummary(TolerantModel):
    """Overall skin health text and prioritized concerns."""
    skin_health: str = ""
    skin_concerns_priority: list[str] = Field(default_factory=list)

    @field_validator("skin_health", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return _coerce_str(v)

    @field_validator("skin_concerns_priority", mode="before")
    @classmethod
    def coerce_concerns(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, str)]


class SkinXSScores(TolerantModel):
    """Pre-aggregated 0-10 score per color alias; None when absent or not numeric."""
    yellow: float | None = None
    pink: float | None = None
    red: float | None = None
    blue: float | None = None
    orange: float | None = None
    grey: float | None = None
    green: float | None = None
    brown: float | None = None
    eye: float | None = None
    neck: float | None = None

    @field_validator("*", mode="before")
    @classmethod
    def coerce_scores(cls, v: Any) -> float | None:
        return _coerce_number(v)


class SkinXSCategoryData(BaseModel):
    """
    One color block of the diagnostic.

    Besides the fixed summary fields, a block carries one free-text field per
    parameter (``<key>``) and its raw score (``<key>_multichoices``); those
    arrive as extra fields and are read through ``get``.
    """

    model_config = ConfigDict(extra="allow")

    results_summary: str = ""
    dysfunction_score: float | None = None
    skin_concern_name: str = ""
    skin_concern_assessment: str = ""

    @field_validator("results_summary", "skin_concern_name", "skin_concern_assessment", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return _coerce_str(v)

    @field_validator("dysfunction_score", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> float | None:
        return _coerce_number(v)

    def get(self, field: str, default: Any = None) -> Any:
        """Read a parameter field (text or multichoice score) by its API name."""
        extra = self.model_extra or {}
        return extra.get(field, default)


class SkinXSImageQuality(TolerantModel):
    """Photo quality assessment."""
    clear_image: str = ""
    lighting: str = ""
    focus: str = ""
    true_colors: str = ""
    background: str = ""
    preparation: str = ""
    results_summary: str = ""
    quality_score: float | None = None
    tips_to_improve_quality: str = ""

    @field_validator(
        "clear_image", "lighting", "focus", "true_colors", "background",
        "preparation", "results_summary", "tips_to_improve_quality",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return _coerce_str(v)

    @field_validator("quality_score", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> float | None:
        return _coerce_number(v)


class SkinXSDiagnostic(TolerantModel):
    """The ``diagnostic`` object of a SkinXS response."""
    characteristics: SkinXSCharacteristics = Field(default_factory=SkinXSCharacteristics)
    characteristics_translated: dict[str, Any] | None = None
    summary: SkinXSSummary = Field(default_factory=SkinXSSummary)
    scores: SkinXSScores = Field(default_factory=SkinXSScores)
    yellow: SkinXSCategoryData | None = None
    pink: SkinXSCategoryData | None = None
    red: SkinXSCategoryData | None = None
    blue: SkinXSCategoryData | None = None
    orange: SkinXSCategoryData | None = None
    grey: SkinXSCategoryData | None = None
    green: SkinXSCategoryData | None = None
    brown: SkinXSCategoryData | None = None
    eye: SkinXSCategoryData | None = None
    neck: SkinXSCategoryData | None = None
    image_quality: SkinXSImageQuality = Field(default_factory=SkinXSImageQuality)

    @field_validator("characteristics", "summary", "scores", "image_quality", mode="before")
    @classmethod
    def coerce_sections(cls, v: Any) -> dict[str, Any]:
        return _coerce_mapping(v)

    @field_validator("characteristics_translated", mode="before")
    @classmethod
    def coerce_translated(cls, v: Any) -> dict[str, Any] | None:
        return v if isinstance(v, dict) else None

    @field_validator(
        "yellow", "pink", "red", "blue", "orange", "grey", "green", "brown", "eye", "neck",
        mode="before",
    )
    @classmethod
    def coerce_category(cls, v: Any) -> dict[str, Any] | None:
        return v if isinstance(v, dict) else None

    def category(self, api_alias: str) -> SkinXSCategoryData | None:
        """Get the color block for an API alias."""
        block = getattr(self, api_alias, None)
        return block if isinstance(block, SkinXSCategoryData) else None


class SkinXSApiResponse(TolerantModel):
    """Top-level SkinXS ``analyze_images`` response."""
    diagnostic_id: str = ""
    diagnostic_creation_date: str = ""
    language: str = ""
    diagnostic: SkinXSDiagnostic = Field(default_factory=SkinXSDiagnostic)

    @field_validator("diagnostic_id", "diagnostic_creation_date", "language", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return _coerce_str(v)

    @field_validator("diagnostic", mode="before")
    @classmethod
    def coerce_diagnostic(cls, v: Any) -> dict[str, Any]:
        return _coerce_mapping(v)

    @classmethod
    def decode(cls, payload: Any) -> "SkinXSApiResponse":
        """Decode any JSON value, defaulting whatever is absent or malformed."""
        return cls.model_validate(_coerce_mapping(payload))
