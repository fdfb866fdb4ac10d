"""
Domain models for skin analysis scoring and the analysis lifecycle.

The catalog models are frozen: they describe process-wide reference data.
Result models serialize with camelCase aliases so stored and returned
payloads keep the field names existing clients read.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting snake_case or camelCase input, emitting camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Parameter catalog
# ============================================================================

class ParameterScoreType(str, Enum):
    """How a parameter's raw score should be read."""
    SEVERITY = "severity"  # Higher is more visible
    CONDITIONAL = "conditional"  # Causation flag, never a severity


class ScoreOption(BaseModel):
    """One standardized label for a discrete raw score."""

    model_config = ConfigDict(frozen=True)

    value: int = Field(..., ge=1, description="Raw score value")
    label: str = Field(..., min_length=1, description="Standardized label text")


class ParameterScoreConfig(BaseModel):
    """
    Scale definition of a single scorable skin parameter.

    Attributes:
        type: Severity or conditional scale.
        max_score: Highest valid raw score; raw scores run 1..max_score.
        options: One label per raw score, contiguous and in order.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    type: ParameterScoreType
    max_score: int = Field(..., ge=2)
    options: tuple[ScoreOption, ...]

    @model_validator(mode="after")
    def validate_options_cover_scale(self) -> "ParameterScoreConfig":
        """Options must list every value 1..max_score exactly once, in order."""
        values = [option.value for option in self.options]
        if values != list(range(1, self.max_score + 1)):
            raise ValueError(
                f"options must cover 1..{self.max_score} in order, got {values}"
            )
        return self


class SkinWellnessCategory(CamelModel):
    """One of the ten fixed appearance categories."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    color: str
    order: int = Field(..., ge=1, le=10)
    api_alias: str
    parameter_keys: tuple[str, ...]


# ============================================================================
# Scores and details
# ============================================================================

class ParameterScore(CamelModel):
    """A raw score for one parameter, as fed to the category aggregator."""
    key: str
    score_value: Any = None


class SkinAnalysisResult(CamelModel):
    """Aggregated visibility score of one category."""
    category_id: str
    visibility_level: int = Field(..., ge=0, le=10)


class ParameterDetail(CamelModel):
    """
    A parameter observation shown in the category detail view.

    Attributes:
        key: Parameter key (catalog key).
        label: Short display name.
        description: Free text produced by the diagnostic API.
        score_value: Current raw score (doctor may edit it).
        ai_score_value: Raw score originally assigned by the API.
        score_label: Standardized label for score_value, if the catalog has one.
        score_color: Display color for score_value.
    """
    key: str
    label: str
    description: str = ""
    score_value: int
    ai_score_value: int | None = None
    score_label: str | None = None
    score_color: str | None = None


class PatientAttributes(CamelModel):
    """Patient characteristics estimated by the diagnostic API."""
    gender: Literal["male", "female", "other"] = "other"
    eye_color: Literal["brown", "blue", "green", "hazel", "gray", "amber"] = "brown"
    fitzpatrick_type: Literal["I", "II", "III", "IV", "V", "VI"] = "II"
    skin_thickness: Literal["thin", "thick"] = "thin"
    skin_type: Literal["normal", "dry", "oily", "combination", "sensitive"] = "normal"


class ImageQualityAssessment(CamelModel):
    """Quality assessment of the submitted photos."""
    quality_score: float = 0
    clear_image: str = ""
    lighting: str = ""
    focus: str = ""
    true_colors: str = ""
    background: str = ""
    preparation: str = ""
    results_summary: str = ""
    tips_to_improve: str = ""


class ParsedAnalysisResult(CamelModel):
    """Database-ready and display-ready form of a SkinXS response."""

    diagnostic_id: str = ""
    api_language: str = ""
    raw_response: dict[str, Any] = Field(default_factory=dict)
    raw_response_translated: dict[str, Any] | None = None

    # Patient characteristics as reported
    gender: str = ""
    age_group: str = ""
    estimated_age: float | None = None
    ethnicity: str = ""
    eye_color: str = ""
    hair_color: str = ""
    phototype: int | None = None
    skin_thickness: str = ""
    skin_type: str = ""
    skin_age: str = ""

    # Summary
    skin_health_overview: str = ""
    priority_concerns: list[str] = Field(default_factory=list)

    # Category scores
    score_radiance: int = 0
    score_smoothness: int = 0
    score_redness: int = 0
    score_hydration: int = 0
    score_shine: int = 0
    score_texture: int = 0
    score_blemishes: int = 0
    score_tone: int = 0
    score_eye_contour: int = 0
    score_neck_decollete: int = 0
    category_scores: dict[str, int] = Field(default_factory=dict)
    category_results: list[SkinAnalysisResult] = Field(default_factory=list)

    parameter_scores: dict[str, int] = Field(default_factory=dict)

    image_quality_score: float | None = None
    image_quality_summary: str = ""

    # Mapped for display
    patient_attributes: PatientAttributes = Field(default_factory=PatientAttributes)
    category_details: dict[str, list[ParameterDetail]] = Field(default_factory=dict)
    image_quality: ImageQualityAssessment = Field(default_factory=ImageQualityAssessment)


# ============================================================================
# Analysis lifecycle
# ============================================================================

class AnalysisState(str, Enum):
    """Persisted lifecycle state of an analysis record."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisRecord(BaseModel):
    """
    Stored analysis attempt for a photo session.

    Field names follow the store's column names.
    """
    id: str | None = None
    photo_session_id: str
    patient_id: str | None = None
    doctor_id: str | None = None
    clinical_session_id: str | None = None
    status: AnalysisState
    raw_response: dict[str, Any] | None = None
    error_message: str | None = None
    diagnostic_id: str | None = None
    columns: dict[str, Any] = Field(default_factory=dict, description="All stored columns")
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AnalysisStatus(CamelModel):
    """What a polling client sees for a photo session."""
    status: AnalysisState
    error_message: str | None = None
    result: ParsedAnalysisResult | None = None
    skin_analysis_id: str | None = None


class AnalysisOutcome(BaseModel):
    """Successful orchestration result."""
    diagnostic_id: str
    duration_ms: int = Field(..., ge=0)


class RateLimitStatus(BaseModel):
    """Monthly quota position of a doctor."""
    within_limit: bool
    current_count: int = Field(default=0, ge=0)
    limit: int = Field(..., ge=1)


class PhotoSession(BaseModel):
    """Photo session as read from the store; URLs are storage paths or URLs."""
    id: str
    patient_id: str
    frontal_photo_url: str | None = None
    left_profile_photo_url: str | None = None
    right_profile_photo_url: str | None = None


class PhotoUrls(BaseModel):
    """Signed URLs handed to the diagnostic API client."""
    frontal: str
    left_profile: str | None = None
    right_profile: str | None = None
