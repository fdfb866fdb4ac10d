"""
Models for doctor-validated diagnostics.

A validation stores the doctor's corrected view of an AI analysis together
with a diff against the AI values, kept for later model improvement.
"""

from typing import Literal

from pydantic import Field

from skinwellness.models.analysis_models import (
    CamelModel,
    ParameterDetail,
    PatientAttributes,
    SkinAnalysisResult,
)

AttributeField = Literal["gender", "eye_color", "fitzpatrick_type", "skin_thickness", "skin_type"]


class ScoreChange(CamelModel):
    """A category score the doctor changed."""
    category_id: str
    ai_value: int
    doctor_value: int


class DetailChange(CamelModel):
    """A parameter score the doctor changed."""
    category_id: str
    parameter_key: str
    parameter_name: str
    ai_value: int
    doctor_value: int


class AttributeChange(CamelModel):
    """A patient attribute the doctor changed."""
    field: AttributeField
    ai_value: str
    doctor_value: str


class ValidationModifications(CamelModel):
    """Every difference between the AI analysis and the validated one."""
    score_changes: list[ScoreChange] = Field(default_factory=list)
    detail_changes: list[DetailChange] = Field(default_factory=list)
    attribute_changes: list[AttributeChange] = Field(default_factory=list)
    overview_changed: bool = False
    concerns_changed: bool = False
    total_changes: int = 0


class ValidatedDiagnostic(CamelModel):
    """Validated diagnostic as written to the store."""
    photo_session_id: str
    skin_analysis_id: str
    doctor_id: str
    validated_scores: list[SkinAnalysisResult]
    validated_details: dict[str, list[ParameterDetail]] = Field(default_factory=dict)
    validated_attributes: PatientAttributes | None = None
    validated_overview_text: str = ""
    priority_face_concerns: list[str] = Field(default_factory=list)
    priority_additional_concerns: list[str] = Field(default_factory=list)
    concerns_manually_edited: bool = False
    modifications: ValidationModifications = Field(default_factory=ValidationModifications)


class SkinAnalysisValidation(ValidatedDiagnostic):
    """Validated diagnostic as read back from the store."""
    id: str
    validated_details: dict[str, list[ParameterDetail]] | None = None
    validated_overview_text: str | None = None
    modifications: ValidationModifications | None = None
    created_at: str | None = None
    updated_at: str | None = None
