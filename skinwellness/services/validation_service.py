"""
Doctor validation of AI skin analyses.

A doctor reviews the AI result, corrects parameter scores and patient
attributes, and saves a validated diagnostic. Category scores are recomputed
from the corrected parameters with the same aggregation the AI result used,
and every difference to the AI values is recorded.
"""

from collections.abc import Mapping, Sequence

from skinwellness.config.logging_config import get_logger
from skinwellness.database.protocols import ValidationStore
from skinwellness.exceptions import PersistenceError, ResourceNotFoundError
from skinwellness.models.analysis_models import (
    AnalysisState,
    ParameterDetail,
    PatientAttributes,
    SkinAnalysisResult,
)
from skinwellness.models.validation_models import (
    AttributeChange,
    DetailChange,
    ScoreChange,
    SkinAnalysisValidation,
    ValidatedDiagnostic,
    ValidationModifications,
)
from skinwellness.services.analysis_orchestrator import SkinAnalysisService
from skinwellness.services.parameter_catalog import get_score_color, get_score_label
from skinwellness.services.score_normalizer import calculate_category_score
from skinwellness.services.skin_categories import SKIN_WELLNESS_CATEGORIES

logger = get_logger(__name__)

ATTRIBUTE_FIELDS = ("gender", "eye_color", "fitzpatrick_type", "skin_thickness", "skin_type")


def recalculate_category_scores(
    details_by_category: Mapping[str, Sequence[ParameterDetail]],
    fallback_scores: Sequence[SkinAnalysisResult] | None = None,
) -> list[SkinAnalysisResult]:
    """
    Recompute category scores from (possibly edited) parameter details.

    Categories without details keep their fallback score, or 0.

    Returns:
        One result per category, in display order.
    """
    fallback = {score.category_id: score.visibility_level for score in fallback_scores or []}
    results = []
    for category in SKIN_WELLNESS_CATEGORIES:
        details = details_by_category.get(category.id)
        if details:
            level = calculate_category_score(details)
        else:
            level = fallback.get(category.id, 0)
        results.append(SkinAnalysisResult(category_id=category.id, visibility_level=level))
    return results


def refresh_detail_labels(details_by_category: Mapping[str, Sequence[ParameterDetail]]) -> dict[str, list[ParameterDetail]]:
    """Re-derive score labels and colors after a doctor changed score values."""
    return {
        category_id: [
            detail.model_copy(update={
                "score_label": get_score_label(detail.key, detail.score_value),
                "score_color": get_score_color(detail.key, detail.score_value),
            })
            for detail in details
        ]
        for category_id, details in details_by_category.items()
    }


def compute_modifications(
    ai_scores: Sequence[SkinAnalysisResult],
    doctor_scores: Sequence[SkinAnalysisResult],
    ai_details: Mapping[str, Sequence[ParameterDetail]] | None,
    doctor_details: Mapping[str, Sequence[ParameterDetail]],
    ai_attributes: PatientAttributes | None,
    doctor_attributes: PatientAttributes | None,
    ai_overview_text: str | None,
    doctor_overview_text: str,
    concerns_manually_edited: bool,
) -> ValidationModifications:
    """
    Diff the doctor's validated data against the AI analysis.

    A parameter counts as changed when the doctor's value differs from the
    original AI value (``ai_score_value`` on the detail, else the AI detail
    with the same key). Attributes are compared only when both sides exist.
    """
    ai_score_by_category = {score.category_id: score.visibility_level for score in ai_scores}
    score_changes = [
        ScoreChange(
            category_id=score.category_id,
            ai_value=ai_score_by_category[score.category_id],
            doctor_value=score.visibility_level,
        )
        for score in doctor_scores
        if score.category_id in ai_score_by_category
        and ai_score_by_category[score.category_id] != score.visibility_level
    ]

    detail_changes: list[DetailChange] = []
    if ai_details is not None:
        for category_id, doctor_params in doctor_details.items():
            ai_params = {param.key: param for param in ai_details.get(category_id, [])}
            for param in doctor_params:
                ai_value = param.ai_score_value
                if ai_value is None and param.key in ai_params:
                    ai_value = ai_params[param.key].score_value
                if ai_value is not None and ai_value != param.score_value:
                    detail_changes.append(
                        DetailChange(
                            category_id=category_id,
                            parameter_key=param.key,
                            parameter_name=param.label,
                            ai_value=ai_value,
                            doctor_value=param.score_value,
                        )
                    )

    attribute_changes: list[AttributeChange] = []
    if ai_attributes is not None and doctor_attributes is not None:
        for field in ATTRIBUTE_FIELDS:
            ai_value = getattr(ai_attributes, field)
            doctor_value = getattr(doctor_attributes, field)
            if ai_value != doctor_value:
                attribute_changes.append(
                    AttributeChange(field=field, ai_value=str(ai_value), doctor_value=str(doctor_value))
                )

    overview_changed = (ai_overview_text or "") != doctor_overview_text
    concerns_changed = concerns_manually_edited

    return ValidationModifications(
        score_changes=score_changes,
        detail_changes=detail_changes,
        attribute_changes=attribute_changes,
        overview_changed=overview_changed,
        concerns_changed=concerns_changed,
        total_changes=(
            len(score_changes)
            + len(detail_changes)
            + len(attribute_changes)
            + int(overview_changed)
            + int(concerns_changed)
        ),
    )


class ValidationService:
    """Saves, reads and resets doctor validations of completed analyses."""

    def __init__(self, store: ValidationStore, analysis_service: SkinAnalysisService):
        self.store = store
        self.analysis_service = analysis_service

    async def validate(
        self,
        photo_session_id: str,
        doctor_id: str,
        validated_details: Mapping[str, Sequence[ParameterDetail]],
        validated_attributes: PatientAttributes | None = None,
        validated_overview_text: str = "",
        priority_face_concerns: Sequence[str] = (),
        priority_additional_concerns: Sequence[str] = (),
        concerns_manually_edited: bool = False,
    ) -> SkinAnalysisValidation:
        """
        Validate the completed analysis of a photo session.

        Raises:
            ResourceNotFoundError: No completed analysis for the session.
            PersistenceError: The validation could not be saved.
        """
        status = await self.analysis_service.get_analysis_result(photo_session_id)
        if status is None or status.status != AnalysisState.COMPLETED or status.result is None:
            raise ResourceNotFoundError("No completed analysis for this photo session", resource="skin_analysis")

        ai_result = status.result
        details = refresh_detail_labels(validated_details)
        validated_scores = recalculate_category_scores(details, ai_result.category_results)

        modifications = compute_modifications(
            ai_scores=ai_result.category_results,
            doctor_scores=validated_scores,
            ai_details=ai_result.category_details,
            doctor_details=details,
            ai_attributes=ai_result.patient_attributes,
            doctor_attributes=validated_attributes,
            ai_overview_text=ai_result.skin_health_overview,
            doctor_overview_text=validated_overview_text,
            concerns_manually_edited=concerns_manually_edited,
        )

        saved = await self.store.save_validated_diagnostic(
            ValidatedDiagnostic(
                photo_session_id=photo_session_id,
                skin_analysis_id=status.skin_analysis_id or "",
                doctor_id=doctor_id,
                validated_scores=validated_scores,
                validated_details=details,
                validated_attributes=validated_attributes,
                validated_overview_text=validated_overview_text,
                priority_face_concerns=list(priority_face_concerns),
                priority_additional_concerns=list(priority_additional_concerns),
                concerns_manually_edited=concerns_manually_edited,
                modifications=modifications,
            )
        )
        if saved is None:
            raise PersistenceError("Failed to save validated diagnostic", operation="save_validated_diagnostic")

        logger.info(
            "Diagnostic validated",
            photo_session_id=photo_session_id,
            total_changes=modifications.total_changes,
        )
        return saved

    async def get_validation(self, photo_session_id: str) -> SkinAnalysisValidation | None:
        return await self.store.get_validated_diagnostic(photo_session_id)

    async def delete_validation(self, photo_session_id: str) -> None:
        """Reset a session to its AI values."""
        if not await self.store.delete_validated_diagnostic(photo_session_id):
            raise PersistenceError("Failed to delete validated diagnostic", operation="delete_validated_diagnostic")
