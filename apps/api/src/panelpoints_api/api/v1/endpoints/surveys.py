"""Survey completion endpoint."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from panelpoints_api.api.dependencies.rate_limit import rate_limit
from panelpoints_api.api.dependencies.session import require_panelist_profile, require_permission
from panelpoints_api.api.errors import as_http_exception
from panelpoints_api.db.session import get_session
from panelpoints_api.models.panelist import PanelistProfile
from panelpoints_api.schemas.points import SurveyCompleteRequest, SurveyCompletionResponse
from panelpoints_api.services.points import PointsServiceError, SurveyAnswer, SurveyCompletionService
from panelpoints_api.services.ratelimit import RateLimitBucket


router = APIRouter(prefix="/surveys", tags=["surveys"])


@router.post(
    "/{survey_id}/complete",
    response_model=SurveyCompletionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(require_permission("complete_surveys")),
        Depends(rate_limit(RateLimitBucket.SURVEY_COMPLETION)),
    ],
)
async def complete_survey(
    survey_id: UUID,
    payload: SurveyCompleteRequest,
    profile: PanelistProfile = Depends(require_panelist_profile),
    db: AsyncSession = Depends(get_session),
) -> SurveyCompletionResponse:
    """Record the caller's completion and award the survey's points once."""

    service = SurveyCompletionService(db)
    answers = [
        SurveyAnswer(
            question_id=item.question_id,
            response_value=item.response_value,
            response_metadata=item.response_metadata,
        )
        for item in payload.responses
    ]
    try:
        result = await service.complete_survey(profile.id, survey_id, answers)
    except PointsServiceError as exc:
        raise as_http_exception(exc) from exc

    return SurveyCompletionResponse(
        points_earned=result.points_earned,
        completion_id=result.completion_id,
        new_balance=result.new_balance,
        total_earned=result.total_earned,
    )
