"""Report failure and rollback suggestion API endpoints."""

import uuid

from fastapi import APIRouter, HTTPException, Query, status

from rentala.core.errors import (
    SuggestionNotFoundError,
    SuggestionStateError,
    VersionNotFoundError,
)
from rentala.dependencies import CurrentUser, DBSession
from rentala.schemas.preferences import PreferencesResponse, PreferenceVersionResponse
from rentala.schemas.rollback import (
    ApplyRollbackResponse,
    FailureResponse,
    FailureStatsResponse,
    SuggestionResponse,
)
from rentala.services.failure_rollback import (
    accept_rollback_suggestion,
    apply_rollback_suggestion,
    dismiss_rollback_suggestion,
    get_failure_history,
    get_failure_stats,
    get_pending_rollback_suggestions,
)

router = APIRouter()


def _suggestion_error(e: Exception) -> HTTPException:
    if isinstance(e, SuggestionStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, VersionNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Suggested version no longer exists"
        )
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Suggestion not found")


@router.get("/rollback/failures", response_model=list[FailureResponse])
async def list_failures(
    user_id: CurrentUser,
    db: DBSession,
    limit: int = Query(default=20, ge=1, le=100),
) -> list[FailureResponse]:
    """Most recent report failures first."""
    failures = await get_failure_history(db, user_id, limit=limit)
    return [FailureResponse.model_validate(f) for f in failures]


@router.get("/rollback/stats", response_model=FailureStatsResponse)
async def failure_stats(user_id: CurrentUser, db: DBSession) -> FailureStatsResponse:
    stats = await get_failure_stats(db, user_id)
    return FailureStatsResponse(
        total_failures=stats.total_failures,
        unresolved_failures=stats.unresolved_failures,
        failures_by_reason=stats.failures_by_reason,
        most_recent_failure=stats.most_recent_failure,
    )


@router.get("/rollback/suggestions", response_model=list[SuggestionResponse])
async def list_suggestions(user_id: CurrentUser, db: DBSession) -> list[SuggestionResponse]:
    """Pending suggestions, highest confidence first."""
    suggestions = await get_pending_rollback_suggestions(db, user_id)
    return [SuggestionResponse.model_validate(s) for s in suggestions]


@router.post("/rollback/suggestions/{suggestion_id}/accept", response_model=SuggestionResponse)
async def accept_suggestion(
    suggestion_id: uuid.UUID, user_id: CurrentUser, db: DBSession
) -> SuggestionResponse:
    try:
        suggestion = await accept_rollback_suggestion(db, suggestion_id, user_id)
    except (SuggestionNotFoundError, SuggestionStateError) as e:
        raise _suggestion_error(e) from e
    return SuggestionResponse.model_validate(suggestion)


@router.post("/rollback/suggestions/{suggestion_id}/apply", response_model=ApplyRollbackResponse)
async def apply_suggestion(
    suggestion_id: uuid.UUID, user_id: CurrentUser, db: DBSession
) -> ApplyRollbackResponse:
    """Restore the suggested version and resolve the linked failure."""
    try:
        result = await apply_rollback_suggestion(db, suggestion_id, user_id)
    except (SuggestionNotFoundError, SuggestionStateError, VersionNotFoundError) as e:
        raise _suggestion_error(e) from e

    return ApplyRollbackResponse(
        message=result.message,
        suggestion=SuggestionResponse.model_validate(result.suggestion),
        preferences=PreferencesResponse.model_validate(result.preferences),
        version=PreferenceVersionResponse.model_validate(result.version),
    )


@router.post("/rollback/suggestions/{suggestion_id}/dismiss", response_model=SuggestionResponse)
async def dismiss_suggestion(
    suggestion_id: uuid.UUID, user_id: CurrentUser, db: DBSession
) -> SuggestionResponse:
    try:
        suggestion = await dismiss_rollback_suggestion(db, suggestion_id, user_id)
    except (SuggestionNotFoundError, SuggestionStateError) as e:
        raise _suggestion_error(e) from e
    return SuggestionResponse.model_validate(suggestion)
