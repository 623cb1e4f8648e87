"""Preference and preference version API endpoints."""

import uuid

from fastapi import APIRouter, HTTPException, status

from rentala.core.errors import VersionNotFoundError
from rentala.dependencies import CurrentUser, DBSession
from rentala.schemas.preferences import (
    PreferencesResponse,
    PreferencesUpdate,
    PreferenceVersionResponse,
    RestoreResponse,
    VersionDiffRequest,
    VersionDiffResponse,
)
from rentala.services.preference_versions import (
    PreferenceSnapshot,
    diff_preference_versions,
    get_user_preferences,
    list_preference_versions,
    restore_preference_version,
    save_user_preferences,
)
from rentala.services.report_pdf import ALL_METRICS

router = APIRouter()


@router.get("/preferences", response_model=PreferencesResponse)
async def get_preferences(user_id: CurrentUser, db: DBSession) -> PreferencesResponse:
    """Current preferences, or defaults if the user has never saved any."""
    preferences = await get_user_preferences(db, user_id)
    if preferences is None:
        snapshot = PreferenceSnapshot(metrics=list(ALL_METRICS))
        return PreferencesResponse(
            metrics=snapshot.metrics,
            default_frequency=snapshot.frequency,
            default_hour=snapshot.hour,
            default_minute=snapshot.minute,
            default_day_of_month=snapshot.day_of_month,
        )
    return PreferencesResponse.model_validate(preferences)


@router.put("/preferences", response_model=PreferencesResponse)
async def save_preferences(
    body: PreferencesUpdate,
    user_id: CurrentUser,
    db: DBSession,
) -> PreferencesResponse:
    """Save preferences and append a version snapshot."""
    snapshot = PreferenceSnapshot(
        metrics=[m.value for m in body.metrics],
        frequency=body.default_frequency,
        hour=body.default_hour,
        minute=body.default_minute,
        day_of_month=body.default_day_of_month,
    )
    preferences = await save_user_preferences(db, user_id, snapshot, body.change_description)
    return PreferencesResponse.model_validate(preferences)


@router.get("/preferences/versions", response_model=list[PreferenceVersionResponse])
async def list_versions(user_id: CurrentUser, db: DBSession) -> list[PreferenceVersionResponse]:
    """Retained versions, newest first."""
    versions = await list_preference_versions(db, user_id)
    return [PreferenceVersionResponse.model_validate(v) for v in versions]


@router.post("/preferences/versions/{version_id}/restore", response_model=RestoreResponse)
async def restore_version(
    version_id: uuid.UUID,
    user_id: CurrentUser,
    db: DBSession,
) -> RestoreResponse:
    """Restore a version. Appends a new version; history is never rewound."""
    try:
        preferences, version = await restore_preference_version(db, user_id, version_id)
    except VersionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Preference version not found"
        ) from e

    return RestoreResponse(
        preferences=PreferencesResponse.model_validate(preferences),
        version=PreferenceVersionResponse.model_validate(version),
    )


@router.post(
    "/preferences/diff",
    response_model=VersionDiffResponse,
    response_model_exclude_none=True,
)
async def diff_versions(
    body: VersionDiffRequest,
    user_id: CurrentUser,
    db: DBSession,
) -> VersionDiffResponse:
    """Diff two versions; unchanged old/new fields are omitted."""
    try:
        diff = await diff_preference_versions(db, user_id, body.old_version_id, body.new_version_id)
    except VersionNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Preference version not found"
        ) from e

    return VersionDiffResponse(**diff.to_dict())
