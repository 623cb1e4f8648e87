"""Report schedule API endpoints."""

import uuid

from fastapi import APIRouter, HTTPException, Query, status

from rentala.core.errors import RecipientValidationError, ScheduleNotFoundError
from rentala.core.logging import get_logger
from rentala.dependencies import CurrentUser, DBSession, EmailTransport, Renderer
from rentala.schemas.schedule import (
    DeliveryAttemptResponse,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
    TestSendResponse,
)
from rentala.services.report_scheduler import (
    create_schedule,
    delete_schedule,
    execute_scheduled_report,
    get_schedule,
    get_schedule_delivery_history,
    list_schedules,
    update_schedule,
)

logger = get_logger(__name__)

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")


def _invalid_recipient(e: RecipientValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def _operation_failed(action: str, e: Exception) -> HTTPException:
    logger.bind(action=action, error=str(e)).error("schedule_operation_failed")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action} schedule",
    )


@router.post("/schedules", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_report_schedule(
    body: ScheduleCreate,
    user_id: CurrentUser,
    db: DBSession,
) -> ScheduleResponse:
    """Create a recurring report schedule; next send time is computed immediately."""
    try:
        schedule = await create_schedule(
            db,
            user_id,
            name=body.name,
            frequency=body.frequency,
            recipient_emails=[str(e) for e in body.recipient_emails],
            metrics=[m.value for m in body.metrics],
            property_id=body.property_id,
            description=body.description,
            day_of_week=body.day_of_week,
            day_of_month=body.day_of_month,
            hour=body.hour,
            minute=body.minute,
        )
    except RecipientValidationError as e:
        raise _invalid_recipient(e) from e
    except Exception as e:
        raise _operation_failed("create", e) from e

    return ScheduleResponse.model_validate(schedule)


@router.get("/schedules", response_model=list[ScheduleResponse])
async def list_report_schedules(
    user_id: CurrentUser,
    db: DBSession,
    include_completed: bool = Query(default=False),
) -> list[ScheduleResponse]:
    """List the caller's schedules, newest first."""
    schedules = await list_schedules(db, user_id, include_completed=include_completed)
    return [ScheduleResponse.model_validate(s) for s in schedules]


@router.get("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def get_report_schedule(
    schedule_id: uuid.UUID,
    user_id: CurrentUser,
    db: DBSession,
) -> ScheduleResponse:
    try:
        schedule = await get_schedule(db, user_id, schedule_id)
    except ScheduleNotFoundError as e:
        raise _not_found() from e
    return ScheduleResponse.model_validate(schedule)


@router.patch("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def update_report_schedule(
    schedule_id: uuid.UUID,
    body: ScheduleUpdate,
    user_id: CurrentUser,
    db: DBSession,
) -> ScheduleResponse:
    """
    Update a schedule.

    Changing frequency, day or time (or re-activating a paused schedule)
    recomputes the next send time.
    """
    try:
        schedule = await update_schedule(db, user_id, schedule_id, body.to_changes())
    except ScheduleNotFoundError as e:
        raise _not_found() from e
    except RecipientValidationError as e:
        raise _invalid_recipient(e) from e
    except Exception as e:
        raise _operation_failed("update", e) from e

    return ScheduleResponse.model_validate(schedule)


@router.delete("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def delete_report_schedule(
    schedule_id: uuid.UUID,
    user_id: CurrentUser,
    db: DBSession,
) -> ScheduleResponse:
    """Mark a schedule completed. Delivery history is kept."""
    try:
        schedule = await delete_schedule(db, user_id, schedule_id)
    except ScheduleNotFoundError as e:
        raise _not_found() from e
    except Exception as e:
        raise _operation_failed("delete", e) from e

    return ScheduleResponse.model_validate(schedule)


@router.get("/schedules/{schedule_id}/history", response_model=list[DeliveryAttemptResponse])
async def get_delivery_history(
    schedule_id: uuid.UUID,
    user_id: CurrentUser,
    db: DBSession,
    limit: int = Query(default=50, ge=1, le=100),
) -> list[DeliveryAttemptResponse]:
    """Per-recipient delivery attempts, newest first."""
    try:
        attempts = await get_schedule_delivery_history(db, user_id, schedule_id, limit=limit)
    except ScheduleNotFoundError as e:
        raise _not_found() from e
    return [DeliveryAttemptResponse.model_validate(a) for a in attempts]


@router.post("/schedules/{schedule_id}/test-send", response_model=TestSendResponse)
async def test_send_report(
    schedule_id: uuid.UUID,
    user_id: CurrentUser,
    db: DBSession,
    channel: EmailTransport,
    renderer: Renderer,
) -> TestSendResponse:
    """
    Deliver the report immediately to the schedule's recipients.

    Test sends never move the schedule's next send time.
    """
    try:
        await get_schedule(db, user_id, schedule_id)
        result = await execute_scheduled_report(
            db, schedule_id, renderer=renderer, channel=channel, advance=False
        )
    except ScheduleNotFoundError as e:
        raise _not_found() from e
    except Exception as e:
        raise _operation_failed("test-send", e) from e

    return TestSendResponse(
        success=result.success,
        message="Test report sent successfully" if result.success else "Failed to send test report",
        sent=result.sent,
        failed=result.failed,
        rejected=result.rejected,
    )
