"""Background task monitoring: registered triggers and their run history."""

from datetime import datetime

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel
from sqlalchemy import select

from rentala.core.scheduler import get_job_schedules
from rentala.dependencies import DBSession
from rentala.models.job_run import JobRun

router = APIRouter()


class TaskScheduleResponse(BaseModel):
    id: str
    trigger: str
    active: bool
    next_fire_time: datetime | None = None
    last_fire_time: datetime | None = None


class JobRunResponse(BaseModel):
    id: str
    job_id: str
    scheduled_at: datetime
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    outcome: str
    error: str | None


@router.get("/jobs/schedules", response_model=list[TaskScheduleResponse])
async def list_task_schedules(request: Request) -> list[TaskScheduleResponse]:
    """
    The notification sweeps and the report scan, with their triggers.

    active is False for every task when the scheduler is disabled.
    """
    handle = getattr(request.app.state, "scheduler", None)
    return [TaskScheduleResponse(**task) for task in await get_job_schedules(handle)]


@router.get("/jobs/runs", response_model=list[JobRunResponse])
async def list_job_runs(
    db: DBSession,
    job_id: str | None = Query(default=None, description="Filter by task ID"),
    failed_only: bool = Query(default=False, description="Only runs that did not succeed"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobRunResponse]:
    """Recent task executions, newest first."""
    query = select(JobRun)
    if job_id:
        query = query.where(JobRun.job_id == job_id)
    if failed_only:
        query = query.where(JobRun.outcome != "success")

    result = await db.execute(
        query.order_by(JobRun.scheduled_at.desc()).offset(offset).limit(limit)
    )

    return [
        JobRunResponse(
            id=run.id,
            job_id=run.job_id,
            scheduled_at=run.scheduled_at,
            started_at=run.started_at,
            finished_at=run.finished_at,
            duration_seconds=run.duration_seconds,
            outcome=run.outcome,
            error=run.error,
        )
        for run in result.scalars().all()
    ]
