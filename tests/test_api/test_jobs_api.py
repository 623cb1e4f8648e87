"""Tests for background task monitoring endpoints."""

from datetime import datetime

import pytest
from httpx import AsyncClient

from rentala.models.job_run import JobRun

pytestmark = pytest.mark.asyncio


class TestJobSchedules:
    """Tests for GET /api/jobs/schedules."""

    async def test_lists_tasks_when_scheduler_not_running(self, client: AsyncClient):
        response = await client.get("/api/jobs/schedules")

        assert response.status_code == 200
        tasks = {task["id"]: task for task in response.json()}
        assert tasks["notification_sweep_daily"]["trigger"] == "daily at 09:00 UTC"
        assert tasks["notification_sweep_periodic"]["trigger"] == "every 6h"
        assert tasks["report_scan"]["trigger"] == "every 15m"
        assert not any(task["active"] for task in tasks.values())


class TestJobRuns:
    """Tests for GET /api/jobs/runs."""

    async def test_lists_runs_newest_first(self, client: AsyncClient, db_session):
        for job_id, hour in (("report_scan", 9), ("notification_sweep_daily", 10)):
            db_session.add(
                JobRun(
                    job_id=job_id,
                    scheduled_at=datetime(2026, 10, 18, hour, 0),
                    started_at=datetime(2026, 10, 18, hour, 0, 1),
                    finished_at=datetime(2026, 10, 18, hour, 0, 4),
                    outcome="success",
                )
            )
        await db_session.flush()

        response = await client.get("/api/jobs/runs")

        assert response.status_code == 200
        runs = response.json()
        assert [r["job_id"] for r in runs] == ["notification_sweep_daily", "report_scan"]
        assert runs[0]["duration_seconds"] == 3.0

    async def test_filter_by_job(self, client: AsyncClient, db_session):
        db_session.add(
            JobRun(
                job_id="report_scan",
                scheduled_at=datetime(2026, 10, 18, 9, 0),
                started_at=datetime(2026, 10, 18, 9, 0),
                finished_at=datetime(2026, 10, 18, 9, 1),
                outcome="error",
                error="boom",
            )
        )
        await db_session.flush()

        response = await client.get("/api/jobs/runs", params={"job_id": "notification_sweep_daily"})

        assert response.json() == []

    async def test_failed_only(self, client: AsyncClient, db_session):
        for outcome in ("success", "error"):
            db_session.add(
                JobRun(
                    job_id="report_scan",
                    scheduled_at=datetime(2026, 10, 18, 9, 0),
                    started_at=datetime(2026, 10, 18, 9, 0),
                    finished_at=datetime(2026, 10, 18, 9, 0, 2),
                    outcome=outcome,
                )
            )
        await db_session.flush()

        response = await client.get("/api/jobs/runs", params={"failed_only": True})

        assert [run["outcome"] for run in response.json()] == ["error"]
