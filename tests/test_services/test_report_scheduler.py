"""Tests for scheduled report CRUD, claiming and execution."""

import time
import uuid
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from rentala.config import get_config, get_settings
from rentala.core.errors import RecipientValidationError, ScheduleNotFoundError
from rentala.models.failure import FailureReason, ReportFailure, RollbackSuggestion
from rentala.models.schedule import (
    DeliveryAttempt,
    DeliveryStatus,
    ScheduleFrequency,
    ScheduleStatus,
)
from rentala.services.preference_versions import PreferenceSnapshot, save_user_preferences
from rentala.services.report_scheduler import (
    claim_schedule,
    create_schedule,
    delete_schedule,
    execute_scheduled_report,
    get_due_schedules,
    get_schedule,
    get_schedule_delivery_history,
    list_schedules,
    release_claim,
    run_due_reports,
    update_schedule,
)
from tests.fakes import FAKE_PDF, OWNER_ID, FakeChannel, fake_renderer

pytestmark = pytest.mark.asyncio

# Sunday
NOW = datetime(2026, 10, 18, 10, 0)


async def _attempts(db_session, schedule_id):
    result = await db_session.execute(
        select(DeliveryAttempt).where(DeliveryAttempt.schedule_id == schedule_id)
    )
    return list(result.scalars().all())


async def _open_failure(db_session, schedule_id):
    result = await db_session.execute(
        select(ReportFailure).where(
            ReportFailure.schedule_id == schedule_id, ReportFailure.resolved_at.is_(None)
        )
    )
    return result.scalar_one_or_none()


def _broken_renderer(title, rows, metrics):
    raise ValueError("font missing")


def _slow_renderer(title, rows, metrics):
    time.sleep(0.5)
    return FAKE_PDF


class TestScheduleCrud:
    async def test_create_computes_next_send(self, db_session):
        schedule = await create_schedule(
            db_session,
            OWNER_ID,
            name="Weekly",
            frequency=ScheduleFrequency.WEEKLY,
            recipient_emails=["Manager@Rentala.co.za", "manager@rentala.co.za"],
            metrics=["overall"],
            day_of_week=3,
            hour=8,
            minute=15,
            now=NOW,
        )

        assert schedule.status == ScheduleStatus.ACTIVE
        assert schedule.next_send_at == datetime(2026, 10, 21, 8, 15)
        assert schedule.recipient_emails == ["manager@rentala.co.za"]

    async def test_create_rejects_malformed_recipient(self, db_session):
        with pytest.raises(RecipientValidationError):
            await create_schedule(
                db_session,
                OWNER_ID,
                name="Bad",
                frequency=ScheduleFrequency.MONTHLY,
                recipient_emails=["not-an-email"],
                metrics=["overall"],
                now=NOW,
            )

    async def test_cadence_change_recomputes_next_send(self, db_session, schedule_factory):
        schedule = await schedule_factory(next_send_at=datetime(2026, 11, 1, 9, 0))

        updated = await update_schedule(
            db_session, OWNER_ID, schedule.id, {"day_of_month": 31}, now=NOW
        )

        assert updated.next_send_at == datetime(2026, 11, 30, 9, 0)

    async def test_non_cadence_change_keeps_next_send(self, db_session, schedule_factory):
        schedule = await schedule_factory(next_send_at=datetime(2026, 11, 1, 9, 0))

        updated = await update_schedule(db_session, OWNER_ID, schedule.id, {"name": "Renamed"})

        assert updated.name == "Renamed"
        assert updated.next_send_at == datetime(2026, 11, 1, 9, 0)

    async def test_reactivation_recomputes_next_send(self, db_session, schedule_factory):
        schedule = await schedule_factory(
            status=ScheduleStatus.PAUSED, next_send_at=datetime(2026, 5, 1, 9, 0)
        )

        updated = await update_schedule(
            db_session, OWNER_ID, schedule.id, {"status": ScheduleStatus.ACTIVE}, now=NOW
        )

        assert updated.next_send_at == datetime(2026, 11, 1, 9, 0)

    async def test_unknown_field_is_rejected(self, db_session, schedule_factory):
        schedule = await schedule_factory()

        with pytest.raises(ValueError):
            await update_schedule(db_session, OWNER_ID, schedule.id, {"owner_id": "someone"})

    async def test_delete_marks_completed(self, db_session, schedule_factory):
        schedule = await schedule_factory()

        await delete_schedule(db_session, OWNER_ID, schedule.id)

        assert (await get_schedule(db_session, OWNER_ID, schedule.id)).status == (
            ScheduleStatus.COMPLETED
        )
        assert await list_schedules(db_session, OWNER_ID) == []
        assert len(await list_schedules(db_session, OWNER_ID, include_completed=True)) == 1

    async def test_other_owner_cannot_see_schedule(self, db_session, schedule_factory):
        schedule = await schedule_factory()

        with pytest.raises(ScheduleNotFoundError):
            await get_schedule(db_session, "intruder", schedule.id)


class TestDueScan:
    async def test_only_active_past_due_schedules(self, db_session, schedule_factory):
        due = await schedule_factory(next_send_at=NOW - timedelta(minutes=1))
        await schedule_factory(next_send_at=NOW + timedelta(minutes=1))
        await schedule_factory(next_send_at=NOW - timedelta(days=1), status=ScheduleStatus.PAUSED)
        await schedule_factory(
            next_send_at=NOW - timedelta(days=1), status=ScheduleStatus.COMPLETED
        )
        await schedule_factory(next_send_at=None)

        result = await get_due_schedules(db_session, NOW)

        assert [s.id for s in result] == [due.id]

    async def test_schedule_due_exactly_now(self, db_session, schedule_factory):
        due = await schedule_factory(next_send_at=NOW)

        assert [s.id for s in await get_due_schedules(db_session, NOW)] == [due.id]


class TestClaim:
    async def test_second_claim_fails(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        seen = schedule.next_send_at

        assert await claim_schedule(db_session, schedule.id, seen, NOW) is True
        assert await claim_schedule(db_session, schedule.id, seen, NOW) is False

    async def test_claim_fails_if_next_send_moved(self, db_session, schedule_factory):
        schedule = await schedule_factory()

        moved = schedule.next_send_at + timedelta(days=30)
        assert await claim_schedule(db_session, schedule.id, moved, NOW) is False

    async def test_stale_claim_can_be_taken_over(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        seen = schedule.next_send_at
        await claim_schedule(db_session, schedule.id, seen, NOW - timedelta(hours=2))

        assert await claim_schedule(db_session, schedule.id, seen, NOW) is True

    async def test_released_claim_can_be_reclaimed(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        seen = schedule.next_send_at
        await claim_schedule(db_session, schedule.id, seen, NOW)

        await release_claim(db_session, schedule.id)

        assert await claim_schedule(db_session, schedule.id, seen, NOW) is True


class TestExecuteScheduledReport:
    async def test_success_advances_and_records_attempts(
        self, db_session, schedule_factory, email_channel
    ):
        schedule = await schedule_factory(
            recipient_emails=["a@rentala.co.za", "b@rentala.co.za"]
        )

        result = await execute_scheduled_report(
            db_session, schedule.id, renderer=fake_renderer, channel=email_channel, now=NOW
        )

        assert result.success is True
        assert (result.sent, result.failed, result.rejected) == (2, 0, 0)
        assert result.advanced is True
        assert schedule.last_sent_at == NOW
        assert schedule.next_send_at == datetime(2026, 11, 1, 9, 0)

        attempts = await _attempts(db_session, schedule.id)
        assert {a.status for a in attempts} == {DeliveryStatus.SENT}
        assert all(a.sent_at == NOW for a in attempts)

        target, message = email_channel.sent[0]
        attachment = message.attachments[0]
        assert attachment.content == FAKE_PDF
        assert attachment.filename == "satisfaction-report-2026-10-18.pdf"

    async def test_partial_delivery_counts_as_success(self, db_session, schedule_factory):
        schedule = await schedule_factory(
            recipient_emails=["a@rentala.co.za", "b@rentala.co.za"]
        )
        channel = FakeChannel(fail_targets={"b@rentala.co.za"})

        result = await execute_scheduled_report(
            db_session, schedule.id, renderer=fake_renderer, channel=channel, now=NOW
        )

        assert result.success is True
        assert (result.sent, result.failed) == (1, 1)
        statuses = {a.recipient_email: a.status for a in await _attempts(db_session, schedule.id)}
        assert statuses == {
            "a@rentala.co.za": DeliveryStatus.SENT,
            "b@rentala.co.za": DeliveryStatus.FAILED,
        }
        assert await _open_failure(db_session, schedule.id) is None

    async def test_transport_failure_leaves_schedule_due(self, db_session, schedule_factory):
        schedule = await schedule_factory(recipient_emails=["a@rentala.co.za"])
        original_next = schedule.next_send_at
        channel = FakeChannel(fail_targets={"a@rentala.co.za"})

        result = await execute_scheduled_report(
            db_session, schedule.id, renderer=fake_renderer, channel=channel, now=NOW
        )

        assert result.success is False
        assert result.advanced is False
        assert schedule.next_send_at == original_next
        assert schedule.last_sent_at is None
        failure = await _open_failure(db_session, schedule.id)
        assert failure.failure_reason == FailureReason.EMAIL_DELIVERY

    async def test_all_invalid_recipients_still_advances(
        self, db_session, schedule_factory, email_channel
    ):
        schedule = await schedule_factory(recipient_emails=["broken-address"])

        result = await execute_scheduled_report(
            db_session, schedule.id, renderer=fake_renderer, channel=email_channel, now=NOW
        )

        assert result.success is False
        assert result.rejected == 1
        assert result.advanced is True
        assert schedule.next_send_at == datetime(2026, 11, 1, 9, 0)
        assert schedule.last_sent_at is None
        failure = await _open_failure(db_session, schedule.id)
        assert failure.failure_reason == FailureReason.INVALID_RECIPIENT

    async def test_render_failure_aborts_before_delivery(
        self, db_session, schedule_factory, email_channel
    ):
        schedule = await schedule_factory()
        original_next = schedule.next_send_at

        result = await execute_scheduled_report(
            db_session, schedule.id, renderer=_broken_renderer, channel=email_channel, now=NOW
        )

        assert result.success is False
        assert "font missing" in result.error
        assert email_channel.attempted == []
        assert await _attempts(db_session, schedule.id) == []
        assert schedule.next_send_at == original_next
        failure = await _open_failure(db_session, schedule.id)
        assert failure.failure_reason == FailureReason.PDF_GENERATION

    async def test_render_timeout_aborts_before_delivery(
        self, db_session, schedule_factory, email_channel, monkeypatch
    ):
        monkeypatch.setattr(get_settings(), "render_timeout_seconds", 0.05)
        schedule = await schedule_factory()
        original_next = schedule.next_send_at

        result = await execute_scheduled_report(
            db_session, schedule.id, renderer=_slow_renderer, channel=email_channel, now=NOW
        )

        assert result.success is False
        assert "timed out" in result.error
        assert email_channel.attempted == []
        assert await _attempts(db_session, schedule.id) == []
        assert schedule.next_send_at == original_next
        failure = await _open_failure(db_session, schedule.id)
        assert failure.failure_reason == FailureReason.PDF_GENERATION

    async def test_aggregation_failure_aborts_before_render(
        self, db_session, schedule_factory, email_channel
    ):
        schedule = await schedule_factory()
        original_next = schedule.next_send_at
        renderer = MagicMock(return_value=FAKE_PDF)

        with patch(
            "rentala.services.report_scheduler.get_satisfaction_trends",
            AsyncMock(side_effect=RuntimeError("database unavailable")),
        ):
            result = await execute_scheduled_report(
                db_session, schedule.id, renderer=renderer, channel=email_channel, now=NOW
            )

        assert result.success is False
        assert result.error == "database unavailable"
        renderer.assert_not_called()
        assert email_channel.attempted == []
        assert await _attempts(db_session, schedule.id) == []
        assert schedule.next_send_at == original_next
        failure = await _open_failure(db_session, schedule.id)
        assert failure.failure_reason == FailureReason.UNKNOWN

    async def test_default_renderer_gets_trailing_window(
        self, db_session, schedule_factory, email_channel, monkeypatch
    ):
        monkeypatch.setattr(get_config().reports, "trailing_periods", 6)
        schedule = await schedule_factory()
        render = MagicMock(return_value=FAKE_PDF)

        with patch("rentala.services.report_pdf.render_satisfaction_report", render):
            result = await execute_scheduled_report(
                db_session, schedule.id, channel=email_channel, now=NOW
            )

        assert result.success is True
        assert render.call_args.kwargs == {"months": 6}
        assert render.call_args.args[0] == "All Properties"

    async def test_test_send_does_not_advance(self, db_session, schedule_factory, email_channel):
        schedule = await schedule_factory()
        original_next = schedule.next_send_at

        result = await execute_scheduled_report(
            db_session,
            schedule.id,
            renderer=fake_renderer,
            channel=email_channel,
            now=NOW,
            advance=False,
        )

        assert result.success is True
        assert result.advanced is False
        assert schedule.next_send_at == original_next
        assert len(await _attempts(db_session, schedule.id)) == 1

    async def test_success_resolves_open_failure(self, db_session, schedule_factory, email_channel):
        schedule = await schedule_factory(recipient_emails=["a@rentala.co.za"])
        await execute_scheduled_report(
            db_session,
            schedule.id,
            renderer=fake_renderer,
            channel=FakeChannel(fail_targets={"a@rentala.co.za"}),
            now=NOW,
        )
        assert await _open_failure(db_session, schedule.id) is not None

        await execute_scheduled_report(
            db_session, schedule.id, renderer=fake_renderer, channel=email_channel, now=NOW
        )

        assert await _open_failure(db_session, schedule.id) is None

    async def test_repeated_failure_counts_up_and_suggests_once(
        self, db_session, schedule_factory
    ):
        await save_user_preferences(db_session, OWNER_ID, PreferenceSnapshot(metrics=["overall"]))
        await save_user_preferences(db_session, OWNER_ID, PreferenceSnapshot(metrics=["surveys"]))
        schedule = await schedule_factory(recipient_emails=["a@rentala.co.za"])
        channel = FakeChannel(fail_targets={"a@rentala.co.za"})

        for _ in range(2):
            await execute_scheduled_report(
                db_session, schedule.id, renderer=fake_renderer, channel=channel, now=NOW
            )

        failure = await _open_failure(db_session, schedule.id)
        assert failure.failure_count == 2
        suggestions = await db_session.execute(select(RollbackSuggestion))
        assert len(suggestions.scalars().all()) == 1

    async def test_unknown_schedule(self, db_session):
        with pytest.raises(ScheduleNotFoundError):
            await execute_scheduled_report(db_session, uuid.uuid4(), now=NOW)

    async def test_history_newest_first(self, db_session, schedule_factory, email_channel):
        schedule = await schedule_factory()
        await execute_scheduled_report(
            db_session,
            schedule.id,
            renderer=fake_renderer,
            channel=email_channel,
            now=NOW - timedelta(days=1),
            advance=False,
        )
        await execute_scheduled_report(
            db_session,
            schedule.id,
            renderer=fake_renderer,
            channel=email_channel,
            now=NOW,
            advance=False,
        )

        history = await get_schedule_delivery_history(db_session, OWNER_ID, schedule.id, limit=1)

        assert len(history) == 1
        assert history[0].created_at == NOW


class TestRunDueReports:
    async def test_processes_each_due_schedule(self, db_session, schedule_factory, email_channel):
        first = await schedule_factory(recipient_emails=["a@rentala.co.za"])
        second = await schedule_factory(recipient_emails=["b@rentala.co.za"])
        await schedule_factory(status=ScheduleStatus.PAUSED)

        stats = await run_due_reports(
            db_session, now=NOW, renderer=fake_renderer, channel=email_channel
        )

        assert stats == {"due": 2, "claimed": 2, "succeeded": 2, "failed": 0, "skipped": 0}
        for schedule in (first, second):
            await db_session.refresh(schedule)
            assert schedule.claimed_at is None
            assert schedule.next_send_at == datetime(2026, 11, 1, 9, 0)

    async def test_already_claimed_schedule_is_skipped(
        self, db_session, schedule_factory, email_channel
    ):
        schedule = await schedule_factory()
        await claim_schedule(db_session, schedule.id, schedule.next_send_at, NOW)

        stats = await run_due_reports(
            db_session, now=NOW, renderer=fake_renderer, channel=email_channel
        )

        assert stats["skipped"] == 1
        assert email_channel.sent == []

    async def test_failed_schedule_does_not_stop_scan(self, db_session, schedule_factory):
        await schedule_factory(recipient_emails=["a@rentala.co.za"])
        await schedule_factory(recipient_emails=["b@rentala.co.za"])
        channel = FakeChannel(fail_targets={"a@rentala.co.za"})

        stats = await run_due_reports(db_session, now=NOW, renderer=fake_renderer, channel=channel)

        assert stats["succeeded"] == 1
        assert stats["failed"] == 1
        assert channel.sent[0][0] == "b@rentala.co.za"
