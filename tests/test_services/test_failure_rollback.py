"""Tests for failure tracking and rollback suggestions."""

import uuid
from datetime import datetime

import pytest

from rentala.core.errors import SuggestionNotFoundError, SuggestionStateError
from rentala.models.failure import FailureReason, SuggestionStatus
from rentala.services.failure_rollback import (
    accept_rollback_suggestion,
    apply_rollback_suggestion,
    auto_suggest_rollback,
    dismiss_rollback_suggestion,
    get_failure_history,
    get_failure_stats,
    get_pending_rollback_suggestions,
    resolve_schedule_failures,
    suggest_rollback,
    track_report_failure,
)
from rentala.services.preference_versions import (
    PreferenceSnapshot,
    list_preference_versions,
    save_user_preferences,
)

pytestmark = pytest.mark.asyncio

OWNER = "owner-1"


async def _failure(db_session, schedule, reason=FailureReason.EMAIL_DELIVERY, now=None):
    return await track_report_failure(
        db_session, schedule.id, OWNER, None, reason, "smtp down", now=now
    )


async def _two_versions(db_session):
    await save_user_preferences(db_session, OWNER, PreferenceSnapshot(metrics=["overall"]))
    await save_user_preferences(db_session, OWNER, PreferenceSnapshot(metrics=["surveys"]))
    return await list_preference_versions(db_session, OWNER)


class TestTrackFailure:
    async def test_first_failure_opens_record(self, db_session, schedule_factory):
        schedule = await schedule_factory()

        failure = await _failure(db_session, schedule)

        assert failure.failure_count == 1
        assert failure.resolved_at is None
        assert failure.failure_reason == FailureReason.EMAIL_DELIVERY

    async def test_repeat_failure_increments_open_record(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        first = await _failure(db_session, schedule, now=datetime(2026, 10, 1, 9, 0))

        second = await _failure(
            db_session, schedule, FailureReason.PDF_GENERATION, now=datetime(2026, 10, 2, 9, 0)
        )

        assert second.id == first.id
        assert second.failure_count == 2
        assert second.failure_reason == FailureReason.PDF_GENERATION
        assert second.last_failed_at == datetime(2026, 10, 2, 9, 0)

    async def test_resolved_failure_starts_fresh_record(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        first = await _failure(db_session, schedule)

        assert await resolve_schedule_failures(db_session, schedule.id) == 1
        second = await _failure(db_session, schedule)

        assert second.id != first.id
        assert second.failure_count == 1


class TestSuggestions:
    async def test_confidence_is_clamped(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        failure = await _failure(db_session, schedule)

        high = await suggest_rollback(db_session, failure.id, OWNER, uuid.uuid4(), "r", 150)
        low = await suggest_rollback(db_session, failure.id, OWNER, uuid.uuid4(), "r", -5)

        assert high.confidence == 100
        assert low.confidence == 0

    async def test_auto_suggest_needs_two_versions(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        await save_user_preferences(db_session, OWNER, PreferenceSnapshot(metrics=["overall"]))
        failure = await _failure(db_session, schedule)

        assert await auto_suggest_rollback(db_session, failure) is None

    async def test_auto_suggest_targets_previous_version(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        versions = await _two_versions(db_session)
        failure = await _failure(db_session, schedule)

        suggestion = await auto_suggest_rollback(db_session, failure)

        assert suggestion.suggested_version_id == versions[1].id
        assert suggestion.status == SuggestionStatus.PENDING
        # floor 60 + step 5 * 2 versions
        assert suggestion.confidence == 70
        assert "version 1" in suggestion.reason

    async def test_pending_ordered_by_confidence(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        failure = await _failure(db_session, schedule)
        low = await suggest_rollback(db_session, failure.id, OWNER, uuid.uuid4(), "r", 40)
        high = await suggest_rollback(db_session, failure.id, OWNER, uuid.uuid4(), "r", 90)
        dismissed = await suggest_rollback(db_session, failure.id, OWNER, uuid.uuid4(), "r", 95)
        await dismiss_rollback_suggestion(db_session, dismissed.id, OWNER)

        pending = await get_pending_rollback_suggestions(db_session, OWNER)

        assert [s.id for s in pending] == [high.id, low.id]


class TestSuggestionLifecycle:
    async def test_apply_restores_and_resolves(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        await _two_versions(db_session)
        failure = await _failure(db_session, schedule)
        suggestion = await auto_suggest_rollback(db_session, failure)

        result = await apply_rollback_suggestion(db_session, suggestion.id, OWNER)

        assert result.suggestion.status == SuggestionStatus.APPLIED
        assert result.suggestion.applied_at is not None
        assert result.version.version_number == 3
        assert result.preferences.metrics == ["overall"]
        assert result.message == "Successfully rolled back (Restored from version 1)"

        await db_session.refresh(failure)
        assert failure.resolved_at is not None

    async def test_accept_then_apply(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        await _two_versions(db_session)
        failure = await _failure(db_session, schedule)
        suggestion = await auto_suggest_rollback(db_session, failure)

        accepted = await accept_rollback_suggestion(db_session, suggestion.id, OWNER)
        assert accepted.status == SuggestionStatus.ACCEPTED

        result = await apply_rollback_suggestion(db_session, suggestion.id, OWNER)
        assert result.suggestion.status == SuggestionStatus.APPLIED

    async def test_applied_suggestion_cannot_change(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        await _two_versions(db_session)
        failure = await _failure(db_session, schedule)
        suggestion = await auto_suggest_rollback(db_session, failure)
        await apply_rollback_suggestion(db_session, suggestion.id, OWNER)

        with pytest.raises(SuggestionStateError):
            await apply_rollback_suggestion(db_session, suggestion.id, OWNER)
        with pytest.raises(SuggestionStateError):
            await dismiss_rollback_suggestion(db_session, suggestion.id, OWNER)
        with pytest.raises(SuggestionStateError):
            await accept_rollback_suggestion(db_session, suggestion.id, OWNER)

    async def test_dismiss(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        failure = await _failure(db_session, schedule)
        suggestion = await suggest_rollback(db_session, failure.id, OWNER, uuid.uuid4(), "r")

        dismissed = await dismiss_rollback_suggestion(db_session, suggestion.id, OWNER)

        assert dismissed.status == SuggestionStatus.REJECTED

    async def test_other_owner_cannot_touch_suggestion(self, db_session, schedule_factory):
        schedule = await schedule_factory()
        failure = await _failure(db_session, schedule)
        suggestion = await suggest_rollback(db_session, failure.id, OWNER, uuid.uuid4(), "r")

        with pytest.raises(SuggestionNotFoundError):
            await dismiss_rollback_suggestion(db_session, suggestion.id, "intruder")


class TestFailureReporting:
    async def test_stats(self, db_session, schedule_factory):
        first = await schedule_factory()
        second = await schedule_factory()
        await _failure(db_session, first, now=datetime(2026, 10, 1, 9, 0))
        await _failure(
            db_session, second, FailureReason.PDF_GENERATION, now=datetime(2026, 10, 5, 9, 0)
        )
        await resolve_schedule_failures(db_session, first.id)

        stats = await get_failure_stats(db_session, OWNER)

        assert stats.total_failures == 2
        assert stats.unresolved_failures == 1
        assert stats.failures_by_reason == {"email_delivery": 1, "pdf_generation": 1}
        assert stats.most_recent_failure == datetime(2026, 10, 5, 9, 0)

    async def test_empty_stats(self, db_session):
        stats = await get_failure_stats(db_session, OWNER)

        assert stats.total_failures == 0
        assert stats.most_recent_failure is None

    async def test_history_newest_first(self, db_session, schedule_factory):
        first = await schedule_factory()
        second = await schedule_factory()
        older = await _failure(db_session, first, now=datetime(2026, 10, 1, 9, 0))
        newer = await _failure(db_session, second, now=datetime(2026, 10, 5, 9, 0))

        history = await get_failure_history(db_session, OWNER, limit=1)

        assert [f.id for f in history] == [newer.id]
        assert older.id not in [f.id for f in history]
