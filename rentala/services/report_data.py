"""Tenant satisfaction dataset aggregated per calendar month."""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentala.core.datetime_utils import add_months, month_start, utc_now
from rentala.models.property import Property, SatisfactionSurvey

SCORE_FIELDS = (
    "overall_satisfaction",
    "cleanliness",
    "maintenance",
    "communication",
    "responsiveness",
    "value_for_money",
)


@dataclass
class PeriodRow:
    """Averages for one month that had at least one survey."""

    month: date
    average_satisfaction: float
    average_cleanliness: float
    average_maintenance: float
    average_communication: float
    average_responsiveness: float
    average_value_for_money: float
    survey_count: int
    recommend_percentage: int

    @property
    def label(self) -> str:
        return self.month.strftime("%b %Y")


def _average(values: list[int]) -> float:
    return round(sum(values) / len(values), 1)


def summarize_month(month: date, surveys: list[SatisfactionSurvey]) -> PeriodRow:
    """Collapse a month's surveys into a PeriodRow."""
    scores = {name: [getattr(s, name) for s in surveys] for name in SCORE_FIELDS}
    recommended = sum(1 for s in surveys if s.would_recommend)

    return PeriodRow(
        month=month,
        average_satisfaction=_average(scores["overall_satisfaction"]),
        average_cleanliness=_average(scores["cleanliness"]),
        average_maintenance=_average(scores["maintenance"]),
        average_communication=_average(scores["communication"]),
        average_responsiveness=_average(scores["responsiveness"]),
        average_value_for_money=_average(scores["value_for_money"]),
        survey_count=len(surveys),
        recommend_percentage=round(recommended / len(surveys) * 100),
    )


async def get_satisfaction_trends(
    db: AsyncSession,
    months: int = 12,
    property_id: uuid.UUID | None = None,
    owner_id: str | None = None,
    now: datetime | None = None,
) -> list[PeriodRow]:
    """
    Monthly satisfaction averages over a trailing window.

    The window covers the current calendar month and the months - 1 before
    it. Months without surveys are omitted.

    Args:
        db: Database session
        months: Number of trailing calendar months
        property_id: Restrict to one property
        owner_id: Restrict to the owner's properties when no property is given
        now: Reference time (defaults to utc_now())

    Returns:
        Rows ordered oldest month first
    """
    reference = now or utc_now()
    window_start = month_start(add_months(reference, -(months - 1), day=1)).date()
    window_end = month_start(add_months(reference, 1, day=1)).date()

    query = select(SatisfactionSurvey).where(
        SatisfactionSurvey.survey_date >= window_start,
        SatisfactionSurvey.survey_date < window_end,
    )
    if property_id is not None:
        query = query.where(SatisfactionSurvey.property_id == property_id)
    elif owner_id is not None:
        query = query.join(Property, Property.id == SatisfactionSurvey.property_id).where(
            Property.owner_id == owner_id
        )

    result = await db.execute(query)

    by_month: dict[date, list[SatisfactionSurvey]] = defaultdict(list)
    for survey in result.scalars().all():
        by_month[survey.survey_date.replace(day=1)].append(survey)

    return [summarize_month(month, by_month[month]) for month in sorted(by_month)]
