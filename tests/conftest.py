"""
Pytest configuration and fixtures for Rentala tests.

Provides:
- Async test database with SQLite
- Test client for API testing
- Recording fake delivery channels
- Factory fixtures for creating test data
"""

import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rentala.config import Settings, get_config, get_settings
from rentala.core.database import get_db
from rentala.dependencies import get_email_channel, get_report_renderer, get_sms_channel
from rentala.main import app
from rentala.models import Base
from rentala.models.property import (
    Lease,
    LeaseStatus,
    Payment,
    PaymentStatus,
    Property,
    SatisfactionSurvey,
    Tenant,
)
from rentala.models.schedule import ReportSchedule, ScheduleFrequency, ScheduleStatus
from tests.fakes import OWNER_ID, FakeChannel, fake_renderer

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Override settings for testing
class TestSettings(Settings):
    database_url: str = TEST_DATABASE_URL
    debug: bool = True
    resend_api_key: str = "test-key"
    twilio_account_sid: str = "AC_test"
    twilio_auth_token: str = "test-token"
    twilio_phone_number: str = "+27110000000"
    scheduler_enabled: bool = False


@pytest.fixture(autouse=True)
def no_dispatch_delay(monkeypatch):
    """Remove the inter-send pause so dispatch tests run instantly."""
    config = get_config()
    monkeypatch.setattr(config.notifications, "delay_ms", 0)
    monkeypatch.setattr(config.reports, "delivery_delay_ms", 0)


@pytest.fixture
def email_channel() -> FakeChannel:
    return FakeChannel("email")


@pytest.fixture
def sms_channel() -> FakeChannel:
    return FakeChannel("sms")


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, email_channel: FakeChannel, sms_channel: FakeChannel
) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database and delivery overrides."""

    async def override_get_db():
        yield db_session

    def override_get_settings():
        return TestSettings()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = override_get_settings
    app.dependency_overrides[get_email_channel] = lambda: email_channel
    app.dependency_overrides[get_sms_channel] = lambda: sms_channel
    app.dependency_overrides[get_report_renderer] = lambda: fake_renderer

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers={"X-User-Id": OWNER_ID}
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def property_factory(db_session: AsyncSession):
    """Factory for creating test properties."""

    async def _create_property(name: str = "Sea Point Flats", owner_id: str = OWNER_ID) -> Property:
        rental_property = Property(owner_id=owner_id, name=name)
        db_session.add(rental_property)
        await db_session.flush()
        return rental_property

    return _create_property


@pytest_asyncio.fixture
async def tenant_factory(db_session: AsyncSession):
    """Factory for creating test tenants."""

    async def _create_tenant(
        first_name: str = "Thandi",
        email: str | None = None,
        phone: str | None = "0821234567",
    ) -> Tenant:
        if email is None:
            email = f"tenant-{uuid.uuid4().hex[:8]}@rentala.co.za"

        tenant = Tenant(first_name=first_name, last_name="Mokoena", email=email, phone=phone)
        db_session.add(tenant)
        await db_session.flush()
        return tenant

    return _create_tenant


@pytest_asyncio.fixture
async def lease_factory(db_session: AsyncSession, property_factory, tenant_factory):
    """Factory for creating test leases (with tenant and property if not given)."""

    async def _create_lease(
        end_date: date,
        tenant: Tenant | None = None,
        rental_property: Property | None = None,
        status: LeaseStatus = LeaseStatus.ACTIVE,
    ) -> Lease:
        tenant = tenant or await tenant_factory()
        rental_property = rental_property or await property_factory()

        lease = Lease(
            tenant_id=tenant.id,
            property_id=rental_property.id,
            start_date=date(2025, 1, 1),
            end_date=end_date,
            status=status,
        )
        db_session.add(lease)
        await db_session.flush()
        await db_session.refresh(lease)
        return lease

    return _create_lease


@pytest_asyncio.fixture
async def payment_factory(db_session: AsyncSession, lease_factory):
    """Factory for creating test payments."""

    async def _create_payment(
        due_date: date,
        lease: Lease | None = None,
        amount: Decimal = Decimal("8500.00"),
        status: PaymentStatus = PaymentStatus.PENDING,
    ) -> Payment:
        lease = lease or await lease_factory(end_date=date(2027, 12, 31))

        payment = Payment(lease_id=lease.id, amount=amount, due_date=due_date, status=status)
        db_session.add(payment)
        await db_session.flush()
        await db_session.refresh(payment)
        return payment

    return _create_payment


@pytest_asyncio.fixture
async def survey_factory(db_session: AsyncSession):
    """Factory for creating satisfaction surveys."""

    async def _create_survey(
        rental_property: Property,
        survey_date: date,
        score: int = 4,
        would_recommend: bool = True,
    ) -> SatisfactionSurvey:
        survey = SatisfactionSurvey(
            property_id=rental_property.id,
            survey_date=survey_date,
            overall_satisfaction=score,
            cleanliness=score,
            maintenance=score,
            communication=score,
            responsiveness=score,
            value_for_money=score,
            would_recommend=would_recommend,
        )
        db_session.add(survey)
        await db_session.flush()
        return survey

    return _create_survey


@pytest_asyncio.fixture
async def schedule_factory(db_session: AsyncSession):
    """Factory for creating report schedules directly (bypassing next-fire computation)."""

    async def _create_schedule(
        next_send_at: datetime | None = datetime(2026, 10, 1, 9, 0),
        status: ScheduleStatus = ScheduleStatus.ACTIVE,
        frequency: ScheduleFrequency = ScheduleFrequency.MONTHLY,
        recipient_emails: list[str] | None = None,
        metrics: list[str] | None = None,
        owner_id: str = OWNER_ID,
        property_id: uuid.UUID | None = None,
        day_of_month: int | None = 1,
    ) -> ReportSchedule:
        schedule = ReportSchedule(
            owner_id=owner_id,
            property_id=property_id,
            name="Monthly satisfaction",
            frequency=frequency,
            day_of_month=day_of_month,
            hour=9,
            minute=0,
            recipient_emails=recipient_emails or ["manager@rentala.co.za"],
            metrics=metrics or ["overall", "surveys"],
            status=status,
            next_send_at=next_send_at,
        )
        db_session.add(schedule)
        await db_session.flush()
        return schedule

    return _create_schedule
