"""Read models for the property domain.

Properties, tenants, leases, payments and surveys are maintained by the
CRUD side of the application. The scheduling engine only reads them.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentala.models.base import Base, TimestampMixin, enum_column


class LeaseStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    CANCELLED = "cancelled"


class Property(Base, TimestampMixin):
    """A managed property; used as the scope of a report schedule."""

    __tablename__ = "properties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))

    def __repr__(self) -> str:
        return f"<Property {self.name}>"


class Tenant(Base, TimestampMixin):
    """A tenant and the contact channels on file."""

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name: Mapped[str | None] = mapped_column(String(100), default=None)
    last_name: Mapped[str | None] = mapped_column(String(100), default=None)
    email: Mapped[str | None] = mapped_column(String(320), default=None)
    phone: Mapped[str | None] = mapped_column(String(20), default=None)

    def __repr__(self) -> str:
        return f"<Tenant {self.first_name} {self.last_name}>"


class Lease(Base, TimestampMixin):
    __tablename__ = "leases"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), index=True
    )
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), index=True
    )
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[LeaseStatus] = mapped_column(
        enum_column(LeaseStatus, "leasestatus"), default=LeaseStatus.ACTIVE, index=True
    )

    # Relationships
    tenant: Mapped[Tenant] = relationship(lazy="joined")
    rental_property: Mapped[Property] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Lease {self.tenant_id} ends={self.end_date}>"


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lease_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("leases.id", ondelete="CASCADE"), index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    due_date: Mapped[date] = mapped_column(Date, index=True)
    status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus, "paymentstatus"), default=PaymentStatus.PENDING, index=True
    )

    # Relationships
    lease: Mapped[Lease] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Payment {self.amount} due={self.due_date} {self.status.value}>"


class SatisfactionSurvey(Base, TimestampMixin):
    """A tenant satisfaction survey response; scores are 1-5."""

    __tablename__ = "satisfaction_surveys"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    property_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("properties.id", ondelete="CASCADE"), index=True
    )
    survey_date: Mapped[date] = mapped_column(Date, index=True)
    overall_satisfaction: Mapped[int] = mapped_column(Integer)
    cleanliness: Mapped[int] = mapped_column(Integer)
    maintenance: Mapped[int] = mapped_column(Integer)
    communication: Mapped[int] = mapped_column(Integer)
    responsiveness: Mapped[int] = mapped_column(Integer)
    value_for_money: Mapped[int] = mapped_column(Integer)
    would_recommend: Mapped[bool] = mapped_column(Boolean, default=False)
