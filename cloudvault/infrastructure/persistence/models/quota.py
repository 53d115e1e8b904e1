"""Quota ORM models: per-user usage ledger, subscription, and drift records."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from cloudvault.infrastructure.persistence.database import Base
from cloudvault.infrastructure.persistence.models.mixins import (
    CreatedAtMixin,
    CuidMixin,
    TimestampMixin,
)


class UserQuota(TimestampMixin, Base):
    """Per-user storage counters. Table: user_quota.

    storage_used_bytes is only changed by atomic increments and by
    reconciliation. storage_limit_bytes/active_plan are a denormalized copy
    of the resolved plan.
    """

    __tablename__ = "user_quota"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    storage_used_bytes: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    storage_limit_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    active_plan: Mapped[str] = mapped_column(
        String(32), nullable=False, default="FREE", server_default="FREE"
    )


class Subscription(CuidMixin, TimestampMixin, Base):
    """Billing subscription (written by the billing collaborator). Table: subscription."""

    __tablename__ = "subscription"

    user_id: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    plan: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class LedgerDrift(CuidMixin, CreatedAtMixin, Base):
    """Correction applied by reconciliation. Table: ledger_drift."""

    __tablename__ = "ledger_drift"

    user_id: Mapped[str] = mapped_column(String, nullable=False)
    previous_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reconciled_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    drift_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (Index("ix_ledger_drift_user_created", "user_id", "created_at"),)
