"""Step 6: Work preferences (1:1 with the onboarding record)."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from workbridge.database import Base


class OnboardingPreferences(Base):
    __tablename__ = "worker_onboarding_preferences"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    onboarding_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("worker_onboarding.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    preferred_countries: Mapped[list] = mapped_column(JSON, default=list)
    expected_wage_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    expected_wage_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    contract_length: Mapped[str] = mapped_column(String(50), nullable=False)
    availability_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
