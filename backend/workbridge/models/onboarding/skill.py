"""Step 3: Skills and certifications (1:N, replaced wholesale on save)."""

import uuid
from datetime import date

from sqlalchemy import Date, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from workbridge.database import Base


class OnboardingSkill(Base):
    __tablename__ = "worker_onboarding_skills"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    onboarding_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("worker_onboarding.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Entry order as submitted
    position: Mapped[int] = mapped_column(Integer, default=0)
    skill_name: Mapped[str] = mapped_column(String(100), nullable=False)
    experience_years: Mapped[float] = mapped_column(Float, default=0.0)


class OnboardingCertification(Base):
    __tablename__ = "worker_onboarding_certifications"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    onboarding_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("worker_onboarding.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    issuer: Mapped[str] = mapped_column(String(255), nullable=False)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    file_url: Mapped[str | None] = mapped_column(String(500))
