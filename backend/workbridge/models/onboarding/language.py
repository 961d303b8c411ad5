"""Step 5: Languages (1:N, replaced wholesale on save)."""

import uuid

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from workbridge.database import Base


class OnboardingLanguage(Base):
    __tablename__ = "worker_onboarding_languages"

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
    language_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # basic | conversational | fluent | native
    proficiency: Mapped[str] = mapped_column(String(20), nullable=False)
