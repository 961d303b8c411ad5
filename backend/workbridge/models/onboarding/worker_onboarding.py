"""Root onboarding record, one row per worker.

Created lazily on the worker's first wizard visit. `current_step` only
moves forward through saves; direct navigation back to an earlier step
is never written here. After submission the status flips to
`pending_verification` and the record is read-only to the worker.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from workbridge.database import Base


class OnboardingStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING_VERIFICATION = "pending_verification"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkerOnboarding(Base):
    __tablename__ = "worker_onboarding"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), unique=True, nullable=False, index=True
    )
    current_step: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[OnboardingStatus] = mapped_column(
        SAEnum(OnboardingStatus), default=OnboardingStatus.DRAFT
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
