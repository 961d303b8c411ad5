"""Step 2: KYC documents.

One active document per (onboarding, document_type). Re-uploading the
same type updates the existing row in place; removal deletes the row
after the storage object has been released.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workbridge.database import Base


class DocumentStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    APPROVED = "approved"
    REJECTED = "rejected"


class OnboardingDocument(Base):
    __tablename__ = "worker_onboarding_documents"
    __table_args__ = (
        UniqueConstraint("onboarding_id", "document_type", name="uq_onboarding_document_type"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    onboarding_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("worker_onboarding.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # aadhaar_front | aadhaar_back | pan | passport | visa
    document_type: Mapped[str] = mapped_column(String(30), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Holds the storage key; display goes through a signed URL
    file_url: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[DocumentStatus] = mapped_column(
        SAEnum(DocumentStatus), default=DocumentStatus.UPLOADED
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
