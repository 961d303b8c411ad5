"""Persistence gateway for the onboarding wizard.

The only code that touches the onboarding tables. Each call opens its
own session from the factory it was built with, commits on success and
turns any SQLAlchemy error into `PersistenceFailed`. Nothing here
retries; the wizard decides what to do with a failure.

Step saves go through a dispatch table keyed by `StepKind`:

- profile, preferences: upsert on onboarding_id
- skills (+ certifications), work history, languages: delete all rows
  for the onboarding, then insert the submitted list
- documents, review: nothing to write (documents are persisted on
  upload, submission has its own call)

After a step save `current_step` is advanced to `step + 1` (capped at
7) and never lowered.
"""

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workbridge.middleware.exceptions import PersistenceFailed, ResourceNotFoundError
from workbridge.models.onboarding import (
    DocumentStatus,
    OnboardingCertification,
    OnboardingDocument,
    OnboardingLanguage,
    OnboardingPreferences,
    OnboardingProfile,
    OnboardingSkill,
    OnboardingStatus,
    OnboardingWorkHistory,
    WorkerOnboarding,
)
from workbridge.schemas.onboarding import (
    DocumentEntry,
    LanguagesData,
    OnboardingRecord,
    PreferencesData,
    ProfileData,
    SkillsData,
    StepSaveResult,
    WorkHistoryData,
)
from workbridge.services.steps import STEP_DEFINITIONS, TOTAL_STEPS, StepKind
from workbridge.utils.audit import log_audit_event

logger = logging.getLogger(__name__)

_SNAPSHOT_EXCLUDE = {"onboarding_id", "position", "created_at", "updated_at"}


def _to_dict(row) -> dict:
    """Row -> JSON-ready snapshot dict."""
    data = {}
    for attr in row.__mapper__.column_attrs:
        if attr.key in _SNAPSHOT_EXCLUDE:
            continue
        value = getattr(row, attr.key)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        elif isinstance(value, Decimal):
            value = float(value)
        elif isinstance(value, enum.Enum):
            value = value.value
        data[attr.key] = value
    return data


class PersistenceGateway:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._savers = {
            StepKind.PROFILE: self._save_profile,
            StepKind.DOCUMENTS: self._save_nothing,
            StepKind.SKILLS: self._save_skills,
            StepKind.WORK_HISTORY: self._save_work_history,
            StepKind.LANGUAGES: self._save_languages,
            StepKind.PREFERENCES: self._save_preferences,
            StepKind.REVIEW: self._save_nothing,
        }

    @asynccontextmanager
    async def _session(self, operation: str):
        async with self._session_factory() as db:
            try:
                yield db
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error(f"Onboarding persistence failed ({operation}): {exc}")
                raise PersistenceFailed(f"Failed to {operation}. Please try again.") from exc

    # ── Onboarding record ────────────────────────────────────

    async def load_or_create(self, user_id: str) -> OnboardingRecord:
        """Return the worker's onboarding record, creating it on first visit."""
        try:
            return await self._get_or_create(user_id)
        except PersistenceFailed as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            # A concurrent first visit inserted the row; use theirs
            logger.info(f"Onboarding for user {user_id} created concurrently, reloading")
            return await self._get_or_create(user_id)

    async def _get_or_create(self, user_id: str) -> OnboardingRecord:
        async with self._session("load onboarding") as db:
            result = await db.execute(
                select(WorkerOnboarding).where(WorkerOnboarding.user_id == user_id)
            )
            onboarding = result.scalar_one_or_none()
            if onboarding is None:
                onboarding = WorkerOnboarding(
                    user_id=user_id,
                    current_step=1,
                    status=OnboardingStatus.DRAFT,
                )
                db.add(onboarding)
                await db.flush()
                logger.info(f"Created onboarding {onboarding.id} for user {user_id}")
            return OnboardingRecord.model_validate(onboarding)

    async def get_record(self, onboarding_id: str) -> OnboardingRecord:
        async with self._session("load onboarding") as db:
            onboarding = await db.get(WorkerOnboarding, onboarding_id)
            if onboarding is None:
                raise ResourceNotFoundError("Onboarding", onboarding_id)
            return OnboardingRecord.model_validate(onboarding)

    async def update_current_step(self, onboarding_id: str, step: int) -> int:
        """Move `current_step` forward to `step`; returns the stored value."""
        async with self._session("update progress") as db:
            return await self._advance(db, onboarding_id, step)

    async def _advance(self, db: AsyncSession, onboarding_id: str, step: int) -> int:
        step = min(step, TOTAL_STEPS)
        await db.execute(
            update(WorkerOnboarding)
            .where(
                WorkerOnboarding.id == onboarding_id,
                WorkerOnboarding.current_step < step,
            )
            .values(current_step=step, updated_at=datetime.utcnow())
        )
        result = await db.execute(
            select(WorkerOnboarding.current_step).where(WorkerOnboarding.id == onboarding_id)
        )
        current = result.scalar_one_or_none()
        if current is None:
            raise ResourceNotFoundError("Onboarding", onboarding_id)
        return current

    # ── Hydration ────────────────────────────────────────────

    async def _fetch_one(self, model, onboarding_id: str) -> dict:
        async with self._session(f"load {model.__tablename__}") as db:
            result = await db.execute(select(model).where(model.onboarding_id == onboarding_id))
            row = result.scalar_one_or_none()
            return _to_dict(row) if row else {}

    async def _fetch_all(self, model, onboarding_id: str) -> list[dict]:
        async with self._session(f"load {model.__tablename__}") as db:
            stmt = select(model).where(model.onboarding_id == onboarding_id)
            if hasattr(model, "position"):
                stmt = stmt.order_by(model.position)
            result = await db.execute(stmt)
            return [_to_dict(row) for row in result.scalars().all()]

    async def hydrate(self, onboarding_id: str) -> dict[StepKind, Any]:
        """Load every step's saved data, one query per table, in parallel."""
        (
            profile, documents, skills, certifications, jobs, languages, preferences,
        ) = await asyncio.gather(
            self._fetch_one(OnboardingProfile, onboarding_id),
            self._fetch_all(OnboardingDocument, onboarding_id),
            self._fetch_all(OnboardingSkill, onboarding_id),
            self._fetch_all(OnboardingCertification, onboarding_id),
            self._fetch_all(OnboardingWorkHistory, onboarding_id),
            self._fetch_all(OnboardingLanguage, onboarding_id),
            self._fetch_one(OnboardingPreferences, onboarding_id),
        )
        return {
            StepKind.PROFILE: profile,
            StepKind.DOCUMENTS: {doc["document_type"]: doc for doc in documents},
            StepKind.SKILLS: {"skills": skills, "certifications": certifications},
            StepKind.WORK_HISTORY: {"jobs": jobs},
            StepKind.LANGUAGES: {"languages": languages},
            StepKind.PREFERENCES: preferences,
            StepKind.REVIEW: {"terms_accepted": False},
        }

    # ── Step saves ───────────────────────────────────────────

    async def save_step(
        self,
        record: OnboardingRecord,
        kind: StepKind,
        data: Any,
    ) -> StepSaveResult:
        """Persist one step and advance `current_step` in the same transaction."""
        step_id = STEP_DEFINITIONS[kind].step_id
        async with self._session(f"save {STEP_DEFINITIONS[kind].title.lower()}") as db:
            persisted = await self._savers[kind](db, record.id, data)
            current = await self._advance(db, record.id, step_id + 1)
        logger.info(f"Saved step {step_id} ({kind.value}) for onboarding {record.id}")
        return StepSaveResult(kind=kind.value, data=persisted, current_step=current)

    async def _save_nothing(self, db: AsyncSession, onboarding_id: str, data: Any) -> Any:
        return data

    async def _save_profile(self, db: AsyncSession, onboarding_id: str, data: dict) -> dict:
        values = ProfileData.model_validate(data).model_dump(exclude_unset=True)
        result = await db.execute(
            select(OnboardingProfile).where(OnboardingProfile.onboarding_id == onboarding_id)
        )
        profile = result.scalar_one_or_none()
        if profile:
            for key, value in values.items():
                setattr(profile, key, value)
        else:
            profile = OnboardingProfile(onboarding_id=onboarding_id, **values)
            db.add(profile)
        await db.flush()
        return _to_dict(profile)

    async def _save_preferences(self, db: AsyncSession, onboarding_id: str, data: dict) -> dict:
        values = PreferencesData.model_validate(data).model_dump(exclude_unset=True)
        if values.get("expected_wage_amount") is not None:
            values["expected_wage_amount"] = Decimal(str(values["expected_wage_amount"]))
        result = await db.execute(
            select(OnboardingPreferences).where(
                OnboardingPreferences.onboarding_id == onboarding_id
            )
        )
        prefs = result.scalar_one_or_none()
        if prefs:
            for key, value in values.items():
                setattr(prefs, key, value)
        else:
            prefs = OnboardingPreferences(onboarding_id=onboarding_id, **values)
            db.add(prefs)
        await db.flush()
        return _to_dict(prefs)

    async def _replace(self, db: AsyncSession, model, onboarding_id: str, items: list[dict]) -> list:
        await db.execute(delete(model).where(model.onboarding_id == onboarding_id))
        rows = [
            model(onboarding_id=onboarding_id, position=i, **item)
            for i, item in enumerate(items)
        ]
        db.add_all(rows)
        await db.flush()
        return rows

    async def _save_skills(self, db: AsyncSession, onboarding_id: str, data: dict) -> dict:
        parsed = SkillsData.model_validate(data)
        skills = await self._replace(
            db, OnboardingSkill, onboarding_id,
            [s.model_dump() for s in parsed.skills or []],
        )
        certifications = await self._replace(
            db, OnboardingCertification, onboarding_id,
            [c.model_dump() for c in parsed.certifications or []],
        )
        return {
            "skills": [_to_dict(s) for s in skills],
            "certifications": [_to_dict(c) for c in certifications],
        }

    async def _save_work_history(self, db: AsyncSession, onboarding_id: str, data: dict) -> dict:
        parsed = WorkHistoryData.model_validate(data)
        jobs = await self._replace(
            db, OnboardingWorkHistory, onboarding_id,
            [j.model_dump() for j in parsed.jobs or []],
        )
        return {"jobs": [_to_dict(j) for j in jobs]}

    async def _save_languages(self, db: AsyncSession, onboarding_id: str, data: dict) -> dict:
        parsed = LanguagesData.model_validate(data)
        languages = await self._replace(
            db, OnboardingLanguage, onboarding_id,
            [lang.model_dump() for lang in parsed.languages or []],
        )
        return {"languages": [_to_dict(lang) for lang in languages]}

    # ── Documents ────────────────────────────────────────────

    async def get_document(self, onboarding_id: str, document_type: str) -> DocumentEntry | None:
        async with self._session("load document") as db:
            result = await db.execute(
                select(OnboardingDocument).where(
                    OnboardingDocument.onboarding_id == onboarding_id,
                    OnboardingDocument.document_type == document_type,
                )
            )
            document = result.scalar_one_or_none()
            return DocumentEntry.model_validate(document) if document else None

    async def upsert_document(self, onboarding_id: str, entry: dict) -> DocumentEntry:
        """Insert or replace the document row for (onboarding, document_type)."""
        async with self._session("save document") as db:
            result = await db.execute(
                select(OnboardingDocument).where(
                    OnboardingDocument.onboarding_id == onboarding_id,
                    OnboardingDocument.document_type == entry["document_type"],
                )
            )
            document = result.scalar_one_or_none()
            values = {
                "file_name": entry["file_name"],
                "file_url": entry["file_url"],
                "file_size": entry["file_size"],
                "mime_type": entry["mime_type"],
                "storage_key": entry["storage_key"],
                "status": DocumentStatus(entry.get("status", "uploaded")),
            }
            if document:
                for key, value in values.items():
                    setattr(document, key, value)
            else:
                document = OnboardingDocument(
                    onboarding_id=onboarding_id,
                    document_type=entry["document_type"],
                    **values,
                )
                db.add(document)
            await db.flush()
            return DocumentEntry.model_validate(document)

    async def delete_document(self, onboarding_id: str, document_type: str) -> bool:
        async with self._session("delete document") as db:
            result = await db.execute(
                delete(OnboardingDocument).where(
                    OnboardingDocument.onboarding_id == onboarding_id,
                    OnboardingDocument.document_type == document_type,
                )
            )
            return result.rowcount > 0

    # ── Profile photo ────────────────────────────────────────

    async def set_profile_photo(self, onboarding_id: str, storage_key: str) -> None:
        """Point the saved profile (if any) at a new photo."""
        async with self._session("save profile photo") as db:
            await db.execute(
                update(OnboardingProfile)
                .where(OnboardingProfile.onboarding_id == onboarding_id)
                .values(profile_photo_url=storage_key, updated_at=datetime.utcnow())
            )

    # ── Submission ───────────────────────────────────────────

    async def submit(self, record: OnboardingRecord, actor_id: str) -> OnboardingRecord:
        """Mark the onboarding submitted and write the audit entry atomically."""
        submitted_at = datetime.utcnow()
        async with self._session("submit onboarding") as db:
            onboarding = await db.get(WorkerOnboarding, record.id)
            if onboarding is None:
                raise ResourceNotFoundError("Onboarding", record.id)

            onboarding.status = OnboardingStatus.PENDING_VERIFICATION
            onboarding.submitted_at = submitted_at
            onboarding.current_step = TOTAL_STEPS

            await log_audit_event(
                db,
                actor_id=actor_id,
                action="onboarding_submitted",
                entity_type="worker_onboarding",
                entity_id=onboarding.id,
                metadata={"submitted_at": submitted_at.isoformat()},
            )
            await db.flush()
            submitted = OnboardingRecord.model_validate(onboarding)

        logger.info(f"Onboarding {record.id} submitted by {actor_id}")
        return submitted
