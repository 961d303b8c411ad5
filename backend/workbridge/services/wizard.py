"""Wizard controller: one worker's pass through the 7 onboarding steps.

The controller owns the in-memory snapshot of every step, which steps are
valid and completed, and where the worker is. Completing a step merges
the data immediately and schedules a debounced save; saves run in the
background and never roll the snapshot back when they fail.

Navigation rule: a step is reachable when it is at or before the current
step, already completed, or the next step while the current one is
valid.
"""

import asyncio
import copy
import enum
import logging
import time
from collections import defaultdict
from typing import Any, Callable

from workbridge.config import settings
from workbridge.middleware.exceptions import (
    AuthRequired,
    NavigationBlocked,
    OnboardingLocked,
    PersistenceFailed,
    ValidationFailed,
)
from workbridge.schemas.onboarding import DocumentEntry, OnboardingRecord, WizardView
from workbridge.services.autosave import Debouncer, SaveIndicator
from workbridge.services.documents import DocumentService
from workbridge.services.gateway import PersistenceGateway
from workbridge.services.steps import (
    STEP_DEFINITIONS,
    TOTAL_STEPS,
    StepKind,
    derive_completed_steps,
    documents_complete,
    empty_snapshot,
    is_review_ready,
    step_for_id,
)

logger = logging.getLogger(__name__)

DOCUMENTS_STEP = STEP_DEFINITIONS[StepKind.DOCUMENTS].step_id
REVIEW_STEP = STEP_DEFINITIONS[StepKind.REVIEW].step_id


class WizardPhase(str, enum.Enum):
    LOADING = "loading"
    READY = "ready"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class WizardController:
    def __init__(
        self,
        gateway: PersistenceGateway,
        documents: DocumentService | None = None,
        *,
        debounce_seconds: float | None = None,
        saved_clear_seconds: float | None = None,
        lock_after_submit: bool | None = None,
    ):
        self.gateway = gateway
        self.documents = documents
        if debounce_seconds is None:
            debounce_seconds = settings.autosave_debounce_ms / 1000
        if saved_clear_seconds is None:
            saved_clear_seconds = settings.saved_indicator_clear_ms / 1000
        if lock_after_submit is None:
            lock_after_submit = settings.lock_after_submit
        self.lock_after_submit = lock_after_submit

        self.phase = WizardPhase.LOADING
        self.user_id: str | None = None
        self.record: OnboardingRecord | None = None
        self.current_step = 1
        self.furthest_step = 1
        self.snapshot: dict[StepKind, Any] = empty_snapshot()
        self.step_valid: dict[int, bool] = {}
        self.completed_steps: set[int] = set()
        self.notifications: list[str] = []
        self.indicator = SaveIndicator(saved_clear_seconds)

        self._debouncer = Debouncer(debounce_seconds)
        self._touched: set[int] = set()
        # Live validity reported for drafts; wins over the saved snapshot
        self._reported: dict[int, bool] = {}
        # Latest save sequence number issued per step
        self._issued: dict[StepKind, int] = defaultdict(int)

    # ── State ────────────────────────────────────────────────

    @property
    def onboarding_id(self) -> str | None:
        return self.record.id if self.record else None

    @property
    def submitted(self) -> bool:
        return self.phase is WizardPhase.SUBMITTED

    @property
    def read_only(self) -> bool:
        return self.lock_after_submit and self.submitted

    def _ensure_ready(self) -> None:
        if self.phase is WizardPhase.LOADING:
            raise AuthRequired("Wizard has not been initialised")

    def _ensure_editable(self) -> None:
        self._ensure_ready()
        if self.read_only:
            raise OnboardingLocked()

    def _refresh(self) -> None:
        """Recompute validity and completion from the snapshot."""
        for kind, definition in STEP_DEFINITIONS.items():
            if kind is StepKind.REVIEW:
                self.step_valid[definition.step_id] = is_review_ready(
                    self.snapshot, bool(self.snapshot[kind].get("terms_accepted"))
                )
            elif kind is StepKind.WORK_HISTORY:
                self.step_valid[definition.step_id] = True
            else:
                self.step_valid[definition.step_id] = definition.validate(self.snapshot[kind])
        self.step_valid.update(self._reported)
        self.completed_steps = derive_completed_steps(
            self.snapshot, self.furthest_step, self.submitted, self._touched
        )

    async def initialize(self, user_id: str | None) -> "WizardController":
        """Load (or create) the worker's onboarding and resume where they left off."""
        if not user_id:
            raise AuthRequired()

        self.phase = WizardPhase.LOADING
        record = await self.gateway.load_or_create(user_id)
        snapshot = await self.gateway.hydrate(record.id)

        self.user_id = user_id
        self.record = record
        self.snapshot = {**empty_snapshot(), **snapshot}
        self.current_step = record.current_step
        self.furthest_step = record.current_step
        self.phase = WizardPhase.SUBMITTED if record.is_submitted else WizardPhase.READY
        self._reported.clear()
        self._refresh()
        if self.read_only:
            self.current_step = REVIEW_STEP

        logger.info(
            f"Wizard ready for user {user_id}: onboarding {record.id}, "
            f"step {self.current_step}, completed {sorted(self.completed_steps)}"
        )
        return self

    # ── Step completion ──────────────────────────────────────

    def check_step(self, step_id: int, data: Any) -> list[dict]:
        """Validate a draft without merging it; records the live validity."""
        self._ensure_ready()
        definition = step_for_id(step_id)
        if definition.kind is StepKind.REVIEW:
            terms = bool((data or {}).get("terms_accepted"))
            errors = [] if is_review_ready(self.snapshot, terms) else [
                {"field": None, "message": "Onboarding is not ready to submit", "type": "incomplete"}
            ]
        elif definition.kind is StepKind.DOCUMENTS:
            errors = definition.errors(self.snapshot[StepKind.DOCUMENTS])
        else:
            errors = definition.errors(data)
        self.report_validity(step_id, not errors)
        return errors

    def report_validity(self, step_id: int, valid: bool) -> None:
        step_for_id(step_id)
        self._reported[step_id] = valid
        self.step_valid[step_id] = valid

    def complete_step(self, step_id: int, data: Any) -> None:
        """Merge valid step data into the snapshot and schedule a save."""
        self._ensure_editable()
        definition = step_for_id(step_id)
        kind = definition.kind

        if kind is StepKind.REVIEW:
            raise ValidationFailed("Review is completed by submitting the onboarding")

        if kind is StepKind.DOCUMENTS:
            # Document entries only ever come from uploads
            data = self.snapshot[StepKind.DOCUMENTS]

        errors = definition.errors(data)
        if errors:
            self.report_validity(step_id, False)
            raise ValidationFailed(f"{definition.title} is incomplete", errors)

        normalized = definition.normalize(data)
        self.snapshot[kind] = normalized
        self._touched.add(step_id)
        self._reported.pop(step_id, None)
        self._refresh()
        self.completed_steps.add(step_id)
        self._schedule_save(kind, normalized)

    def _schedule_save(self, kind: StepKind, data: Any) -> None:
        self._issued[kind] += 1
        seq = self._issued[kind]
        payload = copy.deepcopy(data)

        async def _save():
            await self._run_save(kind, payload, seq)

        self._debouncer.schedule(kind, _save)

    async def _run_save(self, kind: StepKind, payload: Any, seq: int) -> None:
        self.indicator.saving()
        applied = False
        try:
            result = await self.gateway.save_step(self.record, kind, payload)
            if seq != self._issued[kind]:
                logger.debug(
                    f"Discarding stale {kind.value} save response "
                    f"(seq {seq}, latest {self._issued[kind]})"
                )
                return

            # Documents and review are written elsewhere; keep the live snapshot
            if kind not in (StepKind.DOCUMENTS, StepKind.REVIEW):
                self.snapshot[kind] = result.data
            self.furthest_step = max(self.furthest_step, result.current_step)
            self._refresh()
            applied = True
        except PersistenceFailed as exc:
            self.notifications.append(exc.message)
            logger.warning(f"Autosave of {kind.value} for onboarding {self.onboarding_id} failed: {exc.message}")
        except Exception:
            self.notifications.append(f"Failed to save {kind.value}. Please try again.")
            logger.exception(f"Unexpected error saving {kind.value} for onboarding {self.onboarding_id}")
        finally:
            if applied:
                self.indicator.saved()
            else:
                self.indicator.settled()

    async def flush(self) -> None:
        """Persist every pending step now instead of waiting for the debounce."""
        await self._debouncer.flush()

    async def close(self) -> None:
        await self.flush()
        await self._debouncer.aclose()
        self.indicator.close()

    # ── Navigation ───────────────────────────────────────────

    def can_navigate_to(self, step_id: int) -> bool:
        if not 1 <= step_id <= TOTAL_STEPS:
            return False
        if self.read_only:
            return step_id == REVIEW_STEP
        return (
            step_id <= self.current_step
            or step_id in self.completed_steps
            or (step_id == self.current_step + 1 and self.step_valid.get(self.current_step, False))
        )

    async def navigate_to(self, step_id: int) -> int:
        self._ensure_ready()
        if self.read_only and step_id != REVIEW_STEP:
            raise OnboardingLocked()
        if not self.can_navigate_to(step_id):
            raise NavigationBlocked(step_id, self.current_step)

        self.current_step = step_id
        if step_id > self.furthest_step and not self.submitted:
            try:
                self.furthest_step = await self.gateway.update_current_step(self.record.id, step_id)
            except PersistenceFailed as exc:
                # The move stands; the stored pointer catches up on the next save
                self.notifications.append(exc.message)
        return self.current_step

    async def next(self) -> int:
        return await self.navigate_to(self.current_step + 1)

    async def previous(self) -> int:
        return await self.navigate_to(max(self.current_step - 1, 1))

    # ── Documents ────────────────────────────────────────────

    async def upload_document(
        self,
        document_type: str,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> DocumentEntry:
        self._ensure_editable()
        entry = await self.documents.upload(
            user_id=self.user_id,
            onboarding_id=self.record.id,
            document_type=document_type,
            filename=filename,
            content=content,
            content_type=content_type,
        )
        self.snapshot[StepKind.DOCUMENTS] = {
            **self.snapshot[StepKind.DOCUMENTS],
            document_type: entry.model_dump(mode="json"),
        }
        self._reported.pop(DOCUMENTS_STEP, None)
        self._refresh()
        return entry

    async def remove_document(self, document_type: str) -> None:
        self._ensure_editable()
        await self.documents.remove(self.record.id, document_type)
        documents = dict(self.snapshot[StepKind.DOCUMENTS])
        documents.pop(document_type, None)
        self.snapshot[StepKind.DOCUMENTS] = documents
        self._reported.pop(DOCUMENTS_STEP, None)
        self._refresh()

    async def upload_profile_photo(
        self,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> str:
        self._ensure_editable()
        storage_key = await self.documents.upload_profile_photo(
            user_id=self.user_id,
            onboarding_id=self.record.id,
            filename=filename,
            content=content,
            content_type=content_type,
        )
        if self.snapshot[StepKind.PROFILE]:
            self.snapshot[StepKind.PROFILE] = {
                **self.snapshot[StepKind.PROFILE],
                "profile_photo_url": storage_key,
            }
        return storage_key

    # ── Submission ───────────────────────────────────────────

    async def submit(self, terms_accepted: bool, actor_id: str | None = None) -> OnboardingRecord:
        """Flush pending saves, then submit the onboarding for verification."""
        self._ensure_ready()
        if self.phase is not WizardPhase.READY:
            raise OnboardingLocked("Onboarding has already been submitted")
        if not is_review_ready(self.snapshot, terms_accepted):
            missing = []
            if not terms_accepted:
                missing.append({"field": "terms_accepted", "message": "Accept the terms and conditions", "type": "required"})
            if not documents_complete(self.snapshot[StepKind.DOCUMENTS]):
                missing.append({"field": "documents", "message": "Upload all required documents", "type": "required"})
            if not self.snapshot[StepKind.PROFILE]:
                missing.append({"field": "profile", "message": "Complete your profile", "type": "required"})
            if not self.snapshot[StepKind.SKILLS].get("skills"):
                missing.append({"field": "skills", "message": "Add at least one skill", "type": "required"})
            raise ValidationFailed("Onboarding is not ready to submit", missing)

        self.snapshot[StepKind.REVIEW] = {"terms_accepted": True}
        await self.flush()

        self.phase = WizardPhase.SUBMITTING
        try:
            record = await self.gateway.submit(self.record, actor_id or self.user_id)
        except PersistenceFailed:
            self.phase = WizardPhase.READY
            raise

        self.record = record
        self.phase = WizardPhase.SUBMITTED
        self.furthest_step = TOTAL_STEPS
        self.current_step = REVIEW_STEP
        self._reported.clear()
        self._refresh()
        return record

    # ── View ─────────────────────────────────────────────────

    def view(self, consume_notifications: bool = True) -> WizardView:
        self._ensure_ready()
        notifications = list(self.notifications)
        if consume_notifications:
            self.notifications.clear()
        return WizardView(
            onboarding_id=self.record.id,
            status=self.record.status,
            phase=self.phase.value,
            current_step=self.current_step,
            total_steps=TOTAL_STEPS,
            progress_percent=round((self.current_step - 1) / (TOTAL_STEPS - 1) * 100, 2),
            completed_steps=sorted(self.completed_steps),
            step_valid=dict(sorted(self.step_valid.items())),
            navigable_steps=[s for s in range(1, TOTAL_STEPS + 1) if self.can_navigate_to(s)],
            read_only=self.read_only,
            save_status=self.indicator.status.value,
            notifications=notifications,
            snapshot={kind.value: copy.deepcopy(data) for kind, data in self.snapshot.items()},
            submitted_at=self.record.submitted_at,
        )


class WizardSessions:
    """Process-local registry of one controller per worker.

    Controllers are released after submission or once idle for
    `idle_seconds`; the next request rebuilds them from the database.
    """

    def __init__(
        self,
        factory: Callable[[], WizardController],
        idle_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self.idle_seconds = settings.wizard_session_idle_seconds if idle_seconds is None else idle_seconds
        self._clock = clock
        self._controllers: dict[str, WizardController] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_used: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._controllers)

    async def get(self, user_id: str) -> WizardController:
        if not user_id:
            raise AuthRequired()
        while True:
            lock = self._locks.setdefault(user_id, asyncio.Lock())
            async with lock:
                if self._locks.get(user_id) is not lock:
                    # Released while we waited; take the new lock
                    continue
                controller = self._controllers.get(user_id)
                if controller is None:
                    try:
                        controller = await self._factory().initialize(user_id)
                    except Exception:
                        del self._locks[user_id]
                        raise
                    self._controllers[user_id] = controller
                self._last_used[user_id] = self._clock()
                return controller

    async def release(self, user_id: str) -> None:
        """Flush and drop a worker's controller along with its lock."""
        lock = self._locks.get(user_id)
        if lock is None:
            return
        async with lock:
            if self._locks.get(user_id) is not lock:
                return
            controller = self._controllers.pop(user_id, None)
            self._last_used.pop(user_id, None)
            try:
                if controller is not None:
                    await controller.close()
            finally:
                del self._locks[user_id]
        logger.debug(f"Released wizard session for user {user_id}")

    async def evict_idle(self) -> int:
        """Release every controller unused for longer than `idle_seconds`."""
        cutoff = self._clock() - self.idle_seconds
        idle = [user_id for user_id, used in self._last_used.items() if used <= cutoff]
        for user_id in idle:
            await self.release(user_id)
        if idle:
            logger.info(f"Evicted {len(idle)} idle wizard session(s)")
        return len(idle)

    async def close_all(self) -> None:
        controllers = list(self._controllers.values())
        self._controllers.clear()
        self._locks.clear()
        self._last_used.clear()
        for controller in controllers:
            await controller.close()
        logger.info(f"Closed {len(controllers)} wizard session(s)")


def build_wizard_sessions(
    session_factory, storage, limiter, idle_seconds: float | None = None, **controller_kwargs,
) -> WizardSessions:
    """Wire gateway, document service and controllers for one process."""
    gateway = PersistenceGateway(session_factory)
    documents = DocumentService(gateway, storage, limiter)
    return WizardSessions(
        lambda: WizardController(gateway, documents, **controller_kwargs),
        idle_seconds=idle_seconds,
    )
