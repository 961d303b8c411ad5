"""Tests for the wizard controller against a mocked persistence gateway.

The gateway and document service are AsyncMocks so that save timing,
failures and ordering can be controlled precisely.
"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from workbridge.middleware.exceptions import (
    AuthRequired,
    NavigationBlocked,
    OnboardingLocked,
    PersistenceFailed,
    ResourceNotFoundError,
    UploadRejected,
    ValidationFailed,
)
from workbridge.schemas.onboarding import DocumentEntry, OnboardingRecord, StepSaveResult
from workbridge.services.autosave import SaveStatus
from workbridge.services.documents import DocumentService
from workbridge.services.gateway import PersistenceGateway
from workbridge.services.steps import STEP_DEFINITIONS, StepKind
from workbridge.services.wizard import WizardController, WizardPhase, WizardSessions


def _record(current_step: int = 1, status: str = "draft", submitted_at=None) -> OnboardingRecord:
    return OnboardingRecord(
        id="onb-1",
        user_id="user-1",
        current_step=current_step,
        status=status,
        submitted_at=submitted_at,
    )


async def _echo_save(record, kind, data):
    return StepSaveResult(
        kind=kind.value,
        data=data,
        current_step=min(STEP_DEFINITIONS[kind].step_id + 1, 7),
    )


@pytest.fixture
def gateway():
    gateway = AsyncMock(spec=PersistenceGateway)
    gateway.load_or_create.return_value = _record()
    gateway.hydrate.return_value = {}
    gateway.save_step.side_effect = _echo_save
    gateway.update_current_step.side_effect = lambda onboarding_id, step: step
    gateway.submit.return_value = _record(7, "pending_verification", datetime(2026, 1, 1, 12, 0))
    return gateway


@pytest.fixture
def documents(make_document):
    documents = AsyncMock(spec=DocumentService)

    async def upload(**kwargs):
        return DocumentEntry(**make_document(kwargs["document_type"]))

    documents.upload.side_effect = upload
    return documents


@pytest_asyncio.fixture
async def controller_factory(gateway, documents):
    created = []

    def _make(**kwargs) -> WizardController:
        kwargs.setdefault("debounce_seconds", 10)
        kwargs.setdefault("saved_clear_seconds", 10)
        kwargs.setdefault("lock_after_submit", True)
        controller = WizardController(gateway, documents, **kwargs)
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        await controller.close()


async def _ready_for_review(controller, profile_data, skills_data):
    controller.complete_step(1, profile_data)
    for doc_type in ("aadhaar_front", "aadhaar_back", "pan"):
        await controller.upload_document(doc_type, f"{doc_type}.pdf", b"%PDF-1.4")
    controller.complete_step(3, skills_data)


@pytest.mark.unit
@pytest.mark.asyncio
class TestInitialize:
    async def test_requires_user(self, controller_factory):
        with pytest.raises(AuthRequired):
            await controller_factory().initialize(None)

    async def test_view_before_initialize(self, controller_factory):
        with pytest.raises(AuthRequired):
            controller_factory().view()

    async def test_fresh_onboarding(self, controller_factory):
        controller = await controller_factory().initialize("user-1")

        view = controller.view()
        assert controller.phase is WizardPhase.READY
        assert view.current_step == 1
        assert view.completed_steps == []
        assert view.navigable_steps == [1]
        assert view.progress_percent == 0.0
        assert view.save_status == "idle"

    async def test_resume_from_saved_data(
        self, controller_factory, gateway, profile_data, skills_data, required_documents,
    ):
        gateway.load_or_create.return_value = _record(current_step=4)
        gateway.hydrate.return_value = {
            StepKind.PROFILE: STEP_DEFINITIONS[StepKind.PROFILE].normalize(profile_data),
            StepKind.DOCUMENTS: required_documents,
            StepKind.SKILLS: STEP_DEFINITIONS[StepKind.SKILLS].normalize(skills_data),
        }

        controller = await controller_factory().initialize("user-1")

        assert controller.current_step == 4
        assert controller.completed_steps == {1, 2, 3}
        assert controller.can_navigate_to(1)
        assert not controller.can_navigate_to(6)
        assert controller.view().progress_percent == 50.0

    async def test_submitted_onboarding_opens_read_only_on_review(self, controller_factory, gateway):
        gateway.load_or_create.return_value = _record(3, "pending_verification", datetime(2026, 1, 1))

        controller = await controller_factory().initialize("user-1")

        assert controller.read_only
        assert controller.current_step == 7
        assert 7 in controller.completed_steps
        assert controller.view().navigable_steps == [7]


@pytest.mark.unit
@pytest.mark.asyncio
class TestCompleteStep:
    async def test_merges_immediately_and_saves_after_flush(self, controller_factory, gateway, profile_data):
        controller = await controller_factory().initialize("user-1")

        controller.complete_step(1, profile_data)

        assert controller.snapshot[StepKind.PROFILE]["email"] == "asha.verma@example.com"
        assert 1 in controller.completed_steps
        gateway.save_step.assert_not_called()

        await controller.flush()
        gateway.save_step.assert_awaited_once()
        _, kind, payload = gateway.save_step.await_args.args
        assert kind is StepKind.PROFILE
        assert payload["full_name"] == "Asha Verma"
        assert controller.indicator.status is SaveStatus.SAVED
        await controller.close()

    async def test_rapid_completions_coalesce_into_one_save(self, controller_factory, gateway, profile_data):
        controller = await controller_factory().initialize("user-1")

        for name in ("Asha", "Asha V", "Asha Verma"):
            controller.complete_step(1, {**profile_data, "full_name": name})

        await controller.flush()
        gateway.save_step.assert_awaited_once()
        assert gateway.save_step.await_args.args[2]["full_name"] == "Asha Verma"

    async def test_debounce_fires_without_flush(self, controller_factory, gateway, profile_data):
        controller = await controller_factory(debounce_seconds=0.01).initialize("user-1")

        controller.complete_step(1, profile_data)
        await asyncio.sleep(0.05)

        gateway.save_step.assert_awaited_once()

    async def test_invalid_data_is_not_merged(self, controller_factory, gateway, profile_data):
        controller = await controller_factory().initialize("user-1")
        profile_data["phone"] = "12345"

        with pytest.raises(ValidationFailed) as exc_info:
            controller.complete_step(1, profile_data)

        assert exc_info.value.errors[0]["field"] == "phone"
        assert controller.snapshot[StepKind.PROFILE] == {}
        assert controller.step_valid[1] is False
        await controller.flush()
        gateway.save_step.assert_not_called()

    async def test_review_is_completed_by_submit_only(self, controller_factory):
        controller = await controller_factory().initialize("user-1")
        with pytest.raises(ValidationFailed):
            controller.complete_step(7, {"terms_accepted": True})

    async def test_documents_step_uses_uploaded_entries(self, controller_factory, make_document):
        controller = await controller_factory().initialize("user-1")

        # Client-supplied entries are ignored
        fake = {t: make_document(t) for t in ("aadhaar_front", "aadhaar_back", "pan")}
        with pytest.raises(ValidationFailed):
            controller.complete_step(2, fake)

        for doc_type in fake:
            await controller.upload_document(doc_type, f"{doc_type}.pdf", b"%PDF")
        controller.complete_step(2, {})
        assert 2 in controller.completed_steps

    async def test_work_history_can_be_skipped(self, controller_factory):
        controller = await controller_factory().initialize("user-1")
        controller.complete_step(4, {"jobs": []})
        assert 4 in controller.completed_steps


@pytest.mark.unit
@pytest.mark.asyncio
class TestSaveOutcomes:
    async def test_stale_response_is_discarded(self, controller_factory, gateway, profile_data):
        """An older save finishing last must not overwrite newer data."""
        started = asyncio.Event()
        release = asyncio.Event()
        saved = []

        async def save_step(record, kind, data):
            saved.append(data["full_name"])
            if len(saved) == 1:
                started.set()
                await release.wait()
            else:
                release.set()
            return await _echo_save(record, kind, data)

        gateway.save_step.side_effect = save_step
        controller = await controller_factory(debounce_seconds=0).initialize("user-1")

        controller.complete_step(1, {**profile_data, "full_name": "Old Name"})
        await started.wait()
        controller.complete_step(1, {**profile_data, "full_name": "New Name"})

        await controller.flush()
        await controller.flush()

        assert saved == ["Old Name", "New Name"]
        assert controller.snapshot[StepKind.PROFILE]["full_name"] == "New Name"
        await controller.close()

    async def test_failed_save_keeps_snapshot_and_notifies(self, controller_factory, gateway, profile_data):
        gateway.save_step.side_effect = PersistenceFailed("Failed to save basic profile. Please try again.")
        controller = await controller_factory().initialize("user-1")

        controller.complete_step(1, profile_data)
        await controller.flush()

        assert controller.snapshot[StepKind.PROFILE]["full_name"] == "Asha Verma"
        assert 1 in controller.completed_steps
        assert controller.indicator.status is SaveStatus.IDLE

        view = controller.view()
        assert view.notifications == ["Failed to save basic profile. Please try again."]
        assert controller.view().notifications == []

    async def test_unexpected_save_error_settles_indicator(self, controller_factory, gateway, profile_data):
        gateway.save_step.side_effect = ResourceNotFoundError("Onboarding", "onb-1")
        controller = await controller_factory().initialize("user-1")

        controller.complete_step(1, profile_data)
        await controller.flush()

        assert controller.indicator.status is SaveStatus.IDLE
        assert controller.snapshot[StepKind.PROFILE]["full_name"] == "Asha Verma"
        assert controller.view().notifications == ["Failed to save profile. Please try again."]

    async def test_save_advances_furthest_step(self, controller_factory, profile_data):
        controller = await controller_factory().initialize("user-1")
        controller.complete_step(1, profile_data)
        await controller.flush()
        assert controller.furthest_step == 2
        await controller.close()


@pytest.mark.unit
@pytest.mark.asyncio
class TestNavigation:
    async def test_cannot_skip_ahead(self, controller_factory):
        controller = await controller_factory().initialize("user-1")

        with pytest.raises(NavigationBlocked):
            await controller.navigate_to(3)
        with pytest.raises(NavigationBlocked):
            await controller.navigate_to(2)
        assert controller.current_step == 1

    async def test_next_after_live_validity(self, controller_factory, gateway, profile_data):
        controller = await controller_factory().initialize("user-1")

        assert controller.check_step(1, profile_data) == []
        assert await controller.next() == 2

        gateway.update_current_step.assert_awaited_once_with("onb-1", 2)
        assert controller.snapshot[StepKind.PROFILE] == {}

    async def test_back_navigation_is_free(self, controller_factory, gateway, profile_data, skills_data):
        controller = await controller_factory().initialize("user-1")
        await _ready_for_review(controller, profile_data, skills_data)
        controller.current_step = 3

        assert await controller.navigate_to(1) == 1
        assert await controller.navigate_to(3) == 3
        with pytest.raises(NavigationBlocked):
            await controller.navigate_to(5)

    async def test_invalid_current_step_blocks_forward_only(
        self, controller_factory, gateway, profile_data, required_documents,
    ):
        gateway.load_or_create.return_value = _record(current_step=3)
        gateway.hydrate.return_value = {
            StepKind.PROFILE: STEP_DEFINITIONS[StepKind.PROFILE].normalize(profile_data),
            StepKind.DOCUMENTS: required_documents,
        }
        controller = await controller_factory().initialize("user-1")

        assert controller.current_step == 3
        assert controller.completed_steps == {1, 2}
        assert controller.step_valid[3] is False
        assert not controller.can_navigate_to(4)
        assert controller.can_navigate_to(2)
        assert controller.can_navigate_to(1)

    async def test_valid_current_step_unlocks_unvisited_next(
        self, controller_factory, gateway, profile_data, required_documents,
    ):
        gateway.load_or_create.return_value = _record(current_step=3)
        gateway.hydrate.return_value = {
            StepKind.PROFILE: STEP_DEFINITIONS[StepKind.PROFILE].normalize(profile_data),
            StepKind.DOCUMENTS: required_documents,
        }
        controller = await controller_factory().initialize("user-1")

        controller.report_validity(3, True)

        assert 4 not in controller.completed_steps
        assert controller.can_navigate_to(4)
        assert not controller.can_navigate_to(5)

    async def test_live_validity_survives_other_step_saves(self, controller_factory, profile_data):
        controller = await controller_factory().initialize("user-1")
        controller.complete_step(1, profile_data)
        await controller.navigate_to(2)
        controller.report_validity(2, True)
        assert controller.can_navigate_to(3)

        # Step 1's debounced save lands while step 2 is still a draft
        await controller.flush()

        assert controller.step_valid[2] is True
        assert controller.can_navigate_to(3)

    async def test_upload_replaces_live_documents_validity(self, controller_factory, profile_data):
        controller = await controller_factory().initialize("user-1")
        controller.complete_step(1, profile_data)
        await controller.navigate_to(2)
        controller.report_validity(2, True)

        await controller.upload_document("pan", "pan.pdf", b"%PDF-1.4")

        assert controller.step_valid[2] is False
        assert not controller.can_navigate_to(3)

    async def test_previous_stops_at_first_step(self, controller_factory):
        controller = await controller_factory().initialize("user-1")
        assert await controller.previous() == 1

    async def test_out_of_range(self, controller_factory):
        controller = await controller_factory().initialize("user-1")
        assert not controller.can_navigate_to(0)
        assert not controller.can_navigate_to(8)

    async def test_progress_pointer_failure_is_a_notification(self, controller_factory, gateway, profile_data):
        gateway.update_current_step.side_effect = PersistenceFailed("Failed to update progress. Please try again.")
        controller = await controller_factory().initialize("user-1")
        controller.report_validity(1, True)

        assert await controller.navigate_to(2) == 2
        assert controller.view().notifications == ["Failed to update progress. Please try again."]


@pytest.mark.unit
@pytest.mark.asyncio
class TestDocumentUploads:
    async def test_oversized_upload_leaves_documents_unchanged(
        self, controller_factory, gateway, storage, limiter, required_documents,
    ):
        gateway.hydrate.return_value = {StepKind.DOCUMENTS: required_documents}
        controller = controller_factory()
        controller.documents = DocumentService(gateway, storage, limiter)
        await controller.initialize("user-1")
        before = dict(controller.snapshot[StepKind.DOCUMENTS])

        with pytest.raises(UploadRejected) as exc_info:
            await controller.upload_document("passport", "passport.pdf", b"0" * (12 * 1024 * 1024))

        assert exc_info.value.reason == UploadRejected.TOO_LARGE
        assert controller.snapshot[StepKind.DOCUMENTS] == before
        assert "passport" not in controller.snapshot[StepKind.DOCUMENTS]
        gateway.upsert_document.assert_not_called()


@pytest.mark.unit
@pytest.mark.asyncio
class TestSubmit:
    async def test_submit_flushes_pending_saves_first(
        self, controller_factory, gateway, profile_data, skills_data,
    ):
        order = []

        async def save_step(record, kind, data):
            order.append(f"save:{kind.value}")
            return await _echo_save(record, kind, data)

        async def submit(record, actor_id):
            order.append("submit")
            return _record(7, "pending_verification", datetime(2026, 1, 1))

        gateway.save_step.side_effect = save_step
        gateway.submit.side_effect = submit
        controller = await controller_factory().initialize("user-1")
        await _ready_for_review(controller, profile_data, skills_data)

        await controller.submit(True)

        assert order[-1] == "submit"
        assert set(order[:-1]) == {"save:profile", "save:skills"}
        assert controller.phase is WizardPhase.SUBMITTED
        assert controller.current_step == 7
        assert 7 in controller.completed_steps
        gateway.submit.assert_awaited_once()
        assert gateway.submit.await_args.args[1] == "user-1"

    async def test_submit_requires_terms_and_data(self, controller_factory, gateway):
        controller = await controller_factory().initialize("user-1")

        with pytest.raises(ValidationFailed) as exc_info:
            await controller.submit(False)

        fields = {e["field"] for e in exc_info.value.errors}
        assert fields == {"terms_accepted", "documents", "profile", "skills"}
        gateway.submit.assert_not_called()

    async def test_review_validity_follows_terms(self, controller_factory, profile_data, skills_data):
        controller = await controller_factory().initialize("user-1")
        await _ready_for_review(controller, profile_data, skills_data)

        assert controller.check_step(7, {"terms_accepted": False})
        assert controller.step_valid[7] is False
        assert controller.check_step(7, {"terms_accepted": True}) == []
        assert controller.step_valid[7] is True
        await controller.close()

    async def test_failed_submit_returns_to_ready(self, controller_factory, gateway, profile_data, skills_data):
        gateway.submit.side_effect = PersistenceFailed("Failed to submit onboarding. Please try again.")
        controller = await controller_factory().initialize("user-1")
        await _ready_for_review(controller, profile_data, skills_data)

        with pytest.raises(PersistenceFailed):
            await controller.submit(True)

        assert controller.phase is WizardPhase.READY
        assert not controller.read_only

    async def test_locked_after_submit(self, controller_factory, profile_data, skills_data):
        controller = await controller_factory().initialize("user-1")
        await _ready_for_review(controller, profile_data, skills_data)
        await controller.submit(True)

        with pytest.raises(OnboardingLocked):
            controller.complete_step(1, profile_data)
        with pytest.raises(OnboardingLocked):
            await controller.navigate_to(1)
        with pytest.raises(OnboardingLocked):
            await controller.upload_document("passport", "passport.pdf", b"%PDF")
        with pytest.raises(OnboardingLocked):
            await controller.submit(True)

        view = controller.view()
        assert view.read_only
        assert view.status == "pending_verification"
        assert view.progress_percent == 100.0

    async def test_editable_after_submit_when_unlocked(self, controller_factory, profile_data, skills_data):
        controller = await controller_factory(lock_after_submit=False).initialize("user-1")
        await _ready_for_review(controller, profile_data, skills_data)
        await controller.submit(True)

        assert not controller.read_only
        assert await controller.navigate_to(1) == 1
        controller.complete_step(1, {**profile_data, "full_name": "Asha K Verma"})
        with pytest.raises(OnboardingLocked):
            await controller.submit(True)
        await controller.close()


@pytest.mark.unit
@pytest.mark.asyncio
class TestWizardSessions:
    async def test_one_controller_per_user(self, controller_factory, gateway):
        sessions = WizardSessions(controller_factory)

        first, second = await asyncio.gather(sessions.get("user-1"), sessions.get("user-1"))

        assert first is second
        gateway.load_or_create.assert_awaited_once_with("user-1")
        await sessions.close_all()

    async def test_requires_user(self, controller_factory):
        with pytest.raises(AuthRequired):
            await WizardSessions(controller_factory).get("")

    async def test_close_all_flushes(self, controller_factory, gateway, profile_data):
        sessions = WizardSessions(controller_factory)
        controller = await sessions.get("user-1")
        controller.complete_step(1, profile_data)

        await sessions.close_all()

        gateway.save_step.assert_awaited_once()

    async def test_released_session_is_reinitialised(self, controller_factory, gateway, profile_data):
        sessions = WizardSessions(controller_factory)
        first = await sessions.get("user-1")
        first.complete_step(1, profile_data)

        await sessions.release("user-1")

        gateway.save_step.assert_awaited_once()
        assert len(sessions) == 0
        second = await sessions.get("user-1")
        assert second is not first
        assert gateway.load_or_create.await_count == 2
        await sessions.close_all()

    async def test_release_unknown_user_is_a_noop(self, controller_factory):
        await WizardSessions(controller_factory).release("nobody")

    async def test_idle_sessions_are_evicted(self, controller_factory):
        now = [1000.0]
        sessions = WizardSessions(controller_factory, idle_seconds=60, clock=lambda: now[0])
        await sessions.get("user-1")
        now[0] += 30
        await sessions.get("user-2")

        now[0] += 31
        assert await sessions.evict_idle() == 1
        assert len(sessions) == 1

        now[0] += 30
        assert await sessions.evict_idle() == 1
        assert len(sessions) == 0

    async def test_failed_initialise_does_not_leave_a_session(self, controller_factory, gateway):
        gateway.load_or_create.side_effect = PersistenceFailed("Failed to load onboarding. Please try again.")
        sessions = WizardSessions(controller_factory)

        with pytest.raises(PersistenceFailed):
            await sessions.get("user-1")

        assert len(sessions) == 0
        gateway.load_or_create.side_effect = None
        assert (await sessions.get("user-1")).user_id == "user-1"
        await sessions.close_all()
