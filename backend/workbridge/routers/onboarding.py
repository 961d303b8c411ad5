"""Worker onboarding wizard: 7 steps with autosave and resume.

Endpoints:
  GET    /api/onboarding/                         → wizard view (creates on first visit)
  POST   /api/onboarding/steps/{step}/validate    → check a draft, record live validity
  POST   /api/onboarding/steps/{step}/complete    → merge step data, schedule autosave
  POST   /api/onboarding/navigate/{step}          → move to a step
  POST   /api/onboarding/flush                    → persist pending autosaves now
  POST   /api/onboarding/documents/{type}         → upload a KYC document
  DELETE /api/onboarding/documents/{type}         → remove a KYC document
  GET    /api/onboarding/documents/{type}/url     → short-lived signed URL
  POST   /api/onboarding/profile/photo            → upload the profile photo
  POST   /api/onboarding/submit                   → submit for verification

Design:
  - One WizardController per worker lives in the process-local
    WizardSessions registry; step data is merged in memory and saved
    after a short debounce.
  - Completing a step does not wait for the save; the view's
    `save_status` reports progress and failures arrive as notifications.
  - Documents are persisted immediately on upload.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, File, Request, Response, UploadFile, status

from workbridge.auth.deps import require_role
from workbridge.config import settings
from workbridge.models.user import User, UserRole
from workbridge.schemas.onboarding import (
    DocumentEntry,
    PhotoUploadOut,
    SignedUrlOut,
    StepValidation,
    SubmitRequest,
    WizardView,
)
from workbridge.services.documents import read_upload
from workbridge.services.wizard import WizardController, WizardSessions

router = APIRouter()


# ── Dependencies ─────────────────────────────────────────────

def get_wizard_sessions(request: Request) -> WizardSessions:
    return request.app.state.wizard_sessions


async def get_controller(
    user: User = Depends(require_role(UserRole.WORKER)),
    sessions: WizardSessions = Depends(get_wizard_sessions),
) -> WizardController:
    return await sessions.get(user.id)


# ── Progress & steps ─────────────────────────────────────────

@router.get("/", response_model=WizardView)
async def get_progress(controller: WizardController = Depends(get_controller)):
    """Current step, completion state and saved data for every step."""
    return controller.view()


@router.post("/steps/{step}/validate", response_model=StepValidation)
async def validate_step(
    step: int,
    body: dict[str, Any] = Body(default_factory=dict),
    controller: WizardController = Depends(get_controller),
):
    errors = controller.check_step(step, body)
    return StepValidation(step=step, valid=not errors, errors=errors)


@router.post("/steps/{step}/complete", response_model=WizardView)
async def complete_step(
    step: int,
    body: dict[str, Any] = Body(default_factory=dict),
    controller: WizardController = Depends(get_controller),
):
    """Merge step data; the save runs in the background after the debounce."""
    controller.complete_step(step, body)
    return controller.view()


@router.post("/navigate/{step}", response_model=WizardView)
async def navigate(step: int, controller: WizardController = Depends(get_controller)):
    await controller.navigate_to(step)
    return controller.view()


@router.post("/flush", response_model=WizardView)
async def flush(controller: WizardController = Depends(get_controller)):
    await controller.flush()
    return controller.view()


# ── Documents ────────────────────────────────────────────────

@router.post(
    "/documents/{document_type}",
    response_model=DocumentEntry,
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    document_type: str,
    file: UploadFile = File(...),
    controller: WizardController = Depends(get_controller),
):
    content = await read_upload(file, settings.upload_max_bytes)
    return await controller.upload_document(
        document_type,
        file.filename or "",
        content,
        file.content_type,
    )


@router.delete("/documents/{document_type}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_document(
    document_type: str,
    controller: WizardController = Depends(get_controller),
):
    await controller.remove_document(document_type)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/documents/{document_type}/url", response_model=SignedUrlOut)
async def document_url(
    document_type: str,
    controller: WizardController = Depends(get_controller),
):
    url = await controller.documents.get_signed_url(controller.onboarding_id, document_type)
    return SignedUrlOut(url=url, expires_in=settings.signed_url_ttl_seconds)


@router.post("/profile/photo", response_model=PhotoUploadOut)
async def upload_profile_photo(
    file: UploadFile = File(...),
    controller: WizardController = Depends(get_controller),
):
    content = await read_upload(file, settings.photo_max_bytes)
    storage_key = await controller.upload_profile_photo(
        file.filename or "", content, file.content_type,
    )
    return PhotoUploadOut(
        storage_key=storage_key,
        url=controller.documents.signed_url(storage_key),
    )


# ── Submission ───────────────────────────────────────────────

@router.post("/submit", response_model=WizardView)
async def submit(
    body: SubmitRequest,
    user: User = Depends(require_role(UserRole.WORKER)),
    controller: WizardController = Depends(get_controller),
    sessions: WizardSessions = Depends(get_wizard_sessions),
):
    """Submit the onboarding for verification. Irreversible."""
    await controller.submit(body.terms_accepted, actor_id=user.id)
    view = controller.view()
    # Later requests reload the submitted record from the database
    await sessions.release(user.id)
    return view
