"""Signed-URL file access.

  GET /files/{token} → bytes of a private onboarding file

The token is the only credential: it names one storage key and expires
after `signed_url_ttl_seconds`.
"""

from fastapi import APIRouter, Depends, Request, Response

from workbridge.middleware.exceptions import ResourceNotFoundError
from workbridge.services.documents import guess_mime_type, resolve_signed_token
from workbridge.services.storage import ObjectNotFound, Storage

router = APIRouter(tags=["files"])


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


@router.get("/files/{token}")
async def read_file(token: str, storage: Storage = Depends(get_storage)):
    storage_key = resolve_signed_token(token)
    try:
        content = await storage.open(storage_key)
    except ObjectNotFound:
        raise ResourceNotFoundError("File", storage_key.rsplit("/", 1)[-1])
    return Response(
        content=content,
        media_type=guess_mime_type(storage_key),
        headers={"Cache-Control": "private, no-store"},
    )
