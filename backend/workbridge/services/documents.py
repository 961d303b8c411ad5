"""KYC document and profile photo uploads.

Upload pipeline: validate (type, size, filename length, rate) ->
sanitise filename -> write to private storage under
`{user_id}/{onboarding_id}/{document_type}.{ext}` -> upsert the
document row. A document type has at most one row; re-uploading
replaces it.

Stored files are private. Callers display them through a short-lived
signed URL (`signed_url`), resolved by `GET /files/{token}`.
"""

import logging
import mimetypes
from typing import TYPE_CHECKING

from workbridge.auth.jwt import create_file_token, decode_token
from workbridge.config import settings
from workbridge.middleware.exceptions import (
    AuthRequired,
    PersistenceFailed,
    ResourceNotFoundError,
    StorageCleanupFailed,
    UploadRejected,
)
from workbridge.schemas.onboarding import DocumentEntry
from workbridge.schemas.validators import (
    MAX_FILENAME_LENGTH,
    file_extension,
    sanitize_filename,
)
from workbridge.services.gateway import PersistenceGateway
from workbridge.services.steps import DOCUMENT_LABELS, DOCUMENT_TYPES
from workbridge.services.storage import Storage, StorageError
from workbridge.utils.rate_limit import RateLimiter

if TYPE_CHECKING:
    from fastapi import UploadFile

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "pdf"}
PHOTO_EXTENSIONS = {"jpg", "jpeg", "png"}

# Chunk size for reading uploads (64 KB)
CHUNK_SIZE_BYTES = 64 * 1024


async def read_upload(file: "UploadFile", max_size: int) -> bytes:
    """Read an upload, stopping once it is known to exceed `max_size`.

    The returned content is at most `max_size + 1` bytes, enough for the
    size check to reject it without buffering the whole body.
    """
    content = b""
    while True:
        chunk = await file.read(CHUNK_SIZE_BYTES)
        if not chunk:
            break
        content += chunk
        if len(content) > max_size:
            return content[: max_size + 1]
    return content


def guess_mime_type(filename: str, fallback: str | None = None) -> str:
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or fallback or "application/octet-stream"


class DocumentService:
    def __init__(
        self,
        gateway: PersistenceGateway,
        storage: Storage,
        limiter: RateLimiter,
        *,
        max_bytes: int | None = None,
        photo_max_bytes: int | None = None,
        rate_limit: int | None = None,
        rate_window: int | None = None,
    ):
        self.gateway = gateway
        self.storage = storage
        self.limiter = limiter
        self.max_bytes = max_bytes or settings.upload_max_bytes
        self.photo_max_bytes = photo_max_bytes or settings.photo_max_bytes
        self.rate_limit = rate_limit or settings.upload_rate_limit
        self.rate_window = rate_window or settings.upload_rate_window_seconds

    async def validate(
        self,
        onboarding_id: str,
        document_type: str,
        filename: str,
        size: int,
    ) -> str:
        """Run the pre-storage checks for a KYC document; returns the file extension."""
        if document_type not in DOCUMENT_TYPES:
            raise UploadRejected(
                UploadRejected.INVALID_DOCUMENT_TYPE,
                f"Unknown document type: {document_type}",
            )
        return await self._check_file(onboarding_id, filename, size)

    async def _check_file(
        self,
        onboarding_id: str,
        filename: str,
        size: int,
        allowed: set[str] = ALLOWED_EXTENSIONS,
        max_bytes: int | None = None,
    ) -> str:
        # Rate limiter last: uploads rejected by the cheap checks keep their attempts
        ext = file_extension(filename)
        if ext not in allowed:
            names = ", ".join(sorted(e.upper() for e in allowed if e != "jpeg"))
            raise UploadRejected(
                UploadRejected.INVALID_TYPE,
                f"Invalid file type. Only {names} files are allowed.",
            )

        limit = max_bytes or self.max_bytes
        if size > limit:
            raise UploadRejected(
                UploadRejected.TOO_LARGE,
                f"File too large. Maximum size: {limit // (1024 * 1024)}MB",
            )

        if len(filename) > MAX_FILENAME_LENGTH:
            raise UploadRejected(
                UploadRejected.NAME_TOO_LONG,
                f"Filename too long. Maximum length: {MAX_FILENAME_LENGTH} characters",
            )

        if not await self.limiter.check(f"upload-{onboarding_id}", self.rate_limit, self.rate_window):
            logger.warning(f"Upload rate limit hit for onboarding {onboarding_id}")
            raise UploadRejected(
                UploadRejected.RATE_LIMITED,
                "Too many upload attempts. Please wait a minute and try again.",
            )

        return ext

    async def _store(self, storage_key: str, content: bytes, mime_type: str) -> None:
        try:
            await self.storage.put(storage_key, content, mime_type)
        except StorageError as exc:
            logger.error(f"Upload to storage failed for {storage_key}: {exc}")
            raise PersistenceFailed("Failed to upload file. Please try again.") from exc

    async def _discard(self, storage_key: str) -> None:
        try:
            await self.storage.remove(storage_key)
        except StorageError as exc:
            cleanup = StorageCleanupFailed(storage_key)
            logger.warning(f"{cleanup.message}: {exc}", extra={"error_code": cleanup.error_code})

    async def upload(
        self,
        *,
        user_id: str,
        onboarding_id: str,
        document_type: str,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> DocumentEntry:
        """Validate, store and record one KYC document."""
        ext = await self.validate(onboarding_id, document_type, filename, len(content))

        safe_name = sanitize_filename(filename)
        storage_key = f"{user_id}/{onboarding_id}/{document_type}.{ext}"
        mime_type = guess_mime_type(safe_name, content_type)

        previous = await self.gateway.get_document(onboarding_id, document_type)
        await self._store(storage_key, content, mime_type)

        entry = await self.gateway.upsert_document(
            onboarding_id,
            {
                "document_type": document_type,
                "file_name": safe_name,
                "file_url": storage_key,
                "file_size": len(content),
                "mime_type": mime_type,
                "storage_key": storage_key,
                "status": "uploaded",
            },
        )

        # Same type, different extension: the old object is now orphaned
        if previous and previous.storage_key != storage_key:
            await self._discard(previous.storage_key)

        logger.info(
            f"Uploaded {DOCUMENT_LABELS[document_type]} for onboarding {onboarding_id} "
            f"({len(content)} bytes)"
        )
        return entry

    async def remove(self, onboarding_id: str, document_type: str) -> None:
        """Delete a document. Storage cleanup failures are logged, not raised."""
        entry = await self.gateway.get_document(onboarding_id, document_type)
        if entry is None:
            raise ResourceNotFoundError("Document", document_type)

        await self._discard(entry.storage_key)
        await self.gateway.delete_document(onboarding_id, document_type)
        logger.info(f"Removed {document_type} for onboarding {onboarding_id}")

    async def upload_profile_photo(
        self,
        *,
        user_id: str,
        onboarding_id: str,
        filename: str,
        content: bytes,
        content_type: str | None = None,
    ) -> str:
        """Store a profile photo and return its storage key."""
        ext = await self._check_file(
            onboarding_id, filename, len(content),
            allowed=PHOTO_EXTENSIONS, max_bytes=self.photo_max_bytes,
        )
        storage_key = f"{user_id}/{onboarding_id}/profile.{ext}"
        await self._store(storage_key, content, guess_mime_type(filename, content_type))
        await self.gateway.set_profile_photo(onboarding_id, storage_key)
        logger.info(f"Uploaded profile photo for onboarding {onboarding_id}")
        return storage_key

    def signed_url(self, storage_key: str, ttl_seconds: int | None = None) -> str:
        return f"/files/{create_file_token(storage_key, ttl_seconds)}"

    async def get_signed_url(self, onboarding_id: str, document_type: str) -> str:
        entry = await self.gateway.get_document(onboarding_id, document_type)
        if entry is None:
            raise ResourceNotFoundError("Document", document_type)
        return self.signed_url(entry.storage_key)


def resolve_signed_token(token: str) -> str:
    """Storage key for a valid file token."""
    payload = decode_token(token)
    storage_key = payload.get("sub")
    if not storage_key or payload.get("type") != "file":
        raise AuthRequired("Invalid or expired file link")
    return storage_key
