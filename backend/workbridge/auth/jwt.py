"""JWT token creation and decoding.

Two kinds of token share the signing key:

Access tokens (bearer auth):
  - sub:   user ID
  - role:  user role string
  - type:  "access"
  - exp:   expiry timestamp

File tokens (signed URLs for private onboarding files):
  - sub:   storage key
  - type:  "file"
  - exp:   expiry timestamp (short-lived)
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from workbridge.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "role": role,
        "type": "access",
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def create_file_token(storage_key: str, ttl_seconds: int | None = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        seconds=ttl_seconds or settings.signed_url_ttl_seconds
    )
    payload = {"sub": storage_key, "type": "file", "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
