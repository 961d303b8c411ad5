"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user       → decode JWT, load user from DB, return User
  require_role(...)      → restrict to specific roles
"""

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workbridge.auth.jwt import decode_token
from workbridge.database import get_db
from workbridge.middleware.exceptions import AuthRequired, PermissionDeniedError
from workbridge.models.user import User, UserRole

# Token issuance belongs to the auth provider; this service only verifies
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ── Core user dependency ────────────────────────────────────

async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the JWT, load the user, and return it."""
    if not token:
        raise AuthRequired()

    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise AuthRequired("Invalid or expired token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise AuthRequired("User not found or inactive")

    return user


# ── Role-based access control ───────────────────────────────

def require_role(*roles: UserRole):
    """Dependency factory: restrict to one or more roles.

    Usage:
        @router.get("/onboarding")
        async def progress(user: User = Depends(require_role(UserRole.WORKER))):
            ...
    """
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise PermissionDeniedError(
                f"Requires role: {', '.join(r.value for r in roles)}"
            )
        return user

    return _check
