"""Helper for recording onboarding audit events.

Usage:
    await log_audit_event(
        db, actor_id=user.id, action="onboarding_submitted",
        entity_type="worker_onboarding", entity_id=onboarding.id,
        metadata={"submitted_at": submitted_at.isoformat()},
    )

The row is added to the current session and committed with the
enclosing transaction, so the audit entry and the change it describes
land together or not at all.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from workbridge.models.onboarding.audit_log import OnboardingAuditLog


async def log_audit_event(
    db: AsyncSession,
    *,
    actor_id: str,
    action: str,
    entity_type: str,
    entity_id: str,
    metadata: dict | None = None,
) -> OnboardingAuditLog:
    """Append an audit entry to the current DB session."""
    entry = OnboardingAuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        event_metadata=metadata,
    )
    db.add(entry)
    return entry
