"""Aggregate model imports for Alembic auto-detection."""

from workbridge.models.user import User, UserRole  # noqa: F401

# Worker onboarding
from workbridge.models.onboarding import (  # noqa: F401
    DocumentStatus,
    OnboardingAuditLog,
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
