"""Worker onboarding models: the root record plus one table per step."""

from workbridge.models.onboarding.worker_onboarding import OnboardingStatus, WorkerOnboarding
from workbridge.models.onboarding.profile import OnboardingProfile
from workbridge.models.onboarding.document import DocumentStatus, OnboardingDocument
from workbridge.models.onboarding.skill import OnboardingCertification, OnboardingSkill
from workbridge.models.onboarding.work_history import OnboardingWorkHistory
from workbridge.models.onboarding.language import OnboardingLanguage
from workbridge.models.onboarding.preferences import OnboardingPreferences
from workbridge.models.onboarding.audit_log import OnboardingAuditLog

__all__ = [
    "WorkerOnboarding", "OnboardingStatus",
    "OnboardingProfile",
    "OnboardingDocument", "DocumentStatus",
    "OnboardingSkill", "OnboardingCertification",
    "OnboardingWorkHistory",
    "OnboardingLanguage",
    "OnboardingPreferences",
    "OnboardingAuditLog",
]
