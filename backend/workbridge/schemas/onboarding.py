"""Pydantic schemas for the 7-step worker onboarding wizard.

Every step has a `...Data` schema with optional fields, used for drafts
and for parsing persisted rows, and a `...Complete` variant that carries
the business rules a step must satisfy before it can be completed.
"""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from workbridge.config import settings
from workbridge.schemas.validators import (
    validate_email,
    validate_minimum_age,
    validate_phone,
)


Gender = Literal["male", "female", "other", "prefer_not_to_say"]
Proficiency = Literal["basic", "conversational", "fluent", "native"]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ── Onboarding record / wizard view ──────────────────────────

class OnboardingRecord(BaseModel):
    """Detached copy of a `worker_onboarding` row."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    current_step: int
    status: str
    submitted_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _enum_value(cls, v):
        return getattr(v, "value", v)

    @property
    def is_submitted(self) -> bool:
        return self.status != "draft"


class StepSaveResult(BaseModel):
    kind: str
    data: Any
    current_step: int


class WizardView(BaseModel):
    onboarding_id: str
    status: str
    phase: str
    current_step: int
    total_steps: int
    progress_percent: float
    completed_steps: list[int]
    step_valid: dict[int, bool]
    navigable_steps: list[int]
    read_only: bool
    save_status: str
    notifications: list[str] = []
    snapshot: dict[str, Any]
    submitted_at: datetime | None = None


class StepValidation(BaseModel):
    step: int
    valid: bool
    errors: list[dict] = []


class SubmitRequest(BaseModel):
    terms_accepted: bool = False


class SignedUrlOut(BaseModel):
    url: str
    expires_in: int


class PhotoUploadOut(BaseModel):
    storage_key: str
    url: str


# ── Step 1: Basic profile ────────────────────────────────────

class ProfileData(BaseModel):
    full_name: str | None = None
    date_of_birth: date | None = None
    gender: Gender | None = None
    phone: str | None = None
    email: str | None = None
    profile_photo_url: str | None = None

    @field_validator("date_of_birth", "gender", "profile_photo_url", mode="before")
    @classmethod
    def _blank(cls, v):
        return _blank_to_none(v)


class ProfileComplete(ProfileData):
    """Name, date of birth (18+), phone and email are required."""
    full_name: str
    date_of_birth: date
    phone: str
    email: str

    @field_validator("full_name")
    @classmethod
    def _name_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("date_of_birth")
    @classmethod
    def _adult(cls, v: date) -> date:
        return validate_minimum_age(v, strict=settings.strict_age_check)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str) -> str:
        return validate_phone(v)

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return validate_email(v)


# ── Step 2: KYC documents ────────────────────────────────────

class DocumentEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str | None = None
    document_type: str
    file_name: str
    file_url: str
    file_size: int
    mime_type: str
    storage_key: str
    status: str = "uploaded"

    @field_validator("status", mode="before")
    @classmethod
    def _enum_value(cls, v):
        return getattr(v, "value", v)


# ── Step 3: Skills & certifications ──────────────────────────

class SkillInput(BaseModel):
    skill_name: str = Field(min_length=1, max_length=100)
    experience_years: float = Field(default=0, ge=0, le=60)

    @field_validator("skill_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Skill name is required")
        return v.strip()


class CertificationInput(BaseModel):
    name: str = Field(min_length=1)
    issuer: str = Field(min_length=1)
    issue_date: date
    file_url: str | None = None

    @field_validator("name", "issuer")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field is required")
        return v.strip()


class SkillsData(BaseModel):
    skills: list[SkillInput] | None = None
    certifications: list[CertificationInput] | None = None


class SkillsComplete(SkillsData):
    """At least one skill, each listed once; certifications are optional."""
    skills: list[SkillInput]
    certifications: list[CertificationInput] = []

    @model_validator(mode="after")
    def _at_least_one_unique(self):
        if not self.skills:
            raise ValueError("Add at least one skill")
        seen = set()
        for skill in self.skills:
            key = skill.skill_name.casefold()
            if key in seen:
                raise ValueError(f"{skill.skill_name} is already in your list")
            seen.add(key)
        return self


# ── Step 4: Work history ─────────────────────────────────────

class JobInput(BaseModel):
    company_name: str = Field(min_length=1)
    role: str = Field(min_length=1)
    start_date: date
    end_date: date | None = None
    is_current: bool = False
    responsibilities: str | None = None

    @field_validator("end_date", "responsibilities", mode="before")
    @classmethod
    def _blank(cls, v):
        return _blank_to_none(v)

    @model_validator(mode="after")
    def _end_date_unless_current(self):
        if self.is_current:
            self.end_date = None
        elif self.end_date is None:
            raise ValueError("End date is required for non-current positions")
        return self


class WorkHistoryData(BaseModel):
    jobs: list[JobInput] | None = None


class WorkHistoryComplete(WorkHistoryData):
    """Work history is optional; listed jobs must still be well-formed."""
    jobs: list[JobInput] = []


# ── Step 5: Languages ────────────────────────────────────────

class LanguageInput(BaseModel):
    language_name: str = Field(min_length=1, max_length=100)
    proficiency: Proficiency

    @field_validator("language_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Language name is required")
        return v.strip()


class LanguagesData(BaseModel):
    languages: list[LanguageInput] | None = None


class LanguagesComplete(LanguagesData):
    """At least one language; each language listed once."""
    languages: list[LanguageInput]

    @model_validator(mode="after")
    def _at_least_one_unique(self):
        if not self.languages:
            raise ValueError("Add at least one language")
        seen = set()
        for lang in self.languages:
            key = lang.language_name.casefold()
            if key in seen:
                raise ValueError(f"{lang.language_name} is listed more than once")
            seen.add(key)
        return self


# ── Step 6: Preferences ──────────────────────────────────────

class PreferencesData(BaseModel):
    preferred_countries: list[str] | None = None
    expected_wage_currency: str | None = None
    expected_wage_amount: float | None = None
    contract_length: str | None = None
    availability_date: date | None = None

    @field_validator("availability_date", mode="before")
    @classmethod
    def _blank(cls, v):
        return _blank_to_none(v)


class PreferencesComplete(PreferencesData):
    preferred_countries: list[str]
    expected_wage_currency: str = Field(min_length=1, max_length=3)
    expected_wage_amount: float = Field(gt=0)
    contract_length: str = Field(min_length=1)
    availability_date: date

    @field_validator("preferred_countries")
    @classmethod
    def _countries(cls, v: list[str]) -> list[str]:
        countries = [c.strip() for c in v if c and c.strip()]
        if not countries:
            raise ValueError("Select at least one country")
        return countries

    @field_validator("expected_wage_currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("availability_date")
    @classmethod
    def _not_in_past(cls, v: date) -> date:
        if v < date.today():
            raise ValueError("Availability date must be today or later")
        return v


# ── Step 7: Review & submit ──────────────────────────────────

class ReviewData(BaseModel):
    terms_accepted: bool = False
