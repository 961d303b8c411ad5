"""Step registry for the onboarding wizard.

`STEP_DEFINITIONS` maps each `StepKind` to its id, title, schemas and
validator. Validators are pure: they work on a deep copy of the input,
never raise, and only answer whether the data is acceptable.
"""

import copy
import enum
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ValidationError

from workbridge.middleware.exceptions import ResourceNotFoundError
from workbridge.schemas.onboarding import (
    DocumentEntry,
    LanguagesComplete,
    LanguagesData,
    PreferencesComplete,
    PreferencesData,
    ProfileComplete,
    ProfileData,
    ReviewData,
    SkillsComplete,
    SkillsData,
    WorkHistoryComplete,
    WorkHistoryData,
)


class StepKind(str, enum.Enum):
    PROFILE = "profile"
    DOCUMENTS = "documents"
    SKILLS = "skills"
    WORK_HISTORY = "workHistory"
    LANGUAGES = "languages"
    PREFERENCES = "preferences"
    REVIEW = "review"


REQUIRED_DOCUMENTS = ("aadhaar_front", "aadhaar_back", "pan")
OPTIONAL_DOCUMENTS = ("passport", "visa")
DOCUMENT_TYPES = REQUIRED_DOCUMENTS + OPTIONAL_DOCUMENTS

DOCUMENT_LABELS = {
    "aadhaar_front": "Aadhaar Card (Front)",
    "aadhaar_back": "Aadhaar Card (Back)",
    "pan": "PAN Card",
    "passport": "Passport",
    "visa": "Visa",
}

TOTAL_STEPS = 7


def documents_complete(documents: Mapping[str, Any] | None) -> bool:
    """True when every required document type has been uploaded."""
    present = set(documents or {})
    return set(REQUIRED_DOCUMENTS) <= present


def _errors_from(exc: ValidationError) -> list[dict]:
    return [
        {
            "field": ".".join(str(loc) for loc in err["loc"]) or None,
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]


@dataclass(frozen=True)
class StepDefinition:
    step_id: int
    kind: StepKind
    title: str
    draft_schema: type[BaseModel] | None = None
    complete_schema: type[BaseModel] | None = None
    # Overrides schema validation for steps that are not plain forms
    checker: Callable[[Any], bool] | None = None

    def errors(self, data: Any) -> list[dict]:
        """Field errors for `data` (empty when the step would validate)."""
        data = copy.deepcopy(data)
        if self.checker is not None:
            if self.checker(data):
                return []
            return [{"field": None, "message": f"{self.title} is incomplete", "type": "incomplete"}]
        try:
            self.complete_schema.model_validate(data or {})
        except ValidationError as exc:
            return _errors_from(exc)
        return []

    def validate(self, data: Any) -> bool:
        return not self.errors(data)

    def normalize(self, data: Any) -> dict:
        """Validated, JSON-ready form of `data` as stored in the snapshot."""
        if self.kind is StepKind.DOCUMENTS:
            return {
                doc_type: DocumentEntry.model_validate(entry).model_dump(mode="json")
                for doc_type, entry in (data or {}).items()
            }
        if self.kind is StepKind.REVIEW:
            return ReviewData.model_validate(data or {}).model_dump()
        return self.complete_schema.model_validate(data or {}).model_dump(mode="json")


STEP_DEFINITIONS: dict[StepKind, StepDefinition] = {
    StepKind.PROFILE: StepDefinition(
        1, StepKind.PROFILE, "Basic Profile", ProfileData, ProfileComplete,
    ),
    StepKind.DOCUMENTS: StepDefinition(
        2, StepKind.DOCUMENTS, "KYC Documents", checker=documents_complete,
    ),
    StepKind.SKILLS: StepDefinition(
        3, StepKind.SKILLS, "Skills & Certifications", SkillsData, SkillsComplete,
    ),
    StepKind.WORK_HISTORY: StepDefinition(
        4, StepKind.WORK_HISTORY, "Work History", WorkHistoryData, WorkHistoryComplete,
    ),
    StepKind.LANGUAGES: StepDefinition(
        5, StepKind.LANGUAGES, "Languages", LanguagesData, LanguagesComplete,
    ),
    StepKind.PREFERENCES: StepDefinition(
        6, StepKind.PREFERENCES, "Preferences", PreferencesData, PreferencesComplete,
    ),
    StepKind.REVIEW: StepDefinition(
        7, StepKind.REVIEW, "Review & Submit", ReviewData,
        checker=lambda data: bool((data or {}).get("terms_accepted")),
    ),
}

_BY_ID = {definition.step_id: definition for definition in STEP_DEFINITIONS.values()}


def step_for_id(step_id: int) -> StepDefinition:
    try:
        return _BY_ID[step_id]
    except KeyError:
        raise ResourceNotFoundError("Step", str(step_id)) from None


def is_valid(kind: StepKind, data: Any) -> bool:
    return STEP_DEFINITIONS[kind].validate(data)


def empty_snapshot() -> dict[StepKind, Any]:
    return {
        StepKind.PROFILE: {},
        StepKind.DOCUMENTS: {},
        StepKind.SKILLS: {"skills": [], "certifications": []},
        StepKind.WORK_HISTORY: {"jobs": []},
        StepKind.LANGUAGES: {"languages": []},
        StepKind.PREFERENCES: {},
        StepKind.REVIEW: {"terms_accepted": False},
    }


def is_review_ready(snapshot: Mapping[StepKind, Any], terms_accepted: bool) -> bool:
    """Whether the worker may submit: terms, required documents, profile, a skill."""
    if not terms_accepted:
        return False
    if not documents_complete(snapshot.get(StepKind.DOCUMENTS)):
        return False
    if not snapshot.get(StepKind.PROFILE):
        return False
    skills = (snapshot.get(StepKind.SKILLS) or {}).get("skills") or []
    return len(skills) > 0


def derive_completed_steps(
    snapshot: Mapping[StepKind, Any],
    furthest_step: int = 1,
    submitted: bool = False,
    touched: set[int] | frozenset[int] = frozenset(),
) -> set[int]:
    """Steps that count as done for the given snapshot.

    Work history never blocks, so it is done once it has been saved in
    this session (`touched`), once any job exists, or once the worker has
    moved past it. Review is done only after submission.
    """
    completed = set()
    for kind, definition in STEP_DEFINITIONS.items():
        if kind is StepKind.REVIEW:
            if submitted:
                completed.add(definition.step_id)
        elif kind is StepKind.WORK_HISTORY:
            jobs = (snapshot.get(kind) or {}).get("jobs") or []
            if definition.step_id in touched or jobs or furthest_step > definition.step_id:
                completed.add(definition.step_id)
        elif definition.validate(snapshot.get(kind)):
            completed.add(definition.step_id)
    return completed
