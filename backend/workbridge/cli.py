"""Management CLI for onboarding operations.

Usage:
    python -m workbridge.cli create-tables            # Create all tables (dev only; use Alembic elsewhere)
    python -m workbridge.cli show-onboarding <user>   # Print a worker's wizard progress
"""

import sys

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from workbridge.config import settings
from workbridge.database import Base
from workbridge.models import (
    OnboardingDocument,
    OnboardingLanguage,
    OnboardingSkill,
    OnboardingWorkHistory,
    WorkerOnboarding,
)
from workbridge.services.steps import REQUIRED_DOCUMENTS, TOTAL_STEPS


def create_tables():
    engine = create_engine(settings.database_url_sync)
    Base.metadata.create_all(engine)
    print(f"Created {len(Base.metadata.tables)} table(s).")


def show_onboarding(user_id: str):
    engine = create_engine(settings.database_url_sync)
    with Session(engine) as db:
        onboarding = db.execute(
            select(WorkerOnboarding).where(WorkerOnboarding.user_id == user_id)
        ).scalar_one_or_none()
        if onboarding is None:
            print(f"No onboarding for user {user_id}.")
            return

        documents = db.execute(
            select(OnboardingDocument.document_type)
            .where(OnboardingDocument.onboarding_id == onboarding.id)
        ).scalars().all()

        def count(model) -> int:
            return db.execute(
                select(func.count()).select_from(model)
                .where(model.onboarding_id == onboarding.id)
            ).scalar_one()

        missing = [d for d in REQUIRED_DOCUMENTS if d not in documents]
        print(f"  Onboarding   {onboarding.id}")
        print(f"  Status       {onboarding.status.value}")
        print(f"  Step         {onboarding.current_step}/{TOTAL_STEPS}")
        print(f"  Submitted    {onboarding.submitted_at or '-'}")
        print(f"  Documents    {', '.join(sorted(documents)) or '-'}")
        if missing:
            print(f"  Missing      {', '.join(missing)}")
        print(f"  Skills       {count(OnboardingSkill)}")
        print(f"  Jobs         {count(OnboardingWorkHistory)}")
        print(f"  Languages    {count(OnboardingLanguage)}")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "create-tables":
        create_tables()
    elif cmd == "show-onboarding" and len(sys.argv) > 2:
        show_onboarding(sys.argv[2])
    else:
        print("Usage: python -m workbridge.cli [create-tables|show-onboarding <user_id>]")
