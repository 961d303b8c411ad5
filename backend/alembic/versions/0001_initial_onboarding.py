"""Initial schema: users, worker onboarding and per-step tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def _onboarding_fk() -> sa.Column:
    return sa.Column(
        "onboarding_id",
        sa.String(36),
        sa.ForeignKey("worker_onboarding.id", ondelete="CASCADE"),
        nullable=False,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum("WORKER", "EMPLOYER", "ADMIN", name="userrole")),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "worker_onboarding",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("current_step", sa.Integer(), server_default="1"),
        sa.Column(
            "status",
            sa.Enum("DRAFT", "PENDING_VERIFICATION", "APPROVED", "REJECTED", name="onboardingstatus"),
        ),
        sa.Column("submitted_at", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index("ix_worker_onboarding_user_id", "worker_onboarding", ["user_id"])

    op.create_table(
        "worker_onboarding_profile",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "onboarding_id", sa.String(36),
            sa.ForeignKey("worker_onboarding.id", ondelete="CASCADE"),
            nullable=False, unique=True,
        ),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("gender", sa.String(30)),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("profile_photo_url", sa.String(500)),
        *_timestamps(),
    )

    op.create_table(
        "worker_onboarding_documents",
        sa.Column("id", sa.String(36), primary_key=True),
        _onboarding_fk(),
        sa.Column("document_type", sa.String(30), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_url", sa.String(500), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("storage_key", sa.String(500), nullable=False),
        sa.Column("status", sa.Enum("UPLOADED", "APPROVED", "REJECTED", name="documentstatus")),
        *_timestamps(),
        sa.UniqueConstraint("onboarding_id", "document_type", name="uq_onboarding_document_type"),
    )
    op.create_index(
        "ix_worker_onboarding_documents_onboarding_id",
        "worker_onboarding_documents", ["onboarding_id"],
    )

    op.create_table(
        "worker_onboarding_skills",
        sa.Column("id", sa.String(36), primary_key=True),
        _onboarding_fk(),
        sa.Column("position", sa.Integer(), server_default="0"),
        sa.Column("skill_name", sa.String(100), nullable=False),
        sa.Column("experience_years", sa.Float(), server_default="0"),
    )
    op.create_index(
        "ix_worker_onboarding_skills_onboarding_id",
        "worker_onboarding_skills", ["onboarding_id"],
    )

    op.create_table(
        "worker_onboarding_certifications",
        sa.Column("id", sa.String(36), primary_key=True),
        _onboarding_fk(),
        sa.Column("position", sa.Integer(), server_default="0"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("issuer", sa.String(255), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("file_url", sa.String(500)),
    )
    op.create_index(
        "ix_worker_onboarding_certifications_onboarding_id",
        "worker_onboarding_certifications", ["onboarding_id"],
    )

    op.create_table(
        "worker_onboarding_work_history",
        sa.Column("id", sa.String(36), primary_key=True),
        _onboarding_fk(),
        sa.Column("position", sa.Integer(), server_default="0"),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(255), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("is_current", sa.Boolean(), server_default=sa.false()),
        sa.Column("responsibilities", sa.Text()),
    )
    op.create_index(
        "ix_worker_onboarding_work_history_onboarding_id",
        "worker_onboarding_work_history", ["onboarding_id"],
    )

    op.create_table(
        "worker_onboarding_languages",
        sa.Column("id", sa.String(36), primary_key=True),
        _onboarding_fk(),
        sa.Column("position", sa.Integer(), server_default="0"),
        sa.Column("language_name", sa.String(100), nullable=False),
        sa.Column("proficiency", sa.String(20), nullable=False),
    )
    op.create_index(
        "ix_worker_onboarding_languages_onboarding_id",
        "worker_onboarding_languages", ["onboarding_id"],
    )

    op.create_table(
        "worker_onboarding_preferences",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "onboarding_id", sa.String(36),
            sa.ForeignKey("worker_onboarding.id", ondelete="CASCADE"),
            nullable=False, unique=True,
        ),
        sa.Column("preferred_countries", sa.JSON()),
        sa.Column("expected_wage_currency", sa.String(3), nullable=False),
        sa.Column("expected_wage_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("contract_length", sa.String(50), nullable=False),
        sa.Column("availability_date", sa.Date(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "onboarding_audit_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("actor_id", sa.String(36), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_onboarding_audit_logs_actor_id", "onboarding_audit_logs", ["actor_id"])
    op.create_index("ix_onboarding_audit_logs_action", "onboarding_audit_logs", ["action"])
    op.create_index("ix_onboarding_audit_logs_entity_id", "onboarding_audit_logs", ["entity_id"])
    op.create_index("ix_onboarding_audit_logs_created_at", "onboarding_audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("onboarding_audit_logs")
    op.drop_table("worker_onboarding_preferences")
    op.drop_table("worker_onboarding_languages")
    op.drop_table("worker_onboarding_work_history")
    op.drop_table("worker_onboarding_certifications")
    op.drop_table("worker_onboarding_skills")
    op.drop_table("worker_onboarding_documents")
    op.drop_table("worker_onboarding_profile")
    op.drop_table("worker_onboarding")
    op.drop_table("users")
    sa.Enum(name="documentstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="onboardingstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
