"""create_job_queue_tables

Revision ID: 3f2a9c1d7e04
Revises:
Create Date: 2025-11-20 09:12:41.318274

"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7e04"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create projects, location_keywords, generated_pages, jobs and api_logs."""
    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("company_name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column("phone_number", sqlmodel.sql.sqltypes.AutoString(length=50), nullable=True),
        sa.Column("contact_url", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("service_description", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("wp_url", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("blog_url", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("wp_api_key", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
        sa.Column(
            "wp_page_template", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True
        ),
        sa.Column(
            "wp_publish_status", sqlmodel.sql.sqltypes.AutoString(length=20), nullable=False
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_projects_owner_id"), "projects", ["owner_id"], unique=False)

    op.create_table(
        "location_keywords",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("phrase", sqlmodel.sql.sqltypes.AutoString(length=500), nullable=False),
        sa.Column("location_name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("keyword", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("parent_location_id", sa.Uuid(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING",
                "QUEUED",
                "GENERATING",
                "GENERATED",
                "PUSHED",
                "ERROR",
                name="subjectstatus",
            ),
            nullable=False,
        ),
        sa.Column("wp_page_id", sa.Integer(), nullable=True),
        sa.Column("wp_page_url", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["parent_location_id"], ["location_keywords.id"]),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_location_keywords_project_id"), "location_keywords", ["project_id"], unique=False
    )
    op.create_index(
        op.f("ix_location_keywords_status"), "location_keywords", ["status"], unique=False
    )

    op.create_table(
        "generated_pages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("location_keyword_id", sa.Uuid(), nullable=False),
        sa.Column("title", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("slug", sqlmodel.sql.sqltypes.AutoString(length=500), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("meta_title", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("meta_description", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["location_keyword_id"], ["location_keywords.id"]),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("location_keyword_id"),
    )
    op.create_index(
        op.f("ix_generated_pages_project_id"), "generated_pages", ["project_id"], unique=False
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("CONTENT_GENERATION", "WORDPRESS_PUSH", name="jobkind"),
            nullable=False,
        ),
        sa.Column("subject_id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("QUEUED", "PROCESSING", "COMPLETED", "FAILED", name="jobstatus"),
            nullable=False,
        ),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("error_message", sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("attempts <= max_attempts", name="ck_jobs_attempts_within_max"),
    )
    op.create_index(op.f("ix_jobs_kind"), "jobs", ["kind"], unique=False)
    op.create_index(op.f("ix_jobs_subject_id"), "jobs", ["subject_id"], unique=False)
    op.create_index(op.f("ix_jobs_owner_id"), "jobs", ["owner_id"], unique=False)
    op.create_index(op.f("ix_jobs_project_id"), "jobs", ["project_id"], unique=False)
    op.create_index(op.f("ix_jobs_status"), "jobs", ["status"], unique=False)
    op.create_index(op.f("ix_jobs_priority"), "jobs", ["priority"], unique=False)
    op.create_index(op.f("ix_jobs_created_at"), "jobs", ["created_at"], unique=False)
    # Batch selection: WHERE status = 'queued' ORDER BY priority DESC, created_at ASC
    op.create_index(
        "idx_jobs_dispatch_order",
        "jobs",
        ["status", sa.text("priority DESC"), "created_at"],
        unique=False,
    )

    op.create_table(
        "api_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=True),
        sa.Column("project_id", sa.Uuid(), nullable=True),
        sa.Column("job_id", sa.Uuid(), nullable=True),
        sa.Column("api_type", sqlmodel.sql.sqltypes.AutoString(length=50), nullable=False),
        sa.Column("endpoint", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("method", sqlmodel.sql.sqltypes.AutoString(length=10), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("request_body", sa.JSON(), nullable=True),
        sa.Column("response_body", sa.JSON(), nullable=True),
        sa.Column("error_message", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_api_logs_owner_id"), "api_logs", ["owner_id"], unique=False)
    op.create_index(op.f("ix_api_logs_project_id"), "api_logs", ["project_id"], unique=False)
    op.create_index(op.f("ix_api_logs_job_id"), "api_logs", ["job_id"], unique=False)


def downgrade() -> None:
    """Drop all job queue tables and enum types."""
    op.drop_table("api_logs")
    op.drop_index("idx_jobs_dispatch_order", table_name="jobs")
    op.drop_table("jobs")
    op.drop_table("generated_pages")
    op.drop_table("location_keywords")
    op.drop_table("projects")
    sa.Enum(name="jobstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="jobkind").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="subjectstatus").drop(op.get_bind(), checkfirst=True)
