"""add_services_faqs_testimonials

Revision ID: 8b41e6f0c2a9
Revises: 3f2a9c1d7e04
Create Date: 2025-12-02 14:37:08.552190

"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8b41e6f0c2a9"
down_revision: Union[str, Sequence[str], None] = "3f2a9c1d7e04"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add project services, service FAQs, project testimonials and a subject service link."""
    op.create_table(
        "project_services",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("slug", sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("service_page_url", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_project_services_project_id"), "project_services", ["project_id"], unique=False
    )

    op.create_table(
        "service_faqs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("service_id", sa.Uuid(), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("answer", sa.Text(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["service_id"], ["project_services.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_service_faqs_service_id"), "service_faqs", ["service_id"], unique=False
    )

    op.create_table(
        "project_testimonials",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.Uuid(), nullable=False),
        sa.Column("testimonial_text", sa.Text(), nullable=False),
        sa.Column("customer_name", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("business_name", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_project_testimonials_project_id"),
        "project_testimonials",
        ["project_id"],
        unique=False,
    )

    op.add_column("location_keywords", sa.Column("service_id", sa.Uuid(), nullable=True))
    op.create_foreign_key(
        "fk_location_keywords_service_id",
        "location_keywords",
        "project_services",
        ["service_id"],
        ["id"],
    )


def downgrade() -> None:
    """Drop service_id, testimonials, FAQs and services."""
    op.drop_constraint("fk_location_keywords_service_id", "location_keywords", type_="foreignkey")
    op.drop_column("location_keywords", "service_id")
    op.drop_index(op.f("ix_project_testimonials_project_id"), table_name="project_testimonials")
    op.drop_table("project_testimonials")
    op.drop_index(op.f("ix_service_faqs_service_id"), table_name="service_faqs")
    op.drop_table("service_faqs")
    op.drop_index(op.f("ix_project_services_project_id"), table_name="project_services")
    op.drop_table("project_services")
