"""create schedule tables

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("academic_year", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedules_academic_year", "schedules", ["academic_year"], unique=False)
    op.create_index("ix_schedules_status", "schedules", ["status"], unique=False)

    op.create_table(
        "class_teacher_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("academic_year", sa.String(length=20), nullable=False),
        sa.Column("section_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("academic_year", "section_id", name="uq_class_teacher_year_section"),
        sa.UniqueConstraint("academic_year", "teacher_id", name="uq_class_teacher_year_teacher"),
    )
    op.create_index(
        "ix_class_teacher_assignments_academic_year",
        "class_teacher_assignments",
        ["academic_year"],
        unique=False,
    )
    op.create_index(
        "ix_class_teacher_assignments_teacher_id",
        "class_teacher_assignments",
        ["teacher_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_class_teacher_assignments_teacher_id", table_name="class_teacher_assignments")
    op.drop_index("ix_class_teacher_assignments_academic_year", table_name="class_teacher_assignments")
    op.drop_table("class_teacher_assignments")
    op.drop_index("ix_schedules_status", table_name="schedules")
    op.drop_index("ix_schedules_academic_year", table_name="schedules")
    op.drop_table("schedules")
