"""Initial schema: members, points ledger, allocation records, configuration, audit

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(32), nullable=False, server_default="APPLICANT"),
        sa.Column("pending_dismissal", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_role", ["role"], unique=False)

    op.create_table(
        "role_change_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("old_role", sa.String(32), nullable=False),
        sa.Column("new_role", sa.String(32), nullable=False),
        sa.Column("changed_by", sa.String(64), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_role_change_entries_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_role_change_entries"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("role_change_entries", schema=None) as batch_op:
        batch_op.create_index("ix_role_change_entries_user", ["user_id", "changed_at"], unique=False)

    op.create_table(
        "points_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_points_entries_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_points_entries"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("points_entries", schema=None) as batch_op:
        batch_op.create_index("ix_points_entries_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_points_entries_user_occurred", ["user_id", "occurred_at"], unique=False)

    op.create_table(
        "allocation_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("period", sa.String(7), nullable=False),
        sa.Column("base_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("bonus_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("deduction_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("amount_units", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("currency_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("remark", sa.String(255), nullable=True),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_allocation_records_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_allocation_records"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("allocation_records", schema=None) as batch_op:
        batch_op.create_index("ix_allocation_records_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_allocation_records_period", ["period"], unique=False)
        batch_op.create_index(
            "ix_allocation_records_user_archived", ["user_id", "archived", "archived_at"], unique=False
        )

    op.create_table(
        "config_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], name="fk_config_entries_updated_by_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_config_entries"),
        sa.UniqueConstraint("key", name="uq_config_entries_key"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("operation_type", sa.String(64), nullable=False),
        sa.Column("operation_detail", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], name="fk_audit_log_actor_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_audit_log"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("audit_log", schema=None) as batch_op:
        batch_op.create_index("ix_audit_log_operation", ["operation_type", "occurred_at"], unique=False)

    op.create_table(
        "notices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False, server_default="GENERAL"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_notices_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_notices"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("notices", schema=None) as batch_op:
        batch_op.create_index("ix_notices_user_id", ["user_id"], unique=False)


def downgrade():
    with op.batch_alter_table("notices", schema=None) as batch_op:
        batch_op.drop_index("ix_notices_user_id")
    op.drop_table("notices")

    with op.batch_alter_table("audit_log", schema=None) as batch_op:
        batch_op.drop_index("ix_audit_log_operation")
    op.drop_table("audit_log")

    op.drop_table("config_entries")

    with op.batch_alter_table("allocation_records", schema=None) as batch_op:
        batch_op.drop_index("ix_allocation_records_user_archived")
        batch_op.drop_index("ix_allocation_records_period")
        batch_op.drop_index("ix_allocation_records_user_id")
    op.drop_table("allocation_records")

    with op.batch_alter_table("points_entries", schema=None) as batch_op:
        batch_op.drop_index("ix_points_entries_user_occurred")
        batch_op.drop_index("ix_points_entries_user_id")
    op.drop_table("points_entries")

    with op.batch_alter_table("role_change_entries", schema=None) as batch_op:
        batch_op.drop_index("ix_role_change_entries_user")
    op.drop_table("role_change_entries")

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.drop_index("ix_users_role")
    op.drop_table("users")
