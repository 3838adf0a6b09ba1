"""Initial schema — profiles, departments, machines, status catalog and history

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def _profile_fk(name: str, nullable: bool = True, ondelete: str | None = "SET NULL") -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("profiles.id", ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    # ── profiles ──────────────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        _id_column(),
        sa.Column("email", sa.String(256), nullable=False),
        sa.Column("full_name", sa.String(256), nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="operator"),
        sa.Column("hashed_password", sa.String(256), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint(
            "role IN ('admin', 'team_leader', 'operator')", name="ck_profiles_role"
        ),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)
    op.create_index("ix_profiles_role", "profiles", ["role"])

    # ── departments ───────────────────────────────────────────────────────────
    op.create_table(
        "departments",
        _id_column(),
        sa.Column("name", sa.String(256), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        _profile_fk("created_by"),
        _created_at(),
    )

    op.create_table(
        "department_leaders",
        _id_column(),
        sa.Column(
            "department_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("departments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _profile_fk("user_id", nullable=False, ondelete="CASCADE"),
        sa.Column(
            "assigned_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        _profile_fk("assigned_by"),
        sa.UniqueConstraint("department_id", "user_id", name="uq_department_leaders_pair"),
    )
    op.create_index(
        "ix_department_leaders_department_id", "department_leaders", ["department_id"]
    )
    op.create_index("ix_department_leaders_user_id", "department_leaders", ["user_id"])

    # ── machines ──────────────────────────────────────────────────────────────
    op.create_table(
        "machines",
        _id_column(),
        sa.Column("machine_code", sa.String(64), nullable=False),
        sa.Column("machine_name", sa.String(256), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("current_status", sa.String(64), nullable=False, server_default="Idle"),
        sa.Column(
            "department_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("departments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "last_updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        _profile_fk("last_updated_by"),
        _created_at(),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
    )
    op.create_index("ix_machines_machine_code", "machines", ["machine_code"], unique=True)
    op.create_index("ix_machines_current_status", "machines", ["current_status"])
    op.create_index("ix_machines_department_id", "machines", ["department_id"])

    op.create_table(
        "machine_operators",
        _id_column(),
        sa.Column(
            "machine_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("machines.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _profile_fk("user_id", nullable=False, ondelete="CASCADE"),
        sa.Column(
            "assigned_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        _profile_fk("assigned_by"),
        sa.UniqueConstraint("machine_id", "user_id", name="uq_machine_operators_pair"),
    )
    op.create_index("ix_machine_operators_machine_id", "machine_operators", ["machine_id"])
    op.create_index("ix_machine_operators_user_id", "machine_operators", ["user_id"])

    # ── status catalog ────────────────────────────────────────────────────────
    op.create_table(
        "status_types",
        _id_column(),
        sa.Column("name", sa.String(64), nullable=False, unique=True),
        sa.Column("color", sa.String(16), nullable=False, server_default="gray"),
        sa.Column("is_default", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="0"),
        _created_at(),
        _profile_fk("created_by"),
    )
    op.create_index("ix_status_types_is_active", "status_types", ["is_active"])

    # ── status history (append-only) ──────────────────────────────────────────
    op.create_table(
        "status_history",
        _id_column(),
        sa.Column(
            "machine_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("machines.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("previous_status", sa.String(64), nullable=False, server_default=""),
        sa.Column("status", sa.String(64), nullable=False),
        sa.Column("comment", sa.Text, nullable=False, server_default=""),
        _profile_fk("changed_by", nullable=False, ondelete=None),
        sa.Column(
            "changed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index("ix_status_history_machine_id", "status_history", ["machine_id"])
    op.create_index("ix_status_history_changed_at", "status_history", ["changed_at"])

    # ── audit events (append-only) ────────────────────────────────────────────
    op.create_table(
        "audit_events",
        _id_column(),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("actor_role", sa.String(32), nullable=True),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "payload",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        _created_at(),
    )
    op.create_index("ix_audit_events_entity_type", "audit_events", ["entity_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("status_history")
    op.drop_table("status_types")
    op.drop_table("machine_operators")
    op.drop_table("machines")
    op.drop_table("department_leaders")
    op.drop_table("departments")
    op.drop_table("profiles")
