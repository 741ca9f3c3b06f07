"""Initial schema — the seven ZimConnect tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _profile_fk(name: str, **kwargs) -> sa.Column:
    return sa.Column(
        name,
        sa.String(36),
        sa.ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        **kwargs,
    )


def upgrade() -> None:
    # ── 1. profiles ─────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("first_name", sa.String, nullable=False, server_default=""),
        sa.Column("last_name", sa.String, nullable=False, server_default=""),
        sa.Column("age", sa.Integer, nullable=True, index=True),
        sa.Column("gender", sa.String, nullable=True, index=True),
        sa.Column("city", sa.String, nullable=True),
        sa.Column("state", sa.String, nullable=True, index=True),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column(
            "interests",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Array of interest labels",
        ),
        sa.Column(
            "photos",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Array of photo URLs, first is primary",
        ),
        sa.Column("show_age", sa.Boolean, server_default="true", nullable=False),
        sa.Column("show_location", sa.Boolean, server_default="true", nullable=False),
        sa.Column("show_online", sa.Boolean, server_default="true", nullable=False),
        sa.Column("profile_complete", sa.Boolean, server_default="false", nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("age IS NULL OR age >= 18", name="ck_profile_adult"),
    )
    op.create_index("ix_profiles_created_at", "profiles", ["created_at"])

    # ── 2. likes ────────────────────────────────────────────────────
    op.create_table(
        "likes",
        sa.Column("id", sa.String(36), primary_key=True),
        _profile_fk("liker_id", index=True),
        _profile_fk("liked_id", index=True),
        _created_at(),
        sa.UniqueConstraint("liker_id", "liked_id", name="uq_like_pair"),
    )

    # ── 3. matches ──────────────────────────────────────────────────
    op.create_table(
        "matches",
        sa.Column("id", sa.String(36), primary_key=True),
        _profile_fk("user1_id", index=True),
        _profile_fk("user2_id", index=True),
        _created_at(),
        sa.UniqueConstraint("user1_id", "user2_id", name="uq_match_pair"),
        sa.CheckConstraint("user1_id < user2_id", name="ck_match_pair_ordered"),
    )

    # ── 4. messages ─────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "match_id",
            sa.String(36),
            sa.ForeignKey("matches.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        _profile_fk("sender_id"),
        sa.Column("content", sa.Text, nullable=False),
        _created_at(),
        sa.Column(
            "read_at",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Set by the recipient's client",
        ),
    )
    op.create_index(
        "ix_messages_match_created",
        "messages",
        ["match_id", "created_at"],
    )

    # ── 5. notifications ────────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        _profile_fk("user_id", index=True),
        sa.Column("type", sa.String, nullable=False, comment="like / match / message"),
        sa.Column("title", sa.String, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("read", sa.Boolean, server_default="false", nullable=False),
        _created_at(),
    )

    # ── 6. user_settings ────────────────────────────────────────────
    op.create_table(
        "user_settings",
        sa.Column("id", sa.String(36), primary_key=True),
        _profile_fk("user_id", unique=True),
        sa.Column(
            "discovery",
            postgresql.JSONB,
            nullable=False,
            comment="showMe, ageRange, stateFilter, cityFilter, interests",
        ),
        sa.Column(
            "privacy",
            postgresql.JSONB,
            nullable=False,
            comment="showAge, showLocation, showOnline",
        ),
        sa.Column(
            "notifications",
            postgresql.JSONB,
            nullable=False,
            comment="newMatches, messages, likes",
        ),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 7. city_coordinates (reference table) ───────────────────────
    op.create_table(
        "city_coordinates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("state", sa.String, nullable=False, index=True),
        sa.Column("city", sa.String, nullable=False),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.UniqueConstraint("state", "city", name="uq_city_state"),
    )


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_table("city_coordinates")
    op.drop_table("user_settings")
    op.drop_table("notifications")

    op.drop_index("ix_messages_match_created", table_name="messages")
    op.drop_table("messages")

    op.drop_table("matches")
    op.drop_table("likes")

    op.drop_index("ix_profiles_created_at", table_name="profiles")
    op.drop_table("profiles")
