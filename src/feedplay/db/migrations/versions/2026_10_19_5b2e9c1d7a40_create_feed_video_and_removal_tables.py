"""create feed, video and removal tables.

Revision ID: 5b2e9c1d7a40
Revises:
Create Date: 2026-10-19 09:12:44.310512
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op
from feedplay.db.types.timezone_aware_datetime import TimezoneAwareDatetime

# revision identifiers, used by Alembic.
revision: str = "5b2e9c1d7a40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

FEED_KIND = sa.Enum("CHANNEL", "QUERY", "SINGLE_ITEM", "GENERIC", name="feedkind")
VIDEO_STATE = sa.Enum("AVAILABLE", "ACTIVE", "REMOVED", name="videostate")

TRIGGER_VIDEOS_UPDATE_UPDATED_AT = "videos_update_updated_at"


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "feed",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", FEED_KIND, nullable=False),
        sa.Column("descriptor", sa.String(), nullable=False),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column(
            "created_at",
            TimezoneAwareDatetime(),
            server_default=sa.text("(datetime('now'))"),
            nullable=False,
        ),
        sa.Column("last_synced_at", TimezoneAwareDatetime(), nullable=True),
        sa.Column("last_failed_sync_at", TimezoneAwareDatetime(), nullable=True),
        sa.Column(
            "consecutive_failures", sa.Integer(), server_default="0", nullable=False
        ),
        sa.Column("last_error", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kind", "descriptor", name="uq_feed_source"),
    )

    op.create_table(
        "video",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("feed_id", sa.Integer(), nullable=True),
        sa.Column("feed_label", sa.String(), nullable=True),
        sa.Column("source_native_id", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("playable_reference", sa.String(), nullable=False),
        sa.Column("state", VIDEO_STATE, nullable=False),
        sa.Column("discovered_at", TimezoneAwareDatetime(), nullable=False),
        sa.Column("published_at", TimezoneAwareDatetime(), nullable=True),
        sa.Column("last_played_at", TimezoneAwareDatetime(), nullable=True),
        sa.Column("removed_at", TimezoneAwareDatetime(), nullable=True),
        sa.Column(
            "updated_at",
            TimezoneAwareDatetime(),
            server_default=sa.text("(datetime('now'))"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["feed_id"], ["feed.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "(state = 'REMOVED') = (removed_at IS NOT NULL)",
            name="ck_video_removed_at",
        ),
    )
    op.create_index(
        "uq_video_feed_source",
        "video",
        ["feed_id", "source_native_id"],
        unique=True,
        sqlite_where=sa.text("state != 'REMOVED' AND feed_id IS NOT NULL"),
    )
    op.create_index(
        "uq_video_direct_reference",
        "video",
        ["playable_reference"],
        unique=True,
        sqlite_where=sa.text("state != 'REMOVED' AND feed_id IS NULL"),
    )
    op.create_index(
        "idx_video_state_discovered", "video", ["state", "discovered_at"]
    )
    op.create_index("idx_video_feed", "video", ["feed_id"])

    op.create_table(
        "removal",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("removed_at", TimezoneAwareDatetime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "removalitem",
        sa.Column("removal_id", sa.Integer(), nullable=False),
        sa.Column("video_id", sa.Integer(), nullable=False),
        sa.Column("prior_state", VIDEO_STATE, nullable=False),
        sa.ForeignKeyConstraint(["removal_id"], ["removal.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["video_id"], ["video.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("removal_id", "video_id"),
    )

    op.execute(
        f"""
        CREATE TRIGGER IF NOT EXISTS {TRIGGER_VIDEOS_UPDATE_UPDATED_AT}
        AFTER UPDATE OF feed_id, feed_label, title, playable_reference, state,
                        published_at, last_played_at, removed_at ON video
        FOR EACH ROW
        BEGIN
            UPDATE video SET updated_at = (datetime('now')) WHERE id = NEW.id;
        END;
        """
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.execute(f"DROP TRIGGER IF EXISTS {TRIGGER_VIDEOS_UPDATE_UPDATED_AT};")
    op.drop_table("removalitem")
    op.drop_table("removal")
    op.drop_index("idx_video_feed", table_name="video")
    op.drop_index("idx_video_state_discovered", table_name="video")
    op.drop_index("uq_video_direct_reference", table_name="video")
    op.drop_index("uq_video_feed_source", table_name="video")
    op.drop_table("video")
    op.drop_table("feed")
