"""add playback position and duration to video.

Revision ID: 8c41f0e2b7d3
Revises: 5b2e9c1d7a40
Create Date: 2026-10-19 18:40:02.918377
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8c41f0e2b7d3"
down_revision: str | Sequence[str] | None = "5b2e9c1d7a40"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

TRIGGER_VIDEOS_UPDATE_UPDATED_AT = "videos_update_updated_at"

_TRIGGER_V1 = f"""
    CREATE TRIGGER IF NOT EXISTS {TRIGGER_VIDEOS_UPDATE_UPDATED_AT}
    AFTER UPDATE OF feed_id, feed_label, title, playable_reference, state,
                    published_at, last_played_at, removed_at ON video
    FOR EACH ROW
    BEGIN
        UPDATE video SET updated_at = (datetime('now')) WHERE id = NEW.id;
    END;
"""

_TRIGGER_V2 = f"""
    CREATE TRIGGER IF NOT EXISTS {TRIGGER_VIDEOS_UPDATE_UPDATED_AT}
    AFTER UPDATE OF feed_id, feed_label, title, playable_reference, state,
                    published_at, last_played_at, removed_at,
                    position_seconds, duration_seconds ON video
    FOR EACH ROW
    BEGIN
        UPDATE video SET updated_at = (datetime('now')) WHERE id = NEW.id;
    END;
"""


def upgrade() -> None:
    """Upgrade schema."""
    op.add_column("video", sa.Column("position_seconds", sa.Float(), nullable=True))
    op.add_column("video", sa.Column("duration_seconds", sa.Float(), nullable=True))
    op.execute(f"DROP TRIGGER IF EXISTS {TRIGGER_VIDEOS_UPDATE_UPDATED_AT};")
    op.execute(_TRIGGER_V2)


def downgrade() -> None:
    """Downgrade schema."""
    op.execute(f"DROP TRIGGER IF EXISTS {TRIGGER_VIDEOS_UPDATE_UPDATED_AT};")
    op.drop_column("video", "duration_seconds")
    op.drop_column("video", "position_seconds")
    op.execute(_TRIGGER_V1)
