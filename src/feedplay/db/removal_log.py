"""Session-level helpers for the bounded removal record.

These run inside a caller's write transaction so that recording a removal
and applying it commit or roll back together.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
import logging

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from .types import Removal, RemovalItem, VideoState

logger = logging.getLogger(__name__)


async def record_removal(
    session: AsyncSession,
    items: Sequence[tuple[int, VideoState]],
    removed_at: datetime,
    capacity: int,
) -> int:
    """Append a removal operation and evict operations beyond ``capacity``.

    Args:
        session: Session with an open write transaction.
        items: ``(video_id, prior_state)`` pairs affected by the operation.
        removed_at: When the removal happened (UTC).
        capacity: Maximum number of operations to retain.

    Returns:
        The id of the new removal operation.
    """
    removal = Removal(removed_at=removed_at)
    session.add(removal)
    await session.flush()
    assert removal.id is not None

    session.add_all(
        RemovalItem(removal_id=removal.id, video_id=video_id, prior_state=prior)
        for video_id, prior in items
    )

    retained = (
        select(Removal.id).order_by(col(Removal.id).desc()).limit(max(capacity, 0))
    )
    result = await session.execute(
        delete(Removal)
        .where(col(Removal.id).not_in(retained))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.debug(
            "Evicted oldest removal records.",
            extra={"evicted": result.rowcount, "capacity": capacity},
        )
    return removal.id


async def evict_expired(
    session: AsyncSession, now: datetime, window: timedelta | None
) -> None:
    """Drop removal operations older than the undo window.

    Args:
        session: Session with an open write transaction.
        now: Current time (UTC).
        window: How long a removal stays undoable; None keeps everything.
    """
    if window is None:
        return
    result = await session.execute(
        delete(Removal)
        .where(col(Removal.removed_at) < now - window)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.debug(
            "Evicted expired removal records.",
            extra={"evicted": result.rowcount, "undo_window": str(window)},
        )


async def pop_latest_removal(
    session: AsyncSession,
) -> tuple[Removal, list[RemovalItem]] | None:
    """Remove and return the most recent removal operation with its items.

    Args:
        session: Session with an open write transaction.

    Returns:
        The operation and its items, or None if the record is empty.
    """
    removal = (
        await session.execute(
            select(Removal).order_by(col(Removal.id).desc()).limit(1)
        )
    ).scalar_one_or_none()
    if removal is None:
        return None

    items = list(
        (
            await session.execute(
                select(RemovalItem).where(col(RemovalItem.removal_id) == removal.id)
            )
        )
        .scalars()
        .all()
    )
    await session.execute(
        delete(Removal)
        .where(col(Removal.id) == removal.id)
        .execution_options(synchronize_session=False)
    )
    return removal, items
