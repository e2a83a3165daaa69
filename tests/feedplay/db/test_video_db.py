# pyright: reportPrivateUsage=false

"""Tests for the VideoDatabase: merging, lifecycle changes and undo."""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

from helpers.alembic import run_migrations
import pytest
import pytest_asyncio

from feedplay.db import FeedDatabase, VideoDatabase
from feedplay.db.sqlalchemy_core import SqlalchemyCore
from feedplay.db.types import CandidateVideo, FeedKind, MergeSummary, VideoState
from feedplay.exceptions import (
    ConflictError,
    FeedNotFoundError,
    InvalidTransitionError,
    NothingToUndoError,
    ValidationError,
    VideoNotFoundError,
)
from feedplay.feed_descriptor import FeedDescriptor

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

# --- Fixtures ---


@pytest_asyncio.fixture
async def db_core(tmp_path: Path) -> AsyncGenerator[SqlalchemyCore]:
    """Provides a SqlalchemyCore instance for testing."""
    db_path = tmp_path / "feedplay.db"
    run_migrations(db_path)

    core = SqlalchemyCore(db_path)
    yield core
    await core.close()


@pytest_asyncio.fixture
async def feed_db(db_core: SqlalchemyCore) -> FeedDatabase:
    """Provides a FeedDatabase instance for testing."""
    return FeedDatabase(db_core)


@pytest_asyncio.fixture
async def video_db(db_core: SqlalchemyCore) -> VideoDatabase:
    """Provides a VideoDatabase with a small undo history."""
    return VideoDatabase(db_core, undo_history_size=3)


@pytest_asyncio.fixture
async def feed_id(feed_db: FeedDatabase) -> int:
    """Provides the id of a stored generic feed."""
    return await feed_db.upsert_feed(
        FeedDescriptor(
            kind=FeedKind.GENERIC, locator="https://example.com/a.xml", label="A"
        )
    )


def candidate(source_id: str, title: str | None = None) -> CandidateVideo:
    """Build a candidate for ``source_id``."""
    return CandidateVideo(
        source_native_id=source_id,
        title=title or f"Title {source_id}",
        playable_reference=f"https://example.com/{source_id}",
    )


async def video_id_for(video_db: VideoDatabase, feed_id: int, source_id: str) -> int:
    """Look up the live video id for a source id."""
    for state in (None, VideoState.REMOVED):
        for video in await video_db.list_videos(feed_id=feed_id, state=state):
            if video.source_native_id == source_id and video.id is not None:
                return video.id
    raise AssertionError(f"no video for {source_id}")


# --- Tests for merge_videos ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_inserts_new_candidates_as_available(
    video_db: VideoDatabase, feed_id: int
):
    """Unknown candidates become AVAILABLE videos carrying the feed label."""
    summary = await video_db.merge_videos(
        feed_id, [candidate("a1"), candidate("a2")], discovered_at=BASE_TIME
    )

    assert summary == MergeSummary(added=2)
    videos = await video_db.list_videos(feed_id=feed_id)
    assert [v.source_native_id for v in videos] == ["a1", "a2"]
    assert all(v.state == VideoState.AVAILABLE for v in videos)
    assert all(v.feed_label == "A" for v in videos)
    assert all(v.discovered_at == BASE_TIME for v in videos)
    assert all(v.updated_at is not None for v in videos)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_is_idempotent(video_db: VideoDatabase, feed_id: int):
    """Merging the same candidates twice adds nothing the second time."""
    batch = [candidate("a1"), candidate("a2")]
    await video_db.merge_videos(feed_id, batch)

    summary = await video_db.merge_videos(feed_id, batch)

    assert summary == MergeSummary(unchanged=2)
    assert await video_db.count_videos(feed_id=feed_id) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_adds_only_new_and_preserves_states(
    video_db: VideoDatabase, feed_id: int
):
    """A later fetch adds the new item and leaves known videos as they are."""
    await video_db.merge_videos(
        feed_id, [candidate("a1"), candidate("a2")], discovered_at=BASE_TIME
    )
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.ACTIVE)

    summary = await video_db.merge_videos(
        feed_id,
        [candidate("a1"), candidate("a3")],
        discovered_at=BASE_TIME + timedelta(hours=1),
    )

    assert summary.added == 1
    assert summary.unchanged == 1
    videos = await video_db.list_videos(feed_id=feed_id)
    assert [v.source_native_id for v in videos] == ["a3", "a1", "a2"]
    assert (await video_db.get_video_by_id(a1)).state == VideoState.ACTIVE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_counts_repeated_id_in_batch_once(
    video_db: VideoDatabase, feed_id: int
):
    """A source id repeated within one batch is inserted once."""
    summary = await video_db.merge_videos(
        feed_id, [candidate("a1"), candidate("a1", "Other title")]
    )

    assert summary == MergeSummary(added=1, unchanged=1)
    (video,) = await video_db.list_videos(feed_id=feed_id)
    assert video.title == "Title a1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_refreshes_changed_title(video_db: VideoDatabase, feed_id: int):
    """A title changed upstream is picked up without touching state."""
    await video_db.merge_videos(feed_id, [candidate("a1", "Old")])

    summary = await video_db.merge_videos(feed_id, [candidate("a1", "New")])

    assert summary == MergeSummary(unchanged=1, retitled=1)
    (video,) = await video_db.list_videos(feed_id=feed_id)
    assert video.title == "New"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_keeps_removed_videos_removed(
    video_db: VideoDatabase, feed_id: int
):
    """A removed video that reappears in its feed stays removed by default."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.REMOVED)

    summary = await video_db.merge_videos(feed_id, [candidate("a1")])

    assert summary == MergeSummary(unchanged=1)
    assert await video_db.count_videos(feed_id=feed_id) == 0
    assert (await video_db.get_video_by_id(a1)).state == VideoState.REMOVED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_reactivates_removed_when_enabled(
    video_db: VideoDatabase, feed_id: int
):
    """With reactivation on, a rediscovered removed video returns to AVAILABLE."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.REMOVED)

    summary = await video_db.merge_videos(
        feed_id, [candidate("a1")], reactivate_removed=True
    )

    assert summary == MergeSummary(reactivated=1)
    video = await video_db.get_video_by_id(a1)
    assert video.state == VideoState.AVAILABLE
    assert video.removed_at is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_records_duration_once_known(
    video_db: VideoDatabase, feed_id: int
):
    """A duration from the feed is stored, but never overwrites a known one."""
    await video_db.merge_videos(feed_id, [candidate("a1"), candidate("a2")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    a2 = await video_id_for(video_db, feed_id, "a2")
    await video_db.record_playback(a2, duration_seconds=61.0)

    await video_db.merge_videos(
        feed_id,
        [
            CandidateVideo("a1", "Title a1", "https://example.com/a1", None, 120.0),
            CandidateVideo("a2", "Title a2", "https://example.com/a2", None, 999.0),
        ],
    )

    assert (await video_db.get_video_by_id(a1)).duration_seconds == 120.0
    assert (await video_db.get_video_by_id(a2)).duration_seconds == 61.0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_empty_batch(video_db: VideoDatabase, feed_id: int):
    """An empty batch is a successful no-op."""
    summary = await video_db.merge_videos(feed_id, [])

    assert summary == MergeSummary()
    assert summary.total == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_unknown_feed(video_db: VideoDatabase):
    """Merging into an unknown feed raises FeedNotFoundError."""
    with pytest.raises(FeedNotFoundError):
        await video_db.merge_videos(999, [candidate("a1")])


# --- Tests for add_direct_video ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_direct_video(video_db: VideoDatabase):
    """A direct video has no feed and defaults its title to the reference."""
    video = await video_db.add_direct_video("https://example.com/clip.mp4")

    assert video.id is not None
    assert video.feed_id is None
    assert video.is_direct
    assert video.title == "https://example.com/clip.mp4"
    assert video.state == VideoState.ACTIVE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_direct_video_accepts_absolute_path(video_db: VideoDatabase):
    """Absolute filesystem paths are playable references."""
    video = await video_db.add_direct_video(
        "/srv/media/talk.mkv", title="Talk", state=VideoState.AVAILABLE
    )

    assert video.playable_reference == "/srv/media/talk.mkv"
    assert video.title == "Talk"
    assert video.state == VideoState.AVAILABLE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_direct_video_rejects_bad_reference(video_db: VideoDatabase):
    """Relative paths and empty references are rejected."""
    with pytest.raises(ValidationError):
        await video_db.add_direct_video("relative/path.mp4")
    with pytest.raises(ValidationError):
        await video_db.add_direct_video("   ")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_direct_video_rejects_removed_state(video_db: VideoDatabase):
    """A video cannot start out removed."""
    with pytest.raises(ValidationError):
        await video_db.add_direct_video(
            "https://example.com/x", state=VideoState.REMOVED
        )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_direct_video_duplicate_conflicts(video_db: VideoDatabase):
    """Adding the same live reference twice is a conflict."""
    first = await video_db.add_direct_video("https://example.com/x")

    with pytest.raises(ConflictError) as exc_info:
        await video_db.add_direct_video("https://example.com/x")

    assert exc_info.value.video_id == first.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_add_direct_video_after_removal_is_allowed(video_db: VideoDatabase):
    """A removed direct video does not block adding the reference again."""
    first = await video_db.add_direct_video("https://example.com/x")
    assert first.id is not None
    await video_db.set_state(first.id, VideoState.REMOVED)

    second = await video_db.add_direct_video("https://example.com/x")

    assert second.id != first.id


# --- Tests for listing ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_videos_excludes_removed_by_default(
    video_db: VideoDatabase, feed_id: int
):
    """Removed videos are only listed when asked for."""
    await video_db.merge_videos(feed_id, [candidate("a1"), candidate("a2")])
    a2 = await video_id_for(video_db, feed_id, "a2")
    await video_db.set_state(a2, VideoState.REMOVED)

    live = await video_db.list_videos()
    removed = await video_db.list_videos(state=VideoState.REMOVED)

    assert [v.source_native_id for v in live] == ["a1"]
    assert [v.id for v in removed] == [a2]
    assert await video_db.count_videos(state=VideoState.REMOVED) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_videos_by_state(video_db: VideoDatabase, feed_id: int):
    """Filtering by ACTIVE returns only active videos."""
    await video_db.merge_videos(feed_id, [candidate("a1"), candidate("a2")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.ACTIVE)

    active = await video_db.list_videos(state=VideoState.ACTIVE)

    assert [v.id for v in active] == [a1]


# --- Tests for set_state ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_state_round_trip(video_db: VideoDatabase, feed_id: int):
    """AVAILABLE -> ACTIVE -> AVAILABLE is permitted."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")

    active = await video_db.set_state(a1, VideoState.ACTIVE)
    available = await video_db.set_state(a1, VideoState.AVAILABLE)

    assert active.state == VideoState.ACTIVE
    assert available.state == VideoState.AVAILABLE


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_state_same_state_is_noop(video_db: VideoDatabase, feed_id: int):
    """Setting a live video to its current state changes nothing."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")

    video = await video_db.set_state(a1, VideoState.AVAILABLE)

    assert video.state == VideoState.AVAILABLE
    with pytest.raises(NothingToUndoError):
        await video_db.undo_last_removal()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_state_remove_stamps_removed_at(
    video_db: VideoDatabase, feed_id: int
):
    """Removing a video stamps removed_at."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")

    video = await video_db.set_state(a1, VideoState.REMOVED, at=BASE_TIME)

    assert video.state == VideoState.REMOVED
    assert video.removed_at == BASE_TIME


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "target", [VideoState.ACTIVE, VideoState.AVAILABLE, VideoState.REMOVED]
)
async def test_set_state_from_removed_is_rejected(
    video_db: VideoDatabase, feed_id: int, target: VideoState
):
    """Nothing leaves REMOVED except undo."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.REMOVED)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await video_db.set_state(a1, target)

    assert exc_info.value.video_id == a1
    assert exc_info.value.from_state == "REMOVED"
    assert (await video_db.get_video_by_id(a1)).state == VideoState.REMOVED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_state_unknown_video(video_db: VideoDatabase):
    """Unknown videos raise VideoNotFoundError."""
    with pytest.raises(VideoNotFoundError) as exc_info:
        await video_db.set_state(12345, VideoState.ACTIVE)

    assert exc_info.value.video_id == 12345


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_playback_saves_position(video_db: VideoDatabase, feed_id: int):
    """Stopping partway keeps the position and duration; the video stays ACTIVE."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.ACTIVE)

    video = await video_db.record_playback(
        a1, position_seconds=95.5, duration_seconds=600.0
    )

    assert video.state == VideoState.ACTIVE
    assert video.position_seconds == 95.5
    assert video.duration_seconds == 600.0
    assert video.last_played_at is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_playback_finished_leaves_active_list(
    video_db: VideoDatabase, feed_id: int
):
    """A finished video goes back to AVAILABLE and forgets its position."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.ACTIVE)
    await video_db.record_playback(a1, position_seconds=95.5)

    video = await video_db.record_playback(
        a1,
        position_seconds=599.5,
        duration_seconds=600.0,
        finished=True,
        played=True,
        at=BASE_TIME,
    )

    assert video.state == VideoState.AVAILABLE
    assert video.position_seconds is None
    assert video.duration_seconds == 600.0
    assert video.last_played_at == BASE_TIME


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_playback_fills_missing_title(video_db: VideoDatabase):
    """A player-reported title replaces a title that is just the reference."""
    video = await video_db.add_direct_video("https://example.com/x")
    assert video.id is not None

    video = await video_db.record_playback(video.id, title="Real title")
    assert video.title == "Real title"

    video = await video_db.record_playback(video.id, title="Another title")
    assert video.title == "Real title"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_playback_stamps_last_played(video_db: VideoDatabase):
    """played stamps last_played_at; unknown videos raise VideoNotFoundError."""
    video = await video_db.add_direct_video("https://example.com/x")
    assert video.id is not None

    await video_db.record_playback(video.id, played=True, at=BASE_TIME)

    assert (await video_db.get_video_by_id(video.id)).last_played_at == BASE_TIME
    with pytest.raises(VideoNotFoundError):
        await video_db.record_playback(video.id + 100, played=True)


# --- Tests for undo_last_removal ---


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undo_restores_prior_state(video_db: VideoDatabase, feed_id: int):
    """Undo puts a removed video back in the state it had before."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.ACTIVE)
    await video_db.set_state(a1, VideoState.REMOVED)

    (restored,) = await video_db.undo_last_removal()

    assert restored.id == a1
    assert restored.state == VideoState.ACTIVE
    assert restored.removed_at is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undo_is_last_in_first_out(video_db: VideoDatabase, feed_id: int):
    """Undo walks removals back from the most recent."""
    await video_db.merge_videos(feed_id, [candidate("a1"), candidate("a2")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    a2 = await video_id_for(video_db, feed_id, "a2")
    await video_db.set_state(a1, VideoState.REMOVED)
    await video_db.set_state(a2, VideoState.REMOVED)

    first = await video_db.undo_last_removal()
    second = await video_db.undo_last_removal()

    assert [v.id for v in first] == [a2]
    assert [v.id for v in second] == [a1]
    with pytest.raises(NothingToUndoError):
        await video_db.undo_last_removal()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undo_history_is_bounded(video_db: VideoDatabase, feed_id: int):
    """Only the most recent removals, up to the history size, can be undone."""
    ids = [f"a{n}" for n in range(5)]
    await video_db.merge_videos(feed_id, [candidate(i) for i in ids])
    video_ids = [await video_id_for(video_db, feed_id, i) for i in ids]
    for video_id in video_ids:
        await video_db.set_state(video_id, VideoState.REMOVED)

    undone = [(await video_db.undo_last_removal())[0].id for _ in range(3)]

    assert undone == list(reversed(video_ids[-3:]))
    with pytest.raises(NothingToUndoError):
        await video_db.undo_last_removal()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undo_respects_window(video_db: VideoDatabase, feed_id: int):
    """Removals older than the undo window are gone."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await video_db.set_state(a1, VideoState.REMOVED, at=BASE_TIME)

    with pytest.raises(NothingToUndoError):
        await video_db.undo_last_removal(
            now=BASE_TIME + timedelta(hours=2), window=timedelta(hours=1)
        )

    assert (await video_db.get_video_by_id(a1)).state == VideoState.REMOVED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undo_skips_reactivated_videos(video_db: VideoDatabase, feed_id: int):
    """A removal whose video already came back is discarded in favour of older ones."""
    await video_db.merge_videos(feed_id, [candidate("a1"), candidate("a2")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    a2 = await video_id_for(video_db, feed_id, "a2")
    await video_db.set_state(a1, VideoState.REMOVED)
    await video_db.set_state(a2, VideoState.REMOVED)
    await video_db.merge_videos(feed_id, [candidate("a2")], reactivate_removed=True)

    restored = await video_db.undo_last_removal()

    assert [v.id for v in restored] == [a1]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undo_skips_direct_video_with_live_duplicate(video_db: VideoDatabase):
    """Undo does not resurrect a direct video that was added again meanwhile."""
    first = await video_db.add_direct_video("https://example.com/x")
    assert first.id is not None
    await video_db.set_state(first.id, VideoState.REMOVED)
    await video_db.add_direct_video("https://example.com/x")

    with pytest.raises(NothingToUndoError):
        await video_db.undo_last_removal()

    assert (await video_db.get_video_by_id(first.id)).state == VideoState.REMOVED


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undo_with_empty_history(video_db: VideoDatabase):
    """Undo with nothing recorded raises NothingToUndoError."""
    with pytest.raises(NothingToUndoError):
        await video_db.undo_last_removal()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_undo_skips_orphaned_feed_video_with_live_duplicate(
    video_db: VideoDatabase, feed_db: FeedDatabase, feed_id: int
):
    """Videos orphaned by a feed deletion are checked like direct videos on undo."""
    await video_db.merge_videos(feed_id, [candidate("a1")])
    a1 = await video_id_for(video_db, feed_id, "a1")
    await feed_db.remove_feed(feed_id, cascade=True)
    orphan = await video_db.get_video_by_id(a1)
    assert orphan.feed_id is None
    assert orphan.source_native_id == "a1"
    assert orphan.is_direct

    await video_db.add_direct_video("https://example.com/a1")

    with pytest.raises(NothingToUndoError):
        await video_db.undo_last_removal()

    assert (await video_db.get_video_by_id(a1)).state == VideoState.REMOVED
