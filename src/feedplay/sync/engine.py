"""Feed synchronization.

This module defines the SyncEngine class, which fetches feeds through their
adapters and merges the results into the video store. Feeds are fetched
concurrently, up to a configured bound, and fan in to a single consumer
that performs the merges one at a time.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
import logging
import time

from ..adapters import AdapterSelector
from ..db import FeedDatabase, VideoDatabase
from ..db.types import CandidateVideo, Feed
from ..exceptions import (
    AdapterError,
    AdapterErrorKind,
    DatabaseOperationError,
    FeedNotFoundError,
    FeedplayError,
)
from .types import FeedSyncResult, RefreshSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _FetchOutcome:
    feed: Feed
    candidates: list[CandidateVideo] | None
    error: AdapterError | None
    started_at: float


class SyncEngine:
    """Fetch feeds and merge their candidates into the store.

    Attributes:
        _feed_db: Database manager for feed records.
        _video_db: Database manager for video records.
        _adapters: Selects the adapter for each feed kind.
        _fetch_timeout: Seconds allowed to drain one feed's adapter.
        _concurrency: Maximum number of feeds fetched at once.
        _reactivate_removed: Whether rediscovered removed videos return to
            AVAILABLE.
    """

    def __init__(
        self,
        feed_db: FeedDatabase,
        video_db: VideoDatabase,
        adapters: AdapterSelector,
        fetch_timeout: float = 3.0,
        concurrency: int = 4,
        reactivate_removed: bool = False,
    ):
        self._feed_db = feed_db
        self._video_db = video_db
        self._adapters = adapters
        self._fetch_timeout = fetch_timeout
        self._concurrency = max(concurrency, 1)
        self._reactivate_removed = reactivate_removed

    async def refresh(self, feed_ids: Sequence[int] | None = None) -> RefreshSummary:
        """Synchronize all feeds, or the given subset.

        Adapter failures and store failures are collected per feed; the
        refresh itself only fails when the requested feeds cannot be read.

        Args:
            feed_ids: Feeds to synchronize. If None, every feed is synchronized.

        Returns:
            Per-feed results in the order the feeds were requested (or in id
            order when refreshing everything).

        Raises:
            FeedNotFoundError: If a requested feed does not exist.
            DatabaseOperationError: If the feeds cannot be read.
        """
        feeds = await self._resolve_feeds(feed_ids)
        log_params = {"num_feeds": len(feeds), "concurrency": self._concurrency}
        logger.info("Starting refresh.", extra=log_params)

        queue: asyncio.Queue[_FetchOutcome | None] = asyncio.Queue()
        semaphore = asyncio.Semaphore(self._concurrency)
        async with asyncio.TaskGroup() as tg:
            merger = tg.create_task(self._merge_consumer(queue))
            async with asyncio.TaskGroup() as fetchers:
                for feed in feeds:
                    fetchers.create_task(self._fetch_feed(feed, semaphore, queue))
            await queue.put(None)

        by_feed = {result.feed_id: result for result in merger.result()}
        summary = RefreshSummary(
            results=[by_feed[feed.id] for feed in feeds if feed.id is not None]
        )
        logger.info(
            "Refresh completed.", extra={**log_params, **summary.summary_dict()}
        )
        return summary

    async def _resolve_feeds(self, feed_ids: Sequence[int] | None) -> list[Feed]:
        if feed_ids is None:
            return await self._feed_db.get_feeds()

        requested = list(dict.fromkeys(feed_ids))
        found = {feed.id: feed for feed in await self._feed_db.get_feeds(requested)}
        for feed_id in requested:
            if feed_id not in found:
                raise FeedNotFoundError("Feed not found.", feed_id=feed_id)
        return [found[feed_id] for feed_id in requested]

    async def _drain(self, feed: Feed) -> list[CandidateVideo]:
        adapter = self._adapters.select(feed.kind)
        async with asyncio.timeout(self._fetch_timeout):
            return [c async for c in adapter.fetch(feed, feed.last_synced_at)]

    async def _fetch_feed(
        self,
        feed: Feed,
        semaphore: asyncio.Semaphore,
        queue: asyncio.Queue[_FetchOutcome | None],
    ) -> None:
        """Drain one feed's adapter and hand the outcome to the merge consumer.

        Never raises (except on cancellation); every failure is wrapped in an
        AdapterError so sibling fetches keep running.
        """
        log_params = {"feed_id": feed.id, "kind": str(feed.kind)}
        async with semaphore:
            started_at = time.monotonic()
            candidates: list[CandidateVideo] | None = None
            error: AdapterError | None = None
            try:
                candidates = await self._drain(feed)
            except AdapterError as e:
                error = e
            except TimeoutError as e:
                error = AdapterError(
                    f"Fetch timed out after {self._fetch_timeout}s.",
                    kind=AdapterErrorKind.NETWORK,
                    feed_id=feed.id,
                )
                error.__cause__ = e
            except Exception as e:
                error = AdapterError(
                    f"Unexpected adapter failure: {e}",
                    kind=AdapterErrorKind.UNKNOWN,
                    feed_id=feed.id,
                )
                error.__cause__ = e

        if error is not None:
            logger.warning("Feed fetch failed.", extra=log_params, exc_info=error)
        else:
            assert candidates is not None
            logger.debug(
                "Feed fetched.",
                extra={**log_params, "num_candidates": len(candidates)},
            )
        await queue.put(_FetchOutcome(feed, candidates, error, started_at))

    async def _merge_consumer(
        self, queue: asyncio.Queue[_FetchOutcome | None]
    ) -> list[FeedSyncResult]:
        results: list[FeedSyncResult] = []
        while (outcome := await queue.get()) is not None:
            results.append(await self._merge_outcome(outcome))
        return results

    async def _merge_outcome(self, outcome: _FetchOutcome) -> FeedSyncResult:
        """Merge one feed's candidates and record the sync status."""
        feed = outcome.feed
        assert feed.id is not None
        result = FeedSyncResult(feed_id=feed.id, label=feed.label)

        if outcome.error is not None:
            result.error = outcome.error
        else:
            assert outcome.candidates is not None
            try:
                result.merge = await self._video_db.merge_videos(
                    feed.id,
                    outcome.candidates,
                    discovered_at=datetime.now(UTC),
                    reactivate_removed=self._reactivate_removed,
                )
            except FeedplayError as e:
                logger.error(
                    "Failed to merge feed candidates.",
                    extra={"feed_id": feed.id},
                    exc_info=e,
                )
                result.error = e

        result.duration_seconds = time.monotonic() - outcome.started_at
        await self._update_feed_sync_status(feed.id, result.error)
        logger.info("Feed synchronized.", extra=result.summary_dict())
        return result

    async def _update_feed_sync_status(
        self, feed_id: int, error: Exception | None
    ) -> None:
        log_params = {"feed_id": feed_id, "sync_success": error is None}
        try:
            if error is None:
                await self._feed_db.mark_sync_success(feed_id)
            else:
                await self._feed_db.mark_sync_failure(feed_id, str(error))
        except (FeedNotFoundError, DatabaseOperationError) as e:
            logger.error(
                "Failed to update feed sync status.",
                extra=log_params,
                exc_info=e,
            )
