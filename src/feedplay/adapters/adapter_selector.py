"""Feed adapter selection by feed kind."""

import httpx

from ..db.types import FeedKind
from .base_adapter import FeedAdapter
from .single_item_adapter import SingleItemAdapter
from .syndication_adapter import SyndicationAdapter


class AdapterSelector:
    """Resolve the adapter responsible for a feed kind."""

    def __init__(self, client: httpx.AsyncClient):
        syndication = SyndicationAdapter(client)
        self._adapters: dict[FeedKind, FeedAdapter] = {
            FeedKind.CHANNEL: syndication,
            FeedKind.QUERY: syndication,
            FeedKind.GENERIC: syndication,
            FeedKind.SINGLE_ITEM: SingleItemAdapter(),
        }

    def select(self, kind: FeedKind) -> FeedAdapter:
        """Return the registered adapter for ``kind``."""
        return self._adapters[kind]
