from .adapter_selector import AdapterSelector
from .base_adapter import FeedAdapter
from .feed_urls import feed_url
from .single_item_adapter import SingleItemAdapter
from .syndication_adapter import SyndicationAdapter, parse_feed_document

__all__ = [
    "AdapterSelector",
    "FeedAdapter",
    "SingleItemAdapter",
    "SyndicationAdapter",
    "feed_url",
    "parse_feed_document",
]
