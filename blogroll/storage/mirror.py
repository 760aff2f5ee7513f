"""Read access to a mirrored subscription service's collections.

The foreign service keeps its own ``<prefix>channels``, ``<prefix>feeds``
and ``<prefix>items`` collections in the same store. blogroll only reads
them and treats their absence as "service not installed".

Expected document shapes (fields not listed are ignored):

    channel: {_id, uid, name, order}
    feed:    {_id, channel_id, url, title, photo, status, last_fetched_at}
    item:    {_id, feed_id, uid, url, name, summary, content{html,text},
              published, updated, author{name,...}, photo[], featured, category[]}
"""

from typing import Any, Dict, Iterable, List, Optional

from blogroll.errors import AdapterUnavailable
from blogroll.storage.document_store import Collection, DocumentStore


DEFAULT_PREFIX = "microsub_"


class MirrorStore:
    """Accessor for the foreign channels/feeds/items collections."""

    def __init__(self, store: DocumentStore, prefix: str = DEFAULT_PREFIX):
        self.store = store
        self.prefix = prefix

    @property
    def channels(self) -> Collection:
        return self.store[f"{self.prefix}channels"]

    @property
    def feeds(self) -> Collection:
        return self.store[f"{self.prefix}feeds"]

    @property
    def items(self) -> Collection:
        return self.store[f"{self.prefix}items"]

    async def is_available(self) -> bool:
        """True if the channels and feeds collections exist."""
        return await self.store.has_collection(self.channels.name) and await self.store.has_collection(
            self.feeds.name
        )

    async def require(self) -> None:
        if not await self.is_available():
            raise AdapterUnavailable(
                "Mirror collections not available. Is the subscription service installed?"
            )

    async def get_channels(self, channel_filter: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"uid": channel_filter} if channel_filter else {}
        return await self.channels.find(query, sort=[("order", 1)])

    async def get_feeds(self, channel_id: str) -> List[Dict[str, Any]]:
        return await self.feeds.find({"channel_id": channel_id})

    async def get_items(
        self, feed_ids: Iterable[str], limit: Optional[int] = None, since: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"feed_id": {"$in": list(feed_ids)}}
        if since:
            query["published"] = {"$gte": since}
        return await self.items.find(query, sort=[("published", -1)], limit=limit)

    async def count_items(self, feed_ids: Iterable[str], since: Optional[str] = None) -> int:
        feed_ids = list(feed_ids)
        if not feed_ids:
            return 0
        query: Dict[str, Any] = {"feed_id": {"$in": feed_ids}}
        if since:
            query["published"] = {"$gte": since}
        return await self.items.count(query)
