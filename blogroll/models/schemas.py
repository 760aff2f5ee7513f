"""Data models for blogroll.

Blogs, sources and items are stored as documents (plain dicts); the
dataclasses here describe what flows between the parser, the adapters and
the sync engine.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceKind(str, Enum):
    """Kinds of configured blog sources."""

    LIST_URL = "list_url"
    LIST_INLINE = "list_inline"
    MIRROR = "mirror"
    REMOTE_DIRECTORY = "remote_directory"


class BlogStatus:
    ACTIVE = "active"
    ERROR = "error"
    DELETED = "deleted"
    INACTIVE = "inactive"
    PENDING = "pending"


class Provenance:
    """Tags recording which adapter created a blog. Manual blogs have None."""

    LIST = "list"
    REMOTE_DIRECTORY = "remote_directory"
    MIRROR = "mirror"
    MIRROR_WEBHOOK = "mirror_webhook"

    @staticmethod
    def is_mirror(value: Optional[str]) -> bool:
        return bool(value) and value.startswith(Provenance.MIRROR)


@dataclass
class ItemContent:
    html: Optional[str] = None
    text: str = ""


@dataclass
class NormalizedItem:
    """A feed entry in the canonical item shape."""

    uid: str
    url: Optional[str]
    title: str
    content: ItemContent
    summary: str
    published: str
    updated: Optional[str] = None
    author: Optional[Dict[str, Any]] = None
    photo: Optional[List[str]] = None
    categories: List[str] = field(default_factory=list)

    def to_document(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NormalizedFeed:
    title: Optional[str]
    description: Optional[str]
    site_url: Optional[str]
    photo: Optional[str]
    author: Optional[Dict[str, Any]]
    items: List[NormalizedItem] = field(default_factory=list)


@dataclass
class CandidateBlog:
    """A blog entry found in a subscription list."""

    title: str
    feed_url: str
    site_url: str = ""
    feed_type: str = "rss"
    category: str = ""
    declared_category: str = ""

    def to_document(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "feed_url": self.feed_url,
            "site_url": self.site_url,
            "feed_type": self.feed_type,
            "category": self.category,
        }


@dataclass
class SyncResult:
    """Outcome of syncing one source or one blog."""

    success: bool
    added: int = 0
    updated: int = 0
    total: int = 0
    orphaned: int = 0
    skipped: int = 0
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "SyncResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "added": self.added,
            "updated": self.updated,
            "total": self.total,
            "orphaned": self.orphaned,
            "skipped": self.skipped,
        }


@dataclass
class BlogUpsertResult:
    upserted: bool = False
    modified: bool = False
    skipped_deleted: bool = False
    skipped_duplicate: bool = False
    blog_id: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_deleted or self.skipped_duplicate


@dataclass
class ItemUpsertResult:
    upserted: bool = False
    modified: bool = False


@dataclass
class StageCounts:
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class RunResult:
    """Outcome of a full sync run."""

    success: bool
    skipped: bool = False
    duration: int = 0  # milliseconds
    sources: StageCounts = field(default_factory=StageCounts)
    blogs: StageCounts = field(default_factory=StageCounts)
    items_added: int = 0
    items_deleted: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.skipped:
            return {"success": False, "skipped": True}
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "duration": self.duration,
            "sources": asdict(self.sources),
            "blogs": asdict(self.blogs),
            "items": {"added": self.items_added, "deleted": self.items_deleted},
        }


@dataclass
class DiscoveredFeed:
    url: str
    type: str
    title: Optional[str] = None


@dataclass
class DiscoveryResult:
    success: bool
    feeds: List[DiscoveredFeed] = field(default_factory=list)
    page_title: Optional[str] = None
    site_url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
