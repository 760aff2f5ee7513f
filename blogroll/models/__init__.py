"""Data models for blogroll."""

from .schemas import (
    BlogStatus,
    BlogUpsertResult,
    CandidateBlog,
    DiscoveredFeed,
    DiscoveryResult,
    ItemContent,
    ItemUpsertResult,
    NormalizedFeed,
    NormalizedItem,
    Provenance,
    RunResult,
    SourceKind,
    StageCounts,
    SyncResult,
)

__all__ = [
    "BlogStatus",
    "BlogUpsertResult",
    "CandidateBlog",
    "DiscoveredFeed",
    "DiscoveryResult",
    "ItemContent",
    "ItemUpsertResult",
    "NormalizedFeed",
    "NormalizedItem",
    "Provenance",
    "RunResult",
    "SourceKind",
    "StageCounts",
    "SyncResult",
]
