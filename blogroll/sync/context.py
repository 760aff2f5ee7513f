"""Shared state handed to every adapter call."""

from dataclasses import dataclass, field
from typing import Optional

from blogroll.config import SyncOptions
from blogroll.storage.document_store import DocumentStore
from blogroll.storage.mirror import MirrorStore


@dataclass
class SyncContext:
    store: DocumentStore
    options: SyncOptions = field(default_factory=SyncOptions)
    mirror: Optional[MirrorStore] = None
