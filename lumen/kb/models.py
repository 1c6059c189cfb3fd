"""Data types for KB operations."""
from __future__ import annotations

import enum
import time
import uuid
from dataclasses import dataclass, field
from typing import Any


class KBStatus(enum.Enum):
    DISABLED = "disabled"  # no usable vector store
    DEGRADED = "degraded"  # store usable, no embedding provider
    READY = "ready"


class StoreState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISABLED = "disabled"


@dataclass(frozen=True)
class KnowledgeEntry:
    """A chunk persisted in the vector store."""
    vector: list[float]
    title: str
    content: str
    source: str = "manual"
    language: str = "en"
    author: str | None = None
    ts: int = field(default_factory=lambda: int(time.time() * 1000))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "source": self.source,
            "language": self.language,
            "author": self.author,
            "ts": self.ts,
        }


@dataclass(frozen=True)
class SearchHit:
    score: float
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.payload.get("title") or "(no title)"

    @property
    def content(self) -> str:
        return self.payload.get("content") or ""

    @property
    def source(self) -> str:
        return self.payload.get("source") or "unknown"


@dataclass(frozen=True)
class Document:
    title: str
    text: str
    source: str = "manual"
    language: str = "en"
    author: str | None = None


@dataclass(frozen=True)
class AddResult:
    ok: bool
    chunk_count: int
    error: Exception | None = None
