from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FetchedContent:
    content: bytes
    headers: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class FetchEvent:
    url: str
    kind: str
    success: bool
    status_code: Optional[int]
    latency_ms: int
    cache_hit: Optional[str] = None
    retries: int = 0
    bytes_saved: int = 0
    error_type: Optional[str] = None


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    total_requests: int
    success_count: int
    disk_cache_hits: int
    object_store_hits: int
    http_429_count: int
    http_404_count: int
    retry_count: int
    bytes_saved: int
    avg_latency_ms: float
    timestamp: float


@dataclass
class BackendCapabilities:
    """Which optional rendering backends and query modules the wiki supports.

    Probed once per run; only the sticky fallback latch on RunContext may
    change backend selection afterwards."""

    mcs_available: bool = True
    parsoid_available: bool = True
    coordinates_available: bool = True


@dataclass
class RunContext:
    """Run-wide backend selection state shared by reference between components."""

    mcs_url: str
    parsoid_url: str
    capabilities: BackendCapabilities = field(default_factory=BackendCapabilities)
    force_fallback: bool = False

    def latch_fallback(self) -> bool:
        """Switch every later article fetch to the fallback backend. Returns True on first latch."""
        if self.force_fallback:
            return False
        self.force_fallback = True
        return True


@dataclass
class ArticleDetail:
    title: str
    ns: int = 0
    revision_id: Optional[int] = None
    timestamp: Optional[str] = None
    coordinates: Optional[str] = None
    thumbnail: Optional[Dict[str, Any]] = None
    categories: Optional[List[Dict[str, Any]]] = None
    sub_categories: Optional[List[Dict[str, Any]]] = None
    redirects: Optional[List[Dict[str, Any]]] = None
    missing: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage, dropping fields the API did not provide."""
        data = asdict(self)
        out: Dict[str, Any] = {}
        for key, value in data.items():
            if value is None or value is False:
                continue
            if key == "ns" and value == 0:
                continue
            out[key] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArticleDetail":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class NamespacePage:
    article_details: Dict[str, ArticleDetail]
    gap_continue: Optional[str]


@dataclass(frozen=True)
class RenderedArticle:
    article_id: str
    data: Any
    used_fallback: bool
