"""Normalization and merging of partial query results.

A paginated query returns the same pages on every continuation page, but each
page only carries the slice of a list-valued property (categories,
coordinates, ...) that the current continuation covers. These helpers turn the
raw `query.pages` shape into a by-title mapping, keep only the properties a
continuation is still delivering, and fold pages together without duplicating
list entries or blanking populated fields.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Iterable, List, Mapping

from .models import ArticleDetail

logger = logging.getLogger(__name__)

# continuation marker (module name or *continue parameter) -> page fields it delivers
CONTINUED_PROPS: Dict[str, List[str]] = {
    "pageimages": ["thumbnail", "pageimage"],
    "picontinue": ["thumbnail", "pageimage"],
    "redirects": ["redirects"],
    "rdcontinue": ["redirects"],
    "coordinates": ["coordinates"],
    "cocontinue": ["coordinates"],
    "categories": ["categories"],
    "clcontinue": ["categories"],
}

# markers that drive pagination without naming a page property
GENERIC_MARKERS = frozenset({"continue", "rawcontinue", "allpages", "gapcontinue"})

ALWAYS_KEPT = ("subCategories",)

QueryPages = Dict[str, Dict[str, Any]]


def normalize_query_pages(query: Mapping[str, Any] | None) -> QueryPages:
    """Key pages by the title as requested (pre-normalization), spaces as underscores."""
    if not query:
        return {}
    normalized = {item["to"]: item["from"] for item in query.get("normalized") or [] if "to" in item}
    pages = query.get("pages") or {}
    if isinstance(pages, Mapping):
        pages = pages.values()

    result: QueryPages = {}
    for page in pages:
        title = page.get("title")
        key = normalized.get(title, title)
        if not isinstance(key, str) or not key:
            logger.warning("Skipping page without a title: %s", page)
            continue
        result[key.replace(" ", "_")] = page
    return result


def strip_non_continued_props(details: QueryPages, continuation: Iterable[str]) -> QueryPages:
    """Keep only the fields still being paginated by `continuation`.

    Unknown continuation markers keep every field so that a module missing
    from CONTINUED_PROPS is not silently dropped.
    """
    keep = set(ALWAYS_KEPT)
    unknown = []
    for marker in continuation:
        if marker in CONTINUED_PROPS:
            keep.update(CONTINUED_PROPS[marker])
        elif marker not in GENERIC_MARKERS:
            unknown.append(marker)

    if unknown:
        logger.warning("Unknown continuation markers %s, keeping all page fields", sorted(unknown))
        return copy.deepcopy(details)

    return {
        article_id: {key: detail[key] for key in keep if detail.get(key)}
        for article_id, detail in details.items()
    }


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def merge_values(current: Any, incoming: Any) -> Any:
    if isinstance(current, dict) and isinstance(incoming, dict):
        merged = dict(current)
        for key, value in incoming.items():
            merged[key] = merge_values(merged[key], value) if key in merged else copy.deepcopy(value)
        return merged
    if isinstance(current, list) and isinstance(incoming, list):
        merged_list = list(current)
        for item in incoming:
            if item not in merged_list:
                merged_list.append(copy.deepcopy(item))
        return merged_list
    if _is_empty(incoming):
        return current
    return copy.deepcopy(incoming)


def merge_details(accumulated: QueryPages | None, page: QueryPages) -> QueryPages:
    """Fold one continuation page into the accumulator. Idempotent."""
    if accumulated is None:
        return copy.deepcopy(page)
    return merge_values(accumulated, page)


def to_article_details(pages: QueryPages) -> Dict[str, ArticleDetail]:
    result: Dict[str, ArticleDetail] = {}
    for key, page in pages.items():
        revisions = page.get("revisions") or []
        coordinates = page.get("coordinates") or []
        rev = revisions[0] if revisions else None
        geo = coordinates[0] if coordinates else None
        result[key] = ArticleDetail(
            title=page.get("title", key),
            ns=int(page.get("ns", 0)),
            revision_id=rev.get("revid") if rev else None,
            timestamp=rev.get("timestamp") if rev else None,
            coordinates=f"{geo['lat']};{geo['lon']}" if geo else None,
            thumbnail=page.get("thumbnail"),
            categories=page.get("categories"),
            sub_categories=page.get("subCategories"),
            redirects=page.get("redirects"),
            missing="missing" in page and page["missing"] is not False,
        )
    return result
