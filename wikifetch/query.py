from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote

from .config import FetcherConfig
from .errors import CapabilityProbeError, DatabaseError, FetchError, NotFoundError, RenderBackendError
from .fetcher import ContentFetcher
from .merge import (
    QueryPages,
    merge_details,
    normalize_query_pages,
    strip_non_continued_props,
    to_article_details,
)
from .models import ArticleDetail, BackendCapabilities, NamespacePage, RenderedArticle, RunContext
from .wiki import CATEGORY_NAMESPACE, MediaWiki, to_query_string

logger = logging.getLogger(__name__)

DB_ERROR = "internal_api_error_DBQueryError"

# query-continue module -> request parameter carrying its cursor
QUERY_CONTINUE_PARAMS = (
    ("coordinates", "cocontinue"),
    ("categories", "clcontinue"),
    ("pageimages", "picontinue"),
    ("redirects", "rdcontinue"),
)

Renderer = Callable[[Any, str, Any, bool], List[Any]]


def passthrough_renderer(raw: Any, article_id: str, context: Any, used_fallback: bool) -> List[RenderedArticle]:
    return [RenderedArticle(article_id=article_id, data=raw, used_fallback=used_fallback)]


def _log_event(event: str, **fields: Any) -> None:
    logger.info(json.dumps({"timestamp": time.time(), "event": event, **fields}, ensure_ascii=False))


class PageQueryEngine:
    """Article metadata and article content acquisition for one wiki.

    Metadata queries follow API continuations until none remain, merging the
    partial pages into one record per article. Article content comes from the
    mobile-sections backend, or from the visualeditor backend when mobile
    sections are unavailable, when the article is the main page, or once a
    backend api_error has latched the run onto the fallback.
    """

    def __init__(
        self,
        fetcher: ContentFetcher,
        mw: MediaWiki,
        config: Optional[FetcherConfig] = None,
        run: Optional[RunContext] = None,
        renderer: Renderer = passthrough_renderer,
    ) -> None:
        self.fetcher = fetcher
        self.mw = mw
        self.config = config or fetcher.config
        self.run = run or RunContext(mcs_url=mw.mobile_sections_url, parsoid_url=mw.visual_editor_url)
        self._renderer = renderer

    @property
    def capabilities(self) -> BackendCapabilities:
        return self.run.capabilities

    # Capability probing

    def check_capabilities(self) -> BackendCapabilities:
        caps = self.run.capabilities
        main_page = quote(self.mw.main_page, safe="")

        caps.mcs_available = self._probe_available(f"{self.run.mcs_url}{main_page}", ("lead",), "MCS")
        if not self.config.force_local_parsoid:
            caps.parsoid_available = self._probe_available(
                f"{self.run.parsoid_url}{main_page}", ("visualeditor", "content"), "Parsoid"
            )

        if self.config.no_local_parser_fallback:
            logger.info("Using remote MCS/Parsoid")
        elif not caps.mcs_available or not caps.parsoid_available:
            logger.info("Using local MCS and %s Parsoid", "remote" if caps.parsoid_available else "local")
            self.run.mcs_url = self.config.local_mcs_url.format(host=self.mw.host)
            if not caps.parsoid_available:
                self.run.parsoid_url = self.config.local_parsoid_url.format(host=self.mw.web_host)
        else:
            logger.info("Using REST API")

        resp = self.fetcher.fetch_json(self.mw.api_url + to_query_string(self._article_query_opts()))
        warning = ((resp.get("warnings") or {}).get("query") or {}).get("*") or ""
        if "coordinates" in warning:
            logger.info("Coordinates not available on this wiki")
            caps.coordinates_available = False

        _log_event(
            "capabilities",
            mcs_available=caps.mcs_available,
            parsoid_available=caps.parsoid_available,
            coordinates_available=caps.coordinates_available,
            mcs_url=self.run.mcs_url,
            parsoid_url=self.run.parsoid_url,
        )
        return caps

    def _probe(self, url: str, path: Sequence[str]) -> None:
        try:
            value = self.fetcher.fetch_json(url)
        except FetchError as exc:
            raise CapabilityProbeError(f"Probe request to [{url}] failed: {exc}") from exc
        for key in path:
            value = value.get(key) if isinstance(value, dict) else None
        if not value:
            raise CapabilityProbeError(f"Probe of [{url}] returned no {'.'.join(path)}")

    def _probe_available(self, url: str, path: Sequence[str], name: str) -> bool:
        try:
            self._probe(url, path)
        except CapabilityProbeError as exc:
            logger.warning("Failed to get remote %s: %s", name, exc)
            return False
        return True

    # Metadata queries

    def query(self, query_string: str) -> Any:
        return self.fetcher.fetch_json(f"{self.mw.api_url}{query_string}")

    def _article_query_opts(self, include_pageimages: bool = False) -> Dict[str, str]:
        props = ["redirects", "revisions"]
        if include_pageimages:
            props.append("pageimages")
        if self.capabilities.coordinates_available:
            props.append("coordinates")
        if self.mw.get_categories:
            props.append("categories")
        return {
            "action": "query",
            "format": "json",
            "prop": "|".join(props),
            "rdlimit": "max",
            "rdnamespace": "|".join(str(n) for n in self.mw.mirrored_namespace_ids()),
        }

    def _list_limits(self) -> Dict[str, str]:
        opts: Dict[str, str] = {}
        if self.capabilities.coordinates_available:
            opts["colimit"] = "max"
        if self.mw.get_categories:
            opts["cllimit"] = "max"
            opts["clshow"] = "!hidden"
        return opts

    @staticmethod
    def handle_warnings_and_errors(resp: Dict[str, Any]) -> None:
        if resp.get("warnings"):
            logger.warning("Got warning from MW Query %s", json.dumps(resp["warnings"], indent=2))
        error = resp.get("error")
        if not error:
            return
        if error.get("code") == DB_ERROR:
            raise DatabaseError(f"Got error from MW Query {json.dumps(error, indent=2)}", error=error)
        logger.warning("Got error from MW Query %s", json.dumps(error, indent=2))

    def get_article_details_ids(self, article_ids: Sequence[str], get_thumbnail: bool = False) -> Dict[str, ArticleDetail]:
        continuation: Dict[str, Any] = {}
        result: Optional[QueryPages] = None

        while True:
            opts: Dict[str, Any] = {
                **self._article_query_opts(get_thumbnail),
                "titles": "|".join(article_ids),
                **self._list_limits(),
                **continuation,
            }
            resp = self.fetcher.fetch_json(self.mw.api_url + to_query_string(opts))
            self.handle_warnings_and_errors(resp)

            pages = normalize_query_pages(resp.get("query"))
            if resp.get("continue"):
                continuation = resp["continue"]
                result = merge_details(result, strip_non_continued_props(pages, continuation))
            else:
                if self.mw.get_categories:
                    pages = self._set_article_sub_categories(pages)
                result = merge_details(result, pages)
                break

        return to_article_details(result)

    def get_article_details_ns(self, ns: int, gap_continue: str = "") -> NamespacePage:
        query_continuation: Dict[str, Any] = {}
        result: Optional[QueryPages] = None
        g_cont: Optional[str] = None

        while True:
            opts: Dict[str, Any] = {
                **self._article_query_opts(),
                **self._list_limits(),
                "rawcontinue": "true",
                "generator": "allpages",
                "gapfilterredir": "nonredirects",
                "gaplimit": "max",
                "gapnamespace": str(ns),
                "gapcontinue": gap_continue or "",
            }
            for module, param in QUERY_CONTINUE_PARAMS:
                value = (query_continuation.get(module) or {}).get(param)
                if value is not None:
                    opts[param] = value

            resp = self.fetcher.fetch_json(self.mw.api_url + to_query_string(opts))
            self.handle_warnings_and_errors(resp)

            pages = normalize_query_pages(resp.get("query"))
            query_continue = resp.get("query-continue") or {}
            g_cont = (query_continue.get("allpages") or {}).get("gapcontinue")
            pending = [key for key in query_continue if key != "allpages"]

            if pending:
                query_continuation = query_continue
                result = merge_details(result, strip_non_continued_props(pages, pending))
            else:
                if self.mw.get_categories:
                    pages = self._set_article_sub_categories(pages)
                result = merge_details(result, pages)
                break

        return NamespacePage(article_details=to_article_details(result), gap_continue=g_cont)

    def _set_article_sub_categories(self, pages: QueryPages) -> QueryPages:
        logger.info("Getting subCategories")
        for article_id, detail in pages.items():
            if detail.get("ns") == CATEGORY_NAMESPACE:
                detail["subCategories"] = self.get_sub_categories(article_id)
        return pages

    def get_sub_categories(self, title: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        cont = ""
        while True:
            body = self.fetcher.fetch_json(self.mw.subcategories_api_url(title, cont))
            members = (body.get("query") or {}).get("categorymembers") or []
            items.extend(m for m in members if m and m.get("title"))
            cont = (body.get("continue") or {}).get("cmcontinue")
            if not cont:
                return items

    # Article content

    def use_fallback_for(self, is_main_page: bool, force_fallback: bool = False) -> bool:
        return (
            force_fallback
            or self.run.force_fallback
            or is_main_page
            or not self.capabilities.mcs_available
        )

    def article_url(self, article_id: str, use_fallback: bool) -> str:
        base = self.run.parsoid_url if use_fallback else self.run.mcs_url
        return f"{base}{quote(article_id, safe='')}"

    def get_article(self, article_id: str, context: Any = None, force_fallback: bool = False) -> List[Any]:
        article_id = article_id.replace(" ", "_")
        is_main_page = article_id == self.mw.main_page.replace(" ", "_")
        use_fallback = self.use_fallback_for(is_main_page, force_fallback)
        url = self.article_url(article_id, use_fallback)

        logger.info("Getting article [%s] from %s", article_id, url)
        try:
            body = self.fetcher.fetch_json(url)
            if isinstance(body, dict) and body.get("type") == "api_error":
                if self.run.latch_fallback():
                    _log_event("sticky_fallback", article_id=article_id, url=url)
                    logger.error('Received an "api_error", forcing all article requests to use the fallback backend')
                raise RenderBackendError(f"API Error when scraping [{url}]", url=url)
            return self._renderer(body, article_id, context, use_fallback)
        except NotFoundError:
            raise
        except Exception as exc:
            if use_fallback:
                raise
            logger.warning("Failed to get article [%s] from primary backend, retrying with fallback: %s", article_id, exc)
            return self.get_article(article_id, context, force_fallback=True)
