from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from urllib.parse import quote, urlencode, urlsplit

if TYPE_CHECKING:
    from .fetcher import ContentFetcher

logger = logging.getLogger(__name__)

CATEGORY_NAMESPACE = 14


def to_query_string(params: Dict[str, Any]) -> str:
    """URL-encode params in insertion order, spaces as %20."""
    return urlencode({k: str(v) for k, v in params.items()}, quote_via=quote)


@dataclass
class Namespace:
    num: int
    allowed_subpages: bool = False
    is_content: bool = False


@dataclass
class MediaWiki:
    """Site metadata and URL builders for one wiki.

    `base` is the wiki root with a trailing slash, e.g. https://en.wikipedia.org/.
    """

    base: str
    api_path: str = "w/api.php"
    wiki_path: str = "wiki/"
    main_page: str = ""
    namespaces: Dict[str, Namespace] = field(default_factory=dict)
    namespaces_to_mirror: List[str] = field(default_factory=list)
    get_categories: bool = False

    def __post_init__(self) -> None:
        if not self.base.endswith("/"):
            self.base += "/"

    @property
    def api_url(self) -> str:
        return f"{self.base}{self.api_path}?"

    @property
    def web_url(self) -> str:
        return f"{self.base}{self.wiki_path}"

    @property
    def host(self) -> str:
        return urlsplit(self.base).netloc

    @property
    def web_host(self) -> str:
        return urlsplit(self.web_url).netloc

    @property
    def mobile_sections_url(self) -> str:
        return f"{self.base}api/rest_v1/page/mobile-sections/"

    @property
    def visual_editor_url(self) -> str:
        return f"{self.api_url}action=visualeditor&mobileformat=html&format=json&paction=parse&page="

    def mirrored_namespace_ids(self) -> List[int]:
        ids = [self.namespaces[name].num for name in self.namespaces_to_mirror if name in self.namespaces]
        return list(dict.fromkeys(ids))

    def subcategories_api_url(self, title: str, cont: str = "") -> str:
        return self.api_url + to_query_string(
            {
                "action": "query",
                "list": "categorymembers",
                "cmtype": "subcat",
                "cmlimit": "max",
                "format": "json",
                "cmtitle": title,
                "cmcontinue": cont,
            }
        )

    def site_info_url(self) -> str:
        return self.api_url + to_query_string(
            {"action": "query", "meta": "siteinfo", "siprop": "general|namespaces", "format": "json"}
        )

    def load_metadata(self, fetcher: "ContentFetcher") -> None:
        """Fill main page and namespace table from the siteinfo API."""
        body = fetcher.fetch_json(self.site_info_url())
        query = body.get("query") or {}
        general = query.get("general") or {}
        self.main_page = (general.get("mainpage") or self.main_page).replace(" ", "_")

        namespaces: Dict[str, Namespace] = {}
        for entry in (query.get("namespaces") or {}).values():
            num = int(entry["id"])
            if num < 0:
                continue
            name = entry.get("*") or entry.get("name") or ""
            ns = Namespace(
                num=num,
                allowed_subpages="subpages" in entry,
                is_content="content" in entry,
            )
            namespaces[name] = ns
            canonical = entry.get("canonical")
            if canonical and canonical not in namespaces:
                namespaces[canonical] = ns
        self.namespaces = namespaces
        if not self.namespaces_to_mirror:
            self.namespaces_to_mirror = sorted(
                {name for name, ns in namespaces.items() if ns.is_content},
                key=lambda n: namespaces[n].num,
            )
        logger.info("Loaded metadata for [%s]: main page [%s], %d namespaces", self.base, self.main_page, len(namespaces))

    def namespace_id(self, name: str) -> Optional[int]:
        ns = self.namespaces.get(name)
        return ns.num if ns else None
