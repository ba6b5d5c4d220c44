from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from wikifetch.config import FetcherConfig
from wikifetch.fetcher import ContentFetcher
from wikifetch.query import PageQueryEngine
from wikifetch.store import RedisKvs
from wikifetch.wiki import MediaWiki

ARTICLE_DETAIL_TABLE = "articleDetail"
PROGRESS_TABLE = "progress"

logger = logging.getLogger("wikifetch")


def _build_engine(args: argparse.Namespace) -> PageQueryEngine:
    config = FetcherConfig.from_env(
        speed=args.speed,
        request_timeout=args.timeout,
        use_download_cache=bool(args.cache_dir) or None,
        download_cache_dir=args.cache_dir,
        optimisation_cache_url=args.optimisation_cache_url,
        impersonate=args.impersonate,
        no_local_parser_fallback=args.no_local_parser_fallback or None,
        force_local_parsoid=args.force_local_parsoid or None,
    )
    fetcher = ContentFetcher(config)
    mw = MediaWiki(base=args.mw_url, api_path=args.api_path, get_categories=args.categories)
    mw.load_metadata(fetcher)
    engine = PageQueryEngine(fetcher, mw)
    engine.check_capabilities()
    return engine


def dump_titles(engine: PageQueryEngine, titles: list[str]) -> None:
    details = engine.get_article_details_ids(titles, get_thumbnail=True)
    for key, detail in details.items():
        print(json.dumps({"id": key, **detail.to_dict()}, ensure_ascii=False))


def walk_namespace(engine: PageQueryEngine, ns: int, redis_url: str, limit: Optional[int]) -> int:
    """Store every article of ns in Redis, resuming from the last saved gapcontinue."""
    details_store: RedisKvs = RedisKvs.from_url(redis_url, ARTICLE_DETAIL_TABLE)
    progress: RedisKvs = RedisKvs.from_url(redis_url, PROGRESS_TABLE)
    progress_key = f"gapcontinue:{ns}"

    gap_continue = (progress.get(progress_key) or {}).get("gapcontinue", "")
    if gap_continue:
        logger.info("Resuming namespace %d from [%s]", ns, gap_continue)

    stored = 0
    while True:
        page = engine.get_article_details_ns(ns, gap_continue)
        details_store.set_many({key: detail.to_dict() for key, detail in page.article_details.items()})
        stored += len(page.article_details)
        if not page.gap_continue:
            progress.delete(progress_key)
            break
        gap_continue = page.gap_continue
        progress.set(progress_key, {"gapcontinue": gap_continue})
        if limit is not None and stored >= limit:
            break

    logger.info("Stored %d article details for namespace %d (table size %d)", stored, ns, details_store.len())
    return stored


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch article metadata from a MediaWiki API")
    parser.add_argument("--mw-url", required=True, help="Wiki base URL, e.g. https://en.wikipedia.org/")
    parser.add_argument("--api-path", default="w/api.php", help="API path relative to the base URL")
    parser.add_argument("--titles", nargs="+", help="Print merged details for these titles as JSON lines")
    parser.add_argument("--namespace", type=int, help="Walk this namespace into Redis")
    parser.add_argument("--redis", default="redis://localhost:6379/0", help="Redis URL for --namespace")
    parser.add_argument("--limit", type=int, default=None, help="Stop a namespace walk after this many articles")
    parser.add_argument("--categories", action="store_true", help="Fetch categories and subcategories")

    parser.add_argument("--speed", type=int, default=1, help="Concurrency multiplier (ceiling = speed * 10)")
    parser.add_argument("--timeout", type=float, default=60.0, help="Per-request timeout in seconds")
    parser.add_argument("--cache-dir", default=None, help="Enable the download cache in this directory")
    parser.add_argument("--optimisation-cache-url", default=None, help="S3 URL of the optimized image cache")
    parser.add_argument("--impersonate", default=None, help="curl_cffi browser profile, e.g. chrome120")
    parser.add_argument("--no-local-parser-fallback", action="store_true")
    parser.add_argument("--force-local-parsoid", action="store_true")
    parser.add_argument("--log-level", default="INFO")

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not args.titles and args.namespace is None:
        print("Nothing to do. Use --titles or --namespace.")
        return 1

    engine = _build_engine(args)
    if args.titles:
        dump_titles(engine, args.titles)
    if args.namespace is not None:
        walk_namespace(engine, args.namespace, args.redis, args.limit)

    snap = engine.fetcher.metrics.snapshot(window_secs=3600)
    print(
        f"\nDONE: requests={snap.total_requests} success={snap.success_count} "
        f"retries={snap.retry_count} http_429={snap.http_429_count} limit={engine.fetcher.throttle.limit}",
        file=sys.stderr,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
