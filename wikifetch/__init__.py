"""Content acquisition layer for wiki-to-offline-archive builds.

Fetches article metadata and article/media content from a MediaWiki API
under rate limits, with retries, caching, and resumable bookkeeping.

Key modules:
    fetcher         -- ContentFetcher: throttled, retried JSON and binary fetches
    query           -- PageQueryEngine: continuation-driven article queries
    merge           -- partial-page normalization and merging
    store           -- RedisKvs resumable key-value store
    throttle        -- RequestThrottle for in-flight request admission
    backoff         -- BackoffStrategy and BackoffPolicy for retries
    url_shortener   -- UrlShortener for compact URL keys
    http            -- HttpTransport over requests / curl_cffi
    cache           -- DiskCache for downloaded content
    object_store    -- S3Cache for optimized images
    images          -- ImageCompressor built on Pillow
    metrics         -- FetchMetrics for runtime statistics
    wiki            -- MediaWiki site metadata and URL builders
    models          -- ArticleDetail, RunContext and other dataclasses
    config          -- FetcherConfig
    errors          -- fetch error taxonomy
"""
