from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_USER_AGENT = "wikifetch/0.1 (offline archive builder)"
ENV_PREFIX = "WIKIFETCH_"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class FetcherConfig:
    """Tunables for the fetch layer and the page query engine.

    speed * requests_per_speed gives the initial in-flight request ceiling.
    local_mcs_url and local_parsoid_url are format strings taking the wiki's
    API host and web host respectively."""

    speed: int = 1
    requests_per_speed: int = 10
    request_timeout: float = 60.0
    user_agent: str = DEFAULT_USER_AGENT
    use_download_cache: bool = False
    download_cache_dir: Optional[str] = None
    no_local_parser_fallback: bool = False
    force_local_parsoid: bool = False
    optimisation_cache_url: Optional[str] = None
    impersonate: Optional[str] = None
    max_retries: int = 7
    backoff_base_seconds: float = 0.1
    backoff_max_seconds: float = 10.0
    throttle_poll_seconds: float = 0.2
    local_mcs_url: str = "http://localhost:6927/{host}/v1/page/mobile-sections/"
    local_parsoid_url: str = "http://localhost:8000/{host}/v3/page/pagebundle/"

    @property
    def initial_ceiling(self) -> int:
        return max(1, self.speed * self.requests_per_speed)

    def validate(self) -> None:
        if self.speed < 1:
            raise ValueError("speed must be >= 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.use_download_cache and not self.download_cache_dir:
            raise ValueError("download_cache_dir is required when use_download_cache is set")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "FetcherConfig":
        """Build a config from WIKIFETCH_* variables; explicit overrides win."""
        env = os.environ if environ is None else environ
        values: dict = {}
        for name, f in cls.__dataclass_fields__.items():
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None:
                continue
            if f.type in ("bool", bool):
                values[name] = _env_bool(raw)
            elif f.type in ("int", int):
                values[name] = int(raw)
            elif f.type in ("float", float):
                values[name] = float(raw)
            else:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(**values)
        config.validate()
        return config
