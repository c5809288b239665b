from __future__ import annotations

import os
import re
from dataclasses import dataclass

from .errors import ConfigError


_API_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

MAX_RESULTS_CAP = 100
MAX_REQUESTS_PER_SECOND = 10
MAX_RETRIES_CAP = 5


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_str(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    pubmed_api_key: str | None = _env_str("PUBMED_API_KEY")
    pubmed_base_url: str = os.getenv(
        "PUBMED_BASE_URL", "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
    )

    max_results: int = _env_int("PUBMED_MAX_RESULTS", 10)
    cache_duration_seconds: int = _env_int("PUBMED_CACHE_DURATION", 3600)

    requests_per_second: int = _env_int("PUBMED_REQUESTS_PER_SECOND", 3)
    max_retries: int = _env_int("PUBMED_MAX_RETRIES", 3)
    retry_base_delay: float = _env_float("PUBMED_RETRY_BASE_DELAY", 1.0)
    request_timeout: float = _env_float("PUBMED_REQUEST_TIMEOUT", 10.0)

    mention_capacity: int = _env_int("MENTION_CAPACITY", 1000)
    mention_retention_seconds: int = _env_int("MENTION_RETENTION_SECONDS", 7 * 24 * 60 * 60)
    mention_sweep_interval_seconds: int = _env_int(
        "MENTION_SWEEP_INTERVAL_SECONDS", 24 * 60 * 60
    )

    post_interval_seconds: int = _env_int("RESEARCH_POST_INTERVAL_SECONDS", 0)
    poster_base_url: str | None = _env_str("POSTER_BASE_URL")
    poster_token: str | None = _env_str("POSTER_TOKEN")

    def validate(self) -> "Settings":
        problems: list[str] = []
        if self.pubmed_api_key is not None and not _API_KEY_PATTERN.match(self.pubmed_api_key):
            problems.append(
                "pubmed_api_key: must only contain letters, numbers, underscores, and hyphens"
            )
        if not 1 <= self.max_results <= MAX_RESULTS_CAP:
            problems.append(f"max_results: must be between 1 and {MAX_RESULTS_CAP}")
        if self.cache_duration_seconds < 0:
            problems.append("cache_duration_seconds: must be non-negative")
        if not 1 <= self.requests_per_second <= MAX_REQUESTS_PER_SECOND:
            problems.append(
                f"requests_per_second: must be between 1 and {MAX_REQUESTS_PER_SECOND}"
            )
        if not 1 <= self.max_retries <= MAX_RETRIES_CAP:
            problems.append(f"max_retries: must be between 1 and {MAX_RETRIES_CAP}")
        if self.retry_base_delay <= 0:
            problems.append("retry_base_delay: must be positive")
        if self.request_timeout <= 0:
            problems.append("request_timeout: must be positive")
        if self.mention_capacity < 1:
            problems.append("mention_capacity: must be at least 1")
        if self.mention_retention_seconds <= 0:
            problems.append("mention_retention_seconds: must be positive")
        if self.mention_sweep_interval_seconds <= 0:
            problems.append("mention_sweep_interval_seconds: must be positive")
        if self.post_interval_seconds < 0:
            problems.append("post_interval_seconds: must be non-negative")
        if problems:
            raise ConfigError("Invalid configuration:\n" + "\n".join(problems))
        return self
