from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, List, Tuple

import httpx
from pydantic import ValidationError as PydanticValidationError

from .errors import (
    APIError,
    ConfigError,
    ErrorCode,
    ParseError,
    RateLimitError,
    RequestTimeoutError,
    TransientError,
    ValidationError,
)
from .observability import observe_pubmed_call, observe_pubmed_retry
from .rate_limiter import RateLimiter
from .schemas import PUBMED_ARTICLE_URL, ArticleRecord, SearchQuery, SearchResult


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0

_SORT_PARAMS = {"relevance": "relevance", "date": "pub_date"}
_YEAR = re.compile(r"\d{4}")
_DOI_IN_LOCATION = re.compile(r"doi:\s*(\S+)", re.IGNORECASE)
_LEADING_LABEL = re.compile(r"^\s*[A-Za-z]+:\s*")


class PubMedClient:
    """Two-phase E-utilities client: esearch for ids, then one batched esummary.

    Every remote call, retries included, first takes a slot from the shared
    rate limiter.
    """

    def __init__(
        self,
        api_key: str | None,
        rate_limiter: RateLimiter,
        base_url: str = DEFAULT_BASE_URL,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._rate_limiter = rate_limiter
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._timeout = timeout
        self._transport = transport

    async def search(self, query: SearchQuery) -> SearchResult:
        api_key = self._require_api_key()
        if not query.term.strip():
            raise ValidationError("Search query is required")

        ids, total = await self._esearch(query, api_key)
        if not ids:
            logger.info("PubMed search returned no ids term=%r", query.term)
            return SearchResult(articles=[], total=0, ids=[])

        articles = await self._esummary(ids, api_key)
        if len(articles) < len(ids):
            logger.warning(
                "PubMed summary dropped entries term=%r requested=%s returned=%s",
                query.term,
                len(ids),
                len(articles),
            )
        return SearchResult(articles=articles, total=total, ids=ids)

    def _require_api_key(self) -> str:
        api_key = (self._api_key or "").strip()
        if not api_key:
            raise ConfigError("PubMed API key is not configured")
        return api_key

    async def _esearch(self, query: SearchQuery, api_key: str) -> Tuple[List[str], int]:
        params = {
            "db": "pubmed",
            "term": query.term,
            "retmax": str(query.max_results),
            "retmode": "json",
            "sort": _SORT_PARAMS[query.sort],
            "api_key": api_key,
        }
        if query.from_date or query.to_date:
            params["datetype"] = "pdat"
            if query.from_date:
                params["mindate"] = query.from_date.strftime("%Y/%m/%d")
            if query.to_date:
                params["maxdate"] = query.to_date.strftime("%Y/%m/%d")

        data = await self._get("esearch.fcgi", params)
        if isinstance(data.get("error"), str):
            raise APIError(f"PubMed search error: {data['error']}")
        result = data.get("esearchresult")
        if not isinstance(result, dict):
            raise ParseError("PubMed search response is missing esearchresult")
        error = result.get("ERROR")
        if error:
            raise APIError(f"PubMed search error: {error}")

        raw_ids = result.get("idlist")
        if raw_ids is None:
            raw_ids = []
        if not isinstance(raw_ids, list):
            raise ParseError("PubMed search idlist is not a list")
        ids = [str(item).strip() for item in raw_ids if str(item).strip()]
        ids = ids[: query.max_results]
        if not ids:
            return [], 0
        total = _coerce_int(result.get("count"))
        return ids, total if total is not None else len(ids)

    async def _esummary(self, ids: List[str], api_key: str) -> List[ArticleRecord]:
        params = {
            "db": "pubmed",
            "id": ",".join(ids),
            "retmode": "json",
            "api_key": api_key,
        }
        data = await self._get("esummary.fcgi", params)
        if isinstance(data.get("error"), str):
            raise APIError(f"PubMed summary error: {data['error']}")
        summary = data.get("result")
        if not isinstance(summary, dict):
            raise ParseError("PubMed summary response is missing result")

        articles: List[ArticleRecord] = []
        for pmid in ids:
            item = summary.get(pmid)
            if not isinstance(item, dict) or item.get("error"):
                logger.debug("PubMed summary missing entry pmid=%s", pmid)
                continue
            try:
                articles.append(_to_article(pmid, item))
            except (PydanticValidationError, ValueError, TypeError) as exc:
                logger.debug("PubMed summary malformed entry pmid=%s error=%s", pmid, exc)
        return articles

    async def _get(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        endpoint = path.split(".", 1)[0]
        last_error: TransientError | None = None
        for attempt in range(self._max_retries + 1):
            if last_error is not None:
                delay = self._retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "PubMed retry path=%s attempt=%s/%s delay=%.3f reason=%s",
                    path,
                    attempt,
                    self._max_retries,
                    delay,
                    last_error.code.value,
                )
                observe_pubmed_retry(endpoint, last_error.code.value.lower())
                await asyncio.sleep(delay)
            try:
                data = await self._request(path, params)
            except TransientError as exc:
                observe_pubmed_call(endpoint, "transient")
                last_error = exc
                continue
            except Exception:
                observe_pubmed_call(endpoint, "error")
                raise
            observe_pubmed_call(endpoint, "ok")
            return data

        raise APIError(
            f"PubMed request failed after {self._max_retries + 1} attempts",
            cause=last_error,
        ) from last_error

    async def _request(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        await self._rate_limiter.acquire()
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.get(f"{self._base_url}/{path}", params=params)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                logger.warning(
                    "PubMed HTTP error path=%s status=%s retry_after=%s term=%r body=%r",
                    path,
                    status,
                    exc.response.headers.get("Retry-After"),
                    params.get("term"),
                    _truncate(exc.response.text),
                )
                if status == 429:
                    raise RateLimitError("PubMed rate limit exceeded", cause=exc) from exc
                raise APIError(f"PubMed request failed with status {status}", cause=exc) from exc
            except httpx.TimeoutException as exc:
                logger.warning(
                    "PubMed timeout path=%s term=%r error=%s", path, params.get("term"), str(exc)
                )
                raise RequestTimeoutError("PubMed request timed out", cause=exc) from exc
            except httpx.RequestError as exc:
                logger.warning(
                    "PubMed request error path=%s term=%r error_type=%s error=%s",
                    path,
                    params.get("term"),
                    type(exc).__name__,
                    str(exc),
                )
                raise APIError(
                    "PubMed request failed", code=ErrorCode.NETWORK_ERROR, cause=exc
                ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(f"PubMed {path} returned invalid JSON", cause=exc) from exc
        if not isinstance(data, dict):
            raise ParseError(f"PubMed {path} returned unexpected payload")
        return data


def _to_article(pmid: str, item: dict[str, Any]) -> ArticleRecord:
    year = _parse_year(item.get("pubdate") or item.get("epubdate") or item.get("sortpubdate"))
    if year is None:
        raise ValueError("publication date has no year")
    return ArticleRecord(
        pmid=pmid,
        title=_coerce_str(item.get("title")) or "",
        abstract=_coerce_str(item.get("abstract")),
        authors=_extract_authors(item.get("authors")),
        journal=_coerce_str(item.get("fulljournalname")) or _coerce_str(item.get("source")) or "",
        year=year,
        url=PUBMED_ARTICLE_URL.format(pmid=pmid),
        doi=_extract_doi(item),
    )


def _parse_year(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    match = _YEAR.search(value)
    return match.group(0) if match else None


def _extract_authors(value: object) -> List[str]:
    if not isinstance(value, list):
        return []
    names: List[str] = []
    for author in value:
        if isinstance(author, dict):
            name = _coerce_str(author.get("name"))
        else:
            name = _coerce_str(author)
        if name:
            names.append(name)
    return names


def _extract_doi(item: dict[str, Any]) -> str | None:
    location = _coerce_str(item.get("elocationid"))
    if location:
        match = _DOI_IN_LOCATION.search(location)
        if match:
            return match.group(1).rstrip(".")
    article_ids = item.get("articleids")
    if not isinstance(article_ids, list):
        article_ids = []
    for article_id in article_ids:
        if isinstance(article_id, dict) and article_id.get("idtype") == "doi":
            doi = _coerce_str(article_id.get("value"))
            if doi:
                return doi
    if location:
        return _strip_label(location)
    return None


def _strip_label(value: str) -> str | None:
    stripped = _LEADING_LABEL.sub("", value, count=1).strip()
    return stripped or None


def _coerce_str(value: object) -> str | None:
    if isinstance(value, str):
        cleaned = value.strip()
        return cleaned or None
    return None


def _coerce_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _truncate(value: str, limit: int = 500) -> str:
    if len(value) <= limit:
        return value
    return f"{value[:limit]}...<truncated>"
