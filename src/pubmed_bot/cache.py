from __future__ import annotations

import time
from typing import Callable, Dict, List, NamedTuple, Tuple

from .schemas import ArticleRecord

DEFAULT_QUERY_TTL_SECONDS = 24 * 60 * 60


class CachedQuery(NamedTuple):
    ids: List[str]
    total: int
    article_ids: List[str]


class ResultCache:
    """In-memory cache of query id lists (with TTL) and articles (no expiry).

    Not safe for concurrent writers on multiple threads; the service only
    touches it from the event loop.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_QUERY_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._queries: Dict[str, Tuple[float, CachedQuery]] = {}
        self._articles: Dict[str, ArticleRecord] = {}

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @property
    def query_count(self) -> int:
        return len(self._queries)

    @property
    def article_count(self) -> int:
        return len(self._articles)

    def put_query(
        self,
        key: str,
        ids: List[str],
        total: int | None = None,
        article_ids: List[str] | None = None,
    ) -> None:
        """Store the discovered ids for a query.

        ``total`` defaults to ``len(ids)`` and ``article_ids`` (the ids that
        produced an article) defaults to ``ids``.
        """
        entry = CachedQuery(
            ids=list(ids),
            total=len(ids) if total is None else total,
            article_ids=list(ids if article_ids is None else article_ids),
        )
        self._queries[key] = (self._clock(), entry)

    def get_query(self, key: str) -> CachedQuery | None:
        stored = self._queries.get(key)
        if stored is None:
            return None
        created_at, entry = stored
        if self._clock() - created_at > self._ttl_seconds:
            self._queries.pop(key, None)
            return None
        return CachedQuery(list(entry.ids), entry.total, list(entry.article_ids))

    def get_query_ids(self, key: str) -> List[str] | None:
        entry = self.get_query(key)
        return entry.ids if entry is not None else None

    def put_article(self, article: ArticleRecord) -> None:
        self._articles[article.pmid] = article

    def get_article(self, pmid: str) -> ArticleRecord | None:
        return self._articles.get(pmid)

    def clear(self) -> None:
        self._queries.clear()
        self._articles.clear()
