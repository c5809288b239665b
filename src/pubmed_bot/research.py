from __future__ import annotations

import logging
from typing import List, Tuple

from .cache import ResultCache
from .observability import observe_cache_lookup
from .pubmed_client import PubMedClient
from .schemas import ArticleRecord, SearchQuery, SearchResult


logger = logging.getLogger(__name__)


class ResearchService:
    """Serves searches from the result cache, falling back to PubMed."""

    def __init__(self, client: PubMedClient, cache: ResultCache) -> None:
        self._client = client
        self._cache = cache

    async def search(self, query: SearchQuery) -> SearchResult:
        result, _ = await self.lookup(query)
        return result

    async def lookup(self, query: SearchQuery) -> Tuple[SearchResult, bool]:
        key = query.cache_key()
        cached = self._from_cache(key)
        observe_cache_lookup(cached is not None)
        if cached is not None:
            logger.debug("research cache hit key=%r articles=%s", key, len(cached.articles))
            return cached, True

        result = await self._client.search(query)
        self._cache.put_query(
            key,
            result.ids,
            total=result.total,
            article_ids=[article.pmid for article in result.articles],
        )
        for article in result.articles:
            self._cache.put_article(article)
        return result, False

    def _from_cache(self, key: str) -> SearchResult | None:
        entry = self._cache.get_query(key)
        if entry is None:
            return None
        articles: List[ArticleRecord] = []
        for pmid in entry.article_ids:
            article = self._cache.get_article(pmid)
            if article is None:
                # article cache was cleared separately
                return None
            articles.append(article)
        return SearchResult(articles=articles, total=entry.total, ids=entry.ids)
