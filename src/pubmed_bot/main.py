from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, HTTPException

from .actions import MentionHandler
from .cache import ResultCache
from .config import Settings
from .errors import APIError, ConfigError, ParseError, ValidationError
from .mention_ledger import MentionLedger
from .observability import configure_logging, metrics_response, observability_middleware
from .poster import HttpPoster, LogPoster, Poster
from .pubmed_client import PubMedClient
from .rate_limiter import RateLimiter
from .research import ResearchService
from .scheduler import ResearchScheduler
from .schemas import (
    HealthResponse,
    MentionOutcome,
    MentionRequest,
    SearchQuery,
    SearchResponse,
)


settings = Settings().validate()

rate_limiter = RateLimiter(max_requests=settings.requests_per_second, window_seconds=1.0)
cache = ResultCache(ttl_seconds=settings.cache_duration_seconds)
ledger = MentionLedger(
    capacity=settings.mention_capacity,
    retention_seconds=settings.mention_retention_seconds,
    sweep_interval_seconds=settings.mention_sweep_interval_seconds,
)
pubmed_client = PubMedClient(
    api_key=settings.pubmed_api_key,
    rate_limiter=rate_limiter,
    base_url=settings.pubmed_base_url,
    max_retries=settings.max_retries,
    retry_base_delay=settings.retry_base_delay,
    timeout=settings.request_timeout,
)
research = ResearchService(pubmed_client, cache)

poster: Poster
if settings.poster_base_url:
    poster = HttpPoster(settings.poster_base_url, token=settings.poster_token)
else:
    poster = LogPoster()

mention_handler = MentionHandler(research, ledger, poster)
scheduler = ResearchScheduler(mention_handler, settings.post_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    ledger.start()
    scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()
        await ledger.stop()
        await rate_limiter.aclose()


app = FastAPI(title="PubMed Research Bot", version="0.1.0", lifespan=lifespan)
configure_logging("pubmed-bot")
app.middleware("http")(observability_middleware)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="healthy" if settings.pubmed_api_key else "degraded",
        cache_queries=cache.query_count,
        cache_articles=cache.article_count,
        cache_ttl_seconds=cache.ttl_seconds,
        mention_entries=len(ledger),
        rate_limit_pending=rate_limiter.pending,
    )


@app.get("/metrics")
async def metrics():
    return metrics_response()


@app.post("/search", response_model=SearchResponse)
async def search(query: SearchQuery) -> SearchResponse:
    start = time.perf_counter()
    if query.max_results > settings.max_results:
        query = query.model_copy(update={"max_results": settings.max_results})
    try:
        result, cached = await research.lookup(query)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc
    except ConfigError as exc:
        raise HTTPException(status_code=503, detail="Search is not configured") from exc
    except (APIError, ParseError) as exc:
        raise HTTPException(status_code=502, detail="Unable to complete the search") from exc

    took_ms = int((time.perf_counter() - start) * 1000)
    return SearchResponse(
        query=query.term,
        articles=result.articles,
        total=result.total,
        ids=result.ids,
        cached=cached,
        took_ms=took_ms,
    )


@app.post("/mentions", response_model=MentionOutcome)
async def mentions(request: MentionRequest) -> MentionOutcome:
    try:
        return await mention_handler.handle(
            request.mention_id, request.text, reply_to=request.reply_to
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc


def run() -> None:
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )
