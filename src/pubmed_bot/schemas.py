from __future__ import annotations

import re
from datetime import date
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .config import MAX_RESULTS_CAP
from .errors import ValidationError

_WHITESPACE = re.compile(r"\s+")
_EARLIEST_DATE = date(1900, 1, 1)

PUBMED_ARTICLE_URL = "https://pubmed.ncbi.nlm.nih.gov/{pmid}/"


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


class SearchQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: str = Field(..., max_length=500)
    max_results: int = Field(10, ge=1)
    sort: Literal["relevance", "date"] = "relevance"
    from_date: date | None = None
    to_date: date | None = None

    @field_validator("term", mode="before")
    @classmethod
    def _normalize_term(cls, value: object) -> object:
        if isinstance(value, str):
            return collapse_whitespace(value)
        return value

    @field_validator("max_results")
    @classmethod
    def _cap_max_results(cls, value: int) -> int:
        return min(value, MAX_RESULTS_CAP)

    @field_validator("from_date", "to_date")
    @classmethod
    def _check_date_bounds(cls, value: date | None) -> date | None:
        if value is None:
            return value
        if value < _EARLIEST_DATE:
            raise ValueError("date must not be before 1900-01-01")
        if value > date.today():
            raise ValueError("date cannot be in the future")
        return value

    @model_validator(mode="after")
    def _check_date_order(self) -> "SearchQuery":
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise ValueError("from_date must be before or equal to to_date")
        return self

    def cache_key(self) -> str:
        return "::".join(
            [
                self.term.casefold(),
                str(self.max_results),
                self.sort,
                self.from_date.isoformat() if self.from_date else "",
                self.to_date.isoformat() if self.to_date else "",
            ]
        )


def build_query(term: str, **options: object) -> SearchQuery:
    """Build a SearchQuery, reporting bad input as the domain ValidationError."""
    try:
        return SearchQuery(term=term, **options)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid search parameters: {exc}", cause=exc) from exc


class ArticleRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    pmid: str = Field(..., min_length=1, max_length=20, pattern=r"^\d+$")
    title: str = Field(..., min_length=1, max_length=1000)
    abstract: str | None = Field(None, max_length=5000)
    authors: List[str] = Field(..., min_length=1, max_length=100)
    journal: str = Field(..., min_length=1, max_length=500)
    year: str = Field(..., pattern=r"^\d{4}$")
    url: str = Field(..., max_length=2000)
    doi: str | None = None

    @field_validator("title", "abstract")
    @classmethod
    def _collapse(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return collapse_whitespace(value)

    @field_validator("year")
    @classmethod
    def _check_year(cls, value: str) -> str:
        if not 1900 <= int(value) <= date.today().year:
            raise ValueError("year must be between 1900 and the current year")
        return value

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError("url must use HTTPS")
        return value


class SearchResult(BaseModel):
    articles: List[ArticleRecord] = Field(default_factory=list)
    total: int = 0
    ids: List[str] = Field(default_factory=list)

    @property
    def dropped(self) -> int:
        return max(0, len(self.ids) - len(self.articles))


class SearchResponse(SearchResult):
    query: str
    cached: bool = False
    took_ms: int = 0


class MentionRequest(BaseModel):
    mention_id: str = Field(..., min_length=1)
    text: str
    reply_to: str | None = None


class MentionOutcome(BaseModel):
    mention_id: str
    status: Literal["ignored", "duplicate", "no_results", "replied", "failed"]
    text: str | None = None
    posted: bool = False


class HealthResponse(BaseModel):
    status: str
    cache_queries: int
    cache_articles: int
    cache_ttl_seconds: int
    mention_entries: int
    rate_limit_pending: int
