from __future__ import annotations

import logging
import random
import re
from typing import Callable, Sequence

from .errors import ConfigError, PubMedError, ValidationError
from .formatter import format_no_results, format_post, format_search_failure
from .mention_ledger import MentionLedger
from .observability import observe_mention, set_mention_id
from .poster import Poster
from .research import ResearchService
from .schemas import MentionOutcome, build_query


logger = logging.getLogger(__name__)

SEARCH_TOPICS = (
    "Medical Research",
    "Clinical Trials",
    "Healthcare Innovation",
    "Public Health",
    "Disease Prevention",
    "Treatment Advances",
    "Medical Technology",
    "Drug Development",
    "Epidemiology",
    "Precision Medicine",
)
DEFAULT_MAX_RESULTS = 5

_TRIGGER_WORDS = ("research", "search")
_HANDLE = re.compile(r"@\w+")


def should_handle(text: str) -> bool:
    lowered = (text or "").lower()
    return any(word in lowered for word in _TRIGGER_WORDS)


def extract_query(text: str) -> str:
    return " ".join(_HANDLE.sub("", text or "").split())


class MentionHandler:
    """Answers research mentions and publishes scheduled research posts."""

    def __init__(
        self,
        research: ResearchService,
        ledger: MentionLedger,
        poster: Poster,
        max_results: int = DEFAULT_MAX_RESULTS,
        choose_topic: Callable[[Sequence[str]], str] = random.choice,
    ) -> None:
        self._research = research
        self._ledger = ledger
        self._poster = poster
        self._max_results = max_results
        self._choose_topic = choose_topic

    async def handle(
        self, mention_id: str, text: str, reply_to: str | None = None
    ) -> MentionOutcome:
        if not mention_id or not mention_id.strip():
            raise ValidationError("Invalid mention ID")
        mention_id = mention_id.strip()
        set_mention_id(mention_id)

        query_text = extract_query(text) if should_handle(text) else ""
        if not query_text:
            observe_mention("ignored")
            return MentionOutcome(mention_id=mention_id, status="ignored")

        if self._ledger.check_and_mark(mention_id):
            observe_mention("duplicate")
            return MentionOutcome(mention_id=mention_id, status="duplicate")

        try:
            query = build_query(query_text, max_results=self._max_results, sort="relevance")
            result = await self._research.search(query)
        except ConfigError:
            logger.error("search unavailable, PubMed is not configured")
            status, reply = "failed", format_search_failure(query_text)
        except PubMedError as exc:
            logger.warning("search failed for mention code=%s error=%s", exc.code.value, exc)
            status, reply = "failed", format_search_failure(query_text)
        else:
            if result.articles:
                article = result.articles[0]
                status, reply = "replied", format_post(article)
                logger.info("answering mention with pmid=%s query=%r", article.pmid, query_text)
            else:
                status, reply = "no_results", format_no_results(query_text)
                logger.info("no articles found for query=%r", query_text)

        posted = await self._publish(reply, reply_to)
        observe_mention(status if posted else "post_failed")
        return MentionOutcome(mention_id=mention_id, status=status, text=reply, posted=posted)

    async def post_research(self, topic: str | None = None) -> bool:
        topic = topic or self._choose_topic(SEARCH_TOPICS)
        query = build_query(topic, max_results=self._max_results, sort="date")
        result = await self._research.search(query)
        if not result.articles:
            logger.info("no articles found for topic=%r", topic)
            return False
        article = result.articles[0]
        posted = await self._poster.create_post(format_post(article))
        if posted:
            logger.info("posted research pmid=%s topic=%r", article.pmid, topic)
        else:
            logger.warning("research post was rejected pmid=%s topic=%r", article.pmid, topic)
        return posted

    async def _publish(self, text: str, reply_to: str | None) -> bool:
        if reply_to:
            posted = await self._poster.reply_to(reply_to, text)
        else:
            posted = await self._poster.create_post(text)
        if not posted:
            logger.warning("post_failed reply_to=%s", reply_to)
        return posted
