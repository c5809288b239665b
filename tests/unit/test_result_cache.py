from pubmed_bot.cache import DEFAULT_QUERY_TTL_SECONDS, ResultCache
from pubmed_bot.schemas import ArticleRecord


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _article(pmid: str) -> ArticleRecord:
    return ArticleRecord(
        pmid=pmid,
        title="Sleep and memory consolidation",
        authors=["Walker M"],
        journal="Nature Neuroscience",
        year="2019",
        url=f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/",
    )


def test_query_ids_are_served_within_ttl() -> None:
    clock = FakeClock()
    cache = ResultCache(clock=clock)
    cache.put_query("sleep", ["1", "2"])

    clock.now += DEFAULT_QUERY_TTL_SECONDS - 1
    assert cache.get_query_ids("sleep") == ["1", "2"]


def test_expired_query_is_absent_and_purged() -> None:
    clock = FakeClock()
    cache = ResultCache(clock=clock)
    cache.put_query("sleep", ["1"])

    clock.now += DEFAULT_QUERY_TTL_SECONDS + 1
    assert cache.get_query_ids("sleep") is None
    assert cache.query_count == 0


def test_articles_do_not_expire() -> None:
    clock = FakeClock()
    cache = ResultCache(ttl_seconds=10, clock=clock)
    cache.put_article(_article("42"))

    clock.now += 10 * DEFAULT_QUERY_TTL_SECONDS
    assert cache.get_article("42") == _article("42")
    assert cache.get_article("43") is None


def test_stored_ids_are_not_aliased() -> None:
    cache = ResultCache()
    ids = ["1", "2"]
    cache.put_query("sleep", ids)
    ids.append("3")

    returned = cache.get_query_ids("sleep")
    returned.append("4")
    assert cache.get_query_ids("sleep") == ["1", "2"]


def test_clear_drops_everything() -> None:
    cache = ResultCache()
    cache.put_query("sleep", ["1"])
    cache.put_article(_article("1"))

    cache.clear()

    assert cache.query_count == 0
    assert cache.article_count == 0
    assert cache.get_query_ids("sleep") is None


def test_query_entry_keeps_discovery_total_and_article_ids() -> None:
    cache = ResultCache()
    cache.put_query("sleep", ["1", "2", "3"], total=4000, article_ids=["1", "3"])
    cache.put_query("naps", ["7"])

    entry = cache.get_query("sleep")
    assert entry.ids == ["1", "2", "3"]
    assert entry.total == 4000
    assert entry.article_ids == ["1", "3"]
    assert cache.get_query("naps").total == 1
    assert cache.get_query("naps").article_ids == ["7"]
