import logging

from pubmed_bot.errors import (
    APIError,
    ErrorCode,
    PubMedError,
    RateLimitError,
    RequestTimeoutError,
    TransientError,
)


def test_errors_carry_code_and_cause_without_logging(caplog) -> None:
    cause = ValueError("boom")
    with caplog.at_level(logging.DEBUG):
        error = APIError("PubMed request failed", code=ErrorCode.NETWORK_ERROR, cause=cause)

    assert caplog.records == []
    assert error.code is ErrorCode.NETWORK_ERROR
    assert error.cause is cause
    assert str(error) == "[NETWORK_ERROR] PubMed request failed"


def test_transient_errors_share_a_base() -> None:
    assert isinstance(RateLimitError("slow down"), TransientError)
    assert isinstance(RequestTimeoutError("timed out"), TransientError)
    assert RateLimitError("slow down").code is ErrorCode.RATE_LIMIT_EXCEEDED
    assert not isinstance(APIError("bad"), TransientError)
    assert isinstance(APIError("bad"), PubMedError)
