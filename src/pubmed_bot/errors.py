from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    CONFIG_ERROR = "CONFIG_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    API_ERROR = "API_ERROR"


class PubMedError(Exception):
    """Base class for every failure the search stack surfaces to callers."""

    default_code = ErrorCode.API_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


class ConfigError(PubMedError):
    default_code = ErrorCode.CONFIG_ERROR


class ValidationError(PubMedError):
    default_code = ErrorCode.VALIDATION_ERROR


class ParseError(PubMedError):
    default_code = ErrorCode.PARSE_ERROR


class APIError(PubMedError):
    default_code = ErrorCode.API_ERROR


class TransientError(PubMedError):
    """A failure that is likely to succeed when the call is repeated."""


class RateLimitError(TransientError):
    default_code = ErrorCode.RATE_LIMIT_EXCEEDED


class RequestTimeoutError(TransientError):
    default_code = ErrorCode.TIMEOUT
