from __future__ import annotations

import logging
from typing import Protocol

import httpx


logger = logging.getLogger(__name__)


class Poster(Protocol):
    async def create_post(self, text: str) -> bool: ...

    async def reply_to(self, post_id: str, text: str) -> bool: ...


class HttpPoster:
    """Delivers posts and replies to a messaging gateway over HTTP."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    async def create_post(self, text: str) -> bool:
        return await self._send("posts", {"text": text})

    async def reply_to(self, post_id: str, text: str) -> bool:
        return await self._send(f"replies/{post_id}", {"text": text})

    async def _send(self, path: str, payload: dict[str, str]) -> bool:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self._base_url}/{path}", json=payload, headers=headers
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.warning(
                    "poster HTTP error path=%s status=%s body=%r",
                    path,
                    exc.response.status_code,
                    exc.response.text[:500],
                )
                return False
            except httpx.RequestError as exc:
                logger.warning(
                    "poster request error path=%s error_type=%s error=%s",
                    path,
                    type(exc).__name__,
                    str(exc),
                )
                return False
        return True


class LogPoster:
    """Poster used when no messaging gateway is configured."""

    async def create_post(self, text: str) -> bool:
        logger.info("post text=%r", text)
        return True

    async def reply_to(self, post_id: str, text: str) -> bool:
        logger.info("reply post_id=%s text=%r", post_id, text)
        return True
