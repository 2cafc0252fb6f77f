"""Client for the external completion service.

The only capability used is ``summarize(text)``. The request is a JSON POST
of ``{"text": ...}``; the response must carry a ``summary`` string. Latency
and failures are not handled here beyond mapping them to CompletionError.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from summadoc.config import settings
from summadoc.core.errors import CompletionError
from summadoc.core.model import Summary

logger = logging.getLogger(__name__)


class Summarizer(Protocol):
    async def summarize(self, text: str) -> Summary: ...


class CompletionClient:
    """HTTP client for the summarize capability."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
            self._client = httpx.AsyncClient(
                timeout=self.timeout, headers=headers, transport=self._transport
            )
        return self._client

    async def summarize(self, text: str) -> Summary:
        """Summarize ``text``.

        Raises:
            CompletionError: On transport failure, non-2xx status or a
                response without a summary
        """
        try:
            response = await self._get_client().post(self.url, json={"text": text})
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as e:
            logger.warning(f"Completion service timed out after {self.timeout}s")
            raise CompletionError("completion service timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Completion service returned {e.response.status_code}")
            raise CompletionError(
                f"completion service returned {e.response.status_code}"
            ) from e
        except (httpx.RequestError, ValueError) as e:
            logger.warning(f"Completion service request failed: {e}")
            raise CompletionError(f"completion service request failed: {e}") from e

        summary = payload.get("summary") if isinstance(payload, dict) else None
        if not isinstance(summary, str):
            raise CompletionError("completion service response has no summary")

        return Summary(summary=summary, originalText=text)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Global client instance (created lazily)
_completion_client: CompletionClient | None = None


def get_completion_client() -> CompletionClient:
    global _completion_client
    if _completion_client is None:
        _completion_client = CompletionClient(
            settings.completion_url,
            api_key=settings.completion_api_key,
            timeout=settings.completion_timeout,
        )
    return _completion_client


async def close_completion_client() -> None:
    global _completion_client
    if _completion_client is not None:
        await _completion_client.close()
        _completion_client = None
