"""
HTTP client for the generation services.

Two call shapes, both POST + JSON body against API_BASE_URL:
  call()           : fire-and-wait, one JSON response
  call_streaming() : SSE response, returns the `complete` payload

Each call owns its own deadline. When it fires the request is cancelled
and RequestTimeout is raised; nothing outlives the call.
"""

import os
import time
import base64
import asyncio
import logging
from typing import Any, Optional

import httpx

from .. import metrics
from .errors import RemoteError, RequestTimeout
from .sse import ProgressHandler, consume_event_stream, consume_event_text

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

PORT = os.getenv("PORT", "10000")
API_BASE_URL = os.getenv("API_BASE_URL", f"http://localhost:{PORT}")

DEFAULT_TIMEOUT = 300          # 5 min for plain JSON calls
DEFAULT_STREAM_TIMEOUT = 600   # 10 min for SSE calls
DOWNLOAD_TIMEOUT = 30

JSON_HEADERS = {"Content-Type": "application/json"}


class ServiceClient:
    """
    Usage:
        client = ServiceClient()
        res = await client.call("/get-youtube-transcript", {"url": url})
        res = await client.call_streaming("/rewrite-script", body, on_progress)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or API_BASE_URL).rstrip("/")
        self._transport = transport

    def _http(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self._transport,
        )

    async def _with_deadline(self, endpoint: str, coro, timeout: float):
        started = time.monotonic()
        error_type, message = None, ""
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            error_type, message = "timeout", f"Timeout calling {endpoint}"
            raise RequestTimeout(endpoint) from None
        except Exception as e:
            error_type, message = type(e).__name__, str(e)
            raise
        finally:
            metrics.record_call(
                endpoint, (time.monotonic() - started) * 1000, error_type, message
            )

    # ── Request Client ───────────────────────────────────────────────────

    async def call(
        self,
        endpoint: str,
        body: dict[str, Any],
        timeout: float = DEFAULT_TIMEOUT,
    ) -> dict[str, Any]:
        """POST `body` and return the parsed JSON response."""
        logger.info(f"Calling {endpoint}...")
        return await self._with_deadline(
            endpoint, self._post_json(endpoint, body, timeout), timeout
        )

    async def _post_json(self, endpoint: str, body: dict, timeout: float) -> dict:
        async with self._http(timeout) as http:
            response = await http.post(endpoint, json=body, headers=JSON_HEADERS)
            if not response.is_success:
                raise RemoteError(response.status_code, response.text)
            return response.json()

    # ── SSE Streaming Client ─────────────────────────────────────────────

    async def call_streaming(
        self,
        endpoint: str,
        body: dict[str, Any],
        on_progress: Optional[ProgressHandler] = None,
        timeout: float = DEFAULT_STREAM_TIMEOUT,
        live: bool = True,
    ) -> dict[str, Any]:
        """
        POST `body` and consume the SSE response.

        With live=False the body is read in full and parsed in one pass
        (progress callbacks then all fire at the end).
        """
        logger.info(f"Calling streaming {endpoint}...")
        return await self._with_deadline(
            endpoint,
            self._post_stream(endpoint, body, on_progress, timeout, live),
            timeout,
        )

    async def _post_stream(
        self,
        endpoint: str,
        body: dict,
        on_progress: Optional[ProgressHandler],
        timeout: float,
        live: bool,
    ) -> dict:
        async with self._http(timeout) as http:
            async with http.stream("POST", endpoint, json=body, headers=JSON_HEADERS) as response:
                if not response.is_success:
                    await response.aread()
                    raise RemoteError(response.status_code, response.text)

                if live:
                    return await consume_event_stream(
                        response.aiter_text(), endpoint, on_progress
                    )

                await response.aread()
                return consume_event_text(response.text, endpoint, on_progress)

    # ── Downloads ────────────────────────────────────────────────────────

    async def _get(self, url: str) -> httpx.Response:
        async with self._http(DOWNLOAD_TIMEOUT) as http:
            response = await http.get(url)
            if not response.is_success:
                raise RemoteError(response.status_code, f"Failed to download {url}")
            return response

    async def fetch_text(self, url: str) -> str:
        """Download a text resource (e.g. an SRT file) from a public URL."""
        response = await self._get(url)
        return response.text

    async def fetch_base64(self, url: str) -> str:
        """Download an image from a public URL and return it base64-encoded."""
        response = await self._get(url)
        return base64.b64encode(response.content).decode("utf-8")
