"""
Backend Client - hint generation service

POSTs the hint payload to the user-configured server and returns the
hint or code excerpt. Every failure mode is mapped onto a BackendError
subclass so the orchestrator can fall back without inspecting httpx.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from leetmentor.exceptions import (
    BackendError,
    BackendMalformedError,
    BackendTimeoutError,
    BackendUnreachableError,
)
from leetmentor.logging import BackendLogEntry, backend_logger, get_request_id, now_iso

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 9.0  # seconds
HEALTH_PATH = "/health"

# Sent by test_server(); never contains real user code
SAMPLE_PAYLOAD = {
    "problemId": "test-problem",
    "snippet": "def test():\n  return 42",
    "url": "about:blank",
    "failure": "test",
}


@dataclass
class BackendReply:
    """Decoded success body from the backend."""

    hint: str = ""
    snippet: str = ""


@dataclass
class BackendHealth:
    """Result of a liveness probe."""

    ok: bool
    message: str
    provider: str = ""
    model: str = ""


def health_url(server_url: str) -> str:
    """Liveness endpoint on the same origin as the hint endpoint."""
    parts = urlsplit(server_url)
    return urlunsplit((parts.scheme, parts.netloc, HEALTH_PATH, "", ""))


def parse_reply(body: Any) -> BackendReply:
    """
    Validate a decoded response body.

    Raises:
        BackendMalformedError: If the body is not an object with string fields
    """
    if not isinstance(body, dict):
        raise BackendMalformedError("Backend reply is not a JSON object", {"type": type(body).__name__})
    for key in ("hint", "snippet"):
        value = body.get(key)
        if value is not None and not isinstance(value, str):
            raise BackendMalformedError(f"Backend field '{key}' is not a string", {"type": type(value).__name__})
    return BackendReply(hint=(body.get("hint") or "").strip(), snippet=body.get("snippet") or "")


class BackendClient:
    """
    Async client for the hint backend.

    The httpx client is created lazily inside the running loop and
    recreated if the loop changes, so repeated asyncio.run() calls work.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            timeout: Default hard timeout for a call, in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_loop: asyncio.AbstractEventLoop | None = None
        self.request_count = 0

    async def _get_client(self) -> httpx.AsyncClient:
        current_loop = asyncio.get_running_loop()

        if self._client is not None and self._client_loop is not current_loop:
            self._client = None
            self._client_loop = None

        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                headers={"Content-Type": "application/json"},
            )
            self._client_loop = current_loop

        return self._client

    async def close(self) -> None:
        """Close the client and release resources."""
        if self._client is not None:
            client, self._client = self._client, None
            self._client_loop = None
            try:
                await client.aclose()
            except (httpx.HTTPError, RuntimeError) as e:
                logger.debug(f"Ignoring error while closing backend client: {e}")

    async def _post(self, server_url: str, payload: dict[str, Any], timeout: float) -> Any:
        client = await self._get_client()
        try:
            # wait_for cancels the request; a late response is discarded
            response = await asyncio.wait_for(
                client.post(server_url, json=payload, timeout=timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise BackendTimeoutError(f"Backend did not answer within {timeout}s", timeout_seconds=timeout)
        except httpx.HTTPError as e:
            raise BackendUnreachableError(f"Backend unreachable: {e}")

        if not response.is_success:
            raise BackendUnreachableError(
                f"Backend returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BackendMalformedError("Backend reply is not valid JSON", {"error": str(e)[:200]})

    async def generate(
        self,
        server_url: str,
        payload: dict[str, Any],
        timeout: float | None = None,
    ) -> BackendReply:
        """
        Ask the backend for a hint or excerpt.

        Args:
            server_url: Endpoint from the user settings
            payload: Wire payload (problemId, snippet, url, failure, hintLevel, request?)
            timeout: Hard timeout override

        Returns:
            BackendReply

        Raises:
            BackendTimeoutError, BackendUnreachableError, BackendMalformedError
        """
        timeout = self.timeout if timeout is None else timeout
        start_time = time.monotonic()
        log_entry = BackendLogEntry(
            timestamp=now_iso(),
            request_id=get_request_id(),
            server_url=server_url,
            method="generate",
            request_kind=payload.get("request", "hint"),
            hint_level=int(payload.get("hintLevel") or 0),
        )

        try:
            self.request_count += 1
            reply = parse_reply(await self._post(server_url, payload, timeout))
        except BackendError as e:
            log_entry.error = e.message[:500]
            log_entry.error_type = type(e).__name__
            log_entry.status_code = getattr(e, "status_code", None)
            log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
            backend_logger.error(log_entry.to_json())
            raise

        log_entry.success = True
        log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
        backend_logger.info(log_entry.to_json())
        return reply

    async def health(self, server_url: str, timeout: float = 5.0) -> BackendHealth:
        """
        Probe the backend liveness endpoint.

        Never raises; failures come back as BackendHealth(ok=False).
        """
        url = health_url(server_url)
        client = await self._get_client()
        try:
            response = await asyncio.wait_for(client.get(url, timeout=timeout), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return BackendHealth(ok=False, message=f"timeout ({timeout}s)")
        except httpx.HTTPError as e:
            return BackendHealth(ok=False, message=f"connection failed: {str(e)[:80]}")

        if not response.is_success:
            return BackendHealth(ok=False, message=f"HTTP {response.status_code}")
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = {}
        if not isinstance(body, dict):
            body = {}
        return BackendHealth(
            ok=True,
            message=str(body.get("status") or "ok"),
            provider=str(body.get("provider") or ""),
            model=str(body.get("model") or ""),
        )

    async def test_server(self, server_url: str, timeout: float | None = None) -> Any:
        """
        POST a fixed sample payload and return the decoded body.

        Raises:
            BackendError: On any failure
        """
        return await self._post(server_url, dict(SAMPLE_PAYLOAD), self.timeout if timeout is None else timeout)


def ping_backend_sync(server_url: str, timeout: float = 5.0) -> BackendHealth:
    """Synchronous health probe for the CLI."""

    async def _do_ping() -> BackendHealth:
        client = BackendClient(timeout=timeout)
        try:
            return await client.health(server_url, timeout=timeout)
        finally:
            await client.close()

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_do_ping())

    # Called from inside a running loop: use a worker thread with its own loop
    import concurrent.futures

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(asyncio.run, _do_ping())
        return future.result(timeout=timeout + 5)
