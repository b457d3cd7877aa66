"""
Remote HTTP Client
==================

Async client for the ITSM platform REST API.

Every call runs under a fixed timeout. Only transient failures are retried:
- timeouts and transport errors
- HTTP 408, 429, 500, 502, 503, 504

Retries back off exponentially from the base delay up to the cap. Any other
non-success status fails immediately.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from itsm_grounding.config import settings
from itsm_grounding.core import RemoteServiceException
from itsm_grounding.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class RemoteClient:
    """
    Thin wrapper around httpx.AsyncClient with transient-only retry.

    The underlying client is created lazily and must be released with close().
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url if base_url is not None else settings.remote_base_url
        self.api_key = api_key if api_key is not None else settings.remote_api_key
        self.timeout_seconds = timeout_seconds or settings.remote_timeout_seconds
        self.max_retries = settings.remote_max_retries if max_retries is None else max_retries
        self.backoff_base_seconds = (
            settings.remote_backoff_base_seconds
            if backoff_base_seconds is None else backoff_base_seconds
        )
        self.backoff_max_seconds = (
            settings.remote_backoff_max_seconds
            if backoff_max_seconds is None else backoff_max_seconds
        )
        self._transport = transport
        self._sleep = sleep
        self._http_client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"rest_api_key={self.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._http_client

    def origin_url(self, path: str) -> str:
        """URL for ``path`` on the base URL's host, outside the base path."""
        return str(httpx.URL(self.base_url).copy_with(path=path))

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return min(self.backoff_base_seconds * (2 ** attempt), self.backoff_max_seconds)

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET ``path`` and decode the JSON body.

        Raises:
            RemoteServiceException: after the last attempt fails, or at once
                for a non-transient failure
        """
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            try:
                client = await self._get_client()
                response = await client.get(path, params=params)
            except httpx.TimeoutException:
                error = RemoteServiceException(
                    "Request timed out",
                    transient=True,
                    details={"path": path, "timeout_seconds": self.timeout_seconds}
                )
            except httpx.TransportError as e:
                error = RemoteServiceException(
                    f"Transport error: {e}",
                    transient=True,
                    details={"path": path}
                )
            else:
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise RemoteServiceException(
                            "Malformed JSON response",
                            status_code=response.status_code,
                            details={"path": path}
                        ) from e

                error = RemoteServiceException(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    transient=response.status_code in TRANSIENT_STATUS_CODES,
                    details={"path": path}
                )

            if not error.transient or attempt == attempts - 1:
                logger.warning(
                    "Remote request failed",
                    extra={
                        "path": path,
                        "status_code": error.status_code,
                        "transient": error.transient,
                        "attempt": attempt + 1
                    }
                )
                raise error

            delay = self.backoff_delay(attempt)
            logger.info(
                "Retrying remote request",
                extra={
                    "path": path,
                    "status_code": error.status_code,
                    "attempt": attempt + 1,
                    "delay_seconds": delay
                }
            )
            await self._sleep(delay)

        raise RemoteServiceException("No attempts made", details={"path": path})

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
