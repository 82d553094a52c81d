"""
Base API Client - Shared request handling for the provider clients.

Every provider call is ONE attempt with a fixed timeout. There is no retry
loop here and no rate limiting: admission is decided by the orchestrator
before a client is ever called, and a failed call is terminal for the
request. Failures come back as ProviderError values rather than exceptions
so callers branch on the returned type.
"""

import asyncio
from typing import Any, ClassVar

import aiohttp

from contracts.errors import ProviderError
from contracts.models import Provider, ProviderFailure
from utils.get_logger import get_logger

logger = get_logger(__name__)


class BaseAPIClient:
    """
    Base class for provider clients.

    A session passed in by the caller is reused and never closed here;
    otherwise a short-lived session is opened per request.
    """

    provider: ClassVar[Provider]
    default_timeout: ClassVar[int] = 30

    def __init__(self, session: aiohttp.ClientSession | None = None, timeout: int | None = None):
        self._session = session
        self.timeout = timeout or self.default_timeout

    def _error(
        self,
        reason: ProviderFailure,
        message: str,
        status_code: int | None = None,
        transient: bool = False,
    ) -> ProviderError:
        return ProviderError(
            self.provider,
            reason,
            message,
            status_code=status_code,
            transient=transient,
        )

    async def _send(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
        timeout: aiohttp.ClientTimeout,
    ) -> Any:
        async with session.request(
            method,
            url,
            params=params,
            headers=headers,
            json=json_body,
            timeout=timeout,
        ) as response:
            status = response.status

            if status != 200:
                # Ensure response body is consumed to properly close connection
                try:
                    body = await response.read()
                except aiohttp.ClientError:
                    body = b""
                if status == 404:
                    logger.debug(f"API returned status {status} for {url} (resource not found)")
                else:
                    logger.warning(f"API returned status {status} for {url}")
                return self._error(
                    ProviderFailure.STATUS,
                    self._status_message(status, body),
                    status_code=status,
                    # 429 and 5xx may succeed later, other 4xx will not
                    transient=status == 429 or status >= 500,
                )

            try:
                return await response.json(content_type=None)
            except (ValueError, aiohttp.ContentTypeError) as e:
                logger.warning(f"Invalid JSON from {url}: {e}")
                return self._error(
                    ProviderFailure.PARSE, f"Failed to parse {self.provider.value} response"
                )

    def _status_message(self, status: int, body: bytes) -> str:
        """Human readable message for a non-200 response. Providers may override."""
        return f"{self.provider.value} API returned status {status}"

    async def _core_async_request(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, Any] | None = None,
        method: str = "GET",
        json_body: dict[str, Any] | None = None,
        timeout: int | None = None,
    ) -> Any:
        """
        Core async HTTP request.

        Args:
            url: Full URL to request
            params: Optional query parameters
            headers: Optional HTTP headers
            method: "GET" or "POST"
            json_body: Optional JSON body (POST)
            timeout: Request timeout in seconds (default: the client's timeout)

        Returns:
            Decoded JSON (dict, list, or other JSON type) on success,
            otherwise a ProviderError describing the failure.
        """
        request_timeout = aiohttp.ClientTimeout(total=timeout or self.timeout)
        try:
            if self._session is not None:
                return await self._send(
                    self._session, method, url, params, headers, json_body, request_timeout
                )
            async with aiohttp.ClientSession() as session:
                return await self._send(
                    session, method, url, params, headers, json_body, request_timeout
                )
        except asyncio.CancelledError:
            raise
        except TimeoutError:
            logger.error(f"Request to {url} timed out after {request_timeout.total}s")
            return self._error(
                ProviderFailure.TIMEOUT,
                f"{self.provider.value} request timed out. Please try again.",
                transient=True,
            )
        except aiohttp.ClientError as e:
            logger.error(f"Error making request to {url}: {e}")
            return self._error(
                ProviderFailure.TRANSPORT,
                f"Could not connect to {self.provider.value}: {e}",
                transient=True,
            )
