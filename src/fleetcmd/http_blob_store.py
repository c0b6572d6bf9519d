"""HTTP implementation of the blob store.

Fetches extended command output with plain GET requests, which works for
public or pre-signed object URLs and for S3-compatible endpoints that accept
anonymous or header-authenticated reads.

``s3://bucket/key`` locators are rewritten to path-style URLs below the
configured endpoint; ``http(s)://`` locators are fetched as-is.

Throttling responses (429, 503) are retried with exponential backoff and
jitter; any other HTTP error fails the fetch at once.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Self, TypeVar
from urllib.parse import quote

import httpx

from fleetcmd.command_service import BlobStore, BlobStoreError
from fleetcmd.logging import get_logger
from fleetcmd.output_extender import parse_locator

logger = get_logger(__name__)

T = TypeVar("T")

# Default timeout for HTTP requests (connect, read, write, pool)
DEFAULT_TIMEOUT = httpx.Timeout(10.0, read=30.0)

# Status codes signalling throttling rather than a failed request
RETRYABLE_STATUS_CODES = frozenset({429, 503})


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior with exponential backoff.

    Attributes:
        max_retries: Maximum number of retry attempts (default: 3).
        initial_delay: Initial delay in seconds before first retry (default: 0.5).
        max_delay: Maximum delay in seconds between retries (default: 10.0).
        jitter_min: Minimum jitter multiplier (default: 0.7).
        jitter_max: Maximum jitter multiplier (default: 1.3).
    """

    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 10.0
    jitter_min: float = 0.7
    jitter_max: float = 1.3


DEFAULT_RETRY_CONFIG = RetryConfig()


def _calculate_backoff_delay(
    attempt: int,
    config: RetryConfig,
    retry_after: float | None = None,
) -> float:
    """Calculate the delay before the next retry attempt.

    Args:
        attempt: Current retry attempt number (0-indexed).
        config: Retry configuration.
        retry_after: Optional Retry-After header value in seconds.

    Returns:
        Delay in seconds before next retry.
    """
    if retry_after is not None:
        base_delay = retry_after
    else:
        base_delay = min(config.initial_delay * (2**attempt), config.max_delay)

    jitter = random.uniform(config.jitter_min, config.jitter_max)
    return base_delay * jitter


def _get_retry_after(response: httpx.Response) -> float | None:
    retry_after = response.headers.get("Retry-After")
    if retry_after is not None:
        try:
            return float(retry_after)
        except ValueError:
            logger.warning("Invalid Retry-After header value: %s", retry_after)
    return None


def _execute_with_retry(
    operation: Callable[[], T],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Execute an operation, retrying throttled responses.

    Args:
        operation: Callable performing the request. Must raise
            httpx.HTTPStatusError for error responses.
        config: Retry configuration.
        sleep: Sleep function, injectable for tests.

    Returns:
        Result from the operation.

    Raises:
        BlobStoreError: If retries are exhausted.
        httpx.HTTPStatusError: For non-retryable error responses.
    """
    for attempt in range(config.max_retries + 1):
        try:
            return operation()
        except httpx.HTTPStatusError as e:
            if e.response.status_code not in RETRYABLE_STATUS_CODES:
                raise

            if attempt >= config.max_retries:
                raise BlobStoreError(
                    f"Blob store throttled after {config.max_retries} retries "
                    f"(HTTP {e.response.status_code})"
                ) from e

            delay = _calculate_backoff_delay(attempt, config, _get_retry_after(e.response))
            logger.warning(
                "Blob store throttled (attempt %s/%s), retrying in %.2fs",
                attempt + 1,
                config.max_retries + 1,
                delay,
            )
            sleep(delay)

    raise BlobStoreError("Retry failed with no response")


class HttpBlobStore(BlobStore):
    """Blob store that downloads objects over HTTP(S).

    Uses a lazily created, reusable httpx.Client, so one store can serve every
    poll thread of a run.

    Usage::

        with HttpBlobStore(endpoint_url="https://s3.eu-west-1.amazonaws.com") as store:
            data = store.fetch("s3://bucket/prefix/cmd/i-0123/stdout")
    """

    def __init__(
        self,
        endpoint_url: str = "",
        headers: Mapping[str, str] | None = None,
        timeout: httpx.Timeout | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP blob store.

        Args:
            endpoint_url: Base URL that ``s3://`` locators are resolved against
                (path style). Required only for ``s3://`` locators.
            headers: Extra headers sent with every request.
            timeout: Optional custom timeout configuration.
            retry_config: Optional retry configuration for throttling.
            transport: Optional httpx transport, used by tests.
        """
        self.endpoint_url = endpoint_url.rstrip("/")
        self.headers = dict(headers or {})
        self.timeout = timeout or DEFAULT_TIMEOUT
        self.retry_config = retry_config or DEFAULT_RETRY_CONFIG
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                headers=self.headers,
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            )
        return self._client

    def url_for(self, locator: str) -> str:
        """Resolve a locator to the URL it is downloaded from.

        Raises:
            LocatorError: If the locator cannot be parsed.
            BlobStoreError: If an ``s3://`` locator is given without an endpoint.
        """
        location = parse_locator(locator)
        if not locator.strip().startswith("s3://"):
            return locator.strip()
        if not self.endpoint_url:
            raise BlobStoreError(f"No endpoint configured to resolve {location.url}")
        return f"{self.endpoint_url}/{quote(location.container)}/{quote(location.key)}"

    def fetch(self, locator: str) -> bytes:
        """Download the object behind a locator.

        Args:
            locator: ``s3://`` or ``http(s)://`` locator.

        Returns:
            The object body.

        Raises:
            LocatorError: If the locator cannot be parsed.
            BlobStoreError: If the download failed.
        """
        url = self.url_for(locator)
        client = self._get_client()

        def do_get() -> bytes:
            response = client.get(url)
            response.raise_for_status()
            return response.content

        try:
            content = _execute_with_retry(do_get, self.retry_config)
        except httpx.TimeoutException as e:
            raise BlobStoreError(f"Blob fetch timed out: {url}") from e
        except httpx.HTTPStatusError as e:
            raise BlobStoreError(
                f"Blob fetch failed with HTTP {e.response.status_code}: {url}"
            ) from e
        except httpx.RequestError as e:
            raise BlobStoreError(f"Blob fetch request error: {e}") from e

        logger.debug("Fetched %s byte(s) from %s", len(content), url)
        return content

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


__all__ = [
    "DEFAULT_RETRY_CONFIG",
    "DEFAULT_TIMEOUT",
    "HttpBlobStore",
    "RetryConfig",
]
