"""Fetching resource bytes with retry, backoff, and bounded concurrency."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Protocol

import httpx

from .exceptions import FetchError
from .models import FetchErrorKind, ResourceDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_ATTEMPTS = 3
BACKOFF_BASE = 0.5
BACKOFF_CAP = 5.0

RETRYABLE = frozenset({FetchErrorKind.TIMEOUT, FetchErrorKind.NETWORK})


class Transport(Protocol):
    """Anything that can turn a locator into bytes."""

    def get(self, locator: str, timeout: float) -> bytes:
        """Fetch the bytes behind a locator.

        Raises:
            FetchError: With the kind of failure that occurred
        """
        ...


class HttpTransport:
    """Transport backed by an httpx client."""

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._owns_client = client is None
        self.client = client or httpx.Client(follow_redirects=True)

    def get(self, locator: str, timeout: float) -> bytes:
        try:
            response = self.client.get(locator, timeout=timeout)
        except httpx.TimeoutException as e:
            msg = f"Timed out fetching {locator}"
            raise FetchError(msg, FetchErrorKind.TIMEOUT, locator) from e
        except httpx.HTTPError as e:
            msg = f"Network error fetching {locator}: {e}"
            raise FetchError(msg, FetchErrorKind.NETWORK, locator) from e

        if response.status_code in (404, 410):
            msg = f"Not found: {locator}"
            raise FetchError(
                msg,
                FetchErrorKind.NOT_FOUND,
                locator,
                details={"status_code": response.status_code},
            )
        if not response.is_success:
            msg = f"HTTP {response.status_code} fetching {locator}"
            raise FetchError(
                msg,
                FetchErrorKind.NETWORK,
                locator,
                details={"status_code": response.status_code},
            )
        return response.content

    def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def backoff_delay(retry: int, base: float = BACKOFF_BASE, cap: float = BACKOFF_CAP) -> float:
    """Delay before the given retry (0 for the first retry)."""
    return min(base * (2 ** retry), cap)


class Fetcher:
    """Fetches resources through a transport, retrying transient failures."""

    def __init__(
        self,
        transport: Transport,
        max_attempts: int = DEFAULT_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize fetcher.

        Args:
            transport: Where bytes come from
            max_attempts: Total attempts per locator, including the first
            sleep: Called with the backoff delay between attempts
        """
        self.transport = transport
        self.max_attempts = max(1, max_attempts)
        self._sleep = sleep

    def fetch(self, locator: str, timeout: float = DEFAULT_TIMEOUT) -> bytes:
        """Fetch bytes for a locator.

        Timeouts and network errors are retried with exponential backoff;
        not-found is returned immediately.

        Raises:
            FetchError: After the last failed attempt
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                data = self.transport.get(locator, timeout)
            except FetchError as e:
                if e.kind not in RETRYABLE or attempt == self.max_attempts:
                    logger.debug("Giving up on %s after %d attempt(s): %s", locator, attempt, e)
                    raise
                delay = backoff_delay(attempt - 1)
                logger.warning(
                    "Fetch of %s failed (%s, attempt %d/%d), retrying in %.1fs",
                    locator,
                    e.kind.value,
                    attempt,
                    self.max_attempts,
                    delay,
                )
                self._sleep(delay)
            else:
                logger.debug("Fetched %s (%d bytes)", locator, len(data))
                return data

        msg = f"No fetch attempts made for {locator}"
        raise FetchError(msg, FetchErrorKind.NETWORK, locator)

    def fetch_all(
        self,
        descriptors: Iterable[ResourceDescriptor],
        concurrency: int = 4,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> dict[tuple[str, str], bytes | FetchError]:
        """Fetch many resources with bounded concurrency.

        Results are keyed by descriptor identity, never by completion order.
        Failures are returned as values instead of being raised.
        """
        pending = list(descriptors)
        results: dict[tuple[str, str], bytes | FetchError] = {}
        if not pending:
            return results

        with ThreadPoolExecutor(max_workers=max(1, concurrency)) as executor:
            futures = {
                executor.submit(self.fetch, d.source_locator, timeout): d
                for d in pending
            }
            for future in as_completed(futures):
                descriptor = futures[future]
                try:
                    results[descriptor.key] = future.result()
                except FetchError as e:
                    results[descriptor.key] = e

        return results


def resolve_target_version(
    fetcher: Fetcher,
    source_base: str,
    fallback: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """Read the published VERSION file, falling back when unavailable."""
    locator = f"{source_base.rstrip('/')}/VERSION"
    try:
        raw = fetcher.fetch(locator, timeout)
    except FetchError as e:
        logger.warning("Could not read remote version (%s), using %s", e, fallback)
        return fallback

    version = raw.decode("utf-8", errors="replace").strip()
    if not version:
        logger.warning("Remote VERSION is empty, using %s", fallback)
        return fallback
    return version
