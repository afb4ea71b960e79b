import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from yumyum.core.config import get_settings
from yumyum.core.errors import (
    PipelineError,
    RateLimited,
    TransientNetworkError,
    UpstreamFormatError,
    UpstreamHTTPError,
)

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of one bounded call: either ``data`` or ``error`` is set."""
    data: Any = None
    error: Optional[PipelineError] = None
    status_code: Optional[int] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class BoundedFetcher:
    """JSON-over-HTTP with a hard per-attempt timeout and 429 backoff."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS
        self.retries = retries if retries is not None else settings.HTTP_RETRIES
        self.backoff_base = backoff_base if backoff_base is not None else settings.HTTP_BACKOFF_BASE_SECONDS
        self.client = client or httpx.AsyncClient(timeout=self.timeout)
        self._sleep = sleep

    async def fetch_json(
        self,
        url: str,
        *,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        source: str = "http",
        log_url: Optional[str] = None,
    ) -> FetchResult:
        """
        Issue one logical request and decode its JSON body.

        Args:
            url: Absolute URL
            method: HTTP method
            params: Query parameters
            json: JSON request body
            headers: Extra request headers
            timeout: Wall-clock seconds allowed per attempt
            retries: Extra attempts after a 429 or a transient network failure
            backoff_base: Seconds; attempt ``n`` waits ``backoff_base * 2**n``
            source: Label copied onto any returned error
            log_url: Shown in errors and logs instead of ``url`` (for URLs carrying secrets)

        Returns:
            FetchResult; never raises for network, HTTP or decoding failures
        """
        timeout = self.timeout if timeout is None else timeout
        retries = self.retries if retries is None else retries
        backoff_base = self.backoff_base if backoff_base is None else backoff_base
        shown = log_url or url

        error: Optional[PipelineError] = None
        status_code: Optional[int] = None

        for attempt in range(retries + 1):
            try:
                response = await asyncio.wait_for(
                    self.client.request(method, url, params=params, json=json, headers=headers),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                error = TransientNetworkError(f"timed out after {timeout}s: {shown}", source=source)
            except (httpx.TransportError, OSError) as e:
                error = TransientNetworkError(f"{e.__class__.__name__}: {e} ({shown})", source=source)
            else:
                status_code = response.status_code
                if status_code == 429:
                    error = RateLimited(f"HTTP 429 from {shown}", source=source)
                elif not response.is_success:
                    return FetchResult(
                        error=UpstreamHTTPError(f"HTTP {status_code} from {shown}", status_code, source=source),
                        status_code=status_code,
                        attempts=attempt + 1,
                    )
                else:
                    try:
                        data = response.json()
                    except ValueError:
                        return FetchResult(
                            error=UpstreamFormatError(f"non-JSON body from {shown}", source=source),
                            status_code=status_code,
                            attempts=attempt + 1,
                        )
                    return FetchResult(data=data, status_code=status_code, attempts=attempt + 1)

            if attempt < retries:
                wait = backoff_base * (2 ** attempt)
                logger.warning(f"[{source}] {error}; retry {attempt + 1}/{retries} in {wait:.2f}s")
                await self._sleep(wait)

        logger.error(f"[{source}] giving up: {error}")
        return FetchResult(error=error, status_code=status_code, attempts=retries + 1)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
