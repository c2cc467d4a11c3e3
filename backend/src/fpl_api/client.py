"""
FPL API Client with rate limiting, retry logic, and error handling.

Handles all communication with the Fantasy Premier League API. Every failure
(transport error, non-2xx, non-JSON body) surfaces as UpstreamUnavailable so
callers can tell "upstream is down" apart from their own bugs.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional

import httpx
from asyncio_throttle import Throttler

from config import Config

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://fantasy.premierleague.com/",
}


class UpstreamUnavailable(Exception):
    """The FPL API could not be reached or did not return a usable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FPLAPIRateLimitError(UpstreamUnavailable):
    """Raised when rate limit is exceeded."""
    pass


class FPLAPINonRetryableError(UpstreamUnavailable):
    """Raised for non-retryable errors (4xx except 429)."""
    pass


class FPLAPIClient:
    """Client for interacting with the FPL API."""

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.base_url = config.fpl_api_base_url
        self.max_retries = config.max_retries
        self.retry_backoff_base = config.retry_backoff_base
        self.max_retry_delay = config.max_retry_delay

        self.throttler = Throttler(
            rate_limit=config.max_requests_per_minute,
            period=60.0
        )
        self.min_interval = config.min_request_interval
        self.last_request_time = 0.0

        self.client = httpx.AsyncClient(
            timeout=config.request_timeout,
            follow_redirects=True,
            headers=_DEFAULT_HEADERS,
            transport=transport,
        )

    async def _wait_for_rate_limit(self):
        """Wait to respect rate limiting."""
        await self.throttler.acquire()

        current_time = time.time()
        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_interval:
            wait_time = self.min_interval - time_since_last
            # ±25% jitter
            jitter = wait_time * 0.25 * (random.random() * 2 - 1)
            await asyncio.sleep(wait_time + jitter)

        self.last_request_time = time.time()

    def _is_retryable_error(self, status_code: int) -> bool:
        """Check if error is retryable."""
        return status_code in {429, 500, 502, 503, 504}

    def _backoff(self, attempt: int) -> float:
        backoff = min(self.retry_backoff_base * (2 ** attempt), self.max_retry_delay)
        jitter = backoff * 0.25 * (random.random() * 2 - 1)
        return max(0.0, backoff + jitter)

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments for httpx request

        Returns:
            Successful httpx.Response

        Raises:
            FPLAPIRateLimitError: If still rate limited after retries
            FPLAPINonRetryableError: On 4xx other than 429
            UpstreamUnavailable: For any other failure after retries are exhausted
        """
        url = self._url(endpoint)

        for attempt in range(self.max_retries + 1):
            try:
                await self._wait_for_rate_limit()
                response = await self.client.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                if attempt < self.max_retries:
                    wait_time = self._backoff(attempt)
                    logger.warning("Timeout from FPL API, retrying", extra={
                        "endpoint": endpoint,
                        "attempt": attempt + 1,
                        "wait_time": wait_time
                    })
                    await asyncio.sleep(wait_time)
                    continue
                raise UpstreamUnavailable(
                    f"Request timeout after {self.max_retries} retries: {endpoint}"
                ) from e
            except httpx.NetworkError as e:
                if attempt < self.max_retries:
                    wait_time = self._backoff(attempt)
                    logger.warning("Network error from FPL API, retrying", extra={
                        "endpoint": endpoint,
                        "attempt": attempt + 1,
                        "wait_time": wait_time,
                        "error": str(e)
                    })
                    await asyncio.sleep(wait_time)
                    continue
                raise UpstreamUnavailable(
                    f"Network error after {self.max_retries} retries: {endpoint}"
                ) from e
            except httpx.TransportError as e:
                raise UpstreamUnavailable(f"Transport error calling {endpoint}: {e}") from e

            if response.is_success:
                return response

            status_code = response.status_code

            if status_code == 429:
                try:
                    retry_after = int(response.headers.get("Retry-After", 60))
                except ValueError:
                    retry_after = 60
                logger.warning("Rate limited by FPL API", extra={
                    "endpoint": endpoint,
                    "retry_after": retry_after,
                    "attempt": attempt + 1
                })
                if attempt < self.max_retries:
                    await asyncio.sleep(min(retry_after, self.max_retry_delay))
                    continue
                raise FPLAPIRateLimitError(
                    f"Rate limited after {self.max_retries} retries", status_code=status_code
                )

            if not self._is_retryable_error(status_code):
                error_text = response.text[:500]
                logger.error("Non-retryable error from FPL API", extra={
                    "endpoint": endpoint,
                    "status_code": status_code,
                    "error": error_text
                })
                raise FPLAPINonRetryableError(
                    f"Non-retryable error {status_code}: {error_text}", status_code=status_code
                )

            if attempt < self.max_retries:
                wait_time = self._backoff(attempt)
                logger.warning("Retryable error from FPL API, retrying", extra={
                    "endpoint": endpoint,
                    "status_code": status_code,
                    "attempt": attempt + 1,
                    "wait_time": wait_time
                })
                await asyncio.sleep(wait_time)
                continue

            raise UpstreamUnavailable(
                f"Request failed after {self.max_retries} retries: "
                f"{status_code} - {response.text[:500]}",
                status_code=status_code,
            )

        raise UpstreamUnavailable(f"Request failed: {endpoint}")

    async def _get_json(self, endpoint: str) -> Any:
        response = await self._request_with_retry("GET", endpoint)

        if not response.content:
            logger.error("Empty response from FPL API", extra={
                "endpoint": endpoint,
                "status_code": response.status_code
            })
            raise UpstreamUnavailable(f"Empty response from {endpoint}")

        # HTML usually means the request was blocked or redirected to a holding page
        content_type = response.headers.get("content-type", "").lower()
        if "text/html" in content_type:
            logger.error("API returned HTML (blocking?)", extra={
                "url": str(response.url),
                "status_code": response.status_code,
                "content_type": content_type
            })
            raise UpstreamUnavailable("FPL API returned HTML instead of JSON - request may be blocked")

        try:
            return response.json()
        except ValueError as e:
            logger.error("JSON parse failed", extra={
                "endpoint": endpoint,
                "status_code": response.status_code,
                "response_preview": response.text[:500],
                "error": str(e)
            })
            raise UpstreamUnavailable(f"Failed to parse JSON from {endpoint}: {e}") from e

    async def get_bootstrap_static(self) -> Dict[str, Any]:
        """
        Get bootstrap-static data (clubs, players, gameweeks).

        Returns:
            Bootstrap static data dictionary
        """
        data = await self._get_json("/bootstrap-static/")

        logger.info("Bootstrap-static fetched", extra={
            "players_count": len(data.get("elements", [])),
            "teams_count": len(data.get("teams", [])),
            "gameweeks_count": len(data.get("events", []))
        })

        return data

    async def get_fixtures(self, gameweek: int) -> List[Dict[str, Any]]:
        """
        Get fixtures for one gameweek.

        Args:
            gameweek: Gameweek number

        Returns:
            List of fixture dictionaries
        """
        fixtures = await self._get_json(f"/fixtures/?event={gameweek}")

        logger.debug("Fetched fixtures", extra={
            "gameweek": gameweek,
            "fixtures_count": len(fixtures)
        })

        return fixtures

    async def get_event_live(self, gameweek: int) -> Dict[str, Any]:
        """
        Get live event data (per-player scores) for a gameweek.

        Args:
            gameweek: Gameweek number

        Returns:
            Live event data dictionary
        """
        data = await self._get_json(f"/event/{gameweek}/live/")

        logger.debug("Fetched live event data", extra={
            "gameweek": gameweek,
            "players_count": len(data.get("elements", []))
        })

        return data

    async def get_entry(self, team_id: str) -> Dict[str, Any]:
        """
        Get a team's summary (entry) data.

        Args:
            team_id: FPL team (entry) id

        Returns:
            Entry data dictionary
        """
        return await self._get_json(f"/entry/{team_id}/")

    async def get_entry_picks(
        self,
        team_id: str,
        gameweek: int
    ) -> Dict[str, Any]:
        """
        Get a team's picks for a gameweek.

        Args:
            team_id: FPL team (entry) id
            gameweek: Gameweek number

        Returns:
            Picks data dictionary (``picks`` and ``entry_history``)
        """
        return await self._get_json(f"/entry/{team_id}/event/{gameweek}/picks/")

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
