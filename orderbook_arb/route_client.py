"""
Route API client for quotes and route codes, plus the native token price oracle built on it.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .utils import format_units, to_fixed18

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Token bucket rate limiter for route API requests.

    Ensures strict rate limiting: 5 requests per second by default.
    """

    def __init__(self, requests_per_second: float = 5.0):
        """
        Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second (0 disables limiting)
        """
        self.requests_per_second = requests_per_second
        self.min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._last_request_time = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait until a request can be made (respecting rate limit)."""
        async with self._lock:
            current_time = time.monotonic()
            time_since_last = current_time - self._last_request_time

            if time_since_last < self.min_interval:
                await asyncio.sleep(self.min_interval - time_since_last)

            self._last_request_time = time.monotonic()


@dataclass
class RouteQuote:
    """Quote for a route: implied output, opaque route code and legs for visualization."""
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    route_code: bytes = b""
    legs: List[Dict[str, Any]] = field(default_factory=list)


def visualize_route(legs: List[Dict[str, Any]]) -> List[str]:
    """
    Render route legs as human readable lines.

    Args:
        legs: Route legs as returned by the route API

    Returns:
        One "<percent>% --- <tokenIn>/<tokenOut> (<poolName> <poolAddress>)" line per leg
    """
    lines = []
    for leg in legs:
        percent = float(leg.get("absolutePortion", 0)) * 100
        token_from = leg.get("tokenFrom", {}).get("symbol", "?")
        token_to = leg.get("tokenTo", {}).get("symbol", "?")
        lines.append(
            f"{percent:.2f}% --- {token_from}/{token_to} "
            f"({leg.get('poolName', 'Unknown')} {leg.get('poolAddress', '')})"
        )
    return lines


class RouteClient:
    """Client for the route finding API."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        requests_per_second: float = 5.0,
        max_retries_on_429: int = 3,
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = 30.0
    ):
        """
        Initialize route API client.

        Args:
            api_url: Base URL of the route API
            api_key: Optional API key, sent in the x-api-key header
            timeout: Request timeout in seconds
            requests_per_second: Rate limit for route API requests
            max_retries_on_429: Maximum retries on 429 rate limit error
            backoff_base_seconds: Base backoff time for 429 retries
            backoff_max_seconds: Maximum backoff time for 429 retries
        """
        self.api_url = api_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout

        self.rate_limiter = RateLimiter(requests_per_second=requests_per_second)
        self.max_retries_on_429 = max_retries_on_429
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds

        headers = {"x-api-key": api_key} if api_key else {}
        self.client = httpx.AsyncClient(timeout=timeout, headers=headers)

    def _backoff(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return min(self.backoff_base_seconds * (2 ** attempt), self.backoff_max_seconds)

    async def find_route(self, token_in: str, token_out: str, amount: int) -> Optional[RouteQuote]:
        """
        Find the best route for swapping an exact input amount.

        Args:
            token_in: Input token address
            token_out: Output token address
            amount: Input amount in the input token's smallest unit

        Returns:
            RouteQuote, or None if there is no route or the API failed
        """
        params = {"tokenIn": token_in, "tokenOut": token_out, "amount": str(amount)}
        url = f"{self.api_url}/route"

        for attempt in range(self.max_retries_on_429 + 1):
            await self.rate_limiter.acquire()
            try:
                response = await self.client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 429:
                    if attempt < self.max_retries_on_429:
                        wait_time = self._backoff(e.response, attempt)
                        logger.warning(
                            f"Rate limit exceeded (429) from route API, "
                            f"retrying in {wait_time:.1f}s (attempt {attempt + 1}/{self.max_retries_on_429})"
                        )
                        await asyncio.sleep(wait_time)
                        continue
                    logger.error(f"Rate limit exceeded (429) from route API after {self.max_retries_on_429} retries")
                    return None
                if e.response.status_code == 404:
                    # no route available for this pair, a valid answer
                    logger.debug(f"Route not found for {token_in[:10]}... -> {token_out[:10]}... (404)")
                    return None
                logger.warning(f"Route request failed: {e.response.status_code} - {e.response.text}")
                return None
            except httpx.HTTPError as e:
                logger.warning(f"Route request error: {e}")
                return None
            except ValueError as e:
                logger.warning(f"Route API returned a non JSON body: {e}")
                return None

            try:
                return self._parse_route(data, token_in, token_out, amount)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Malformed route response for {token_in[:10]}... -> {token_out[:10]}...: {e}")
                return None
        return None

    def _parse_route(self, data: Dict[str, Any], token_in: str, token_out: str, amount: int) -> Optional[RouteQuote]:
        if data.get("status") != "Success":
            logger.debug(f"No way for {token_in[:10]}... -> {token_out[:10]}... amount={amount}")
            return None

        route_code = data.get("routeCode") or "0x"
        legs = data.get("legs") or []
        if not isinstance(legs, list):
            raise TypeError(f"legs must be a list, got {type(legs).__name__}")
        quote = RouteQuote(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount,
            amount_out=int(data.get("amountOut", 0)),
            route_code=bytes.fromhex(route_code[2:] if route_code.startswith("0x") else route_code),
            legs=legs,
        )
        logger.debug(f"Route quote: in={quote.amount_in} out={quote.amount_out} legs={len(quote.legs)}")
        return quote

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()


class PriceOracle:
    """Prices of the chain's wrapped native token in other tokens, quoted through the route API."""

    def __init__(self, route_client: RouteClient, native_token: str, native_decimals: int = 18):
        self.route_client = route_client
        self.native_token = native_token
        self.native_decimals = native_decimals

    async def native_to_token_price(self, token: str, decimals: int) -> Optional[str]:
        """
        Price of one native token unit denominated in ``token``.

        Args:
            token: Target token address
            decimals: Target token decimals

        Returns:
            Decimal string (e.g. "1850.25"), or None if no route exists
        """
        if token.lower() == self.native_token.lower():
            return "1"
        one_native = 10 ** self.native_decimals
        quote = await self.route_client.find_route(self.native_token, token, one_native)
        if quote is None:
            logger.warning(f"Could not price native token in {token}")
            return None
        return format_units(to_fixed18(quote.amount_out, decimals))
