"""
RateApiClient - async HTTP client for the external pricing provider.

Returns the raw status and body; classification and parsing happen in the
pricing service. Transport failures (refused connection, connect/read
timeouts, DNS errors) propagate as httpx.TransportError subclasses.
"""

from dataclasses import dataclass

import httpx
from loguru import logger

from pricing.models import RateQuery, RateRequest


@dataclass
class ProviderResponse:
    """Raw response from the pricing provider."""

    status_code: int
    body: str

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code <= 299


class RateApiClient:
    """
    Pricing provider client.

    Usage:
        async with RateApiClient("http://localhost:8080", token="...") as client:
            response = await client.get_rate("Summer", "H1", "R1")
    """

    PRICING_PATH = "/pricing"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self._token = token
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"Content-Type": "application/json", "token": self._token},
                transport=self._transport,
            )
        return self._http_client

    async def get_rate(self, period: str, hotel: str, room: str) -> ProviderResponse:
        """
        Ask the provider for the rate of a single (period, hotel, room).

        Raises:
            httpx.TransportError: If the provider cannot be reached in time
        """
        client = await self._get_http_client()
        payload = RateRequest(
            attributes=[RateQuery(period=period, hotel=hotel, room=room)]
        )
        response = await client.post(
            self.PRICING_PATH, content=payload.model_dump_json()
        )
        logger.debug(f"Rate API responded {response.status_code} for {hotel}/{room}")
        return ProviderResponse(status_code=response.status_code, body=response.text)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("RateApiClient closed")

    async def __aenter__(self) -> "RateApiClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
