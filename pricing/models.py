"""
Rate lookup models.

The request/response shapes mirror the pricing provider contract:

    POST /pricing  {"attributes": [{"period", "hotel", "room"}]}
    200            {"rates": [{"period", "hotel", "room", "rate"}]}
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

CACHE_KEY_PREFIX = "pricing/v1"
KEY_SEPARATOR = "/"


class RateQuery(BaseModel):
    """A (period, hotel, room) lookup. Identifiers must not contain '/'."""

    model_config = ConfigDict(frozen=True)

    period: str = Field(min_length=1)
    hotel: str = Field(min_length=1)
    room: str = Field(min_length=1)

    @field_validator("period", "hotel", "room")
    @classmethod
    def _no_separator(cls, value: str) -> str:
        if KEY_SEPARATOR in value:
            raise ValueError(f"identifier must not contain '{KEY_SEPARATOR}'")
        return value

    @property
    def cache_key(self) -> str:
        return cache_key(self)

    def matches(self, raw: Any) -> bool:
        """Whether a raw provider rate mapping is for this exact query."""
        return (
            isinstance(raw, dict)
            and raw.get("period") == self.period
            and raw.get("hotel") == self.hotel
            and raw.get("room") == self.room
        )


def cache_key(query: RateQuery) -> str:
    """Derive the cache key for a query: pricing/v1/{hotel}/{room}/{period}."""
    return KEY_SEPARATOR.join(
        [CACHE_KEY_PREFIX, query.hotel, query.room, query.period]
    )


class RateRequest(BaseModel):
    """Request body sent to the pricing provider."""

    attributes: list[RateQuery]


class RateEntry(BaseModel):
    """A single rate returned by the provider."""

    period: str
    hotel: str
    room: str
    rate: str | None = None

    @field_validator("rate", mode="before")
    @classmethod
    def _stringify_rate(cls, value: Any) -> Any:
        # Provider sends rates either as strings or bare numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class RateResponse(BaseModel):
    """Response body returned by the pricing provider."""

    # Entries are kept raw; only the one matching the query is validated, so
    # unrelated incomplete entries do not spoil the response
    rates: list[Any]

    def find(self, query: RateQuery) -> RateEntry | None:
        """
        Return the first entry matching the query exactly.

        Raises:
            ValidationError: If the matching entry itself is malformed
        """
        raw = next((raw for raw in self.rates if query.matches(raw)), None)
        if raw is None:
            return None
        return RateEntry.model_validate(raw)
