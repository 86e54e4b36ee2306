"""
Address geocoding via the Nominatim search API.

Best-effort: any failure (network, HTTP error, no match) yields ``None``
and the caller carries on without coordinates. Retries drop the last
comma-separated part of the query each time, so "Gulberg, Lahore, Punjab,
54000" is retried as "Gulberg, Lahore, Punjab", then "Gulberg, Lahore".

Geocoding runs inside the checkout request, so a timeout ends the search
at once instead of waiting out the remaining attempts.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import requests
from django.conf import settings

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    display_name: str = ""


def build_query(address: dict[str, Any] | str | None) -> str:
    """
    Turn an address snapshot into a search string.

    Street lines are left out; they rarely match and narrow the search too
    far. The country is appended only when it is not the default country.
    """
    if not address:
        return ""
    if isinstance(address, str):
        return address.strip()

    parts = [
        address.get("area") or address.get("district") or "",
        address.get("city") or address.get("town") or "",
        address.get("state") or "",
        address.get("postal_code") or address.get("postcode") or "",
    ]
    country = address.get("country") or settings.GEOCODING_DEFAULT_COUNTRY
    if country.lower() != settings.GEOCODING_DEFAULT_COUNTRY.lower():
        parts.append(country)
    return ", ".join(str(p).strip() for p in parts if str(p).strip())


def _query_for_attempt(query: str, attempt: int) -> str:
    if attempt <= 1:
        return query
    parts = [p.strip() for p in query.split(",")]
    return ", ".join(parts[: -(attempt - 1)])


def _search(query: str) -> GeoPoint | None:
    response = requests.get(
        settings.GEOCODING_BASE_URL,
        params={
            "q": query,
            "format": "json",
            "addressdetails": 1,
            "limit": 1,
            "countrycodes": settings.GEOCODING_COUNTRY_CODES,
            "accept-language": "en",
        },
        headers={"User-Agent": settings.GEOCODING_USER_AGENT},
        timeout=settings.GEOCODING_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    results = response.json()
    if not results:
        return None
    first = results[0]
    return GeoPoint(
        latitude=float(first["lat"]),
        longitude=float(first["lon"]),
        display_name=first.get("display_name", ""),
    )


def geocode_address(address: dict[str, Any] | str | None) -> GeoPoint | None:
    """
    Resolve an address to coordinates, or None.

    Never raises.
    """
    query = build_query(address)
    if not query:
        return None

    max_attempts = settings.GEOCODING_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        attempt_query = _query_for_attempt(query, attempt)
        if not attempt_query:
            break
        try:
            point = _search(attempt_query)
        except requests.Timeout:
            logger.warning(
                "Geocoding timed out, giving up",
                extra={"query": attempt_query, "attempt": attempt},
            )
            return None
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.warning(
                "Geocoding request failed",
                extra={"query": attempt_query, "attempt": attempt, "error": str(e)},
            )
            point = None

        if point is not None:
            return point
        if attempt < max_attempts:
            time.sleep(settings.GEOCODING_RETRY_DELAY_SECONDS)

    logger.info("No geocoding result", extra={"query": query})
    return None
