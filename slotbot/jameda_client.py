from __future__ import annotations

import datetime as dt
import logging
from typing import Any

import httpx

from slotbot.domain import (
    CollectorUnavailable,
    Offering,
    Resource,
    ServiceUnavailable,
    UpstreamBusy,
)

logger = logging.getLogger(__name__)

LISTING_BASE_URL = "https://www.jameda.de"
BOOKING_BASE_URL = "https://booking-service.jameda.de/public/resources"

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:88.0) Gecko/20100101 Firefox/88.0"

# {"code":2000,"message":"There are no open slots, because all slots have been booked already."}
NO_OPEN_SLOTS_CODE = 2000


def build_listing_url(city: str, geoball: str) -> str:
    # geoball is "lat_lon_radiusKm", e.g. 49.39875_8.672434_100
    return (
        f"{LISTING_BASE_URL}/{city}/corona-impftermine/spezialisten/"
        f"?ajaxparams[]=change%7Cgeoball%7C{geoball}&output=json"
    )


def build_services_url(resource_id: str) -> str:
    return f"{BOOKING_BASE_URL}/{resource_id}/services"


def build_slots_url(resource_id: str, service_id: int) -> str:
    return f"{BOOKING_BASE_URL}/{resource_id}/slots?serviceId={service_id}"


def build_client(*, timeout_seconds: float = 20.0) -> httpx.Client:
    return httpx.Client(timeout=timeout_seconds, headers={"User-Agent": USER_AGENT})


def parse_slot_date(raw: str) -> dt.date:
    """Calendar day of a slot timestamp such as 2021-05-29T10:15:00+02:00."""

    day, _, _ = raw.partition("T")
    return dt.date.fromisoformat(day)


def _parse_resource(item: dict[str, Any]) -> Resource:
    return Resource(
        resource_id=str(item["ref_id"]),
        name=str(item["name_kurz"]),
        distance_km=float(item["entfernung"]),
        tags=tuple(str(s) for s in item.get("services") or ()),
    )


class JamedaCollector:
    """Reads listings, services and open slots from jameda's public endpoints.

    Every method issues exactly one request. Pacing between requests is up to the caller.
    """

    def __init__(self, client: httpx.Client, *, listing_url: str):
        self._client = client
        self._listing_url = listing_url

    def list_resources(self) -> list[Resource]:
        try:
            r = self._client.get(self._listing_url)
            r.raise_for_status()
            raw = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CollectorUnavailable(f"Listing request failed ({type(e).__name__}: {e})") from e

        try:
            resources = [_parse_resource(item) for item in raw["results"]]
        except (KeyError, TypeError, ValueError) as e:
            raise CollectorUnavailable(f"Unexpected listing payload ({type(e).__name__}: {e})") from e

        logger.debug("Listing returned %d resources", len(resources))
        return resources

    def list_offerings(self, resource: Resource) -> list[Offering]:
        try:
            r = self._client.get(build_services_url(resource.resource_id))
            raw = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ServiceUnavailable(f"Services of {resource.name} unavailable ({type(e).__name__}: {e})") from e

        # Resources without online booking answer with an error object instead of a list.
        if not isinstance(raw, list):
            raise ServiceUnavailable(f"No online booking for {resource.name} ({raw})")

        try:
            return [Offering(resource=resource, service_id=int(s["id"]), title=str(s["title"])) for s in raw]
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceUnavailable(f"Unexpected services payload for {resource.name} ({type(e).__name__}: {e})") from e

    def fetch_dates(self, offering: Offering) -> frozenset[dt.date]:
        """Distinct days with at least one open slot.

        Raises UpstreamBusy when jameda reports that everything is booked.
        """

        url = build_slots_url(offering.resource.resource_id, offering.service_id)
        try:
            r = self._client.get(url)
            raw = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ServiceUnavailable(f"Slots of {offering.title} unavailable ({type(e).__name__}: {e})") from e

        if isinstance(raw, dict) and "code" in raw:
            code = raw["code"]
            message = str(raw.get("message", ""))
            if code == NO_OPEN_SLOTS_CODE:
                raise UpstreamBusy(NO_OPEN_SLOTS_CODE, message)
            raise ServiceUnavailable(f"Slots of {offering.title} unavailable (code={code}: {message})")

        if r.is_error or not isinstance(raw, list):
            raise ServiceUnavailable(f"Unexpected slots response for {offering.title} (status={r.status_code})")

        try:
            return frozenset(parse_slot_date(str(item["slot"])) for item in raw)
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceUnavailable(f"Unexpected slot format for {offering.title} ({type(e).__name__}: {e})") from e
