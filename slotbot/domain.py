from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

ResourceKey = str
ServiceKey = int
RegistryKey = tuple[ResourceKey, ServiceKey]

# Dates seen per (resource, service) in the previous cycle only.
Registry = dict[RegistryKey, frozenset[dt.date]]


@dataclass(frozen=True)
class Resource:
    """A bookable resource (doctor / practice) from the search listing."""

    resource_id: ResourceKey
    name: str
    distance_km: float
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Offering:
    resource: Resource
    service_id: ServiceKey
    title: str

    @property
    def key(self) -> RegistryKey:
        return (self.resource.resource_id, self.service_id)


@dataclass(frozen=True)
class Observation:
    """Dates currently bookable for one offering, as seen in this cycle."""

    offering: Offering
    dates: frozenset[dt.date]

    @property
    def key(self) -> RegistryKey:
        return self.offering.key


@dataclass(frozen=True)
class Appointment:
    """An offering together with the dates that were not available last cycle.

    `dates` is sorted ascending and never empty.
    """

    offering: Offering
    dates: tuple[dt.date, ...]

    @property
    def key(self) -> RegistryKey:
        return self.offering.key


class CollectorUnavailable(RuntimeError):
    """The resource listing could not be fetched or parsed; the cycle is aborted."""


class ServiceUnavailable(RuntimeError):
    """Services or slots of a single resource could not be fetched; only that one is skipped."""


class UpstreamBusy(RuntimeError):
    """The booking service answered with a structured "all slots booked" payload.

    This is a normal state of the upstream, not an error: it counts as zero dates.
    """

    def __init__(self, code: int, message: str):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class NotifierUnavailable(RuntimeError):
    """An alert could not be delivered to at least one recipient."""
