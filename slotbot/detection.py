from __future__ import annotations

import datetime as dt
from typing import AbstractSet, Iterable, Mapping

from slotbot.domain import Appointment, Observation, Registry, RegistryKey

_NOTHING: frozenset[dt.date] = frozenset()


def detect(
    observations: Iterable[Observation],
    prior: Mapping[RegistryKey, AbstractSet[dt.date]],
) -> tuple[list[Appointment], Registry]:
    """Compare this cycle's observations with the previous cycle.

    Returns the appointments carrying novel dates (in observation order) and the
    registry for the next cycle. The next registry holds exactly what was observed
    now: dates are replaced, not accumulated, so a date that disappears for one
    cycle is reported again once it comes back. Offerings that were not observed
    at all are forgotten the same way.

    Empty observations are not stored; a missing key and an empty entry mean the
    same thing to the next call.
    """

    appointments: list[Appointment] = []
    next_registry: Registry = {}

    for observation in observations:
        key = observation.key
        current = frozenset(observation.dates)
        novel = current - prior.get(key, _NOTHING)

        if current:
            next_registry[key] = current
        else:
            next_registry.pop(key, None)

        if novel:
            appointments.append(Appointment(offering=observation.offering, dates=tuple(sorted(novel))))

    return appointments, next_registry
