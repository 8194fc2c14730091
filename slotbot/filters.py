from __future__ import annotations

from dataclasses import dataclass

from slotbot.domain import Offering, Resource


@dataclass(frozen=True)
class OfferingRules:
    """Decides which offerings are worth watching.

    A resource must advertise `resource_tag` in its listing (skipped when None).
    A service title must contain at least one of `include_keywords` (if any are
    given) and none of `exclude_keywords`. Keyword matching ignores case.
    """

    resource_tag: str | None = "Corona-Impfung"
    include_keywords: tuple[str, ...] = ("impfung",)
    # Second doses and services reserved for existing patients are useless for new bookings.
    exclude_keywords: tuple[str, ...] = ("zweit", "bestandspatient")

    def accepts_resource(self, resource: Resource) -> bool:
        if not self.resource_tag:
            return True
        return self.resource_tag in resource.tags

    def __call__(self, offering: Offering) -> bool:
        title = offering.title.lower()
        if self.include_keywords and not any(k.lower() in title for k in self.include_keywords):
            return False
        return not any(k.lower() in title for k in self.exclude_keywords)
