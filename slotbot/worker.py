from __future__ import annotations

import datetime as dt
import logging
import random
import time
from typing import Callable, Iterable, Protocol

import httpx
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from slotbot.config import Settings
from slotbot.detection import detect
from slotbot.domain import (
    Appointment,
    CollectorUnavailable,
    NotifierUnavailable,
    Observation,
    Offering,
    Registry,
    RegistryKey,
    Resource,
    ServiceUnavailable,
    UpstreamBusy,
)
from slotbot.filters import OfferingRules
from slotbot.jameda_client import JamedaCollector, build_client, build_listing_url
from slotbot.telegram_notifier import send_telegram_message

logger = logging.getLogger(__name__)

Sleep = Callable[[float], None]

# Late night / early morning (UTC): little churn, so poll rarely.
QUIET_HOURS_DELAY_SECONDS = (20 * 60, 50 * 60)
ACTIVE_HOURS_DELAY_SECONDS = (5 * 60, 10 * 60)


class Collector(Protocol):
    def list_resources(self) -> list[Resource]: ...

    def list_offerings(self, resource: Resource) -> list[Offering]: ...

    def fetch_dates(self, offering: Offering) -> frozenset[dt.date]: ...


def is_quiet_hour(hour: int) -> bool:
    return hour >= 22 or hour <= 3


def next_delay_seconds(hour: int, rng: random.Random | None = None) -> int:
    """Pause before the next cycle, drawn uniformly from [low, high) seconds."""

    low, high = QUIET_HOURS_DELAY_SECONDS if is_quiet_hour(hour) else ACTIVE_HOURS_DELAY_SECONDS
    return (rng or random).randrange(low, high)


def _utc_hour() -> int:
    return dt.datetime.now(dt.timezone.utc).hour


def _format_distance(km: float) -> str:
    return f"{km:g}"


def _format_appointments(appointments: Iterable[Appointment]) -> str:
    lines = []
    for a in appointments:
        dates = ",".join(d.isoformat() for d in a.dates)
        lines.append(
            f"{a.offering.title} ({a.offering.resource.name}, {_format_distance(a.offering.resource.distance_km)}km): {dates}"
        )
    return "\n".join(lines)


def _broadcast_telegram(settings: Settings, text: str, chat_ids: Iterable[str]) -> None:
    errors: list[tuple[str, Exception]] = []

    for chat_id in chat_ids:
        try:
            send_telegram_message(
                bot_token=settings.telegram_bot_token,
                chat_id=chat_id,
                text=text,
                timeout_seconds=settings.http_timeout_seconds,
            )
        except Exception as e:
            # Best-effort: don't stop sending to other chat_ids.
            logger.warning("Failed to send telegram message to chat_id=%s (%s: %s)", chat_id, type(e).__name__, e)
            errors.append((chat_id, e))

    if errors:
        failed = ", ".join([cid for cid, _ in errors])
        raise NotifierUnavailable(f"Failed to send telegram message to some recipients: {failed}")


def _send_status_message(settings: Settings, text: str) -> None:
    _broadcast_telegram(settings, text, settings.alert_chat_ids())


def _report_failure(settings: Settings, text: str) -> None:
    # Upstream outages are frequent; only the admin chat hears about them.
    if settings.telegram_admin_chat_id is None:
        return
    try:
        _broadcast_telegram(settings, text, (settings.telegram_admin_chat_id,))
    except NotifierUnavailable as e:
        logger.warning("Failed to report cycle failure (%s)", e)


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_after_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None and retry_state.outcome.failed:
        reason = _short_exc(retry_state)
        logger.warning("Listing attempt %s failed (%s)", retry_state.attempt_number, reason)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    if sleep_seconds is None:
        logger.info("Retrying listing request...")
        return
    logger.info("Retrying listing request (attempt %s) in %.0f s", retry_state.attempt_number + 1, sleep_seconds)


def _list_resources_with_retry(collector: Collector, *, attempts: int, sleep: Sleep) -> list[Resource]:
    decorated = retry(
        retry=retry_if_exception_type(CollectorUnavailable),
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=2, min=2, max=4),
        after=_log_after_attempt,
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )(collector.list_resources)

    return decorated()


def collect_observations(
    collector: Collector,
    rules: OfferingRules,
    *,
    pacing_seconds: float,
    retry_attempts: int = 1,
    sleep: Sleep = time.sleep,
) -> list[Observation]:
    """Run the network part of a cycle, strictly one request after another.

    Raises CollectorUnavailable if the listing itself can't be read. Failures of a
    single resource or offering only skip that one.
    """

    resources = _list_resources_with_retry(collector, attempts=retry_attempts, sleep=sleep)

    observations: list[Observation] = []
    seen: set[RegistryKey] = set()
    for resource in resources:
        if not rules.accepts_resource(resource):
            continue

        try:
            offerings = collector.list_offerings(resource)
        except ServiceUnavailable as e:
            logger.info("Skipping %s, no appointment bookable (%s)", resource.name, e)
            continue

        for offering in offerings:
            # The listing may repeat a resource; each offering is checked once per cycle.
            if offering.key in seen or not rules(offering):
                continue
            seen.add(offering.key)

            # Be nice and slow down
            sleep(pacing_seconds)
            logger.info(
                "Checking %s from %s (%skm)",
                offering.title,
                resource.name,
                _format_distance(resource.distance_km),
            )

            try:
                dates = collector.fetch_dates(offering)
            except UpstreamBusy as e:
                logger.info("No open slots for %s (%s)", offering.title, e.message)
                dates = frozenset()
            except ServiceUnavailable as e:
                logger.warning("Skipping %s from %s (%s)", offering.title, resource.name, e)
                continue

            observations.append(Observation(offering=offering, dates=dates))

    return observations


def run_cycle(settings: Settings, collector: Collector, registry: Registry, *, sleep: Sleep = time.sleep) -> Registry:
    """One collect -> detect -> notify pass. Returns the registry for the next cycle.

    When the listing can't be fetched the given registry is returned untouched.
    A failed notification does not undo the registry update.
    """

    try:
        observations = collect_observations(
            collector,
            settings.offering_rules(),
            pacing_seconds=settings.pacing_seconds,
            retry_attempts=settings.check_retry_attempts,
            sleep=sleep,
        )
    except CollectorUnavailable as e:
        logger.error("Check failed, keeping previous state (%s)", e)
        _report_failure(settings, f"Check failed (listing unavailable).\nReason: {e}")
        return registry

    appointments, next_registry = detect(observations, registry)
    logger.info("Offerings: observed=%d with_new_dates=%d", len(observations), len(appointments))

    if not appointments:
        logger.info("Nothing new...")
        return next_registry

    text = _format_appointments(appointments)
    logger.info("New dates:\n%s", text)
    try:
        _broadcast_telegram(settings, text, settings.alert_chat_ids())
        logger.info("Telegram notification sent.")
    except NotifierUnavailable as e:
        # These dates count as seen anyway; they are alerted again only after disappearing.
        logger.error("Notification failed (%s)", e)

    return next_registry


def _build_collector(settings: Settings, client: httpx.Client) -> JamedaCollector:
    return JamedaCollector(client, listing_url=build_listing_url(settings.search_city, settings.search_geoball))


def run_check_once(settings: Settings) -> None:
    with build_client(timeout_seconds=settings.http_timeout_seconds) as client:
        run_cycle(settings, _build_collector(settings, client), {})


def run_forever(settings: Settings, *, sleep: Sleep = time.sleep) -> None:
    logger.info(
        "Worker started. Area=%s (%s) pacing=%ss",
        settings.search_city,
        settings.search_geoball,
        settings.pacing_seconds,
    )
    registry: Registry = {}

    with build_client(timeout_seconds=settings.http_timeout_seconds) as client:
        collector = _build_collector(settings, client)
        while True:
            try:
                registry = run_cycle(settings, collector, registry, sleep=sleep)
            except Exception as e:
                # Anything unexpected only costs this cycle; state stays as it was.
                logger.error("Check failed in run_forever (%s: %s)", type(e).__name__, e)

            delay = next_delay_seconds(_utc_hour())
            logger.info("Next check in %d min %d s", delay // 60, delay % 60)
            sleep(delay)
