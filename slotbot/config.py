from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from slotbot.filters import OfferingRules


def _parse_chat_id(name: str, raw: str) -> str:
    value = raw.strip()
    # Telegram allows numeric IDs; groups/supergroups can be negative.
    try:
        int(value)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {value!r}. Expected integer chat id.") from e

    if value == "0":
        raise RuntimeError(f"Invalid {name} value: '0' is not a valid chat id")
    return value


def _parse_telegram_chat_ids(raw: str) -> tuple[str, ...]:
    # TELEGRAM_CHAT_ID supports a single value or a comma-separated list.
    # Examples:
    #   TELEGRAM_CHAT_ID=123456789
    #   TELEGRAM_CHAT_ID=123456789,-1001234567890
    parts = [p.strip() for p in raw.split(",")]
    parts = [p for p in parts if p]

    seen: set[str] = set()
    result: list[str] = []
    for p in parts:
        p = _parse_chat_id("TELEGRAM_CHAT_ID", p)
        if p in seen:
            continue
        seen.add(p)
        result.append(p)

    if not result:
        raise RuntimeError("TELEGRAM_CHAT_ID is empty. Provide at least one chat id.")

    return tuple(result)


def _parse_keywords(raw: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    telegram_chat_ids: tuple[str, ...]
    telegram_admin_chat_id: str | None = None

    # Search area on jameda: city path segment and "lat_lon_radiusKm"
    search_city: str = "heidelberg"
    search_geoball: str = "49.39875_8.672434_100"

    # Filter rules (see OfferingRules)
    resource_tag: str | None = "Corona-Impfung"
    service_keywords: tuple[str, ...] = ("impfung",)
    exclude_keywords: tuple[str, ...] = ("zweit", "bestandspatient")

    # Delay before every per-service slot request, to stay gentle with upstream.
    pacing_seconds: float = 2.0

    # How many times we try the listing request before giving up on the cycle.
    check_retry_attempts: int = 2

    http_timeout_seconds: float = 20.0

    def offering_rules(self) -> OfferingRules:
        return OfferingRules(
            resource_tag=self.resource_tag,
            include_keywords=self.service_keywords,
            exclude_keywords=self.exclude_keywords,
        )

    def alert_chat_ids(self) -> tuple[str, ...]:
        if self.telegram_admin_chat_id is None or self.telegram_admin_chat_id in self.telegram_chat_ids:
            return self.telegram_chat_ids
        return self.telegram_chat_ids + (self.telegram_admin_chat_id,)


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected a number.") from e


def _int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected an integer.") from e


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    admin_raw = os.getenv("TELEGRAM_ADMIN_CHAT_ID", "").strip()
    admin_chat_id = _parse_chat_id("TELEGRAM_ADMIN_CHAT_ID", admin_raw) if admin_raw else None

    pacing_seconds = _float("PACING_SECONDS", "2")
    if pacing_seconds < 0:
        raise RuntimeError("PACING_SECONDS must be >= 0")

    http_timeout_seconds = _float("HTTP_TIMEOUT_SECONDS", "20")
    if http_timeout_seconds <= 0:
        raise RuntimeError("HTTP_TIMEOUT_SECONDS must be > 0")

    check_retry_attempts = _int("CHECK_RETRY_ATTEMPTS", "2")
    if check_retry_attempts < 1:
        raise RuntimeError("CHECK_RETRY_ATTEMPTS must be >= 1")

    resource_tag = os.getenv("RESOURCE_TAG", "Corona-Impfung").strip() or None

    return Settings(
        telegram_bot_token=_require("TELEGRAM_BOT_TOKEN"),
        telegram_chat_ids=_parse_telegram_chat_ids(_require("TELEGRAM_CHAT_ID")),
        telegram_admin_chat_id=admin_chat_id,
        search_city=os.getenv("SEARCH_CITY", "heidelberg").strip(),
        search_geoball=os.getenv("SEARCH_GEOBALL", "49.39875_8.672434_100").strip(),
        resource_tag=resource_tag,
        service_keywords=_parse_keywords(os.getenv("SERVICE_KEYWORDS", "impfung")),
        exclude_keywords=_parse_keywords(os.getenv("EXCLUDE_KEYWORDS", "zweit,bestandspatient")),
        pacing_seconds=pacing_seconds,
        check_retry_attempts=check_retry_attempts,
        http_timeout_seconds=http_timeout_seconds,
    )
