import argparse
import logging

from slotbot.config import Settings, load_settings
from slotbot.worker import run_check_once, run_forever, _send_status_message


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    # httpx logs every request at INFO; the worker already says what it checks.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _describe_rules(settings: Settings) -> str:
    rules = settings.offering_rules()
    return (
        f"Resource tag: {rules.resource_tag or 'any'}\n"
        f"Service keywords: {', '.join(rules.include_keywords) or 'any'}\n"
        f"Excluded: {', '.join(rules.exclude_keywords) or 'none'}\n"
        f"Pacing: {settings.pacing_seconds:g}s per service"
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="slotbot: watches jameda for newly opened appointment dates")
    parser.add_argument("--once", action="store_true", help="Run single check and exit")
    args = parser.parse_args()

    _setup_logging()
    settings = load_settings()

    # Startup notice (best-effort)
    try:
        _send_status_message(
            settings,
            text=(
                "slotbot started.\n"
                f"Mode: {'once' if args.once else 'forever'}\n"
                f"Area: {settings.search_city} ({settings.search_geoball})\n"
                f"{_describe_rules(settings)}"
            ),
        )
    except Exception:
        logging.getLogger(__name__).warning("Failed to send Telegram startup message", exc_info=True)

    try:
        if args.once:
            run_check_once(settings)
            return 0

        run_forever(settings)
        return 0

    except Exception as e:
        try:
            _send_status_message(
                settings,
                text=(
                    "slotbot crashed.\n"
                    f"Reason: {type(e).__name__}: {e}"
                ),
            )
        except Exception:
            logging.getLogger(__name__).warning("Failed to send Telegram crash message", exc_info=True)
        raise

    finally:
        try:
            _send_status_message(settings, text="slotbot stopped (process exit).")
        except Exception:
            logging.getLogger(__name__).warning("Failed to send Telegram shutdown message", exc_info=True)


if __name__ == "__main__":
    raise SystemExit(main())
