from __future__ import annotations

from unittest.mock import patch

import pytest

import main
from slotbot.config import Settings


def _settings() -> Settings:
    return Settings(
        telegram_bot_token="TEST_TOKEN",
        telegram_chat_ids=("1", "2"),
        telegram_admin_chat_id=None,
        pacing_seconds=0,
        check_retry_attempts=1,
    )


def test_main_sends_start_and_shutdown_messages_in_once_mode() -> None:
    settings = _settings()

    with (
        patch("main.load_settings", return_value=settings),
        patch("main.run_check_once") as run_once,
        patch("main._send_status_message") as send_status,
        patch("main.argparse.ArgumentParser.parse_args", return_value=type("Args", (), {"once": True})()),
    ):
        assert main.main() == 0
        run_once.assert_called_once_with(settings)

        # startup + shutdown
        assert send_status.call_count == 2
        assert "slotbot started" in send_status.call_args_list[0].kwargs["text"]
        assert "Mode: once" in send_status.call_args_list[0].kwargs["text"]
        assert "Resource tag: Corona-Impfung" in send_status.call_args_list[0].kwargs["text"]
        assert "Service keywords: impfung" in send_status.call_args_list[0].kwargs["text"]
        assert "Excluded: zweit, bestandspatient" in send_status.call_args_list[0].kwargs["text"]
        assert "slotbot stopped" in send_status.call_args_list[1].kwargs["text"]


def test_main_sends_crash_and_shutdown_messages_on_error() -> None:
    settings = _settings()

    with (
        patch("main.load_settings", return_value=settings),
        patch("main.run_forever", side_effect=RuntimeError("boom")),
        patch("main._send_status_message") as send_status,
        patch("main.argparse.ArgumentParser.parse_args", return_value=type("Args", (), {"once": False})()),
    ):
        with pytest.raises(RuntimeError):
            main.main()

        # startup + crash + shutdown
        assert send_status.call_count == 3
        assert "slotbot started" in send_status.call_args_list[0].kwargs["text"]
        assert "slotbot crashed" in send_status.call_args_list[1].kwargs["text"]
        assert "boom" in send_status.call_args_list[1].kwargs["text"]
        assert "slotbot stopped" in send_status.call_args_list[2].kwargs["text"]


def test_failed_status_messages_do_not_stop_the_check() -> None:
    settings = _settings()

    with (
        patch("main.load_settings", return_value=settings),
        patch("main.run_check_once") as run_once,
        patch("main._send_status_message", side_effect=RuntimeError("telegram down")),
        patch("main.argparse.ArgumentParser.parse_args", return_value=type("Args", (), {"once": True})()),
    ):
        assert main.main() == 0
        run_once.assert_called_once_with(settings)


def test_startup_message_shows_disabled_rules() -> None:
    settings = Settings(
        telegram_bot_token="TEST_TOKEN",
        telegram_chat_ids=("1",),
        resource_tag=None,
        service_keywords=(),
        exclude_keywords=(),
    )

    text = main._describe_rules(settings)

    assert "Resource tag: any" in text
    assert "Service keywords: any" in text
    assert "Excluded: none" in text
    assert "Pacing: 2s per service" in text
