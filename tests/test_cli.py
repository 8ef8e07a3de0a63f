"""Tests for the command-line entry point."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from support_threads.cli import build_parser, execute
from support_threads.core.config import AppSettings, StoreSettings, ThreadSettings
from support_threads.storage import SqliteMessageStore

START = datetime(2025, 1, 10, 12, 0, tzinfo=UTC)


def _settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        store=StoreSettings(db_path=tmp_path / "cli.db"),
        threads=ThreadSettings(initial_visible_count=2, page_size=2),
    )


def test_info_prints_configuration(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    args = build_parser().parse_args(["info"])

    assert execute(args, _settings(tmp_path)) == 0

    output = capsys.readouterr().out
    assert "Store backend: sqlite" in output
    assert "first 2, then 2" in output


def test_thread_prints_loaded_pages(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    settings = _settings(tmp_path)
    with SqliteMessageStore(settings.store) as store:
        store.add_conversation("conv-1", customer_email="casey@example.com")
        for index in range(5):
            store.add_message(
                "conv-1",
                f"m-{index}",
                created_at=START - timedelta(minutes=index),
                content=f"Message number {index}",
            )

    args = build_parser().parse_args(["thread", "conv-1", "--pages", "2"])

    assert execute(args, settings) == 0

    output = capsys.readouterr().out
    assert "Showing 4 of 5 message(s):" in output
    assert "Message number 0" in output
    assert "Message number 3" in output
    assert "Message number 4" not in output
    assert "1 older message(s) not loaded." in output


def test_thread_requires_conversation_id(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    args = build_parser().parse_args(["thread"])

    assert execute(args, _settings(tmp_path)) == 2
    assert "needs a conversation id" in capsys.readouterr().out
