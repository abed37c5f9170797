"""Root logging setup."""

from __future__ import annotations

import json
import logging

import pytest

from web_browse.logging_config import LOG_LEVEL_ENV, configure_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    handlers = list(logging.root.handlers)
    level = logging.root.level
    yield
    logging.root.handlers[:] = handlers
    logging.root.setLevel(level)


def test_default_level_is_warning(monkeypatch) -> None:
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    configure_logging()
    assert logging.root.level == logging.WARNING


def test_env_level_used_when_no_explicit_level(monkeypatch) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    configure_logging()
    assert logging.root.level == logging.DEBUG


def test_explicit_level_wins(monkeypatch) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "DEBUG")
    configure_logging("INFO")
    assert logging.root.level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING


def test_json_lines_to_log_file(tmp_path) -> None:
    log_file = tmp_path / "logs" / "daemon.log"
    configure_logging("INFO", log_file=log_file, json_format=True)

    logging.getLogger("web_browse.test").info("daemon listening on %s", "http://127.0.0.1:9377")
    for handler in logging.root.handlers:
        handler.flush()

    entry = json.loads(log_file.read_text().strip().splitlines()[-1])
    assert entry["severity"] == "INFO"
    assert entry["message"] == "daemon listening on http://127.0.0.1:9377"
    assert entry["logger"] == "web_browse.test"
