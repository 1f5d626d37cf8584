"""Tests for logging setup."""

import json
import logging

import pytest

from hoard.logging import get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_logging():
    """Leave logging in console mode for other tests."""
    yield
    setup_logging(json_output=False, level="DEBUG")


def test_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    """JSON mode writes one object per event with the component name."""
    setup_logging(json_output=True, level="INFO")

    get_logger("store").info("media_stored", path="/tmp/x.png")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "media_stored"
    assert record["component"] == "store"
    assert record["path"] == "/tmp/x.png"
    assert record["level"] == "info"


def test_level_filters_debug(capsys: pytest.CaptureFixture[str]) -> None:
    """Events below the configured level are dropped."""
    setup_logging(json_output=True, level="WARNING")

    get_logger("store").info("quiet")
    get_logger("store").warning("loud")

    err = capsys.readouterr().err
    assert "quiet" not in err
    assert "loud" in err


def test_exception_rendered(capsys: pytest.CaptureFixture[str]) -> None:
    """exc_info is rendered into the JSON record."""
    setup_logging(json_output=True, level="INFO")

    try:
        raise RuntimeError("boom")
    except RuntimeError as e:
        get_logger("events").error("message_task_failed", exc_info=e)

    record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert "RuntimeError: boom" in record["exception"]


def test_http_libraries_quieted() -> None:
    """Request-level library logging is raised to WARNING."""
    setup_logging(json_output=False, level="DEBUG")

    assert logging.getLogger("httpx").level == logging.WARNING
