"""Tests for structured logging initialization and formatting."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, cast

from backstat.config.logging import bind_task_context, correlation_id, init_logging

if TYPE_CHECKING:
    import pytest


def test_init_logging_sets_level() -> None:
    """Ensure init_logging sets the expected root logger level."""
    init_logging("DEBUG")
    assert logging.getLogger().level == logging.DEBUG  # noqa: S101

    init_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING  # noqa: S101


def test_json_formatter_outputs_valid_json(capsys: pytest.CaptureFixture[str]) -> None:
    """Ensure JSONFormatter produces parseable JSON with core fields."""
    init_logging("INFO")
    logger = logging.getLogger("test_logger")

    msg = "Test structured message"
    logger.info(msg)

    captured = capsys.readouterr()
    data = cast("dict[str, object]", json.loads(captured.out.strip()))
    assert data["message"] == msg  # noqa: S101
    assert data["level"] == "INFO"  # noqa: S101
    assert data["logger"] == "test_logger"  # noqa: S101
    assert "timestamp" in data  # noqa: S101
    assert data.get("correlation_id") is None  # noqa: S101
    assert data.get("task") is None  # noqa: S101


def test_task_context_tags_records_and_resets(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Ensure records inside a task block carry the task name and run id."""
    init_logging("INFO")
    logger = logging.getLogger("test_task_context")

    with bind_task_context("stats for plan 'plan-1'", run_id="run-7"):
        logger.info("inside")
    logger.info("outside")

    lines = capsys.readouterr().out.strip().splitlines()
    inside = cast("dict[str, object]", json.loads(lines[0]))
    outside = cast("dict[str, object]", json.loads(lines[1]))
    assert inside.get("task") == "stats for plan 'plan-1'"  # noqa: S101
    assert inside.get("correlation_id") == "run-7"  # noqa: S101
    assert outside.get("task") is None  # noqa: S101
    assert correlation_id.get() is None  # noqa: S101


def test_json_formatter_includes_extra_fields(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Ensure 'extra' dictionary fields are merged into the JSON root."""
    init_logging("INFO")
    logger = logging.getLogger("test_extra")

    logger.info(
        "Distance since last stat",
        extra={"repo_id": "repo-1", "operations_scanned": 12},
    )

    captured = capsys.readouterr()
    data = cast("dict[str, object]", json.loads(captured.out.strip()))
    assert data.get("repo_id") == "repo-1"  # noqa: S101
    assert data.get("operations_scanned") == 12  # noqa: S101, PLR2004
