"""
Tests for the structured logger.
"""

import logging

import pytest

from codepilot.util.logging import StructuredLogger


@pytest.fixture
def structured():
    return StructuredLogger(name="codepilot.test")


def test_levels_follow_status(structured, caplog):
    with caplog.at_level(logging.DEBUG, logger="codepilot.test"):
        structured.log_operation("op", "success")
        structured.log_operation("op", "degraded")
        structured.log_operation("op", "failed")

    assert [r.levelno for r in caplog.records] == [logging.INFO, logging.WARNING, logging.ERROR]


def test_performance_line_carries_ttft(structured, caplog):
    with caplog.at_level(logging.INFO, logger="codepilot.test"):
        structured.log_performance("editor-1", 41.237, 812.5, aborted=False)
        structured.log_performance("editor-1", None, 3.0, aborted=True)

    first, second = caplog.records
    assert "generation.performance" in first.getMessage()
    assert "'ttft_ms': 41.24" in first.getMessage()
    assert "'aborted': True" in second.getMessage()
    assert "'ttft_ms': None" in second.getMessage()


def test_long_commands_are_shortened(structured, caplog):
    with caplog.at_level(logging.INFO, logger="codepilot.test"):
        structured.log_command_execution("echo " + "x" * 200, "success")

    message = caplog.records[0].getMessage()
    assert "echo " + "x" * 75 + "..." in message
    assert "x" * 100 not in message
