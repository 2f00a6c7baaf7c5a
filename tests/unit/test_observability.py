"""Unit tests for structured logging utilities in ``observability``.

Validates the null handler, trace binding, and event construction behaviour
that generation runs rely on.
"""

from __future__ import annotations

import logging

import pytest

from lib_managed_pipeline import bind_trace_id, get_logger
from lib_managed_pipeline.observability import TRACE_ID, log_info, log_warning, make_event


def test_null_handler_present() -> None:
    """Package logger should always include a NullHandler to avoid surprises."""

    logger = get_logger()
    assert any(isinstance(handler, logging.NullHandler) for handler in logger.handlers)


def test_trace_id_in_log(caplog: pytest.LogCaptureFixture) -> None:
    """Structured logs should include the bound trace identifier and contextual fields."""

    caplog.set_level(logging.INFO, logger="lib_managed_pipeline")
    bind_trace_id("trace-123")
    try:
        log_info("document_written", document="pipeline", path=None)
    finally:
        bind_trace_id(None)
    record = caplog.records[-1]
    assert getattr(record, "context") == {"trace_id": "trace-123", "document": "pipeline", "path": None}


def test_warning_level_is_preserved(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="lib_managed_pipeline")
    log_warning("custom_region_marker_mismatch", document="pipeline", path=None)
    assert caplog.records[-1].levelno == logging.WARNING
    assert caplog.records[-1].getMessage() == "custom_region_marker_mismatch"


def test_bind_trace_id_clears_context() -> None:
    """Clearing the trace ID should reset the context variable to None."""

    bind_trace_id("trace-temp")
    bind_trace_id(None)
    assert TRACE_ID.get() is None


def test_make_event_merges_optional_payload() -> None:
    """make_event should merge optional metadata without mutating base keys."""

    event = make_event("pipeline", "ci.yml", {"status": "merged"})
    assert event == {"document": "pipeline", "path": "ci.yml", "status": "merged"}
