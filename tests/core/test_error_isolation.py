"""
Tests for the component error ledger.
"""

import pytest

from suiteloader.core.error_isolation import ErrorIsolation


@pytest.mark.asyncio
async def test_safe_load_async_converts_exceptions():
    isolation = ErrorIsolation()

    async def broken():
        raise ValueError("bad component")

    success, result, error = await isolation.safe_load_async("comp", broken, critical=True)

    assert success is False
    assert result is None
    assert isinstance(error, ValueError)
    recorded = isolation.get_error("comp")
    assert recorded.critical is True
    assert "ValueError: bad component" in recorded.traceback


@pytest.mark.asyncio
async def test_success_clears_previous_error():
    isolation = ErrorIsolation()
    isolation.record("comp", RuntimeError("first"))

    async def working():
        return "loaded"

    success, result, error = await isolation.safe_load_async("comp", working)

    assert (success, result, error) == (True, "loaded", None)
    assert isolation.has_errors() is False


def test_attempts_accumulate():
    isolation = ErrorIsolation()

    isolation.record("comp", RuntimeError("one"))
    isolation.record("comp", RuntimeError("two"))

    assert isolation.get_error("comp").attempt == 2
    assert str(isolation.get_error("comp").error) == "two"
    assert isolation.get_failed_components() == ["comp"]

    isolation.clear_all_errors()
    assert isolation.record("comp", RuntimeError("three")).attempt == 1


def test_format_error_report():
    isolation = ErrorIsolation()
    assert isolation.format_error_report() == "No component errors recorded."

    isolation.record("core", TimeoutError("Load timed out after 30.0s"), critical=True)
    isolation.record("extra", RuntimeError("boom"))
    report = isolation.format_error_report()

    assert "Component: core (CRITICAL)" in report
    assert "Error: TimeoutError: Load timed out after 30.0s" in report
    assert "Component: extra\n" in report
    assert "Attempt: 1" in report
    assert isolation.get_all_errors().keys() == {"core", "extra"}
