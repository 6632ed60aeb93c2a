"""
Tests for locator diagnostics.
"""

import pytest

from suiteloader.config import RetrievalSettings
from suiteloader.core.diagnostics import run_diagnostics
from tests.conftest import InMemoryRetriever, SILENT


class ExplodingRetriever(InMemoryRetriever):
    async def probe(self, locator):
        raise ConnectionError("resolver unavailable")


@pytest.mark.asyncio
async def test_diagnostics_reports_reachability(make_manifest):
    retriever = InMemoryRetriever({"mem://a": SILENT})
    settings = RetrievalSettings(base_url="https://example.com/{branch}", branch="stable")

    report = await run_diagnostics(make_manifest(("a", True), ("b", False)), retriever, settings)

    assert [c.reachable for c in report.checks] == [True, False]
    assert [c.descriptor.id for c in report.unreachable] == ["b"]
    assert report.healthy is False
    assert retriever.calls == []

    text = report.format()
    assert "Suite Diagnostics" in text
    assert "Base URL: https://example.com/stable" in text
    assert "✓ a [CRITICAL]: mem://a" in text
    assert "✗ b: mem://b" in text
    assert "Reachable: 1/2" in text


@pytest.mark.asyncio
async def test_probe_errors_count_as_unreachable(make_manifest):
    report = await run_diagnostics(make_manifest(("a", True)), ExplodingRetriever())

    assert report.healthy is False
    assert report.checks[0].error == "resolver unavailable"
    assert "resolver unavailable" in report.format()
    assert report.base_url == ""
