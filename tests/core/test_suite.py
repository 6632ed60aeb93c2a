"""
Tests for the extension suite facade: end-to-end loading and teardown.
"""

import asyncio
import sys

import pytest

from suiteloader.core.activation import Activator
from suiteloader.core.manifest import ComponentDescriptor, ComponentManifest
from suiteloader.core.results import SuiteStatus
from suiteloader.core.retrieval import SchemeRetriever
from suiteloader.core.suite import ExtensionSuite
from tests.conftest import HANG, InMemoryRetriever, RecordingHost

LIFECYCLE = """
def on_load(context):
    context.host.events.append("load:" + context.id)
    context.register({"id": context.id})
    context.add_command("Run " + context.id, lambda: context.id)

def on_unload():
    context.host.events.append("unload:" + context.id)
"""

FAILING_UNLOAD = """
def on_load(context):
    context.register({})

def on_unload():
    raise RuntimeError("refuses to unload")
"""

LIFECYCLE_API = """
class Api:
    def on_unload(self):
        context.host.events.append("api-unload:" + context.id)

def on_load(context):
    context.register(Api())
"""


def _manifest(*entries):
    return ComponentManifest(
        ComponentDescriptor(id=cid, display_name=cid, locator=f"mem://{cid}", critical=critical)
        for cid, critical in entries
    )


@pytest.fixture
def suite_factory(fast_settings):
    def _make(manifest, sources, host=None, **kwargs):
        return ExtensionSuite(
            manifest,
            retriever=InMemoryRetriever(sources),
            host=host or RecordingHost(),
            settings=fast_settings,
            **kwargs,
        )

    return _make


@pytest.mark.asyncio
async def test_builtin_components_load_end_to_end(fast_settings):
    """The bundled foundation and session components coordinate through the directory."""
    manifest = ComponentManifest([
        ComponentDescriptor("foundation-registry", "Foundation", "module:suiteloader.builtin.foundation", critical=True),
        ComponentDescriptor("user-authentication", "Session", "module:suiteloader.builtin.session", critical=True),
    ])
    host = RecordingHost(user="alice")
    suite = ExtensionSuite(manifest, retriever=SchemeRetriever(), host=host, settings=fast_settings)

    result = await suite.start()

    assert result.status is SuiteStatus.SUCCESS
    assert [r.descriptor.id for r in result.successful] == ["foundation-registry", "user-authentication"]
    assert suite.directory.get_utility("get_current_user")() == "alice"
    assert suite.directory.get_utility("generate_uid")("x").startswith("x-")
    assert suite.directory.get_entry("user-authentication").metadata.dependencies == ["foundation-registry"]
    session = suite.directory.get("user-authentication")
    assert session.session_id.startswith("session-")
    assert host.run_command("Show current user").startswith("alice")

    await suite.teardown()

    assert session.session_id is None
    assert "Show current user" not in host.commands
    assert suite.directory.status()["components"] == []
    assert len(suite.tracker) == 0


@pytest.mark.asyncio
async def test_teardown_unwinds_in_reverse_order(suite_factory):
    host = RecordingHost()
    suite = suite_factory(_manifest(("a", True), ("b", False)), {"mem://a": LIFECYCLE, "mem://b": LIFECYCLE}, host=host)

    await suite.start()
    assert set(host.commands) == {"Run a", "Run b"}
    assert Activator.module_name("a") in sys.modules

    await suite.teardown()

    assert host.events == ["load:a", "load:b", "unload:b", "unload:a"]
    assert host.commands == {}
    assert suite.directory.has("a") is False
    assert len(suite.tracker) == 0
    assert Activator.module_name("a") not in sys.modules
    assert suite.torn_down is True


@pytest.mark.asyncio
async def test_teardown_is_idempotent(suite_factory):
    host = RecordingHost()
    suite = suite_factory(_manifest(("a", True)), {"mem://a": LIFECYCLE}, host=host)
    await suite.start()

    await suite.teardown()
    await suite.teardown()

    assert host.events.count("unload:a") == 1


@pytest.mark.asyncio
async def test_unload_errors_do_not_stop_teardown(suite_factory):
    host = RecordingHost()
    suite = suite_factory(
        _manifest(("a", True), ("b", True)),
        {"mem://a": LIFECYCLE, "mem://b": FAILING_UNLOAD},
        host=host,
    )
    await suite.start()

    await suite.teardown()

    assert "unload:a" in host.events
    assert suite.directory.list() == []
    assert host.commands == {}


@pytest.mark.asyncio
async def test_registered_lifecycle_apis_are_unloaded(suite_factory):
    host = RecordingHost()
    suite = suite_factory(_manifest(("a", True)), {"mem://a": LIFECYCLE_API}, host=host)
    await suite.start()

    await suite.teardown()

    assert host.events == ["api-unload:a"]


@pytest.mark.asyncio
async def test_teardown_cancels_hung_loads(suite_factory, fast_settings):
    fast_settings.load_timeout = 0.02
    suite = suite_factory(_manifest(("a", True), ("b", False)), {"mem://a": HANG, "mem://b": LIFECYCLE})

    result = await suite.start()
    orphans = suite.loader.orphans
    assert result.status is SuiteStatus.CRITICAL_FAILURE

    await suite.teardown()
    await asyncio.sleep(0.01)

    assert all(task.cancelled() for task in orphans)
    assert suite.loader.orphans == set()


@pytest.mark.asyncio
async def test_suite_can_start_again_after_teardown(suite_factory):
    host = RecordingHost()
    suite = suite_factory(_manifest(("a", True)), {"mem://a": LIFECYCLE}, host=host)

    async with suite:
        await suite.start()
    result = await suite.start()
    await suite.teardown()

    assert result.status is SuiteStatus.SUCCESS
    assert host.events == ["load:a", "unload:a", "load:a", "unload:a"]


@pytest.mark.asyncio
async def test_status_and_diagnostics(suite_factory):
    suite = suite_factory(_manifest(("a", True), ("b", False)), {"mem://a": LIFECYCLE})

    await suite.start()
    status = suite.status()
    report = await suite.diagnose()
    await suite.teardown()

    assert status["components"] == ["a"]
    assert status["failed_components"] == ["b"]
    assert status["tracked_resources"] >= 1
    assert [c.descriptor.id for c in report.unreachable] == ["b"]
    assert report.healthy is False
