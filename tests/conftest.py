"""
Shared fixtures for the suite loader tests.

Provides:
- An in-memory retriever serving component source text
- Loader settings with tiny timeouts
- Manifest and loader factories
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from suiteloader.config import LoaderSettings
from suiteloader.core.activation import Activator, LocalHost
from suiteloader.core.loader import SequentialLoader
from suiteloader.core.manifest import ComponentDescriptor, ComponentManifest
from suiteloader.core.registry import RegistrationDirectory
from suiteloader.core.resource_tracker import ResourceTracker
from suiteloader.core.retrieval import FetchedComponent
from suiteloader.exceptions import RetrievalError

# Served by InMemoryRetriever: never resolves.
HANG = object()


# ============================================================================
# Component sources
# ============================================================================

REGISTERS = """
def on_load(context):
    context.register({"component": context.id})
"""

REGISTERS_LATER = """
def on_load(context):
    context.call_later(0.02, lambda: context.register({"component": context.id}))
"""

SILENT = """
def on_load(context):
    pass
"""

RAISES = """
def on_load(context):
    raise RuntimeError("activation exploded")
"""


class InMemoryRetriever:
    """Serves locator -> source text, an exception to raise, or HANG."""

    def __init__(self, sources: Optional[Dict[str, Any]] = None, delay: float = 0.0):
        self.sources: Dict[str, Any] = dict(sources or {})
        self.delay = delay
        self.calls: List[str] = []
        self.events: List[str] = []

    async def fetch(self, locator: str) -> FetchedComponent:
        self.calls.append(locator)
        self.events.append(f"start:{locator}")
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            value = self.sources.get(locator)
            if value is HANG:
                await asyncio.Event().wait()
            if isinstance(value, BaseException):
                raise value
            if value is None:
                raise RetrievalError(locator, "Not found")
            return FetchedComponent(locator=locator, source=value, origin=f"<memory:{locator}>")
        finally:
            self.events.append(f"end:{locator}")

    async def probe(self, locator: str) -> bool:
        value = self.sources.get(locator)
        return isinstance(value, str)


class RecordingHost(LocalHost):
    """LocalHost with a fixed user and a shared event log for components."""

    def __init__(self, user: str = "tester"):
        super().__init__(user=user)
        self.events: List[str] = []


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fast_settings() -> LoaderSettings:
    """Loader settings with timeouts short enough for unit tests."""
    return LoaderSettings(
        load_timeout=0.5,
        readiness_timeout=0.2,
        readiness_poll_interval=0.01,
        settle_delay=0.0,
        critical_failure_pause=0.0,
    )


@pytest.fixture
def tracker() -> ResourceTracker:
    return ResourceTracker()


@pytest.fixture
def directory(tracker) -> RegistrationDirectory:
    return RegistrationDirectory(tracker=tracker)


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()


@pytest.fixture
def retriever() -> InMemoryRetriever:
    return InMemoryRetriever()


@pytest.fixture
def make_manifest():
    """Build a manifest from ``(id, critical)`` pairs; locators are ``mem://<id>``."""

    def _make(*entries) -> ComponentManifest:
        return ComponentManifest(
            ComponentDescriptor(id=cid, display_name=cid.upper(), locator=f"mem://{cid}", critical=critical)
            for cid, critical in entries
        )

    return _make


@pytest.fixture
def make_loader(directory, tracker, retriever, host, fast_settings):
    """Build a SequentialLoader over the shared fixtures."""
    activator = Activator()

    def _make(manifest: ComponentManifest, **kwargs) -> SequentialLoader:
        options = dict(
            directory=directory,
            retriever=retriever,
            tracker=tracker,
            activator=activator,
            host=host,
            settings=fast_settings,
        )
        options.update(kwargs)
        return SequentialLoader(manifest, **options)

    yield _make

    activator.unregister_modules()
