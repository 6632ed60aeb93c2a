"""
Extension Suite
Wires the tracker, directory, retriever and loader together and owns teardown.
"""

import inspect
from typing import Any, Callable, Optional, Set

from suiteloader.config import LoaderSettings, RetrievalSettings, SuiteSettings
from suiteloader.core.activation import Activator, HostEnvironment, LocalHost
from suiteloader.core.diagnostics import DiagnosticsReport, run_diagnostics
from suiteloader.core.error_isolation import ErrorIsolation
from suiteloader.core.loader import SequentialLoader
from suiteloader.core.manifest import ComponentManifest
from suiteloader.core.progress import ProgressReporter
from suiteloader.core.registry import HasLifecycle, RegistrationDirectory
from suiteloader.core.resource_tracker import ResourceTracker
from suiteloader.core.results import SuiteResult
from suiteloader.core.retrieval import Retriever, SchemeRetriever
from suiteloader.logger import logger


class ExtensionSuite:
    """
    One suite instance per process: explicitly constructed and passed around.

    Usage::

        async with ExtensionSuite(manifest) as suite:
            result = await suite.start()
    """

    def __init__(
        self,
        manifest: ComponentManifest,
        retriever: Optional[Retriever] = None,
        host: Optional[HostEnvironment] = None,
        settings: Optional[LoaderSettings] = None,
        reporter: Optional[ProgressReporter] = None,
    ):
        self.manifest = manifest
        self.tracker = ResourceTracker()
        self.directory = RegistrationDirectory(tracker=self.tracker)
        self._owns_retriever = retriever is None
        self.retriever = retriever or SchemeRetriever()
        self.host = host or LocalHost()
        self.activator = Activator()
        self.error_isolation = ErrorIsolation()
        self.loader = SequentialLoader(
            manifest=manifest,
            directory=self.directory,
            retriever=self.retriever,
            tracker=self.tracker,
            activator=self.activator,
            host=self.host,
            settings=settings,
            reporter=reporter,
            error_isolation=self.error_isolation,
        )
        self.last_result: Optional[SuiteResult] = None
        self._torn_down = False

    @classmethod
    def from_settings(
        cls,
        settings: SuiteSettings,
        host: Optional[HostEnvironment] = None,
        reporter: Optional[ProgressReporter] = None,
    ) -> "ExtensionSuite":
        suite = cls(
            manifest=ComponentManifest.from_settings(settings),
            retriever=SchemeRetriever.from_settings(settings.retrieval),
            host=host,
            settings=settings.loader,
            reporter=reporter,
        )
        suite._owns_retriever = True
        return suite

    async def start(self) -> SuiteResult:
        """Run the loader over the manifest. May be called again to retry."""
        self._torn_down = False
        self.last_result = await self.loader.run_suite()
        return self.last_result

    async def diagnose(self, settings: Optional[RetrievalSettings] = None) -> DiagnosticsReport:
        return await run_diagnostics(self.manifest, self.retriever, settings)

    async def teardown(self) -> None:
        """
        Unwind everything the suite created.

        Order: component ``on_unload`` hooks (newest first), tracked
        resources, directory contents, compiled modules, orphaned loads.
        Calling it twice is a no-op.
        """
        if self._torn_down:
            return
        self._torn_down = True
        logger.info("Tearing down extension suite")

        unloaded: Set[int] = set()
        for activated in reversed(self.loader.activated):
            if activated.unload is not None:
                await self._call_unload(activated.descriptor.id, activated.unload)
                unloaded.add(id(activated.entry if activated.entry is not None else activated.module))

        for component_id in reversed(self.directory.list()):
            api = self.directory.get_capability(component_id, HasLifecycle)
            if api is not None and id(api) not in unloaded:
                await self._call_unload(component_id, api.on_unload)
                unloaded.add(id(api))
        self.loader.forget_activated()

        released = self.tracker.release_all()
        self.directory.clear()
        removed = self.activator.unregister_modules()
        cancelled = self.loader.cancel_orphans()
        if self._owns_retriever and hasattr(self.retriever, "aclose"):
            await self.retriever.aclose()

        logger.info(
            f"Teardown complete: {released} resources released, {removed} modules removed, "
            f"{cancelled} pending loads cancelled"
        )

    @staticmethod
    async def _call_unload(component_id: str, unload: Callable[[], Any]) -> None:
        try:
            result = unload()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"on_unload of {component_id} failed: {e}")

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def status(self) -> dict:
        status = self.directory.status()
        status["tracked_resources"] = len(self.tracker)
        status["failed_components"] = self.error_isolation.get_failed_components()
        return status

    async def __aenter__(self) -> "ExtensionSuite":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.teardown()
