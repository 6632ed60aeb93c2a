"""
Sequential Loader
Loads manifest components one at a time, in manifest order, and applies
the critical/optional failure policy.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from suiteloader.config import LoaderSettings
from suiteloader.core.activation import ActivatedComponent, Activator, ComponentContext, HostEnvironment, LocalHost
from suiteloader.core.error_isolation import ErrorIsolation
from suiteloader.core.manifest import ComponentDescriptor, ComponentManifest
from suiteloader.core.progress import NullProgressReporter, ProgressReporter
from suiteloader.core.registry import RegistrationDirectory, RegistryEntry
from suiteloader.core.resource_tracker import ResourceTracker
from suiteloader.core.results import LoadOutcome, LoadResult, Registration, SuiteResult
from suiteloader.core.retrieval import Retriever
from suiteloader.logger import logger


@dataclass
class _LoadAttempt:
    descriptor: ComponentDescriptor
    started: float


class SequentialLoader:
    """
    Drives one load of every manifest entry and returns a SuiteResult.

    Nothing a component does escapes ``run_suite``: retrieval errors,
    activation errors and timeouts all become failed LoadResults. A timed
    out load is not cancelled; its task is kept as an orphan and whatever
    it eventually produces is ignored.
    """

    def __init__(
        self,
        manifest: ComponentManifest,
        directory: RegistrationDirectory,
        retriever: Retriever,
        tracker: Optional[ResourceTracker] = None,
        activator: Optional[Activator] = None,
        host: Optional[HostEnvironment] = None,
        settings: Optional[LoaderSettings] = None,
        reporter: Optional[ProgressReporter] = None,
        error_isolation: Optional[ErrorIsolation] = None,
    ):
        self.manifest = manifest
        self.directory = directory
        self.retriever = retriever
        if tracker is None:
            tracker = directory.tracker if directory.tracker is not None else ResourceTracker()
        self.tracker = tracker
        self.activator = activator or Activator()
        self.host = host or LocalHost()
        self.settings = settings or LoaderSettings()
        self.reporter: ProgressReporter = reporter or NullProgressReporter()
        self.error_isolation = error_isolation or ErrorIsolation()
        self._activated: Dict[str, ActivatedComponent] = {}
        self._orphans: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._runs = 0

    async def run_suite(self) -> SuiteResult:
        """
        Load every component in manifest order.

        Raises:
            ManifestError: the manifest is misconfigured; nothing was retrieved
        """
        async with self._lock:
            self.manifest.validate()
            self._runs += 1
            descriptors = list(self.manifest)
            logger.info(f"Loading {len(descriptors)} components (run {self._runs})")

            started = time.perf_counter()
            if self.settings.startup_delay > 0:
                await asyncio.sleep(self.settings.startup_delay)

            successful: List[LoadResult] = []
            failed: List[LoadResult] = []
            for index, descriptor in enumerate(descriptors):
                self._notify("on_starting", descriptors, index)
                result = await self._load_component(descriptor)
                if result.succeeded:
                    successful.append(result)
                else:
                    failed.append(result)
                self._notify("on_component_result", descriptors, index, result, len(successful), len(failed))

                if not result.succeeded and descriptor.critical and self.settings.critical_failure_pause > 0:
                    await asyncio.sleep(self.settings.critical_failure_pause)

            self._notify("on_starting", descriptors, len(descriptors))
            suite_result = SuiteResult(
                successful=successful,
                failed=failed,
                total_elapsed_ms=(time.perf_counter() - started) * 1000,
            )
            self._log_suite_report(suite_result)
            self._notify("on_finished", descriptors, suite_result, suite_result.status)
            return suite_result

    async def _load_component(self, descriptor: ComponentDescriptor) -> LoadResult:
        attempt = _LoadAttempt(descriptor=descriptor, started=time.perf_counter())
        logger.info(f"Loading {descriptor.display_name} ({descriptor.id})")

        previous_entry = self.directory.get_entry(descriptor.id)
        context = ComponentContext(descriptor, self.directory, self.tracker, self.host)
        task = asyncio.create_task(
            self._retrieve_and_activate(descriptor, context),
            name=f"load:{descriptor.id}",
        )
        done, _ = await asyncio.wait({task}, timeout=self.settings.load_timeout)

        if task not in done:
            self._orphans.add(task)
            task.add_done_callback(lambda t: self._late_outcome(attempt, t))
            error = asyncio.TimeoutError(f"Load timed out after {self.settings.load_timeout}s")
            self.error_isolation.record(descriptor.id, error, critical=descriptor.critical)
            return self._failure(attempt, str(error), timed_out=True)

        success, activated, error = await self.error_isolation.safe_load_async(
            descriptor.id, lambda: task, critical=descriptor.critical
        )
        if not success:
            return self._failure(attempt, str(error))

        self._activated.pop(descriptor.id, None)
        self._activated[descriptor.id] = activated

        registration = Registration.NOT_CHECKED
        if descriptor.critical:
            if await self._await_registration(descriptor.id, previous_entry):
                registration = Registration.CONFIRMED
                logger.info(f"✓ {descriptor.display_name} loaded and registered")
            else:
                registration = Registration.UNCONFIRMED
                logger.warning(
                    f"{descriptor.display_name} loaded but did not register within "
                    f"{self.settings.readiness_timeout}s"
                )
        else:
            if self.settings.settle_delay > 0:
                await asyncio.sleep(self.settings.settle_delay)
            logger.info(f"✓ {descriptor.display_name} loaded")

        return LoadResult(
            descriptor=descriptor,
            outcome=LoadOutcome.SUCCESS,
            elapsed_ms=self._elapsed_ms(attempt),
            registration=registration,
        )

    async def _retrieve_and_activate(self, descriptor: ComponentDescriptor, context: ComponentContext) -> ActivatedComponent:
        fetched = await self.retriever.fetch(descriptor.locator)
        return await self.activator.activate(descriptor, fetched, context)

    async def _await_registration(self, component_id: str, previous: Optional[RegistryEntry] = None) -> bool:
        """Poll until ``component_id`` has an entry other than ``previous``."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.readiness_timeout
        while True:
            entry = self.directory.get_entry(component_id)
            if entry is not None and entry is not previous:
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.settings.readiness_poll_interval, remaining))

    def _failure(self, attempt: _LoadAttempt, message: str, timed_out: bool = False) -> LoadResult:
        descriptor = attempt.descriptor
        if descriptor.critical:
            logger.error(f"✗ Critical component {descriptor.display_name} failed: {message}")
            logger.critical(f"{descriptor.display_name} is critical, components depending on it may not work")
        else:
            logger.warning(f"✗ {descriptor.display_name} failed: {message}")
        return LoadResult(
            descriptor=descriptor,
            outcome=LoadOutcome.FAILURE,
            elapsed_ms=self._elapsed_ms(attempt),
            error_message=message,
            timed_out=timed_out,
        )

    def _late_outcome(self, attempt: _LoadAttempt, task: asyncio.Task) -> None:
        self._orphans.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        outcome = f"failed ({error})" if error else "succeeded"
        logger.warning(f"Ignoring late outcome of {attempt.descriptor.id}: {outcome} after timeout")

    @staticmethod
    def _elapsed_ms(attempt: _LoadAttempt) -> float:
        return (time.perf_counter() - attempt.started) * 1000

    def _notify(self, method: str, *args) -> None:
        try:
            getattr(self.reporter, method)(*args)
        except Exception as e:
            logger.error(f"Progress reporter failed in {method}: {e}")

    def _log_suite_report(self, result: SuiteResult) -> None:
        logger.info("=" * 60)
        logger.info("Suite Load Report")
        logger.info("=" * 60)
        logger.info(f"Total duration: {result.total_elapsed_ms:.1f}ms ({result.total_elapsed_ms / 1000:.2f}s)")
        logger.info(f"Status: {result.status.value.upper()}")
        logger.info("")

        logger.info(f"Loaded components ({len(result.successful)}):")
        for item in result.successful:
            note = " (registration unconfirmed)" if item.soft_success else ""
            logger.info(f"  ✓ {item.descriptor.id}: {item.elapsed_ms:.1f}ms{note}")

        if result.failed:
            logger.info("")
            logger.info(f"Failed components ({len(result.failed)}):")
            for item in result.failed:
                tag = " [CRITICAL]" if item.descriptor.critical else ""
                logger.error(f"  ✗ {item.descriptor.id}{tag}: {item.error_message}")

        logger.info("=" * 60)

    @property
    def activated(self) -> List[ActivatedComponent]:
        """Components activated so far, in activation order."""
        return list(self._activated.values())

    @property
    def orphans(self) -> Set[asyncio.Task]:
        return set(self._orphans)

    def forget_activated(self) -> None:
        self._activated.clear()

    def cancel_orphans(self) -> int:
        pending = [task for task in self._orphans if not task.done()]
        for task in pending:
            task.cancel()
        self._orphans.clear()
        return len(pending)
