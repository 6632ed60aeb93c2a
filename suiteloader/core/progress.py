"""
Progress Reporter
Passive observers of a loader run. Reporters never influence loading.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from suiteloader.core.manifest import ComponentDescriptor
from suiteloader.core.results import LoadResult, SuiteResult, SuiteStatus
from suiteloader.logger import logger


class ProgressReporter(Protocol):
    def on_starting(self, descriptors: Sequence[ComponentDescriptor], index: int) -> None:
        """Component ``index`` is about to load; ``index == len(descriptors)`` marks completion."""

    def on_component_result(
        self,
        descriptors: Sequence[ComponentDescriptor],
        index: int,
        result: LoadResult,
        successful_count: int,
        failed_count: int,
    ) -> None: ...

    def on_finished(
        self,
        descriptors: Sequence[ComponentDescriptor],
        suite_result: SuiteResult,
        status: SuiteStatus,
    ) -> None: ...


class NullProgressReporter:
    def on_starting(self, descriptors, index):
        pass

    def on_component_result(self, descriptors, index, result, successful_count, failed_count):
        pass

    def on_finished(self, descriptors, suite_result, status):
        pass


@dataclass
class ProgressEvent:
    kind: str
    index: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)


class RecordingProgressReporter:
    """Keeps every notification it receives."""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def on_starting(self, descriptors, index):
        self.events.append(ProgressEvent("starting", index, {"total": len(descriptors)}))

    def on_component_result(self, descriptors, index, result, successful_count, failed_count):
        self.events.append(
            ProgressEvent(
                "result",
                index,
                {"result": result, "successful": successful_count, "failed": failed_count},
            )
        )

    def on_finished(self, descriptors, suite_result, status):
        self.events.append(ProgressEvent("finished", None, {"result": suite_result, "status": status}))

    @property
    def starting_indices(self) -> List[int]:
        return [e.index for e in self.events if e.kind == "starting"]

    @property
    def final_status(self) -> Optional[SuiteStatus]:
        finished = [e for e in self.events if e.kind == "finished"]
        return finished[-1].data["status"] if finished else None


_MARKS = {
    "pending": "·",
    "loading": ">",
    "loaded": "✓",
    "unconfirmed": "~",
    "failed": "✗",
}

_STATUS_TEXT = {
    SuiteStatus.SUCCESS: "All components loaded",
    SuiteStatus.DEGRADED: "Loaded with optional component failures",
    SuiteStatus.CRITICAL_FAILURE: "Critical component failure, dependent features may not work",
}


class ConsoleProgressReporter:
    """
    Renders a per-component board after every notification.

    Each line shows whether the component is pending, loading, loaded,
    unconfirmed or failed. Output goes to ``sink`` (one string per board)
    or to the logger.
    """

    def __init__(self, sink: Optional[Callable[[str], Any]] = None):
        self._sink = sink
        self._states: List[str] = []
        self._errors: Dict[int, str] = {}
        self.last_render = ""

    def _emit(self, text: str) -> None:
        self.last_render = text
        if self._sink is not None:
            self._sink(text)
        else:
            logger.info("\n" + text)

    def _ensure(self, descriptors: Sequence[ComponentDescriptor]) -> None:
        if len(self._states) != len(descriptors):
            self._states = ["pending"] * len(descriptors)
            self._errors = {}

    def render(self, descriptors: Sequence[ComponentDescriptor], headline: str) -> str:
        lines = [headline]
        for i, descriptor in enumerate(descriptors):
            state = self._states[i] if i < len(self._states) else "pending"
            tag = " [CRITICAL]" if descriptor.critical else ""
            line = f"  {_MARKS[state]} {descriptor.display_name}{tag} ({state})"
            if i in self._errors:
                line += f": {self._errors[i]}"
            lines.append(line)
        return "\n".join(lines)

    def on_starting(self, descriptors, index):
        if index == 0:
            self._states = []
        self._ensure(descriptors)
        if index < len(descriptors):
            self._states[index] = "loading"
            done = sum(1 for s in self._states if s not in ("pending", "loading"))
            self._emit(self.render(descriptors, f"Loading components {done}/{len(descriptors)}"))

    def on_component_result(self, descriptors, index, result, successful_count, failed_count):
        self._ensure(descriptors)
        if not result.succeeded:
            self._states[index] = "failed"
            self._errors[index] = result.error_message or "unknown error"
        elif result.soft_success:
            self._states[index] = "unconfirmed"
        else:
            self._states[index] = "loaded"

    def on_finished(self, descriptors, suite_result, status):
        self._ensure(descriptors)
        headline = (
            f"{_STATUS_TEXT[status]} ({len(suite_result.successful)} loaded, "
            f"{len(suite_result.failed)} failed, {suite_result.total_elapsed_ms:.0f}ms)"
        )
        self._emit(self.render(descriptors, headline))
