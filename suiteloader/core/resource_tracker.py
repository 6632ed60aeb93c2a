"""
Resource Tracker
Ledger of everything components allocate, with a single reversal operation.
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from suiteloader.logger import logger


class ResourceKind(Enum):
    """Kind of tracked resource."""
    ELEMENT = "element"
    SUBSCRIPTION = "subscription"
    TIMER = "timer"
    COMMAND = "command"


_sequence = itertools.count(1)


@dataclass
class TrackedResource:
    """
    One allocation that has to be reversed at teardown.

    ``release`` performs the kind-specific reversal (remove the element,
    disconnect the subscription, cancel the timer, unregister the command).
    """
    kind: ResourceKind
    handle: Any
    release: Callable[[], Any]
    owner: Optional[str] = None
    label: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    seq: int = field(default_factory=lambda: next(_sequence))

    def describe(self) -> str:
        name = self.label or repr(self.handle)
        owner = f" [{self.owner}]" if self.owner else ""
        return f"{self.kind.value}:{name}{owner}"


class ResourceTracker:
    """
    Per-process ledger of allocated resources.

    Only the tracker reverses resources. ``release_all`` walks the ledger
    newest first, logs and swallows individual release errors, and always
    leaves the ledger empty.
    """

    def __init__(self):
        self._ledger: List[TrackedResource] = []
        self._draining = False
        self._released_total = 0

    def track(self, resource: TrackedResource) -> bool:
        """
        Append a resource to the ledger.

        Returns:
            False when the resource arrived while a drain was in progress;
            such late tracks are ignored.
        """
        if self._draining:
            logger.debug(f"Ignoring resource tracked during release: {resource.describe()}")
            return False
        self._ledger.append(resource)
        return True

    def track_element(self, element: Any, remove: Callable[[], Any], owner: Optional[str] = None, label: str = "") -> bool:
        return self.track(TrackedResource(ResourceKind.ELEMENT, element, remove, owner, label))

    def track_subscription(self, handle: Any, unsubscribe: Callable[[], Any], owner: Optional[str] = None, label: str = "") -> bool:
        return self.track(TrackedResource(ResourceKind.SUBSCRIPTION, handle, unsubscribe, owner, label))

    def track_timer(self, timer: Any, owner: Optional[str] = None, label: str = "") -> bool:
        """Track a timer handle exposing ``cancel()`` (asyncio handles and tasks do)."""
        return self.track(TrackedResource(ResourceKind.TIMER, timer, timer.cancel, owner, label))

    def track_command(self, label: str, unregister: Callable[[], Any], owner: Optional[str] = None) -> bool:
        return self.track(TrackedResource(ResourceKind.COMMAND, label, unregister, owner, label))

    def untrack(self, resource: TrackedResource) -> bool:
        """
        Drop a resource that was reversed outside ``release_all``.

        Returns:
            False when the resource is not in the ledger.
        """
        for index, tracked in enumerate(self._ledger):
            if tracked is resource:
                del self._ledger[index]
                return True
        return False

    def release_all(self) -> int:
        """
        Reverse every tracked resource exactly once, newest first.

        Returns:
            Number of resources handled, whether or not their release succeeded.
        """
        if not self._ledger:
            return 0

        pending = list(reversed(self._ledger))
        self._ledger.clear()
        self._draining = True
        failures = 0
        try:
            for resource in pending:
                try:
                    resource.release()
                except Exception as e:
                    failures += 1
                    logger.error(f"Failed to release {resource.describe()}: {e}")
        finally:
            self._draining = False
            self._ledger.clear()

        self._released_total += len(pending)
        if failures:
            logger.warning(f"Released {len(pending)} resources with {failures} errors")
        else:
            logger.debug(f"Released {len(pending)} resources")
        return len(pending)

    def resources(self, owner: Optional[str] = None) -> List[TrackedResource]:
        """Copy of the ledger, optionally filtered by owning component."""
        if owner is None:
            return list(self._ledger)
        return [r for r in self._ledger if r.owner == owner]

    def count_by_kind(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for resource in self._ledger:
            counts[resource.kind.value] = counts.get(resource.kind.value, 0) + 1
        return counts

    @property
    def released_total(self) -> int:
        return self._released_total

    def __len__(self) -> int:
        return len(self._ledger)
