"""
Registration Directory
Process-wide map of published components, shared utilities and a
synchronous publish/subscribe channel.
"""

import itertools
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Type,
    TypeVar,
    runtime_checkable,
)

from suiteloader.core.resource_tracker import ResourceKind, ResourceTracker, TrackedResource
from suiteloader.logger import logger

T = TypeVar("T")


@runtime_checkable
class HasLifecycle(Protocol):
    """A component api that wants to be told when the suite is torn down."""

    def on_unload(self) -> Any: ...


@runtime_checkable
class PublishesUtilities(Protocol):
    """A component api whose helpers are shared in the utility namespace."""

    def utilities(self) -> Mapping[str, Callable]: ...


@dataclass
class EntryMetadata:
    name: str
    version: str = "1.0.0"
    dependencies: List[str] = field(default_factory=list)
    registered_at: datetime = field(default_factory=datetime.now)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RegistryEntry:
    id: str
    api: Any
    metadata: EntryMetadata


@dataclass
class EventSubscription:
    event: str
    callback: Callable[[Any], Any]
    priority: int = 0
    once: bool = False
    owner: Optional[str] = None
    seq: int = 0
    active: bool = True
    resource: Optional[TrackedResource] = None


class RegistrationDirectory:
    """
    Central directory through which components discover each other.

    Reads never raise: ``get`` returns None and ``has`` returns False for
    unknown ids, leaving the reaction to the caller. Events are delivered
    synchronously, highest priority first and in subscription order
    within a priority.
    """

    def __init__(self, tracker: Optional[ResourceTracker] = None, history_limit: int = 100):
        self._tracker = tracker
        self._entries: Dict[str, RegistryEntry] = {}
        self._utilities: Dict[str, Callable] = {}
        self._subscribers: Dict[str, List[EventSubscription]] = {}
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_limit)
        self._seq = itertools.count()

    @property
    def tracker(self) -> Optional[ResourceTracker]:
        return self._tracker

    # -- components ---------------------------------------------------

    def register(self, id: str, api: Any, metadata: Optional[Mapping[str, Any]] = None) -> RegistryEntry:
        """
        Publish a component under ``id``, replacing any previous entry.

        Args:
            id: Component identifier (must be non-empty)
            api: Opaque handle exposed to other components
            metadata: Optional ``name``, ``version``, ``dependencies``; other
                keys are kept in ``extra``

        Returns:
            The stored entry, also delivered to ``"<id>:loaded"`` subscribers
        """
        if not id:
            raise ValueError("Component id must be a non-empty string")

        meta = dict(metadata or {})
        entry = RegistryEntry(
            id=id,
            api=api,
            metadata=EntryMetadata(
                name=meta.pop("name", None) or id,
                version=str(meta.pop("version", "1.0.0")),
                dependencies=list(meta.pop("dependencies", None) or []),
                extra=meta,
            ),
        )

        if id in self._entries:
            logger.warning(f"Component {id} already registered, overwriting")
        self._entries[id] = entry
        self._record("register", id)
        logger.info(f"Registered component: {id} v{entry.metadata.version}")

        missing = [dep for dep in entry.metadata.dependencies if dep not in self._entries]
        if missing:
            logger.warning(f"Component {id} registered with missing dependencies: {', '.join(missing)}")

        if isinstance(api, PublishesUtilities):
            try:
                for name, fn in api.utilities().items():
                    self.register_utility(name, fn)
            except Exception as e:
                logger.error(f"Failed to publish utilities of {id}: {e}")

        self.emit(f"{id}:loaded", entry)
        return entry

    def get(self, id: str) -> Any:
        """Return the api registered under ``id``, or None."""
        entry = self._entries.get(id)
        return entry.api if entry is not None else None

    def get_entry(self, id: str) -> Optional[RegistryEntry]:
        return self._entries.get(id)

    def has(self, id: str) -> bool:
        return id in self._entries

    def get_capability(self, id: str, capability: Type[T]) -> Optional[T]:
        """Return the api of ``id`` only if it satisfies ``capability``."""
        api = self.get(id)
        if api is not None and isinstance(api, capability):
            return api
        return None

    def call(self, id: str, method: str, *args, **kwargs) -> Any:
        """
        Invoke ``method`` on a registered component.

        Returns None when the component or the method is absent, or when
        the call raises; the error is logged.
        """
        if id not in self._entries:
            logger.warning(f"Cannot call {id}.{method}: component not registered")
            return None

        api = self._entries[id].api
        if isinstance(api, Mapping):
            fn = api.get(method)
        else:
            fn = getattr(api, method, None)
        if not callable(fn):
            logger.warning(f"Cannot call {id}.{method}: no such method")
            return None

        try:
            return fn(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error calling {id}.{method}: {e}")
            return None

    def list(self) -> List[str]:
        """Registered ids in first-registration order."""
        return list(self._entries)

    # -- utilities ----------------------------------------------------

    def register_utility(self, name: str, fn: Callable) -> None:
        if name in self._utilities:
            logger.debug(f"Utility {name} replaced")
        self._utilities[name] = fn
        self._record("utility", name)

    def get_utility(self, name: str) -> Optional[Callable]:
        return self._utilities.get(name)

    # -- events -------------------------------------------------------

    def on(
        self,
        event: str,
        callback: Callable[[Any], Any],
        *,
        once: bool = False,
        priority: int = 0,
        owner: Optional[str] = None,
    ) -> Callable[[], None]:
        """
        Subscribe to ``event``.

        Returns:
            An unsubscribe function; calling it more than once is harmless.
        """
        subscription = EventSubscription(
            event=event,
            callback=callback,
            priority=priority,
            once=once,
            owner=owner,
            seq=next(self._seq),
        )
        subscribers = self._subscribers.setdefault(event, [])
        position = len(subscribers)
        while position > 0 and subscribers[position - 1].priority < priority:
            position -= 1
        subscribers.insert(position, subscription)

        def unsubscribe() -> None:
            self._remove(subscription)

        if self._tracker is not None:
            resource = TrackedResource(
                ResourceKind.SUBSCRIPTION,
                subscription,
                unsubscribe,
                owner=owner,
                label=event,
            )
            if self._tracker.track(resource):
                subscription.resource = resource
        return unsubscribe

    def once(self, event: str, callback: Callable[[Any], Any], *, priority: int = 0, owner: Optional[str] = None) -> Callable[[], None]:
        return self.on(event, callback, once=True, priority=priority, owner=owner)

    def off(self, event: str, callback: Callable[[Any], Any]) -> bool:
        """Remove the first subscription of ``callback`` to ``event``."""
        for subscription in self._subscribers.get(event, []):
            if subscription.callback == callback:
                self._remove(subscription)
                return True
        return False

    def emit(self, event: str, data: Any = None) -> int:
        """
        Synchronously deliver ``data`` to every current subscriber.

        A failing subscriber is logged and skipped. Returns the number of
        callbacks invoked.
        """
        snapshot = list(self._subscribers.get(event, []))
        invoked = 0
        for subscription in snapshot:
            if subscription.once:
                if not subscription.active:
                    continue
                self._remove(subscription)
            invoked += 1
            try:
                subscription.callback(data)
            except Exception as e:
                logger.error(f"Event subscriber for {event} failed: {e}")
        return invoked

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))

    def _remove(self, subscription: EventSubscription) -> None:
        if not subscription.active:
            return
        subscription.active = False
        self._untrack(subscription)
        subscribers = self._subscribers.get(subscription.event)
        if not subscribers:
            return
        try:
            subscribers.remove(subscription)
        except ValueError:
            return
        if not subscribers:
            del self._subscribers[subscription.event]

    def _untrack(self, subscription: EventSubscription) -> None:
        if subscription.resource is not None and self._tracker is not None:
            self._tracker.untrack(subscription.resource)
        subscription.resource = None

    # -- diagnostics --------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Snapshot of the directory; safe to mutate."""
        return {
            "components": list(self._entries),
            "utilities": list(self._utilities),
            "events": list(self._subscribers),
            "subscribers": {event: len(subs) for event, subs in self._subscribers.items()},
            "total_components": len(self._entries),
        }

    def history(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        records = list(self._history)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return [dict(record) for record in records]

    def _record(self, action: str, id: str) -> None:
        self._history.append({"action": action, "id": id, "timestamp": datetime.now()})

    def clear(self) -> None:
        """Drop every entry, utility and subscription."""
        for subscribers in self._subscribers.values():
            for subscription in subscribers:
                subscription.active = False
                self._untrack(subscription)
        self._subscribers.clear()
        self._entries.clear()
        self._utilities.clear()
        self._record("clear", "*")
        logger.info("Registration directory cleared")
