"""
Component activation.

Turns fetched content into a running component: source text is compiled
into a fresh module, then the component's entry point is invoked with a
ComponentContext. Entry points are looked up in this order:

1. ``component.on_load(context)`` on a module-level ``component`` object
2. a module-level ``on_load(context)`` function
3. none: the module body is the activation (it can use the injected
   ``context`` global)

Entry points may be coroutines. ``on_unload`` on the same object (or at
module level) is remembered for teardown.
"""

import asyncio
import getpass
import importlib.util
import inspect
import os
import sys
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Callable, Dict, List, Optional, Protocol

from suiteloader.core.manifest import ComponentDescriptor
from suiteloader.core.registry import RegistrationDirectory, RegistryEntry
from suiteloader.core.resource_tracker import ResourceKind, ResourceTracker, TrackedResource
from suiteloader.core.retrieval import FetchedComponent
from suiteloader.exceptions import ActivationError
from suiteloader.logger import logger

COMPONENT_PACKAGE = "suiteloader_components"


class HostEnvironment(Protocol):
    """Primitives the host platform offers to components."""

    def current_user(self) -> Optional[str]: ...

    def add_command(self, label: str, callback: Callable[[], Any]) -> None: ...

    def remove_command(self, label: str) -> None: ...


class LocalHost:
    """Host environment for running the suite in a plain process."""

    def __init__(self, user: Optional[str] = None):
        self._user = user
        self.commands: Dict[str, Callable[[], Any]] = {}

    def current_user(self) -> Optional[str]:
        if self._user:
            return self._user
        env_user = os.environ.get("SUITELOADER_USER")
        if env_user:
            return env_user
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return None

    def add_command(self, label: str, callback: Callable[[], Any]) -> None:
        self.commands[label] = callback
        logger.debug(f"Command added: {label}")

    def remove_command(self, label: str) -> None:
        self.commands.pop(label, None)
        logger.debug(f"Command removed: {label}")

    def run_command(self, label: str) -> Any:
        callback = self.commands.get(label)
        if callback is None:
            logger.warning(f"Unknown command: {label}")
            return None
        return callback()


class ComponentContext:
    """Everything a component's entry point is handed."""

    def __init__(
        self,
        descriptor: ComponentDescriptor,
        directory: RegistrationDirectory,
        tracker: ResourceTracker,
        host: HostEnvironment,
    ):
        self.descriptor = descriptor
        self.directory = directory
        self.tracker = tracker
        self.host = host
        self.logger = logger.bind(component=descriptor.id)

    @property
    def id(self) -> str:
        return self.descriptor.id

    def current_user(self) -> Optional[str]:
        return self.host.current_user()

    def register(self, api: Any, **metadata) -> RegistryEntry:
        """Publish this component under its descriptor id."""
        metadata.setdefault("name", self.descriptor.display_name)
        return self.directory.register(self.descriptor.id, api, metadata)

    def register_utility(self, name: str, fn: Callable) -> None:
        self.directory.register_utility(name, fn)

    def subscribe(self, event: str, callback: Callable[[Any], Any], *, once: bool = False, priority: int = 0) -> Callable[[], None]:
        unsubscribe = self.directory.on(event, callback, once=once, priority=priority, owner=self.id)
        if self.directory.tracker is self.tracker:
            return unsubscribe

        resource = TrackedResource(ResourceKind.SUBSCRIPTION, callback, unsubscribe, owner=self.id, label=event)
        self.tracker.track(resource)

        def release() -> None:
            unsubscribe()
            self.tracker.untrack(resource)

        return release

    def call_later(self, delay: float, callback: Callable[..., Any], *args):
        label = getattr(callback, "__name__", "timer")

        def fire() -> None:
            self.tracker.untrack(resource)
            callback(*args)

        handle = asyncio.get_running_loop().call_later(delay, fire)
        resource = TrackedResource(ResourceKind.TIMER, handle, handle.cancel, owner=self.id, label=label)
        self.tracker.track(resource)
        return handle

    def add_command(self, label: str, callback: Callable[[], Any]) -> None:
        self.host.add_command(label, callback)
        self.tracker.track_command(label, lambda: self.host.remove_command(label), owner=self.id)

    def track_element(self, element: Any, remove: Optional[Callable[[], Any]] = None, label: str = "") -> Any:
        """Track something the component created; ``element.remove()`` reverses it by default."""
        release = remove or getattr(element, "remove")
        self.tracker.track_element(element, release, owner=self.id, label=label)
        return element


@dataclass
class ActivatedComponent:
    descriptor: ComponentDescriptor
    module: ModuleType
    entry: Any = None
    unload: Optional[Callable[[], Any]] = None


class Activator:
    """Compile and start components, keeping track of the modules it created."""

    def __init__(self):
        self._module_names: List[str] = []

    @staticmethod
    def module_name(component_id: str) -> str:
        safe = "".join(ch if ch.isalnum() else "_" for ch in component_id)
        return f"{COMPONENT_PACKAGE}.{safe}"

    def _compile(self, descriptor: ComponentDescriptor, fetched: FetchedComponent, context: ComponentContext) -> ModuleType:
        name = self.module_name(descriptor.id)
        try:
            code = compile(fetched.source or "", fetched.origin or fetched.locator, "exec")
        except SyntaxError as e:
            raise ActivationError(descriptor.id, f"Invalid component source: {e}", e) from e

        spec = importlib.util.spec_from_loader(name, loader=None, origin=fetched.origin or fetched.locator)
        module = importlib.util.module_from_spec(spec)
        module.__file__ = fetched.origin or fetched.locator
        module.context = context

        sys.modules[name] = module
        try:
            exec(code, module.__dict__)
        except Exception as e:
            del sys.modules[name]
            raise ActivationError(descriptor.id, f"Component body raised: {e}", e) from e

        if name not in self._module_names:
            self._module_names.append(name)
        return module

    async def activate(
        self,
        descriptor: ComponentDescriptor,
        fetched: FetchedComponent,
        context: ComponentContext,
    ) -> ActivatedComponent:
        if fetched.module is not None:
            module = fetched.module
        else:
            module = self._compile(descriptor, fetched, context)

        entry = getattr(module, "component", None)
        if entry is not None and callable(getattr(entry, "on_load", None)):
            start = entry.on_load
        elif callable(getattr(module, "on_load", None)):
            entry = None
            start = module.on_load
        else:
            entry = None
            start = None

        if start is not None:
            try:
                result = start(context)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                raise ActivationError(descriptor.id, f"Entry point raised: {e}", e) from e
        else:
            logger.debug(f"{descriptor.id} has no entry point, module body was its activation")

        unload = getattr(entry, "on_unload", None) if entry is not None else None
        if unload is None:
            unload = getattr(module, "on_unload", None)
        if not callable(unload):
            unload = None

        return ActivatedComponent(descriptor=descriptor, module=module, entry=entry, unload=unload)

    def unregister_modules(self) -> int:
        """Drop every compiled component module from ``sys.modules``."""
        removed = 0
        for name in self._module_names:
            if sys.modules.pop(name, None) is not None:
                removed += 1
        self._module_names.clear()
        return removed

    @property
    def module_names(self) -> List[str]:
        return list(self._module_names)
