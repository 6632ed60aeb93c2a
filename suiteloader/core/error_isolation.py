"""
Error Isolation
Keep component load failures from escaping the loader and record them for reporting.
"""

import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from suiteloader.logger import logger

T = TypeVar("T")


@dataclass
class ComponentError:
    """Information about a component load failure."""
    component_id: str
    error: BaseException
    traceback: str
    timestamp: datetime
    attempt: int = 1
    critical: bool = False


class ErrorIsolation:
    """
    Per-suite ledger of component failures.

    A component's entry is replaced on each new failure (``attempt`` keeps
    counting across runs) and dropped when the component later loads.
    """

    def __init__(self):
        self._errors: Dict[str, ComponentError] = {}
        self._attempts: Dict[str, int] = {}

    async def safe_load_async(
        self,
        component_id: str,
        loader_func: Callable[[], Awaitable[T]],
        critical: bool = False,
    ) -> Tuple[bool, Optional[T], Optional[BaseException]]:
        """
        Run ``loader_func`` and convert any exception into a value.

        Returns:
            Tuple of (success, result, error)
        """
        try:
            result = await loader_func()
        except Exception as e:
            self.record(component_id, e, critical=critical)
            return False, None, e
        self.clear_error(component_id)
        return True, result, None

    def record(self, component_id: str, error: BaseException, critical: bool = False) -> ComponentError:
        attempt = self._attempts.get(component_id, 0) + 1
        self._attempts[component_id] = attempt
        if error.__traceback__ is not None:
            tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            tb = ""
        info = ComponentError(
            component_id=component_id,
            error=error,
            traceback=tb,
            timestamp=datetime.now(),
            attempt=attempt,
            critical=critical,
        )
        self._errors[component_id] = info
        logger.debug(f"Recorded failure #{attempt} for {component_id}: {error}")
        return info

    def get_error(self, component_id: str) -> Optional[ComponentError]:
        return self._errors.get(component_id)

    def get_all_errors(self) -> Dict[str, ComponentError]:
        return self._errors.copy()

    def clear_error(self, component_id: str):
        self._errors.pop(component_id, None)

    def clear_all_errors(self):
        self._errors.clear()
        self._attempts.clear()

    def get_failed_components(self) -> List[str]:
        return list(self._errors.keys())

    def has_errors(self) -> bool:
        return len(self._errors) > 0

    def format_error_report(self) -> str:
        """Format all errors as a human-readable report."""
        if not self._errors:
            return "No component errors recorded."

        lines = ["Component Loading Errors:", ""]

        for component_id, error in self._errors.items():
            tag = " (CRITICAL)" if error.critical else ""
            lines.append(f"Component: {component_id}{tag}")
            lines.append(f"  Error: {type(error.error).__name__}: {error.error}")
            lines.append(f"  Time: {error.timestamp.strftime('%Y-%m-%d %H:%M:%S')}")
            lines.append(f"  Attempt: {error.attempt}")
            lines.append("")

        return "\n".join(lines)
