"""
Load results.

Produced fresh by every loader run and never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from suiteloader.core.manifest import ComponentDescriptor


class LoadOutcome(Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class Registration(Enum):
    """Whether a loaded component's self-registration was observed."""
    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"
    NOT_CHECKED = "not_checked"


class SuiteStatus(Enum):
    """Terminal classification of a suite run."""
    SUCCESS = "success"
    DEGRADED = "degraded"
    CRITICAL_FAILURE = "critical_failure"


@dataclass
class LoadResult:
    descriptor: ComponentDescriptor
    outcome: LoadOutcome
    elapsed_ms: float = 0.0
    error_message: Optional[str] = None
    registration: Registration = Registration.NOT_CHECKED
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome is LoadOutcome.SUCCESS

    @property
    def soft_success(self) -> bool:
        """Loaded, but a critical component never confirmed its registration."""
        return self.succeeded and self.registration is Registration.UNCONFIRMED


@dataclass
class SuiteResult:
    successful: List[LoadResult] = field(default_factory=list)
    failed: List[LoadResult] = field(default_factory=list)
    total_elapsed_ms: float = 0.0

    @property
    def status(self) -> SuiteStatus:
        if any(r.descriptor.critical for r in self.failed):
            return SuiteStatus.CRITICAL_FAILURE
        if self.failed:
            return SuiteStatus.DEGRADED
        return SuiteStatus.SUCCESS

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def unconfirmed(self) -> List[LoadResult]:
        return [r for r in self.successful if r.soft_success]

    @property
    def critical_failures(self) -> List[LoadResult]:
        return [r for r in self.failed if r.descriptor.critical]

    def result_for(self, component_id: str) -> Optional[LoadResult]:
        for result in self.successful + self.failed:
            if result.descriptor.id == component_id:
                return result
        return None
