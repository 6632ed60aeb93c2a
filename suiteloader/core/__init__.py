"""
Core module for the sequenced component loading and coordination layer.
"""

from suiteloader.core.activation import ComponentContext, HostEnvironment, LocalHost
from suiteloader.core.error_isolation import ErrorIsolation
from suiteloader.core.loader import SequentialLoader
from suiteloader.core.manifest import ComponentDescriptor, ComponentManifest
from suiteloader.core.progress import (
    ConsoleProgressReporter,
    NullProgressReporter,
    ProgressReporter,
    RecordingProgressReporter,
)
from suiteloader.core.registry import HasLifecycle, PublishesUtilities, RegistrationDirectory
from suiteloader.core.resource_tracker import ResourceKind, ResourceTracker, TrackedResource
from suiteloader.core.results import LoadOutcome, LoadResult, Registration, SuiteResult, SuiteStatus
from suiteloader.core.suite import ExtensionSuite

__all__ = [
    "ComponentContext",
    "ComponentDescriptor",
    "ComponentManifest",
    "ConsoleProgressReporter",
    "ErrorIsolation",
    "ExtensionSuite",
    "HasLifecycle",
    "HostEnvironment",
    "LoadOutcome",
    "LoadResult",
    "LocalHost",
    "NullProgressReporter",
    "ProgressReporter",
    "PublishesUtilities",
    "RecordingProgressReporter",
    "Registration",
    "RegistrationDirectory",
    "ResourceKind",
    "ResourceTracker",
    "SequentialLoader",
    "SuiteResult",
    "SuiteStatus",
    "TrackedResource",
]
