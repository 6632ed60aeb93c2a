"""
Component Manifest
Static, ordered list of component descriptors. Order is load order.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

from suiteloader.config import SuiteSettings
from suiteloader.exceptions import ManifestError
from suiteloader.logger import logger


@dataclass(frozen=True)
class ComponentDescriptor:
    """Immutable description of one component."""
    id: str
    display_name: str
    locator: str
    critical: bool = False
    description: str = ""


class ComponentManifest:
    """
    Read-only ordered sequence of descriptors.

    Construction validates the whole list and raises ManifestError when an
    id is empty or duplicated, a locator is empty, or the list is empty.
    """

    def __init__(self, descriptors: Iterable[ComponentDescriptor]):
        self._descriptors = tuple(descriptors)
        self.validate()

    def validate(self) -> None:
        issues: List[str] = []
        if not self._descriptors:
            issues.append("manifest contains no components")

        seen = set()
        for position, descriptor in enumerate(self._descriptors):
            if not descriptor.id:
                issues.append(f"component at position {position} has an empty id")
            elif descriptor.id in seen:
                issues.append(f"duplicate component id: {descriptor.id}")
            seen.add(descriptor.id)
            if not descriptor.locator or not descriptor.locator.strip():
                issues.append(f"component {descriptor.id or position} has an empty locator")

        if issues:
            for issue in issues:
                logger.error(f"Manifest configuration error: {issue}")
            raise ManifestError(issues)

        if not any(d.critical for d in self._descriptors):
            logger.warning("Manifest declares no critical components")

    def __iter__(self) -> Iterator[ComponentDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __getitem__(self, index: int) -> ComponentDescriptor:
        return self._descriptors[index]

    @property
    def descriptors(self) -> Sequence[ComponentDescriptor]:
        return self._descriptors

    @property
    def critical_ids(self) -> List[str]:
        return [d.id for d in self._descriptors if d.critical]

    def find(self, id: str) -> Optional[ComponentDescriptor]:
        for descriptor in self._descriptors:
            if descriptor.id == id:
                return descriptor
        return None

    @classmethod
    def from_settings(cls, settings: SuiteSettings) -> "ComponentManifest":
        """Build a manifest from configuration, skipping disabled components."""
        base_url = settings.retrieval.resolved_base_url()
        descriptors = []
        for component in settings.components:
            if not component.enabled:
                logger.info(f"Component {component.id} disabled in configuration, skipping")
                continue
            descriptors.append(
                ComponentDescriptor(
                    id=component.id,
                    display_name=component.name or component.id,
                    locator=component.resolve_locator(base_url),
                    critical=component.critical,
                    description=component.description,
                )
            )
        return cls(descriptors)
