"""
Locator diagnostics.

Checks that every component's locator is reachable without activating
anything, for troubleshooting a suite that fails to load.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from suiteloader.config import RetrievalSettings
from suiteloader.core.manifest import ComponentDescriptor, ComponentManifest
from suiteloader.core.retrieval import Retriever
from suiteloader.logger import logger


@dataclass
class LocatorCheck:
    descriptor: ComponentDescriptor
    reachable: bool
    elapsed_ms: float
    error: Optional[str] = None


@dataclass
class DiagnosticsReport:
    checks: List[LocatorCheck] = field(default_factory=list)
    base_url: str = ""
    branch: str = ""
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def unreachable(self) -> List[LocatorCheck]:
        return [c for c in self.checks if not c.reachable]

    @property
    def healthy(self) -> bool:
        return not self.unreachable

    def format(self) -> str:
        lines = ["=" * 60, "Suite Diagnostics", "=" * 60]
        lines.append(f"Time: {self.created_at.strftime('%Y-%m-%d %H:%M:%S')}")
        if self.base_url:
            lines.append(f"Base URL: {self.base_url}")
        if self.branch:
            lines.append(f"Branch: {self.branch}")
        lines.append("")
        for check in self.checks:
            mark = "✓" if check.reachable else "✗"
            tag = " [CRITICAL]" if check.descriptor.critical else ""
            line = f"  {mark} {check.descriptor.id}{tag}: {check.descriptor.locator} ({check.elapsed_ms:.0f}ms)"
            if check.error:
                line += f" - {check.error}"
            lines.append(line)
        lines.append("")
        lines.append(f"Reachable: {len(self.checks) - len(self.unreachable)}/{len(self.checks)}")
        lines.append("=" * 60)
        return "\n".join(lines)


async def _check(descriptor: ComponentDescriptor, retriever: Retriever) -> LocatorCheck:
    started = time.perf_counter()
    error = None
    try:
        reachable = await retriever.probe(descriptor.locator)
    except Exception as e:
        reachable = False
        error = str(e)
    return LocatorCheck(
        descriptor=descriptor,
        reachable=reachable,
        elapsed_ms=(time.perf_counter() - started) * 1000,
        error=error,
    )


async def run_diagnostics(
    manifest: ComponentManifest,
    retriever: Retriever,
    settings: Optional[RetrievalSettings] = None,
) -> DiagnosticsReport:
    """Probe every locator in the manifest concurrently."""
    logger.info(f"Running diagnostics for {len(manifest)} components")
    checks = await asyncio.gather(*(_check(d, retriever) for d in manifest))
    report = DiagnosticsReport(
        checks=list(checks),
        base_url=settings.resolved_base_url() if settings else "",
        branch=settings.active_branch if settings else "",
    )
    for check in report.unreachable:
        level = "ERROR" if check.descriptor.critical else "WARNING"
        logger.log(level, f"Locator unreachable for {check.descriptor.id}: {check.descriptor.locator}")
    return report
