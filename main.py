import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from suiteloader.config import Config, SuiteSettings
from suiteloader.core.diagnostics import run_diagnostics
from suiteloader.core.manifest import ComponentManifest
from suiteloader.core.progress import ConsoleProgressReporter
from suiteloader.core.results import SuiteStatus
from suiteloader.core.retrieval import SchemeRetriever
from suiteloader.core.suite import ExtensionSuite
from suiteloader.exceptions import ConfigError, ManifestError
from suiteloader.logger import define_log_level, logger

EXIT_OK = 0
EXIT_CRITICAL_FAILURE = 1
EXIT_CONFIG_ERROR = 2


async def run_diagnose_mode(settings: SuiteSettings) -> int:
    """Probe every component locator without loading anything."""
    manifest = ComponentManifest.from_settings(settings)
    retriever = SchemeRetriever.from_settings(settings.retrieval)
    try:
        report = await run_diagnostics(manifest, retriever, settings.retrieval)
    finally:
        await retriever.aclose()
    print(report.format())
    return EXIT_OK if report.healthy else EXIT_CRITICAL_FAILURE


async def run_suite_mode(settings: SuiteSettings) -> int:
    """Load the suite once, print the outcome and tear it down."""
    reporter = ConsoleProgressReporter(sink=print)
    suite = ExtensionSuite.from_settings(settings, reporter=reporter)
    try:
        result = await suite.start()
        if suite.error_isolation.has_errors():
            print(suite.error_isolation.format_error_report())
    finally:
        await suite.teardown()
    return EXIT_CRITICAL_FAILURE if result.status is SuiteStatus.CRITICAL_FAILURE else EXIT_OK


def load_settings(path: Optional[str]) -> SuiteSettings:
    if path:
        return Config.load(Path(path))
    return Config().settings


async def main(argv: Optional[List[str]] = None) -> int:
    # Parse command line arguments
    parser = argparse.ArgumentParser(description="suiteloader - sequenced component suite loader")
    parser.add_argument("--config", type=str, help="Path to a suite configuration file")
    parser.add_argument(
        "--diagnose", action="store_true", help="Check component locators without loading them"
    )
    parser.add_argument("--log-level", type=str, help="Console log level (overrides configuration)")
    parser.add_argument(
        "--dev", action="store_true", help="Load components from the development branch"
    )
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR

    if args.dev:
        settings.retrieval.development_mode = True

    define_log_level(
        print_level=(args.log_level or settings.log.print_level).upper(),
        logfile_level=settings.log.logfile_level,
        name="suiteloader",
        log_to_file=settings.log.log_to_file,
    )

    try:
        if args.diagnose:
            return await run_diagnose_mode(settings)
        return await run_suite_mode(settings)
    except ManifestError as e:
        logger.error(str(e))
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logger.warning("Operation interrupted.")
        return EXIT_CRITICAL_FAILURE


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
