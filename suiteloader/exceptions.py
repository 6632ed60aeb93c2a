from typing import List, Optional


class SuiteError(Exception):
    """Base exception for all suite loader errors"""


class ConfigError(SuiteError):
    """Raised when the configuration file cannot be read or parsed"""


class ManifestError(SuiteError):
    """Raised when the component manifest is misconfigured.

    This is the only error that escapes a suite run, and it is raised before
    any component is retrieved.
    """

    def __init__(self, issues: List[str]):
        self.issues = list(issues)
        super().__init__("Invalid component manifest: " + "; ".join(self.issues))


class RetrievalError(SuiteError):
    """Raised when a component's code cannot be fetched from its locator"""

    def __init__(self, locator: str, message: str):
        self.locator = locator
        super().__init__(f"{message} ({locator})")


class ActivationError(SuiteError):
    """Raised when fetched component code cannot be activated"""

    def __init__(self, component_id: str, message: str, cause: Optional[BaseException] = None):
        self.component_id = component_id
        self.cause = cause
        super().__init__(f"{component_id}: {message}")
