import threading
import tomllib
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from suiteloader.exceptions import ConfigError


def get_project_root() -> Path:
    """Get the project root directory"""
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = get_project_root()


class LoaderSettings(BaseModel):
    """Timing policy for the sequential loader (all values in seconds)"""

    load_timeout: float = Field(30.0, description="Bound on retrieval plus activation of one component")
    readiness_timeout: float = Field(
        10.0, description="How long to wait for a critical component to register itself"
    )
    readiness_poll_interval: float = Field(0.1, description="Interval between registration checks")
    settle_delay: float = Field(0.5, description="Pause after activating an optional component")
    critical_failure_pause: float = Field(
        1.0, description="Pause after a critical component fails before continuing"
    )
    startup_delay: float = Field(0.0, description="Delay before the first component is retrieved")


class RetrievalSettings(BaseModel):
    """Where component code is fetched from"""

    base_url: str = Field("", description="Prefix joined onto relative locators; may contain {branch}")
    branch: str = Field("main", description="Branch substituted into base_url")
    dev_branch: str = Field("dev", description="Branch used when development_mode is on")
    development_mode: bool = Field(False, description="Load components from the development branch")
    cache_bust: bool = Field(True, description="Append a cache-busting query parameter to HTTP fetches")
    http_timeout: float = Field(30.0, description="HTTP request timeout in seconds")
    max_retries: int = Field(3, description="Attempts per HTTP fetch on transport errors")
    user_agent: str = Field("suiteloader/0.1", description="User-Agent header for HTTP fetches")

    @property
    def active_branch(self) -> str:
        return self.dev_branch if self.development_mode else self.branch

    def resolved_base_url(self) -> str:
        return self.base_url.replace("{branch}", self.active_branch)


class LogSettings(BaseModel):
    print_level: str = Field("INFO", description="Console log level")
    logfile_level: str = Field("DEBUG", description="Log file level")
    log_to_file: bool = Field(True, description="Write a dated log file under logs/")


class ComponentSettings(BaseModel):
    """One manifest entry as written in the configuration file"""

    id: str = Field(..., description="Unique component identifier")
    name: str = Field("", description="Human readable name; defaults to the id")
    locator: str = Field(..., description="Retrieval locator, absolute or relative to base_url")
    critical: bool = Field(False, description="Other components depend on this one")
    description: str = Field("", description="Free text shown in diagnostics")
    enabled: bool = Field(True, description="Skip the component entirely when false")

    def resolve_locator(self, base_url: str) -> str:
        if not self.locator or not base_url or _has_scheme(self.locator):
            return self.locator
        return base_url.rstrip("/") + "/" + self.locator.lstrip("/")


class SuiteSettings(BaseModel):
    loader: LoaderSettings = Field(default_factory=LoaderSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    components: List[ComponentSettings] = Field(default_factory=list)


def _has_scheme(locator: str) -> bool:
    if locator.startswith(("module:", "/", "./", "../")):
        return True
    head, sep, _ = locator.partition("://")
    return bool(sep) and head.isalpha()


class Config:
    _instance = None
    _lock = threading.Lock()
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            with self._lock:
                if not self._initialized:
                    self._settings = self.load(self._get_config_path())
                    self._initialized = True

    @staticmethod
    def _get_config_path() -> Path:
        root = PROJECT_ROOT
        config_path = root / "config" / "config.toml"
        if config_path.exists():
            return config_path
        example_path = root / "config" / "config.example.toml"
        if example_path.exists():
            return example_path
        raise ConfigError("No configuration file found in config directory")

    @staticmethod
    def load(path: Optional[Path] = None) -> SuiteSettings:
        """Read and validate a suite configuration file."""
        config_path = Path(path) if path is not None else Config._get_config_path()
        try:
            with config_path.open("rb") as f:
                raw_config = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Cannot read configuration {config_path}: {e}") from e
        try:
            return SuiteSettings(**raw_config)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration {config_path}: {e}") from e

    @property
    def settings(self) -> SuiteSettings:
        return self._settings

    @property
    def loader(self) -> LoaderSettings:
        """Get the loader timing configuration"""
        return self._settings.loader

    @property
    def retrieval(self) -> RetrievalSettings:
        """Get the retrieval configuration"""
        return self._settings.retrieval

    @property
    def log(self) -> LogSettings:
        return self._settings.log

    @property
    def components(self) -> List[ComponentSettings]:
        return self._settings.components
