"""
Component retrieval.

Fetches a component's executable content from its locator. Locators are
dispatched on their scheme: ``http(s)://`` via httpx with retries,
``file://`` or a plain path from disk, and ``module:<dotted.path>`` from an
importable Python module.
"""

import asyncio
import importlib
import importlib.util
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Dict, Optional, Protocol
from urllib.parse import unquote, urlparse

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from suiteloader.config import RetrievalSettings
from suiteloader.exceptions import RetrievalError
from suiteloader.logger import logger

MODULE_SCHEME = "module:"


@dataclass
class FetchedComponent:
    """Executable content for one component: either source text or an imported module."""
    locator: str
    source: Optional[str] = None
    module: Optional[ModuleType] = None
    origin: str = ""


class Retriever(Protocol):
    async def fetch(self, locator: str) -> FetchedComponent: ...

    async def probe(self, locator: str) -> bool: ...


class HttpRetriever:
    """Fetch component source over HTTP with retry on transport errors."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 3,
        cache_bust: bool = True,
        user_agent: str = "suiteloader/0.1",
        retry_delay_min: float = 1.0,
        retry_delay_max: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.cache_bust = cache_bust
        self.user_agent = user_agent
        self.retry_delay_min = retry_delay_min
        self.retry_delay_max = retry_delay_max
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            client_kwargs = {
                "timeout": self.timeout,
                "follow_redirects": True,
                "headers": {"User-Agent": self.user_agent},
            }
            if self._transport is not None:
                client_kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**client_kwargs)
        return self._client

    async def _get(self, url: str, params: Dict[str, str]) -> httpx.Response:
        client = self._get_client()
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=self.retry_delay_min, max=self.retry_delay_max),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying fetch of {url} (attempt {attempt.retry_state.attempt_number})")
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response
        raise RetrievalError(url, "Retries exhausted")

    async def fetch(self, locator: str) -> FetchedComponent:
        params = {"cb": str(int(time.time() * 1000))} if self.cache_bust else {}
        logger.debug(f"Fetching component from {locator}")
        try:
            response = await self._get(locator, params)
        except httpx.HTTPStatusError as e:
            raise RetrievalError(locator, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise RetrievalError(locator, f"Network error: {e}") from e
        return FetchedComponent(locator=locator, source=response.text, origin=str(response.url))

    async def probe(self, locator: str) -> bool:
        try:
            response = await self._get_client().head(locator)
        except httpx.HTTPError as e:
            logger.debug(f"Probe of {locator} failed: {e}")
            return False
        return response.status_code < 400

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class FileRetriever:
    """Read component source from the local filesystem."""

    @staticmethod
    def to_path(locator: str) -> Path:
        if locator.startswith("file://"):
            return Path(unquote(urlparse(locator).path))
        return Path(locator)

    async def fetch(self, locator: str) -> FetchedComponent:
        path = self.to_path(locator)
        try:
            source = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as e:
            raise RetrievalError(locator, f"Cannot read file: {e.strerror or e}") from e
        return FetchedComponent(locator=locator, source=source, origin=str(path))

    async def probe(self, locator: str) -> bool:
        return self.to_path(locator).is_file()


class ModuleRetriever:
    """
    Import a component shipped as a Python module.

    A module imported by an earlier run is reloaded so that its body runs
    again against the fresh suite state.
    """

    def __init__(self):
        self._imported: set = set()

    @staticmethod
    def module_name(locator: str) -> str:
        return locator[len(MODULE_SCHEME):].strip()

    async def fetch(self, locator: str) -> FetchedComponent:
        name = self.module_name(locator)
        try:
            if name in self._imported and name in sys.modules:
                module = importlib.reload(sys.modules[name])
            else:
                module = importlib.import_module(name)
        except ModuleNotFoundError as e:
            raise RetrievalError(locator, f"Module not found: {e.name}") from e
        except Exception as e:
            raise RetrievalError(locator, f"Import failed: {e}") from e
        self._imported.add(name)
        return FetchedComponent(locator=locator, module=module, origin=name)

    async def probe(self, locator: str) -> bool:
        try:
            return importlib.util.find_spec(self.module_name(locator)) is not None
        except (ImportError, ValueError):
            return False


class SchemeRetriever:
    """Dispatch a locator to the retriever for its scheme."""

    def __init__(
        self,
        http: Optional[HttpRetriever] = None,
        files: Optional[FileRetriever] = None,
        modules: Optional[ModuleRetriever] = None,
    ):
        self.http = http or HttpRetriever()
        self.files = files or FileRetriever()
        self.modules = modules or ModuleRetriever()

    @classmethod
    def from_settings(cls, settings: RetrievalSettings) -> "SchemeRetriever":
        return cls(
            http=HttpRetriever(
                timeout=settings.http_timeout,
                max_retries=settings.max_retries,
                cache_bust=settings.cache_bust,
                user_agent=settings.user_agent,
            )
        )

    def resolve(self, locator: str) -> Retriever:
        if locator.startswith(MODULE_SCHEME):
            return self.modules
        scheme = urlparse(locator).scheme.lower()
        if scheme in ("http", "https"):
            return self.http
        if scheme == "file" or not scheme or len(scheme) == 1:
            # single letter schemes are Windows drive letters
            return self.files
        raise RetrievalError(locator, f"Unsupported locator scheme: {scheme}")

    async def fetch(self, locator: str) -> FetchedComponent:
        return await self.resolve(locator).fetch(locator)

    async def probe(self, locator: str) -> bool:
        try:
            retriever = self.resolve(locator)
        except RetrievalError:
            return False
        return await retriever.probe(locator)

    async def aclose(self) -> None:
        await self.http.aclose()
