"""
Shared collaborators passed to every CMS Scout component.

Components never reach for global state: the scanner, updater and translation
store all receive a ScanContext carrying the logger, cache store, file storage,
HTTP fetcher and configuration they should use.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from cms_scout.core.cache import MemoryCache
from cms_scout.core.http import FetchResponse, RequestsFetcher
from cms_scout.core.storage import LocalStorage


class CacheStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None: ...

    def forget(self, key: str) -> bool: ...


class FileStorage(Protocol):
    def read(self, path) -> bytes: ...

    def write(self, path, data: bytes) -> int: ...

    def exists(self, path) -> bool: ...

    def copy(self, source, destination) -> None: ...

    def move(self, source, destination) -> None: ...

    def delete(self, path) -> bool: ...

    def list_directories(self, path) -> List[str]: ...


class HttpFetcher(Protocol):
    def get(self, url: str, headers: Optional[Dict[str, str]] = None, timeout: float = 30) -> FetchResponse: ...


@dataclass
class ScanContext:
    """Bundle of collaborators and configuration for one CMS Scout setup."""

    config: Dict[str, Any] = field(default_factory=dict)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("cms_scout"))
    cache: CacheStore = field(default_factory=MemoryCache)
    storage: FileStorage = field(default_factory=LocalStorage)
    fetcher: Optional[HttpFetcher] = None

    def section(self, name: str) -> Dict[str, Any]:
        """Return a config section (e.g. "scanner"), empty if absent."""
        return dict(self.config.get(name) or {})

    def get_fetcher(self) -> HttpFetcher:
        """Return the HTTP fetcher, creating the requests-based one on first use."""
        if self.fetcher is None:
            self.fetcher = RequestsFetcher(
                follow_redirects=self.section("scanner").get("follow_redirects", True)
            )
        return self.fetcher
