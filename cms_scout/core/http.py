"""
HTTP collaborator for remote page scanning, built on requests.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests

from cms_scout.core.errors import FetchError, FetchTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    """Minimal response shape the scanner relies on."""

    status: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class RequestsFetcher:
    """Fetch pages with a shared requests.Session."""

    def __init__(self, session: Optional[requests.Session] = None, follow_redirects: bool = True):
        self.session = session or requests.Session()
        self.follow_redirects = follow_redirects

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, timeout: float = 30) -> FetchResponse:
        try:
            response = self.session.get(
                url,
                headers=headers or {},
                timeout=timeout,
                allow_redirects=self.follow_redirects,
            )
        except requests.exceptions.Timeout as e:
            raise FetchTimeoutError(f"Timed out after {timeout}s fetching {url}") from e
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

        return FetchResponse(
            status=response.status_code,
            body=response.text,
            headers=dict(response.headers),
        )
