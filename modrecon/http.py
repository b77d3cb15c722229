"""HTTP GET transport used to fetch missing bundle files from the original origin."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .logging import get_logger

# Some origins refuse requests that do not look like they come from a browser.
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_logger = get_logger("http")


@dataclass(frozen=True)
class FetchedContent:
    """Body and content type of a successful GET."""

    content: bytes
    content_type: str


Fetcher = Callable[[str], Optional[FetchedContent]]


def fetch_url(url: str, *, timeout: float = 30.0) -> Optional[FetchedContent]:
    """GET ``url``; any HTTP error status or transport failure yields ``None``."""
    request = Request(url, headers=dict(BROWSER_HEADERS), method="GET")
    try:
        with urlopen(request, timeout=timeout) as response:  # type: ignore[arg-type]
            status = getattr(response, "status", 200)
            if status is not None and not 200 <= int(status) < 300:
                _logger.debug("GET %s returned status %s", url, status)
                return None
            body = response.read()
            content_type = response.headers.get("Content-Type") if response.headers else None
    except HTTPError as exc:
        _logger.debug("GET %s failed with status %s", url, exc.code)
        return None
    except (URLError, OSError) as exc:
        _logger.debug("GET %s failed: %s", url, exc)
        return None
    return FetchedContent(content=body, content_type=content_type or DEFAULT_CONTENT_TYPE)


class HttpFetcher:
    """Callable fetcher bound to a request timeout."""

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    def __call__(self, url: str) -> Optional[FetchedContent]:
        return fetch_url(url, timeout=self.timeout)


__all__ = [
    "BROWSER_HEADERS",
    "DEFAULT_CONTENT_TYPE",
    "FetchedContent",
    "Fetcher",
    "HttpFetcher",
    "fetch_url",
]
