"""Remote chapter existence check.

A chapter exists when its URL answers with a 2xx status. Transport
failures are raised as UpstreamError, never reported as a missing chapter.
"""

from __future__ import annotations

import requests

from .errors import UpstreamError
from .logging_config import get_logger
from .models import CatalogEntry

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "dripfeed/0.1 (+chapter release feeds)"


class ChapterSource:
    """Checks whether chapters of a catalog entry are published."""

    def __init__(
        self,
        timeout: float = 10.0,
        method: str = "GET",
        retries: int = 0,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        """
        Args:
            timeout: Seconds to wait for connect and for each read
            method: GET or HEAD
            retries: Extra attempts after a connection error or timeout
            user_agent: Value of the User-Agent header
        """
        method = method.upper()
        if method not in ("GET", "HEAD"):
            raise ValueError(f"Unsupported request method: {method}")
        if retries < 0:
            raise ValueError("retries must not be negative")

        self.timeout = timeout
        self.method = method
        self.retries = retries
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

    def exists(self, story: CatalogEntry, chapter: int) -> bool:
        """Return True iff the chapter URL responds with a success status."""
        url = story.chapter_url(chapter)
        attempt = 0

        while True:
            attempt += 1
            try:
                resp = self.session.request(
                    self.method, url, timeout=self.timeout, allow_redirects=True
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt <= self.retries:
                    logger.warning(f"Request to {url} failed ({e}), retry {attempt}/{self.retries}")
                    continue
                raise UpstreamError(url, str(e)) from e
            except requests.RequestException as e:
                raise UpstreamError(url, str(e)) from e

            found = 200 <= resp.status_code < 300
            logger.debug(f"{self.method} {url}: status={resp.status_code}")
            resp.close()
            return found

    def all_exist(self, story: CatalogEntry, chapters: range) -> bool:
        """Return True iff every chapter in the range exists. Stops at the first gap."""
        return all(self.exists(story, chapter) for chapter in chapters)

    def close(self) -> None:
        self.session.close()
