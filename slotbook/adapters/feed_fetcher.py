"""
HTTP client for retrieving iCalendar feeds.
"""

import logging
import time
from typing import Callable, Optional

import requests

from ..domain.exceptions import FetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_REDIRECTS = 5
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_USER_AGENT = "slotbook/1.0"

_CHUNK_SIZE = 64 * 1024


class FeedFetcher:
    """
    Downloads feed text with a deadline and a size limit.

    The URL is expected to be vetted already; when a ``url_validator`` is
    given it is still consulted before any request is made. Failures are
    reported as ``FetchError`` and never retried here.

    ``timeout`` bounds the whole fetch, body included. Every fetch runs on a
    session of its own from ``session_factory``, so concurrent fetches share
    no cookies or pooled connections.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        max_bytes: int = DEFAULT_MAX_BYTES,
        user_agent: str = DEFAULT_USER_AGENT,
        url_validator: Optional[Callable[[str], bool]] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.max_bytes = max_bytes
        self.url_validator = url_validator
        self.session_factory = session_factory
        self.clock = clock
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.1",
        }

    def fetch(self, url: str) -> str:
        """
        Fetch a feed and return its body as text.

        Args:
            url: Feed URL (``webcal://`` is fetched over https)

        Returns:
            Decoded feed text

        Raises:
            FetchError: On refusal, timeout, connection problems, non-2xx
                status, too many redirects or an oversized body
        """
        target = normalize_feed_url(url)

        if self.url_validator is not None and not self.url_validator(target):
            raise FetchError(f"Refusing to fetch unsafe URL: {url}")

        deadline = self.clock() + self.timeout
        session = self.session_factory()
        session.max_redirects = self.max_redirects
        try:
            body, encoding = self._download(session, target, deadline)
        finally:
            session.close()

        try:
            text = body.decode(encoding, errors="replace")
        except LookupError:
            text = body.decode("utf-8", errors="replace")

        logger.debug("Fetched %d bytes from %s", len(body), target)
        return text

    def _download(self, session: requests.Session, target: str, deadline: float):
        try:
            response = session.get(
                target,
                headers=self.headers,
                timeout=self.timeout,
                stream=True,
                allow_redirects=True,
            )
        except requests.exceptions.Timeout as e:
            raise FetchError(f"Timed out fetching calendar feed: {e}") from e
        except requests.exceptions.TooManyRedirects as e:
            raise FetchError(f"Too many redirects fetching calendar feed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed to fetch calendar feed: {e}") from e

        try:
            if not 200 <= response.status_code < 300:
                raise FetchError(f"Calendar feed returned HTTP {response.status_code}")

            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > self.max_bytes:
                raise FetchError(
                    f"Calendar feed too large: {declared} bytes (limit {self.max_bytes})"
                )

            body = self._read_limited(response, deadline)
        finally:
            response.close()

        return body, _body_encoding(response)

    def _read_limited(self, response: requests.Response, deadline: float) -> bytes:
        chunks = []
        total = 0
        try:
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                if self.clock() > deadline:
                    raise FetchError(
                        f"Timed out reading calendar feed after {self.timeout:g}s"
                    )
                total += len(chunk)
                if total > self.max_bytes:
                    raise FetchError(f"Calendar feed exceeds {self.max_bytes} bytes")
                chunks.append(chunk)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Failed reading calendar feed: {e}") from e
        return b"".join(chunks)


def _body_encoding(response: requests.Response) -> str:
    """
    Charset declared by the server, else UTF-8.

    requests reports ISO-8859-1 for any ``text/*`` response without a
    charset, while RFC 5545 feeds default to UTF-8.
    """
    content_type = response.headers.get("Content-Type", "")
    if "charset" in content_type.lower() and response.encoding:
        return response.encoding
    return "utf-8"


def normalize_feed_url(url: str) -> str:
    """Map the ``webcal`` scheme onto https."""
    url = url.strip()
    if url.lower().startswith("webcal://"):
        return "https://" + url[len("webcal://"):]
    return url
