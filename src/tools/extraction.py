"""
Page fetching and readable-text extraction for the extract-url tool.

Every failure is turned into text for the tool result: a page with nothing
readable gets a fixed placeholder, fetch and parse failures get a
description of what went wrong.
"""

import logging
import re
from typing import Callable, Dict, Optional, Union

import anyio.to_thread
import httpx
import lxml.html
from lxml.etree import ParserError
from readability import Document
from readability.readability import Unparseable

NO_CONTENT_MESSAGE = "Could not extract readable content from the page."
FAILURE_PREFIX = "Failed to extract content"

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; MCPContentBot/1.0)"}


class FetchError(Exception):
    """The page could not be fetched."""


class ExtractionError(Exception):
    """The page was fetched but could not be parsed into an article."""


def normalize_text(text: str) -> str:
    """Collapse runs of blank space while keeping paragraph breaks."""
    lines = [re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.splitlines()]
    cleaned = "\n".join(lines)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def extract_readable_text(html: Union[str, bytes], base_url: str) -> str:
    """
    Extract the main article text of an HTML page.

    Args:
        html: Page markup
        base_url: URL the page was fetched from, used to resolve relative links

    Returns:
        The article text, or an empty string when the page has none

    Raises:
        ExtractionError: If the markup cannot be parsed at all
    """
    if not html or not html.strip():
        return ""

    try:
        document = Document(html, url=base_url)
        summary = document.summary(html_partial=True)
    except Unparseable as e:
        raise ExtractionError(str(e) or "unparseable document") from e

    if not summary or not summary.strip():
        return ""

    try:
        fragment = lxml.html.fromstring(summary)
    except ParserError:
        return ""
    return normalize_text(fragment.text_content())


async def fetch_page(client: httpx.AsyncClient, url: str) -> httpx.Response:
    """
    Fetch a page once, without retries.

    Raises:
        FetchError: On timeout, network failure or a non-2xx status
    """
    try:
        response = await client.get(url)
        response.raise_for_status()
    except httpx.TimeoutException as e:
        raise FetchError(f"Request timed out after {client.timeout.read}s") from e
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        raise FetchError(f"HTTP {status} {e.response.reason_phrase}".strip()) from e
    except httpx.RequestError as e:
        raise FetchError(f"{type(e).__name__}: {e}") from e
    return response


class UrlExtractor:
    """
    Fetches a URL and returns its readable text as tool content.

    ``extract_url`` never raises for fetch or extraction problems; they come
    back as text so the protocol response stays a normal result.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        extract: Callable[[Union[str, bytes], str], str] = extract_readable_text,
        logger: Optional[logging.Logger] = None,
    ):
        self.timeout = timeout
        self.headers = headers or dict(DEFAULT_HEADERS)
        self.logger = logger or logging.getLogger("UrlExtractor")
        self._transport = transport
        self._extract = extract

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            follow_redirects=True,
            transport=self._transport,
        )

    async def extract_url(self, url: str) -> str:
        """Fetch ``url`` and return its article text, a placeholder, or a failure description."""
        self.logger.info(f"Extracting readable content from: {url}")
        try:
            async with self._client() as client:
                response = await fetch_page(client, url)
            text = await anyio.to_thread.run_sync(self._extract, response.text, url)
        except ExtractionError as e:
            self.logger.info(f"No article found at {url}: {e}")
            return NO_CONTENT_MESSAGE
        except Exception as e:
            reason = str(e) or type(e).__name__
            self.logger.error(f"Extraction failed: {reason}")
            return f"{FAILURE_PREFIX}: {reason}"

        if not text:
            return NO_CONTENT_MESSAGE
        return text
