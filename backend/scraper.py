"""Single-page extractor: fetch a URL once and summarize its markup.

Produces a fixed-shape PageSummary (title, description, headings, link
counts, image alt pairs, a truncated text body and coarse resource counts).
Blocked or unreachable pages resolve to a restricted sentinel record.
Does NOT crawl subpages.
"""

import os
import re
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from cancellation import CancelToken
from logger import get_module_logger
from models import HEADING_LEVELS, PageSummary

logger = get_module_logger("scraper")

SCRAPER_TIMEOUT_SECONDS = float(os.getenv("SCRAPER_TIMEOUT_SECONDS", "10"))
MAX_HEADINGS_PER_LEVEL = 10
MAX_CONTENT_CHARS = 5000
RESTRICTED_CONTENT = "Access restricted"

_REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/121.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Referer": "https://www.google.com/",
    "Cache-Control": "no-cache",
}

_WHITESPACE_RUN = re.compile(r"\s+")
# Characters a URL host may never contain (whitespace, delimiters, controls)
_FORBIDDEN_HOST_CHARS = re.compile(r"[\x00-\x20\x7f#/:<>?@\[\\\]^|]")


def restricted_summary(url: str) -> PageSummary:
    """Fresh sentinel record for a page we could not read."""
    return {
        "url": url,
        "title": "Access Restricted",
        "description": "Deep crawl blocked by target security filters.",
        "headings": {},
        "internal_link_count": 0,
        "external_link_count": 0,
        "image_alt_tags": [],
        "content": RESTRICTED_CONTENT,
        "load_speed_indicator": {"image_count": 0, "script_count": 0, "css_count": 0},
        "is_simulated": True,
    }


def _limited_summary(url: str, status_code: int) -> PageSummary:
    result = restricted_summary(url)
    result["title"] = "Connection Limited"
    result["content"] = f"Response status {status_code}. Analyzing via domain intelligence."
    return result


def _fetch_timeout(cancel: CancelToken | None) -> float:
    if cancel is None:
        return SCRAPER_TIMEOUT_SECONDS
    remaining = cancel.remaining()
    if remaining is None:
        return SCRAPER_TIMEOUT_SECONDS
    return max(0.1, min(SCRAPER_TIMEOUT_SECONDS, remaining))


def _count_links(soup: BeautifulSoup, url: str) -> tuple[int, int]:
    try:
        base_host = urlparse(url).hostname or ""
    except ValueError:
        base_host = ""

    internal = 0
    external = 0
    for a in soup.find_all("a", href=True):
        href = (a.get("href") or "").strip()
        if not href:
            continue
        try:
            resolved = urlparse(urljoin(url, href))
            host = resolved.hostname
            resolved.port  # raises ValueError on a non-numeric or out-of-range port
        except ValueError:
            # Unresolvable href: counted as neither internal nor external
            continue
        if host and "[" not in resolved.netloc and _FORBIDDEN_HOST_CHARS.search(host):
            continue
        if host and host == base_host:
            internal += 1
        elif host:
            external += 1
    return internal, external


def _collapse(text: str) -> str:
    return _WHITESPACE_RUN.sub(" ", text).strip()


def _content_body(soup: BeautifulSoup) -> str:
    container = soup.find("main") or soup.find("article") or soup.body
    if container is None:
        return ""
    for tag in container.find_all(["script", "style"]):
        tag.decompose()
    return _collapse(container.get_text(separator=" "))[:MAX_CONTENT_CHARS]


def parse_page(url: str, html: str) -> PageSummary:
    """Build a PageSummary from already-fetched markup."""
    soup = BeautifulSoup(html, "html.parser")

    title = soup.title.get_text().strip() if soup.title else ""

    description = ""
    meta_desc = soup.find("meta", attrs={"name": "description"})
    if meta_desc and meta_desc.get("content"):
        description = meta_desc["content"]

    headings: dict[str, list[str]] = {}
    for level in HEADING_LEVELS:
        texts = [h.get_text().strip() for h in soup.find_all(level)]
        headings[level] = texts[:MAX_HEADINGS_PER_LEVEL]

    internal_links, external_links = _count_links(soup, url)

    images = soup.find_all("img")
    image_alt_tags = [{"src": img.get("src") or "", "alt": img.get("alt") or ""} for img in images]

    # Resource counts before the content step strips <script> out of the tree
    load_speed_indicator = {
        "image_count": len(images),
        "script_count": len(soup.find_all("script")),
        "css_count": len(soup.find_all("link", rel="stylesheet")),
    }

    return {
        "url": url,
        "title": title,
        "description": description,
        "headings": headings,
        "internal_link_count": internal_links,
        "external_link_count": external_links,
        "image_alt_tags": image_alt_tags,
        "content": _content_body(soup),
        "load_speed_indicator": load_speed_indicator,
        "is_simulated": False,
    }


def extract_page(url: str, cancel: CancelToken | None = None) -> PageSummary:
    """
    Fetch the page at `url` once and return its PageSummary.
    Never raises: blocked, failing or unreachable pages give the restricted sentinel.
    """
    if cancel is not None and cancel.cancelled:
        logger.warning(f"Extraction for {url} cancelled before fetch, using restricted fallback")
        return restricted_summary(url)

    try:
        response = requests.get(url, headers=_REQUEST_HEADERS, timeout=_fetch_timeout(cancel))
    except (requests.RequestException, ValueError, OSError) as e:
        logger.warning(f"Fetch failed for {url} ({e}), using restricted fallback")
        return restricted_summary(url)

    status = response.status_code
    if status in (401, 403):
        logger.warning(f"Scraper blocked ({status}) for {url}, using restricted fallback")
        return restricted_summary(url)

    if not 200 <= status < 300:
        logger.warning(f"Scraper received status {status} for {url}, using limited fallback")
        return _limited_summary(url, status)

    try:
        response.encoding = response.apparent_encoding or "utf-8"
        return parse_page(url, response.text)
    except Exception as e:
        logger.error(f"Parsing {url} failed ({e}), using restricted fallback")
        return restricted_summary(url)
