"""Bulk page fetching: every URL is fetched and reported on its own"""
import asyncio
from typing import List, Optional, Sequence
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from ..config import config
from ..utils.structured_logger import get_logger
from .http_utils import WebToolError, read_capped, run_abortable

logger = get_logger(__name__)

# Elements that never hold article text
_BOILERPLATE_TAGS = ["script", "style", "noscript", "svg", "iframe", "nav", "header", "footer", "form"]


class ScrapeInput(BaseModel):
    """Input of the scrape tool"""
    urls: List[str] = Field(description="The URLs to fetch the full page content of")


class PageResult(BaseModel):
    """Outcome for one URL: extracted text, or the error that prevented it"""
    url: str
    success: bool
    title: Optional[str] = None
    data: Optional[str] = None
    truncated: bool = False
    error: Optional[str] = None


def _is_http_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _page_kind(content_type: str) -> Optional[str]:
    """"html", "text", or None for content the model cannot read"""
    mime = content_type.split(";", 1)[0].strip().lower()
    if "html" in mime:
        return "html"
    if not mime or mime.startswith("text/") or "json" in mime or "xml" in mime:
        return "text"
    return None


def extract_page_text(html: str) -> tuple[Optional[str], str]:
    """Readable text of an HTML page without navigation and scripts; returns (title, text)"""
    soup = BeautifulSoup(html or "", "html.parser")

    title = soup.title.get_text(strip=True) if soup.title else None

    for element in soup.find_all(_BOILERPLATE_TAGS):
        element.decompose()

    root = soup.body or soup
    lines = (line.strip() for line in root.get_text("\n").splitlines())
    return title or None, "\n".join(line for line in lines if line)


async def fetch_page(url: str, client: httpx.AsyncClient) -> PageResult:
    """
    Fetch one page and reduce it to text

    Raises:
        WebToolError: not an http(s) URL, error status or unreadable content
    """
    if not _is_http_url(url):
        raise WebToolError(f"Not an http(s) URL: {url}")

    headers = {
        "user-agent": config.SCRAPE_USER_AGENT,
        "accept": "text/html,text/plain,application/json;q=0.9,*/*;q=0.1",
    }

    try:
        async with client.stream("GET", url, headers=headers) as resp:
            resp.raise_for_status()
            kind = _page_kind(resp.headers.get("content-type", ""))
            if kind is None:
                raise WebToolError(f"Unsupported content-type: {resp.headers.get('content-type')}")
            body, cut = await read_capped(resp, config.SCRAPE_MAX_BYTES)
            raw = body.decode(resp.encoding or "utf-8", errors="replace")
    except httpx.HTTPStatusError as e:
        raise WebToolError(f"HTTP {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise WebToolError(f"{type(e).__name__}: {e}") from e

    if kind == "html":
        title, text = extract_page_text(raw)
    else:
        title, text = None, raw.strip()

    if len(text) > config.SCRAPE_MAX_CHARS:
        text, cut = text[:config.SCRAPE_MAX_CHARS], True

    return PageResult(url=url, success=True, title=title, data=text, truncated=cut)


async def _fetch_or_error(url: str, client: httpx.AsyncClient, slots: asyncio.Semaphore) -> PageResult:
    async with slots:
        try:
            return await fetch_page(url, client)
        except WebToolError as e:
            logger.info("Page fetch failed", url=url, error=str(e))
            return PageResult(url=url, success=False, error=str(e))
        except Exception as e:
            logger.warning("Page fetch crashed", url=url, error=f"{type(e).__name__}: {e}")
            return PageResult(url=url, success=False, error=f"{type(e).__name__}: {e}")


async def bulk_crawl_websites(
    urls: Sequence[str],
    abort_event: Optional[asyncio.Event] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[PageResult]:
    """
    Fetch several pages concurrently

    One result per input URL, in input order. A failing URL yields
    success=False with its error; it never affects the others. At most
    config.SCRAPE_MAX_URLS URLs are fetched per call, the rest are reported
    as skipped, and no more than config.SCRAPE_CONCURRENCY requests are in
    flight at once.

    Args:
        urls: pages to fetch
        abort_event: cancels every in-flight request when set
        client: reuse an existing client (tests inject a mock transport here)
    """
    if not urls:
        return []

    to_fetch = list(urls[:config.SCRAPE_MAX_URLS])
    skipped = [
        PageResult(url=url, success=False, error=f"Skipped: at most {config.SCRAPE_MAX_URLS} URLs per call")
        for url in urls[config.SCRAPE_MAX_URLS:]
    ]

    async def _crawl(c: httpx.AsyncClient) -> List[PageResult]:
        slots = asyncio.Semaphore(config.SCRAPE_CONCURRENCY)
        return list(await asyncio.gather(*[_fetch_or_error(url, c, slots) for url in to_fetch]))

    async def _run() -> List[PageResult]:
        if client is not None:
            return await _crawl(client)
        async with httpx.AsyncClient(follow_redirects=True, timeout=httpx.Timeout(config.SCRAPE_TIMEOUT_S)) as own_client:
            return await _crawl(own_client)

    results = await run_abortable(_run(), abort_event) + skipped
    logger.info(
        "Bulk crawl finished",
        urls=len(results),
        failed=sum(1 for r in results if not r.success),
        skipped=len(skipped),
    )
    return results
