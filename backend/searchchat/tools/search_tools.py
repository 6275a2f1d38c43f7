"""Web search tool backed by the Serper API"""
import asyncio
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from ..config import config
from ..utils.structured_logger import get_logger
from .http_utils import WebToolError, run_abortable

logger = get_logger(__name__)


class SearchInput(BaseModel):
    """Input of the search tool"""
    query: str = Field(description="The query to search the web for")
    num_results: int = Field(default=10, ge=1, le=20, description="How many results to return")


class SearchResult(BaseModel):
    title: str
    link: str
    snippet: str = ""
    date: Optional[str] = None


def _parse_organic(data: Dict[str, Any], num: int) -> List[SearchResult]:
    results = []
    for item in data.get("organic", []) or []:
        link = item.get("link")
        if not link:
            continue
        results.append(SearchResult(
            title=item.get("title") or link,
            link=link,
            snippet=item.get("snippet") or "",
            date=item.get("date"),
        ))
        if len(results) >= num:
            break
    return results


async def search_serper(
    query: str,
    num: int = 10,
    abort_event: Optional[asyncio.Event] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[SearchResult]:
    """
    Search Google through Serper

    Args:
        query: search query
        num: result count hint
        abort_event: cancels the in-flight request when set
        client: reuse an existing client (tests inject a mock transport here)

    Returns:
        Organic results in ranking order

    Raises:
        WebToolError: missing API key, empty query or failed request
    """
    q = str(query or "").strip()
    if not q:
        raise WebToolError("query must be a non-empty string")
    if not config.SERPER_API_KEY:
        raise WebToolError("SERPER_API_KEY is not configured")

    headers = {"X-API-KEY": config.SERPER_API_KEY, "Content-Type": "application/json"}
    payload = {"q": q, "num": num}

    async def _request() -> Dict[str, Any]:
        if client is not None:
            resp = await client.post(f"{config.SERPER_BASE_URL}/search", json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(config.SEARCH_TIMEOUT_S)) as own_client:
                resp = await own_client.post(f"{config.SERPER_BASE_URL}/search", json=payload, headers=headers)
        if resp.status_code >= 400:
            raise WebToolError(f"Serper failed ({resp.status_code}): {resp.text[:400]}")
        return resp.json()

    try:
        data = await run_abortable(_request(), abort_event)
    except (httpx.TimeoutException, httpx.HTTPError) as e:
        raise WebToolError(f"Serper failed: {type(e).__name__}: {e}") from e
    except ValueError as e:
        raise WebToolError(f"Serper returned invalid JSON: {e}") from e

    results = _parse_organic(data, num)
    logger.info("Web search finished", query=q, results=len(results))
    return results
