"""Tools exposed to the research agent"""
import asyncio
from typing import List, Optional

from langchain_core.tools import BaseTool, StructuredTool

from ..config import config
from .http_utils import ToolAborted, WebToolError
from .scrape_tools import ScrapeInput, bulk_crawl_websites
from .search_tools import SearchInput, search_serper


def build_tools(abort_event: Optional[asyncio.Event] = None) -> List[BaseTool]:
    """
    Create the tools of one turn, bound to that turn's abort signal

    Args:
        abort_event: set when the client goes away; cancels in-flight requests

    Returns:
        [searchWeb, scrapePages]
    """

    async def search_web(query: str, num_results: int = config.SEARCH_RESULTS) -> list:
        results = await search_serper(query, num_results, abort_event)
        return [r.model_dump(exclude_none=True) for r in results]

    async def scrape_pages(urls: List[str]) -> list:
        results = await bulk_crawl_websites(urls, abort_event)
        return [r.model_dump(exclude_none=True) for r in results]

    search_tool = StructuredTool.from_function(
        coroutine=search_web,
        name="searchWeb",
        description="Search the web. Returns a ranked list of results with title, link, snippet and, when known, the publication date.",
        args_schema=SearchInput,
    )

    scrape_tool = StructuredTool.from_function(
        coroutine=scrape_pages,
        name="scrapePages",
        description="Fetch the full text content of several web pages at once. Each URL gets its own result; failed URLs carry an error instead of content.",
        args_schema=ScrapeInput,
    )

    return [search_tool, scrape_tool]


__all__ = ["build_tools", "WebToolError", "ToolAborted", "search_serper", "bulk_crawl_websites"]
