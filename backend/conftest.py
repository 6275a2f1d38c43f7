"""Shared test fixtures"""
import asyncio
import json
from typing import Any, List

import pytest
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from langchain_core.tools import StructuredTool

from searchchat.config import config
from searchchat.db import database


class ScriptedChatModel(BaseChatModel):
    """Chat model that replays canned responses, one per call

    The last response repeats once the script runs out. Every prompt it
    receives is recorded in ``prompts``.
    """

    responses: List[AIMessage]
    prompts: List[List[BaseMessage]] = []

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def bind_tools(self, tools, **kwargs):
        return self

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        self.prompts.append(list(messages))
        index = min(len(self.prompts), len(self.responses)) - 1
        # a fresh copy per call so every response gets its own message id
        message = self.responses[index].model_copy()
        return ChatResult(generations=[ChatGeneration(message=message)])


class FailingChatModel(BaseChatModel):
    """Chat model whose every call fails"""

    @property
    def _llm_type(self) -> str:
        return "failing"

    def bind_tools(self, tools, **kwargs):
        return self

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        raise RuntimeError("model backend unavailable")


def tool_call(name: str, args: dict, call_id: str) -> dict:
    return {"name": name, "args": args, "id": call_id}


def search_tool(results: Any = None, error: Exception = None, calls: list = None, name: str = "searchWeb"):
    """Stand-in for searchWeb returning results or raising error"""

    async def search_web(query: str) -> Any:
        if calls is not None:
            calls.append(query)
        await asyncio.sleep(0)
        if error is not None:
            raise error
        return results

    return StructuredTool.from_function(coroutine=search_web, name=name, description="search the web")


def scrape_tool(pages: Any = None, error: Exception = None, delay: float = 0, name: str = "scrapePages"):
    """Stand-in for scrapePages returning pages or raising error after delay seconds"""

    async def scrape_pages(urls: List[str]) -> Any:
        await asyncio.sleep(delay)
        if error is not None:
            raise error
        return pages

    return StructuredTool.from_function(coroutine=scrape_pages, name=name, description="fetch pages")


def parse_sse(body: str) -> List[dict]:
    """Decode an SSE body into its JSON frames"""
    frames = []
    for block in body.split("\n\n"):
        block = block.strip()
        if block.startswith("data: "):
            frames.append(json.loads(block[len("data: "):]))
    return frames


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Every test gets its own database and no log files"""
    monkeypatch.setattr(config, "DATABASE_PATH", tmp_path / "searchchat-test.db")
    monkeypatch.setattr(config, "LOG_DIR", None)
    monkeypatch.setattr(config, "LOG_JSON", False)
    monkeypatch.setattr(config, "SERPER_API_KEY", "test-serper-key")
    monkeypatch.setattr(config, "DAILY_REQUEST_LIMIT", 100)
    monkeypatch.setattr(config, "MAX_STEPS", 10)
    yield


@pytest.fixture
def db():
    """Initialized empty database"""
    asyncio.run(database.init_db())
    return database
