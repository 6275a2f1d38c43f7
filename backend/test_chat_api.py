"""Tests for the HTTP API"""
import asyncio
from typing import List

import aiosqlite
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage
from langchain_core.tools import StructuredTool

from conftest import FailingChatModel, ScriptedChatModel, parse_sse, search_tool, tool_call
from searchchat.api.chat import ChatRequest, chat
from searchchat.auth import create_access_token
from searchchat.config import config
from searchchat.db.models import ChatMessage, Identity
from searchchat.main import app


def _auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def client(db):
    with TestClient(app) as test_client:
        app.state.llm = ScriptedChatModel(responses=[AIMessage(content="Hello!")])
        app.state.tool_factory = lambda abort_event: [search_tool([])]
        yield test_client
    for name in ("llm", "tool_factory"):
        if hasattr(app.state, name):
            delattr(app.state, name)


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] is True


def test_chat_requires_a_valid_token(client):
    body = {"messages": [{"role": "user", "content": "hi"}]}

    assert client.post("/chat", json=body).status_code == 401
    bad = client.post("/chat", json=body, headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401
    assert bad.json() == {"detail": "Unauthorized"}


def test_new_chat_sends_its_id_before_any_text(client):
    response = client.post(
        "/chat",
        json={"messages": [{"role": "user", "content": "hi"}], "isNewChat": True},
        headers=_auth("alice"),
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    frames = parse_sse(response.text)
    assert frames[0]["type"] == "NEW_CHAT_CREATED"
    chat_id = frames[0]["chatId"]
    assert chat_id
    assert "".join(f["content"] for f in frames if f["type"] == "text") == "Hello!"
    assert frames[-1] == {"type": "finish", "chatId": chat_id, "finishReason": "stop"}

    chat = client.get(f"/api/chats/{chat_id}", headers=_auth("alice")).json()
    assert chat["title"] == "hi"
    assert [(m["role"], m["content"]) for m in chat["messages"]] == [("user", "hi"), ("assistant", "Hello!")]


def test_tool_turn_is_saved_and_continued(client):
    results = [{"title": "Match report", "link": "https://example.com/match"}]
    app.state.llm = ScriptedChatModel(responses=[
        AIMessage(content="", tool_calls=[tool_call("searchWeb", {"query": "final score"}, "call_1")]),
        AIMessage(content="It ended 2-1 ([report](https://example.com/match))."),
    ])
    app.state.tool_factory = lambda abort_event: [search_tool(results)]

    response = client.post(
        "/chat",
        json={"chatId": "chat-42", "isNewChat": True, "messages": [{"role": "user", "content": "Final score?"}]},
        headers=_auth("alice"),
    )
    frames = parse_sse(response.text)

    assert frames[0] == {"type": "NEW_CHAT_CREATED", "chatId": "chat-42"}
    assert [f["type"] for f in frames[1:]] == ["tool_call", "tool_result", "text", "finish"]

    stored = client.get("/api/chats/chat-42", headers=_auth("alice")).json()["messages"]
    assert len(stored) == 2
    tool_part, text_part = stored[1]["parts"]
    assert tool_part["toolInvocation"]["state"] == "result"
    assert tool_part["toolInvocation"]["result"] == results
    assert text_part == {"type": "text", "text": "It ended 2-1 ([report](https://example.com/match))."}

    # second turn on the same conversation
    app.state.llm = ScriptedChatModel(responses=[AIMessage(content="You're welcome.")])
    follow_up = stored + [{"role": "user", "content": "Thanks"}]
    response = client.post(
        "/chat",
        json={"chatId": "chat-42", "messages": follow_up},
        headers=_auth("alice"),
    )
    frames = parse_sse(response.text)

    assert "NEW_CHAT_CREATED" not in [f["type"] for f in frames]
    chat = client.get("/api/chats/chat-42", headers=_auth("alice")).json()
    assert [m["role"] for m in chat["messages"]] == ["user", "assistant", "user", "assistant"]
    assert chat["messages"][1] == stored[1]
    assert chat["title"] == "Final score?"


def test_daily_limit(client, db, monkeypatch):
    monkeypatch.setattr(config, "DAILY_REQUEST_LIMIT", 1)
    asyncio.run(db.upsert_user("root", is_admin=True))
    body = {"messages": [{"role": "user", "content": "hi"}]}

    assert client.post("/chat", json=body, headers=_auth("alice")).status_code == 200
    denied = client.post("/chat", json=body, headers=_auth("alice"))
    assert denied.status_code == 429
    assert denied.json() == {"detail": "Too Many Requests"}

    for _ in range(3):
        assert client.post("/chat", json=body, headers=_auth("root")).status_code == 200

    usage = client.get("/api/usage", headers=_auth("alice")).json()
    assert usage == {"used": 1, "limit": 1, "isAdmin": False}
    assert client.get("/api/usage", headers=_auth("root")).json()["isAdmin"] is True


def test_foreign_chat_is_forbidden(client, db):
    asyncio.run(db.create_chat("alice", "alice-chat", "secret", [ChatMessage(role="user", content="secret")]))

    for is_new in (False, True):
        response = client.post(
            "/chat",
            json={"chatId": "alice-chat", "isNewChat": is_new, "messages": [{"role": "user", "content": "hijack"}]},
            headers=_auth("bob"),
        )
        assert response.status_code == 403

    chat = asyncio.run(db.get_chat("alice-chat", "alice"))
    assert [m.text() for m in chat.messages] == ["secret"]


def test_model_failure_becomes_one_error_frame(client, db):
    app.state.llm = FailingChatModel()

    response = client.post(
        "/chat",
        json={"chatId": "broken", "isNewChat": True, "messages": [{"role": "user", "content": "hi"}]},
        headers=_auth("alice"),
    )

    assert response.status_code == 200
    frames = parse_sse(response.text)
    assert frames[0]["type"] == "NEW_CHAT_CREATED"
    assert frames[-1] == {"type": "error", "message": "Oops, an error occured!"}
    assert [f["type"] for f in frames].count("error") == 1

    # the chat was created before the turn ran; the failed turn added nothing
    chat = asyncio.run(db.get_chat("broken", "alice"))
    assert [m.role for m in chat.messages] == ["user"]


def test_empty_message_list_is_rejected(client):
    response = client.post("/chat", json={"messages": []}, headers=_auth("alice"))

    assert response.status_code == 422


def test_conversation_endpoints(client, db):
    asyncio.run(db.create_chat("alice", "one", "First", [ChatMessage(role="user", content="First")]))
    asyncio.run(db.create_chat("alice", "two", "Second", [ChatMessage(role="user", content="Second")]))
    asyncio.run(db.create_chat("bob", "three", "Bob's", [ChatMessage(role="user", content="Bob's")]))

    listed = client.get("/api/chats", headers=_auth("alice")).json()
    assert [c["id"] for c in listed] == ["two", "one"]

    assert client.get("/api/chats/three", headers=_auth("alice")).status_code == 404
    assert client.delete("/api/chats/three", headers=_auth("alice")).status_code == 404

    assert client.delete("/api/chats/one", headers=_auth("alice")).status_code == 200
    assert [c["id"] for c in client.get("/api/chats", headers=_auth("alice")).json()] == ["two"]
    assert client.get("/api/chats", headers=_auth("bob")).json()[0]["id"] == "three"


def test_turn_route_is_chat(client):
    body = {"messages": [{"role": "user", "content": "hi"}]}

    assert client.post("/api/chat", json=body, headers=_auth("alice")).status_code == 404
    assert client.post("/chat", json=body, headers=_auth("alice")).status_code == 200


def test_failed_final_save_becomes_one_error_frame(client, db, monkeypatch):
    """The answer streamed but could not be stored: error frame, no finish"""

    async def replace_chat_fails(*args, **kwargs):
        raise aiosqlite.OperationalError("database is locked")

    monkeypatch.setattr(db, "replace_chat", replace_chat_fails)

    response = client.post(
        "/chat",
        json={"chatId": "unsaved", "isNewChat": True, "messages": [{"role": "user", "content": "hi"}]},
        headers=_auth("alice"),
    )

    assert response.status_code == 200
    frames = parse_sse(response.text)
    assert [f["type"] for f in frames] == ["NEW_CHAT_CREATED", "text", "error"]
    assert frames[1]["content"] == "Hello!"
    assert frames[2] == {"type": "error", "message": "Oops, an error occured!"}

    chat = asyncio.run(db.get_chat("unsaved", "alice"))
    assert [m.role for m in chat.messages] == ["user"]


def test_client_disconnect_aborts_tools_and_keeps_partial_turn_unsaved(db):
    """Dropping the stream mid-tool cancels the tool and stores nothing of the turn"""
    state = {"started": False, "cancelled": False, "abort_event": None}

    async def scrape_pages(urls: List[str]) -> list:
        state["started"] = True
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise
        return []

    def tool_factory(abort_event):
        state["abort_event"] = abort_event
        return [StructuredTool.from_function(coroutine=scrape_pages, name="scrapePages", description="fetch pages")]

    turn_app = FastAPI()
    turn_app.state.llm = ScriptedChatModel(responses=[
        AIMessage(content="", tool_calls=[tool_call("scrapePages", {"urls": ["https://example.com/slow"]}, "slow")]),
        AIMessage(content="never reached"),
    ])
    turn_app.state.tool_factory = tool_factory
    request = Request({"type": "http", "app": turn_app, "method": "POST", "path": "/chat", "headers": []})
    body = ChatRequest.model_validate({
        "chatId": "dropped",
        "isNewChat": True,
        "messages": [{"role": "user", "content": "Read this page"}],
    })

    seen = []

    async def run():
        response = await chat(body, request, identity=Identity(user_id="alice"))

        async def consume():
            async for frame in response.body_iterator:
                seen.append(frame)

        # the server side of the connection: cancelled when the client goes away
        consumer = asyncio.ensure_future(consume())
        for _ in range(500):
            if state["started"]:
                break
            await asyncio.sleep(0.01)
        consumer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await consumer

        return await db.get_chat("dropped", "alice")

    stored = asyncio.run(run())

    assert state["started"]
    assert any('"tool_call"' in frame for frame in seen)
    assert not any('"finish"' in frame for frame in seen)
    assert state["cancelled"]
    assert state["abort_event"].is_set()
    assert [m.role for m in stored.messages] == ["user"]
