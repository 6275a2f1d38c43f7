"""Chat API"""
import asyncio
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from ..agent.messages import append_response_messages, to_langchain_messages
from ..agent.research_agent import create_agent
from ..auth import get_current_identity
from ..db import database
from ..db.models import ChatMessage, Identity
from ..langfuse_config import create_langfuse_handler, trace_step
from ..llm import get_llm
from ..rate_limit import check_and_consume
from ..tools import build_tools
from ..utils.structured_logger import LogContext, get_logger
from .stream import create_stream_response

logger = get_logger(__name__)

router = APIRouter()

NEW_CHAT_CREATED = "NEW_CHAT_CREATED"


class ChatRequest(BaseModel):
    """Chat request: the whole conversation so far, ending with the new user message"""
    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage] = Field(..., min_length=1, description="Conversation messages")
    chat_id: Optional[str] = Field(default=None, alias="chatId", description="Conversation ID")
    is_new_chat: bool = Field(default=False, alias="isNewChat", description="First turn of a new conversation")


def _get_llm(request: Request):
    """Chat model shared by all turns, built on first use"""
    llm = getattr(request.app.state, "llm", None)
    if llm is None:
        llm = get_llm()
        request.app.state.llm = llm
    return llm


@router.post("/chat")
async def chat(
    chat_request: ChatRequest,
    request: Request,
    identity: Identity = Depends(get_current_identity),
):
    """Run one chat turn and stream it back as server-sent events

    Order: identity (dependency) -> daily quota -> create chat when new ->
    stream the agent turn -> save the full conversation.
    """
    if not await check_and_consume(identity):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too Many Requests")

    messages = chat_request.messages
    is_new_chat = chat_request.is_new_chat or not chat_request.chat_id
    chat_id = chat_request.chat_id or str(uuid.uuid4())
    request_id = uuid.uuid4().hex[:12]

    if is_new_chat:
        # raises OwnershipViolation (403) when the id is taken by someone else
        with trace_step("create-chat", chat_id=chat_id, user_id=identity.user_id):
            await database.create_chat(identity.user_id, chat_id, database.derive_title(messages), messages)
    else:
        owner = await database.get_chat_owner(chat_id)
        if owner is not None and owner != identity.user_id:
            raise database.OwnershipViolation(chat_id)

    abort_event = asyncio.Event()
    tool_factory = getattr(request.app.state, "tool_factory", build_tools)
    agent = create_agent(_get_llm(request), abort_event=abort_event, tools=tool_factory(abort_event))

    async def turn_frames():
        with LogContext(request_id=request_id, chat_id=chat_id, user_id=identity.user_id):
            try:
                logger.info("Chat turn started", new_chat=is_new_chat, message_count=len(messages))

                # the id must reach the client before any model output
                if is_new_chat:
                    yield {"type": NEW_CHAT_CREATED, "chatId": chat_id}

                run_config = {}
                handler, metadata = create_langfuse_handler(
                    session_id=chat_id,
                    user_id=identity.user_id,
                    tags=["chat"],
                )
                if handler is not None:
                    run_config = {"callbacks": [handler], "metadata": metadata}

                async for frame in agent.stream_turn(to_langchain_messages(messages), run_config):
                    yield frame

                updated_messages = append_response_messages(messages, agent.response_messages)
                with trace_step("save-chat", chat_id=chat_id, message_count=len(updated_messages)):
                    await database.replace_chat(
                        identity.user_id,
                        chat_id,
                        database.derive_title(updated_messages),
                        updated_messages,
                    )

                yield {"type": "finish", "chatId": chat_id, "finishReason": agent.finish_reason}
            finally:
                # cancels in-flight tool requests when the client went away
                abort_event.set()

    return create_stream_response(turn_frames())
