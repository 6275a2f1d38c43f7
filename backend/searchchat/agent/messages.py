"""Conversion between stored chat messages and LangChain messages"""
import json
from typing import Any, List, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from ..db.models import ChatMessage, TextPart, ToolInvocation, ToolInvocationPart
from ..utils.structured_logger import get_logger

logger = get_logger(__name__)

NOT_RUN_ERROR = "Step limit reached before this tool ran"


def extract_text(message: BaseMessage) -> str:
    """
    Plain text of a LangChain message

    content can be a string or a list of content blocks; only text blocks
    are kept.
    """
    content = getattr(message, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                texts.append(item.get("text", ""))
            elif isinstance(item, str):
                texts.append(item)
        return "".join(texts)
    return ""


def tool_content(result: Any) -> str:
    """Tool output as sent back to the model"""
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(result)


def _parse_tool_content(content: Any) -> Any:
    if not isinstance(content, str):
        return content
    try:
        return json.loads(content)
    except ValueError:
        return content


def _assistant_to_langchain(message: ChatMessage) -> List[BaseMessage]:
    """
    Replay an assistant message as model context

    Text before a group of tool invocations becomes the content of the
    AIMessage that issued them, followed by one ToolMessage per result.
    Invocations that never got a result cannot be replayed and are dropped.
    """
    if not message.parts:
        return [AIMessage(content=message.content or "")]

    out: List[BaseMessage] = []
    text: List[str] = []
    calls: List[ToolInvocation] = []

    def flush():
        if not text and not calls:
            return
        out.append(AIMessage(
            content="".join(text),
            tool_calls=[
                {"name": call.tool_name, "args": call.args, "id": call.tool_call_id}
                for call in calls
            ],
        ))
        out.extend(
            ToolMessage(content=tool_content(call.result), tool_call_id=call.tool_call_id)
            for call in calls
        )
        text.clear()
        calls.clear()

    for part in message.parts:
        if isinstance(part, TextPart):
            if calls:
                flush()
            text.append(part.text)
        elif isinstance(part, ToolInvocationPart):
            if part.tool_invocation.state == "result":
                calls.append(part.tool_invocation)
        # unknown parts carry nothing the model can use
    flush()
    return out


def to_langchain_messages(messages: Sequence[ChatMessage]) -> List[BaseMessage]:
    """Conversation history as LangChain messages (tool-role messages are storage only)"""
    converted: List[BaseMessage] = []
    for message in messages:
        if message.role == "user":
            converted.append(HumanMessage(content=message.text()))
        elif message.role == "assistant":
            converted.extend(_assistant_to_langchain(message))
        else:
            logger.debug("Skipping tool message in model context")
    return converted


def append_response_messages(
    messages: Sequence[ChatMessage],
    response_messages: Sequence[BaseMessage],
) -> List[ChatMessage]:
    """
    Fold everything the model produced in one turn into a single assistant message

    Each AIMessage contributes a text part and one tool-invocation part per
    tool call; each ToolMessage fills in the result of its invocation.

    Args:
        messages: the conversation as received
        response_messages: AI and tool messages produced during the turn

    Returns:
        A new list: messages + the assistant reply (when there is one)
    """
    parts = []
    invocations = {}

    for message in response_messages:
        if isinstance(message, AIMessage):
            text = extract_text(message)
            if text:
                parts.append(TextPart(text=text))
            for call in message.tool_calls or []:
                invocation = ToolInvocation(
                    state="call",
                    tool_call_id=call["id"],
                    tool_name=call["name"],
                    args=call.get("args") or {},
                )
                invocations[invocation.tool_call_id] = invocation
                parts.append(ToolInvocationPart(tool_invocation=invocation))
        elif isinstance(message, ToolMessage):
            invocation = invocations.get(message.tool_call_id)
            if invocation is None:
                logger.warning("Tool result without a matching call", tool_call_id=message.tool_call_id)
                continue
            invocation.state = "result"
            invocation.result = _parse_tool_content(message.content)

    # calls the turn ended on (step limit) never ran; close them so they do not stay pending
    for invocation in invocations.values():
        if invocation.state != "result":
            invocation.state = "result"
            invocation.result = {"error": NOT_RUN_ERROR}

    updated = list(messages)
    if parts:
        content = "".join(part.text for part in parts if isinstance(part, TextPart))
        updated.append(ChatMessage(role="assistant", content=content, parts=parts))
    return updated
