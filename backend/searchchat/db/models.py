"""Data models"""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, model_validator


class TextPart(BaseModel):
    """Plain text segment of a message"""
    type: Literal["text"] = "text"
    text: str = ""


class ToolInvocation(BaseModel):
    """A tool call made by the model, with its result once available"""
    model_config = ConfigDict(populate_by_name=True)

    state: Literal["partial-call", "call", "result"] = Field(default="call", description="Invocation state")
    tool_call_id: str = Field(..., alias="toolCallId", description="Tool call ID")
    tool_name: str = Field(..., alias="toolName", description="Tool name")
    args: dict = Field(default_factory=dict, description="Tool arguments")
    result: Any = Field(default=None, description="Tool result (state=result only)")


class ToolInvocationPart(BaseModel):
    """Tool invocation record inside an assistant message"""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_invocation: ToolInvocation = Field(..., alias="toolInvocation")


class UnknownPart(BaseModel):
    """Any part kind this server does not understand; stored and returned untouched"""
    model_config = ConfigDict(extra="allow")

    type: str


def _part_tag(value: Any) -> str:
    part_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    if part_type in ("text", "tool-invocation"):
        return part_type
    return "unknown"


MessagePart = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[ToolInvocationPart, Tag("tool-invocation")],
        Annotated[UnknownPart, Tag("unknown")],
    ],
    Discriminator(_part_tag),
]

Role = Literal["user", "assistant", "tool"]


class ChatMessage(BaseModel):
    """One message of a conversation: plain text content and/or structured parts"""
    role: Role = Field(..., description="Message author")
    content: Optional[str] = Field(default=None, description="Plain text content")
    parts: Optional[List[MessagePart]] = Field(default=None, description="Structured message parts")

    @model_validator(mode="after")
    def _require_payload(self):
        if self.content is None and self.parts is None:
            raise ValueError("message needs content or parts")
        return self

    def text(self) -> str:
        """Text of the message: the content when set, otherwise the joined text parts"""
        if self.content:
            return self.content
        if not self.parts:
            return ""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_invocations(self) -> List[ToolInvocation]:
        return [part.tool_invocation for part in self.parts or [] if isinstance(part, ToolInvocationPart)]


class ConversationSummary(BaseModel):
    """Conversation list entry"""
    id: str = Field(..., description="Conversation ID")
    title: str = Field(default="New Chat", description="Conversation title")
    created_at: datetime = Field(default_factory=datetime.now, description="Created at")
    updated_at: datetime = Field(default_factory=datetime.now, description="Updated at")


class Conversation(ConversationSummary):
    """Conversation with its ordered messages"""
    user_id: str = Field(..., description="Owner user ID")
    messages: List[ChatMessage] = Field(default_factory=list, description="Messages ordered by position")


class Identity(BaseModel):
    """Verified caller"""
    user_id: str
    is_admin: bool = False


class UsageReport(BaseModel):
    """Today's request usage"""
    model_config = ConfigDict(populate_by_name=True)

    used: int
    limit: int
    is_admin: bool = Field(..., alias="isAdmin")
