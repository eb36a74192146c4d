"""Chat UI conversation model and conversion to the OpenAI wire format.

Message content is a closed union of part types discriminated on
``type``.  Every conversion matches over the union exhaustively, so a
new part kind fails type checking (``assert_never``) instead of being
silently skipped.
"""

import json
from enum import Enum
from typing import Annotated, Any, Literal, Union, assert_never

from pydantic import BaseModel, Field, field_serializer

from chatstream.errors import InvalidRequestError


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallPart(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    call_id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    call_id: str
    content: list[TextPart] = Field(default_factory=list)

    def text(self) -> str:
        return "".join(p.text for p in self.content)


MessagePart = Annotated[
    Union[TextPart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


class ChatMessage(BaseModel):
    role: MessageRole
    content: list[MessagePart] = Field(default_factory=list)

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role=MessageRole.USER, content=[TextPart(text=text)])

    @classmethod
    def assistant(cls, text: str) -> "ChatMessage":
        return cls(role=MessageRole.ASSISTANT, content=[TextPart(text=text)])


def convert_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Convert chat UI messages to OpenAI chat-completions messages.

    Text parts of one message are joined with newlines.  Tool calls
    ride on the message as ``tool_calls``; each tool result becomes a
    separate ``tool`` message, placed before the message it came from.
    Messages left with neither text nor tool calls are dropped.
    """
    converted: list[dict[str, Any]] = []
    for msg in messages:
        texts: list[str] = []
        tool_calls: list[dict[str, Any]] = []
        for part in msg.content:
            match part:
                case TextPart():
                    texts.append(part.text)
                case ToolCallPart():
                    tool_calls.append({
                        "id": part.call_id,
                        "type": "function",
                        "function": {
                            "name": part.name,
                            "arguments": json.dumps(part.input),
                        },
                    })
                case ToolResultPart():
                    converted.append({
                        "role": "tool",
                        "tool_call_id": part.call_id,
                        "content": part.text(),
                    })
                case _:
                    assert_never(part)

        if not texts and not tool_calls:
            continue
        message: dict[str, Any] = {
            "role": msg.role.value,
            "content": "\n".join(texts) if texts else None,
        }
        if tool_calls:
            message["tool_calls"] = tool_calls
        converted.append(message)
    return converted


def validate_request(messages: list[ChatMessage]) -> None:
    """Check every tool call is answered and every result has a call.

    Raises:
        InvalidRequestError: On a result for an unknown call id, or on
            calls left without results.
    """
    pending: dict[str, None] = {}
    for msg in messages:
        for part in msg.content:
            match part:
                case ToolCallPart():
                    pending[part.call_id] = None
                case ToolResultPart():
                    if part.call_id not in pending:
                        raise InvalidRequestError(
                            f"Tool result for unknown call ID: {part.call_id}"
                        )
                    del pending[part.call_id]
                case TextPart():
                    pass
                case _:
                    assert_never(part)
    if pending:
        raise InvalidRequestError(
            f"Missing tool results for calls: {', '.join(pending)}"
        )
