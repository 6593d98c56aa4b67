from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

try:
    from .utils import uuid7
except ImportError:
    from utils import uuid7

DEFAULT_TRIGGER = "submit-message"


@dataclass(frozen=True)
class ContextItem:
    type: str = "file"
    content: str = ""
    file_path: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextItem":
        return cls(
            type=str(data.get("type") or "file"),
            content=str(data.get("content") or ""),
            file_path=str(data.get("filePath") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "content": self.content, "filePath": self.file_path}


@dataclass(frozen=True)
class MessagePart:
    type: str = "text"
    text: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessagePart":
        return cls(type=str(data.get("type") or "text"), text=str(data.get("text") or ""))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ChatMessage:
    role: str
    parts: Tuple[MessagePart, ...] = ()
    id: str = field(default_factory=uuid7)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        parts = data.get("parts")
        if parts is None and "content" in data:
            # Plain {role, content} messages are accepted and wrapped as a single text part.
            parts = [{"type": "text", "text": data.get("content")}]
        return cls(
            role=str(data.get("role") or "user"),
            parts=tuple(MessagePart.from_dict(p) for p in (parts or []) if isinstance(p, dict)),
            id=str(data.get("id") or uuid7()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"parts": [p.to_dict() for p in self.parts], "id": self.id, "role": self.role}


@dataclass(frozen=True)
class ChatRequest:
    """
    Payload for cursor.com's /api/chat.

    Instances are immutable; `to_dict()` yields the exact wire shape that gets
    serialized into the page's script context.
    """

    model: str
    messages: Tuple[ChatMessage, ...]
    context: Tuple[ContextItem, ...] = ()
    id: str = field(default_factory=uuid7)
    trigger: str = DEFAULT_TRIGGER

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatRequest":
        if not isinstance(data, dict):
            raise ValueError("request body must be a JSON object")

        model = str(data.get("model") or "").strip()
        if not model:
            raise ValueError("Missing 'model' in request body.")

        messages = data.get("messages")
        if isinstance(messages, list):
            messages = [ChatMessage.from_dict(m) for m in messages if isinstance(m, dict)]
        if not messages or not isinstance(messages, list):
            raise ValueError("'messages' must be a non-empty array of message objects.")

        context = data.get("context") or []
        if not isinstance(context, list):
            raise ValueError("'context' must be an array.")

        return cls(
            model=model,
            messages=tuple(messages),
            context=tuple(ContextItem.from_dict(c) for c in context if isinstance(c, dict)),
            id=str(data.get("id") or uuid7()),
            trigger=str(data.get("trigger") or DEFAULT_TRIGGER),
        )

    @classmethod
    def from_prompt(cls, model: str, prompt: str, context: Optional[List[ContextItem]] = None) -> "ChatRequest":
        message = ChatMessage(role="user", parts=(MessagePart(type="text", text=prompt),))
        return cls(model=model, messages=(message,), context=tuple(context or ()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context": [c.to_dict() for c in self.context],
            "model": self.model,
            "id": self.id,
            "messages": [m.to_dict() for m in self.messages],
            "trigger": self.trigger,
        }
