"""Wire envelopes exchanged over a canvas rendezvous connection.

One JSON object per line. The `type` field is the discriminator; tags that
neither side knows become `UnknownMessage` at the codec boundary.
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# canvas -> controller


class ReadyMessage(_Envelope):
    type: Literal["ready"] = "ready"
    scenario: str = ""
    capabilities: Optional[List[str]] = None


class SelectedMessage(_Envelope):
    type: Literal["selected"] = "selected"
    data: Any = None

    def to_wire(self) -> Dict[str, Any]:
        # `data` is always present on the wire, even when null.
        return {"type": self.type, "data": self.data}


class CancelledMessage(_Envelope):
    type: Literal["cancelled"] = "cancelled"
    reason: Optional[str] = None


class ErrorMessage(_Envelope):
    type: Literal["error"] = "error"
    message: str = ""


class PongMessage(_Envelope):
    type: Literal["pong"] = "pong"


class SelectionMessage(_Envelope):
    """Answer to a `getSelection` query."""

    type: Literal["selection"] = "selection"
    data: Any = None


class ContentMessage(_Envelope):
    """Answer to a `getContent` query."""

    type: Literal["content"] = "content"
    data: Any = None


# controller -> canvas


class UpdateMessage(_Envelope):
    type: Literal["update"] = "update"
    config: Any = None


class CloseMessage(_Envelope):
    type: Literal["close"] = "close"


class PingMessage(_Envelope):
    type: Literal["ping"] = "ping"


class GetSelectionMessage(_Envelope):
    type: Literal["getSelection"] = "getSelection"


class GetContentMessage(_Envelope):
    type: Literal["getContent"] = "getContent"


class UnknownMessage(BaseModel):
    """An envelope whose `type` tag is not part of the protocol."""

    type: str
    raw: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def to_wire(self) -> Dict[str, Any]:
        return dict(self.raw) if self.raw else {"type": self.type}


CanvasMessage = Annotated[
    Union[
        ReadyMessage,
        SelectedMessage,
        CancelledMessage,
        ErrorMessage,
        PongMessage,
        SelectionMessage,
        ContentMessage,
    ],
    Field(discriminator="type"),
]

ControllerMessage = Annotated[
    Union[
        UpdateMessage,
        CloseMessage,
        PingMessage,
        GetSelectionMessage,
        GetContentMessage,
    ],
    Field(discriminator="type"),
]

CANVAS_MESSAGE_TYPES = frozenset({"ready", "selected", "cancelled", "error", "pong", "selection", "content"})
CONTROLLER_MESSAGE_TYPES = frozenset({"update", "close", "ping", "getSelection", "getContent"})

# Messages that end a canvas instance's lifecycle.
TERMINAL_MESSAGE_TYPES = frozenset({"selected", "cancelled", "error"})

Envelope = Union[
    ReadyMessage,
    SelectedMessage,
    CancelledMessage,
    ErrorMessage,
    PongMessage,
    SelectionMessage,
    ContentMessage,
    UpdateMessage,
    CloseMessage,
    PingMessage,
    GetSelectionMessage,
    GetContentMessage,
    UnknownMessage,
]
