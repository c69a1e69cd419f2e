from __future__ import annotations

from .canvas import CanvasResult, CleanupResult, KnownPane, LaunchResult, OrphanedPane, PaneStatus
from .ipc import (
    CANVAS_MESSAGE_TYPES,
    CONTROLLER_MESSAGE_TYPES,
    TERMINAL_MESSAGE_TYPES,
    CancelledMessage,
    CanvasMessage,
    CloseMessage,
    ContentMessage,
    ControllerMessage,
    Envelope,
    ErrorMessage,
    GetContentMessage,
    GetSelectionMessage,
    PingMessage,
    PongMessage,
    ReadyMessage,
    SelectedMessage,
    SelectionMessage,
    UnknownMessage,
    UpdateMessage,
)
from .manifest import CanvasImplementation, CanvasManifest, ScenarioDefinition

__all__ = [
    "CANVAS_MESSAGE_TYPES",
    "CONTROLLER_MESSAGE_TYPES",
    "TERMINAL_MESSAGE_TYPES",
    "CancelledMessage",
    "CanvasImplementation",
    "CanvasManifest",
    "CanvasMessage",
    "CanvasResult",
    "CleanupResult",
    "CloseMessage",
    "ContentMessage",
    "ControllerMessage",
    "Envelope",
    "ErrorMessage",
    "GetContentMessage",
    "GetSelectionMessage",
    "KnownPane",
    "LaunchResult",
    "OrphanedPane",
    "PaneStatus",
    "PingMessage",
    "PongMessage",
    "ReadyMessage",
    "ScenarioDefinition",
    "SelectedMessage",
    "SelectionMessage",
    "UnknownMessage",
    "UpdateMessage",
]
