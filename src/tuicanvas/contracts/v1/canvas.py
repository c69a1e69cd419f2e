from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CanvasResult(BaseModel):
    """Final outcome of one orchestrated canvas interaction."""

    success: bool
    data: Any = None
    cancelled: Optional[bool] = None
    error: Optional[str] = None
    message: Optional[str] = None
    pane_id: Optional[str] = None
    instance_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def to_public(self) -> Dict[str, Any]:
        """Caller-facing dict: `paneId`/`instanceId` keys, unset fields dropped."""
        out: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.cancelled:
            out["cancelled"] = True
        if self.error is not None:
            out["error"] = self.error
        if self.message is not None:
            out["message"] = self.message
        if self.pane_id:
            out["paneId"] = self.pane_id
        if self.instance_id:
            out["instanceId"] = self.instance_id
        return out


class LaunchResult(BaseModel):
    success: bool
    instance_id: str
    pane_id: Optional[str] = None
    pid: Optional[int] = None
    reused: bool = False
    error: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class OrphanedPane(BaseModel):
    id: str
    reason: str
    owner: Optional[str] = None


class CleanupResult(BaseModel):
    found: List[OrphanedPane] = Field(default_factory=list)
    closed: int = 0
    dry_run: bool = False


class KnownPane(BaseModel):
    id: str
    owner: str
    owned: bool
    dead: bool = False


class PaneStatus(BaseModel):
    scope: str
    record: str
    current_pane_id: Optional[str] = None
    pane_exists: bool = False
    pane_dead: bool = False
    pane_owned: bool = False
    all_canvas_panes: List[KnownPane] = Field(default_factory=list)
