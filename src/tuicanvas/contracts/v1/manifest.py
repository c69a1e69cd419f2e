from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Framework = Literal["opentui", "ink", "bubbletea", "textual", "ratatui", "blessed", "custom"]


class ScenarioDefinition(BaseModel):
    description: str = ""
    config_schema: Optional[Dict[str, Any]] = Field(default=None, alias="configSchema")
    result_schema: Optional[Dict[str, Any]] = Field(default=None, alias="resultSchema")
    wait_for_result: Optional[bool] = Field(default=None, alias="waitForResult")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CanvasImplementation(BaseModel):
    framework: Framework = "custom"
    # argv prefix; relative paths resolve against the manifest's directory
    command: List[str] = Field(default_factory=list)
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    status: str = ""

    model_config = ConfigDict(extra="ignore")


class CanvasManifest(BaseModel):
    v: int = 1
    id: str
    name: str = ""
    description: str = ""
    version: str = "0.0.0"
    scenarios: Dict[str, ScenarioDefinition] = Field(default_factory=dict)
    implementations: Dict[str, CanvasImplementation] = Field(default_factory=dict)
    default_implementation: str = Field(default="", alias="defaultImplementation")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)
