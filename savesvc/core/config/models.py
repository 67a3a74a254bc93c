from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_OUTPUT_FILENAME = "/tmp/usersettings.cfg"
DEFAULT_TRIGGER_VARIABLE = "/sys/config/save"
DEFAULT_HEADER = "@config User Settings"
DEFAULT_REGISTRY_FACTORY = "savesvc.core.varserver.memory:open_default"


class ServiceConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    output_path: str = DEFAULT_OUTPUT_FILENAME
    # None/empty means "no trigger configured"; startup then falls through to cleanup.
    trigger_var: Optional[str] = DEFAULT_TRIGGER_VARIABLE
    verbose: bool = False
    tmp_suffix: str = ".tmp"
    header: str = DEFAULT_HEADER
    max_value_len: int = Field(default=8192, ge=16, le=1_048_576)
    log_dir: Optional[str] = "logs"
    ops_log_path: Optional[str] = os.path.join("logs", "ops.jsonl")
    registry_factory: str = DEFAULT_REGISTRY_FACTORY
    registry_seed: Optional[str] = None

    @field_validator("output_path")
    @classmethod
    def _output_path(cls, v: str) -> str:
        v = str(v or "").strip()
        if not v:
            raise ValueError("output_path required")
        return v

    @field_validator("tmp_suffix")
    @classmethod
    def _suffix(cls, v: str) -> str:
        v = str(v or "")
        if not v or "/" in v:
            raise ValueError("tmp_suffix must be a non-empty file name suffix")
        return v

    @field_validator("header")
    @classmethod
    def _header(cls, v: str) -> str:
        if "\n" in v:
            raise ValueError("header must be a single line")
        return v

    @field_validator("registry_factory")
    @classmethod
    def _factory(cls, v: str) -> str:
        mod, _, attr = str(v).partition(":")
        if not mod or not attr:
            raise ValueError("registry_factory must look like 'package.module:callable'")
        return v
