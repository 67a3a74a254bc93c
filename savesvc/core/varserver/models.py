from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

VarHandle = int

# Handles are allocated from 1; 0 never names a variable.
VAR_INVALID: VarHandle = 0


class VarType(str, Enum):
    STR = "str"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    BLOB = "blob"


class VarFlag(IntFlag):
    NONE = 0
    DIRTY = 1
    VOLATILE = 2


class NotifyKind(str, Enum):
    MODIFIED = "MODIFIED"
    CALC = "CALC"
    VALIDATE = "VALIDATE"
    PRINT = "PRINT"


class VarRecord(BaseModel):
    """One variable as returned by a registry query."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    handle: VarHandle
    name: str
    instance: int = Field(default=0, ge=0)
    type: VarType = VarType.STR
    value: Any = None
    flags: int = Field(default=0, ge=0)

    @field_validator("name")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = str(v or "").strip()
        if not v:
            raise ValueError("name required")
        return v

    @property
    def dirty(self) -> bool:
        return bool(self.flags & VarFlag.DIRTY)


class Notification(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: NotifyKind
    handle: VarHandle
    timestamp: float = Field(default_factory=lambda: time.time())


@dataclass
class VarQuery:
    """
    Cursor for first/next enumeration.

    get_first() fills `_results` with a snapshot; get_next() walks it.
    """

    flags: VarFlag = VarFlag.DIRTY
    _results: List[VarRecord] = field(default_factory=list, repr=False)
    _pos: int = 0

    def matches(self, record: VarRecord) -> bool:
        if self.flags and (record.flags & self.flags) != self.flags:
            return False
        return True
