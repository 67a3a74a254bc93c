"""
Variable registry collaborator: interface, data types and an in-process implementation.
"""

from savesvc.core.varserver.interface import VarServer, iter_dirty
from savesvc.core.varserver.memory import InMemoryVarServer
from savesvc.core.varserver.models import (
    VAR_INVALID,
    Notification,
    NotifyKind,
    VarFlag,
    VarHandle,
    VarQuery,
    VarRecord,
    VarType,
)

__all__ = [
    "VarServer",
    "iter_dirty",
    "InMemoryVarServer",
    "VAR_INVALID",
    "Notification",
    "NotifyKind",
    "VarFlag",
    "VarHandle",
    "VarQuery",
    "VarRecord",
    "VarType",
]
