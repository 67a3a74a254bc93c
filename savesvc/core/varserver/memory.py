from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from savesvc.core.config.io import read_json_file
from savesvc.core.errors import NotifyRegistrationError
from savesvc.core.varserver.convert import DEFAULT_MAX_VALUE_LEN, value_to_string
from savesvc.core.varserver.models import (
    Notification,
    NotifyKind,
    VarFlag,
    VarHandle,
    VarQuery,
    VarRecord,
    VarType,
)

# Posted into the signal channel by close(); wait_signal() turns it into None.
_CLOSED = object()


@dataclass
class _Var:
    handle: VarHandle
    name: str
    instance: int
    type: VarType
    value: Any
    flags: int = 0
    watchers: Set[NotifyKind] = field(default_factory=set)

    def record(self) -> VarRecord:
        return VarRecord(handle=self.handle, name=self.name, instance=self.instance, type=self.type, value=self.value, flags=int(self.flags))


def infer_type(value: Any) -> VarType:
    if isinstance(value, bool):
        return VarType.BOOL
    if isinstance(value, int):
        return VarType.INT
    if isinstance(value, float):
        return VarType.FLOAT
    if isinstance(value, (bytes, bytearray)):
        return VarType.BLOB
    return VarType.STR


class InMemoryVarServer:
    """
    In-process variable registry.

    - handles are allocated from 1 in creation order
    - set() marks non-volatile variables DIRTY and posts MODIFIED to watchers
    - enumeration snapshots the matching records at get_first()
    - close() takes no lock, so a signal handler may call it while the
      main thread is blocked in wait_signal()
    """

    def __init__(self, *, max_value_len: int = DEFAULT_MAX_VALUE_LEN):
        self.max_value_len = int(max_value_len)
        self._lock = threading.Lock()
        self._vars: Dict[VarHandle, _Var] = {}
        self._by_name: Dict[Tuple[str, int], VarHandle] = {}
        self._next_handle: VarHandle = 1
        self._signals: "queue.SimpleQueue[Any]" = queue.SimpleQueue()
        self._closed = False

    # ---------- connection ----------
    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # SimpleQueue.put is reentrant
        self._signals.put(_CLOSED)

    # ---------- variables ----------
    def create(self, name: str, value: Any = "", *, vtype: Optional[VarType] = None, instance: int = 0, flags: int = VarFlag.NONE) -> VarHandle:
        name = str(name or "").strip()
        if not name:
            raise ValueError("variable name required")
        if int(instance) < 0:
            raise ValueError("instance must be >= 0")
        key = (name, int(instance))
        with self._lock:
            if key in self._by_name:
                raise ValueError(f"variable already exists: {name}")
            h = self._next_handle
            self._next_handle += 1
            self._vars[h] = _Var(handle=h, name=name, instance=int(instance), type=vtype or infer_type(value), value=value, flags=int(flags))
            self._by_name[key] = h
        return h

    def find_by_name(self, name: str, instance: int = 0) -> Optional[VarHandle]:
        with self._lock:
            return self._by_name.get((str(name), int(instance)))

    def get(self, handle: VarHandle) -> VarRecord:
        with self._lock:
            return self._require(handle).record()

    def set(self, handle: VarHandle, value: Any) -> None:
        with self._lock:
            v = self._require(handle)
            v.value = value
            if not v.flags & VarFlag.VOLATILE:
                v.flags |= VarFlag.DIRTY
            watched = NotifyKind.MODIFIED in v.watchers
        if watched:
            self.signal(handle, NotifyKind.MODIFIED)

    def clear_dirty(self, handle: VarHandle) -> None:
        with self._lock:
            self._require(handle).flags &= ~VarFlag.DIRTY

    def load_seed(self, path: str) -> int:
        """
        Create variables from a JSON seed file:

            {"variables": [{"name": "/sys/name", "value": "alice", "type": "str",
                            "instance": 0, "dirty": true}]}

        BLOB values are given as hex strings. "volatile": true declares a
        variable that is never saved, such as the trigger. Returns the number
        created.
        """
        rr = read_json_file(path)
        if not rr.ok:
            raise ValueError(f"cannot read registry seed {path}: {rr.error}")
        n = 0
        for item in rr.data.get("variables") or []:
            vtype = VarType(item["type"]) if item.get("type") else None
            value = item.get("value", "")
            if vtype == VarType.BLOB and isinstance(value, str):
                value = bytes.fromhex(value)
            flags = VarFlag.DIRTY if item.get("dirty") else VarFlag.NONE
            if item.get("volatile"):
                flags = VarFlag.VOLATILE
            self.create(item["name"], value, vtype=vtype, instance=int(item.get("instance") or 0), flags=flags)
            n += 1
        return n

    # ---------- notifications ----------
    def notify(self, handle: VarHandle, kind: NotifyKind) -> None:
        if self._closed:
            raise NotifyRegistrationError("variable server connection is closed", handle=handle)
        with self._lock:
            v = self._vars.get(handle)
            if v is None:
                raise NotifyRegistrationError(f"no variable with handle {handle}", handle=handle)
            v.watchers.add(NotifyKind(kind))

    def signal(self, handle: VarHandle, kind: NotifyKind) -> None:
        """Deliver a notification into the signal channel."""
        if self._closed:
            return
        self._signals.put(Notification(kind=kind, handle=handle))

    def wait_signal(self) -> Optional[Notification]:
        item = self._signals.get()
        if item is _CLOSED:
            # leave the marker for any later waiter
            self._signals.put(_CLOSED)
            return None
        return item

    # ---------- queries ----------
    def get_first(self, query: VarQuery) -> Optional[VarRecord]:
        with self._lock:
            snapshot: List[VarRecord] = [v.record() for v in self._vars.values()]
        query._results = [r for r in snapshot if query.matches(r)]
        query._pos = 0
        return self.get_next(query)

    def get_next(self, query: VarQuery) -> Optional[VarRecord]:
        if query._pos >= len(query._results):
            return None
        rec = query._results[query._pos]
        query._pos += 1
        return rec

    def to_string(self, record: VarRecord) -> str:
        return value_to_string(record.type, record.value, name=record.name, max_len=self.max_value_len)

    # ---------- internals ----------
    def _require(self, handle: VarHandle) -> _Var:
        v = self._vars.get(handle)
        if v is None:
            raise KeyError(f"no variable with handle {handle}")
        return v


def open_default(cfg) -> InMemoryVarServer:  # noqa: ANN001
    """
    Registry factory used when no external registry is configured.

    Only the variables declared in the optional seed file exist; the trigger
    has to be one of them.
    """
    server = InMemoryVarServer(max_value_len=int(cfg.max_value_len))
    if cfg.registry_seed:
        server.load_seed(cfg.registry_seed)
    return server
