from __future__ import annotations

from typing import Iterator, Optional, Protocol, runtime_checkable

from savesvc.core.varserver.models import Notification, NotifyKind, VarFlag, VarHandle, VarQuery, VarRecord


@runtime_checkable
class VarServer(Protocol):
    """
    Registry collaborator consumed by the save service.

    Implementations own variable storage, dirty tracking and notification
    delivery. The save service only reads through this surface.
    """

    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...

    def find_by_name(self, name: str) -> Optional[VarHandle]: ...

    def notify(self, handle: VarHandle, kind: NotifyKind) -> None: ...

    def wait_signal(self) -> Optional[Notification]: ...

    def get_first(self, query: VarQuery) -> Optional[VarRecord]: ...

    def get_next(self, query: VarQuery) -> Optional[VarRecord]: ...

    def to_string(self, record: VarRecord) -> str: ...


def iter_dirty(server: VarServer, *, flags: VarFlag = VarFlag.DIRTY) -> Iterator[VarRecord]:
    """
    Lazy first/next walk over the records carrying `flags`.

    Ends when the registry answers "no more" (None). Not restartable.
    """
    query = VarQuery(flags=flags)
    record = server.get_first(query)
    while record is not None:
        yield record
        record = server.get_next(query)
