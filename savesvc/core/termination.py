from __future__ import annotations

import signal
import sys
import weakref
from typing import Any, Callable, Dict, Iterable, Optional

from savesvc.core.logger import setup_syslog

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class TerminationHandler:
    """
    Abnormal termination handler (SIGTERM/SIGINT).

    Writes a syslog entry, releases the registry connection and exits with
    status 1. Any cycle in flight is abandoned; its temporary file is
    replaced on the next run.
    """

    def __init__(self, service: Any, *, syslog=None, exit_fn: Callable[[int], None] = sys.exit):
        self._service_ref = weakref.ref(service)
        self.syslog = syslog if syslog is not None else setup_syslog()
        self.exit_fn = exit_fn
        self._previous: Dict[int, Any] = {}

    def install(self, signals: Iterable[int] = TERMINATION_SIGNALS) -> None:
        for sig in signals:
            self._previous[int(sig)] = signal.signal(sig, self)

    def uninstall(self) -> None:
        for sig, prev in self._previous.items():
            signal.signal(sig, prev if prev is not None else signal.SIG_DFL)
        self._previous = {}

    def __call__(self, signum: int, frame: Optional[Any]) -> None:  # noqa: ARG002
        self.syslog.error(f"Abnormal termination of savesvc (signal {signum})")
        service = self._service_ref()
        if service is not None:
            service.release()
        self.exit_fn(1)
