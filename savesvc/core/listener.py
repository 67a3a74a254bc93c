from __future__ import annotations

import uuid
from typing import Optional

from savesvc.core.errors import NotifyRegistrationError, TriggerNotFoundError
from savesvc.core.persister import AtomicConfigPersister, CycleResult
from savesvc.core.varserver.interface import VarServer
from savesvc.core.varserver.models import VAR_INVALID, Notification, NotifyKind, VarHandle


class TriggerListener:
    """
    Turns MODIFIED notifications on the trigger variable into save cycles.

    The cycle runs on the waiting thread, so a trigger that fires mid-cycle
    is only seen once the cycle has finished.
    """

    def __init__(self, *, server: VarServer, trigger_name: str, persister: AtomicConfigPersister, logger=None, verbose: bool = False):
        self.server = server
        self.trigger_name = trigger_name
        self.persister = persister
        self.logger = logger
        self.verbose = bool(verbose)
        self.trigger_handle: Optional[VarHandle] = None
        self.cycles = 0
        self.ignored = 0
        self.last_result: Optional[CycleResult] = None

    def setup(self) -> VarHandle:
        h = self.server.find_by_name(self.trigger_name)
        if h is None or h == VAR_INVALID:
            raise TriggerNotFoundError(f"Cannot find trigger variable: {self.trigger_name}", trigger=self.trigger_name)
        try:
            self.server.notify(h, NotifyKind.MODIFIED)
        except NotifyRegistrationError as e:
            raise NotifyRegistrationError(f"notification request failed for {self.trigger_name}", trigger=self.trigger_name, cause=e.user_message) from e
        self.trigger_handle = h
        return h

    def is_trigger(self, n: Notification) -> bool:
        return n.kind == NotifyKind.MODIFIED and self.trigger_handle is not None and n.handle == self.trigger_handle

    def handle(self, n: Notification) -> Optional[CycleResult]:
        if not self.is_trigger(n):
            self.ignored += 1
            return None
        if self.verbose and self.logger:
            self.logger.info("Saving all dirty variables")
        result = self.persister.run_cycle(trace_id=uuid.uuid4().hex)
        self.cycles += 1
        self.last_result = result
        return result

    def run(self) -> None:
        """
        Wait for triggers for as long as the registry connection is open.

        Returns only once wait_signal() reports the connection closed.
        """
        if self.trigger_handle is None:
            self.setup()
        while True:
            n = self.server.wait_signal()
            if n is None:
                if self.logger:
                    self.logger.info("Variable server connection closed; listener stopping")
                return
            self.handle(n)
