from __future__ import annotations

from typing import Callable, Optional

from savesvc.core.config.models import ServiceConfig
from savesvc.core.errors import NotifyRegistrationError, RegistryUnavailableError, SaveSvcError, TriggerNotFoundError
from savesvc.core.listener import TriggerListener
from savesvc.core.persister import AtomicConfigPersister
from savesvc.core.varserver.factory import open_varserver
from savesvc.core.varserver.interface import VarServer


class SaveService:
    """
    Daemon context: owns the registry connection, the resolved trigger and
    the persister. Created and owned by main(); the termination handler only
    holds a weak reference and calls release().
    """

    def __init__(
        self,
        cfg: ServiceConfig,
        *,
        logger=None,
        ops=None,
        opener: Callable[[ServiceConfig], VarServer] = open_varserver,
    ):
        self.cfg = cfg
        self.logger = logger
        self.ops = ops
        self.opener = opener
        self.server: Optional[VarServer] = None
        self.persister: Optional[AtomicConfigPersister] = None
        self.listener: Optional[TriggerListener] = None
        self.startup_error: Optional[SaveSvcError] = None

    def start(self) -> bool:
        """
        Open the registry, resolve the trigger and register for MODIFIED.

        Returns False after reporting a fatal startup error; the caller then
        falls through to close().
        """
        try:
            self.server = self.opener(self.cfg)
        except RegistryUnavailableError as e:
            return self._fatal(e)

        if not self.cfg.trigger_var:
            return self._fatal(TriggerNotFoundError("No trigger variable specified"))

        self.persister = AtomicConfigPersister(
            server=self.server,
            target_path=self.cfg.output_path,
            tmp_suffix=self.cfg.tmp_suffix,
            header=self.cfg.header,
            logger=self.logger,
            ops=self.ops,
        )
        self.listener = TriggerListener(
            server=self.server,
            trigger_name=self.cfg.trigger_var,
            persister=self.persister,
            logger=self.logger,
            verbose=self.cfg.verbose,
        )
        try:
            handle = self.listener.setup()
        except (TriggerNotFoundError, NotifyRegistrationError) as e:
            return self._fatal(e)

        if self.logger:
            self.logger.info(f"Save service ready: trigger={self.cfg.trigger_var} output={self.cfg.output_path}")
        self._ops("startup", "ok", {"trigger": self.cfg.trigger_var, "trigger_handle": handle, "output": self.cfg.output_path})
        return True

    def run(self) -> None:
        if self.listener is None:
            raise RuntimeError("SaveService.start() must succeed before run()")
        self.listener.run()

    def release(self) -> None:
        """
        Drop the registry connection. Safe from a signal handler: touches no
        lock the main flow may hold and does not finish an in-flight cycle.
        """
        server = self.server
        self.server = None
        if server is not None:
            server.close()

    def close(self) -> None:
        was_open = self.server is not None
        self.release()
        self.listener = None
        self.persister = None
        if was_open:
            self._ops("shutdown", "ok", {})

    # ---------- internals ----------
    def _fatal(self, err: SaveSvcError) -> bool:
        self.startup_error = err
        if self.logger:
            self.logger.error(err.user_message)
        self._ops("startup", "failed", err.to_dict())
        return False

    def _ops(self, event: str, outcome: str, details) -> None:  # noqa: ANN001
        if self.ops is None:
            return
        try:
            self.ops.log(trace_id="service", event=event, outcome=outcome, details=details)
        except OSError as e:
            if self.logger:
                self.logger.warning(f"Ops log write failed: {e}")
