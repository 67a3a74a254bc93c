from __future__ import annotations

import errno
import os
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Dict, List, Optional, Tuple

from savesvc.core.config.models import DEFAULT_HEADER
from savesvc.core.errors import ConversionError, PersistIOError, StateTransitionError
from savesvc.core.varserver.interface import VarServer, iter_dirty
from savesvc.core.varserver.models import VarRecord, VarType

TMP_SUFFIX = ".tmp"
FILE_MODE = 0o644


class PersistState(str, Enum):
    IDLE = "IDLE"
    CREATING = "CREATING"
    HEADER_WRITTEN = "HEADER_WRITTEN"
    ENUMERATING = "ENUMERATING"
    FINALIZING = "FINALIZING"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"


_ALLOWED: Dict[PersistState, set[PersistState]] = {
    PersistState.IDLE: {PersistState.CREATING},
    PersistState.CREATING: {PersistState.HEADER_WRITTEN, PersistState.ABORTED},
    PersistState.HEADER_WRITTEN: {PersistState.ENUMERATING, PersistState.ABORTED},
    PersistState.ENUMERATING: {PersistState.FINALIZING, PersistState.ABORTED},
    PersistState.FINALIZING: {PersistState.COMMITTED, PersistState.ABORTED},
    PersistState.COMMITTED: {PersistState.IDLE},
    PersistState.ABORTED: {PersistState.IDLE},
}


def format_line(name: str, value: str, instance: int = 0) -> str:
    """One config line; a bracketed prefix appears only for non-zero instances."""
    if instance:
        return f"[{int(instance)}]{name}={value}\n"
    return f"{name}={value}\n"


@dataclass
class PersistSession:
    target_path: str
    tmp_path: str
    fh: Optional[IO[str]] = None

    def close(self) -> None:
        if self.fh is None:
            return
        try:
            self.fh.close()
        finally:
            self.fh = None


@dataclass
class CycleResult:
    trace_id: str
    ok: bool
    state: PersistState
    target_path: str
    tmp_path: str
    written: int = 0
    skipped: List[str] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: float = 0.0


class AtomicConfigPersister:
    """
    Writes the dirty variable set to `target_path` via `<target><suffix>` + rename.

    Per cycle: IDLE -> CREATING -> HEADER_WRITTEN -> ENUMERATING -> FINALIZING
    -> COMMITTED | ABORTED -> IDLE. The canonical file only changes on the
    final rename; any earlier failure leaves it byte-for-byte as it was.
    """

    def __init__(
        self,
        *,
        server: VarServer,
        target_path: str,
        tmp_suffix: str = TMP_SUFFIX,
        header: str = DEFAULT_HEADER,
        logger=None,
        ops=None,
    ):
        self.server = server
        self.target_path = target_path
        self.tmp_suffix = tmp_suffix
        self.header = header
        self.logger = logger
        self.ops = ops
        self._state = PersistState.IDLE
        self._history: List[Tuple[PersistState, PersistState]] = []

    @property
    def tmp_path(self) -> str:
        return self.target_path + self.tmp_suffix

    @property
    def state(self) -> PersistState:
        return self._state

    def last_transitions(self) -> List[Tuple[PersistState, PersistState]]:
        return list(self._history)

    def run_cycle(self, *, trace_id: Optional[str] = None) -> CycleResult:
        trace_id = trace_id or uuid.uuid4().hex
        t0 = time.time()
        self._history = []
        session = PersistSession(target_path=self.target_path, tmp_path=self.tmp_path)
        written = 0
        skipped: List[str] = []
        error: Optional[str] = None
        try:
            self._set_state(PersistState.CREATING)
            self._init_session(session)
            self._write_header(session)
            self._set_state(PersistState.HEADER_WRITTEN)
            self._set_state(PersistState.ENUMERATING)
            written, skipped = self._write_body(session)
            self._set_state(PersistState.FINALIZING)
            self._finalize(session)
            self._set_state(PersistState.COMMITTED)
        except PersistIOError as e:
            error = e.user_message
            self._abort(session)
        except Exception as e:  # noqa: BLE001
            # registry failures mid-enumeration abort the cycle, not the daemon
            error = f"unexpected error: {e}"
            if self.logger:
                self.logger.exception(f"Persistence cycle for {self.target_path} failed")
            self._abort(session)
        except BaseException:
            # forced shutdown mid-cycle: leave the canonical file alone and propagate
            self._abort(session)
            raise
        finally:
            final = self._state
            if final != PersistState.IDLE:
                self._set_state(PersistState.IDLE)

        result = CycleResult(
            trace_id=trace_id,
            ok=final == PersistState.COMMITTED,
            state=final,
            target_path=self.target_path,
            tmp_path=self.tmp_path,
            written=written,
            skipped=skipped,
            error=error,
            duration_ms=round((time.time() - t0) * 1000.0, 3),
        )
        if not result.ok and self.logger:
            self.logger.error(f"Failed to create configuration file: {self.target_path} ({error})")
        self._log_ops(result)
        return result

    # ---------- protocol steps ----------
    def _init_session(self, session: PersistSession) -> None:
        try:
            os.unlink(session.tmp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            # not fatal on its own; the create below decides
            if self.logger:
                self.logger.warning(f"Cannot remove stale temporary file {session.tmp_path}: {e.strerror or e}")

        try:
            fd = os.open(session.tmp_path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, FILE_MODE)
        except OSError as e:
            raise PersistIOError(
                f"cannot create {session.tmp_path}: {e.strerror or e}",
                path=self.target_path,
                tmp_path=session.tmp_path,
                errno=e.errno,
            ) from e
        try:
            session.fh = os.fdopen(fd, "w", encoding="utf-8", newline="\n")
        except OSError as e:
            os.close(fd)
            raise PersistIOError(f"cannot open {session.tmp_path}: {e}", path=self.target_path, tmp_path=session.tmp_path) from e

    def _write_header(self, session: PersistSession) -> None:
        self._write(session, f"{self.header}\n\n", what="header")

    def _write_body(self, session: PersistSession) -> Tuple[int, List[str]]:
        written = 0
        skipped: List[str] = []
        for record in iter_dirty(self.server):
            try:
                value = self._render(record)
            except ConversionError as e:
                skipped.append(record.name)
                if self.logger:
                    self.logger.warning(f"cannot save {record.name}: {e.user_message}")
                continue
            self._write(session, format_line(record.name, value, record.instance), what=record.name)
            written += 1
        return written, skipped

    def _finalize(self, session: PersistSession) -> None:
        fh = session.fh
        try:
            if fh is not None:
                fh.flush()
                os.fsync(fh.fileno())
            session.close()
        except OSError as e:
            raise PersistIOError(f"cannot close {session.tmp_path}: {e.strerror or e}", path=self.target_path, tmp_path=session.tmp_path) from e
        try:
            os.replace(session.tmp_path, session.target_path)
        except OSError as e:
            # the temporary file stays for inspection
            raise PersistIOError(
                f"cannot rename {session.tmp_path} to {session.target_path}: {e.strerror or e}",
                path=self.target_path,
                tmp_path=session.tmp_path,
                errno=e.errno,
            ) from e

    def _abort(self, session: PersistSession) -> None:
        try:
            session.close()
        except OSError as e:
            if self.logger:
                self.logger.warning(f"Cannot close {session.tmp_path}: {e}")
        if self._state not in (PersistState.IDLE, PersistState.ABORTED):
            self._set_state(PersistState.ABORTED)

    # ---------- helpers ----------
    def _render(self, record: VarRecord) -> str:
        if record.type == VarType.STR and isinstance(record.value, str):
            text = record.value
        else:
            text = self.server.to_string(record)
        if "\n" in text or "\r" in text:
            raise ConversionError(f"value of {record.name} spans more than one line", name=record.name)
        try:
            text.encode("utf-8")
        except UnicodeEncodeError as e:
            raise ConversionError(f"value of {record.name} is not valid UTF-8: {e.reason}", name=record.name) from e
        return text

    def _write(self, session: PersistSession, text: str, *, what: str) -> None:
        if session.fh is None:
            raise PersistIOError(f"{session.tmp_path} is not open", path=self.target_path, tmp_path=session.tmp_path)
        try:
            n = session.fh.write(text)
        except (OSError, UnicodeError) as e:
            raise PersistIOError(f"{what} output failed: {e}", path=self.target_path, tmp_path=session.tmp_path) from e
        if n != len(text):
            raise PersistIOError(f"{what} output failed: short write", path=self.target_path, tmp_path=session.tmp_path, errno=errno.EIO)

    def _set_state(self, new_state: PersistState) -> None:
        old = self._state
        if new_state not in _ALLOWED.get(old, set()):
            raise StateTransitionError(f"Invalid transition {old.value} -> {new_state.value}", old=old.value, new=new_state.value)
        self._state = new_state
        self._history.append((old, new_state))
        if self.logger:
            self.logger.debug(f"persist state {old.value} -> {new_state.value}")

    def _log_ops(self, result: CycleResult) -> None:
        if self.ops is None:
            return
        try:
            self.ops.log(
                trace_id=result.trace_id,
                event="persist_cycle",
                outcome="committed" if result.ok else "aborted",
                details={
                    "target": result.target_path,
                    "written": result.written,
                    "skipped": list(result.skipped),
                    "error": result.error,
                    "duration_ms": result.duration_ms,
                },
            )
        except OSError as e:
            if self.logger:
                self.logger.warning(f"Ops log write failed: {e}")
