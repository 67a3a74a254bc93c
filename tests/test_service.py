from __future__ import annotations

import json
import signal

import pytest

from savesvc.core.config.models import ServiceConfig
from savesvc.core.service import SaveService
from savesvc.core.termination import TerminationHandler
from savesvc.core.varserver.memory import open_default
from tests.helpers.fakes import DummyOps, RecordingLogger, open_scripted, open_without_trigger, read_text


def _seed(tmp_path) -> str:
    p = tmp_path / "seed.json"
    p.write_text(json.dumps({"variables": [{"name": "/sys/config/save", "value": 0, "volatile": True}]}), encoding="utf-8")
    return str(p)


def _cfg(tmp_path, **kw) -> ServiceConfig:
    base = {"output_path": str(tmp_path / "usersettings.cfg"), "log_dir": None, "ops_log_path": None, "registry_seed": _seed(tmp_path)}
    base.update(kw)
    return ServiceConfig(**base)


def test_start_and_run_one_scripted_cycle(tmp_path):
    ops = DummyOps()
    svc = SaveService(_cfg(tmp_path), logger=RecordingLogger(), ops=ops, opener=open_scripted)
    assert svc.start() is True
    svc.run()
    svc.close()
    assert read_text(str(tmp_path / "usersettings.cfg")) == "@config User Settings\n\n/sys/name=alice\n[3]/dev/temp=42\n"
    events = [(e["event"], e["outcome"]) for e in ops.entries]
    assert events == [("startup", "ok"), ("persist_cycle", "committed"), ("shutdown", "ok")]


def test_registry_unavailable_is_fatal(tmp_path):
    log = RecordingLogger()
    svc = SaveService(_cfg(tmp_path, registry_factory="tests.helpers.fakes:open_unreachable"), logger=log)
    assert svc.start() is False
    assert svc.startup_error is not None
    assert svc.startup_error.code == "registry_unavailable"
    assert svc.listener is None
    assert log.messages("error")


def test_unknown_factory_module_is_fatal(tmp_path):
    svc = SaveService(_cfg(tmp_path, registry_factory="no.such.module:open"))
    assert svc.start() is False
    assert svc.startup_error.code == "registry_unavailable"


def test_missing_trigger_is_fatal(tmp_path):
    log = RecordingLogger()
    svc = SaveService(_cfg(tmp_path, trigger_var="/sys/config/save"), logger=log, opener=open_without_trigger)
    assert svc.start() is False
    assert svc.startup_error.code == "trigger_not_found"
    assert any("/sys/config/save" in m for m in log.messages("error"))
    svc.close()


def test_unknown_trigger_with_default_registry_is_fatal(tmp_path):
    ops = DummyOps()
    svc = SaveService(_cfg(tmp_path, trigger_var="/no/such/trigger"), ops=ops, opener=open_default)
    assert svc.start() is False
    assert svc.startup_error.code == "trigger_not_found"
    assert ops.entries[0]["details"]["context"]["trigger"] == "/no/such/trigger"
    assert ops.entries[0]["outcome"] == "failed"
    svc.close()


def test_no_trigger_configured_is_fatal(tmp_path):
    svc = SaveService(_cfg(tmp_path, trigger_var=None), opener=open_default)
    assert svc.start() is False
    assert "No trigger variable specified" in svc.startup_error.user_message
    svc.close()


def test_run_before_start_is_an_error(tmp_path):
    with pytest.raises(RuntimeError):
        SaveService(_cfg(tmp_path)).run()


def test_close_is_idempotent(tmp_path):
    ops = DummyOps()
    svc = SaveService(_cfg(tmp_path), ops=ops, opener=open_default)
    assert svc.start() is True
    server = svc.server
    svc.close()
    svc.close()
    assert server.closed is True
    assert [e["event"] for e in ops.entries].count("shutdown") == 1


def test_termination_handler_releases_connection_and_exits_1(tmp_path):
    svc = SaveService(_cfg(tmp_path), opener=open_default)
    assert svc.start() is True
    server = svc.server
    syslog = RecordingLogger()
    handler = TerminationHandler(svc, syslog=syslog)
    with pytest.raises(SystemExit) as ei:
        handler(signal.SIGTERM, None)
    assert ei.value.code == 1
    assert server.closed is True
    assert svc.server is None
    assert any("Abnormal termination" in m for m in syslog.messages("error"))


def test_termination_handler_survives_collected_service(tmp_path):
    codes = []
    svc = SaveService(_cfg(tmp_path), opener=open_default)
    handler = TerminationHandler(svc, syslog=RecordingLogger(), exit_fn=codes.append)
    del svc
    handler(signal.SIGINT, None)
    assert codes == [1]


def test_termination_handler_install_and_restore(tmp_path):
    svc = SaveService(_cfg(tmp_path), opener=open_default)
    handler = TerminationHandler(svc, syslog=RecordingLogger(), exit_fn=lambda _c: None)
    before = signal.getsignal(signal.SIGUSR1)
    handler.install(signals=(signal.SIGUSR1,))
    assert signal.getsignal(signal.SIGUSR1) is handler
    handler.uninstall()
    assert signal.getsignal(signal.SIGUSR1) == before
