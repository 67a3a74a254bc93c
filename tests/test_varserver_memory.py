from __future__ import annotations

import json

import pytest

from savesvc.core.config.models import ServiceConfig
from savesvc.core.errors import NotifyRegistrationError
from savesvc.core.varserver import InMemoryVarServer, iter_dirty
from savesvc.core.varserver.memory import open_default
from savesvc.core.varserver.models import VAR_INVALID, NotifyKind, VarFlag, VarQuery, VarType


def test_handles_are_allocated_from_one():
    s = InMemoryVarServer()
    a = s.create("/a", "x")
    b = s.create("/b", "y")
    assert (a, b) == (1, 2)
    assert VAR_INVALID not in (a, b)


def test_find_by_name_distinguishes_instances(server):
    h0 = server.create("/dev/temp", 1)
    h3 = server.create("/dev/temp", 2, instance=3)
    assert server.find_by_name("/dev/temp") == h0
    assert server.find_by_name("/dev/temp", 3) == h3
    assert server.find_by_name("/nope") is None


def test_duplicate_variable_rejected(server):
    server.create("/a", "x")
    with pytest.raises(ValueError):
        server.create("/a", "y")


def test_set_marks_dirty_and_notifies_only_watchers(server):
    h = server.create("/a", "x")
    assert server.get(h).dirty is False
    server.set(h, "y")
    assert server.get(h).dirty is True
    server.notify(h, NotifyKind.MODIFIED)
    server.set(h, "z")
    n = server.wait_signal()
    assert n is not None
    assert n.kind == NotifyKind.MODIFIED
    assert n.handle == h


def test_volatile_variables_never_become_dirty(server):
    h = server.create("/sys/config/save", 0, flags=VarFlag.VOLATILE)
    server.set(h, 1)
    assert server.get(h).dirty is False


def test_clear_dirty(server):
    h = server.create("/a", "x", flags=VarFlag.DIRTY)
    server.clear_dirty(h)
    assert server.get(h).dirty is False
    assert list(iter_dirty(server)) == []


def test_first_next_cursor_ends_with_none(server):
    server.create("/a", "1", flags=VarFlag.DIRTY)
    server.create("/b", "2")
    server.create("/c", "3", flags=VarFlag.DIRTY)
    q = VarQuery(flags=VarFlag.DIRTY)
    first = server.get_first(q)
    second = server.get_next(q)
    assert (first.name, second.name) == ("/a", "/c")
    assert server.get_next(q) is None
    assert server.get_next(q) is None


def test_enumeration_is_a_snapshot(server):
    server.create("/a", "1", flags=VarFlag.DIRTY)
    it = iter_dirty(server)
    assert next(it).name == "/a"
    server.create("/late", "2", flags=VarFlag.DIRTY)
    assert list(it) == []


def test_notify_unknown_handle_refused(server):
    with pytest.raises(NotifyRegistrationError):
        server.notify(99, NotifyKind.MODIFIED)


def test_close_unblocks_every_waiter(server):
    server.close()
    assert server.closed is True
    assert server.wait_signal() is None
    assert server.wait_signal() is None


def test_to_string_uses_type_tag(server):
    h = server.create("/t", 21.5)
    assert server.to_string(server.get(h)) == "21.500000"


def test_load_seed(tmp_path):
    seed_path = tmp_path / "seed.json"
    seed_path.write_text(
        json.dumps(
            {
                "variables": [
                    {"name": "/sys/name", "value": "alice", "dirty": True},
                    {"name": "/dev/temp", "value": 42, "type": "int", "instance": 3, "dirty": True},
                    {"name": "/dev/key", "value": "00ff", "type": "blob"},
                ]
            }
        ),
        encoding="utf-8",
    )
    s = InMemoryVarServer()
    assert s.load_seed(str(seed_path)) == 3
    names = [(r.name, r.instance) for r in iter_dirty(s)]
    assert names == [("/sys/name", 0), ("/dev/temp", 3)]
    key = s.get(s.find_by_name("/dev/key"))
    assert key.type == VarType.BLOB
    assert key.value == b"\x00\xff"


def test_load_seed_missing_file(tmp_path):
    with pytest.raises(ValueError):
        InMemoryVarServer().load_seed(str(tmp_path / "missing.json"))


def test_open_default_declares_trigger_from_seed(tmp_path):
    seed_path = tmp_path / "seed.json"
    seed_path.write_text(json.dumps({"variables": [{"name": "/sys/config/save", "value": 0, "volatile": True}]}), encoding="utf-8")
    cfg = ServiceConfig(output_path=str(tmp_path / "o.cfg"), registry_seed=str(seed_path))
    s = open_default(cfg)
    h = s.find_by_name("/sys/config/save")
    assert h is not None
    assert s.get(h).flags & VarFlag.VOLATILE
    s.set(h, 1)
    assert list(iter_dirty(s)) == []


def test_open_default_does_not_invent_the_trigger(tmp_path):
    cfg = ServiceConfig(output_path=str(tmp_path / "o.cfg"), trigger_var="/no/such/trigger")
    assert open_default(cfg).find_by_name("/no/such/trigger") is None
