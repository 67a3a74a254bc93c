from __future__ import annotations

import pytest

from savesvc.core.persister import AtomicConfigPersister
from savesvc.core.varserver.memory import InMemoryVarServer
from tests.helpers.fakes import DummyOps, RecordingLogger


@pytest.fixture
def server():
    s = InMemoryVarServer()
    yield s
    s.close()


@pytest.fixture
def out_path(tmp_path):
    return str(tmp_path / "usersettings.cfg")


@pytest.fixture
def logger():
    return RecordingLogger()


@pytest.fixture
def ops():
    return DummyOps()


@pytest.fixture
def persister(server, out_path, logger, ops):
    return AtomicConfigPersister(server=server, target_path=out_path, logger=logger, ops=ops)
