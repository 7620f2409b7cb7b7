import json
import threading
import time

import pytest

from tranche_rebase.errors import RebaseTooSoon, StateConflict
from tranche_rebase.fixed_point import WAD
from tranche_rebase.models import TrancheId
from tranche_rebase.orchestrator import RebaseOrchestrator
from tranche_rebase.config import EngineConfig
from tranche_rebase.store import InMemoryStateStore, JsonStateStore, initial_system, system_from_dict, system_to_dict


def _system():
    return initial_system(now=1_000, senior_shares=10 * WAD, senior_value=11 * WAD, junior_value=3 * WAD,
                          reserve_value=WAD)


def test_dict_round_trip_keeps_big_ints_as_strings():
    system = _system()
    d = system_to_dict(system)
    assert d["tranches"]["senior"]["reported_value"] == str(11 * WAD)
    assert system_from_dict(json.loads(json.dumps(d))) == system


def test_unknown_format_rejected():
    d = system_to_dict(_system())
    d["format"] = 99
    with pytest.raises(ValueError):
        system_from_dict(d)


def test_json_store_persists_and_bumps_version(tmp_path):
    path = tmp_path / "state" / "rebase_state.json"
    store = JsonStateStore(path)
    assert not store.exists()
    store.initialize(_system())
    with pytest.raises(FileExistsError):
        store.initialize(_system())

    loaded = store.load()
    assert loaded == _system()
    stored = store.compare_and_swap(0, loaded)
    assert stored.version == 1
    assert JsonStateStore(path).load().version == 1
    assert not list(path.parent.glob("*.tmp"))   # no temp files left behind

    with pytest.raises(StateConflict):
        store.compare_and_swap(0, loaded)


def test_rebase_survives_restart(tmp_path):
    path = tmp_path / "rebase_state.json"
    JsonStateStore(path).initialize(_system())
    clock = lambda: 1_000 + 30 * 24 * 3600
    RebaseOrchestrator(JsonStateStore(path), EngineConfig(), clock=clock).rebase()

    again = RebaseOrchestrator(JsonStateStore(path), EngineConfig(), clock=clock)
    s = again.state()
    assert s.version == 1
    assert s.senior.epoch == 1
    assert s.senior.rebase_index > WAD
    assert again.get_reported_value(TrancheId.JUNIOR) <= 3 * WAD


def test_in_memory_store_contract():
    store = InMemoryStateStore(_system())
    assert store.compare_and_swap(0, store.load()).version == 1
    with pytest.raises(StateConflict):
        store.compare_and_swap(0, store.load())


class _SlowWriteStore(JsonStateStore):
    """Pauses inside the locked section, after the version check and before the write."""

    def __init__(self, path, entered):
        super().__init__(path)
        self.entered = entered

    def _write(self, system):
        self.entered.set()
        time.sleep(0.3)
        super()._write(system)


def test_two_store_objects_on_one_file_cannot_both_commit(tmp_path):
    path = tmp_path / "rebase_state.json"
    JsonStateStore(path).initialize(_system())
    snapshot = JsonStateStore(path).load()

    entered = threading.Event()
    slow = _SlowWriteStore(path, entered)
    results = []
    writer = threading.Thread(target=lambda: results.append(slow.compare_and_swap(0, snapshot)))
    writer.start()
    assert entered.wait(5)

    with pytest.raises(StateConflict) as ei:
        JsonStateStore(path).compare_and_swap(0, snapshot)
    writer.join()

    assert (ei.value.expected_version, ei.value.actual_version) == (0, 1)
    assert [r.version for r in results] == [1]
    assert JsonStateStore(path).load().version == 1


def test_concurrent_rebases_apply_one_epoch(tmp_path):
    path = tmp_path / "rebase_state.json"
    JsonStateStore(path).initialize(_system())
    clock = lambda: 1_000 + 30 * 24 * 3600
    start = threading.Barrier(4)
    outcomes = []

    def run():
        orch = RebaseOrchestrator(JsonStateStore(path), EngineConfig(), clock=clock)
        start.wait()
        try:
            outcomes.append(orch.rebase().epoch)
        except (StateConflict, RebaseTooSoon) as e:
            outcomes.append(type(e).__name__)

    threads = [threading.Thread(target=run) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count(1) == 1
    s = JsonStateStore(path).load()
    assert s.version == 1 and s.senior.epoch == 1
