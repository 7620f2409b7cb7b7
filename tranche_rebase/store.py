"""
Durable tranche state.

The whole Senior/Junior/Reserve triplet is stored as one versioned record. A
rebase reads the record, computes, and writes back with compare_and_swap on the
version it read, so a duplicate or out-of-order writer loses with StateConflict
instead of double-applying fees or transfers.
"""
from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping

from .errors import StateConflict
from .fixed_point import WAD
from .models import TrancheId, TrancheState, TrancheSystem

logger = logging.getLogger(__name__)

STATE_FIELDS = tuple(f for f in TrancheState.__dataclass_fields__ if f != "tranche")
FORMAT_VERSION = 1


def initial_system(
    now: int,
    senior_shares: int = 0,
    senior_value: int = 0,
    junior_value: int = 0,
    reserve_value: int = 0,
) -> TrancheSystem:
    """Fresh triplet: index 1.0, epoch 0, last rebase at ``now``."""
    return TrancheSystem(
        senior=TrancheState(TrancheId.SENIOR, total_shares=senior_shares, rebase_index=WAD,
                            reported_value=senior_value, last_rebase_time=now),
        junior=TrancheState(TrancheId.JUNIOR, total_shares=junior_value, reported_value=junior_value,
                            last_rebase_time=now),
        reserve=TrancheState(TrancheId.RESERVE, total_shares=reserve_value, reported_value=reserve_value,
                             last_rebase_time=now),
    )


def state_to_dict(state: TrancheState) -> Dict[str, str]:
    # ints as decimal strings so non-Python readers keep full 256-bit precision
    return {name: str(getattr(state, name)) for name in STATE_FIELDS}


def state_from_dict(tranche: TrancheId, d: Mapping[str, Any]) -> TrancheState:
    kwargs = {name: int(d[name]) for name in STATE_FIELDS}
    return TrancheState(tranche, **kwargs)


def system_to_dict(system: TrancheSystem) -> Dict[str, Any]:
    return {
        "format": FORMAT_VERSION,
        "version": system.version,
        "tranches": {t.value: state_to_dict(system.get(t)) for t in TrancheId},
    }


def system_from_dict(d: Mapping[str, Any]) -> TrancheSystem:
    if int(d.get("format", FORMAT_VERSION)) != FORMAT_VERSION:
        raise ValueError(f"unsupported state format: {d.get('format')}")
    tranches = d["tranches"]
    return TrancheSystem(
        senior=state_from_dict(TrancheId.SENIOR, tranches["senior"]),
        junior=state_from_dict(TrancheId.JUNIOR, tranches["junior"]),
        reserve=state_from_dict(TrancheId.RESERVE, tranches["reserve"]),
        version=int(d["version"]),
    )


class InMemoryStateStore:
    def __init__(self, system: TrancheSystem) -> None:
        self._system = system
        self._lock = threading.Lock()

    def load(self) -> TrancheSystem:
        return self._system

    def compare_and_swap(self, expected_version: int, new_system: TrancheSystem) -> TrancheSystem:
        with self._lock:
            if self._system.version != expected_version:
                raise StateConflict(expected_version, self._system.version)
            self._system = TrancheSystem(
                new_system.senior, new_system.junior, new_system.reserve, version=expected_version + 1
            )
            return self._system


class JsonStateStore:
    """
    File-backed store; survives restarts. Writes are atomic (temp file + os.replace).

    Every read-check-write runs under an exclusive flock on a sidecar
    ``<state>.lock`` file, so separate store objects, worker processes and the
    CLI serialise on the same path. POSIX only.
    """

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._lock = threading.Lock()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, open(self.lock_path, "a") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def exists(self) -> bool:
        return self.path.exists()

    def initialize(self, system: TrancheSystem, overwrite: bool = False) -> TrancheSystem:
        with self._exclusive():
            if self.path.exists() and not overwrite:
                raise FileExistsError(f"state file already exists: {self.path}")
            self._write(system)
        logger.info("initialized tranche state at %s", self.path)
        return system

    def load(self) -> TrancheSystem:
        with open(self.path, "r", encoding="utf-8") as f:
            return system_from_dict(json.load(f))

    def compare_and_swap(self, expected_version: int, new_system: TrancheSystem) -> TrancheSystem:
        with self._exclusive():
            current = self.load()
            if current.version != expected_version:
                raise StateConflict(expected_version, current.version)
            stored = TrancheSystem(
                new_system.senior, new_system.junior, new_system.reserve, version=expected_version + 1
            )
            self._write(stored)
            return stored

    def _write(self, system: TrancheSystem) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(system_to_dict(system), f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
