import pytest

from tranche_rebase.config import EngineConfig
from tranche_rebase.fixed_point import WAD
from tranche_rebase.ledger import InMemoryLedger
from tranche_rebase.orchestrator import RebaseOrchestrator
from tranche_rebase.store import InMemoryStateStore, initial_system

DAY = 24 * 3600
MONTH = 30 * DAY


def tokens(n: int) -> int:
    return n * WAD


def make_orchestrator(senior=10_000_000, junior=2_000_000, reserve=625_000, start=0, clock=None, **cfg):
    system = initial_system(
        now=start,
        senior_shares=tokens(senior),
        senior_value=tokens(senior),
        junior_value=tokens(junior),
        reserve_value=tokens(reserve),
    )
    ledger = InMemoryLedger()
    orch = RebaseOrchestrator(
        InMemoryStateStore(system),
        EngineConfig(**cfg),
        ledger=ledger,
        clock=clock or (lambda: start + MONTH),
    )
    return orch, ledger


@pytest.fixture
def orch():
    return make_orchestrator()[0]
