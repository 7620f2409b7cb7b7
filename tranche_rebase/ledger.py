from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Protocol, Tuple

from .models import TrancheId

logger = logging.getLogger(__name__)


class CustodyLedger(Protocol):
    """Custody-side collaborator. The engine decides amounts; this moves the underlying."""

    def transfer_value(self, source: TrancheId, destination: TrancheId, amount: int) -> None: ...

    def mint_fee_shares(self, tranche: TrancheId, amount: int, recipient: str) -> None: ...


@dataclass(frozen=True)
class LedgerEntry:
    kind: str            # "transfer" | "mint"
    source: str
    destination: str
    amount: int


class InMemoryLedger:
    """Records instructions instead of moving tokens; used by the CLI, dashboard and tests."""

    def __init__(self) -> None:
        self.entries: List[LedgerEntry] = []
        self.fee_shares: Dict[Tuple[TrancheId, str], int] = {}

    def transfer_value(self, source: TrancheId, destination: TrancheId, amount: int) -> None:
        self.entries.append(LedgerEntry("transfer", source.value, destination.value, amount))
        logger.debug("transfer %s -> %s: %d", source.value, destination.value, amount)

    def mint_fee_shares(self, tranche: TrancheId, amount: int, recipient: str) -> None:
        self.entries.append(LedgerEntry("mint", tranche.value, recipient, amount))
        key = (tranche, recipient)
        self.fee_shares[key] = self.fee_shares.get(key, 0) + amount
        logger.debug("mint %d %s fee shares to %s", amount, tranche.value, recipient)
