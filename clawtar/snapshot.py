"""
Snapshot persistence for Clawtar state
Atomic JSON snapshot: written to a side file, then published with os.replace
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field
import structlog

from clawtar.models import (
    LedgerEntry,
    Metrics,
    Reading,
    RecentEntry,
    Task,
    Totals,
    WalletReceipt,
    utcnow,
)
from clawtar.state import ServiceState

logger = structlog.get_logger()

RECEIPT_TYPE_READING = "clawtar_ask_receive"


class Snapshot(BaseModel):
    """On-disk schema of the persisted state"""
    saved_at: datetime = Field(default_factory=utcnow)
    tasks: List[Task] = Field(default_factory=list)
    readings: List[Reading] = Field(default_factory=list)
    recent: List[RecentEntry] = Field(default_factory=list)
    recent_seq: int = 0
    totals: Optional[Totals] = None
    wallet_ledger: List[WalletReceipt] = Field(default_factory=list)
    payment_events: List[LedgerEntry] = Field(default_factory=list)
    metrics: Optional[Metrics] = None


def recompute_totals(receipts: Iterable[WalletReceipt]) -> Totals:
    """Fold settlement receipts into aggregate totals"""
    totals = Totals()
    for receipt in receipts:
        if receipt.type == RECEIPT_TYPE_READING:
            totals.paid_count += 1
            totals.sats_received += receipt.amount_sats
    return totals


class SnapshotStore:
    """Reads and writes the service snapshot file"""

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    def tmp_path(self) -> Path:
        return self.path.with_name(f"{self.path.name}.tmp")

    def save(self, state: ServiceState) -> None:
        snapshot = Snapshot(
            tasks=list(state.tasks.values()),
            readings=list(state.readings.values()),
            recent=state.recent,
            recent_seq=state.recent_seq,
            totals=state.totals,
            wallet_ledger=state.wallet_ledger,
            payment_events=list(state.payment_events.values()),
            metrics=state.metrics,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.tmp_path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        os.replace(self.tmp_path, self.path)
        logger.debug("snapshot_saved", path=str(self.path), tasks=len(state.tasks))

    def load(self) -> ServiceState:
        """
        Load persisted state.

        A missing or empty file is a cold start. An unreadable file is logged
        and the service starts empty. A snapshot without totals gets them
        recomputed from the wallet receipts.
        """
        if not self.path.exists():
            return ServiceState()

        try:
            raw = self.path.read_text(encoding="utf-8")
            if not raw.strip():
                return ServiceState()
            snapshot = Snapshot.model_validate_json(raw)
        except (OSError, ValueError) as e:
            logger.error("snapshot_load_failed", path=str(self.path), error=str(e))
            return ServiceState()

        state = ServiceState(
            tasks={task.id: task for task in snapshot.tasks},
            readings={reading.id: reading for reading in snapshot.readings},
            recent=snapshot.recent,
            recent_seq=snapshot.recent_seq,
            wallet_ledger=snapshot.wallet_ledger,
            payment_events={e.idempotency_key: e for e in snapshot.payment_events},
            metrics=snapshot.metrics or Metrics(),
        )

        if snapshot.totals is None:
            state.totals = recompute_totals(state.wallet_ledger)
            logger.info(
                "snapshot_totals_recomputed",
                paid_count=state.totals.paid_count,
                sats_received=state.totals.sats_received
            )
        else:
            state.totals = snapshot.totals

        # Older rings carry no sequence numbers
        if any(entry.seq == 0 for entry in state.recent):
            count = len(state.recent)
            for index, entry in enumerate(state.recent):
                entry.seq = state.recent_seq + count - index
        if state.recent:
            state.recent_seq = max(state.recent_seq, max(e.seq for e in state.recent))

        logger.info(
            "snapshot_loaded",
            path=str(self.path),
            tasks=len(state.tasks),
            readings=len(state.readings),
            payment_events=len(state.payment_events)
        )
        return state
