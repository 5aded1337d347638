"""
Service state aggregate and entity store
All mutations of tasks, readings, the recent ring and totals go through EntityStore
"""

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple

import structlog

from clawtar.errors import InvalidTransition, NotFoundError
from clawtar.models import (
    TASK_TRANSITIONS,
    FortuneResult,
    FortuneStyle,
    LedgerEntry,
    Metrics,
    MintQuote,
    PaymentStatus,
    QuotedPayment,
    Reading,
    ReadingStatus,
    RecentEntry,
    Task,
    TaskStatus,
    Totals,
    VerificationMode,
    WalletReceipt,
    utcnow,
)

if TYPE_CHECKING:
    from clawtar.snapshot import SnapshotStore

logger = structlog.get_logger()


@dataclass
class ServiceState:
    """Process-wide state owned by one service instance"""
    tasks: Dict[str, Task] = field(default_factory=dict)
    readings: Dict[str, Reading] = field(default_factory=dict)
    recent: List[RecentEntry] = field(default_factory=list)
    recent_seq: int = 0
    totals: Totals = field(default_factory=Totals)
    wallet_ledger: List[WalletReceipt] = field(default_factory=list)
    payment_events: Dict[str, LedgerEntry] = field(default_factory=dict)
    metrics: Metrics = field(default_factory=Metrics)


class EntityStore:
    """
    Owns Task and Reading records.

    Every committed mutation is written to the snapshot before the call
    returns, so a caller never acknowledges state that is not persisted.
    """

    def __init__(
        self,
        state: ServiceState,
        snapshot: "SnapshotStore",
        recent_max: int = 500,
        wallet_ledger_max: int = 500,
    ):
        self.state = state
        self.snapshot = snapshot
        self.recent_max = recent_max
        self.wallet_ledger_max = wallet_ledger_max

    def save(self) -> None:
        self.snapshot.save(self.state)

    # ===== TASKS =====

    def create_task(
        self,
        input: str,
        quoted_sats: int,
        mint_quote: MintQuote,
        task_id: Optional[str] = None,
    ) -> Task:
        """Register a new task in awaiting_payment"""
        now = utcnow()
        task = Task(
            id=task_id or str(uuid.uuid4()),
            input=input,
            quoted_sats=quoted_sats,
            created_at=now,
            updated_at=now,
            status_timestamps={f"{TaskStatus.AWAITING_PAYMENT.value}_at": now},
            payment=QuotedPayment(mint_quote=mint_quote),
        )
        self.state.tasks[task.id] = task
        self.state.metrics.tasks_created_total += 1
        self.save()
        logger.info("task_created", task_id=task.id, quoted_sats=quoted_sats)
        return task

    def get_task(self, task_id: str) -> Task:
        task = self.state.tasks.get(task_id)
        if task is None:
            raise NotFoundError("task not found", code="TASK_NOT_FOUND")
        return task

    def iter_tasks(self, status: Optional[TaskStatus] = None) -> Iterator[Task]:
        """Tasks in store (insertion) order"""
        for task in self.state.tasks.values():
            if status is None or task.status == status:
                yield task

    def first_task_with_status(self, status: TaskStatus) -> Optional[Task]:
        return next(self.iter_tasks(status), None)

    def transition(self, task_id: str, new_status: TaskStatus, **changes: Any) -> Task:
        """
        Move a task one step forward and persist.

        ``changes`` are applied to the task in the same step, e.g. ``result``
        on completion or ``error`` on failure.
        """
        task = self.get_task(task_id)
        self._check_transition(task, new_status)
        self._apply(task, new_status, changes)
        self.save()
        return task

    def mark_task_paid(
        self,
        task_id: str,
        *,
        payment_id: str,
        amount_sats: int,
        idempotency_key: str,
        mode: VerificationMode,
    ) -> Task:
        """awaiting_payment -> paid together with payment pending -> received"""
        task = self.get_task(task_id)
        self._check_transition(task, TaskStatus.PAID)
        original = task.model_copy(deep=True)
        payment = task.payment.model_copy(update={
            "status": PaymentStatus.RECEIVED,
            "payment_id": payment_id,
            "amount_sats": amount_sats,
            "idempotency_key": idempotency_key,
            "verification_mode": mode,
        })
        self._apply(task, TaskStatus.PAID, {"payment": payment})
        self.state.metrics.payments_received_total += 1
        try:
            self.save()
        except Exception:
            # Not persisted, so not paid: a retry of the same notification starts over
            self.state.tasks[task_id] = original
            self.state.metrics.payments_received_total -= 1
            raise
        logger.info("payment_received", task_id=task_id, mode=mode.value, amount_sats=amount_sats)
        return task

    def record_quote_check(self, task_id: str, quote_state: str) -> Task:
        """Store the upstream quote state and a fresh check time"""
        task = self.get_task(task_id)
        now = utcnow()
        task.payment.mint_quote.state = quote_state
        task.payment.mint_quote.last_checked_at = now
        task.updated_at = now
        self.save()
        return task

    def _check_transition(self, task: Task, new_status: TaskStatus) -> None:
        if new_status not in TASK_TRANSITIONS[task.status]:
            raise InvalidTransition(task.id, task.status.value, new_status.value)

    def _apply(self, task: Task, new_status: TaskStatus, changes: Dict[str, Any]) -> None:
        now = utcnow()
        old_status = task.status
        for name, value in changes.items():
            setattr(task, name, value)
        task.status = new_status
        task.updated_at = now
        task.status_timestamps[f"{new_status.value}_at"] = now
        logger.info(
            "task_status_transition",
            task_id=task.id,
            from_status=old_status.value,
            to_status=new_status.value
        )

    # ===== READINGS =====

    def create_reading(self, question: str, style: FortuneStyle, quoted_sats: int) -> Reading:
        now = utcnow()
        reading = Reading(
            id=f"agent-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}",
            question=question,
            style=style,
            quoted_sats=quoted_sats,
            created_at=now,
            updated_at=now,
        )
        self.state.readings[reading.id] = reading
        return reading

    def get_reading(self, reading_id: str) -> Reading:
        reading = self.state.readings.get(reading_id)
        if reading is None:
            raise NotFoundError("reading not found", code="READING_NOT_FOUND")
        return reading

    def settle_reading(
        self,
        reading_id: str,
        receipt: WalletReceipt,
        result: FortuneResult,
    ) -> Reading:
        """pending -> paid for a reading: receipt, ring entry and totals in one step"""
        reading = self.get_reading(reading_id)
        if reading.status == ReadingStatus.PAID:
            return reading

        self.state.wallet_ledger.insert(0, receipt)
        del self.state.wallet_ledger[self.wallet_ledger_max:]

        reading.status = ReadingStatus.PAID
        reading.payment = reading.payment.model_copy(update={
            "status": PaymentStatus.RECEIVED,
            "payment_id": receipt.id,
            "amount_sats": receipt.amount_sats,
            "verification_mode": VerificationMode.WALLET_REDEEM,
        })
        reading.result = result
        reading.updated_at = receipt.ts

        self.push_recent(reading)
        self.state.totals.paid_count += 1
        self.state.totals.sats_received += receipt.amount_sats
        self.save()
        return reading

    # ===== RECENT RING =====

    def push_recent(self, reading: Reading) -> RecentEntry:
        self.state.recent_seq += 1
        entry = RecentEntry(
            seq=self.state.recent_seq,
            reading_id=reading.id,
            question=reading.question,
            style=reading.style,
            fortune=reading.result.fortune if reading.result else "",
            lucky_number=reading.result.lucky_number if reading.result else None,
            created_at=reading.created_at,
            paid_at=reading.updated_at,
        )
        self.state.recent.insert(0, entry)
        del self.state.recent[self.recent_max:]
        return entry

    def latest_recent(self) -> Optional[RecentEntry]:
        return self.state.recent[0] if self.state.recent else None

    def recent_page(
        self,
        limit: int = 20,
        before: Optional[int] = None,
    ) -> Tuple[List[RecentEntry], Optional[int]]:
        """Newest-first page; ``before`` is an exclusive sequence cursor"""
        items = self.state.recent
        if before is not None:
            items = [entry for entry in items if entry.seq < before]
        page = items[:limit]
        next_before = page[-1].seq if len(items) > limit else None
        return page, next_before

    def stats(self) -> Dict[str, int]:
        return {
            "total_paid": self.state.totals.paid_count,
            "total_sats": self.state.totals.sats_received,
            "visible_recent": len(self.state.recent),
        }
