"""
Settlement Poller for Clawtar
Reconciles pending mint quotes against the settlement authority
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import structlog

from clawtar.errors import ValidationError
from clawtar.models import Task, TaskStatus, VerificationMode, utcnow
from clawtar.payments.mint import SettlementAuthority
from clawtar.state import EntityStore

logger = structlog.get_logger()


def quote_idempotency_key(quote_id: str) -> str:
    return f"mintquote:{quote_id}"


@dataclass
class PollReport:
    eligible: int = 0
    skipped: int = 0
    checked: int = 0
    settled: int = 0
    errors: int = 0


class SettlementPoller:
    """
    Each tick checks at most ``batch_size`` awaiting tasks whose quote was
    last checked at least ``min_age_seconds`` ago (or never).
    """

    def __init__(
        self,
        store: EntityStore,
        authority: SettlementAuthority,
        min_age_seconds: float = 15.0,
        batch_size: int = 2,
    ):
        self.store = store
        self.authority = authority
        self.min_age_seconds = min_age_seconds
        self.batch_size = batch_size

    def _is_stale(self, task: Task, now: datetime) -> bool:
        last_checked = task.payment.mint_quote.last_checked_at
        if last_checked is None:
            return True
        if last_checked.tzinfo is None:
            last_checked = last_checked.replace(tzinfo=timezone.utc)
        return (now - last_checked).total_seconds() >= self.min_age_seconds

    def select(self, now: Optional[datetime] = None) -> Tuple[List[Task], int]:
        """Eligible tasks in store order, plus the number skipped as too fresh"""
        now = now or utcnow()
        eligible, skipped = [], 0
        for task in self.store.iter_tasks(TaskStatus.AWAITING_PAYMENT):
            if not task.payment.mint_quote.quote:
                continue
            if self._is_stale(task, now):
                eligible.append(task)
            else:
                skipped += 1
        return eligible, skipped

    async def tick(self, now: Optional[datetime] = None) -> PollReport:
        eligible, skipped = self.select(now)
        metrics = self.store.state.metrics
        metrics.quote_refresh_skipped_total += skipped
        report = PollReport(eligible=len(eligible), skipped=skipped)

        for task in eligible[:self.batch_size]:
            metrics.quote_refresh_attempts_total += 1
            try:
                quote_state = await self.authority.check_quote(task.payment.mint_quote.quote)
                report.checked += 1
                if self._apply(task.id, quote_state):
                    report.settled += 1
            except Exception as e:
                # Stays pending; a later tick retries it
                report.errors += 1
                metrics.quote_refresh_errors_total += 1
                logger.warning("quote_refresh_failed", task_id=task.id, error=str(e))

        if report.eligible or report.skipped:
            logger.info(
                "quote_refresh_tick",
                eligible=report.eligible,
                skipped=report.skipped,
                checked=report.checked,
                settled=report.settled,
                errors=report.errors
            )
        return report

    async def refresh(self, task_id: str) -> Tuple[Task, str]:
        """Check one task's quote now, regardless of staleness"""
        task = self.store.get_task(task_id)
        if not task.payment.mint_quote.quote:
            raise ValidationError("task has no mint quote")

        quote_state = await self.authority.check_quote(task.payment.mint_quote.quote)
        self._apply(task_id, quote_state)
        return self.store.get_task(task_id), quote_state

    def _apply(self, task_id: str, quote_state: str) -> bool:
        """Record a check result; settle the task if the quote was paid"""
        task = self.store.record_quote_check(task_id, quote_state)
        quote = task.payment.mint_quote
        if not (quote.is_settled and task.status == TaskStatus.AWAITING_PAYMENT):
            return False

        self.store.mark_task_paid(
            task_id,
            payment_id=quote.quote,
            amount_sats=task.quoted_sats,
            idempotency_key=quote_idempotency_key(quote.quote),
            mode=VerificationMode.MINT_QUOTE_STATE,
        )
        return True
