"""
Queued-flow orchestration
Task submission, settlement notifications, payment refresh and status projection
"""

import uuid
from typing import Any, Dict, Optional, Tuple

import structlog

from clawtar.errors import ConflictError, PaymentRejected, ValidationError
from clawtar.execution.poller import SettlementPoller
from clawtar.models import Task, TaskStatus
from clawtar.payments.ledger import IdempotencyLedger, event_fingerprint
from clawtar.payments.mint import SettlementAuthority
from clawtar.payments.verification import PaymentVerifier
from clawtar.state import EntityStore

logger = structlog.get_logger()

PRIVATE = "[private]"


def task_to_public(task: Task) -> Dict[str, Any]:
    """Task projection with the quote identifier redacted"""
    data = task.model_dump(mode="json")
    payment = data["payment"]
    if (payment.get("mint_quote") or {}).get("quote"):
        payment["mint_quote"]["quote"] = PRIVATE

    return {
        "task_id": data["id"],
        "status": data["status"],
        "quoted_sats": data["quoted_sats"],
        "created_at": data["created_at"],
        "updated_at": data["updated_at"],
        "status_timestamps": data["status_timestamps"],
        "payment": payment,
        "result": data["result"],
        "error": data["error"],
    }


class TaskService:
    def __init__(
        self,
        store: EntityStore,
        ledger: IdempotencyLedger,
        verifier: PaymentVerifier,
        authority: SettlementAuthority,
        poller: SettlementPoller,
        price_sats: int,
    ):
        self.store = store
        self.ledger = ledger
        self.verifier = verifier
        self.authority = authority
        self.poller = poller
        self.price_sats = price_sats

    async def submit(self, input: Any) -> Dict[str, Any]:
        """Create a task and its payment quote"""
        if not isinstance(input, str) or not input.strip():
            raise ValidationError("input is required (non-empty string)")

        task_id = str(uuid.uuid4())
        quote = await self.authority.create_quote(self.price_sats, f"task:{task_id}")
        task = self.store.create_task(input.strip(), self.price_sats, quote, task_id=task_id)

        public = task_to_public(task)
        return {
            "task_id": public["task_id"],
            "status": public["status"],
            "quoted_sats": public["quoted_sats"],
            "payment": public["payment"],
            "poll_url": f"/v1/tasks/{task.id}",
        }

    def get(self, task_id: str) -> Dict[str, Any]:
        return task_to_public(self.store.get_task(task_id))

    async def settle(
        self,
        *,
        task_id: str,
        amount_sats: int,
        payment_id: str,
        idempotency_key: str,
        proof: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Apply a settlement notification.

        Returns (response, is_replay). A replay of an accepted notification
        returns the stored response without verifying or transitioning again.
        """
        task = self.store.get_task(task_id)

        async def confirm() -> Dict[str, Any]:
            if amount_sats != task.quoted_sats:
                raise ConflictError(
                    f"expected amount_sats={task.quoted_sats}", code="AMOUNT_MISMATCH"
                )
            self._ensure_awaiting(task_id)

            verification = await self.verifier.verify(
                task_id=task_id,
                amount_sats=amount_sats,
                payment_id=payment_id,
                idempotency_key=idempotency_key,
                proof=proof,
            )
            if not verification.accepted:
                details = {}
                if "shortfall_sats" in verification.detail:
                    details["shortfall_sats"] = verification.detail["shortfall_sats"]
                raise PaymentRejected(
                    verification.reason or "payment could not be verified", details=details
                )

            # Verification suspends; another path may have paid the task meanwhile
            self._ensure_awaiting(task_id)
            paid = self.store.mark_task_paid(
                task_id,
                payment_id=payment_id,
                amount_sats=amount_sats,
                idempotency_key=idempotency_key,
                mode=verification.mode,
            )
            public = task_to_public(paid)
            return {
                "ok": True,
                "idempotent_replay": False,
                "task_id": public["task_id"],
                "status": public["status"],
                "payment": public["payment"],
                "status_timestamps": public["status_timestamps"],
            }

        response, replay = await self.ledger.record_or_replay(
            idempotency_key,
            event_fingerprint(task_id, amount_sats, payment_id),
            confirm,
        )
        if replay:
            self.store.state.metrics.payment_replays_total += 1
            logger.info("payment_replayed", task_id=task_id, idempotency_key=idempotency_key)
            response = {**response, "idempotent_replay": True}

        # The ledger entry is persisted before the caller is answered
        self.store.save()
        return response, replay

    async def refresh_payment(self, task_id: str) -> Dict[str, Any]:
        task, quote_state = await self.poller.refresh(task_id)
        public = task_to_public(task)
        return {
            "task_id": public["task_id"],
            "status": public["status"],
            "quote_state": quote_state,
            "payment": public["payment"],
            "status_timestamps": public["status_timestamps"],
        }

    def _ensure_awaiting(self, task_id: str) -> None:
        if self.store.get_task(task_id).status != TaskStatus.AWAITING_PAYMENT:
            raise ConflictError(
                "task has already been transitioned from awaiting_payment",
                code="ALREADY_PAID",
            )
