"""
Unit tests for the entity store and task lifecycle
"""

import pytest

from clawtar.errors import InvalidTransition, NotFoundError
from clawtar.models import (
    FortuneResult,
    FortuneStyle,
    PaymentStatus,
    ReadingStatus,
    TaskStatus,
    VerificationMode,
)
from tests.factories import MintQuoteFactory, WalletReceiptFactory


def make_task(store, **kwargs):
    return store.create_task("brief me", 100, MintQuoteFactory(), **kwargs)


def make_result(question="q?"):
    return FortuneResult(
        title="Clawtar says 🦀",
        style=FortuneStyle.FUNNY,
        question=question,
        fortune="intro: middle: tail",
        lucky_number=3,
    )


class TestTaskLifecycle:

    def test_create_task_persists(self, store, snapshot_store):
        task = make_task(store, task_id="t-1")

        assert task.status == TaskStatus.AWAITING_PAYMENT
        assert "awaiting_payment_at" in task.status_timestamps
        assert store.state.metrics.tasks_created_total == 1
        assert "t-1" in snapshot_store.load().tasks

    def test_unknown_task(self, store):
        with pytest.raises(NotFoundError) as exc:
            store.get_task("missing")
        assert exc.value.code == "TASK_NOT_FOUND"

    def test_forward_path(self, store):
        task = make_task(store)
        store.mark_task_paid(
            task.id,
            payment_id="pay-1",
            amount_sats=100,
            idempotency_key="k-1",
            mode=VerificationMode.TRUST_CALLBACK,
        )
        store.transition(task.id, TaskStatus.RUNNING)
        store.transition(task.id, TaskStatus.COMPLETED, result={"summary": "ok"})

        assert task.status == TaskStatus.COMPLETED
        assert task.result == {"summary": "ok"}
        assert task.payment.status == PaymentStatus.RECEIVED
        assert task.payment.verification_mode == VerificationMode.TRUST_CALLBACK
        assert set(task.status_timestamps) == {
            "awaiting_payment_at", "paid_at", "running_at", "completed_at"
        }

    @pytest.mark.parametrize("target", [TaskStatus.RUNNING, TaskStatus.COMPLETED, TaskStatus.FAILED])
    def test_cannot_skip_payment(self, store, target):
        task = make_task(store)
        with pytest.raises(InvalidTransition):
            store.transition(task.id, target)
        assert task.status == TaskStatus.AWAITING_PAYMENT

    def test_terminal_states_are_final(self, store):
        task = make_task(store)
        store.mark_task_paid(
            task.id, payment_id="p", amount_sats=100, idempotency_key="k",
            mode=VerificationMode.TRUST_CALLBACK,
        )
        store.transition(task.id, TaskStatus.RUNNING)
        store.transition(task.id, TaskStatus.FAILED, error="task execution failed")

        with pytest.raises(InvalidTransition) as exc:
            store.transition(task.id, TaskStatus.COMPLETED)
        assert exc.value.code == "INVALID_TRANSITION"

    def test_paid_twice_is_rejected(self, store):
        task = make_task(store)
        kwargs = dict(payment_id="p", amount_sats=100, idempotency_key="k",
                      mode=VerificationMode.TRUST_CALLBACK)
        store.mark_task_paid(task.id, **kwargs)
        with pytest.raises(InvalidTransition):
            store.mark_task_paid(task.id, **kwargs)
        assert store.state.metrics.payments_received_total == 1

    def test_first_paid_task_in_store_order(self, store):
        first, second = make_task(store), make_task(store)
        for task in (second, first):
            store.mark_task_paid(
                task.id, payment_id=task.id, amount_sats=100, idempotency_key=task.id,
                mode=VerificationMode.TRUST_CALLBACK,
            )
        assert store.first_task_with_status(TaskStatus.PAID).id == first.id


class TestReadings:

    def test_settle_reading_updates_ring_and_totals(self, store):
        reading = store.create_reading("q?", FortuneStyle.FUNNY, 42)
        receipt = WalletReceiptFactory(reading_id=reading.id, amount_sats=50)

        store.settle_reading(reading.id, receipt, make_result())

        assert reading.status == ReadingStatus.PAID
        assert reading.payment.verification_mode == VerificationMode.WALLET_REDEEM
        assert store.state.totals.paid_count == 1
        assert store.state.totals.sats_received == 50
        assert store.latest_recent().reading_id == reading.id
        assert store.state.wallet_ledger[0] == receipt

    def test_settle_reading_is_idempotent(self, store):
        reading = store.create_reading("q?", FortuneStyle.FUNNY, 42)
        receipt = WalletReceiptFactory(reading_id=reading.id)
        store.settle_reading(reading.id, receipt, make_result())
        store.settle_reading(reading.id, receipt, make_result())

        assert store.state.totals.paid_count == 1
        assert len(store.state.recent) == 1

    def test_unknown_reading(self, store):
        with pytest.raises(NotFoundError) as exc:
            store.get_reading("agent-0")
        assert exc.value.code == "READING_NOT_FOUND"

    def test_ring_is_capped_newest_first(self, store):
        for i in range(7):
            reading = store.create_reading(f"q{i}?", FortuneStyle.CHAOTIC, 42)
            store.settle_reading(reading.id, WalletReceiptFactory(reading_id=reading.id), make_result())

        assert len(store.state.recent) == 5
        assert [e.seq for e in store.state.recent] == [7, 6, 5, 4, 3]
        assert len(store.state.wallet_ledger) == 5
        # Totals keep counting past the ring cap
        assert store.state.totals.paid_count == 7

    def test_recent_page_cursor(self, store):
        for i in range(5):
            reading = store.create_reading(f"q{i}?", FortuneStyle.FUNNY, 42)
            store.settle_reading(reading.id, WalletReceiptFactory(reading_id=reading.id), make_result())

        page, next_before = store.recent_page(limit=2)
        assert [e.seq for e in page] == [5, 4]
        assert next_before == 4

        page, next_before = store.recent_page(limit=2, before=next_before)
        assert [e.seq for e in page] == [3, 2]

        page, next_before = store.recent_page(limit=2, before=next_before)
        assert [e.seq for e in page] == [1]
        assert next_before is None

    def test_stats(self, store):
        reading = store.create_reading("q?", FortuneStyle.FUNNY, 42)
        store.settle_reading(reading.id, WalletReceiptFactory(reading_id=reading.id, amount_sats=42), make_result())

        assert store.stats() == {"total_paid": 1, "total_sats": 42, "visible_recent": 1}


class TestFailedSave:

    def test_paid_transition_rolls_back(self, store, monkeypatch):
        task = make_task(store)

        def broken_save(state):
            raise OSError("disk full")

        monkeypatch.setattr(store.snapshot, "save", broken_save)
        with pytest.raises(OSError):
            store.mark_task_paid(
                task.id, payment_id="p", amount_sats=100, idempotency_key="k",
                mode=VerificationMode.TRUST_CALLBACK,
            )

        current = store.get_task(task.id)
        assert current.status == TaskStatus.AWAITING_PAYMENT
        assert current.payment.status == PaymentStatus.PENDING
        assert "paid_at" not in current.status_timestamps
        assert store.state.metrics.payments_received_total == 0

    @pytest.mark.asyncio
    async def test_retry_after_failed_save_is_accepted(self, container, monkeypatch):
        store = container.store
        task = make_task(store)
        notification = dict(task_id=task.id, amount_sats=100, payment_id="pay-1", idempotency_key="idem-1")

        real_save = store.snapshot.save
        calls = []

        def flaky_save(state):
            calls.append(1)
            if len(calls) == 1:
                raise OSError("disk full")
            real_save(state)

        monkeypatch.setattr(store.snapshot, "save", flaky_save)
        with pytest.raises(OSError):
            await container.tasks.settle(**notification)
        assert container.ledger.get("idem-1") is None

        response, replay = await container.tasks.settle(**notification)

        assert replay is False
        assert response["status"] == "paid"
        assert store.state.metrics.payments_received_total == 1
