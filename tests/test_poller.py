"""
Unit tests for the settlement poller
"""

from datetime import timedelta

import pytest

from clawtar.errors import ValidationError
from clawtar.models import TaskStatus, VerificationMode, utcnow


async def submit(store, fake_mint, n=1):
    tasks = []
    for i in range(n):
        quote = await fake_mint.create_quote(100, f"task:{i}")
        tasks.append(store.create_task(f"input {i}", 100, quote))
    return tasks


class TestSelection:

    @pytest.mark.asyncio
    async def test_batch_size_bounds_each_tick(self, store, fake_mint, poller):
        tasks = await submit(store, fake_mint, 5)

        report = await poller.tick()

        assert report.eligible == 5
        assert report.checked == 2
        # Store order: the first two are checked first
        assert fake_mint.checks == [t.payment.mint_quote.quote for t in tasks[:2]]
        assert all(t.payment.mint_quote.last_checked_at is not None for t in tasks[:2])
        assert all(t.payment.mint_quote.last_checked_at is None for t in tasks[2:])

    @pytest.mark.asyncio
    async def test_recently_checked_quotes_are_skipped(self, store, fake_mint, poller):
        await submit(store, fake_mint, 3)
        await poller.tick()

        report = await poller.tick()
        assert report.skipped == 2
        assert report.checked == 1
        assert store.state.metrics.quote_refresh_skipped_total == 2

    @pytest.mark.asyncio
    async def test_staleness_floor_is_inclusive(self, store, fake_mint, poller):
        (task,) = await submit(store, fake_mint)
        now = utcnow()
        quote = task.payment.mint_quote

        quote.last_checked_at = now - timedelta(seconds=14.9)
        assert poller.select(now) == ([], 1)

        quote.last_checked_at = now - timedelta(seconds=15)
        eligible, skipped = poller.select(now)
        assert [t.id for t in eligible] == [task.id]
        assert skipped == 0

    @pytest.mark.asyncio
    async def test_paid_tasks_are_not_polled(self, store, fake_mint, poller):
        (task,) = await submit(store, fake_mint)
        store.mark_task_paid(
            task.id, payment_id="p", amount_sats=100, idempotency_key="k",
            mode=VerificationMode.TRUST_CALLBACK,
        )

        report = await poller.tick()
        assert report.eligible == 0
        assert fake_mint.checks == []


class TestSettlement:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["PAID", "ISSUED", "paid"])
    async def test_settled_quote_pays_task(self, store, fake_mint, poller, state):
        (task,) = await submit(store, fake_mint)
        quote_id = task.payment.mint_quote.quote
        fake_mint.pay(quote_id, state)

        report = await poller.tick()

        assert report.settled == 1
        assert task.status == TaskStatus.PAID
        assert task.payment.verification_mode == VerificationMode.MINT_QUOTE_STATE
        assert task.payment.idempotency_key == f"mintquote:{quote_id}"
        assert task.payment.mint_quote.state == state
        assert task.payment.mint_quote.last_checked_at is not None

    @pytest.mark.asyncio
    async def test_unpaid_quote_records_check(self, store, fake_mint, poller):
        (task,) = await submit(store, fake_mint)

        await poller.tick()

        assert task.status == TaskStatus.AWAITING_PAYMENT
        assert task.payment.mint_quote.state == "UNPAID"
        assert task.payment.mint_quote.last_checked_at is not None

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, store, fake_mint, poller):
        first, second = await submit(store, fake_mint, 2)
        fake_mint.failing.add(first.payment.mint_quote.quote)
        fake_mint.pay(second.payment.mint_quote.quote)

        report = await poller.tick()

        assert report.errors == 1
        assert report.settled == 1
        assert first.status == TaskStatus.AWAITING_PAYMENT
        assert first.payment.mint_quote.last_checked_at is None
        assert second.status == TaskStatus.PAID
        assert store.state.metrics.quote_refresh_errors_total == 1
        assert store.state.metrics.quote_refresh_attempts_total == 2


class TestManualRefresh:

    @pytest.mark.asyncio
    async def test_refresh_ignores_staleness(self, store, fake_mint, poller):
        (task,) = await submit(store, fake_mint)
        await poller.tick()
        fake_mint.pay(task.payment.mint_quote.quote)

        refreshed, quote_state = await poller.refresh(task.id)

        assert quote_state == "PAID"
        assert refreshed.status == TaskStatus.PAID

    @pytest.mark.asyncio
    async def test_refresh_after_callback_leaves_task_alone(self, store, fake_mint, poller):
        (task,) = await submit(store, fake_mint)
        store.mark_task_paid(
            task.id, payment_id="p", amount_sats=100, idempotency_key="k",
            mode=VerificationMode.TOKEN_AMOUNT_CHECK,
        )
        fake_mint.pay(task.payment.mint_quote.quote)

        refreshed, _ = await poller.refresh(task.id)

        assert refreshed.payment.verification_mode == VerificationMode.TOKEN_AMOUNT_CHECK
        assert store.state.metrics.payments_received_total == 1

    @pytest.mark.asyncio
    async def test_refresh_without_quote(self, store, fake_mint, poller):
        (task,) = await submit(store, fake_mint)
        task.payment.mint_quote.quote = ""

        with pytest.raises(ValidationError):
            await poller.refresh(task.id)
