"""
Unit tests for the idempotency ledger
"""

import asyncio

import pytest

from clawtar.errors import IdempotencyConflict, PaymentRejected
from clawtar.payments.ledger import IdempotencyLedger, event_fingerprint


@pytest.mark.asyncio
async def test_first_call_records_response():
    ledger = IdempotencyLedger({})

    async def compute():
        return {"ok": True, "status": "paid"}

    response, replay = await ledger.record_or_replay("k1", event_fingerprint("t1", 100, "p1"), compute)

    assert replay is False
    assert response == {"ok": True, "status": "paid"}
    assert ledger.get("k1").event_fingerprint == ("t1", 100, "p1")


@pytest.mark.asyncio
async def test_replay_returns_stored_response_without_recomputing():
    ledger = IdempotencyLedger({})
    calls = []

    async def compute():
        calls.append(1)
        return {"ok": True}

    fingerprint = event_fingerprint("t1", 100, "p1")
    await ledger.record_or_replay("k1", fingerprint, compute)
    response, replay = await ledger.record_or_replay("k1", fingerprint, compute)

    assert replay is True
    assert response == {"ok": True}
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_replayed_response_is_a_copy():
    ledger = IdempotencyLedger({})

    async def compute():
        return {"payment": {"status": "received"}}

    fingerprint = event_fingerprint("t1", 100, "p1")
    await ledger.record_or_replay("k1", fingerprint, compute)
    response, _ = await ledger.record_or_replay("k1", fingerprint, compute)
    response["payment"]["status"] = "tampered"

    assert ledger.get("k1").response["payment"]["status"] == "received"


@pytest.mark.asyncio
@pytest.mark.parametrize("other", [
    ("t2", 100, "p1"),
    ("t1", 101, "p1"),
    ("t1", 100, "p2"),
])
async def test_same_key_different_event_conflicts(other):
    ledger = IdempotencyLedger({})

    async def compute():
        return {"ok": True}

    await ledger.record_or_replay("k1", event_fingerprint("t1", 100, "p1"), compute)
    with pytest.raises(IdempotencyConflict) as exc:
        await ledger.record_or_replay("k1", event_fingerprint(*other), compute)

    assert exc.value.code == "IDEMPOTENCY_KEY_REUSED"
    assert ledger.get("k1").event_fingerprint == ("t1", 100, "p1")


@pytest.mark.asyncio
async def test_failed_attempt_is_not_recorded():
    ledger = IdempotencyLedger({})

    async def reject():
        raise PaymentRejected("token amount too low (10 < 100)")

    async def accept():
        return {"ok": True}

    fingerprint = event_fingerprint("t1", 100, "p1")
    with pytest.raises(PaymentRejected):
        await ledger.record_or_replay("k1", fingerprint, reject)
    assert ledger.get("k1") is None

    response, replay = await ledger.record_or_replay("k1", fingerprint, accept)
    assert replay is False
    assert response == {"ok": True}


@pytest.mark.asyncio
async def test_concurrent_same_key_computes_once():
    ledger = IdempotencyLedger({})
    calls = []

    async def slow_compute():
        calls.append(1)
        await asyncio.sleep(0.01)
        return {"ok": True}

    fingerprint = event_fingerprint("t1", 100, "p1")
    results = await asyncio.gather(*[
        ledger.record_or_replay("k1", fingerprint, slow_compute) for _ in range(5)
    ])

    assert len(calls) == 1
    assert sorted(replay for _, replay in results) == [False, True, True, True, True]
    assert ledger._locks == {}
