"""
Idempotency ledger for settlement notifications
Maps an idempotency key to the event fingerprint and the response it produced
"""

import asyncio
import copy
from typing import Any, Awaitable, Callable, Dict, Tuple

import structlog

from clawtar.errors import IdempotencyConflict
from clawtar.models import LedgerEntry

logger = structlog.get_logger()

Fingerprint = Tuple[str, int, str]


def event_fingerprint(task_id: str, amount_sats: int, payment_id: str) -> Fingerprint:
    return (task_id, amount_sats, payment_id)


class IdempotencyLedger:
    """
    record_or_replay is atomic per key: notifications with the same key
    queue behind one another, so the compute function of a key runs at most
    once even though it suspends on outbound verification calls.

    Entries are never evicted; dropping one would let an old key be replayed
    as a fresh payment.
    """

    def __init__(self, entries: Dict[str, LedgerEntry]):
        self.entries = entries
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    def get(self, key: str) -> LedgerEntry | None:
        return self.entries.get(key)

    async def record_or_replay(
        self,
        key: str,
        fingerprint: Fingerprint,
        compute: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Returns (response, is_replay).

        Raises IdempotencyConflict when the key is bound to another
        fingerprint. Exceptions from ``compute`` propagate and nothing is
        recorded.
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                existing = self.entries.get(key)
                if existing is not None:
                    if tuple(existing.event_fingerprint) != tuple(fingerprint):
                        logger.warning("idempotency_key_reused", idempotency_key=key)
                        raise IdempotencyConflict(key)
                    return copy.deepcopy(existing.response), True

                response = await compute()
                self.entries[key] = LedgerEntry(
                    idempotency_key=key,
                    event_fingerprint=fingerprint,
                    response=copy.deepcopy(response),
                )
                return response, False
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]
