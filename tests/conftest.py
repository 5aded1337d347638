"""
Pytest configuration and shared fixtures
"""

import uuid
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient

from clawtar.api.server import create_app
from clawtar.config import ServiceConfig
from clawtar.errors import UpstreamError
from clawtar.execution.poller import SettlementPoller
from clawtar.models import MintQuote
from clawtar.notifications import ActivityNotifier
from clawtar.payments.ledger import IdempotencyLedger
from clawtar.payments.mint import SettlementAuthority
from clawtar.payments.verification import PaymentVerifier
from clawtar.payments.wallet import RedeemResult, WalletRedeemer
from clawtar.services.container import build_container
from clawtar.snapshot import SnapshotStore
from clawtar.state import EntityStore, ServiceState


class FakeMint(SettlementAuthority):
    """In-memory settlement authority; quote states are set by the test"""

    def __init__(self):
        self.states: Dict[str, str] = {}
        self.checks = []
        self.failing = set()
        self.unavailable = False

    async def create_quote(self, amount: int, memo: str) -> MintQuote:
        if self.unavailable:
            raise UpstreamError("mint unavailable")
        quote_id = f"quote-{uuid.uuid4().hex[:8]}"
        self.states[quote_id] = "UNPAID"
        return MintQuote(
            quote=quote_id,
            request=f"lnbc{amount}n1{quote_id}",
            amount=amount,
            unit="sat",
            state="UNPAID",
        )

    async def check_quote(self, quote_id: str) -> str:
        self.checks.append(quote_id)
        if quote_id in self.failing:
            raise UpstreamError(f"cannot check {quote_id}")
        return self.states.get(quote_id, "UNPAID")

    def pay(self, quote_id: str, state: str = "PAID"):
        self.states[quote_id] = state


class FakeWallet(WalletRedeemer):
    """Redeems every token for a fixed amount unless told to fail"""

    def __init__(self, amount: int = 42, reason: Optional[str] = None):
        self.amount = amount
        self.reason = reason
        self.redeemed = []

    async def redeem(self, token: str) -> RedeemResult:
        self.redeemed.append(token)
        if self.reason:
            return RedeemResult(ok=False, reason=self.reason)
        return RedeemResult(ok=True, amount=self.amount, raw=f"Received {self.amount} sats")

    async def balance(self) -> Optional[int]:
        return 1000


@pytest.fixture
def config(tmp_path) -> ServiceConfig:
    """Isolated config: snapshot under tmp_path, no background timers"""
    return ServiceConfig(
        _env_file=None,
        data_dir=tmp_path,
        background_tasks_enabled=False,
        payment_verifier_url="",
        telegram_bot_token="",
        telegram_chat_id="",
        metrics_token="secret-metrics",
        log_format="text",
    )


@pytest.fixture
def fake_mint() -> FakeMint:
    return FakeMint()


@pytest.fixture
def fake_wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def snapshot_store(config) -> SnapshotStore:
    return SnapshotStore(config.snapshot_path)


@pytest.fixture
def store(snapshot_store) -> EntityStore:
    return EntityStore(ServiceState(), snapshot_store, recent_max=5, wallet_ledger_max=5)


@pytest.fixture
def ledger(store) -> IdempotencyLedger:
    return IdempotencyLedger(store.state.payment_events)


@pytest.fixture
def poller(store, fake_mint) -> SettlementPoller:
    return SettlementPoller(store, fake_mint, min_age_seconds=15.0, batch_size=2)


@pytest.fixture
def container(config, fake_mint, fake_wallet):
    """Fully wired services using the fakes and the trust-callback verifier"""
    return build_container(
        config,
        authority=fake_mint,
        wallet=fake_wallet,
        verifier=PaymentVerifier(),
        notifier=ActivityNotifier(enabled=False),
    )


@pytest.fixture
def client(config, container) -> TestClient:
    """FastAPI test client (sync) over the wired container"""
    with TestClient(create_app(config, container)) as test_client:
        yield test_client
