"""
Service wiring
One container per process: state, store, collaborators and the two flows
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from clawtar.config import ServiceConfig
from clawtar.execution.dispatcher import WorkFunction, WorkerDispatcher
from clawtar.execution.brief import build_structured_brief
from clawtar.execution.poller import SettlementPoller
from clawtar.notifications import ActivityNotifier
from clawtar.payments.ledger import IdempotencyLedger
from clawtar.payments.mint import MintClient, SettlementAuthority
from clawtar.payments.verification import PaymentVerifier
from clawtar.payments.wallet import CocodWallet, WalletRedeemer
from clawtar.services.fortune import FortuneService
from clawtar.services.tasks import TaskService
from clawtar.snapshot import SnapshotStore
from clawtar.state import EntityStore

logger = structlog.get_logger()


@dataclass
class ServiceContainer:
    config: ServiceConfig
    store: EntityStore
    ledger: IdempotencyLedger
    authority: SettlementAuthority
    verifier: PaymentVerifier
    wallet: WalletRedeemer
    notifier: ActivityNotifier
    poller: SettlementPoller
    dispatcher: WorkerDispatcher
    tasks: TaskService
    fortune: FortuneService

    async def aclose(self) -> None:
        await self.authority.aclose()
        await self.verifier.aclose()
        await self.notifier.aclose()


def build_container(
    config: ServiceConfig,
    *,
    authority: Optional[SettlementAuthority] = None,
    wallet: Optional[WalletRedeemer] = None,
    verifier: Optional[PaymentVerifier] = None,
    notifier: Optional[ActivityNotifier] = None,
    work_fn: Optional[WorkFunction] = None,
) -> ServiceContainer:
    """Load the snapshot and assemble every collaborator; overrides are for tests"""
    snapshot = SnapshotStore(config.snapshot_path)
    state = snapshot.load()
    store = EntityStore(
        state,
        snapshot,
        recent_max=config.recent_max,
        wallet_ledger_max=config.wallet_ledger_max,
    )
    # Shares the dict with the state so ledger entries land in the snapshot
    ledger = IdempotencyLedger(state.payment_events)

    authority = authority or MintClient(
        config.mint_base_url,
        unit=config.mint_unit,
        timeout=config.mint_timeout_seconds,
    )
    verifier = verifier or PaymentVerifier(
        verifier_url=config.payment_verifier_url,
        verifier_token=config.payment_verifier_token,
        timeout=config.verifier_timeout_seconds,
    )
    wallet = wallet or CocodWallet(
        config.bun_bin,
        config.cocod_bin,
        receive_timeout=config.wallet_receive_timeout_seconds,
        balance_timeout=config.wallet_balance_timeout_seconds,
    )
    notifier = notifier or ActivityNotifier(
        bot_token=config.telegram_bot_token,
        chat_id=config.telegram_chat_id,
        enabled=config.activity_notify_enabled,
    )

    poller = SettlementPoller(
        store,
        authority,
        min_age_seconds=config.quote_refresh_min_age_seconds,
        batch_size=config.quote_refresh_batch_size,
    )
    dispatcher = WorkerDispatcher(store, work_fn or build_structured_brief)

    logger.info(
        "service_container_built",
        snapshot=str(config.snapshot_path),
        verifier_configured=bool(config.payment_verifier_url),
        notifier_active=notifier.active
    )

    return ServiceContainer(
        config=config,
        store=store,
        ledger=ledger,
        authority=authority,
        verifier=verifier,
        wallet=wallet,
        notifier=notifier,
        poller=poller,
        dispatcher=dispatcher,
        tasks=TaskService(
            store,
            ledger,
            verifier,
            authority,
            poller,
            price_sats=config.default_job_price_sats,
        ),
        fortune=FortuneService(
            store,
            wallet,
            notifier,
            price_sats=config.fortune_price_sats,
            mint_url=config.mint_base_url,
            unit=config.mint_unit,
        ),
    )
