"""
Synchronous pay-per-call flow
Token redemption, amount check, fortune selection and reading settlement in one pass
"""

import random
import uuid
from typing import Any, Dict, List, Optional, Tuple

import structlog

from clawtar.errors import PaymentRejected, ValidationError
from clawtar.fortune.selector import make_seed, select_fortune
from clawtar.models import FortuneStyle, Reading, ReadingStatus, VerificationMode, WalletReceipt, utcnow
from clawtar.notifications import ActivityNotifier
from clawtar.payments.tokens import encode_payment_request
from clawtar.payments.verification import check_amount
from clawtar.payments.wallet import WalletRedeemer
from clawtar.state import EntityStore

logger = structlog.get_logger()

ALLOWED_STYLES: List[str] = [style.value for style in FortuneStyle]
MAX_PAGE_SIZE = 100


def reading_to_public(reading: Reading) -> Dict[str, Any]:
    data = reading.model_dump(mode="json")
    return {
        "reading_id": data["id"],
        "status": data["status"],
        "quoted_sats": data["quoted_sats"],
        "created_at": data["created_at"],
        "updated_at": data["updated_at"],
        "payment": data["payment"],
        "result": data["result"] if reading.status == ReadingStatus.PAID else None,
    }


class FortuneService:
    def __init__(
        self,
        store: EntityStore,
        wallet: WalletRedeemer,
        notifier: ActivityNotifier,
        price_sats: int,
        mint_url: str,
        unit: str = "sat",
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.wallet = wallet
        self.notifier = notifier
        self.price_sats = price_sats
        self.mint_url = mint_url
        self.unit = unit
        self.rng = rng or random.Random()

    def validate_request(
        self,
        question: Any,
        style: Any = None,
        style_provided: bool = False,
    ) -> Tuple[str, FortuneStyle]:
        """Normalise the question and resolve the style (random when omitted)"""
        if not style_provided:
            resolved = FortuneStyle(self.rng.choice(ALLOWED_STYLES))
        else:
            raw_style = str(style or "").strip().lower()
            if not raw_style:
                raise ValidationError(
                    "style cannot be blank (omit style for random)",
                    details={"allowed_styles": ALLOWED_STYLES},
                )
            if raw_style not in ALLOWED_STYLES:
                raise ValidationError("invalid style", details={"allowed_styles": ALLOWED_STYLES})
            resolved = FortuneStyle(raw_style)

        question = str(question or "").strip()
        if not question:
            raise ValidationError("question is required")
        return question, resolved

    def challenge(self) -> Tuple[str, Dict[str, Any]]:
        """Payment request for the x-cashu header plus the 402 body"""
        encoded = encode_payment_request(
            request_id=f"clawtar:{uuid.uuid4()}",
            amount=self.price_sats,
            unit=self.unit,
            mints=[self.mint_url],
            description="clawtar:agent",
        )
        body = {
            "ok": False,
            "error": "payment required",
            "quoted_sats": self.price_sats,
            "hint": "Retry this endpoint with X-Cashu header containing token",
        }
        return encoded, body

    async def ask(self, question: str, style: FortuneStyle, token: str) -> Dict[str, Any]:
        """Redeem ``token`` and, if it covers the price, return a fresh fortune"""
        redeemed = await self.wallet.redeem(token)
        if not redeemed.ok:
            raise PaymentRejected(redeemed.reason or "token receive failed")

        received = redeemed.amount or 0
        verification = check_amount(received, self.price_sats, VerificationMode.WALLET_REDEEM)
        if not verification.accepted:
            logger.info("fortune_payment_too_low", received_sats=received, price_sats=self.price_sats)
            raise PaymentRejected(
                f"received amount too low ({received} < {self.price_sats})",
                details={
                    "received_sats": received,
                    "shortfall_sats": verification.detail["shortfall_sats"],
                },
            )

        # No suspension from here on: the anti-repeat check and the ring push
        # see the same latest entry.
        paid_at = utcnow()
        latest = self.store.latest_recent()
        result, _ = select_fortune(
            question,
            style,
            make_seed(question, style, paid_at),
            previous=latest.fortune if latest else None,
        )
        reading = self.store.create_reading(question, style, self.price_sats)
        receipt = WalletReceipt(
            id=str(uuid.uuid4()),
            ts=paid_at,
            reading_id=reading.id,
            amount_sats=received,
            raw=redeemed.raw,
        )
        self.store.settle_reading(reading.id, receipt, result)
        logger.info("fortune_paid", reading_id=reading.id, style=style.value, amount_sats=received)

        return {
            "ok": True,
            "quoted_sats": self.price_sats,
            "reading_id": reading.id,
            "result": result.model_dump(mode="json"),
        }

    async def announce(self, reading_id: str) -> None:
        """Post-response activity notification with the amount actually redeemed"""
        if not self.notifier.active:
            return
        reading = self.store.get_reading(reading_id)
        amount_sats = reading.payment.amount_sats or reading.quoted_sats
        balance = await self.wallet.balance()
        await self.notifier.notify_fortune(
            reading.style.value, amount_sats, len(self.store.state.recent), balance
        )

    def get_reading(self, reading_id: str) -> Dict[str, Any]:
        return reading_to_public(self.store.get_reading(reading_id))

    def recent(self, limit: Any = 20, before: Optional[int] = None) -> Dict[str, Any]:
        try:
            limit = int(limit)
        except (TypeError, ValueError):
            limit = 20
        limit = min(MAX_PAGE_SIZE, max(1, limit))

        items, next_before = self.store.recent_page(limit, before)
        return {
            "items": [entry.model_dump(mode="json") for entry in items],
            "next_before": next_before,
        }

    def stats(self) -> Dict[str, int]:
        return self.store.stats()
