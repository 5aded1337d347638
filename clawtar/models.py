"""
Clawtar Core Data Models
Shared models for the entity store, snapshot and API
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Queued-flow task lifecycle, forward-only"""
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TASK_TRANSITIONS: Dict[TaskStatus, frozenset] = {
    TaskStatus.AWAITING_PAYMENT: frozenset({TaskStatus.PAID}),
    TaskStatus.PAID: frozenset({TaskStatus.RUNNING}),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}


class ReadingStatus(str, Enum):
    """Pay-per-call readings settle synchronously"""
    PENDING = "pending"
    PAID = "paid"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"


class VerificationMode(str, Enum):
    """How a payment was accepted, recorded for audit"""
    TOKEN_AMOUNT_CHECK = "cashu_token_amount_check"
    EXTERNAL_VERIFIER = "external_verifier"
    TRUST_CALLBACK = "trust_callback"  # unverified, dev/trusted callbacks only
    MINT_QUOTE_STATE = "mint_quote_state"
    WALLET_REDEEM = "wallet_redeem"


class FortuneStyle(str, Enum):
    FUNNY = "funny"
    CHAOTIC = "chaotic"
    WHOLESOME = "wholesome"


SETTLED_QUOTE_STATES = frozenset({"PAID", "ISSUED"})


class MintQuote(BaseModel):
    """Upstream-issued payment request (bolt11 mint quote)"""
    quote: str = Field(description="Quote identifier, private")
    request: str = Field(description="Payment request to settle, e.g. bolt11 invoice")
    amount: Optional[int] = None
    unit: Optional[str] = None
    state: str = "UNPAID"
    expiry: Optional[int] = None
    last_checked_at: Optional[datetime] = None

    @field_validator("last_checked_at", mode="before")
    @classmethod
    def drop_unparsable_timestamp(cls, v):
        # An unreadable check time makes the quote eligible for refresh
        if isinstance(v, str):
            try:
                return datetime.fromisoformat(v.replace("Z", "+00:00"))
            except ValueError:
                return None
        return v

    @property
    def is_settled(self) -> bool:
        return (self.state or "").upper() in SETTLED_QUOTE_STATES


class Payment(BaseModel):
    """Payment sub-record settled inline (no quote)"""
    method: str = "cashu"
    status: PaymentStatus = PaymentStatus.PENDING
    payment_id: Optional[str] = None
    amount_sats: Optional[int] = None
    idempotency_key: Optional[str] = None
    verification_mode: Optional[VerificationMode] = None


class QuotedPayment(Payment):
    """Payment sub-record backed by a settlement-authority quote"""
    instructions: str = (
        "Pay the bolt11 request, then poll task status or call payment refresh endpoint."
    )
    mint_quote: MintQuote


class Task(BaseModel):
    """Queued-flow unit of work"""
    id: str
    status: TaskStatus = TaskStatus.AWAITING_PAYMENT
    input: str
    quoted_sats: int
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    status_timestamps: Dict[str, datetime] = Field(default_factory=dict)
    payment: QuotedPayment
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class FortuneResult(BaseModel):
    title: str
    style: FortuneStyle
    question: str
    fortune: str
    lucky_number: int


class Reading(BaseModel):
    """Synchronous pay-per-call record"""
    id: str
    question: str
    style: FortuneStyle
    status: ReadingStatus = ReadingStatus.PENDING
    quoted_sats: int
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    payment: Payment = Field(default_factory=Payment)
    result: Optional[FortuneResult] = None


class RecentEntry(BaseModel):
    """Compact projection of a paid reading for the public feed"""
    seq: int = 0
    reading_id: str
    question: str
    style: FortuneStyle
    fortune: str = ""
    lucky_number: Optional[int] = None
    created_at: datetime
    paid_at: datetime


class Totals(BaseModel):
    paid_count: int = 0
    sats_received: int = 0


class WalletReceipt(BaseModel):
    """Raw settlement receipt from the wallet redemption process"""
    id: str
    ts: datetime = Field(default_factory=utcnow)
    type: str = "clawtar_ask_receive"
    reading_id: str
    amount_sats: int
    raw: str = ""


class LedgerEntry(BaseModel):
    """Idempotency ledger row; the fingerprint never changes once stored"""
    idempotency_key: str
    event_fingerprint: Tuple[str, int, str]
    response: Dict[str, Any]


class Metrics(BaseModel):
    tasks_created_total: int = 0
    payments_received_total: int = 0
    payment_replays_total: int = 0
    tasks_completed_total: int = 0
    tasks_failed_total: int = 0
    worker_runs_total: int = 0
    quote_refresh_attempts_total: int = 0
    quote_refresh_skipped_total: int = 0
    quote_refresh_errors_total: int = 0


class VerificationResult(BaseModel):
    """Outcome of the verification pipeline; failures are values, not exceptions"""
    accepted: bool
    mode: Optional[VerificationMode] = None
    reason: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)
