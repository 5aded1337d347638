"""
Factory Boy factories for generating test data
"""

import factory

from clawtar.models import (
    FortuneStyle,
    MintQuote,
    QuotedPayment,
    RecentEntry,
    Task,
    TaskStatus,
    WalletReceipt,
    utcnow,
)


class MintQuoteFactory(factory.Factory):
    """Factory for MintQuote"""
    class Meta:
        model = MintQuote

    quote = factory.Sequence(lambda n: f"quote_{n}")
    request = factory.LazyAttribute(lambda o: f"lnbc1000n1{o.quote}")
    amount = 100
    unit = "sat"
    state = "UNPAID"
    last_checked_at = None


class QuotedPaymentFactory(factory.Factory):
    """Factory for QuotedPayment"""
    class Meta:
        model = QuotedPayment

    mint_quote = factory.SubFactory(MintQuoteFactory)


class TaskFactory(factory.Factory):
    """Factory for Task"""
    class Meta:
        model = Task

    id = factory.Sequence(lambda n: f"task_{n}")
    status = TaskStatus.AWAITING_PAYMENT
    input = "Summarise the quarterly report. Flag risks! Suggest owners?"
    quoted_sats = 100
    created_at = factory.LazyFunction(utcnow)
    updated_at = factory.LazyFunction(utcnow)
    payment = factory.SubFactory(QuotedPaymentFactory)


class RecentEntryFactory(factory.Factory):
    """Factory for RecentEntry"""
    class Meta:
        model = RecentEntry

    seq = factory.Sequence(lambda n: n + 1)
    reading_id = factory.Sequence(lambda n: f"agent-{n}")
    question = "will it ship?"
    style = FortuneStyle.FUNNY
    fortune = "The stars align: your build passes on the second try."
    lucky_number = 7
    created_at = factory.LazyFunction(utcnow)
    paid_at = factory.LazyFunction(utcnow)


class WalletReceiptFactory(factory.Factory):
    """Factory for WalletReceipt"""
    class Meta:
        model = WalletReceipt

    id = factory.Sequence(lambda n: f"receipt_{n}")
    reading_id = factory.Sequence(lambda n: f"agent-{n}")
    amount_sats = 42
    raw = "Received 42 sats"
