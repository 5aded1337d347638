"""
Clawtar Payment Module
Cashu token verification, idempotent settlement, mint quotes and wallet redemption
"""

from clawtar.payments.ledger import IdempotencyLedger, event_fingerprint
from clawtar.payments.mint import MintClient, SettlementAuthority
from clawtar.payments.tokens import (
    TokenDecodeError,
    decode_token,
    encode_payment_request,
    sum_token_amount,
)
from clawtar.payments.verification import PaymentVerifier, check_amount
from clawtar.payments.wallet import CocodWallet, RedeemResult, WalletRedeemer

__all__ = [
    "IdempotencyLedger",
    "event_fingerprint",
    "MintClient",
    "SettlementAuthority",
    "TokenDecodeError",
    "decode_token",
    "encode_payment_request",
    "sum_token_amount",
    "PaymentVerifier",
    "check_amount",
    "CocodWallet",
    "RedeemResult",
    "WalletRedeemer",
]
