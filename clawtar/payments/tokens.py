"""
Cashu token and payment-request codecs
Decodes V3 (cashuA, JSON) and V4 (cashuB, CBOR) tokens and encodes NUT-18 requests
"""

import base64
import binascii
import json
from typing import Any, Dict, List, Optional

import cbor2

TOKEN_V3_PREFIX = "cashuA"
TOKEN_V4_PREFIX = "cashuB"
PAYMENT_REQUEST_PREFIX = "creqA"


class TokenDecodeError(ValueError):
    """Raised when a payment proof cannot be decoded"""


def _b64decode(data: str) -> bytes:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded)


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def decode_token(token: str) -> Dict[str, Any]:
    """Decode a serialized Cashu token into its raw structure"""
    token = (token or "").strip()
    if token.startswith("cashu:"):
        token = token[len("cashu:"):]

    try:
        if token.startswith(TOKEN_V3_PREFIX):
            decoded = json.loads(_b64decode(token[len(TOKEN_V3_PREFIX):]))
        elif token.startswith(TOKEN_V4_PREFIX):
            decoded = cbor2.loads(_b64decode(token[len(TOKEN_V4_PREFIX):]))
        else:
            raise TokenDecodeError("unsupported token prefix")
    except TokenDecodeError:
        raise
    except (binascii.Error, ValueError, cbor2.CBORDecodeError) as e:
        raise TokenDecodeError(f"decode failed: {e}") from e

    if not isinstance(decoded, dict):
        raise TokenDecodeError("token payload is not an object")
    return decoded


def _amount(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _proof_amounts(decoded: Dict[str, Any]) -> List[int]:
    # V4: {"m": mint, "u": unit, "t": [{"i": keyset, "p": [{"a": amount, ...}]}]}
    if isinstance(decoded.get("t"), list):
        return [
            _amount(proof.get("a"))
            for entry in decoded["t"] if isinstance(entry, dict)
            for proof in entry.get("p") or [] if isinstance(proof, dict)
        ]

    # Flattened form: {"mint": ..., "proofs": [...]}
    if isinstance(decoded.get("proofs"), list):
        return [_amount(p.get("amount")) for p in decoded["proofs"] if isinstance(p, dict)]

    # V3: {"token": [{"mint": ..., "proofs": [{"amount": ...}]}]}
    entries = decoded.get("token") if isinstance(decoded.get("token"), list) else []
    return [
        _amount(proof.get("amount"))
        for entry in entries if isinstance(entry, dict)
        for proof in entry.get("proofs") or [] if isinstance(proof, dict)
    ]


def sum_token_amount(token: str) -> int:
    """Total face value of all proofs in a token"""
    return sum(_proof_amounts(decode_token(token)))


def encode_payment_request(
    request_id: str,
    amount: int,
    unit: str,
    mints: List[str],
    description: Optional[str] = None,
) -> str:
    """Encode a NUT-18 payment request (creqA...) for the x-cashu header"""
    payload: Dict[str, Any] = {"i": request_id, "a": amount, "u": unit, "m": mints}
    if description:
        payload["d"] = description
    return PAYMENT_REQUEST_PREFIX + _b64encode(cbor2.dumps(payload))


def decode_payment_request(encoded: str) -> Dict[str, Any]:
    if not encoded.startswith(PAYMENT_REQUEST_PREFIX):
        raise TokenDecodeError("not a creqA payment request")
    try:
        return cbor2.loads(_b64decode(encoded[len(PAYMENT_REQUEST_PREFIX):]))
    except (binascii.Error, ValueError, cbor2.CBORDecodeError) as e:
        raise TokenDecodeError(f"decode failed: {e}") from e
