"""
Payment verification pipeline
Token-proof check, external verifier, or trust fallback, in that priority order
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from clawtar.models import VerificationMode, VerificationResult
from clawtar.payments.tokens import TokenDecodeError, sum_token_amount

logger = structlog.get_logger()


def reject(reason: str, mode: Optional[VerificationMode] = None, **detail: Any) -> VerificationResult:
    return VerificationResult(accepted=False, mode=mode, reason=reason, detail=detail)


def check_amount(received: int, required: int, mode: VerificationMode) -> VerificationResult:
    """Accept when at least the required amount arrived; report the shortfall otherwise"""
    if received >= required:
        return VerificationResult(accepted=True, mode=mode, detail={"received_sats": received})
    return reject(
        f"amount too low ({received} < {required})",
        mode,
        received_sats=received,
        shortfall_sats=required - received,
    )


class PaymentVerifier:
    """
    Decides whether a claimed payment is acceptable.

    Strategies:
    - proof supplied: decode the token and sum its proofs (no network)
    - verifier URL configured: ask the external verifier
    - neither: trust the caller (recorded as trust_callback for audits)

    verify() never raises; every failure is a rejected VerificationResult.
    """

    def __init__(
        self,
        verifier_url: str = "",
        verifier_token: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.verifier_url = verifier_url
        self.verifier_token = verifier_token
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def verify(
        self,
        *,
        task_id: str,
        amount_sats: int,
        payment_id: str,
        idempotency_key: str,
        proof: Optional[str] = None,
    ) -> VerificationResult:
        try:
            if proof and isinstance(proof, str):
                result = self.check_token(proof, amount_sats)
            elif self.verifier_url:
                result = await self._ask_verifier({
                    "task_id": task_id,
                    "amount_sats": amount_sats,
                    "payment_id": payment_id,
                    "idempotency_key": idempotency_key,
                    "proof": proof or None,
                })
            else:
                result = VerificationResult(accepted=True, mode=VerificationMode.TRUST_CALLBACK)
        except Exception as e:
            logger.error("payment_verification_failed", task_id=task_id, error=str(e))
            result = reject("payment could not be verified")

        if not result.accepted:
            logger.info("payment_rejected", task_id=task_id, reason=result.reason)
        elif result.mode == VerificationMode.TRUST_CALLBACK:
            logger.warning("payment_trusted_unverified", task_id=task_id)
        return result

    def check_token(self, proof: str, required_sats: int) -> VerificationResult:
        try:
            token_amount = sum_token_amount(proof)
        except TokenDecodeError as e:
            return reject(f"invalid cashu token proof: {e}", VerificationMode.TOKEN_AMOUNT_CHECK)

        result = check_amount(token_amount, required_sats, VerificationMode.TOKEN_AMOUNT_CHECK)
        if not result.accepted:
            result.reason = f"token amount too low ({token_amount} < {required_sats})"
        result.detail["token_amount_sats"] = token_amount
        return result

    async def _ask_verifier(self, body: Dict[str, Any]) -> VerificationResult:
        headers = {}
        if self.verifier_token:
            headers["Authorization"] = f"Bearer {self.verifier_token}"

        try:
            response = await self.client.post(self.verifier_url, json=body, headers=headers)
        except httpx.HTTPError as e:
            return reject(f"verifier request failed: {e}", VerificationMode.EXTERNAL_VERIFIER)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = {}

        if not response.is_success or payload.get("ok") is not True:
            error = payload.get("error")
            reason = (
                (error.get("message") if isinstance(error, dict) else None)
                or payload.get("message")
                or f"verifier rejected payment ({response.status_code})"
            )
            return reject(str(reason), VerificationMode.EXTERNAL_VERIFIER)

        return VerificationResult(
            accepted=True,
            mode=VerificationMode.EXTERNAL_VERIFIER,
            detail={"verifier": payload},
        )

    async def aclose(self) -> None:
        await self.client.aclose()
