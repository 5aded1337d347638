"""
Error taxonomy for Clawtar
Every user-visible failure carries a stable machine-readable code
"""

from typing import Any, Dict, Optional


class ClawtarError(Exception):
    """Base class for typed service failures"""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": {"code": self.code, "message": self.message},
            **self.details,
        }


class ValidationError(ClawtarError):
    """Malformed or missing input; no state change"""
    status_code = 400
    default_code = "INVALID_REQUEST"


class NotFoundError(ClawtarError):
    """Unknown task or reading id"""
    status_code = 404
    default_code = "TASK_NOT_FOUND"


class ConflictError(ClawtarError):
    """Caller-correctable conflict; no state change"""
    status_code = 409
    default_code = "CONFLICT"


class InvalidTransition(ConflictError):
    default_code = "INVALID_TRANSITION"

    def __init__(self, entity_id: str, current: str, target: str):
        super().__init__(f"cannot transition {entity_id} from {current} to {target}")
        self.entity_id = entity_id
        self.current = current
        self.target = target


class IdempotencyConflict(ConflictError):
    default_code = "IDEMPOTENCY_KEY_REUSED"

    def __init__(self, key: str):
        super().__init__("idempotency_key already used for a different payment event")
        self.key = key


class PaymentRejected(ClawtarError):
    """Verification failed; caller must resupply payment"""
    status_code = 402
    default_code = "PAYMENT_UNVERIFIED"


class UpstreamError(ClawtarError):
    """Settlement authority, verifier or wallet unreachable; retryable"""
    status_code = 502
    default_code = "UPSTREAM_UNAVAILABLE"


class InternalError(ClawtarError):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "internal error"):
        super().__init__(message)
