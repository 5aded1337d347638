"""
Settlement authority client
Creates and checks bolt11 mint quotes on a Cashu mint (NUT-04)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
import structlog

from clawtar.errors import UpstreamError
from clawtar.models import MintQuote

logger = structlog.get_logger()


class SettlementAuthority(ABC):
    """Upstream service that issues payment quotes and reports their state"""

    @abstractmethod
    async def create_quote(self, amount: int, memo: str) -> MintQuote:
        """Issue a quote for ``amount``; raises UpstreamError on failure"""

    @abstractmethod
    async def check_quote(self, quote_id: str) -> str:
        """Current upstream state of a quote; raises UpstreamError on failure"""

    async def aclose(self) -> None:
        return None


def _quote_state(data: Dict[str, Any]) -> str:
    state = data.get("state")
    if state:
        return str(state)
    # Mints predating NUT-04 state report a boolean
    return "PAID" if data.get("paid") else "UNPAID"


class MintClient(SettlementAuthority):
    """httpx client for a Cashu mint's bolt11 quote endpoints"""

    def __init__(
        self,
        base_url: str,
        unit: str = "sat",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.unit = unit
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def create_quote(self, amount: int, memo: str) -> MintQuote:
        try:
            response = await self.client.post(
                f"{self.base_url}/v1/mint/quote/bolt11",
                json={"amount": amount, "unit": self.unit, "description": memo}
            )
            response.raise_for_status()
            data = response.json()
            quote = MintQuote(
                quote=data["quote"],
                request=data["request"],
                amount=data.get("amount", amount),
                unit=data.get("unit", self.unit),
                state=_quote_state(data),
                expiry=data.get("expiry"),
            )
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning("mint_quote_create_failed", error=str(e))
            raise UpstreamError("mint quote request failed") from e

        logger.info("mint_quote_created", amount=amount, state=quote.state)
        return quote

    async def check_quote(self, quote_id: str) -> str:
        try:
            response = await self.client.get(f"{self.base_url}/v1/mint/quote/bolt11/{quote_id}")
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError("unexpected quote payload")
            return _quote_state(data)
        except (httpx.HTTPError, ValueError) as e:
            # The error text carries the quote URL; it stays in the log
            logger.warning("mint_quote_check_failed", error=str(e))
            raise UpstreamError("mint quote state fetch failed") from e

    async def aclose(self) -> None:
        await self.client.aclose()
