"""
Activity notifications
Best-effort Telegram message when an agent pays for a fortune
"""

from html import escape
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger()


class ActivityNotifier:
    def __init__(
        self,
        bot_token: str = "",
        chat_id: str = "",
        enabled: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.enabled = enabled
        self.client = client or httpx.AsyncClient(timeout=10.0)

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.bot_token) and bool(self.chat_id)

    @staticmethod
    def render(style: str, amount_sats: int, visits: int, balance_sats: Optional[int]) -> str:
        lines = [
            "🦀✨ <b>New Clawtar activity!</b>",
            "",
            f"An agent just paid <b>{amount_sats} sats</b> and unlocked a fortune.",
            f"Style: <b>{escape(style or 'funny')}</b>",
            "",
            f"Total recent paid visits: <b>{visits}</b>",
        ]
        if balance_sats is not None:
            lines.append(f"App wallet balance: <b>{balance_sats} sats</b>")
        return "\n".join(lines)

    async def notify_fortune(
        self,
        style: str,
        amount_sats: int,
        visits: int,
        balance_sats: Optional[int] = None,
    ) -> bool:
        """Send the activity message; failures are logged, never raised"""
        if not self.active:
            return False

        try:
            response = await self.client.post(
                f"https://api.telegram.org/bot{self.bot_token}/sendMessage",
                json={
                    "chat_id": self.chat_id,
                    "text": self.render(style, amount_sats, visits, balance_sats),
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                }
            )
            response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("activity_notify_failed", error=str(e))
            return False

    async def aclose(self) -> None:
        await self.client.aclose()
