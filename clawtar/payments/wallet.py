"""
Wallet redemption process
Redeems a serialized Cashu token into the app wallet via the cocod CLI
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import structlog

logger = structlog.get_logger()

RECEIVED_PATTERN = re.compile(r"Received\s+(\d+)", re.IGNORECASE)


@dataclass
class RedeemResult:
    """Outcome of redeeming a token: an amount, or a failure reason"""
    ok: bool
    amount: Optional[int] = None
    raw: str = ""
    reason: Optional[str] = None


class WalletProcessError(Exception):
    pass


class WalletRedeemer(ABC):
    @abstractmethod
    async def redeem(self, token: str) -> RedeemResult:
        """Redeem ``token``; never raises"""

    @abstractmethod
    async def balance(self) -> Optional[int]:
        """Total wallet balance in sats, or None when unavailable"""


class CocodWallet(WalletRedeemer):
    """Runs ``bun cocod ...`` with a bounded timeout per call"""

    def __init__(
        self,
        bun_bin: str,
        cocod_bin: str,
        receive_timeout: float = 20.0,
        balance_timeout: float = 10.0,
    ):
        self.bun_bin = bun_bin
        self.cocod_bin = cocod_bin
        self.receive_timeout = receive_timeout
        self.balance_timeout = balance_timeout

    async def _run(self, args: List[str], timeout: float) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.bun_bin, self.cocod_bin, *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise WalletProcessError(str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise WalletProcessError(f"wallet command timed out after {timeout}s")

        out = stdout.decode(errors="replace").strip()
        if proc.returncode != 0:
            err = stderr.decode(errors="replace").strip()
            raise WalletProcessError(err or out or f"wallet exited with {proc.returncode}")
        return out

    async def redeem(self, token: str) -> RedeemResult:
        try:
            out = await self._run(["receive", "cashu", token], self.receive_timeout)
        except WalletProcessError as e:
            logger.warning("wallet_receive_failed", error=str(e))
            return RedeemResult(ok=False, reason=str(e) or "receive failed")

        match = RECEIVED_PATTERN.search(out)
        return RedeemResult(ok=True, amount=int(match.group(1)) if match else None, raw=out)

    async def balance(self) -> Optional[int]:
        try:
            out = await self._run(["balance"], self.balance_timeout)
            by_mint = json.loads(out) or {}
            return sum(int((v or {}).get("sats") or 0) for v in by_mint.values())
        except (WalletProcessError, ValueError, AttributeError, TypeError) as e:
            logger.warning("wallet_balance_failed", error=str(e))
            return None
