"""
Execution module for Clawtar
Single-flight task dispatch and settlement polling
"""

from clawtar.execution.brief import build_structured_brief
from clawtar.execution.dispatcher import WorkerDispatcher
from clawtar.execution.poller import PollReport, SettlementPoller

__all__ = ["build_structured_brief", "WorkerDispatcher", "PollReport", "SettlementPoller"]
