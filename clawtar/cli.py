#!/usr/bin/env python3
"""
clawtar: command-line client for a running Clawtar service

Usage:
    clawtar submit "<input>" [--json]
    clawtar status <task_id> [--json]
    clawtar refresh <task_id> [--json]
    clawtar ask "<question>" [--style funny] [--token cashuB...] [--json]
    clawtar feed [--limit 20] [--before N] [--json]
    clawtar stats [--json]
"""

import argparse
import asyncio
import json as json_lib
import sys
from typing import Any, Dict, Optional

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from clawtar.config import get_service_config

console = Console()

STATUS_COLORS = {
    "awaiting_payment": "yellow",
    "paid": "cyan",
    "running": "blue",
    "completed": "green",
    "failed": "red",
}


class ClawtarCLI:
    """Thin httpx wrapper around the Clawtar HTTP API"""

    def __init__(self, base_url: str, json_output: bool = False, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.json_output = json_output
        self.client = client or httpx.AsyncClient(timeout=30.0)

    def _output(self, data: Any, human_message: Optional[str] = None):
        """Output data in JSON or human-readable format"""
        if self.json_output:
            print(json_lib.dumps(data, indent=2, default=str))
        elif human_message:
            console.print(human_message)

    def _error(self, response: httpx.Response) -> bool:
        """Print an API error; returns True when the response was one"""
        if response.is_success:
            return False
        try:
            body = response.json()
        except ValueError:
            body = {"error": {"code": str(response.status_code), "message": response.text}}

        error = body.get("error")
        if isinstance(error, dict):
            message = f"{error.get('code')}: {error.get('message')}"
        else:
            message = str(error)
        self._output(body, f"[red]{response.status_code} {message}[/red]")
        return True

    def _show_task(self, data: Dict[str, Any]):
        color = STATUS_COLORS.get(data.get("status"), "white")
        table = Table(show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Task", data.get("task_id", ""))
        table.add_row("Status", f"[{color}]{data.get('status')}[/{color}]")
        if "quoted_sats" in data:
            table.add_row("Price", f"{data['quoted_sats']} sats")

        payment = data.get("payment") or {}
        table.add_row("Payment", str(payment.get("status", "")))
        if payment.get("verification_mode"):
            table.add_row("Verified by", payment["verification_mode"])
        quote = payment.get("mint_quote") or {}
        if quote.get("request"):
            table.add_row("Invoice", quote["request"])
        if data.get("quote_state"):
            table.add_row("Quote state", data["quote_state"])
        if data.get("error"):
            table.add_row("Error", f"[red]{data['error']}[/red]")
        console.print(table)

        if data.get("result"):
            console.print(Panel(json_lib.dumps(data["result"], indent=2), title="Result", border_style="green"))

    async def submit(self, text: str):
        response = await self.client.post(f"{self.base_url}/v1/tasks", json={"input": text})
        if self._error(response):
            return None
        data = response.json()
        if self.json_output:
            self._output(data)
        else:
            console.print("[green]Task created[/green]")
            self._show_task(data)
            console.print(f"Poll with: [cyan]clawtar status {data['task_id']}[/cyan]")
        return data

    async def status(self, task_id: str):
        response = await self.client.get(f"{self.base_url}/v1/tasks/{task_id}")
        if self._error(response):
            return None
        data = response.json()
        if self.json_output:
            self._output(data)
        else:
            self._show_task(data)
        return data

    async def refresh(self, task_id: str):
        response = await self.client.post(f"{self.base_url}/v1/tasks/{task_id}/payment/refresh")
        if self._error(response):
            return None
        data = response.json()
        if self.json_output:
            self._output(data)
        else:
            self._show_task(data)
        return data

    async def ask(self, question: str, style: Optional[str] = None, token: Optional[str] = None):
        body: Dict[str, Any] = {"question": question}
        if style is not None:
            body["style"] = style
        headers = {"X-Cashu": token} if token else {}

        response = await self.client.post(f"{self.base_url}/v1/clawtar/ask", json=body, headers=headers)
        if response.status_code == 402 and response.headers.get("x-cashu"):
            challenge = response.json()
            challenge["payment_request"] = response.headers["x-cashu"]
            self._output(
                challenge,
                f"[yellow]Payment required: {challenge.get('quoted_sats')} sats[/yellow]\n"
                f"Pay this request and retry with --token:\n{challenge['payment_request']}"
            )
            return challenge
        if self._error(response):
            return None

        data = response.json()
        if self.json_output:
            self._output(data)
        else:
            result = data.get("result") or {}
            console.print(Panel(
                f"{result.get('fortune', '')}\n\nLucky number: [bold]{result.get('lucky_number')}[/bold]",
                title=result.get("title", "Clawtar"),
                border_style="magenta"
            ))
        return data

    async def feed(self, limit: int = 20, before: Optional[int] = None):
        params: Dict[str, Any] = {"limit": limit}
        if before is not None:
            params["before"] = before
        response = await self.client.get(f"{self.base_url}/v1/clawtar/recent", params=params)
        if self._error(response):
            return None
        data = response.json()
        if self.json_output:
            self._output(data)
            return data

        table = Table(title="Recent fortunes")
        table.add_column("#", style="dim")
        table.add_column("Style", style="cyan")
        table.add_column("Question")
        table.add_column("Fortune")
        table.add_column("Lucky", justify="right")
        for item in data.get("items", []):
            table.add_row(
                str(item.get("seq")),
                item.get("style", ""),
                item.get("question", ""),
                item.get("fortune", ""),
                str(item.get("lucky_number") or "")
            )
        console.print(table)
        if data.get("next_before") is not None:
            console.print(f"More: [cyan]clawtar feed --before {data['next_before']}[/cyan]")
        return data

    async def stats(self):
        response = await self.client.get(f"{self.base_url}/v1/clawtar/stats")
        if self._error(response):
            return None
        data = response.json()
        self._output(
            data,
            f"Paid readings: [bold]{data['total_paid']}[/bold]\n"
            f"Sats received: [bold]{data['total_sats']}[/bold]\n"
            f"Visible in feed: {data['visible_recent']}"
        )
        return data

    async def close(self):
        await self.client.aclose()


def build_parser() -> argparse.ArgumentParser:
    config = get_service_config()
    parser = argparse.ArgumentParser(
        prog="clawtar",
        description="Clawtar CLI - pay-per-call tasks and fortunes over Cashu",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  clawtar submit "summarise the release notes"
  clawtar status 3f1c... --json
  clawtar refresh 3f1c...
  clawtar ask "will my build pass?" --style chaotic
  clawtar feed --limit 5
        """
    )

    parser.add_argument("--json", "-j", action="store_true", help="Output in JSON format (for scripting/agents)")
    parser.add_argument(
        "--url",
        default=f"http://{config.host}:{config.port}",
        help="Base URL of the Clawtar service"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    submit_parser = subparsers.add_parser("submit", help="Submit a task")
    submit_parser.add_argument("input", help="Task input text")

    status_parser = subparsers.add_parser("status", help="Get task status")
    status_parser.add_argument("task_id", help="Task ID")

    refresh_parser = subparsers.add_parser("refresh", help="Check a task's payment quote now")
    refresh_parser.add_argument("task_id", help="Task ID")

    ask_parser = subparsers.add_parser("ask", help="Ask Clawtar for a fortune")
    ask_parser.add_argument("question", help="Your question")
    ask_parser.add_argument("--style", "-s", help="funny, chaotic or wholesome (random when omitted)")
    ask_parser.add_argument("--token", "-t", help="Cashu token paying for the reading")

    feed_parser = subparsers.add_parser("feed", help="Show recent fortunes")
    feed_parser.add_argument("--limit", "-n", type=int, default=20, help="Page size (1-100)")
    feed_parser.add_argument("--before", type=int, help="Cursor from a previous page")

    subparsers.add_parser("stats", help="Show paid totals")

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    async def run():
        cli = ClawtarCLI(args.url, json_output=args.json)
        try:
            if args.command == "submit":
                return await cli.submit(args.input)
            elif args.command == "status":
                return await cli.status(args.task_id)
            elif args.command == "refresh":
                return await cli.refresh(args.task_id)
            elif args.command == "ask":
                return await cli.ask(args.question, style=args.style, token=args.token)
            elif args.command == "feed":
                return await cli.feed(limit=args.limit, before=args.before)
            elif args.command == "stats":
                return await cli.stats()
        except httpx.HTTPError as e:
            cli._output({"error": str(e)}, f"[red]Request failed: {e}[/red]")
        finally:
            await cli.close()

    if asyncio.run(run()) is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
