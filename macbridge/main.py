"""
macbridge — command line entry point.

Usage:
    python -m macbridge.main research "capital of Peru"
    python -m macbridge.main messages read "+1 (555) 123-4567" --limit 20
    python -m macbridge.main messages unread
    python -m macbridge.main messages send 5551234567 "on my way" [--at 2026-10-16T18:00]
    python -m macbridge.main phone "155-5123-4567"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import datetime

import structlog
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

from macbridge.config import get_settings
from macbridge.errors import AutomationError, SchedulingError
from macbridge.formatting import format_messages, format_research, format_unread
from macbridge.messages.phone import normalize_phone_number
from macbridge.messages.sender import MessageSender, get_scheduler
from macbridge.messages.store import MessageStoreReader
from macbridge.observability import metrics as obs_metrics
from macbridge.tools.research import WebResearchPipeline

_CUSTOM_THEME = Theme({
    "log.info":    "dim white",
    "log.warning": "bold #f59e0b",
    "log.error":   "bold #dc2626",
    "log.debug":   "dim #64748b",
    "primary":     "#ea580c",
})

console = Console(theme=_CUSTOM_THEME, highlight=False, stderr=True)
out = Console(highlight=False)


class _RichStructlogRenderer:
    """Structlog processor that renders log lines via Rich on stderr."""

    _SKIP_KEYS = frozenset({"event", "level", "_record"})

    def __call__(self, logger_: object, method: str, event_dict: dict) -> str:  # noqa: ARG002
        event = event_dict.get("event", "")
        level = event_dict.get("level", "info").lower()

        kv_parts = []
        for k, v in event_dict.items():
            if k in self._SKIP_KEYS:
                continue
            vs = str(v)
            if len(vs) > 120:
                vs = vs[:117] + "…"
            kv_parts.append(f"[#64748b]{k}[/#64748b]=[#94a3b8]{vs}[/#94a3b8]")
        kv_str = "  ".join(kv_parts)

        if level == "warning":
            prefix, style = "⚠", "log.warning"
        elif level in ("error", "critical"):
            prefix, style = "✗", "log.error"
        elif level == "debug":
            prefix, style = "·", "log.debug"
        else:
            prefix, style = "▪", "log.info"

        console.print(f"  [{style}]{prefix} {event}[/{style}]  {kv_str}")
        raise structlog.DropEvent()


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            _RichStructlogRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


async def run_research(query: str, plain: bool = False) -> int:
    response = await WebResearchPipeline().research(query)
    if plain:
        out.print(format_research(response), markup=False)
        return 0 if response.results else 1
    if response.error and not response.results:
        out.print(f'[bold #dc2626]No results for "{query}":[/bold #dc2626] {response.error}')
        return 1

    table = Table(title=f"Results for “{query}”", border_style="#64748b", title_style="#94a3b8")
    table.add_column("#", justify="right")
    table.add_column("Source")
    table.add_column("Title")
    table.add_column("Content", justify="right")
    for i, r in enumerate(response.results, 1):
        status = f"{len(r.content)} chars" if r.ok else f"[#dc2626]{r.error}[/#dc2626]"
        table.add_row(str(i), r.display_url, r.title, status)
    out.print(table)
    for r in response.results:
        if r.ok:
            preview = r.content[:800] + ("..." if len(r.content) > 800 else "")
            out.print(Panel(preview, title=f"[#ea580c]{r.title}[/#ea580c]", border_style="#64748b"))
    return 0


async def _send_later(phone: str, text: str, at: str) -> int:
    try:
        when = datetime.fromisoformat(at)
    except ValueError:
        out.print(f"[bold #dc2626]Invalid time:[/bold #dc2626] {at}")
        return 2
    scheduler = get_scheduler()
    try:
        scheduled = scheduler.schedule(phone, text, when)
    except SchedulingError as e:
        out.print(f"[bold #dc2626]{e}[/bold #dc2626]")
        return 1
    out.print(f"Message to {phone} scheduled for {scheduled.scheduled_time.isoformat()} (id {scheduled.id})")
    # Scheduled sends only live in this process
    while scheduler.pending():
        await asyncio.sleep(1)
    return 0


async def run_messages(args: argparse.Namespace) -> int:
    if args.action == "send":
        if args.at:
            return await _send_later(args.phone, args.text, args.at)
        try:
            await MessageSender().send(args.phone, args.text)
        except AutomationError as e:
            out.print(f"[bold #dc2626]Send failed:[/bold #dc2626] {e}")
            return 1
        out.print(f"Message sent to {args.phone}")
        return 0

    reader = MessageStoreReader()
    if args.action == "read":
        messages = await reader.read_messages(args.phone, args.limit)
        out.print(format_messages(messages), markup=False)
    else:
        messages = await reader.get_unread_messages(args.limit)
        out.print(format_unread(messages), markup=False)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="macOS app and web research bridge")
    sub = parser.add_subparsers(dest="command")

    rs = sub.add_parser("research", help="Search the web and read the top results")
    rs.add_argument("query", help="Search query")
    rs.add_argument("--plain", action="store_true", help="Print the tool-layer text body instead of tables")

    msg = sub.add_parser("messages", help="Read or send iMessages")
    msg_sub = msg.add_subparsers(dest="action", required=True)
    rd = msg_sub.add_parser("read", help="Conversation with a phone number")
    rd.add_argument("phone", help="Phone number in any common format")
    rd.add_argument("--limit", type=int, default=None, help="Max messages")
    un = msg_sub.add_parser("unread", help="Unread messages from others")
    un.add_argument("--limit", type=int, default=None, help="Max messages")
    sd = msg_sub.add_parser("send", help="Send an iMessage")
    sd.add_argument("phone", help="Recipient phone number or handle")
    sd.add_argument("text", help="Message text")
    sd.add_argument("--at", default=None, help="ISO-8601 time to send at; the process waits until then")

    ph = sub.add_parser("phone", help="Show lookup forms for a phone number")
    ph.add_argument("raw", help="Phone number")

    args = parser.parse_args()
    settings = get_settings()
    configure_logging(settings.observability.log_level)
    obs_metrics.start_server(settings.observability.metrics_port)

    if args.command == "research":
        raise SystemExit(asyncio.run(run_research(args.query, args.plain)))
    elif args.command == "messages":
        raise SystemExit(asyncio.run(run_messages(args)))
    elif args.command == "phone":
        for form in normalize_phone_number(args.raw):
            out.print(form)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
