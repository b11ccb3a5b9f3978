"""Console output, prompts and tables for the operator console."""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import questionary
from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from wgfops.cli.common.tui_style import (
    QUESTIONARY_STYLE_CONFIRM,
    QUESTIONARY_STYLE_SELECT,
    QUESTIONARY_STYLE_TEXT,
)
from wgfops.core.phases import format_phase, format_status
from wgfops.core.store import AuditEntry, TradingAccount, User
from wgfops.core.workflows.base import OutcomeStatus, WorkflowOutcome

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
        "prod": "bold white on red",
    }
)

console = Console(theme=_THEME)

_OUTCOME_STYLE = {
    OutcomeStatus.SUCCEEDED: "ok",
    OutcomeStatus.PARTIAL: "warn",
    OutcomeStatus.REMOTE_FAILED: "err",
    OutcomeStatus.COMPENSATED: "warn",
    OutcomeStatus.COMPENSATION_FAILED: "err",
}

Choices = Sequence["str | questionary.Choice"]


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages, prompts and tables.

    Every prompt uses `unsafe_ask()`: Ctrl-C raises KeyboardInterrupt, which
    the top level turns into a graceful quit.
    """

    def _q(self, message: str) -> str:
        return f"[WGF-OPS] {message}"

    def info(self, msg: str) -> None:
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        console.print(f"[err]✗[/] {msg}")

    def header(self, title: str) -> None:
        console.print()
        console.rule(f"[title]{title}[/]", align="left")

    def print(self, msg: str = "") -> None:
        console.print(msg)

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print aligned key-value pairs."""
        width = max((len(k) for k in items), default=0)
        for k, v in items.items():
            console.print(f"[meta]{k.ljust(width)}[/]  {v}", highlight=False)

    def output(self, title: str, text: str) -> None:
        """Print raw Job output, without markup interpretation."""
        console.print(f"[meta]{title}:[/]")
        console.print(text.rstrip(), markup=False, highlight=False)

    def environment_banner(self, label: str, production: bool) -> None:
        style = "prod" if production else "title"
        console.print(f"[{style}] {label.upper()} [/]")

    def outcome(self, outcome: WorkflowOutcome) -> None:
        """Render the terminal state of a workflow."""
        style = _OUTCOME_STYLE[outcome.status]
        console.print(f"[{style}]{outcome.status.value}[/] {outcome.message}", highlight=False)
        for warning in outcome.warnings:
            self.warn(warning)
        if outcome.recap:
            self.header("Recap")
            self.kv(outcome.recap)

    # -- prompts ---------------------------------------------------------

    def select_one(self, message: str, choices: Choices) -> Any:
        """
        Prompt the operator to pick a single item (radio list).

        Returns:
            The selected value, or None if there is nothing to choose from.
        """
        if not choices:
            return None
        return questionary.select(
            self._q(message),
            choices=list(choices),
            style=QUESTIONARY_STYLE_SELECT,
            qmark="✦",
            instruction="Use ↑/↓ then Enter",
            pointer="❯",
        ).unsafe_ask()

    def select_many(self, message: str, choices: Choices) -> list:
        """Prompt the operator to tick any number of items."""
        if not choices:
            return []
        picked = questionary.checkbox(
            self._q(message),
            choices=list(choices),
            style=QUESTIONARY_STYLE_SELECT,
            qmark="✦",
            instruction="Use ↑/↓, space, enter",
            pointer="❯",
        ).unsafe_ask()
        return list(picked or [])

    def ask_text(self, message: str, *, validate=None, default: str = "") -> str:
        answer = questionary.text(
            self._q(message),
            default=default,
            validate=validate,
            style=QUESTIONARY_STYLE_TEXT,
            qmark="✦",
        ).unsafe_ask()
        return (answer or "").strip()

    def ask_phrase(self, message: str) -> str:
        """Free-text prompt used by the confirmation gates."""
        return (
            questionary.text(
                self._q(message), style=QUESTIONARY_STYLE_CONFIRM, qmark="!"
            ).unsafe_ask()
            or ""
        )

    # -- tables ----------------------------------------------------------

    def users_table(self, users: Iterable[User], title: str = "Users") -> None:
        t = Table(title=title, show_lines=False)
        t.add_column("Email", style="ok")
        t.add_column("Name")
        t.add_column("CTID", style="meta")
        t.add_column("UUID", style="meta", no_wrap=True)
        for u in users:
            t.add_row(u.email, f"{u.firstname} {u.lastname}", str(u.ctid or "-"), u.user_uuid)
        console.print(t)

    def accounts_table(
        self, accounts: Iterable[TradingAccount], title: str = "Trading accounts"
    ) -> None:
        t = Table(title=title, show_lines=False)
        t.add_column("cTrader ID", style="ok", no_wrap=True)
        t.add_column("Phase")
        t.add_column("Server", style="meta")
        t.add_column("Status")
        t.add_column("Reason", style="meta")
        for a in accounts:
            status = format_status(a.success)
            style = "ok" if a.is_active else "warn"
            t.add_row(
                str(a.ctrader_trading_account),
                format_phase(a.challenge_phase),
                a.ctrader_server,
                f"[{style}]{status}[/{style}]",
                a.reason or "-",
            )
        console.print(t)

    def audit_table(self, entries: Iterable[AuditEntry], title: str = "Audit log") -> None:
        t = Table(title=title, show_lines=False)
        t.add_column("When", style="meta", no_wrap=True)
        t.add_column("Action", style="ok")
        t.add_column("Target")
        t.add_column("Operator")
        t.add_column("Env", style="meta")
        t.add_column("Details", style="meta", overflow="fold")
        for e in entries:
            style = "err" if e.action_type.endswith("_FAILED") else "ok"
            target = f"{e.target_table}:{e.target_uuid}" if e.target_uuid else e.target_table
            t.add_row(
                e.executed_at.strftime("%Y-%m-%d %H:%M:%S") if e.executed_at else "-",
                f"[{style}]{e.action_type}[/{style}]",
                target,
                e.operator,
                e.environment,
                json.dumps(dict(e.details), default=str),
            )
        console.print(t)


out = Out()
