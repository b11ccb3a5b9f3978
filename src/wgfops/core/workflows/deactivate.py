"""Deactivate an active trading account."""

from __future__ import annotations

from dataclasses import dataclass

from wgfops.core.phases import DEACTIVATION_REASONS, format_phase, format_status
from wgfops.core.store import TradingAccount
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
)

ACTION = "DEACTIVATE_ACCOUNT"

_REASON_LABELS = dict(DEACTIVATION_REASONS)


@dataclass(frozen=True)
class DeactivatePlan:
    account: TradingAccount
    reason: str

    @property
    def description(self) -> str:
        return (
            f"Deactivate cTrader account {self.account.ctrader_trading_account} "
            f"(reason: {self.reason})"
        )

    def preview(self) -> dict[str, str]:
        return {
            "cTrader ID": str(self.account.ctrader_trading_account),
            "Account UUID": self.account.trading_account_uuid,
            "Phase": format_phase(self.account.challenge_phase),
            "Server": self.account.ctrader_server,
            "Reason": f"{self.reason} ({_REASON_LABELS[self.reason]})",
        }


def ensure_active(account: TradingAccount) -> None:
    """Reject an account that is already inactive, before any reason is asked."""
    if not account.is_active:
        raise PreconditionFailed(
            f"This account is already inactive (status: {format_status(account.success)}, "
            f"reason: {account.reason or '-'}).",
            level="warn",
        )


def plan_deactivate(account: TradingAccount, reason: str) -> DeactivatePlan:
    ensure_active(account)
    if reason not in _REASON_LABELS:
        raise PreconditionFailed(f"Unknown deactivation reason: {reason}")
    return DeactivatePlan(account=account, reason=reason)


def execute_deactivate(ctx: WorkflowContext, plan: DeactivatePlan) -> WorkflowOutcome:
    account = plan.account
    with ctx.session.transaction():
        ctx.store.deactivate_account(account.trading_account_uuid, plan.reason)
        ctx.audit(
            ACTION,
            "trading_account",
            account.trading_account_uuid,
            {
                "ctrader_id": account.ctrader_trading_account,
                "reason": plan.reason,
                "challenge_phase": account.challenge_phase,
            },
        )
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.SUCCEEDED,
        message=f"cTrader account {account.ctrader_trading_account} deactivated.",
        recap={
            "cTrader ID": str(account.ctrader_trading_account),
            "Status": format_status(0),
            "Reason": plan.reason,
        },
    )
