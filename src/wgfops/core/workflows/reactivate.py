"""Reactivate a succeeded or failed trading account."""

from __future__ import annotations

from dataclasses import dataclass

from wgfops.core.phases import Reason, format_phase, format_status
from wgfops.core.store import ChallengeRule, TradingAccount
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
    format_percent,
)

ACTION = "REACTIVATE_ACCOUNT"


@dataclass(frozen=True)
class ReactivatePlan:
    account: TradingAccount
    profit_target: float | None = None
    reference_rule: ChallengeRule | None = None

    @property
    def reason(self) -> str:
        return Reason.PROFIT_TARGET_RECALCULATED if self.profit_target is not None else ""

    @property
    def description(self) -> str:
        text = f"Reactivate cTrader account {self.account.ctrader_trading_account}"
        if self.profit_target is not None:
            text += f" with profit target {format_percent(self.profit_target * 100)}"
        return text

    def preview(self) -> dict[str, str]:
        account = self.account
        rule = self.reference_rule
        rows = {
            "cTrader ID": str(account.ctrader_trading_account),
            "Phase": format_phase(account.challenge_phase),
            "Server": account.ctrader_server,
            "Status": format_status(account.success),
            "Reason": account.reason or "-",
            "Current profit target": format_percent(account.current_profit_target_percent * 100),
            "Reference profit target (rules)": (
                format_percent(rule.profit_target_percent) if rule else "N/A"
            ),
        }
        if self.profit_target is not None:
            rows["New profit target"] = format_percent(self.profit_target * 100)
        return rows


def ensure_reactivatable(account: TradingAccount) -> None:
    if account.is_active:
        raise PreconditionFailed("This account is already active.", level="warn")
    if account.success not in (0, 1):
        raise PreconditionFailed(
            f"This account has success={account.success}. Only accounts with "
            "success=0 or success=1 can be reactivated.",
            level="warn",
        )


def plan_reactivate(
    account: TradingAccount,
    profit_target: float | None = None,
    reference_rule: ChallengeRule | None = None,
) -> ReactivatePlan:
    """
    Validate a reactivation.

    Args:
        account: Account to reactivate.
        profit_target: Optional new profit target as a ratio (0.08 for 8%).
        reference_rule: Rules of the account's phase, shown for reference.

    Raises:
        PreconditionFailed: The account cannot be reactivated or the profit
            target is outside [0, 1].
    """
    ensure_reactivatable(account)
    if profit_target is not None and not 0 <= profit_target <= 1:
        raise PreconditionFailed("The profit target must be a ratio between 0 and 1.")
    return ReactivatePlan(
        account=account, profit_target=profit_target, reference_rule=reference_rule
    )


def execute_reactivate(ctx: WorkflowContext, plan: ReactivatePlan) -> WorkflowOutcome:
    account = plan.account
    with ctx.session.transaction():
        ctx.store.reactivate_account(
            account.trading_account_uuid, plan.reason, plan.profit_target
        )
        ctx.audit(
            ACTION,
            "trading_account",
            account.trading_account_uuid,
            {
                "ctrader_id": account.ctrader_trading_account,
                "previous_reason": account.reason,
                "previous_success": account.success,
                "new_profit_target": (
                    plan.profit_target
                    if plan.profit_target is not None
                    else account.current_profit_target_percent
                ),
                "profit_target_adjusted": plan.profit_target is not None,
            },
        )
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.SUCCEEDED,
        message=f"cTrader account {account.ctrader_trading_account} reactivated.",
        recap={
            "cTrader ID": str(account.ctrader_trading_account),
            "Status": format_status(None),
            "Profit target": format_percent(
                (
                    plan.profit_target
                    if plan.profit_target is not None
                    else account.current_profit_target_percent
                )
                * 100
            ),
        },
    )
