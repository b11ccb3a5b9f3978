"""Correct the profit target of a trading account."""

from __future__ import annotations

from dataclasses import dataclass

from wgfops.core.phases import Reason, format_phase
from wgfops.core.store import ChallengeRule, TradingAccount
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
    format_percent,
)

ACTION = "FIX_PROFIT_TARGET"


@dataclass(frozen=True)
class FixProfitTargetPlan:
    account: TradingAccount
    new_value: float
    reference_rule: ChallengeRule | None = None

    @property
    def description(self) -> str:
        return (
            f"Change the profit target of cTrader account "
            f"{self.account.ctrader_trading_account}: "
            f"{format_percent(self.account.current_profit_target_percent * 100)} -> "
            f"{format_percent(self.new_value * 100)}"
        )

    def preview(self) -> dict[str, str]:
        rule = self.reference_rule
        return {
            "cTrader ID": str(self.account.ctrader_trading_account),
            "Phase": format_phase(self.account.challenge_phase),
            "Current profit target": format_percent(
                self.account.current_profit_target_percent * 100
            ),
            "Reference profit target (rules)": (
                format_percent(rule.profit_target_percent) if rule else "N/A"
            ),
            "New profit target": format_percent(self.new_value * 100),
        }


def plan_fix_profit_target(
    account: TradingAccount,
    new_value: float,
    reference_rule: ChallengeRule | None = None,
) -> FixProfitTargetPlan:
    """
    Validate a profit target correction.

    `new_value` is a ratio (0.08 for 8%), like the column it replaces.

    Raises:
        PreconditionFailed: The value is outside [0, 1] or unchanged.
    """
    if not 0 <= new_value <= 1:
        raise PreconditionFailed("The profit target must be a ratio between 0 and 1.")
    if new_value == account.current_profit_target_percent:
        raise PreconditionFailed(
            "The profit target already has this value.", level="warn"
        )
    return FixProfitTargetPlan(
        account=account, new_value=new_value, reference_rule=reference_rule
    )


def execute_fix_profit_target(
    ctx: WorkflowContext, plan: FixProfitTargetPlan
) -> WorkflowOutcome:
    account = plan.account
    with ctx.session.transaction():
        ctx.store.update_profit_target(
            account.trading_account_uuid, plan.new_value, Reason.PROFIT_TARGET_RECALCULATED
        )
        ctx.audit(
            ACTION,
            "trading_account",
            account.trading_account_uuid,
            {
                "ctrader_id": account.ctrader_trading_account,
                "old_value": account.current_profit_target_percent,
                "new_value": plan.new_value,
            },
        )
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.SUCCEEDED,
        message=f"Profit target updated: {format_percent(plan.new_value * 100)}.",
        recap={
            "cTrader ID": str(account.ctrader_trading_account),
            "Previous profit target": format_percent(
                account.current_profit_target_percent * 100
            ),
            "Profit target": format_percent(plan.new_value * 100),
            "Reason": Reason.PROFIT_TARGET_RECALCULATED,
        },
    )
