"""Point a trading account at another cTrader account id."""

from __future__ import annotations

from dataclasses import dataclass

from wgfops.core.phases import format_phase
from wgfops.core.store import Store, TradingAccount
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
)

ACTION = "UPDATE_CTRADER_ID"


@dataclass(frozen=True)
class UpdateCtraderIdPlan:
    account: TradingAccount
    new_id: int

    @property
    def description(self) -> str:
        return (
            f"Change the cTrader ID of account {self.account.trading_account_uuid[:8]}...: "
            f"{self.account.ctrader_trading_account} -> {self.new_id}"
        )

    def preview(self) -> dict[str, str]:
        return {
            "Account UUID": self.account.trading_account_uuid,
            "Current cTrader ID": str(self.account.ctrader_trading_account),
            "New cTrader ID": str(self.new_id),
            "Phase": format_phase(self.account.challenge_phase),
            "Server": self.account.ctrader_server,
        }


def plan_update_ctrader_id(
    store: Store, account: TradingAccount, new_id: int
) -> UpdateCtraderIdPlan:
    """
    Raises:
        PreconditionFailed: The id is not positive, unchanged or already used
            by another trading account.
    """
    if new_id <= 0:
        raise PreconditionFailed("The cTrader ID must be a positive integer.")
    if new_id == account.ctrader_trading_account:
        raise PreconditionFailed("The account already uses this cTrader ID.", level="warn")
    other = store.find_trading_account_by_ctrader(new_id)
    if other is not None and other.trading_account_uuid != account.trading_account_uuid:
        raise PreconditionFailed(
            f"cTrader ID {new_id} is already used by account {other.trading_account_uuid}."
        )
    return UpdateCtraderIdPlan(account=account, new_id=new_id)


def execute_update_ctrader_id(
    ctx: WorkflowContext, plan: UpdateCtraderIdPlan
) -> WorkflowOutcome:
    account = plan.account
    with ctx.session.transaction():
        ctx.store.update_ctrader_id(account.trading_account_uuid, plan.new_id)
        ctx.audit(
            ACTION,
            "trading_account",
            account.trading_account_uuid,
            {
                "old_ctrader_id": account.ctrader_trading_account,
                "new_ctrader_id": plan.new_id,
            },
        )
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.SUCCEEDED,
        message=f"cTrader ID updated: {plan.new_id}.",
        recap={
            "Account UUID": account.trading_account_uuid,
            "Previous cTrader ID": str(account.ctrader_trading_account),
            "cTrader ID": str(plan.new_id),
        },
    )
