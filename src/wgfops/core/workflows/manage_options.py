"""Add or remove an option on an existing trading account."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from wgfops.core.store import Option, Store, TradingAccount
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
    format_percent,
)


class OptionChange(str, Enum):
    ADD = "ADD_OPTION"
    REMOVE = "REMOVE_OPTION"


@dataclass(frozen=True)
class OptionChangePlan:
    account: TradingAccount
    option: Option
    change: OptionChange

    @property
    def description(self) -> str:
        if self.change is OptionChange.ADD:
            return (
                f'Add option "{self.option.name}" to cTrader account '
                f"{self.account.ctrader_trading_account}"
            )
        return (
            f'Remove option "{self.option.name}" from cTrader account '
            f"{self.account.ctrader_trading_account}"
        )

    def preview(self) -> dict[str, str]:
        return {
            "cTrader ID": str(self.account.ctrader_trading_account),
            "Option": self.option.name,
            "Majoration": format_percent(self.option.majoration_percent),
            "Change": "Add" if self.change is OptionChange.ADD else "Remove",
        }


def addable_options(store: Store, account: TradingAccount) -> list[Option]:
    """Options not yet on the account."""
    current = {o.option_uuid for o in store.trading_account_options(account.trading_account_uuid)}
    return [o for o in store.all_options() if o.option_uuid not in current]


def plan_option_change(
    store: Store, account: TradingAccount, option_uuid: str, change: OptionChange
) -> OptionChangePlan:
    """
    Validate adding or removing `option_uuid` on `account`.

    Raises:
        PreconditionFailed: The option does not exist, is already on the
            account (add) or is not on it (remove).
    """
    current = {o.option_uuid: o for o in store.trading_account_options(account.trading_account_uuid)}
    if change is OptionChange.ADD:
        option = next((o for o in store.all_options() if o.option_uuid == option_uuid), None)
        if option is None:
            raise PreconditionFailed(f"Unknown option: {option_uuid}")
        if option_uuid in current:
            raise PreconditionFailed(
                f'Option "{option.name}" is already active on this account.', level="warn"
            )
    else:
        option = current.get(option_uuid)
        if option is None:
            raise PreconditionFailed("This option is not on the account.", level="warn")
    return OptionChangePlan(account=account, option=option, change=change)


def execute_option_change(ctx: WorkflowContext, plan: OptionChangePlan) -> WorkflowOutcome:
    account = plan.account
    ta_uuid = account.trading_account_uuid
    with ctx.session.transaction():
        if plan.change is OptionChange.ADD:
            ctx.store.add_trading_account_option(ta_uuid, plan.option.option_uuid)
        else:
            ctx.store.remove_trading_account_option(ta_uuid, plan.option.option_uuid)
        ctx.audit(
            plan.change.value,
            "trading_account_options",
            ta_uuid,
            {
                "ctrader_id": account.ctrader_trading_account,
                "option_name": plan.option.name,
                "option_uuid": plan.option.option_uuid,
            },
        )
    verb = "added" if plan.change is OptionChange.ADD else "removed"
    return WorkflowOutcome(
        action=plan.change.value,
        status=OutcomeStatus.SUCCEEDED,
        message=f'Option "{plan.option.name}" {verb}.',
        recap={
            "cTrader ID": str(account.ctrader_trading_account),
            "Option": plan.option.name,
        },
    )
