"""Process a pending funded activation without charging the trader."""

from __future__ import annotations

from dataclasses import dataclass

from wgfops.core.services import Service
from wgfops.core.store import Challenge, FundedActivation, Store, TradingAccount
from wgfops.core.workflows.activate_funded import PROCESS_JOB_PREFIX
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
    format_amount,
)

ACTION = "BYPASS_ACTIVATION_FEES"


@dataclass(frozen=True)
class BypassFeesPlan:
    account: TradingAccount
    activation: FundedActivation
    challenge: Challenge | None = None

    @property
    def amount(self) -> str:
        return format_amount(self.activation.amount, self.activation.currency)

    @property
    def description(self) -> str:
        return (
            f"Bypass activation fees: {self.amount} for cTrader account "
            f"{self.account.ctrader_trading_account}"
        )

    def preview(self) -> dict[str, str]:
        challenge = self.challenge
        rows = {
            "cTrader ID": str(self.account.ctrader_trading_account),
            "Account UUID": self.account.trading_account_uuid,
            "Challenge": f"{challenge.name} ({challenge.type})" if challenge else "N/A",
            "Activation UUID": self.activation.activation_uuid,
            "Amount": self.amount,
            "Status": self.activation.status,
            "Created": _date(self.activation.created_at),
            "Expires": _date(self.activation.expires_at),
        }
        if self.activation.payment_link:
            rows["Payment link"] = self.activation.payment_link
        return rows


def _date(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def plan_bypass_fees(
    store: Store, account: TradingAccount, challenge: Challenge | None = None
) -> BypassFeesPlan:
    """
    Look up the pending funded activation of `account`.

    Raises:
        PreconditionFailed: There is no pending activation for the account.
    """
    activation = store.pending_funded_activation(account.trading_account_uuid)
    if activation is None:
        raise PreconditionFailed(
            "No pending funded_activation for this account. Run 'Activate funded' "
            "first to create one, then come back to bypass the fees.",
            level="warn",
        )
    return BypassFeesPlan(account=account, activation=activation, challenge=challenge)


def execute_bypass_fees(ctx: WorkflowContext, plan: BypassFeesPlan) -> WorkflowOutcome:
    activation = plan.activation
    url = ctx.url(
        Service.ORDER, f"/internal/funded-activation/{activation.activation_uuid}/process"
    )
    result = ctx.run_remote(
        PROCESS_JOB_PREFIX,
        url,
        method="POST",
        title="Processing the activation (order + TAM)",
    )

    audit_warning = ctx.record_audit(
        ACTION,
        "funded_activation",
        activation.activation_uuid,
        {
            "trading_account_uuid": plan.account.trading_account_uuid,
            "ctrader_id": plan.account.ctrader_trading_account,
            "original_amount": activation.amount,
            "currency": activation.currency,
            "process_job_success": result.success,
        },
    )
    warnings = [audit_warning] if audit_warning else []

    recap = {
        "Result": (
            "Fees bypassed, funded account created (order + TAM)"
            if result.success
            else "Processing failed, verify manually"
        ),
        "Activation UUID": activation.activation_uuid,
        "Bypassed amount": plan.amount,
        "cTrader ID": str(plan.account.ctrader_trading_account),
    }
    if result.success:
        return WorkflowOutcome(
            action=ACTION,
            status=OutcomeStatus.SUCCEEDED,
            message="Activation fees bypassed.",
            recap=recap,
            warnings=warnings,
            jobs=[result],
        )
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.REMOTE_FAILED,
        message=f"Activation processing job failed ({result.failure_reason or 'job failed'}).",
        recap=recap,
        warnings=["Verify the state of the activation manually.", *warnings],
        jobs=[result],
    )
