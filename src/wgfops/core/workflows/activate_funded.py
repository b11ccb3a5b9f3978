"""Manual funded activation of an account that reached its funded phase."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from wgfops.core.jobs import JobResult
from wgfops.core.phases import (
    FUNDED_ELIGIBLE,
    UNLIMITED_ACTIVATION_FEE,
    Phase,
    format_phase,
    format_status,
)
from wgfops.core.services import Service
from wgfops.core.store import Challenge, TradingAccount
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
)

ACTION = "ACTIVATE_FUNDED"
ACTION_FAILED = "ACTIVATE_FUNDED_FAILED"
SIMULATE_JOB_PREFIX = "support-simulate-funded"
PROCESS_JOB_PREFIX = "support-process-activation"

FEE_CHOICES = (
    ("charge", "Charge normally (the trader receives a payment link)"),
    ("bypass", "Bypass the fees (free activation)"),
)


@dataclass(frozen=True)
class ActivateFundedPlan:
    account: TradingAccount
    challenge: Challenge
    target_phase: int
    bypass_fees: bool = False

    @property
    def is_unlimited(self) -> bool:
        return self.challenge.type == "unlimited"

    @property
    def requires_fee_choice(self) -> bool:
        return self.is_unlimited

    def with_fee_choice(self, bypass: bool) -> ActivateFundedPlan:
        return dataclasses.replace(self, bypass_fees=bypass and self.is_unlimited)

    @property
    def description(self) -> str:
        prefix = "Funded activation + fee bypass" if self.bypass_fees else "Funded activation"
        return (
            f"{prefix}: cTrader {self.account.ctrader_trading_account} -> "
            f"{format_phase(self.target_phase)}"
        )

    def preview(self) -> dict[str, str]:
        return {
            "cTrader ID": str(self.account.ctrader_trading_account),
            "Account UUID": self.account.trading_account_uuid,
            "Challenge": f"{self.challenge.name} ({self.challenge.type})",
            "Current phase": format_phase(self.account.challenge_phase, self.challenge.type),
            "Target phase": format_phase(self.target_phase),
        }


def plan_activate_funded(
    account: TradingAccount, challenge: Challenge
) -> ActivateFundedPlan:
    """
    Check that `account` can be moved to its funded phase by hand.

    Raises:
        PreconditionFailed: The account is not active, its challenge type has
            no manual funded activation or it is not in the eligible phase.
    """
    if not account.is_active:
        raise PreconditionFailed(
            f"This account is not active (status: {format_status(account.success)}).",
            level="warn",
        )

    eligible = FUNDED_ELIGIBLE.get(challenge.type)
    if eligible is None:
        raise PreconditionFailed(
            f'Challenge type "{challenge.type}" is not eligible for a manual funded activation.'
        )

    if account.challenge_phase != eligible:
        if challenge.type == "standard" and account.challenge_phase == Phase.STANDARD_ONE:
            raise PreconditionFailed(
                "This account is in Phase 1 (standard). The Phase 1 -> Phase 2 transition "
                "is handled automatically by the watcher once the profit target is reached.",
                level="warn",
            )
        raise PreconditionFailed(
            f"This account is in phase {account.challenge_phase}, not in phase "
            f"{int(eligible)}. Funded activation is not possible."
        )

    target = Phase.FUNDED_UNLIMITED if challenge.type == "unlimited" else Phase.FUNDED_STANDARD
    return ActivateFundedPlan(account=account, challenge=challenge, target_phase=int(target))


def simulate_funded(ctx: WorkflowContext, account: TradingAccount, prefix: str) -> JobResult:
    url = ctx.url(Service.WATCHER, f"/simulate/funded/{account.trading_account_uuid}")
    return ctx.run_remote(prefix, url, title="Simulating the funded transition (watcher)")


def process_pending_activation(
    ctx: WorkflowContext, account: TradingAccount
) -> tuple[JobResult | None, str | None]:
    """
    Process the pending funded activation of `account` through the order
    service.

    Returns:
        The Job result (None when there was nothing to process) and a warning
        for the operator when the activation still needs manual attention.
    """
    activation = ctx.store.pending_funded_activation(account.trading_account_uuid)
    if activation is None:
        return None, (
            "No pending funded_activation found; it could not be processed automatically. "
            "Use 'Bypass activation fees' manually if needed."
        )

    url = ctx.url(
        Service.ORDER, f"/internal/funded-activation/{activation.activation_uuid}/process"
    )
    result = ctx.run_remote(
        PROCESS_JOB_PREFIX,
        url,
        method="POST",
        title="Processing the activation (order + TAM)",
    )
    if not result.success:
        return result, (
            f"funded_activation {activation.activation_uuid} exists but could not be "
            "processed. Verify manually or use 'Bypass activation fees'."
        )
    return result, None


def execute_activate_funded(
    ctx: WorkflowContext, plan: ActivateFundedPlan
) -> WorkflowOutcome:
    account = plan.account
    details = {
        "ctrader_id": account.ctrader_trading_account,
        "challenge_type": plan.challenge.type,
        "target_phase": plan.target_phase,
    }

    simulate = simulate_funded(ctx, account, SIMULATE_JOB_PREFIX)
    if not simulate.success:
        reason = simulate.failure_reason or "job failed"
        audit_warning = ctx.record_audit(
            ACTION_FAILED,
            "trading_account",
            account.trading_account_uuid,
            {**details, "error": reason},
        )
        return WorkflowOutcome(
            action=ACTION_FAILED,
            status=OutcomeStatus.REMOTE_FAILED,
            message=f"Funded simulation job failed ({reason}).",
            warnings=[audit_warning] if audit_warning else [],
            jobs=[simulate],
        )

    jobs = [simulate]
    warnings: list[str] = []
    if plan.is_unlimited and plan.bypass_fees:
        process, warning = process_pending_activation(ctx, account)
        if process is not None:
            jobs.append(process)
        if warning:
            warnings.append(warning)
        details["process_job_success"] = bool(process and process.success)
    partial = bool(warnings)

    audit_warning = ctx.record_audit(
        ACTION,
        "trading_account",
        account.trading_account_uuid,
        {
            **details,
            "bypass_fees": plan.bypass_fees,
            "duration_seconds": round(simulate.elapsed_seconds, 1),
        },
    )
    if audit_warning:
        warnings.append(audit_warning)

    if plan.is_unlimited and not plan.bypass_fees:
        recap = {
            "Result": "Funded activation created (payment pending)",
            "Amount": UNLIMITED_ACTIVATION_FEE,
            "Required action": "The trader pays through the link sent by email",
            "Alternative": "Use 'Bypass activation fees' to skip the payment",
        }
    elif plan.is_unlimited:
        recap = {
            "Result": "Funded account created (fees bypassed through order + TAM)",
            "Original cTrader ID": str(account.ctrader_trading_account),
        }
    else:
        recap = {
            "Result": "Funded standard account created",
            "Original cTrader ID": str(account.ctrader_trading_account),
        }

    status = OutcomeStatus.PARTIAL if partial else OutcomeStatus.SUCCEEDED
    message = (
        "Funded simulation done, manual verification required."
        if partial
        else "Funded activation done."
    )
    return WorkflowOutcome(
        action=ACTION,
        status=status,
        message=message,
        recap=recap,
        warnings=warnings,
        jobs=jobs,
    )
