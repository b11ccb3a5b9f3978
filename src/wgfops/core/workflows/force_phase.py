"""Force an account into the next phase of its challenge."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from wgfops.core.phases import (
    FUNDED_PHASES,
    UNLIMITED_ACTIVATION_FEE,
    PhaseTransition,
    Reason,
    format_phase,
    format_status,
    resolve_transition,
)
from wgfops.core.services import Service
from wgfops.core.store import Challenge, TradingAccount
from wgfops.core.workflows.activate_funded import process_pending_activation, simulate_funded
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
)

logger = logging.getLogger(__name__)

ACTION = "FORCE_PHASE_TRANSITION"
ACTION_FAILED = "FORCE_PHASE_TRANSITION_FAILED"
PHASE_JOB_PREFIX = "support-force-phase"
FUNDED_JOB_PREFIX = "support-force-funded"


@dataclass(frozen=True)
class ForcePhasePlan:
    account: TradingAccount
    challenge: Challenge
    transition: PhaseTransition
    bypass_fees: bool = False

    @property
    def is_funded(self) -> bool:
        return self.transition.next_phase in FUNDED_PHASES

    @property
    def is_unlimited(self) -> bool:
        return self.challenge.type == "unlimited"

    @property
    def requires_fee_choice(self) -> bool:
        return self.is_funded and self.is_unlimited

    @property
    def fee_notice(self) -> str:
        return (
            f"This unlimited account requires {UNLIMITED_ACTIVATION_FEE} of activation "
            "fees to become funded."
        )

    def with_fee_choice(self, bypass: bool) -> ForcePhasePlan:
        return dataclasses.replace(self, bypass_fees=bypass and self.requires_fee_choice)

    @property
    def description(self) -> str:
        text = (
            f"Force transition to {format_phase(self.transition.next_phase)}: "
            f"cTrader {self.account.ctrader_trading_account}"
        )
        return f"{text} (fees bypassed)" if self.bypass_fees else text

    def preview(self) -> dict[str, str]:
        return {
            "cTrader ID": str(self.account.ctrader_trading_account),
            "Account UUID": self.account.trading_account_uuid,
            "Challenge": f"{self.challenge.name} ({self.challenge.type})",
            "Current status": format_status(self.account.success),
            "Reason": self.account.reason or "-",
            "Current phase": format_phase(self.account.challenge_phase, self.challenge.type),
            "Target phase": format_phase(self.transition.next_phase),
            "Target server": "LIVE" if self.transition.next_server == "live" else "Demo",
            "Transition": (
                "Funded (through simulate/funded)" if self.is_funded else "Next phase (through TAM)"
            ),
        }


def plan_force_phase(account: TradingAccount, challenge: Challenge) -> ForcePhasePlan:
    """
    Resolve the transition available from the account's current phase.

    Raises:
        PreconditionFailed: No transition exists for this type and phase.
    """
    transition = resolve_transition(challenge.type, account.challenge_phase)
    if transition is None:
        raise PreconditionFailed(
            f"No transition available from phase {account.challenge_phase} "
            f'for a "{challenge.type}" challenge.',
            level="warn",
        )
    return ForcePhasePlan(account=account, challenge=challenge, transition=transition)


def execute_force_phase(ctx: WorkflowContext, plan: ForcePhasePlan) -> WorkflowOutcome:
    if plan.is_funded:
        return _funded_transition(ctx, plan)
    return _phase_transition(ctx, plan)


def _details(plan: ForcePhasePlan) -> dict:
    return {
        "ctrader_id": plan.account.ctrader_trading_account,
        "challenge_type": plan.challenge.type,
        "from_phase": plan.account.challenge_phase,
        "to_phase": plan.transition.next_phase,
    }


def _restore_status(ctx: WorkflowContext, account: TradingAccount) -> None:
    with ctx.session.transaction():
        ctx.store.restore_account_status(
            account.trading_account_uuid, account.success, account.reason
        )


def _phase_transition(ctx: WorkflowContext, plan: ForcePhasePlan) -> WorkflowOutcome:
    account = plan.account
    ta_uuid = account.trading_account_uuid
    next_phase = plan.transition.next_phase

    with ctx.session.transaction():
        ctx.store.mark_account_success(ta_uuid, Reason.CHALLENGE_SUCCEED)
    ctx.reporter.success(
        f"Account marked as succeeded (success=1, reason={Reason.CHALLENGE_SUCCEED})."
    )

    url = ctx.url(
        Service.TRADING_ACCOUNT_MANAGER,
        f"/account?order_uuid={account.order_uuid}&challenge_phase={next_phase}",
    )
    result = ctx.run_remote(
        PHASE_JOB_PREFIX,
        url,
        method="POST",
        title="Creating the next phase account through the TAM",
    )

    if not result.success:
        reason = result.failure_reason or "job failed"
        details = {**_details(plan), "error": reason}
        try:
            _restore_status(ctx, account)
        except Exception as exc:
            logger.exception("could not restore status of account %s", ta_uuid)
            warnings = [
                f"Restore success={account.success}, reason={account.reason or 'empty'} "
                f"on account {ta_uuid} manually."
            ]
            audit_warning = ctx.record_audit(
                ACTION_FAILED,
                "trading_account",
                ta_uuid,
                {**details, "rollback": "failed", "rollback_error": str(exc)},
            )
            if audit_warning:
                warnings.append(audit_warning)
            return WorkflowOutcome(
                action=ACTION_FAILED,
                status=OutcomeStatus.COMPENSATION_FAILED,
                message=(
                    f"TAM job failed ({reason}) and account {ta_uuid} could not be restored: "
                    f"{exc}. It stays marked as succeeded without a next phase account."
                ),
                recap={"Account UUID": ta_uuid},
                warnings=warnings,
                jobs=[result],
            )

        audit_warning = ctx.record_audit(
            ACTION_FAILED, "trading_account", ta_uuid, {**details, "rollback": "done"}
        )
        return WorkflowOutcome(
            action=ACTION_FAILED,
            status=OutcomeStatus.COMPENSATED,
            message=(
                f"TAM job failed ({reason}). Rollback performed: account {ta_uuid} "
                f"restored to {format_status(account.success)}."
            ),
            warnings=[audit_warning] if audit_warning else [],
            jobs=[result],
        )

    created = next(
        (
            a
            for a in ctx.store.trading_accounts_by_order(account.order_uuid)
            if a.challenge_phase == next_phase and a.is_active
        ),
        None,
    )
    audit_warning = ctx.record_audit(
        ACTION,
        "trading_account",
        ta_uuid,
        {
            **_details(plan),
            "new_trading_account_uuid": created.trading_account_uuid if created else None,
            "duration_seconds": round(result.elapsed_seconds, 1),
        },
    )
    warnings = []
    if created is None:
        warnings.append("The next phase account was not found yet. Verify manually.")
    if audit_warning:
        warnings.append(audit_warning)
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.SUCCEEDED,
        message="Phase transition done.",
        recap={
            "Previous phase": format_phase(account.challenge_phase, plan.challenge.type),
            "New phase": format_phase(next_phase, plan.challenge.type),
            "Original cTrader ID": str(account.ctrader_trading_account),
            "New cTrader ID": (
                str(created.ctrader_trading_account) if created else "N/A (verify manually)"
            ),
            "New UUID": created.trading_account_uuid if created else "N/A",
        },
        warnings=warnings,
        jobs=[result],
    )


def _funded_transition(ctx: WorkflowContext, plan: ForcePhasePlan) -> WorkflowOutcome:
    account = plan.account
    ta_uuid = account.trading_account_uuid

    simulate = simulate_funded(ctx, account, FUNDED_JOB_PREFIX)
    if not simulate.success:
        reason = simulate.failure_reason or "job failed"
        audit_warning = ctx.record_audit(
            ACTION_FAILED, "trading_account", ta_uuid, {**_details(plan), "error": reason}
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
    process_success = None
    # standard accounts are always processed, unlimited ones only when bypassing
    if not plan.is_unlimited or plan.bypass_fees:
        process, warning = process_pending_activation(ctx, account)
        if process is not None:
            jobs.append(process)
        if warning:
            warnings.append(warning)
        process_success = bool(process and process.success)
    partial = bool(warnings)

    audit_warning = ctx.record_audit(
        ACTION,
        "trading_account",
        ta_uuid,
        {
            **_details(plan),
            "bypass_fees": plan.bypass_fees,
            "process_job_success": process_success,
            "duration_seconds": round(simulate.elapsed_seconds, 1),
        },
    )
    if audit_warning:
        warnings.append(audit_warning)

    if plan.is_unlimited and not plan.bypass_fees:
        result_line = "Funded activation created (payment pending)"
    else:
        result_line = "Funded account created"
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.PARTIAL if partial else OutcomeStatus.SUCCEEDED,
        message=(
            "Funded simulation done, manual verification required."
            if partial
            else "Phase transition done."
        ),
        recap={
            "Result": result_line,
            "Previous phase": format_phase(account.challenge_phase, plan.challenge.type),
            "New phase": format_phase(plan.transition.next_phase),
            "Original cTrader ID": str(account.ctrader_trading_account),
        },
        warnings=warnings,
        jobs=jobs,
    )
