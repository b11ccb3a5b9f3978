"""Create a trading account for a user (order + payment, then TAM)."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from wgfops.core.phases import INITIAL_PHASE, Phase, format_phase
from wgfops.core.services import Service
from wgfops.core.store import Challenge, ChallengeRule, Option, Store, User
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
    format_amount,
    format_percent,
)

logger = logging.getLogger(__name__)

ACTION = "CREATE_TRADING_ACCOUNT"
ACTION_FAILED = "CREATE_TRADING_ACCOUNT_FAILED"
JOB_PREFIX = "support-create-ta"

PAYMENT_METHOD = "admin_manual"
PAYMENT_CURRENCY = "EUR"


@dataclass(frozen=True)
class CreateAccountPlan:
    user: User
    challenge: Challenge
    options: tuple[Option, ...]
    initial_phase: int
    rules: ChallengeRule
    configuration: str

    @property
    def option_names(self) -> list[str]:
        return [o.name for o in self.options]

    @property
    def description(self) -> str:
        return (
            f'Create trading account "{self.challenge.name}" for {self.user.email} '
            f"(balance: {format_amount(self.challenge.initial_coins_amount)})"
        )

    def preview(self) -> dict[str, str]:
        return {
            "User": self.user.display_name,
            "CTID": str(self.user.ctid),
            "Challenge": f"{self.challenge.name} ({self.challenge.type})",
            "Price": format_amount(self.challenge.price),
            "Initial balance": format_amount(self.challenge.initial_coins_amount),
            "Initial phase": format_phase(self.initial_phase, self.challenge.type),
            "Profit target": format_percent(self.rules.profit_target_percent),
            "Phase duration": self.rules.phase_duration,
            "Options": ", ".join(self.option_names) or "None",
            "Payment method": PAYMENT_METHOD,
            "cTrader account": "Created by the trading-account-manager",
        }


def _ratio(value: float | None) -> float | None:
    return None if value is None else float(value) / 100


def build_order_configuration(rules: Iterable[ChallengeRule]) -> str:
    """Serialize challenge rules the way the order backend stores them.

    Keys are phase numbers, percent values become ratios.
    """
    config = {
        str(rule.phase): {
            "max_daily_drawdown_percent": _ratio(rule.max_daily_drawdown_percent),
            "max_total_drawdown_percent": _ratio(rule.max_total_drawdown_percent),
            "profit_target_percent": _ratio(rule.profit_target_percent),
            "phase_duration": rule.phase_duration,
            "min_trading_days": int(rule.min_trading_days),
        }
        for rule in rules
    }
    return json.dumps(config)


def plan_create_account(
    store: Store,
    user: User,
    challenge: Challenge,
    option_uuids: Sequence[str] = (),
) -> CreateAccountPlan:
    """
    Validate a trading account creation.

    Raises:
        PreconditionFailed: The user has no cTrader id, the challenge type is
            unknown, the rules of the initial phase are missing or an option
            does not exist.
    """
    if not user.ctid:
        raise PreconditionFailed(
            f"{user.email} has no cTrader ID (CTID). The user must log in to the "
            "platform once before an account can be created."
        )

    initial_phase = INITIAL_PHASE.get(challenge.type)
    if initial_phase is None:
        raise PreconditionFailed(f'Unknown challenge type "{challenge.type}".')

    # instant_funded accounts live in phase 0 but use the phase 3 rules
    rules_phase = (
        Phase.INSTANT_FUNDED_RULES if challenge.type == "instant_funded" else initial_phase
    )
    all_rules = store.challenge_rules(challenge.challenge_uuid)
    rules = next((r for r in all_rules if r.phase == rules_phase), None)
    if rules is None:
        raise PreconditionFailed(
            f"No rules found for challenge {challenge.name}, phase {int(rules_phase)}."
        )

    by_uuid = {o.option_uuid: o for o in store.all_options()}
    unknown = [u for u in option_uuids if u not in by_uuid]
    if unknown:
        raise PreconditionFailed(f"Unknown option(s): {', '.join(unknown)}")

    return CreateAccountPlan(
        user=user,
        challenge=challenge,
        options=tuple(by_uuid[u] for u in option_uuids),
        initial_phase=int(initial_phase),
        rules=rules,
        configuration=build_order_configuration(all_rules),
    )


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _rollback_order(ctx: WorkflowContext, order_uuid: str, payment_uuid: str) -> None:
    with ctx.session.transaction():
        ctx.store.delete_order_options(order_uuid)
        ctx.store.delete_order(order_uuid)
        ctx.store.delete_payment(payment_uuid)


def execute_create_account(
    ctx: WorkflowContext,
    plan: CreateAccountPlan,
    *,
    new_uuid: Callable[[], str] = _new_uuid,
) -> WorkflowOutcome:
    """
    Insert the order, ask the trading-account-manager to open the account and
    roll the order back if it could not.
    """
    payment_uuid = new_uuid()
    order_uuid = new_uuid()
    store = ctx.store

    with ctx.session.transaction():
        store.create_payment(payment_uuid, PAYMENT_METHOD, 0, PAYMENT_CURRENCY, PAYMENT_METHOD)
        store.create_order(
            order_uuid,
            plan.challenge.challenge_uuid,
            plan.user.user_uuid,
            payment_uuid,
            plan.configuration,
        )
        for option in plan.options:
            store.create_order_option(order_uuid, option.option_uuid)
    ctx.reporter.success(f"Order created: {order_uuid}")

    url = ctx.url(
        Service.TRADING_ACCOUNT_MANAGER,
        f"/account?order_uuid={order_uuid}&challenge_phase={plan.initial_phase}",
    )
    result = ctx.run_remote(
        JOB_PREFIX, url, method="POST", title="Creating the account through the TAM"
    )

    details = {
        "user_email": plan.user.email,
        "user_uuid": plan.user.user_uuid,
        "user_ctid": plan.user.ctid,
        "challenge_name": plan.challenge.name,
        "challenge_type": plan.challenge.type,
        "challenge_uuid": plan.challenge.challenge_uuid,
        "order_uuid": order_uuid,
        "payment_uuid": payment_uuid,
        "initial_phase": plan.initial_phase,
        "initial_balance": plan.challenge.initial_coins_amount,
        "options": plan.option_names,
    }

    if not result.success:
        reason = result.failure_reason or "job failed"
        try:
            _rollback_order(ctx, order_uuid, payment_uuid)
        except Exception as exc:
            logger.exception("rollback of order %s failed", order_uuid)
            warnings = [
                f"Orphaned order {order_uuid} and payment {payment_uuid} must be deleted manually."
            ]
            audit_warning = ctx.record_audit(
                ACTION_FAILED,
                "orders",
                order_uuid,
                {**details, "error": reason, "rollback": "failed", "rollback_error": str(exc)},
            )
            if audit_warning:
                warnings.append(audit_warning)
            return WorkflowOutcome(
                action=ACTION_FAILED,
                status=OutcomeStatus.COMPENSATION_FAILED,
                message=(
                    f"TAM job failed ({reason}) and the rollback failed: {exc}. "
                    f"Clean up manually order {order_uuid} and payment {payment_uuid}."
                ),
                recap={"Order UUID": order_uuid, "Payment UUID": payment_uuid},
                warnings=warnings,
                jobs=[result],
            )

        audit_warning = ctx.record_audit(
            ACTION_FAILED, "orders", order_uuid, {**details, "error": reason, "rollback": "done"}
        )
        return WorkflowOutcome(
            action=ACTION_FAILED,
            status=OutcomeStatus.COMPENSATED,
            message=f"TAM job failed ({reason}). Rollback performed: order and payment deleted.",
            warnings=[audit_warning] if audit_warning else [],
            jobs=[result],
        )

    accounts = store.trading_accounts_by_order(order_uuid)
    created = accounts[0] if accounts else None
    audit_warning = ctx.record_audit(
        ACTION,
        "trading_account",
        created.trading_account_uuid if created else None,
        {
            **details,
            "ctrader_id": created.ctrader_trading_account if created else "unknown",
            "tam_job_duration": round(result.elapsed_seconds, 1),
        },
    )

    warnings = []
    if created is None:
        warnings.append(
            f"The TAM answered but no trading account is linked to order {order_uuid} yet. "
            "Verify manually."
        )
    if audit_warning:
        warnings.append(audit_warning)
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.SUCCEEDED,
        message="Trading account created.",
        recap={
            "User": plan.user.display_name,
            "Challenge": f"{plan.challenge.name} ({plan.challenge.type})",
            "Phase": format_phase(plan.initial_phase, plan.challenge.type),
            "Balance": format_amount(plan.challenge.initial_coins_amount),
            "Order UUID": order_uuid,
            "Trading account UUID": created.trading_account_uuid if created else "N/A",
            "cTrader ID": (
                str(created.ctrader_trading_account) if created else "N/A (verify manually)"
            ),
            "Options": ", ".join(plan.option_names) or "None",
        },
        warnings=warnings,
        jobs=[result],
    )
