"""Operator actions offered by the console.

Each handler gathers its parameters interactively, builds a plan with the
matching workflow, previews it, runs the confirmation gate and executes.
"""

from __future__ import annotations

from typing import Callable

import questionary

from wgfops.cli.common.output import out
from wgfops.cli.prompts import (
    Confirmer,
    ask_optional_date,
    ask_positive_int,
    ask_profit_target,
    ask_ratio,
    ask_yes_no,
    choose_deactivation_reason,
    choose_fee_bypass,
    choose_payout_status,
    search_trading_account,
    search_user,
    select_challenge,
    select_option,
    select_options,
    select_payout,
)
from wgfops.core.phases import UNLIMITED_ACTIVATION_FEE
from wgfops.core.store import PROMO_LANGUAGES, Challenge, ChallengeRule, TradingAccount
from wgfops.core.workflows import (
    activate_funded,
    bypass_fees,
    create_account,
    create_promo,
    deactivate,
    fix_profit_target,
    force_phase,
    manage_options,
    payout_status,
    reactivate,
    update_ctrader_id,
)
from wgfops.core.workflows.base import (
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
    format_percent,
)

ActionHandler = Callable[[WorkflowContext, Confirmer], "WorkflowOutcome | None"]


def _confirm_and_execute(
    ctx: WorkflowContext, confirm: Confirmer, title: str, plan, execute
) -> WorkflowOutcome | None:
    out.header(title)
    out.kv(plan.preview())
    if not confirm(plan.description):
        out.info("Action cancelled.")
        return None
    outcome = execute(ctx, plan)
    out.print()
    out.outcome(outcome)
    return outcome


def _account_and_challenge(ctx: WorkflowContext) -> tuple[TradingAccount, Challenge] | None:
    account = search_trading_account(ctx.store)
    if account is None:
        return None
    challenge = ctx.store.find_challenge(account.challenge_uuid)
    if challenge is None:
        raise PreconditionFailed(f"Challenge {account.challenge_uuid} not found.")
    return account, challenge


def _phase_rule(ctx: WorkflowContext, account: TradingAccount) -> ChallengeRule | None:
    return next(
        (
            r
            for r in ctx.store.challenge_rules(account.challenge_uuid)
            if r.phase == account.challenge_phase
        ),
        None,
    )


def create_trading_account(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    out.header("Create a trading account")
    user = search_user(ctx.store)
    if user is None:
        return None
    out.info(f"User: {user.display_name}")

    challenges = ctx.store.published_challenges()
    if not challenges:
        raise PreconditionFailed("No published challenge available.")
    challenge = select_challenge(challenges)
    option_uuids = select_options(ctx.store.all_options())

    plan = create_account.plan_create_account(ctx.store, user, challenge, option_uuids)
    return _confirm_and_execute(
        ctx, confirm, "Creation preview", plan, create_account.execute_create_account
    )


def activate_funded_account(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    found = _account_and_challenge(ctx)
    if found is None:
        return None
    plan = activate_funded.plan_activate_funded(*found)
    if plan.requires_fee_choice:
        plan = plan.with_fee_choice(
            choose_fee_bypass(
                f"This unlimited account requires {UNLIMITED_ACTIVATION_FEE} of "
                "activation fees to become funded."
            )
        )
    return _confirm_and_execute(
        ctx, confirm, "Funded activation", plan, activate_funded.execute_activate_funded
    )


def bypass_activation_fees(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    account = search_trading_account(ctx.store)
    if account is None:
        return None
    challenge = ctx.store.find_challenge(account.challenge_uuid)
    plan = bypass_fees.plan_bypass_fees(ctx.store, account, challenge)
    return _confirm_and_execute(
        ctx, confirm, "Bypass activation fees", plan, bypass_fees.execute_bypass_fees
    )


def force_phase_transition(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    found = _account_and_challenge(ctx)
    if found is None:
        return None
    plan = force_phase.plan_force_phase(*found)
    if plan.requires_fee_choice:
        plan = plan.with_fee_choice(choose_fee_bypass(plan.fee_notice))
    return _confirm_and_execute(
        ctx, confirm, "Force phase transition", plan, force_phase.execute_force_phase
    )


def deactivate_account(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    account = search_trading_account(ctx.store)
    if account is None:
        return None
    deactivate.ensure_active(account)
    reason = choose_deactivation_reason()
    plan = deactivate.plan_deactivate(account, reason)
    return _confirm_and_execute(
        ctx, confirm, "Deactivate account", plan, deactivate.execute_deactivate
    )


def reactivate_account(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    account = search_trading_account(ctx.store)
    if account is None:
        return None
    reactivate.ensure_reactivatable(account)

    rule = _phase_rule(ctx, account)
    out.header("Account to reactivate")
    out.kv(reactivate.plan_reactivate(account, reference_rule=rule).preview())
    target = ask_profit_target(account.current_profit_target_percent)
    plan = reactivate.plan_reactivate(account, target, rule)
    return _confirm_and_execute(
        ctx, confirm, "Reactivation", plan, reactivate.execute_reactivate
    )


def fix_account_profit_target(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    account = search_trading_account(ctx.store)
    if account is None:
        return None
    rule = _phase_rule(ctx, account)
    out.header("Current state")
    out.kv(
        {
            "cTrader ID": str(account.ctrader_trading_account),
            "Current profit target": format_percent(account.current_profit_target_percent * 100),
            "Reference profit target (rules)": (
                format_percent(rule.profit_target_percent) if rule else "N/A"
            ),
        }
    )
    new_value = ask_ratio("New profit target (ratio, e.g. 0.08 for 8%):")
    plan = fix_profit_target.plan_fix_profit_target(account, new_value, rule)
    return _confirm_and_execute(
        ctx, confirm, "Profit target correction", plan, fix_profit_target.execute_fix_profit_target
    )


def update_account_ctrader_id(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    account = search_trading_account(ctx.store)
    if account is None:
        return None
    new_id = ask_positive_int("New cTrader account ID:")
    plan = update_ctrader_id.plan_update_ctrader_id(ctx.store, account, new_id)
    return _confirm_and_execute(
        ctx, confirm, "cTrader ID update", plan, update_ctrader_id.execute_update_ctrader_id
    )


def manage_account_options(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    account = search_trading_account(ctx.store)
    if account is None:
        return None
    current = ctx.store.trading_account_options(account.trading_account_uuid)
    out.header(f"Options of cTrader account {account.ctrader_trading_account}")
    if current:
        out.kv({o.name: format_percent(o.majoration_percent) for o in current})
    else:
        out.info("No option on this account.")

    change = out.select_one(
        "What do you want to do?",
        [
            questionary.Choice(title="Add an option", value=manage_options.OptionChange.ADD),
            questionary.Choice(title="Remove an option", value=manage_options.OptionChange.REMOVE),
            questionary.Choice(title="Back", value=None),
        ],
    )
    if change is None:
        return None
    if change is manage_options.OptionChange.ADD:
        candidates = manage_options.addable_options(ctx.store, account)
        if not candidates:
            out.info("Every option is already active on this account.")
            return None
        option = select_option("Option to add:", candidates)
    else:
        if not current:
            out.info("No option to remove.")
            return None
        option = select_option("Option to remove:", current)
    if option is None:
        return None

    plan = manage_options.plan_option_change(ctx.store, account, option.option_uuid, change)
    return _confirm_and_execute(
        ctx, confirm, "Option change", plan, manage_options.execute_option_change
    )


def manage_payouts(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    payouts = ctx.store.payouts_by_status("pending")
    if not payouts:
        out.info("No pending payout request.")
        other = out.select_one(
            "Show payouts with another status?",
            [
                questionary.Choice(title="Approved", value="approved"),
                questionary.Choice(title="All", value="all"),
                questionary.Choice(title="No, back", value=None),
            ],
        )
        if other is None:
            return None
        payouts = ctx.store.payouts_by_status(None if other == "all" else other)
        if not payouts:
            out.info("No payout found.")
            return None

    payout = select_payout(payouts)
    if payout is None:
        return None
    new_status = choose_payout_status()
    if new_status is None:
        return None
    plan = payout_status.plan_payout_status(payout, new_status)
    return _confirm_and_execute(
        ctx, confirm, "Payout status change", plan, payout_status.execute_payout_status
    )


def create_promo_code(ctx: WorkflowContext, confirm: Confirmer) -> WorkflowOutcome | None:
    out.header("Create a promo code")
    code = out.ask_text("Promo code:")
    if not code:
        return None
    if ctx.store.find_promo_by_code(code) is not None:
        out.error(f'The code "{code}" already exists.')
        return None

    percent = ask_ratio("Discount (ratio, e.g. 0.10 for 10%):")
    is_global = ask_yes_no("Global promo (available to everyone)?")
    is_unlimited = ask_yes_no(
        "Reusable several times?", yes="Yes (unlimited)", no="No (single use)"
    )

    challenge = None
    if ask_yes_no("Restrict to one challenge?"):
        challenges = ctx.store.published_challenges()
        if challenges:
            challenge = select_challenge(challenges)
        else:
            out.warn("No published challenge found.")
    user = search_user(ctx.store) if ask_yes_no("Restrict to one user?") else None

    phase = int(out.ask_text("Phase (0-5):", default="0") or 0)
    expires_at = ask_optional_date("Expiration date (YYYY-MM-DD, empty for none):")
    stripe_id = out.ask_text("Stripe coupon ID (empty for none):")
    descriptions = {
        lang: out.ask_text(f"Description {lang.upper()} (empty for none):")
        for lang in PROMO_LANGUAGES
    }

    plan = create_promo.plan_create_promo(
        ctx.store,
        code,
        percent,
        is_global=is_global,
        is_unlimited=is_unlimited,
        challenge=challenge,
        user=user,
        phase=phase,
        expires_at=expires_at,
        stripe_id=stripe_id,
        descriptions=descriptions,
    )
    return _confirm_and_execute(
        ctx, confirm, "Promo code preview", plan, create_promo.execute_create_promo
    )


def view_audit_log(ctx: WorkflowContext, confirm: Confirmer) -> None:
    entries = ctx.store.recent_audit_logs(limit=20)
    if not entries:
        out.warn("The audit log is empty.")
        return
    out.audit_table(entries, title="Last 20 audit records")


ACTIONS: tuple[tuple[str, str, ActionHandler], ...] = (
    ("create", "Create a trading account", create_trading_account),
    ("activate", "Activate a funded account", activate_funded_account),
    ("bypass", "Bypass activation fees", bypass_activation_fees),
    ("force", "Force a phase transition", force_phase_transition),
    ("deactivate", "Deactivate an account", deactivate_account),
    ("reactivate", "Reactivate an account", reactivate_account),
    ("profit-target", "Fix a profit target", fix_account_profit_target),
    ("ctrader-id", "Update a cTrader ID", update_account_ctrader_id),
    ("options", "Manage account options", manage_account_options),
    ("payouts", "Manage payout requests", manage_payouts),
    ("promo", "Create a promo code", create_promo_code),
    ("audit", "View the audit log", view_audit_log),
)

SWITCH = "__switch__"
QUIT = "__quit__"


def action_choices() -> list:
    choices: list = [questionary.Choice(title=label, value=key) for key, label, _ in ACTIONS]
    choices.append(questionary.Separator())
    choices.append(questionary.Choice(title="Change environment", value=SWITCH))
    choices.append(questionary.Choice(title="Quit", value=QUIT))
    return choices


def handler_for(key: str) -> ActionHandler:
    for action_key, _, handler in ACTIONS:
        if action_key == key:
            return handler
    raise KeyError(key)
