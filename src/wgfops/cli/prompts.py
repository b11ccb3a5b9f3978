"""Interactive lookups and confirmation gates for the console."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Callable

import questionary

from wgfops.cli.common.output import out
from wgfops.core.config import Environment
from wgfops.core.phases import DEACTIVATION_REASONS
from wgfops.core.store import Challenge, Option, PayoutRequest, Store, TradingAccount, User
from wgfops.core.workflows.activate_funded import FEE_CHOICES
from wgfops.core.workflows.base import (
    FIRST_PHRASE,
    PRODUCTION_PHRASE,
    SECOND_PHRASE,
    confirmation_passes,
    format_amount,
    format_percent,
    requires_second_confirmation,
)
from wgfops.core.workflows.payout_status import PAYOUT_STATUSES

USER_LOOKUPS = (("email", "Email"), ("uuid", "UUID"), ("name", "Name"), ("ctid", "CTID"))
ACCOUNT_LOOKUPS = (("ctrader", "cTrader account ID"), ("uuid", "UUID"))


def is_valid_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _as_int(value: str, label: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid {label} (must be a number).") from None


def lookup_users(store: Store, method: str, query: str) -> list[User]:
    """
    Find users by email (exact when the query holds an @, partial otherwise),
    UUID, name or CTID.

    Raises:
        ValueError: The query is malformed for `method`.
    """
    query = query.strip()
    if method == "email":
        if "@" in query:
            user = store.find_user_by_email(query)
            return [user] if user else []
        return store.search_users_by_email(query)
    if method == "uuid":
        if not is_valid_uuid(query):
            raise ValueError("Invalid UUID.")
        user = store.find_user_by_uuid(query)
        return [user] if user else []
    if method == "name":
        return store.search_users_by_name(query)
    if method == "ctid":
        user = store.find_user_by_ctid(_as_int(query, "CTID"))
        return [user] if user else []
    raise ValueError(f"Unknown lookup: {method}")


def lookup_trading_account(store: Store, method: str, query: str) -> TradingAccount | None:
    """Find one trading account by cTrader id or UUID (ValueError if malformed)."""
    query = query.strip()
    if method == "ctrader":
        return store.find_trading_account_by_ctrader(_as_int(query, "cTrader ID"))
    if method == "uuid":
        if not is_valid_uuid(query):
            raise ValueError("Invalid UUID.")
        return store.find_trading_account_by_uuid(query)
    raise ValueError(f"Unknown lookup: {method}")


def _choices(pairs) -> list[questionary.Choice]:
    return [questionary.Choice(title=label, value=value) for value, label in pairs]


def search_user(store: Store) -> User | None:
    method = out.select_one("Search user by:", _choices(USER_LOOKUPS))
    query = out.ask_text("Search value:")
    if not query:
        return None
    try:
        users = lookup_users(store, method, query)
    except ValueError as exc:
        out.error(str(exc))
        return None

    if not users:
        out.warn("No user found.")
        return None
    if len(users) == 1:
        return users[0]

    out.users_table(users, title=f"{len(users)} users found")
    return out.select_one(
        "Select a user:",
        [
            questionary.Choice(title=f"{u.email} ({u.firstname} {u.lastname})", value=u)
            for u in users
        ],
    )


def search_trading_account(store: Store) -> TradingAccount | None:
    method = out.select_one("Search trading account by:", _choices(ACCOUNT_LOOKUPS))
    query = out.ask_text("Search value:")
    if not query:
        return None
    try:
        account = lookup_trading_account(store, method, query)
    except ValueError as exc:
        out.error(str(exc))
        return None
    if account is None:
        out.warn("No trading account found.")
        return None
    out.accounts_table([account], title="Trading account")
    return account


def select_challenge(challenges: list[Challenge]) -> Challenge | None:
    return out.select_one(
        "Challenge:",
        [
            questionary.Choice(
                title=(
                    f"{c.name} ({c.type}) - {format_amount(c.price)} - "
                    f"balance {format_amount(c.initial_coins_amount)}"
                ),
                value=c,
            )
            for c in challenges
        ],
    )


def select_options(options: list[Option]) -> list[str]:
    return out.select_many(
        "Options:",
        [
            questionary.Choice(
                title=f"{o.name} ({format_percent(o.majoration_percent)})",
                value=o.option_uuid,
            )
            for o in options
        ],
    )


def choose_fee_bypass(notice: str) -> bool:
    out.info(notice)
    return out.select_one("Activation fees:", _choices(FEE_CHOICES)) == "bypass"


def choose_deactivation_reason() -> str:
    return out.select_one(
        "Deactivation reason:",
        [
            questionary.Choice(title=f"{label} ({value})", value=value)
            for value, label in DEACTIVATION_REASONS
        ],
    )


def _validate_ratio(value: str) -> bool | str:
    try:
        number = float(value)
    except ValueError:
        return "Must be a decimal between 0 and 1"
    return True if 0 <= number <= 1 else "Must be a decimal between 0 and 1"


def ask_profit_target(current: float) -> float | None:
    """Ask whether to adjust the profit target; return the new ratio or None."""
    adjust = out.select_one(
        "Adjust the profit target?",
        _choices((("no", "No, keep the current value"), ("yes", "Yes, enter a new value"))),
    )
    if adjust != "yes":
        return None
    raw = out.ask_text(
        f"New profit target (ratio, e.g. 0.08 for 8%) [current: {format_percent(current * 100)}]:",
        validate=_validate_ratio,
    )
    return float(raw)


def ask_ratio(message: str) -> float:
    return float(out.ask_text(message, validate=_validate_ratio))


def _validate_positive_int(value: str) -> bool | str:
    try:
        number = int(value)
    except ValueError:
        return "Must be a positive integer"
    return True if number > 0 else "Must be a positive integer"


def ask_positive_int(message: str) -> int:
    return int(out.ask_text(message, validate=_validate_positive_int))


def _validate_date(value: str) -> bool | str:
    if not value.strip():
        return True
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return "Expected YYYY-MM-DD"
    return True


def ask_optional_date(message: str) -> date | None:
    raw = out.ask_text(message, validate=_validate_date)
    return date.fromisoformat(raw) if raw else None


def ask_yes_no(message: str, yes: str = "Yes", no: str = "No") -> bool:
    return out.select_one(message, _choices(((True, yes), (False, no))))


def select_option(message: str, options: list[Option]) -> Option | None:
    return out.select_one(
        message,
        [
            questionary.Choice(
                title=f"{o.name} (majoration: {format_percent(o.majoration_percent)})", value=o
            )
            for o in options
        ],
    )


def select_payout(payouts: list[PayoutRequest]) -> PayoutRequest | None:
    choices: list = [
        questionary.Choice(
            title=f"{p.email} - {format_amount(p.payout_amount)} ({p.status})", value=p
        )
        for p in payouts[:15]
    ]
    choices.append(questionary.Choice(title="Back", value=None))
    return out.select_one("Select a payout request:", choices)


def choose_payout_status() -> str | None:
    choices = _choices(PAYOUT_STATUSES)
    choices.append(questionary.Choice(title="Cancel", value=None))
    return out.select_one("Action:", choices)


@dataclass
class Confirmer:
    """
    Confirmation gate for mutations.

    The operator types YES; in production a second phrase, CONFIRMER, is
    asked only once the first matched.
    """

    environment: Environment
    ask: Callable[[str], str] = out.ask_phrase

    def __call__(self, description: str) -> bool:
        out.warn(f"Action: {description}")
        first = self.ask(f'Type "{FIRST_PHRASE}" to confirm (Enter to cancel):')
        if (first or "").strip() != FIRST_PHRASE:
            return False

        second = None
        if requires_second_confirmation(self.environment):
            out.environment_banner("production", production=True)
            out.warn("You are about to modify PRODUCTION data.")
            second = self.ask(f'Production double confirmation - type "{SECOND_PHRASE}":')
        return confirmation_passes(self.environment, first, second)


def confirm_production_session(ask: Callable[[str], str] = out.ask_phrase) -> bool:
    """Gate opening a production session behind the PRODUCTION phrase."""
    out.environment_banner("production", production=True)
    out.warn("Every action of this session will modify real customer data.")
    answer = ask(f'Type "{PRODUCTION_PHRASE}" to continue:')
    return (answer or "").strip() == PRODUCTION_PHRASE
