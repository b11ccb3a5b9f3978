"""Read models and the data-access interface consumed by the workflows.

The workflows never write SQL. They go through a Store, implemented for MySQL
in `wgfops.core.adapters.mysqlstore` and by in-memory fakes in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Mapping, Protocol


@dataclass(frozen=True)
class User:
    user_uuid: str
    email: str
    firstname: str
    lastname: str
    ctid: int | None = None

    @property
    def display_name(self) -> str:
        return f"{self.firstname} {self.lastname} ({self.email})"


@dataclass(frozen=True)
class Challenge:
    challenge_uuid: str
    name: str
    type: str
    price: float
    initial_coins_amount: float
    published: bool = True


@dataclass(frozen=True)
class ChallengeRule:
    challenge_uuid: str
    phase: int
    profit_target_percent: float
    min_trading_days: int
    phase_duration: str
    max_daily_drawdown_percent: float | None = None
    max_total_drawdown_percent: float | None = None


@dataclass(frozen=True)
class TradingAccount:
    """
    A trading account row.

    `success` is None while the account is active, 1 once the phase was
    passed and 0 once the account was deactivated.
    """

    trading_account_uuid: str
    order_uuid: str
    challenge_uuid: str
    ctrader_trading_account: int
    ctrader_server: str
    challenge_phase: int
    current_profit_target_percent: float
    success: int | None = None
    reason: str = ""

    @property
    def is_active(self) -> bool:
        return self.success is None


@dataclass(frozen=True)
class Option:
    option_uuid: str
    name: str
    majoration_percent: float


@dataclass(frozen=True)
class FundedActivation:
    activation_uuid: str
    trading_account_uuid: str
    amount: float
    currency: str
    status: str
    payment_link: str | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass(frozen=True)
class PayoutRequest:
    payout_request_uuid: str
    email: str
    payout_method: str
    payout_amount: float
    status: str
    ctrader_trading_account: int | None = None
    iban: str | None = None
    wallet_address: str | None = None
    balance_before_request: float = 0.0
    total_profit: float = 0.0
    profit_split: str = ""
    created_at: datetime | None = None


PROMO_LANGUAGES = ("fr", "en", "es", "de", "it")


@dataclass(frozen=True)
class Promo:
    """A promo code. `percent_promo` is a ratio (0.10 for 10%)."""

    promo_uuid: str
    code: str
    percent_promo: float
    is_global: bool
    is_unlimited: bool
    phase: int = 0
    expires_at: date | None = None
    stripe_id: str | None = None
    user_uuid: str | None = None
    challenge_uuid: str | None = None
    descriptions: Mapping[str, str | None] = field(default_factory=dict)


@dataclass(frozen=True)
class AuditEntry:
    id: int
    action_type: str
    target_table: str
    target_uuid: str | None
    details: Mapping[str, Any]
    operator: str
    environment: str
    executed_at: datetime | None = None


class Store(Protocol):
    """Data-access operations used by the workflows and the CLI."""

    # users
    def find_user_by_email(self, email: str) -> User | None: ...
    def find_user_by_uuid(self, user_uuid: str) -> User | None: ...
    def find_user_by_ctid(self, ctid: int) -> User | None: ...
    def search_users_by_email(self, pattern: str) -> list[User]: ...
    def search_users_by_name(self, name: str) -> list[User]: ...

    # trading accounts
    def find_trading_account_by_uuid(self, ta_uuid: str) -> TradingAccount | None: ...
    def find_trading_account_by_ctrader(self, ctrader_id: int) -> TradingAccount | None: ...
    def trading_accounts_by_order(self, order_uuid: str) -> list[TradingAccount]: ...
    def mark_account_success(self, ta_uuid: str, reason: str) -> None: ...
    def deactivate_account(self, ta_uuid: str, reason: str) -> None: ...
    def reactivate_account(
        self, ta_uuid: str, reason: str, profit_target: float | None = None
    ) -> None: ...
    def restore_account_status(
        self, ta_uuid: str, success: int | None, reason: str
    ) -> None: ...
    def update_profit_target(self, ta_uuid: str, target: float, reason: str) -> None: ...
    def update_ctrader_id(self, ta_uuid: str, ctrader_id: int) -> None: ...
    def trading_account_options(self, ta_uuid: str) -> list[Option]: ...
    def add_trading_account_option(self, ta_uuid: str, option_uuid: str) -> None: ...
    def remove_trading_account_option(self, ta_uuid: str, option_uuid: str) -> None: ...

    # challenges and options
    def published_challenges(self) -> list[Challenge]: ...
    def find_challenge(self, challenge_uuid: str) -> Challenge | None: ...
    def challenge_rules(self, challenge_uuid: str) -> list[ChallengeRule]: ...
    def all_options(self) -> list[Option]: ...

    # orders
    def create_payment(
        self, payment_uuid: str, method: str, price: float, currency: str, proof: str
    ) -> None: ...
    def create_order(
        self,
        order_uuid: str,
        challenge_uuid: str,
        user_uuid: str,
        payment_uuid: str,
        configuration: str,
    ) -> None: ...
    def create_order_option(self, order_uuid: str, option_uuid: str) -> None: ...
    def delete_order_options(self, order_uuid: str) -> None: ...
    def delete_order(self, order_uuid: str) -> None: ...
    def delete_payment(self, payment_uuid: str) -> None: ...

    # funded activations
    def pending_funded_activation(self, ta_uuid: str) -> FundedActivation | None: ...

    # payouts
    def payouts_by_status(self, status: str | None = None) -> list[PayoutRequest]: ...
    def update_payout_status(self, payout_uuid: str, status: str) -> None: ...

    # promos
    def find_promo_by_code(self, code: str) -> Promo | None: ...
    def create_promo(self, promo: Promo) -> None: ...

    # audit log
    def insert_audit_log(
        self,
        action_type: str,
        target_table: str,
        target_uuid: str | None,
        details: Mapping[str, Any],
        operator: str,
        environment: str,
    ) -> None: ...
    def recent_audit_logs(self, limit: int = 20) -> list[AuditEntry]: ...
    def audit_logs_for_target(self, target_uuid: str, limit: int = 20) -> list[AuditEntry]: ...
