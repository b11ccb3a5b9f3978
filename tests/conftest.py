from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from wgfops.core.config import Environment  # noqa: E402
from wgfops.core.jobs import JobResult, JobStatus  # noqa: E402
from wgfops.core.store import (  # noqa: E402
    Challenge,
    ChallengeRule,
    FundedActivation,
    Option,
    PayoutRequest,
    Promo,
    TradingAccount,
    User,
)
from wgfops.core.workflows.base import WorkflowContext  # noqa: E402


class FakeClock:
    """Monotonic clock advanced only by `sleep`."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeGateway:
    """Records every cluster call; statuses are replayed in order, the last one repeats."""

    def __init__(
        self,
        statuses=(JobStatus.COMPLETE,),
        *,
        logs: str = "HTTP_CODE:200",
        apply_error: Exception | None = None,
        status_error: BaseException | None = None,
        logs_error: Exception | None = None,
        delete_error: Exception | None = None,
    ):
        self.statuses = list(statuses)
        self.logs = logs
        self.apply_error = apply_error
        self.status_error = status_error
        self.logs_error = logs_error
        self.delete_error = delete_error
        self.calls: list[tuple[str, str]] = []
        self.applied = []

    def apply_job(self, spec):
        self.calls.append(("apply", spec.name))
        self.applied.append(spec)
        if self.apply_error:
            raise self.apply_error

    def get_job_status(self, namespace, name):
        self.calls.append(("status", name))
        if self.status_error:
            raise self.status_error
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]

    def get_job_logs(self, namespace, name, tail=200):
        self.calls.append(("logs", name))
        if self.logs_error:
            raise self.logs_error
        return self.logs

    def delete_job(self, namespace, name):
        self.calls.append(("delete", name))
        if self.delete_error:
            raise self.delete_error

    def count(self, kind: str) -> int:
        return sum(1 for k, _ in self.calls if k == kind)

    def open_tunnel(self, env_config):
        raise NotImplementedError

    def close_tunnel(self, handle):
        self.calls.append(("close_tunnel", str(handle)))


class FakeSession:
    """Transaction scoping only; records begin/commit/rollback."""

    def __init__(self, environment=Environment.STAGING, operator="alice"):
        self.environment = environment
        self.operator = operator
        self.events: list[str] = []

    @contextmanager
    def transaction(self):
        self.events.append("begin")
        try:
            yield self
        except BaseException:
            self.events.append("rollback")
            raise
        self.events.append("commit")


class FakeStore:
    """In-memory Store. Methods named in `fail_on` raise RuntimeError."""

    def __init__(self):
        self.users: dict[str, User] = {}
        self.challenges: dict[str, Challenge] = {}
        self.rules: list[ChallengeRule] = []
        self.options: list[Option] = []
        self.accounts: dict[str, TradingAccount] = {}
        self.activations: dict[str, FundedActivation] = {}
        self.payments: dict[str, dict] = {}
        self.orders: dict[str, dict] = {}
        self.order_options: list[tuple[str, str]] = []
        self.account_options: list[tuple[str, str]] = []
        self.payouts: dict[str, PayoutRequest] = {}
        self.promos: dict[str, Promo] = {}
        self.audit: list[dict] = []
        self.fail_on: set[str] = set()

    def _check(self, name: str) -> None:
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    # users
    def find_user_by_email(self, email):
        return next((u for u in self.users.values() if u.email == email), None)

    def find_user_by_uuid(self, user_uuid):
        return self.users.get(user_uuid)

    def find_user_by_ctid(self, ctid):
        return next((u for u in self.users.values() if u.ctid == ctid), None)

    def search_users_by_email(self, pattern):
        return [u for u in self.users.values() if pattern in u.email]

    def search_users_by_name(self, name):
        return [u for u in self.users.values() if name in u.firstname or name in u.lastname]

    # trading accounts
    def find_trading_account_by_uuid(self, ta_uuid):
        return self.accounts.get(ta_uuid)

    def find_trading_account_by_ctrader(self, ctrader_id):
        return next(
            (a for a in self.accounts.values() if a.ctrader_trading_account == ctrader_id),
            None,
        )

    def trading_accounts_by_order(self, order_uuid):
        return sorted(
            (a for a in self.accounts.values() if a.order_uuid == order_uuid),
            key=lambda a: a.challenge_phase,
        )

    def _update(self, ta_uuid, **changes):
        from dataclasses import replace

        self.accounts[ta_uuid] = replace(self.accounts[ta_uuid], **changes)

    def mark_account_success(self, ta_uuid, reason):
        self._check("mark_account_success")
        self._update(ta_uuid, success=1, reason=reason)

    def deactivate_account(self, ta_uuid, reason):
        self._check("deactivate_account")
        self._update(ta_uuid, success=0, reason=reason)

    def reactivate_account(self, ta_uuid, reason, profit_target=None):
        self._check("reactivate_account")
        changes = {"success": None, "reason": reason}
        if profit_target is not None:
            changes["current_profit_target_percent"] = profit_target
        self._update(ta_uuid, **changes)

    def restore_account_status(self, ta_uuid, success, reason):
        self._check("restore_account_status")
        self._update(ta_uuid, success=success, reason=reason)

    def update_profit_target(self, ta_uuid, target, reason):
        self._check("update_profit_target")
        self._update(ta_uuid, current_profit_target_percent=target, reason=reason)

    def update_ctrader_id(self, ta_uuid, ctrader_id):
        self._check("update_ctrader_id")
        self._update(ta_uuid, ctrader_trading_account=ctrader_id)

    def trading_account_options(self, ta_uuid):
        on_account = {o for t, o in self.account_options if t == ta_uuid}
        return [o for o in self.options if o.option_uuid in on_account]

    def add_trading_account_option(self, ta_uuid, option_uuid):
        self._check("add_trading_account_option")
        self.account_options.append((ta_uuid, option_uuid))

    def remove_trading_account_option(self, ta_uuid, option_uuid):
        self._check("remove_trading_account_option")
        self.account_options.remove((ta_uuid, option_uuid))

    # challenges and options
    def published_challenges(self):
        return [c for c in self.challenges.values() if c.published]

    def find_challenge(self, challenge_uuid):
        return self.challenges.get(challenge_uuid)

    def challenge_rules(self, challenge_uuid):
        return sorted(
            (r for r in self.rules if r.challenge_uuid == challenge_uuid),
            key=lambda r: r.phase,
        )

    def all_options(self):
        return list(self.options)

    # orders
    def create_payment(self, payment_uuid, method, price, currency, proof):
        self._check("create_payment")
        self.payments[payment_uuid] = {
            "method": method,
            "price": price,
            "currency": currency,
            "proof": proof,
        }

    def create_order(self, order_uuid, challenge_uuid, user_uuid, payment_uuid, configuration):
        self._check("create_order")
        self.orders[order_uuid] = {
            "challenge_uuid": challenge_uuid,
            "user_uuid": user_uuid,
            "payment_uuid": payment_uuid,
            "configuration": configuration,
        }

    def create_order_option(self, order_uuid, option_uuid):
        self._check("create_order_option")
        self.order_options.append((order_uuid, option_uuid))

    def delete_order_options(self, order_uuid):
        self._check("delete_order_options")
        self.order_options = [o for o in self.order_options if o[0] != order_uuid]

    def delete_order(self, order_uuid):
        self._check("delete_order")
        self.orders.pop(order_uuid, None)

    def delete_payment(self, payment_uuid):
        self._check("delete_payment")
        self.payments.pop(payment_uuid, None)

    # funded activations
    def pending_funded_activation(self, ta_uuid):
        return next(
            (
                a
                for a in self.activations.values()
                if a.trading_account_uuid == ta_uuid and a.status == "pending"
            ),
            None,
        )

    # payouts
    def payouts_by_status(self, status=None):
        return [p for p in self.payouts.values() if status is None or p.status == status]

    def update_payout_status(self, payout_uuid, status):
        from dataclasses import replace

        self._check("update_payout_status")
        self.payouts[payout_uuid] = replace(self.payouts[payout_uuid], status=status)

    # promos
    def find_promo_by_code(self, code):
        return next((p for p in self.promos.values() if p.code == code), None)

    def create_promo(self, promo):
        self._check("create_promo")
        self.promos[promo.promo_uuid] = promo

    # audit log
    def insert_audit_log(self, action_type, target_table, target_uuid, details, operator, environment):
        self._check("insert_audit_log")
        self.audit.append(
            {
                "action_type": action_type,
                "target_table": target_table,
                "target_uuid": target_uuid,
                "details": dict(details),
                "operator": operator,
                "environment": environment,
            }
        )

    def recent_audit_logs(self, limit=20):
        return []

    def audit_logs_for_target(self, target_uuid, limit=20):
        return []


class FakeRunner:
    """Job runner returning queued results; `on_run` hooks simulate backend side effects."""

    def __init__(self, *results: JobResult, on_run=None):
        self.results = list(results)
        self.specs = []
        self.on_run = on_run

    def __call__(self, spec):
        self.specs.append(spec)
        if self.on_run:
            self.on_run(spec)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class RecordingReporter:
    def __init__(self):
        self.lines: list[tuple[str, str]] = []

    def info(self, msg):
        self.lines.append(("info", msg))

    def success(self, msg):
        self.lines.append(("success", msg))

    def warn(self, msg):
        self.lines.append(("warn", msg))

    def error(self, msg):
        self.lines.append(("error", msg))

    def output(self, title, text):
        self.lines.append(("output", f"{title}: {text}"))


def ok_result(output: str = "{}\nHTTP_CODE:200") -> JobResult:
    return JobResult(success=True, output=output, elapsed_seconds=4.2)


def failed_result(reason: str = "job failed") -> JobResult:
    return JobResult(
        success=False, output="boom\nHTTP_CODE:500", elapsed_seconds=6.0, failure_reason=reason
    )


def make_account(**overrides) -> TradingAccount:
    values = dict(
        trading_account_uuid="11111111-1111-1111-1111-111111111111",
        order_uuid="22222222-2222-2222-2222-222222222222",
        challenge_uuid="33333333-3333-3333-3333-333333333333",
        ctrader_trading_account=4242,
        ctrader_server="demo",
        challenge_phase=1,
        current_profit_target_percent=0.08,
        success=None,
        reason="",
    )
    values.update(overrides)
    return TradingAccount(**values)


def make_challenge(challenge_type: str = "standard", **overrides) -> Challenge:
    values = dict(
        challenge_uuid="33333333-3333-3333-3333-333333333333",
        name=f"{challenge_type.title()} 10K",
        type=challenge_type,
        price=99.0,
        initial_coins_amount=10000.0,
    )
    values.update(overrides)
    return Challenge(**values)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def make_ctx(store, session, reporter):
    """Build a WorkflowContext around the fake store/session and the given runner."""

    def _make(runner, *, environment=None):
        if environment is not None:
            session.environment = environment
        return WorkflowContext(
            session=session,
            store=store,
            run_job=runner,
            namespace="staging",
            reporter=reporter,
        )

    return _make
