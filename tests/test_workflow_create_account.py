import json

import pytest

from conftest import failed_result, make_challenge, ok_result, make_account, FakeRunner
from wgfops.core.errors import SubmissionFailed
from wgfops.core.store import ChallengeRule, Option, User
from wgfops.core.workflows.base import OutcomeStatus, PreconditionFailed
from wgfops.core.workflows.create_account import (
    build_order_configuration,
    execute_create_account,
    plan_create_account,
)

PAYMENT = "aaaaaaaa-0000-0000-0000-000000000001"
ORDER = "aaaaaaaa-0000-0000-0000-000000000002"


def _uuids():
    values = iter([PAYMENT, ORDER])
    return lambda: next(values)


@pytest.fixture
def seeded(store):
    user = User(
        user_uuid="55555555-5555-5555-5555-555555555555",
        email="trader@example.com",
        firstname="Ada",
        lastname="Lovelace",
        ctid=777,
    )
    challenge = make_challenge("standard")
    store.users[user.user_uuid] = user
    store.challenges[challenge.challenge_uuid] = challenge
    for phase, target in ((1, 8.0), (2, 5.0), (4, 10.0)):
        store.rules.append(
            ChallengeRule(
                challenge_uuid=challenge.challenge_uuid,
                phase=phase,
                profit_target_percent=target,
                min_trading_days=4,
                phase_duration="30d",
                max_daily_drawdown_percent=5.0,
                max_total_drawdown_percent=10.0,
            )
        )
    store.options.append(Option(option_uuid="opt-1", name="Raw spreads", majoration_percent=15.0))
    return user, challenge


def _tam_creates_account(store):
    def _on_run(spec):
        store.accounts["99999999-9999-9999-9999-999999999999"] = make_account(
            trading_account_uuid="99999999-9999-9999-9999-999999999999",
            order_uuid=ORDER,
            ctrader_trading_account=31337,
        )

    return _on_run


def test_plan_requires_ctid(store, seeded):
    user, challenge = seeded
    no_ctid = User(user.user_uuid, user.email, user.firstname, user.lastname, ctid=None)

    with pytest.raises(PreconditionFailed, match="cTrader ID"):
        plan_create_account(store, no_ctid, challenge)


def test_plan_requires_rules_for_initial_phase(store, seeded):
    user, _ = seeded
    unlimited = make_challenge("unlimited", challenge_uuid="44444444-4444-4444-4444-444444444444")

    with pytest.raises(PreconditionFailed, match="phase 0"):
        plan_create_account(store, user, unlimited)


def test_plan_instant_funded_uses_phase_three_rules(store, seeded):
    user, _ = seeded
    instant = make_challenge("instant_funded", challenge_uuid="66666666-6666-6666-6666-666666666666")
    store.rules.append(
        ChallengeRule(instant.challenge_uuid, 3, 6.0, 0, "unlimited")
    )

    plan = plan_create_account(store, user, instant)

    assert plan.initial_phase == 0
    assert plan.rules.phase == 3


def test_plan_rejects_unknown_option(store, seeded):
    user, challenge = seeded

    with pytest.raises(PreconditionFailed, match="Unknown option"):
        plan_create_account(store, user, challenge, ["nope"])


def test_order_configuration_uses_ratios(seeded, store):
    _, challenge = seeded

    config = json.loads(build_order_configuration(store.challenge_rules(challenge.challenge_uuid)))

    assert set(config) == {"1", "2", "4"}
    assert config["1"] == {
        "max_daily_drawdown_percent": 0.05,
        "max_total_drawdown_percent": 0.1,
        "profit_target_percent": 0.08,
        "phase_duration": "30d",
        "min_trading_days": 4,
    }


def test_create_account_success(store, session, make_ctx, seeded):
    user, challenge = seeded
    runner = FakeRunner(ok_result(), on_run=_tam_creates_account(store))
    plan = plan_create_account(store, user, challenge, ["opt-1"])

    outcome = execute_create_account(make_ctx(runner), plan, new_uuid=_uuids())

    assert outcome.status == OutcomeStatus.SUCCEEDED
    assert outcome.recap["cTrader ID"] == "31337"
    assert store.orders[ORDER]["payment_uuid"] == PAYMENT
    assert store.payments[PAYMENT] == {
        "method": "admin_manual",
        "price": 0,
        "currency": "EUR",
        "proof": "admin_manual",
    }
    assert store.order_options == [(ORDER, "opt-1")]
    assert session.events == ["begin", "commit"]

    (spec,) = runner.specs
    assert spec.name.startswith("support-create-ta-")
    assert spec.namespace == "staging"
    script = spec.command[2]
    assert "-X POST" in script
    assert (
        f"http://staging-trading-account-manager.staging.svc/account?order_uuid={ORDER}&challenge_phase=1"
        in script
    )

    (audit,) = store.audit
    assert audit["action_type"] == "CREATE_TRADING_ACCOUNT"
    assert audit["target_uuid"] == "99999999-9999-9999-9999-999999999999"
    assert audit["operator"] == "alice"
    assert audit["environment"] == "staging"
    assert audit["details"]["order_uuid"] == ORDER


def test_create_account_compensates_when_tam_fails(store, session, make_ctx, seeded):
    user, challenge = seeded
    plan = plan_create_account(store, user, challenge, ["opt-1"])

    outcome = execute_create_account(make_ctx(FakeRunner(failed_result())), plan, new_uuid=_uuids())

    assert outcome.status == OutcomeStatus.COMPENSATED
    assert "Rollback performed" in outcome.message
    assert store.orders == {}
    assert store.payments == {}
    assert store.order_options == []
    assert session.events == ["begin", "commit", "begin", "commit"]
    (audit,) = store.audit
    assert audit["action_type"] == "CREATE_TRADING_ACCOUNT_FAILED"
    assert audit["details"]["error"] == "job failed"


def test_create_account_reports_orphans_when_rollback_fails(store, session, make_ctx, seeded):
    user, challenge = seeded
    store.fail_on.add("delete_order")
    plan = plan_create_account(store, user, challenge)

    outcome = execute_create_account(
        make_ctx(FakeRunner(failed_result("timed out after 120s"))), plan, new_uuid=_uuids()
    )

    assert outcome.status == OutcomeStatus.COMPENSATION_FAILED
    assert ORDER in outcome.message
    assert PAYMENT in outcome.message
    assert session.events[-1] == "rollback"
    assert ORDER in store.orders
    (audit,) = store.audit
    assert audit["action_type"] == "CREATE_TRADING_ACCOUNT_FAILED"
    assert audit["details"]["rollback"] == "failed"


def test_create_account_submission_failure_is_compensated(store, make_ctx, seeded):
    user, challenge = seeded
    plan = plan_create_account(store, user, challenge)
    runner = FakeRunner(SubmissionFailed("kubectl apply failed", diagnostics="forbidden"))

    outcome = execute_create_account(make_ctx(runner), plan, new_uuid=_uuids())

    assert outcome.status == OutcomeStatus.COMPENSATED
    assert store.orders == {}
    assert len(store.audit) == 1


def test_create_account_permission_error_is_compensated(store, make_ctx, seeded):
    user, challenge = seeded
    plan = plan_create_account(store, user, challenge, ["opt-1"])
    runner = FakeRunner(PermissionError(13, "Permission denied"))

    outcome = execute_create_account(make_ctx(runner), plan, new_uuid=_uuids())

    assert outcome.status == OutcomeStatus.COMPENSATED
    assert store.orders == {}
    assert store.payments == {}
    assert store.order_options == []
    (audit,) = store.audit
    assert audit["action_type"] == "CREATE_TRADING_ACCOUNT_FAILED"
    assert audit["details"]["error"].startswith("submission failed:")


def test_create_account_audit_failure_keeps_compensated_outcome(store, make_ctx, seeded):
    user, challenge = seeded
    store.fail_on.add("insert_audit_log")
    plan = plan_create_account(store, user, challenge)

    outcome = execute_create_account(make_ctx(FakeRunner(failed_result())), plan, new_uuid=_uuids())

    assert outcome.status == OutcomeStatus.COMPENSATED
    assert store.orders == {}
    assert store.audit == []
    assert any("audit record could not be written" in w for w in outcome.warnings)


def test_create_account_audit_failure_keeps_orphan_report(store, make_ctx, seeded):
    user, challenge = seeded
    store.fail_on.update({"delete_order", "insert_audit_log"})
    plan = plan_create_account(store, user, challenge)

    outcome = execute_create_account(make_ctx(FakeRunner(failed_result())), plan, new_uuid=_uuids())

    assert outcome.status == OutcomeStatus.COMPENSATION_FAILED
    assert ORDER in outcome.message and PAYMENT in outcome.message
    assert outcome.recap == {"Order UUID": ORDER, "Payment UUID": PAYMENT}
    assert ORDER in outcome.warnings[0] and PAYMENT in outcome.warnings[0]
    assert "insert_audit_log failed" in outcome.warnings[1]
    assert store.audit == []


def test_create_account_audit_failure_after_success_is_a_warning(store, make_ctx, seeded):
    user, challenge = seeded
    store.fail_on.add("insert_audit_log")
    runner = FakeRunner(ok_result(), on_run=_tam_creates_account(store))
    plan = plan_create_account(store, user, challenge)

    outcome = execute_create_account(make_ctx(runner), plan, new_uuid=_uuids())

    assert outcome.status == OutcomeStatus.SUCCEEDED
    assert outcome.recap["cTrader ID"] == "31337"
    assert outcome.warnings == [
        "The CREATE_TRADING_ACCOUNT audit record could not be written: insert_audit_log failed"
    ]
