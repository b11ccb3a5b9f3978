import pytest

from conftest import FakeRunner, make_account, make_challenge, ok_result
from wgfops.cli.commands.actions import _confirm_and_execute
from wgfops.cli.prompts import Confirmer, confirm_production_session
from wgfops.core.config import Environment
from wgfops.core.workflows.base import confirmation_passes
from wgfops.core.workflows.force_phase import execute_force_phase, plan_force_phase


class _Answers:
    def __init__(self, *answers):
        self.answers = list(answers)
        self.asked = []

    def __call__(self, message):
        self.asked.append(message)
        return self.answers.pop(0)


@pytest.mark.parametrize(
    "env,first,second,expected",
    [
        (Environment.STAGING, "YES", None, True),
        (Environment.STAGING, "  YES ", None, True),
        (Environment.STAGING, "yes", None, False),
        (Environment.STAGING, "", None, False),
        (Environment.PRODUCTION, "YES", "CONFIRMER", True),
        (Environment.PRODUCTION, "YES", " CONFIRMER\n", True),
        (Environment.PRODUCTION, "YES", None, False),
        (Environment.PRODUCTION, "YES", "confirmer", False),
        (Environment.PRODUCTION, "NO", "CONFIRMER", False),
    ],
)
def test_confirmation_passes(env, first, second, expected):
    assert confirmation_passes(env, first, second) is expected


def test_staging_asks_a_single_phrase():
    ask = _Answers("YES")

    assert Confirmer(Environment.STAGING, ask=ask)("Deactivate 4242") is True
    assert len(ask.asked) == 1


def test_production_asks_second_phrase_only_after_first_matched():
    ask = _Answers("nope")

    assert Confirmer(Environment.PRODUCTION, ask=ask)("Deactivate 4242") is False
    assert len(ask.asked) == 1


def test_production_requires_both_phrases():
    assert Confirmer(Environment.PRODUCTION, ask=_Answers("YES", "CONFIRMER"))("x") is True
    assert Confirmer(Environment.PRODUCTION, ask=_Answers("YES", "YES"))("x") is False


def test_production_session_gate():
    assert confirm_production_session(ask=_Answers("PRODUCTION")) is True
    assert confirm_production_session(ask=_Answers("production")) is False


def _force_phase_setup(store):
    account = make_account(challenge_phase=1)
    store.accounts[account.trading_account_uuid] = account
    return plan_force_phase(account, make_challenge("standard"))


def test_production_wrong_second_phrase_executes_nothing(store, session, make_ctx):
    plan = _force_phase_setup(store)
    before = dict(store.accounts)
    runner = FakeRunner(ok_result())
    ask = _Answers("YES", "nope")
    ctx = make_ctx(runner, environment=Environment.PRODUCTION)

    outcome = _confirm_and_execute(
        ctx, Confirmer(Environment.PRODUCTION, ask=ask), "Force phase", plan, execute_force_phase
    )

    assert outcome is None
    assert len(ask.asked) == 2
    assert runner.specs == []
    assert session.events == []
    assert store.accounts == before
    assert store.audit == []


def test_production_both_phrases_execute_the_plan(store, session, make_ctx):
    plan = _force_phase_setup(store)
    runner = FakeRunner(ok_result())
    ctx = make_ctx(runner, environment=Environment.PRODUCTION)

    outcome = _confirm_and_execute(
        ctx,
        Confirmer(Environment.PRODUCTION, ask=_Answers("YES", "CONFIRMER")),
        "Force phase",
        plan,
        execute_force_phase,
    )

    assert outcome is not None
    assert len(runner.specs) == 1
    assert store.audit[0]["environment"] == "production"
