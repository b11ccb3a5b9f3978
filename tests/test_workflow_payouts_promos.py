from datetime import date

import pytest

from conftest import make_challenge
from wgfops.core.store import PayoutRequest, Promo, User
from wgfops.core.workflows.base import OutcomeStatus, PreconditionFailed
from wgfops.core.workflows.create_promo import execute_create_promo, plan_create_promo
from wgfops.core.workflows.payout_status import execute_payout_status, plan_payout_status

PAYOUT = "cccccccc-0000-0000-0000-000000000001"
PROMO = "dddddddd-0000-0000-0000-000000000001"


def _payout(status="pending"):
    return PayoutRequest(
        payout_request_uuid=PAYOUT,
        email="trader@example.com",
        payout_method="iban",
        payout_amount=400.0,
        status=status,
        iban="FR7630006000011234567890189",
    )


# -- payouts ----------------------------------------------------------------


def test_payout_status_must_be_known(store):
    with pytest.raises(PreconditionFailed, match="Unknown payout status"):
        plan_payout_status(_payout(), "lost")


def test_payout_status_unchanged_is_a_warning(store):
    with pytest.raises(PreconditionFailed) as excinfo:
        plan_payout_status(_payout("approved"), "approved")

    assert excinfo.value.level == "warn"


def test_payout_status_change_is_audited(store, session, make_ctx):
    store.payouts[PAYOUT] = _payout()
    plan = plan_payout_status(store.payouts[PAYOUT], "approved")

    outcome = execute_payout_status(make_ctx(None), plan)

    assert outcome.status == OutcomeStatus.SUCCEEDED
    assert store.payouts_by_status("approved") == [_payout("approved")]
    assert session.events == ["begin", "commit"]
    (audit,) = store.audit
    assert audit["action_type"] == "PAYOUT_STATUS_CHANGE"
    assert audit["target_table"] == "payout_request"
    assert audit["details"] == {
        "email": "trader@example.com",
        "amount": 400.0,
        "old_status": "pending",
        "new_status": "approved",
    }


# -- promos -----------------------------------------------------------------


def test_promo_code_needs_two_characters(store):
    with pytest.raises(PreconditionFailed, match="at least 2"):
        plan_create_promo(store, " x ", 0.1, is_global=True, is_unlimited=True)


@pytest.mark.parametrize("percent", [0, 1.2])
def test_promo_discount_must_be_a_ratio(store, percent):
    with pytest.raises(PreconditionFailed, match="discount"):
        plan_create_promo(store, "SUMMER", percent, is_global=True, is_unlimited=True)


def test_promo_phase_is_bounded(store):
    with pytest.raises(PreconditionFailed, match="phase"):
        plan_create_promo(store, "SUMMER", 0.1, is_global=True, is_unlimited=True, phase=6)


def test_existing_promo_code_is_rejected(store):
    store.promos["old"] = Promo("old", "SUMMER", 0.2, True, True)

    with pytest.raises(PreconditionFailed, match="already exists"):
        plan_create_promo(store, "SUMMER", 0.1, is_global=True, is_unlimited=True)


def test_promo_creation_is_audited(store, session, make_ctx):
    challenge = make_challenge("standard")
    user = User("55555555-5555-5555-5555-555555555555", "vip@example.com", "Ada", "L")
    plan = plan_create_promo(
        store,
        "  VIP20 ",
        0.2,
        is_global=False,
        is_unlimited=False,
        challenge=challenge,
        user=user,
        phase=1,
        expires_at=date(2026, 12, 31),
        stripe_id="  ",
        descriptions={"en": " VIP offer ", "fr": ""},
    )

    outcome = execute_create_promo(make_ctx(None), plan, new_uuid=lambda: PROMO)

    assert outcome.status == OutcomeStatus.SUCCEEDED
    promo = store.promos[PROMO]
    assert promo.code == "VIP20"
    assert promo.challenge_uuid == challenge.challenge_uuid
    assert promo.user_uuid == user.user_uuid
    assert promo.stripe_id is None
    assert promo.descriptions == {"en": "VIP offer", "fr": None}
    assert plan.preview()["Expires"] == "2026-12-31"
    assert session.events == ["begin", "commit"]
    (audit,) = store.audit
    assert audit["action_type"] == "CREATE_PROMO"
    assert audit["target_uuid"] == PROMO
    assert audit["details"] == {
        "code": "VIP20",
        "percent_promo": 0.2,
        "is_global": False,
        "is_unlimited": False,
    }
