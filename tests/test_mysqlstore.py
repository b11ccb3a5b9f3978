import json
from datetime import date, datetime

from wgfops.core.adapters.mysqlstore import MySqlStore
from wgfops.core.store import Promo

TA = "11111111-1111-1111-1111-111111111111"


class RecordingSession:
    """Returns queued rows and records every statement with its parameters."""

    def __init__(self, *row_sets):
        self.row_sets = list(row_sets)
        self.statements: list[tuple[str, dict]] = []

    def fetch_all(self, sql, params=None):
        self.statements.append((sql, dict(params or {})))
        return self.row_sets.pop(0) if self.row_sets else []

    def fetch_one(self, sql, params=None):
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def execute(self, sql, params=None):
        self.statements.append((sql, dict(params or {})))
        return 1


def _account_row(**overrides):
    row = {
        "trading_account_uuid": TA,
        "order_uuid": "22222222-2222-2222-2222-222222222222",
        "challenge_uuid": "33333333-3333-3333-3333-333333333333",
        "ctrader_trading_account": "4242",
        "ctrader_server": "demo",
        "challenge_phase": 2,
        "current_profit_target_percent": "0.0500",
        "success": None,
        "reason": None,
    }
    row.update(overrides)
    return row


def test_account_lookup_converts_uuid_and_types():
    session = RecordingSession([_account_row(success=1, reason="CHALLENGE_SUCCEED")])

    account = MySqlStore(session).find_trading_account_by_uuid(TA)

    sql, params = session.statements[0]
    assert "UUID_TO_BIN(:uuid)" in sql
    assert "BIN_TO_UUID(ta.trading_account_uuid)" in sql
    assert params == {"uuid": TA}
    assert account.ctrader_trading_account == 4242
    assert account.current_profit_target_percent == 0.05
    assert account.success == 1
    assert not account.is_active


def test_missing_row_returns_none():
    assert MySqlStore(RecordingSession([])).find_user_by_email("nobody@example.com") is None


def test_user_search_is_a_bounded_like():
    session = RecordingSession(
        [
            {
                "user_uuid": "u-1",
                "CTID": None,
                "email": "jane@example.com",
                "firstname": "Jane",
                "lastname": None,
            }
        ]
    )

    (user,) = MySqlStore(session).search_users_by_email("jane")

    sql, params = session.statements[0]
    assert "LIKE :pattern LIMIT 20" in sql
    assert params == {"pattern": "%jane%"}
    assert user.ctid is None
    assert user.lastname == ""


def test_status_writes_share_one_update():
    session = RecordingSession()
    store = MySqlStore(session)

    store.mark_account_success(TA, "CHALLENGE_SUCCEED")
    store.deactivate_account(TA, "NEWS_VIOLATION")
    store.restore_account_status(TA, None, "")

    assert [p["success"] for _, p in session.statements] == [1, 0, None]
    assert all(sql.startswith("UPDATE trading_account SET success") for sql, _ in session.statements)


def test_reactivate_with_profit_target_updates_the_target():
    session = RecordingSession()

    MySqlStore(session).reactivate_account(TA, "PROFIT_TARGET_RECALCULATED", 0.06)

    sql, params = session.statements[0]
    assert "success = NULL" in sql
    assert "current_profit_target_percent = :target" in sql
    assert params["target"] == 0.06


def test_audit_insert_serializes_details_and_handles_missing_target():
    session = RecordingSession()
    store = MySqlStore(session)

    store.insert_audit_log(
        "CREATE_TRADING_ACCOUNT_FAILED",
        "orders",
        None,
        {"when": datetime(2026, 1, 2, 3, 4, 5), "rollback": "done"},
        "alice",
        "staging",
    )

    sql, params = session.statements[0]
    assert "NULL, :details" in sql
    details = json.loads(params["details"])
    assert details == {"when": "2026-01-02 03:04:05", "rollback": "done"}
    assert (params["operator"], params["environment"]) == ("alice", "staging")


def test_audit_reads_are_newest_first_and_decode_details():
    session = RecordingSession(
        [
            {
                "id": 7,
                "action_type": "DEACTIVATE_ACCOUNT",
                "target_table": "trading_account",
                "target_uuid": TA,
                "details": '{"reason": "MAX_DRAW_DOWN"}',
                "operator": "alice",
                "environment": "production",
                "executed_at": datetime(2026, 3, 1, 12, 0),
            }
        ]
    )

    (entry,) = MySqlStore(session).audit_logs_for_target(TA, limit=5)

    sql, params = session.statements[0]
    assert "ORDER BY executed_at DESC, id DESC LIMIT :limit" in sql
    assert params == {"target": TA, "limit": 5}
    assert entry.details == {"reason": "MAX_DRAW_DOWN"}


def test_pending_activation_picks_latest():
    session = RecordingSession(
        [
            {
                "activation_uuid": "a-1",
                "trading_account_uuid": TA,
                "amount": "149.90",
                "currency": "EUR",
                "payment_link": None,
                "status": "pending",
                "created_at": None,
                "expires_at": None,
            }
        ]
    )

    activation = MySqlStore(session).pending_funded_activation(TA)

    sql, _ = session.statements[0]
    assert "status = 'pending'" in sql
    assert "ORDER BY created_at DESC LIMIT 1" in sql
    assert activation.amount == 149.9


def test_payouts_filter_by_status_only_when_given():
    row = {
        "payout_request_uuid": "p-1",
        "payout_method": "iban",
        "iban": "FR76",
        "wallet_address": None,
        "balance_before_request": "10500.00",
        "total_profit": "500.00",
        "payout_amount": "400.00",
        "profit_split": "80",
        "status": "pending",
        "created_at": None,
        "email": "trader@example.com",
        "ctrader_trading_account": None,
    }
    session = RecordingSession([row], [])
    store = MySqlStore(session)

    (payout,) = store.payouts_by_status("pending")
    store.payouts_by_status()

    (filtered_sql, filtered), (all_sql, unfiltered) = session.statements
    assert "WHERE pr.status = :status" in filtered_sql
    assert filtered == {"status": "pending"}
    assert "WHERE" not in all_sql
    assert unfiltered == {}
    assert payout.payout_amount == 400.0
    assert payout.ctrader_trading_account is None


def test_create_promo_binds_optional_uuids_as_null():
    session = RecordingSession()
    promo = Promo(
        promo_uuid="pr-1",
        code="SUMMER",
        percent_promo=0.1,
        is_global=True,
        is_unlimited=False,
        expires_at=date(2026, 12, 31),
        descriptions={"en": "Summer sale"},
    )

    MySqlStore(session).create_promo(promo)

    sql, params = session.statements[0]
    assert "NULL, NULL, :desc_fr" in sql
    assert "`global`" in sql
    assert params["global"] == 1
    assert params["unlimited"] == 0
    assert params["desc_en"] == "Summer sale"
    assert params["desc_fr"] is None


def test_option_changes_target_the_account_options_table():
    session = RecordingSession()
    store = MySqlStore(session)

    store.add_trading_account_option(TA, "opt-1")
    store.remove_trading_account_option(TA, "opt-1")

    (add_sql, add), (remove_sql, remove) = session.statements
    assert add_sql.startswith("INSERT INTO trading_account_options")
    assert remove_sql.startswith("DELETE FROM trading_account_options")
    assert add == remove == {"uuid": TA, "option": "opt-1"}
