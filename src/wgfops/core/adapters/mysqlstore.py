"""MySQL implementation of the Store.

Every query goes through the DatabaseSession of the active environment, so
writes join whatever transaction the calling workflow opened. Rows come back
as mappings and are turned into the frozen read models of `wgfops.core.store`.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from wgfops.core.session import DatabaseSession
from wgfops.core.store import (
    PROMO_LANGUAGES,
    AuditEntry,
    Challenge,
    ChallengeRule,
    FundedActivation,
    Option,
    PayoutRequest,
    Promo,
    TradingAccount,
    User,
)

# UUID columns are BINARY(16); every read converts with BIN_TO_UUID and every
# bound parameter with UUID_TO_BIN.
_USER_COLS = """
  BIN_TO_UUID(user_uuid) AS user_uuid, CTID, email, firstname, lastname
"""

_CHALLENGE_COLS = """
  BIN_TO_UUID(challenge_uuid) AS challenge_uuid, name, type, price,
  initial_coins_amount, published
"""

_RULE_COLS = """
  BIN_TO_UUID(challenge_uuid) AS challenge_uuid, phase,
  max_daily_drawdown_percent, profit_target_percent,
  min_trading_days, phase_duration, max_total_drawdown_percent
"""

_TA_COLS = """
  BIN_TO_UUID(ta.trading_account_uuid) AS trading_account_uuid,
  BIN_TO_UUID(ta.order_uuid) AS order_uuid,
  BIN_TO_UUID(ta.challenge_uuid) AS challenge_uuid,
  ta.ctrader_trading_account, ta.ctrader_server, ta.challenge_phase,
  ta.current_profit_target_percent, ta.success, ta.reason
"""

_FA_COLS = """
  BIN_TO_UUID(activation_uuid) AS activation_uuid,
  BIN_TO_UUID(trading_account_uuid) AS trading_account_uuid,
  amount, currency, payment_link, status, created_at, expires_at
"""

_PAYOUT_COLS = """
  BIN_TO_UUID(pr.payout_request_uuid) AS payout_request_uuid,
  pr.payout_method, pr.iban, pr.wallet_address,
  pr.balance_before_request, pr.total_profit, pr.payout_amount,
  pr.profit_split, pr.status, pr.created_at,
  u.email, ta.ctrader_trading_account
"""

_PROMO_COLS = """
  BIN_TO_UUID(promo_uuid) AS promo_uuid, BIN_TO_UUID(user_uuid) AS user_uuid,
  BIN_TO_UUID(challenge_uuid) AS challenge_uuid, phase, code, percent_promo,
  expires_at, stripe_ID, is_unlimited, `global`,
  descriptionFr, descriptionEn, descriptionEs, descriptionDe, descriptionIt
"""

_AUDIT_COLS = """
  id, action_type, target_table, BIN_TO_UUID(target_uuid) AS target_uuid,
  details, operator, environment, executed_at
"""


def _float(value: Any) -> float | None:
    return None if value is None else float(value)


def _user(row: Mapping[str, Any]) -> User:
    return User(
        user_uuid=row["user_uuid"],
        email=row["email"],
        firstname=row["firstname"] or "",
        lastname=row["lastname"] or "",
        ctid=row["CTID"] or None,
    )


def _challenge(row: Mapping[str, Any]) -> Challenge:
    return Challenge(
        challenge_uuid=row["challenge_uuid"],
        name=row["name"],
        type=row["type"],
        price=float(row["price"]),
        initial_coins_amount=float(row["initial_coins_amount"]),
        published=bool(row["published"]),
    )


def _rule(row: Mapping[str, Any]) -> ChallengeRule:
    return ChallengeRule(
        challenge_uuid=row["challenge_uuid"],
        phase=int(row["phase"]),
        profit_target_percent=float(row["profit_target_percent"]),
        min_trading_days=int(row["min_trading_days"]),
        phase_duration=str(row["phase_duration"]),
        max_daily_drawdown_percent=_float(row["max_daily_drawdown_percent"]),
        max_total_drawdown_percent=_float(row["max_total_drawdown_percent"]),
    )


def _account(row: Mapping[str, Any]) -> TradingAccount:
    success = row["success"]
    return TradingAccount(
        trading_account_uuid=row["trading_account_uuid"],
        order_uuid=row["order_uuid"],
        challenge_uuid=row["challenge_uuid"],
        ctrader_trading_account=int(row["ctrader_trading_account"]),
        ctrader_server=row["ctrader_server"],
        challenge_phase=int(row["challenge_phase"]),
        current_profit_target_percent=float(row["current_profit_target_percent"]),
        success=None if success is None else int(success),
        reason=row["reason"] or "",
    )


def _activation(row: Mapping[str, Any]) -> FundedActivation:
    return FundedActivation(
        activation_uuid=row["activation_uuid"],
        trading_account_uuid=row["trading_account_uuid"],
        amount=float(row["amount"]),
        currency=row["currency"],
        status=row["status"],
        payment_link=row["payment_link"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
    )


def _option(row: Mapping[str, Any]) -> Option:
    return Option(
        option_uuid=row["option_uuid"],
        name=row["name"],
        majoration_percent=float(row["majoration_percent"]),
    )


def _payout(row: Mapping[str, Any]) -> PayoutRequest:
    ctrader = row["ctrader_trading_account"]
    return PayoutRequest(
        payout_request_uuid=row["payout_request_uuid"],
        email=row["email"],
        payout_method=row["payout_method"],
        payout_amount=float(row["payout_amount"]),
        status=row["status"],
        ctrader_trading_account=None if ctrader is None else int(ctrader),
        iban=row["iban"],
        wallet_address=row["wallet_address"],
        balance_before_request=float(row["balance_before_request"] or 0),
        total_profit=float(row["total_profit"] or 0),
        profit_split=str(row["profit_split"] or ""),
        created_at=row["created_at"],
    )


def _promo(row: Mapping[str, Any]) -> Promo:
    expires_at = row["expires_at"]
    return Promo(
        promo_uuid=row["promo_uuid"],
        code=row["code"],
        percent_promo=float(row["percent_promo"]),
        is_global=bool(row["global"]),
        is_unlimited=bool(row["is_unlimited"]),
        phase=int(row["phase"] or 0),
        expires_at=expires_at.date() if hasattr(expires_at, "date") else expires_at,
        stripe_id=row["stripe_ID"],
        user_uuid=row["user_uuid"],
        challenge_uuid=row["challenge_uuid"],
        descriptions={
            lang: row[f"description{lang.title()}"] for lang in PROMO_LANGUAGES
        },
    )


def _audit(row: Mapping[str, Any]) -> AuditEntry:
    details = row["details"]
    if isinstance(details, (str, bytes)):
        details = json.loads(details)
    return AuditEntry(
        id=int(row["id"]),
        action_type=row["action_type"],
        target_table=row["target_table"],
        target_uuid=row["target_uuid"],
        details=details or {},
        operator=row["operator"],
        environment=row["environment"],
        executed_at=row["executed_at"],
    )


class MySqlStore:
    """Store implementation issuing SQL through a DatabaseSession."""

    def __init__(self, session: DatabaseSession) -> None:
        self.session = session

    # -- users -----------------------------------------------------------

    def find_user_by_email(self, email: str) -> User | None:
        row = self.session.fetch_one(
            f"SELECT {_USER_COLS} FROM user WHERE email = :email", {"email": email}
        )
        return _user(row) if row else None

    def find_user_by_uuid(self, user_uuid: str) -> User | None:
        row = self.session.fetch_one(
            f"SELECT {_USER_COLS} FROM user WHERE user_uuid = UUID_TO_BIN(:uuid)",
            {"uuid": user_uuid},
        )
        return _user(row) if row else None

    def find_user_by_ctid(self, ctid: int) -> User | None:
        row = self.session.fetch_one(
            f"SELECT {_USER_COLS} FROM user WHERE CTID = :ctid", {"ctid": ctid}
        )
        return _user(row) if row else None

    def search_users_by_email(self, pattern: str) -> list[User]:
        rows = self.session.fetch_all(
            f"SELECT {_USER_COLS} FROM user WHERE email LIKE :pattern LIMIT 20",
            {"pattern": f"%{pattern}%"},
        )
        return [_user(r) for r in rows]

    def search_users_by_name(self, name: str) -> list[User]:
        rows = self.session.fetch_all(
            f"SELECT {_USER_COLS} FROM user "
            "WHERE firstname LIKE :pattern OR lastname LIKE :pattern LIMIT 20",
            {"pattern": f"%{name}%"},
        )
        return [_user(r) for r in rows]

    # -- trading accounts ------------------------------------------------

    def find_trading_account_by_uuid(self, ta_uuid: str) -> TradingAccount | None:
        row = self.session.fetch_one(
            f"SELECT {_TA_COLS} FROM trading_account ta "
            "WHERE ta.trading_account_uuid = UUID_TO_BIN(:uuid)",
            {"uuid": ta_uuid},
        )
        return _account(row) if row else None

    def find_trading_account_by_ctrader(self, ctrader_id: int) -> TradingAccount | None:
        row = self.session.fetch_one(
            f"SELECT {_TA_COLS} FROM trading_account ta "
            "WHERE ta.ctrader_trading_account = :ctrader",
            {"ctrader": ctrader_id},
        )
        return _account(row) if row else None

    def trading_accounts_by_order(self, order_uuid: str) -> list[TradingAccount]:
        rows = self.session.fetch_all(
            f"SELECT {_TA_COLS} FROM trading_account ta "
            "WHERE ta.order_uuid = UUID_TO_BIN(:uuid) ORDER BY ta.challenge_phase ASC",
            {"uuid": order_uuid},
        )
        return [_account(r) for r in rows]

    def mark_account_success(self, ta_uuid: str, reason: str) -> None:
        self.restore_account_status(ta_uuid, 1, reason)

    def deactivate_account(self, ta_uuid: str, reason: str) -> None:
        self.restore_account_status(ta_uuid, 0, reason)

    def reactivate_account(
        self, ta_uuid: str, reason: str, profit_target: float | None = None
    ) -> None:
        if profit_target is None:
            self.restore_account_status(ta_uuid, None, reason)
            return
        self.session.execute(
            "UPDATE trading_account "
            "SET success = NULL, reason = :reason, current_profit_target_percent = :target "
            "WHERE trading_account_uuid = UUID_TO_BIN(:uuid)",
            {"reason": reason, "target": profit_target, "uuid": ta_uuid},
        )

    def restore_account_status(
        self, ta_uuid: str, success: int | None, reason: str
    ) -> None:
        self.session.execute(
            "UPDATE trading_account SET success = :success, reason = :reason "
            "WHERE trading_account_uuid = UUID_TO_BIN(:uuid)",
            {"success": success, "reason": reason, "uuid": ta_uuid},
        )

    def update_profit_target(self, ta_uuid: str, target: float, reason: str) -> None:
        self.session.execute(
            "UPDATE trading_account "
            "SET current_profit_target_percent = :target, reason = :reason "
            "WHERE trading_account_uuid = UUID_TO_BIN(:uuid)",
            {"target": target, "reason": reason, "uuid": ta_uuid},
        )

    def update_ctrader_id(self, ta_uuid: str, ctrader_id: int) -> None:
        self.session.execute(
            "UPDATE trading_account SET ctrader_trading_account = :ctrader "
            "WHERE trading_account_uuid = UUID_TO_BIN(:uuid)",
            {"ctrader": ctrader_id, "uuid": ta_uuid},
        )

    def trading_account_options(self, ta_uuid: str) -> list[Option]:
        rows = self.session.fetch_all(
            "SELECT BIN_TO_UUID(o.option_uuid) AS option_uuid, o.name, o.majoration_percent "
            "FROM trading_account_options tao "
            "JOIN options o ON tao.option_uuid = o.option_uuid "
            "WHERE tao.trading_account_uuid = UUID_TO_BIN(:uuid) ORDER BY o.name",
            {"uuid": ta_uuid},
        )
        return [_option(r) for r in rows]

    def add_trading_account_option(self, ta_uuid: str, option_uuid: str) -> None:
        self.session.execute(
            "INSERT INTO trading_account_options (trading_account_uuid, option_uuid) "
            "VALUES (UUID_TO_BIN(:uuid), UUID_TO_BIN(:option))",
            {"uuid": ta_uuid, "option": option_uuid},
        )

    def remove_trading_account_option(self, ta_uuid: str, option_uuid: str) -> None:
        self.session.execute(
            "DELETE FROM trading_account_options "
            "WHERE trading_account_uuid = UUID_TO_BIN(:uuid) "
            "AND option_uuid = UUID_TO_BIN(:option)",
            {"uuid": ta_uuid, "option": option_uuid},
        )

    # -- challenges and options ------------------------------------------

    def published_challenges(self) -> list[Challenge]:
        rows = self.session.fetch_all(
            f"SELECT {_CHALLENGE_COLS} FROM challenge WHERE published = 1 ORDER BY type, price"
        )
        return [_challenge(r) for r in rows]

    def find_challenge(self, challenge_uuid: str) -> Challenge | None:
        row = self.session.fetch_one(
            f"SELECT {_CHALLENGE_COLS} FROM challenge "
            "WHERE challenge_uuid = UUID_TO_BIN(:uuid)",
            {"uuid": challenge_uuid},
        )
        return _challenge(row) if row else None

    def challenge_rules(self, challenge_uuid: str) -> list[ChallengeRule]:
        rows = self.session.fetch_all(
            f"SELECT {_RULE_COLS} FROM challenge_rules "
            "WHERE challenge_uuid = UUID_TO_BIN(:uuid) ORDER BY phase",
            {"uuid": challenge_uuid},
        )
        return [_rule(r) for r in rows]

    def all_options(self) -> list[Option]:
        rows = self.session.fetch_all(
            "SELECT BIN_TO_UUID(option_uuid) AS option_uuid, name, majoration_percent "
            "FROM options ORDER BY name"
        )
        return [_option(r) for r in rows]

    # -- orders ----------------------------------------------------------

    def create_payment(
        self, payment_uuid: str, method: str, price: float, currency: str, proof: str
    ) -> None:
        self.session.execute(
            "INSERT INTO payment (payment_uuid, proof, payment_date, method, price, currency) "
            "VALUES (UUID_TO_BIN(:uuid), :proof, NOW(), :method, :price, :currency)",
            {
                "uuid": payment_uuid,
                "proof": proof,
                "method": method,
                "price": price,
                "currency": currency,
            },
        )

    def create_order(
        self,
        order_uuid: str,
        challenge_uuid: str,
        user_uuid: str,
        payment_uuid: str,
        configuration: str,
    ) -> None:
        self.session.execute(
            "INSERT INTO orders (order_uuid, challenge_uuid, user_uuid, payment_uuid, "
            "order_challenge_configuration) VALUES (UUID_TO_BIN(:order), "
            "UUID_TO_BIN(:challenge), UUID_TO_BIN(:user), UUID_TO_BIN(:payment), :config)",
            {
                "order": order_uuid,
                "challenge": challenge_uuid,
                "user": user_uuid,
                "payment": payment_uuid,
                "config": configuration,
            },
        )

    def create_order_option(self, order_uuid: str, option_uuid: str) -> None:
        self.session.execute(
            "INSERT INTO order_options (order_uuid, option_uuid) "
            "VALUES (UUID_TO_BIN(:order), UUID_TO_BIN(:option))",
            {"order": order_uuid, "option": option_uuid},
        )

    def delete_order_options(self, order_uuid: str) -> None:
        self.session.execute(
            "DELETE FROM order_options WHERE order_uuid = UUID_TO_BIN(:order)",
            {"order": order_uuid},
        )

    def delete_order(self, order_uuid: str) -> None:
        self.session.execute(
            "DELETE FROM orders WHERE order_uuid = UUID_TO_BIN(:order)",
            {"order": order_uuid},
        )

    def delete_payment(self, payment_uuid: str) -> None:
        self.session.execute(
            "DELETE FROM payment WHERE payment_uuid = UUID_TO_BIN(:payment)",
            {"payment": payment_uuid},
        )

    # -- funded activations ----------------------------------------------

    def pending_funded_activation(self, ta_uuid: str) -> FundedActivation | None:
        row = self.session.fetch_one(
            f"SELECT {_FA_COLS} FROM funded_activation "
            "WHERE trading_account_uuid = UUID_TO_BIN(:uuid) AND status = 'pending' "
            "ORDER BY created_at DESC LIMIT 1",
            {"uuid": ta_uuid},
        )
        return _activation(row) if row else None

    # -- payouts ---------------------------------------------------------

    def payouts_by_status(self, status: str | None = None) -> list[PayoutRequest]:
        where = "WHERE pr.status = :status " if status else ""
        rows = self.session.fetch_all(
            f"SELECT {_PAYOUT_COLS} FROM payout_request pr "
            "JOIN user u ON pr.user_uuid = u.user_uuid "
            "LEFT JOIN trading_account ta "
            "ON pr.trading_account_uuid = ta.trading_account_uuid "
            f"{where}ORDER BY pr.created_at DESC LIMIT 50",
            {"status": status} if status else None,
        )
        return [_payout(r) for r in rows]

    def update_payout_status(self, payout_uuid: str, status: str) -> None:
        self.session.execute(
            "UPDATE payout_request SET status = :status, updated_at = NOW() "
            "WHERE payout_request_uuid = UUID_TO_BIN(:uuid)",
            {"status": status, "uuid": payout_uuid},
        )

    # -- promos ----------------------------------------------------------

    def find_promo_by_code(self, code: str) -> Promo | None:
        row = self.session.fetch_one(
            f"SELECT {_PROMO_COLS} FROM promo WHERE code = :code", {"code": code}
        )
        return _promo(row) if row else None

    def create_promo(self, promo: Promo) -> None:
        user_sql = "UUID_TO_BIN(:user)" if promo.user_uuid else "NULL"
        challenge_sql = "UUID_TO_BIN(:challenge)" if promo.challenge_uuid else "NULL"
        params = {
            "uuid": promo.promo_uuid,
            "code": promo.code,
            "percent": promo.percent_promo,
            "unlimited": int(promo.is_unlimited),
            "global": int(promo.is_global),
            "phase": promo.phase,
            "expires": promo.expires_at,
            "stripe": promo.stripe_id,
            "user": promo.user_uuid,
            "challenge": promo.challenge_uuid,
        }
        for lang in PROMO_LANGUAGES:
            params[f"desc_{lang}"] = promo.descriptions.get(lang)
        self.session.execute(
            "INSERT INTO promo (promo_uuid, code, percent_promo, is_valid, is_unlimited, "
            "`global`, phase, expires_at, stripe_ID, user_uuid, challenge_uuid, "
            "descriptionFr, descriptionEn, descriptionEs, descriptionDe, descriptionIt) "
            "VALUES (UUID_TO_BIN(:uuid), :code, :percent, 1, :unlimited, :global, :phase, "
            f":expires, :stripe, {user_sql}, {challenge_sql}, "
            ":desc_fr, :desc_en, :desc_es, :desc_de, :desc_it)",
            params,
        )

    # -- audit log -------------------------------------------------------

    def insert_audit_log(
        self,
        action_type: str,
        target_table: str,
        target_uuid: str | None,
        details: Mapping[str, Any],
        operator: str,
        environment: str,
    ) -> None:
        target_sql = "UUID_TO_BIN(:target)" if target_uuid else "NULL"
        self.session.execute(
            "INSERT INTO admin_audit_log "
            "(action_type, target_table, target_uuid, details, operator, environment) "
            f"VALUES (:action, :table, {target_sql}, :details, :operator, :environment)",
            {
                "action": action_type,
                "table": target_table,
                "target": target_uuid,
                "details": json.dumps(dict(details), default=str),
                "operator": operator,
                "environment": environment,
            },
        )

    def recent_audit_logs(self, limit: int = 20) -> list[AuditEntry]:
        rows = self.session.fetch_all(
            f"SELECT {_AUDIT_COLS} FROM admin_audit_log "
            "ORDER BY executed_at DESC, id DESC LIMIT :limit",
            {"limit": max(1, int(limit))},
        )
        return [_audit(r) for r in rows]

    def audit_logs_for_target(self, target_uuid: str, limit: int = 20) -> list[AuditEntry]:
        rows = self.session.fetch_all(
            f"SELECT {_AUDIT_COLS} FROM admin_audit_log "
            "WHERE target_uuid = UUID_TO_BIN(:target) "
            "ORDER BY executed_at DESC, id DESC LIMIT :limit",
            {"target": target_uuid, "limit": max(1, int(limit))},
        )
        return [_audit(r) for r in rows]
