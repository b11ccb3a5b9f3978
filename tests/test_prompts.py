import pytest

from conftest import make_account
from wgfops.cli.prompts import is_valid_uuid, lookup_trading_account, lookup_users
from wgfops.core.store import User

JANE = User(
    user_uuid="44444444-4444-4444-4444-444444444444",
    email="jane@example.com",
    firstname="Jane",
    lastname="Doe",
    ctid=9001,
)


@pytest.fixture
def populated(store):
    store.users[JANE.user_uuid] = JANE
    account = make_account()
    store.accounts[account.trading_account_uuid] = account
    return store


def test_uuid_validation():
    assert is_valid_uuid(JANE.user_uuid)
    assert not is_valid_uuid("not-a-uuid")


@pytest.mark.parametrize(
    "method,query",
    [
        ("email", "jane@example.com"),
        ("email", "jane"),
        ("uuid", f" {JANE.user_uuid} "),
        ("name", "Doe"),
        ("ctid", "9001"),
    ],
)
def test_lookup_users_by_each_method(populated, method, query):
    assert lookup_users(populated, method, query) == [JANE]


def test_lookup_users_exact_email_miss_is_empty(populated):
    assert lookup_users(populated, "email", "john@example.com") == []


@pytest.mark.parametrize(
    "method,query,message",
    [
        ("uuid", "1234", "Invalid UUID"),
        ("ctid", "abc", "Invalid CTID"),
        ("phone", "0600", "Unknown lookup"),
    ],
)
def test_lookup_users_rejects_malformed_queries(populated, method, query, message):
    with pytest.raises(ValueError, match=message):
        lookup_users(populated, method, query)


def test_lookup_trading_account(populated):
    account = make_account()

    assert lookup_trading_account(populated, "ctrader", "4242") == account
    assert lookup_trading_account(populated, "uuid", account.trading_account_uuid) == account
    assert lookup_trading_account(populated, "ctrader", "1") is None
    with pytest.raises(ValueError, match="Invalid cTrader ID"):
        lookup_trading_account(populated, "ctrader", "42a")
