from wgfops.core.config import Environment
from wgfops.core.phases import (
    DEACTIVATION_REASONS,
    INITIAL_PHASE,
    Phase,
    Reason,
    format_phase,
    format_status,
    resolve_transition,
)
from wgfops.core.services import Service, service_url


def test_service_url_depends_on_environment_only():
    assert (
        service_url(Service.TRADING_ACCOUNT_MANAGER, Environment.STAGING)
        == "http://staging-trading-account-manager.staging.svc"
    )
    assert (
        service_url(Service.WATCHER, Environment.PRODUCTION)
        == "http://production-trading-account-watcher.production.svc"
    )
    assert service_url(Service.ORDER, Environment.PRODUCTION) == "http://production-order.production.svc"


def test_supported_transitions():
    assert resolve_transition("standard", 1).next_phase == Phase.STANDARD_TWO
    assert resolve_transition("standard", 1).next_server == "demo"
    assert resolve_transition("standard", 2).next_phase == Phase.FUNDED_STANDARD
    assert resolve_transition("unlimited", 0).next_phase == Phase.FUNDED_UNLIMITED
    assert resolve_transition("unlimited", 0).next_server == "live"


def test_unsupported_transitions():
    assert resolve_transition("standard", 4) is None
    assert resolve_transition("instant_funded", 0) is None
    assert resolve_transition("unknown", 1) is None


def test_initial_phases():
    assert INITIAL_PHASE == {"standard": 1, "unlimited": 0, "instant_funded": 0}


def test_formatting():
    assert format_phase(4) == "Funded Standard"
    assert format_phase(1, "standard") == "Phase 1 [standard]"
    assert format_phase(9) == "Phase 9"
    assert format_status(None) == "Active"
    assert format_status(1) == "Succeeded"
    assert format_status(0) == "Failed"


def test_deactivation_reasons_are_backend_reasons():
    values = [value for value, _ in DEACTIVATION_REASONS]
    assert Reason.MAX_DRAW_DOWN in values
    assert Reason.CHALLENGE_SUCCEED not in values
