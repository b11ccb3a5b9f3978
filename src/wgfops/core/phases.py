"""Challenge phases, transitions and account reasons.

These values mirror the constants of the trading backend; changing them here
without changing the backend breaks the workflows.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class Phase(IntEnum):
    UNLIMITED = 0
    STANDARD_ONE = 1
    STANDARD_TWO = 2
    INSTANT_FUNDED_RULES = 3
    FUNDED_STANDARD = 4
    FUNDED_UNLIMITED = 5


class Reason:
    MAX_DAILY_DRAW_DOWN = "MAX_DAILY_DRAW_DOWN"
    MAX_DRAW_DOWN = "MAX_DRAW_DOWN"
    NEWS_VIOLATION = "NEWS_VIOLATION"
    CHALLENGE_EXPIRED = "CHALLENGE_EXPIRED"
    CHALLENGE_REVIEW = "CHALLENGE_REVIEW"
    CHALLENGE_SUCCEED = "CHALLENGE_SUCCEED"
    FUNDED_ACTIVATED = "FUNDED_ACTIVATED"
    PROFIT_TARGET_RECALCULATED = "PROFIT_TARGET_RECALCULATED"
    NO_TRADE_HISTORY_ZOMBIE = "NO_TRADE_HISTORY_ZOMBIE"
    TRADER_NOT_FOUND = "TRADER_NOT_FOUND"


@dataclass(frozen=True)
class PhaseTransition:
    next_phase: int
    next_server: str  # "demo" | "live"


PHASE_TRANSITIONS: dict[str, dict[int, PhaseTransition]] = {
    "standard": {
        Phase.STANDARD_ONE: PhaseTransition(Phase.STANDARD_TWO, "demo"),
        Phase.STANDARD_TWO: PhaseTransition(Phase.FUNDED_STANDARD, "live"),
    },
    "unlimited": {
        Phase.UNLIMITED: PhaseTransition(Phase.FUNDED_UNLIMITED, "live"),
    },
}

INITIAL_PHASE: dict[str, int] = {
    "standard": Phase.STANDARD_ONE,
    "unlimited": Phase.UNLIMITED,
    "instant_funded": Phase.UNLIMITED,
}

# Manual funded activation entry points, by challenge type.
FUNDED_ELIGIBLE: dict[str, int] = {
    "standard": Phase.STANDARD_TWO,
    "unlimited": Phase.UNLIMITED,
}

FUNDED_PHASES = frozenset({Phase.FUNDED_STANDARD, Phase.FUNDED_UNLIMITED})

UNLIMITED_ACTIVATION_FEE = "149.90 EUR"

DEACTIVATION_REASONS: tuple[tuple[str, str], ...] = (
    (Reason.MAX_DAILY_DRAW_DOWN, "Daily drawdown exceeded"),
    (Reason.MAX_DRAW_DOWN, "Total drawdown exceeded"),
    (Reason.NEWS_VIOLATION, "News trading rule violation"),
    (Reason.CHALLENGE_EXPIRED, "Challenge expired"),
    (Reason.CHALLENGE_REVIEW, "Put under review by support"),
    (Reason.NO_TRADE_HISTORY_ZOMBIE, "Zombie account without history"),
    (Reason.TRADER_NOT_FOUND, "Trader not found on cTrader"),
)

_PHASE_LABELS = {
    Phase.UNLIMITED: "Phase 0 (Unlimited/Instant)",
    Phase.STANDARD_ONE: "Phase 1",
    Phase.STANDARD_TWO: "Phase 2",
    Phase.INSTANT_FUNDED_RULES: "Phase 3 (Instant Funded)",
    Phase.FUNDED_STANDARD: "Funded Standard",
    Phase.FUNDED_UNLIMITED: "Funded Unlimited",
}


def resolve_transition(challenge_type: str, phase: int) -> PhaseTransition | None:
    """Return the supported transition out of `phase`, or None."""
    return PHASE_TRANSITIONS.get(challenge_type, {}).get(phase)


def format_phase(phase: int, challenge_type: str | None = None) -> str:
    label = _PHASE_LABELS.get(phase, f"Phase {phase}")
    return f"{label} [{challenge_type}]" if challenge_type else label


def format_status(success: int | None) -> str:
    if success is None:
        return "Active"
    if success == 1:
        return "Succeeded"
    if success == 0:
        return "Failed"
    return f"Unknown ({success})"
