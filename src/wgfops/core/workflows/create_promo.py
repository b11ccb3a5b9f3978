"""Create a promo code."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Mapping

from wgfops.core.store import Challenge, Promo, Store, User
from wgfops.core.workflows.base import (
    OutcomeStatus,
    PreconditionFailed,
    WorkflowContext,
    WorkflowOutcome,
    format_percent,
)

ACTION = "CREATE_PROMO"

MAX_PROMO_PHASE = 5


@dataclass(frozen=True)
class CreatePromoPlan:
    promo: Promo
    challenge: Challenge | None = None
    user: User | None = None

    @property
    def description(self) -> str:
        return f'Create promo code "{self.promo.code}"'

    def preview(self) -> dict[str, str]:
        promo = self.promo
        return {
            "Code": promo.code,
            "Discount": format_percent(promo.percent_promo * 100),
            "Global": "Yes" if promo.is_global else "No",
            "Unlimited": "Yes" if promo.is_unlimited else "No",
            "Challenge": f"{self.challenge.name} ({self.challenge.type})" if self.challenge else "All",
            "User": self.user.email if self.user else "All",
            "Phase": str(promo.phase),
            "Expires": promo.expires_at.isoformat() if promo.expires_at else "Never",
            "Stripe ID": promo.stripe_id or "N/A",
            "Description FR": promo.descriptions.get("fr") or "N/A",
            "Description EN": promo.descriptions.get("en") or "N/A",
        }


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def plan_create_promo(
    store: Store,
    code: str,
    percent_promo: float,
    *,
    is_global: bool,
    is_unlimited: bool,
    challenge: Challenge | None = None,
    user: User | None = None,
    phase: int = 0,
    expires_at: date | None = None,
    stripe_id: str | None = None,
    descriptions: Mapping[str, str | None] | None = None,
) -> CreatePromoPlan:
    """
    Validate a new promo code.

    Args:
        percent_promo: Discount as a ratio in (0, 1].
        challenge: Restrict the code to one challenge, or None for all.
        user: Restrict the code to one user, or None for everyone.
        descriptions: Per-language texts keyed by "fr", "en", "es", "de", "it".

    Raises:
        PreconditionFailed: The code is too short or already exists, or the
            discount or phase is out of range.
    """
    code = code.strip()
    if len(code) < 2:
        raise PreconditionFailed("The promo code needs at least 2 characters.")
    if not 0 < percent_promo <= 1:
        raise PreconditionFailed("The discount must be a ratio in (0, 1].")
    if not 0 <= phase <= MAX_PROMO_PHASE:
        raise PreconditionFailed(f"The phase must be between 0 and {MAX_PROMO_PHASE}.")
    if store.find_promo_by_code(code) is not None:
        raise PreconditionFailed(f'The code "{code}" already exists.')

    promo = Promo(
        promo_uuid="",
        code=code,
        percent_promo=percent_promo,
        is_global=is_global,
        is_unlimited=is_unlimited,
        phase=phase,
        expires_at=expires_at,
        stripe_id=_clean(stripe_id),
        user_uuid=user.user_uuid if user else None,
        challenge_uuid=challenge.challenge_uuid if challenge else None,
        descriptions={lang: _clean(text) for lang, text in (descriptions or {}).items()},
    )
    return CreatePromoPlan(promo=promo, challenge=challenge, user=user)


def _new_uuid() -> str:
    return str(uuid.uuid4())


def execute_create_promo(
    ctx: WorkflowContext,
    plan: CreatePromoPlan,
    *,
    new_uuid: Callable[[], str] = _new_uuid,
) -> WorkflowOutcome:
    promo = replace(plan.promo, promo_uuid=new_uuid())
    with ctx.session.transaction():
        ctx.store.create_promo(promo)
        ctx.audit(
            ACTION,
            "promo",
            promo.promo_uuid,
            {
                "code": promo.code,
                "percent_promo": promo.percent_promo,
                "is_global": promo.is_global,
                "is_unlimited": promo.is_unlimited,
            },
        )
    return WorkflowOutcome(
        action=ACTION,
        status=OutcomeStatus.SUCCEEDED,
        message=f'Promo code "{promo.code}" created.',
        recap={
            "Code": promo.code,
            "Promo UUID": promo.promo_uuid,
            "Discount": format_percent(promo.percent_promo * 100),
        },
    )
