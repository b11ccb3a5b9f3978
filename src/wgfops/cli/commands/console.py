"""Interactive operator console."""

from __future__ import annotations

import logging

import questionary
import typer

from wgfops.cli.commands.actions import QUIT, SWITCH, action_choices, handler_for
from wgfops.cli.common.context import AppContext, open_session, workflow_context
from wgfops.cli.common.exits import exit_from_exc, ok_exit
from wgfops.cli.common.output import out
from wgfops.cli.prompts import Confirmer, confirm_production_session
from wgfops.core.config import Environment
from wgfops.core.errors import WgfOpsError
from wgfops.core.session import DatabaseSession, SessionError
from wgfops.core.workflows.base import PreconditionFailed

logger = logging.getLogger(__name__)


def choose_environment() -> Environment | None:
    """Return the chosen environment, or None to quit."""
    choice = out.select_one(
        "Environment:",
        [
            questionary.Choice(title="Staging", value=Environment.STAGING),
            questionary.Choice(title="Production", value=Environment.PRODUCTION),
            questionary.Separator(),
            questionary.Choice(title="Quit", value=QUIT),
        ],
    )
    return None if choice == QUIT else choice


def _not_blank(value: str) -> bool | str:
    return True if value.strip() else "The operator name is required"


def ask_operator() -> str:
    return out.ask_text("Operator name (recorded in the audit log):", validate=_not_blank)


def actions_loop(appctx: AppContext, session: DatabaseSession) -> bool:
    """
    Run actions on one session until the operator leaves.

    Returns:
        True to go back to environment selection, False to quit.
    """
    ctx = workflow_context(appctx, session)
    confirm = Confirmer(session.environment)
    label = session.environment.label

    while True:
        out.print()
        choice = out.select_one(f"[{label}] Action:", action_choices())
        if choice == SWITCH:
            return True
        if choice == QUIT:
            return False

        try:
            handler_for(choice)(ctx, confirm)
        except PreconditionFailed as exc:
            if exc.level == "warn":
                out.warn(str(exc))
            else:
                out.error(str(exc))
        except KeyboardInterrupt:
            raise
        except Exception as exc:  # contained to the action, the session stays usable
            logger.debug("action %s failed", choice, exc_info=True)
            out.error(f"Action failed: {exc}")


def run_console(appctx: AppContext) -> None:
    """Environment selection, session setup and the actions loop."""
    operator = appctx.operator
    while True:
        environment = choose_environment()
        if environment is None:
            return

        if environment == Environment.PRODUCTION and not confirm_production_session():
            out.info("Production access cancelled.")
            continue

        if not operator:
            operator = ask_operator()

        try:
            session = open_session(appctx, environment, operator)
        except SessionError as exc:
            out.error(f"Connection failed ({exc.kind.value}): {exc}")
            out.info(exc.hint)
            continue
        except WgfOpsError as exc:
            out.error(str(exc))
            continue

        out.environment_banner(environment.label, environment == Environment.PRODUCTION)
        out.success(f"Connected to {environment.label} as {operator}.")
        try:
            switch = actions_loop(appctx, session)
        finally:
            session.close()
        if not switch:
            return


def console(ctx: typer.Context) -> None:
    """Interactive console: pick an environment, then run operator actions."""
    appctx: AppContext = ctx.obj
    try:
        run_console(appctx)
    except KeyboardInterrupt:
        out.print()
        ok_exit("Interrupted, bye.")
    except Exception as exc:
        logger.debug("unexpected error", exc_info=True)
        exit_from_exc(exc, message=f"Unexpected error: {exc}", code=1)
    ok_exit("Bye.")
