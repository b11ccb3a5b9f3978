"""Non-interactive commands: connection check and audit log listing."""

from __future__ import annotations

import getpass

import typer

from wgfops.cli.common.context import AppContext, open_session
from wgfops.cli.common.exits import die, ok_exit, session_failed, warn_exit
from wgfops.cli.common.options import EnvOpt, LimitOpt, TargetOpt
from wgfops.cli.common.output import out
from wgfops.cli.prompts import confirm_production_session, is_valid_uuid
from wgfops.core.adapters.mysqlstore import MySqlStore
from wgfops.core.config import Environment
from wgfops.core.errors import WgfOpsError
from wgfops.core.session import DatabaseSession, SessionError


def _session(appctx: AppContext, environment: Environment) -> DatabaseSession:
    if environment == Environment.PRODUCTION and not confirm_production_session():
        ok_exit("Production access cancelled.")
    operator = appctx.operator or getpass.getuser()
    try:
        return open_session(appctx, environment, operator)
    except SessionError as exc:
        session_failed(exc)
    except WgfOpsError as exc:
        die(str(exc))


def check(ctx: typer.Context, env: Environment = EnvOpt) -> None:
    """Open a tunnel and a database session, then report the schema size."""
    appctx: AppContext = ctx.obj
    session = _session(appctx, env)
    try:
        tables = session.describe()
    finally:
        session.close()
    out.kv(
        {
            "Environment": env.label,
            "Database": session.database,
            "Tables": str(tables),
        }
    )
    ok_exit("Connection OK")


def audit(
    ctx: typer.Context,
    env: Environment = EnvOpt,
    target: str | None = TargetOpt,
    limit: int = LimitOpt,
) -> None:
    """Show the most recent audit records."""
    if target and not is_valid_uuid(target):
        die(f"Invalid UUID: {target}")

    appctx: AppContext = ctx.obj
    session = _session(appctx, env)
    try:
        store = MySqlStore(session)
        entries = (
            store.audit_logs_for_target(target, limit=limit)
            if target
            else store.recent_audit_logs(limit=limit)
        )
    finally:
        session.close()

    if not entries:
        warn_exit("No audit record found", code=0)
    out.audit_table(entries, title=f"Audit log ({env.label})")
