"""Application context management for the CLI."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from pathlib import Path

from wgfops.cli.common.exits import die
from wgfops.cli.common.output import out
from wgfops.core.adapters.kubectl import KubectlGateway
from wgfops.core.adapters.mysqlstore import MySqlStore
from wgfops.core.config import Environment, Settings, load_settings
from wgfops.core.errors import ConfigError
from wgfops.core.runs import run_job
from wgfops.core.session import DatabaseSession, create_session
from wgfops.core.workflows.base import WorkflowContext


@dataclass
class AppContext:
    """Settings and cluster gateway shared by every command of one invocation."""

    settings: Settings
    gateway: KubectlGateway
    operator: str | None = None


def build_app_context(env_file: str | Path | None, operator: str | None = None) -> AppContext:
    """Load the settings and build the kubectl gateway.

    Exits with code 1 when the env file is missing or incomplete.
    """
    try:
        settings = load_settings(env_file)
    except ConfigError as exc:
        die(str(exc), code=1)
    gateway = KubectlGateway(settings.cluster_access)
    return AppContext(settings=settings, gateway=gateway, operator=operator)


def open_session(appctx: AppContext, environment: Environment, operator: str) -> DatabaseSession:
    """Open a database session; SessionError propagates to the caller."""
    with out.status(f"Connecting to {environment.label} (tunnel + database)..."):
        return create_session(
            appctx.settings, environment, operator, gateway=appctx.gateway
        )


def _job_event(msg: str) -> None:
    out.print(f"[meta]  {msg}[/]")


def workflow_context(appctx: AppContext, session: DatabaseSession) -> WorkflowContext:
    """Bundle what the workflows need to act on the session's environment."""
    settings = appctx.settings
    runner = functools.partial(
        run_job,
        appctx.gateway,
        poll_interval=settings.JOB_POLL_INTERVAL_SECONDS,
        timeout=settings.JOB_TIMEOUT_SECONDS,
        on_event=_job_event,
    )
    return WorkflowContext(
        session=session,
        store=MySqlStore(session),
        run_job=runner,
        namespace=settings.environment(session.environment).namespace,
        job_image=settings.JOB_IMAGE,
        reporter=out,
    )
