"""Exit helpers: every command leaves through `typer.Exit` with a known code."""

from typing import NoReturn

import typer

from wgfops.cli.common.output import out
from wgfops.core.session import SessionError

EXIT_OK = 0
EXIT_FAILURE = 1


def ok_exit(msg: str | None = None) -> NoReturn:
    if msg:
        out.info(msg)
    raise typer.Exit(EXIT_OK)


def die(msg: str, code: int = EXIT_FAILURE, *, hint: str | None = None) -> NoReturn:
    """Report `msg`, and the remediation `hint` when given, then exit with `code`."""
    out.error(msg)
    if hint:
        out.info(hint)
    raise typer.Exit(code)


def warn_exit(msg: str, code: int = EXIT_OK) -> NoReturn:
    out.warn(msg)
    raise typer.Exit(code)


def session_failed(exc: SessionError) -> NoReturn:
    """Exit after a failed session setup, showing the classified cause."""
    die(f"Connection failed ({exc.kind.value}): {exc}", hint=exc.hint)


def exit_from_exc(exc: BaseException, *, message: str, code: int = EXIT_FAILURE) -> NoReturn:
    """Print `message` and exit with `code`, chaining `exc`."""
    out.error(message)
    raise typer.Exit(code) from exc
