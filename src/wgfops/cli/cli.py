"""CLI application for the WeGetFunded operator console."""

import typer

from wgfops.cli.commands.console import console
from wgfops.cli.commands.inspect import audit, check
from wgfops.cli.common.context import build_app_context
from wgfops.cli.common.logs import setup_logging
from wgfops.cli.common.options import EnvFileOpt, OperatorOpt, VerboseOpt

app = typer.Typer(
    help="wgfops - WeGetFunded operator console",
    no_args_is_help=False,
    invoke_without_command=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    env_file: str | None = EnvFileOpt,
    operator: str | None = OperatorOpt,
    verbose: bool = VerboseOpt,
):
    """Load settings once per invocation; without a command, start the console."""
    setup_logging(verbose)
    ctx.obj = build_app_context(env_file, operator)
    if ctx.invoked_subcommand is None:
        console(ctx)


app.command("console")(console)
app.command("check")(check)
app.command("audit")(audit)


if __name__ == "__main__":
    app()
