"""Common CLI options."""

import typer

from wgfops.core.config import Environment

EnvFileOpt = typer.Option(
    None,
    "--env-file",
    "-f",
    help="Env file with cluster and database credentials (default: $WGFOPS_ENV_FILE or ./.env)",
)

OperatorOpt = typer.Option(
    None,
    "--operator",
    "-o",
    help="Operator name recorded in the audit log (asked when omitted)",
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Show debug logs (kubectl calls, polling, SQL session)",
)

EnvOpt = typer.Option(
    Environment.STAGING,
    "--env",
    "-e",
    help="Target environment",
    case_sensitive=False,
)

TargetOpt = typer.Option(
    None,
    "--target",
    help="Only show records about this UUID (trading account, order, activation)",
)

LimitOpt = typer.Option(
    20,
    "--limit",
    "-n",
    min=1,
    max=500,
    help="Number of audit records to show",
)
