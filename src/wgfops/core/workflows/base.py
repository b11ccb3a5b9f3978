"""Building blocks shared by every operator workflow.

A workflow is split in two stages:

* a pure `plan_*` function validating the operator's intent against the data
  already loaded. It raises PreconditionFailed and never writes anything;
* an effectful `execute_*` function run after confirmation. It scopes local
  writes in transactions, runs the remote Jobs, compensates when a remote step
  fails and writes exactly one audit record per terminal outcome.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from wgfops.core.config import Environment
from wgfops.core.errors import WgfOpsError
from wgfops.core.jobs import JobResult, JobSpec, generate_job_name
from wgfops.core.services import Service, ServiceUrlResolver, service_url
from wgfops.core.store import Store

logger = logging.getLogger(__name__)

DEFAULT_JOB_IMAGE = "curlimages/curl:8.1.1"

FIRST_PHRASE = "YES"
SECOND_PHRASE = "CONFIRMER"
PRODUCTION_PHRASE = "PRODUCTION"

JobRunner = Callable[[JobSpec], JobResult]


class PreconditionFailed(WgfOpsError):
    """
    Raised by a planning function when the action cannot proceed.

    `level` is "warn" for expected situations (account already inactive,
    nothing to do) and "error" for inconsistent data.
    """

    def __init__(self, message: str, level: str = "error"):
        super().__init__(message)
        self.level = level


class OutcomeStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    PARTIAL = "PARTIAL"
    REMOTE_FAILED = "REMOTE_FAILED"
    COMPENSATED = "COMPENSATED"
    COMPENSATION_FAILED = "COMPENSATION_FAILED"


@dataclass
class WorkflowOutcome:
    """
    Terminal state of a confirmed workflow.

    Attributes:
        action: Audit action type written for this outcome.
        status: How the workflow ended.
        message: One-line summary for the operator.
        recap: Ordered key/value recap.
        warnings: Follow-ups the operator has to handle manually.
        jobs: Results of every Job run, in order.
    """

    action: str
    status: OutcomeStatus
    message: str
    recap: dict[str, str] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    jobs: list[JobResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.SUCCEEDED, OutcomeStatus.PARTIAL)


class Reporter(Protocol):
    """Live progress sink used while a workflow executes."""

    def info(self, msg: str) -> None: ...
    def success(self, msg: str) -> None: ...
    def warn(self, msg: str) -> None: ...
    def error(self, msg: str) -> None: ...
    def output(self, title: str, text: str) -> None: ...


class NullReporter:
    def info(self, msg: str) -> None:
        pass

    def success(self, msg: str) -> None:
        pass

    def warn(self, msg: str) -> None:
        pass

    def error(self, msg: str) -> None:
        pass

    def output(self, title: str, text: str) -> None:
        pass


def requires_second_confirmation(environment: Environment) -> bool:
    return environment == Environment.PRODUCTION


def confirmation_passes(
    environment: Environment, first: str | None, second: str | None = None
) -> bool:
    """
    Return True if the typed phrases authorize a mutation.

    The first phrase must be YES everywhere. In production the second phrase
    must be CONFIRMER. Surrounding whitespace is ignored, case is not.
    """
    if (first or "").strip() != FIRST_PHRASE:
        return False
    if requires_second_confirmation(environment):
        return (second or "").strip() == SECOND_PHRASE
    return True


def http_job_spec(
    prefix: str,
    namespace: str,
    image: str,
    url: str,
    method: str = "GET",
) -> JobSpec:
    """
    Build a Job calling `url` once with curl.

    The container prints the response body followed by an `HTTP_CODE:<code>`
    line and exits non-zero unless the status is 2xx, so the Job's Failed
    condition reflects the HTTP outcome.
    """
    method_flag = "" if method.upper() == "GET" else f"-X {method.upper()} "
    script = (
        f"RESP=$(curl -s {method_flag}-w '\\nHTTP_CODE:%{{http_code}}' {shlex.quote(url)}); "
        'echo "$RESP"; '
        "echo \"$RESP\" | grep -q 'HTTP_CODE:2' || exit 1"
    )
    return JobSpec(
        name=generate_job_name(prefix),
        namespace=namespace,
        image=image,
        command=("/bin/sh", "-c", script),
    )


def format_percent(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{float(value):.2f}%"


def format_amount(value: float, currency: str = "EUR") -> str:
    return f"{float(value):,.2f} {currency}"


@dataclass
class WorkflowContext:
    """
    Everything an `execute_*` function needs to act on one environment.

    Attributes:
        session: DatabaseSession (transaction scoping, environment, operator).
        store: Data access.
        run_job: Runs one JobSpec to completion (see `wgfops.core.runs`).
        service_url: Maps a backend service and environment to its base URL.
        namespace: Namespace Jobs are created in.
        job_image: Image of the curl Jobs.
        reporter: Live progress sink.
    """

    session: Any
    store: Store
    run_job: JobRunner
    namespace: str
    service_url: ServiceUrlResolver = service_url
    job_image: str = DEFAULT_JOB_IMAGE
    reporter: Reporter = field(default_factory=NullReporter)

    @property
    def environment(self) -> Environment:
        return self.session.environment

    @property
    def operator(self) -> str:
        return self.session.operator

    def url(self, service: Service, path: str) -> str:
        return f"{self.service_url(service, self.environment)}{path}"

    def run_remote(
        self, prefix: str, url: str, *, method: str = "GET", title: str
    ) -> JobResult:
        """
        Run one HTTP Job and report its progress.

        Any error raised while running the Job is turned into a failed
        JobResult, so the caller always reaches its compensation and audit
        steps.
        """
        spec = http_job_spec(prefix, self.namespace, self.job_image, url, method)
        self.reporter.info(title)
        try:
            result = self.run_job(spec)
        except Exception as exc:
            logger.warning(
                "job %s could not be run: %s",
                spec.name,
                exc,
                exc_info=not isinstance(exc, WgfOpsError),
            )
            result = JobResult(
                success=False,
                output=getattr(exc, "diagnostics", "") or str(exc),
                elapsed_seconds=0.0,
                failure_reason=f"submission failed: {exc}",
            )

        if result.success:
            self.reporter.success(f"Job succeeded ({result.elapsed_seconds:.1f}s).")
            if result.output:
                self.reporter.output("Service response", result.output)
        else:
            self.reporter.error(f"Job failed: {result.failure_reason or 'job failed'}")
            if result.output:
                self.reporter.output("Logs", result.output)
        return result

    def audit(
        self,
        action_type: str,
        target_table: str,
        target_uuid: str | None,
        details: Mapping[str, Any],
    ) -> None:
        self.store.insert_audit_log(
            action_type,
            target_table,
            target_uuid,
            details,
            self.operator,
            self.environment.value,
        )
        logger.info("audit %s on %s %s", action_type, target_table, target_uuid)

    def record_audit(
        self,
        action_type: str,
        target_table: str,
        target_uuid: str | None,
        details: Mapping[str, Any],
    ) -> str | None:
        """
        Audit an outcome whose database changes are already committed.

        Returns:
            None once written, otherwise a warning for the operator. The
            outcome is still reported when the audit insert fails.
        """
        try:
            self.audit(action_type, target_table, target_uuid, details)
        except Exception as exc:
            logger.exception("audit %s on %s %s failed", action_type, target_table, target_uuid)
            return f"The {action_type} audit record could not be written: {exc}"
        return None
