"""Core one-shot job execution and monitoring logic.

This module drives a single Kubernetes Job from submission to cleanup:
submit, poll until terminal, collect output, delete. The functionality here
is intentionally synchronous and infrastructure-agnostic, relying on a
ClusterGateway to talk to the cluster while keeping polling behavior explicit
and predictable.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from wgfops.core.errors import ClusterCommandFailed, SubmissionFailed, WgfOpsError
from wgfops.core.jobs import ClusterGateway, JobResult, JobSpec, JobStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_TIMEOUT = 120.0
DEFAULT_TAIL_LINES = 200


def wait_for_job(
    gateway: ClusterGateway,
    namespace: str,
    name: str,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    timeout: float = DEFAULT_TIMEOUT,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> JobStatus | None:
    """
    Block until a Job reaches a terminal status or the timeout elapses.

    Statuses that are not terminal (including UNKNOWN, which the gateway
    returns while the Job is not visible yet) simply lead to another poll.

    Args:
        gateway: Cluster gateway used to query the Job status.
        namespace: Namespace of the Job.
        name: Name of the Job.
        poll_interval: Seconds to wait between status checks.
        timeout: Overall budget in seconds.

    Returns:
        JobStatus.COMPLETE or JobStatus.FAILED, or None on timeout.
    """
    deadline = clock() + timeout

    while True:
        status = gateway.get_job_status(namespace, name)
        logger.debug("job %s status=%s", name, status.value)
        if status.is_terminal:
            return status

        remaining = deadline - clock()
        if remaining <= 0:
            return None
        sleep(min(poll_interval, remaining))


def _collect_output(gateway: ClusterGateway, spec: JobSpec, tail: int) -> str:
    try:
        return gateway.get_job_logs(spec.namespace, spec.name, tail)
    except ClusterCommandFailed as exc:
        logger.warning("could not fetch logs for job %s: %s", spec.name, exc)
        return f"(logs unavailable: {exc.diagnostics or exc})"


def _cleanup(gateway: ClusterGateway, spec: JobSpec) -> None:
    try:
        gateway.delete_job(spec.namespace, spec.name)
    except WgfOpsError as exc:
        logger.warning("could not delete job %s: %s", spec.name, exc)


def run_job(
    gateway: ClusterGateway,
    spec: JobSpec,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    timeout: float = DEFAULT_TIMEOUT,
    tail_lines: int = DEFAULT_TAIL_LINES,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    on_event: Callable[[str], None] | None = None,
) -> JobResult:
    """
    Run a one-shot Job to completion and return a uniform result.

    The steps are always, in order:
      1) apply the manifest (SubmissionFailed propagates, no retry)
      2) poll the status until Complete/Failed or timeout
      3) fetch the last `tail_lines` lines of output
      4) delete the Job, whatever happened before

    Args:
        gateway: Cluster gateway performing the side effects.
        spec: Job to run.
        poll_interval: Seconds between status checks.
        timeout: Overall polling budget in seconds.
        tail_lines: Number of output lines kept.
        on_event: Optional callback receiving progress messages.

    Returns:
        A JobResult. `output` is never None and `elapsed_seconds` covers the
        whole call.

    Raises:
        SubmissionFailed: If the manifest could not be applied. The cleanup
            delete has already been issued when this propagates.
    """
    notify = on_event or (lambda _msg: None)
    started = clock()

    notify(f"Creating job {spec.name}...")
    try:
        gateway.apply_job(spec)
    except SubmissionFailed:
        _cleanup(gateway, spec)
        raise
    logger.info("job %s submitted in namespace %s", spec.name, spec.namespace)

    # once applied, the Job is deleted even if polling raises or is interrupted
    try:
        notify(f"Job created in namespace {spec.namespace}, waiting for completion...")
        final = wait_for_job(
            gateway,
            spec.namespace,
            spec.name,
            poll_interval=poll_interval,
            timeout=timeout,
            sleep=sleep,
            clock=clock,
        )

        notify("Fetching job output...")
        output = _collect_output(gateway, spec, tail_lines)
    finally:
        notify("Cleaning up job...")
        _cleanup(gateway, spec)

    elapsed = max(clock() - started, 0.0)

    if final == JobStatus.COMPLETE:
        logger.info("job %s completed in %.1fs", spec.name, elapsed)
        return JobResult(success=True, output=output, elapsed_seconds=elapsed)

    reason = "job failed" if final == JobStatus.FAILED else f"timed out after {timeout:g}s"
    logger.info("job %s did not succeed: %s", spec.name, reason)
    return JobResult(
        success=False,
        output=output,
        elapsed_seconds=elapsed,
        failure_reason=reason,
    )
