"""Core job domain models plus naming and manifest logic.

This module defines the one-shot Kubernetes Job data structures (JobSpec,
JobResult, JobStatus) and the ClusterGateway interface used by the runner and
the workflows. It is intentionally free of subprocess and CLI concerns so the
same logic can be driven by kubectl in production and by fakes in tests.
"""

from __future__ import annotations

import re
import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Mapping, Protocol

if TYPE_CHECKING:
    from wgfops.core.config import EnvironmentConfig
    from wgfops.core.tunnel import TunnelHandle

MAX_JOB_NAME_LENGTH = 63
DEFAULT_TTL_SECONDS = 300

_DNS_LABEL_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_BASE36 = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 8


@dataclass(frozen=True)
class JobSpec:
    """
    Specification of a one-shot Kubernetes Job.

    Attributes:
        name: Unique, DNS-safe Job name (at most 63 characters).
        namespace: Namespace the Job is created in.
        image: Container image reference.
        command: Command vector executed by the single container.
        env: Optional environment variables for the container.
        backoff_limit: Automatic retries; 0 means the pod is never retried.
        ttl_seconds_after_finished: Delay before the cluster garbage
            collects a finished Job.
    """

    name: str
    namespace: str
    image: str
    command: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)
    backoff_limit: int = 0
    ttl_seconds_after_finished: int = DEFAULT_TTL_SECONDS

    def __post_init__(self) -> None:
        if len(self.name) > MAX_JOB_NAME_LENGTH or not _DNS_LABEL_RE.match(self.name):
            raise ValueError(f"Invalid job name: {self.name!r}")
        if not self.command:
            raise ValueError("Job command must not be empty")
        if self.backoff_limit < 0:
            raise ValueError("backoff_limit must be >= 0")
        # Accept lists from callers but keep the spec immutable.
        object.__setattr__(self, "command", tuple(self.command))


@dataclass(frozen=True)
class JobResult:
    """
    Outcome of a single JobSpec execution.

    Attributes:
        success: True if the Job reported the Complete condition.
        output: Captured container output (placeholder text if unavailable).
        elapsed_seconds: Wall-clock duration of the whole run.
        failure_reason: Why the Job did not succeed, if it did not.
    """

    success: bool
    output: str
    elapsed_seconds: float
    failure_reason: str | None = None


class JobStatus(str, Enum):
    """
    Status of a Job as observed through its conditions.

    Values:
        PENDING: The Job exists but reports no condition yet.
        COMPLETE: The Complete condition is True.
        FAILED: The Failed condition is True.
        UNKNOWN: The status could not be read (not created yet, API hiccup).
    """

    PENDING = "PENDING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


class ClusterGateway(Protocol):
    """Interface for every cluster side effect used by the console."""

    def apply_job(self, spec: JobSpec) -> None:
        """Submit the Job; raise SubmissionFailed on a non-zero exit."""
        ...

    def get_job_status(self, namespace: str, name: str) -> JobStatus:
        """Return the current status; UNKNOWN for transient errors."""
        ...

    def get_job_logs(self, namespace: str, name: str, tail: int) -> str:
        """Return the last `tail` lines of output; raise ClusterCommandFailed."""
        ...

    def delete_job(self, namespace: str, name: str) -> None:
        """Delete the Job, ignoring it being already absent."""
        ...

    def open_tunnel(self, env_config: EnvironmentConfig) -> TunnelHandle:
        """Forward a free local port to the environment's database pod."""
        ...

    def close_tunnel(self, handle: TunnelHandle) -> None:
        """Stop the port-forward; never raises."""
        ...


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_job_name(prefix: str, *, now: float | None = None) -> str:
    """
    Generate a unique, DNS-safe Job name.

    The name is `<prefix>-<base36 ms timestamp>-<8 random base36 chars>`.
    When the result would exceed 63 characters the prefix is shortened, never
    the timestamp or the random suffix.

    Args:
        prefix: Human readable prefix, e.g. `support-create-ta`.
        now: Optional epoch seconds, used by tests.

    Returns:
        A name valid as a Kubernetes Job name.
    """
    millis = int((time.time() if now is None else now) * 1000)
    stamp = _to_base36(millis)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(_SUFFIX_LENGTH))

    clean = re.sub(r"[^a-z0-9-]+", "-", prefix.lower()).strip("-") or "job"
    room = MAX_JOB_NAME_LENGTH - len(stamp) - len(suffix) - 2
    clean = clean[:room].rstrip("-") or "job"
    return f"{clean}-{stamp}-{suffix}"


def build_job_manifest(spec: JobSpec) -> dict:
    """Render a JobSpec into a `batch/v1` Job manifest."""
    container: dict = {
        "name": spec.name,
        "image": spec.image,
        "imagePullPolicy": "IfNotPresent",
        "command": list(spec.command),
    }
    if spec.env:
        container["env"] = [
            {"name": key, "value": str(value)} for key, value in spec.env.items()
        ]

    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": spec.name, "namespace": spec.namespace},
        "spec": {
            "backoffLimit": spec.backoff_limit,
            "ttlSecondsAfterFinished": spec.ttl_seconds_after_finished,
            "template": {
                "spec": {
                    "containers": [container],
                    "restartPolicy": "Never",
                }
            },
        },
    }
