"""Cluster gateway driving the kubectl binary.

Every call runs one kubectl subprocess authenticated with the bearer token.
A missing or unrunnable binary raises ToolingUnavailable; a non-zero exit
raises ClusterCommandFailed, or SubmissionFailed when applying a Job.
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Callable

from wgfops.core.config import ClusterAccess, EnvironmentConfig
from wgfops.core.errors import (
    ClusterCommandFailed,
    SubmissionFailed,
    ToolingUnavailable,
)
from wgfops.core.jobs import JobSpec, JobStatus, build_job_manifest
from wgfops.core.tunnel import TunnelHandle, close_tunnel, kubectl_auth_args, open_tunnel

logger = logging.getLogger(__name__)

# One `Type=Status` line per Job condition.
_CONDITIONS_JSONPATH = (
    'jsonpath={range .status.conditions[*]}{.type}={.status}{"\\n"}{end}'
)


def parse_conditions(raw: str) -> JobStatus:
    """Map `Type=Status` condition lines to a JobStatus."""
    conditions: dict[str, str] = {}
    for line in raw.splitlines():
        if "=" not in line:
            continue
        ctype, cstatus = line.strip().split("=", 1)
        conditions[ctype] = cstatus

    if conditions.get("Complete") == "True":
        return JobStatus.COMPLETE
    if conditions.get("Failed") == "True":
        return JobStatus.FAILED
    return JobStatus.PENDING


class KubectlGateway:
    """Cluster gateway backed by the kubectl command line."""

    def __init__(
        self,
        access: ClusterAccess,
        *,
        executable: str = "kubectl",
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        tunnel_timeout: float = 15.0,
    ):
        """Create a gateway for the cluster reachable with `access`."""
        self.access = access
        self.executable = executable
        self._run = runner
        self.tunnel_timeout = tunnel_timeout

    def _kubectl(
        self, args: list[str], *, stdin: str | None = None
    ) -> subprocess.CompletedProcess:
        """Run kubectl with auth arguments and capture its output."""
        cmd = [self.executable, *kubectl_auth_args(self.access), *args]
        # never log the token
        logger.debug("kubectl %s", " ".join(args))
        try:
            return self._run(
                cmd, input=stdin, capture_output=True, text=True, check=False
            )
        except FileNotFoundError as exc:
            raise ToolingUnavailable(
                f"{self.executable} is not installed. "
                "Ask your administrator to install it."
            ) from exc
        except OSError as exc:
            raise ToolingUnavailable(f"Could not run {self.executable}: {exc}") from exc

    def apply_job(self, spec: JobSpec) -> None:
        """Apply the Job manifest (as JSON on stdin)."""
        manifest = json.dumps(build_job_manifest(spec))
        result = self._kubectl(["apply", "-f", "-", "-n", spec.namespace], stdin=manifest)
        if result.returncode != 0:
            diagnostics = (result.stderr or "").strip()
            raise SubmissionFailed(
                f"kubectl apply failed (code {result.returncode}): {diagnostics}",
                diagnostics=diagnostics,
            )

    def get_job_status(self, namespace: str, name: str) -> JobStatus:
        """Return the Job status, UNKNOWN when it cannot be read yet."""
        result = self._kubectl(
            ["get", "job", name, "-n", namespace, "-o", _CONDITIONS_JSONPATH]
        )
        if result.returncode != 0:
            logger.debug("status not available for %s: %s", name, result.stderr)
            return JobStatus.UNKNOWN
        return parse_conditions(result.stdout or "")

    def get_job_logs(self, namespace: str, name: str, tail: int = 200) -> str:
        """Return the last `tail` lines of the Job's pod output."""
        result = self._kubectl(
            ["logs", f"job/{name}", "-n", namespace, f"--tail={tail}"]
        )
        if result.returncode != 0:
            diagnostics = (result.stderr or "").strip()
            raise ClusterCommandFailed(
                f"kubectl logs failed (code {result.returncode})",
                diagnostics=diagnostics,
            )
        return result.stdout or ""

    def delete_job(self, namespace: str, name: str) -> None:
        """Delete the Job (and its pods); an absent Job is not an error."""
        result = self._kubectl(
            ["delete", "job", name, "-n", namespace, "--ignore-not-found"]
        )
        if result.returncode != 0:
            raise ClusterCommandFailed(
                f"kubectl delete failed (code {result.returncode})",
                diagnostics=(result.stderr or "").strip(),
            )

    def open_tunnel(self, env_config: EnvironmentConfig) -> TunnelHandle:
        """Open a port-forward to the environment's database pod."""
        return open_tunnel(
            self.access,
            env_config,
            executable=self.executable,
            timeout=self.tunnel_timeout,
        )

    def close_tunnel(self, handle: TunnelHandle) -> None:
        """Close a tunnel opened by this gateway."""
        close_tunnel(handle)
