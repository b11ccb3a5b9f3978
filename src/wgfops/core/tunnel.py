"""Port-forward tunnel to a database pod inside the cluster.

The database is only reachable from inside the cluster network. A long-lived
`kubectl port-forward` child process exposes it on a free loopback port for
the duration of a session. This is the only place that spawns a process for
tunneling.
"""

from __future__ import annotations

import logging
import socket
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from typing import IO, Callable

from wgfops.core.config import ClusterAccess, EnvironmentConfig
from wgfops.core.errors import ToolingUnavailable, TunnelSetupFailed, TunnelTimeout

logger = logging.getLogger(__name__)

DEFAULT_TUNNEL_TIMEOUT = 15.0
_CONNECT_RETRY_SECONDS = 0.3
_TERMINATE_GRACE_SECONDS = 5.0


@dataclass
class TunnelHandle:
    """A running port-forward: the local port plus the owning process."""

    local_port: int
    process: subprocess.Popen = field(repr=False)
    closed: bool = False
    stderr_log: IO[bytes] | None = field(default=None, repr=False)


def kubectl_auth_args(access: ClusterAccess) -> list[str]:
    """Arguments authenticating kubectl with the bearer token (TLS unchecked)."""
    return [
        f"--server={access.server}",
        f"--token={access.token}",
        "--insecure-skip-tls-verify",
    ]


def find_free_port() -> int:
    """Return a loopback port the OS considers free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _read_stderr(process: subprocess.Popen, stderr_log: IO[bytes] | None = None) -> str:
    try:
        if stderr_log is not None:
            stderr_log.seek(0)
            err = stderr_log.read()
        else:
            _, err = process.communicate(timeout=1)
    except (subprocess.TimeoutExpired, ValueError, OSError):
        return ""
    if isinstance(err, bytes):
        err = err.decode(errors="replace")
    return (err or "").strip()


def wait_for_port(
    port: int,
    timeout: float,
    *,
    process: subprocess.Popen | None = None,
    stderr_log: IO[bytes] | None = None,
    connect: Callable[..., socket.socket] = socket.create_connection,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """
    Block until 127.0.0.1:port accepts a TCP connection.

    `stderr_log` is the file receiving the process stderr, read back for the
    diagnostics when the process exits early.

    Raises:
        TunnelSetupFailed: If `process` exits before the port is ready.
        TunnelTimeout: If the port is still closed after `timeout` seconds.
    """
    deadline = clock() + timeout
    while True:
        if process is not None:
            code = process.poll()
            if code is not None:
                diagnostics = _read_stderr(process, stderr_log)
                raise TunnelSetupFailed(
                    f"Port-forward exited with code {code}: {diagnostics or 'no output'}",
                    diagnostics=diagnostics,
                )
        try:
            conn = connect(("127.0.0.1", port), timeout=_CONNECT_RETRY_SECONDS)
        except OSError:
            if clock() >= deadline:
                raise TunnelTimeout(
                    f"Port {port} was not ready after {timeout:g}s"
                ) from None
            sleep(_CONNECT_RETRY_SECONDS)
            continue
        conn.close()
        return


def open_tunnel(
    access: ClusterAccess,
    env_config: EnvironmentConfig,
    *,
    executable: str = "kubectl",
    timeout: float = DEFAULT_TUNNEL_TIMEOUT,
    popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    port_finder: Callable[[], int] = find_free_port,
    waiter: Callable[..., None] = wait_for_port,
) -> TunnelHandle:
    """
    Forward a free local port to the environment's database pod.

    Args:
        access: Cluster credentials.
        env_config: Namespace, pod and port to forward to.
        timeout: Seconds to wait for the local port to accept connections.

    Returns:
        A TunnelHandle owning the port-forward process.

    Raises:
        ToolingUnavailable: kubectl is not installed.
        TunnelSetupFailed: The process exited before the port was ready.
        TunnelTimeout: The port never became ready.
    """
    local_port = port_finder()
    args = [
        executable,
        *kubectl_auth_args(access),
        "port-forward",
        f"pod/{env_config.pod_name}",
        f"{local_port}:{env_config.pod_port}",
        "-n",
        env_config.namespace,
    ]

    logger.info(
        "opening tunnel 127.0.0.1:%s -> %s/%s:%s",
        local_port,
        env_config.namespace,
        env_config.pod_name,
        env_config.pod_port,
    )
    # stderr goes to a file: a pipe nobody drains would block kubectl once full
    stderr_log = tempfile.TemporaryFile()
    try:
        process = popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=stderr_log,
        )
    except FileNotFoundError as exc:
        stderr_log.close()
        raise ToolingUnavailable(
            f"{executable} is not installed. Ask your administrator to install it."
        ) from exc
    except OSError as exc:
        stderr_log.close()
        raise ToolingUnavailable(f"Could not run {executable}: {exc}") from exc

    handle = TunnelHandle(local_port=local_port, process=process, stderr_log=stderr_log)
    try:
        waiter(local_port, timeout, process=process, stderr_log=stderr_log)
    except BaseException:
        close_tunnel(handle)
        raise

    logger.info("tunnel ready on local port %s", local_port)
    return handle


def close_tunnel(handle: TunnelHandle) -> None:
    """Terminate the port-forward process. Idempotent, never raises."""
    if handle.closed:
        return
    handle.closed = True

    process = handle.process
    try:
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=_TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait(timeout=_TERMINATE_GRACE_SECONDS)
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("ignoring error while closing tunnel: %s", exc)
    finally:
        if handle.stderr_log is not None:
            try:
                handle.stderr_log.close()
            except OSError:
                pass
    logger.info("tunnel on local port %s closed", handle.local_port)
