"""Internal backend service addresses.

Jobs run inside the cluster, so they reach backends by their in-cluster DNS
name. The name is derived from the environment only.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

from wgfops.core.config import Environment


class Service(str, Enum):
    """Backend services the console triggers through Jobs."""

    TRADING_ACCOUNT_MANAGER = "trading-account-manager"
    WATCHER = "trading-account-watcher"
    ORDER = "order"


ServiceUrlResolver = Callable[[Service, Environment], str]


def service_url(service: Service, environment: Environment) -> str:
    """Return the base URL of `service` in `environment` (no trailing slash)."""
    prefix = environment.value
    return f"http://{prefix}-{service.value}.{prefix}.svc"
