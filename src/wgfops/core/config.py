"""Configuration loading for the operator console.

All secrets live in a local env file handed out by an administrator. The file
is parsed with pydantic-settings; nothing is hardcoded here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from wgfops.core.errors import ConfigError

ENV_FILE_ENV = "WGFOPS_ENV_FILE"
DEFAULT_ENV_FILE = ".env"


class Environment(str, Enum):
    """The two databases/namespaces an operator can connect to."""

    STAGING = "staging"
    PRODUCTION = "production"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class ClusterAccess:
    """Bearer-token credentials for the cluster API server."""

    server: str
    token: str


@dataclass(frozen=True)
class EnvironmentConfig:
    """Connection details for one environment."""

    namespace: str
    pod_name: str
    pod_port: int
    database: str
    user: str
    password: str


class Settings(BaseSettings):
    KUBE_SERVER: str
    KUBE_TOKEN: str

    STAGING_NAMESPACE: str
    STAGING_POD_NAME: str
    STAGING_POD_PORT: int
    STAGING_DB_NAME: str
    STAGING_DB_USER: str
    STAGING_DB_PASSWORD: str

    PRODUCTION_NAMESPACE: str
    PRODUCTION_POD_NAME: str
    PRODUCTION_POD_PORT: int
    PRODUCTION_DB_NAME: str
    PRODUCTION_DB_USER: str
    PRODUCTION_DB_PASSWORD: str

    # Job execution
    JOB_IMAGE: str = "curlimages/curl:8.1.1"
    JOB_TIMEOUT_SECONDS: float = 120.0
    JOB_POLL_INTERVAL_SECONDS: float = 3.0

    model_config = SettingsConfigDict(extra="ignore")

    @property
    def cluster_access(self) -> ClusterAccess:
        return ClusterAccess(server=self.KUBE_SERVER, token=self.KUBE_TOKEN)

    def environment(self, env: Environment) -> EnvironmentConfig:
        """Return the connection details for `env`."""
        prefix = env.value.upper()
        return EnvironmentConfig(
            namespace=getattr(self, f"{prefix}_NAMESPACE"),
            pod_name=getattr(self, f"{prefix}_POD_NAME"),
            pod_port=getattr(self, f"{prefix}_POD_PORT"),
            database=getattr(self, f"{prefix}_DB_NAME"),
            user=getattr(self, f"{prefix}_DB_USER"),
            password=getattr(self, f"{prefix}_DB_PASSWORD"),
        )


def resolve_env_file(env_file: str | Path | None = None) -> Path:
    """Pick the env file: explicit argument, then $WGFOPS_ENV_FILE, then ./.env."""
    if env_file:
        return Path(env_file)
    from_env = os.getenv(ENV_FILE_ENV)
    if from_env:
        return Path(from_env)
    return Path.cwd() / DEFAULT_ENV_FILE


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load and validate the console settings.

    Raises:
        ConfigError: If the file does not exist, or when keys are missing or
            malformed. Missing keys are listed on the exception.
    """
    path = resolve_env_file(env_file)
    if not path.exists():
        raise ConfigError(
            f"Env file not found: {path}. "
            "Ask your administrator for the console .env file."
        )

    try:
        return Settings(_env_file=path)
    except ValidationError as exc:
        missing = [
            str(err["loc"][0]) for err in exc.errors() if err.get("type") == "missing"
        ]
        if missing:
            raise ConfigError(
                f"Env file {path} is incomplete (missing: {', '.join(missing)}).",
                missing=missing,
            ) from exc
        raise ConfigError(f"Env file {path} is invalid: {exc}") from exc
