from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .apis import ResourceKey


class RedisConfig(BaseModel):
    """Broker connection used when the transport backend is redis."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Which queue carries reconcile requests between processes."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class ControllerConfig(BaseModel):
    """Worker pool and requeue settings for the reconcile loops."""

    run_workers: int = 16
    tenant_workers: int = 2
    trigger_workers: int = 2
    max_attempts: int = 10
    backoff_base: float = 1.5
    mutate_timeout: float = 30.0


class StewardConfig(BaseModel):
    """Everything a steward process reads at startup."""

    transport: TransportConfig = TransportConfig()
    controller: ControllerConfig = ControllerConfig()
    database_url: Optional[str] = None
    image_pull_secret: Optional[str] = None

    def image_pull_secret_key(self) -> Optional[ResourceKey]:
        """Parse ``image_pull_secret`` given as ``namespace/name``."""
        if not self.image_pull_secret:
            return None
        namespace, sep, name = self.image_pull_secret.partition("/")
        if not sep or not namespace or not name:
            raise ValueError(
                f"image_pull_secret must be namespace/name, got {self.image_pull_secret!r}"
            )
        return ResourceKey(namespace, name)


_ENV_OVERRIDES = {
    "STEWARD_DATABASE_URL": "database_url",
    "STEWARD_IMAGE_PULL_SECRET": "image_pull_secret",
}


def load_config(path: Optional[str] = None) -> StewardConfig:
    """Read configuration from YAML, then apply environment overrides.

    The file is ``path``, else $STEWARD_CONFIG, else ``config.yaml``; a missing
    file means defaults. $STEWARD_DATABASE_URL and $STEWARD_IMAGE_PULL_SECRET
    win over the file.
    """

    config_path = Path(path or os.getenv("STEWARD_CONFIG", "config.yaml"))
    data = {}
    if config_path.exists():
        data = yaml.safe_load(config_path.read_text()) or {}

    for env_var, field in _ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            data[field] = value
    return StewardConfig.model_validate(data)
