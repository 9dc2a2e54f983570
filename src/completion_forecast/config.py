"""
Configuration module for the completion-forecast engine.

Single source of truth for:
- Scenario storage settings (Azure Blob or a local directory)
- Simulation defaults and limits
- Log level for the app entry points

All values can be overridden via environment variables in Azure / local.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Optional


def _get_env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


@dataclass
class Config:
    """
    Runtime configuration for the forecasting engine.

    All fields default from environment variables but can be overridden
    programmatically by constructing Config(...) manually if needed.
    """

    # Azure Blob Storage for saved what-if scenarios
    azure_blob_connection_string: Optional[str] = None
    azure_blob_container_name: Optional[str] = None

    # Local directory for saved scenarios when Azure is not configured
    scenario_dir: Optional[str] = None

    # Simulation
    default_iterations: int = 1000
    max_iterations: int = 100_000
    max_workers: Optional[int] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        """
        Construct a Config object by reading environment variables.

        Environment variables (all optional):
        - CF_AZURE_BLOB_CONNECTION_STRING
        - CF_AZURE_BLOB_CONTAINER_NAME
        - CF_SCENARIO_DIR
        - CF_DEFAULT_ITERATIONS  (int)
        - CF_MAX_ITERATIONS      (int)
        - CF_MAX_WORKERS         (int)
        - CF_LOG_LEVEL           (DEBUG/INFO/WARNING/...)
        """
        return cls(
            azure_blob_connection_string=_get_env_str(
                "CF_AZURE_BLOB_CONNECTION_STRING"
            ),
            azure_blob_container_name=_get_env_str(
                "CF_AZURE_BLOB_CONTAINER_NAME"
            ),
            scenario_dir=_get_env_str("CF_SCENARIO_DIR"),
            default_iterations=_get_env_int("CF_DEFAULT_ITERATIONS", default=1000),
            max_iterations=_get_env_int("CF_MAX_ITERATIONS", default=100_000),
            max_workers=_get_env_int("CF_MAX_WORKERS", default=None),
            log_level=(_get_env_str("CF_LOG_LEVEL", default="INFO") or "INFO").upper(),
        )


# Convenience singleton-style accessor if you want a shared config
_DEFAULT_CONFIG: Optional[Config] = None


def get_config(force_reload: bool = False) -> Config:
    """
    Return a process-wide Config instance.

    Use `force_reload=True` if environment variables changed at runtime
    and you want to refresh.
    """
    global _DEFAULT_CONFIG
    if _DEFAULT_CONFIG is None or force_reload:
        _DEFAULT_CONFIG = Config.from_env()
    return _DEFAULT_CONFIG
