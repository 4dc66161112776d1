"""Environment-based configuration using pydantic-settings.

``AppSettings`` reads ``AGENTOPERATOR_*`` variables (and an optional ``.env``
file) and merges them over the YAML-backed :class:`OperatorConfig`.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import OperatorConfig, RetryPolicyConfig


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="AGENTOPERATOR_", case_sensitive=False, extra="ignore"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Application log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # Discovery
    discovery_enabled: Optional[bool] = None
    capabilities_path: Optional[str] = None
    not_ready_recheck_seconds: Optional[float] = None
    http_timeout: Optional[float] = None

    # Controllers
    workers: Optional[int] = None

    # Retry
    retry_initial_interval: Optional[float] = None
    retry_multiplier: Optional[float] = None
    retry_max_attempts: Optional[int] = None
    discovery_retry_initial_interval: Optional[float] = None
    discovery_retry_multiplier: Optional[float] = None
    discovery_retry_max_attempts: Optional[int] = None

    def to_runtime_config(self, base: Optional[OperatorConfig] = None) -> OperatorConfig:
        """Merge environment settings into an OperatorConfig.

        If a base config is provided (e.g., loaded from YAML), variables that
        are set take precedence over it.
        """
        if base is None:
            base = OperatorConfig()

        discovery = base.discovery.model_copy(
            update=_set(
                enabled=self.discovery_enabled,
                default_path=self.capabilities_path,
                not_ready_recheck_seconds=self.not_ready_recheck_seconds,
                http_timeout=self.http_timeout,
            )
        )
        controllers = base.controllers.model_copy(update=_set(workers=self.workers))
        retry = base.retry.model_copy(
            update={
                "default": _merge_policy(
                    base.retry.default,
                    self.retry_initial_interval,
                    self.retry_multiplier,
                    self.retry_max_attempts,
                ),
                "discovery": _merge_policy(
                    base.retry.discovery,
                    self.discovery_retry_initial_interval,
                    self.discovery_retry_multiplier,
                    self.discovery_retry_max_attempts,
                ),
            }
        )
        # Re-validate so overrides go through the same checks as YAML values.
        return OperatorConfig.model_validate(
            {
                "discovery": discovery.model_dump(),
                "retry": retry.model_dump(),
                "controllers": controllers.model_dump(),
            }
        )


def _set(**values):
    return {k: v for k, v in values.items() if v is not None}


def _merge_policy(
    policy: RetryPolicyConfig,
    initial_interval: Optional[float],
    multiplier: Optional[float],
    max_attempts: Optional[int],
) -> RetryPolicyConfig:
    return policy.model_copy(
        update=_set(
            initial_interval=initial_interval,
            multiplier=multiplier,
            max_attempts=max_attempts,
        )
    )
