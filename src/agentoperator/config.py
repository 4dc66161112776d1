import os
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import DEFAULT_CAPABILITIES_PATH, DISCOVERY_LABEL_KEY, DISCOVERY_LABEL_VALUE
from .exceptions import ConfigError
from .runtime.retry import BackoffPolicy

CONFIG_ENV_VAR = "AGENTOPERATOR_CONFIG"
DEFAULT_CONFIG_FILE = "agentoperator.yaml"


class RetryPolicyConfig(BaseModel):
    initial_interval: float = Field(default=2.0, description="Seconds before the first retry")
    multiplier: float = Field(default=1.5, description="Growth factor between retries")
    max_attempts: int = Field(default=5, description="Retries after the first failure")

    @field_validator("initial_interval")
    def validate_interval(cls, v):
        if v < 0:
            raise ValueError("initial_interval must be >= 0")
        return v

    @field_validator("multiplier")
    def validate_multiplier(cls, v):
        if v < 1:
            raise ValueError("multiplier must be >= 1")
        return v

    @field_validator("max_attempts")
    def validate_attempts(cls, v):
        if v < 0:
            raise ValueError("max_attempts must be >= 0")
        return v

    def to_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            initial_interval=self.initial_interval,
            multiplier=self.multiplier,
            max_attempts=self.max_attempts,
        )


class RetryConfig(BaseModel):
    default: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    discovery: RetryPolicyConfig = Field(
        default_factory=lambda: RetryPolicyConfig(initial_interval=5.0, multiplier=1.5, max_attempts=3)
    )


class DiscoveryConfig(BaseModel):
    enabled: bool = Field(default=True, description="Run the workload discovery controller")
    label_selector: Dict[str, str] = Field(
        default_factory=lambda: {DISCOVERY_LABEL_KEY: DISCOVERY_LABEL_VALUE},
        description="Labels a workload needs to be discovered",
    )
    default_path: str = Field(
        default=DEFAULT_CAPABILITIES_PATH,
        description="Manifest path used when a workload has no path annotation",
    )
    not_ready_recheck_seconds: float = Field(default=10.0)
    http_timeout: float = Field(default=10.0, description="Seconds per discovery request")

    @field_validator("not_ready_recheck_seconds", "http_timeout")
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be > 0")
        return v


class ControllerConfig(BaseModel):
    workers: int = Field(default=4, description="Workers per controller")

    @field_validator("workers")
    def validate_workers(cls, v):
        if v < 1:
            raise ValueError("workers must be >= 1")
        return v


class OperatorConfig(BaseModel):
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    controllers: ControllerConfig = Field(default_factory=ControllerConfig)

    @classmethod
    def from_file(cls, path: Path) -> "OperatorConfig":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}", cause=exc) from exc

        try:
            return cls(**(data or {}))
        except ValidationError as exc:
            raise ConfigError(
                f"Invalid configuration in {path}", cause=exc, payload={"path": str(path)}
            ) from exc

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "OperatorConfig":
        """Load configuration using precedence: explicit path -> env var -> cwd file -> defaults."""
        env_path = os.getenv(CONFIG_ENV_VAR)
        explicit = path or (Path(env_path) if env_path else None)
        if explicit:
            return cls.from_file(Path(explicit))
        local = Path(DEFAULT_CONFIG_FILE)
        if local.exists():
            return cls.from_file(local)
        return cls()

    def save_to_file(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False, indent=2)
