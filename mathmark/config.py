"""
Configuration loading and validation.

Supports a YAML ``mathmark.yaml`` at the workspace root.
"""

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

CONFIG_FILE_NAME = "mathmark.yaml"


class ConfigError(ValueError):
    """Raised when a configuration file is structurally invalid."""


class RunProfileKind(str, Enum):
    """How a profile executes assertions."""

    RUN = "run"
    COVERAGE = "coverage"


class RunProfile(BaseModel):
    """A named way of running assertions."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Display name")
    kind: RunProfileKind = Field(default=RunProfileKind.RUN)
    is_default: bool = Field(default=True)
    supports_continuous: bool = Field(default=True)

    @property
    def collects_coverage(self) -> bool:
        return self.kind == RunProfileKind.COVERAGE


RUN_PROFILE = RunProfile(name="Run Tests", kind=RunProfileKind.RUN)
COVERAGE_PROFILE = RunProfile(name="Run with Coverage", kind=RunProfileKind.COVERAGE)


class MathmarkConfig(BaseModel):
    """Configuration for discovery, watching and running."""

    model_config = ConfigDict(extra="forbid")

    include: str = Field(default="**/*.md", description="Glob of documents to scan")
    exclude_dirs: list[str] = Field(
        default_factory=lambda: [".git", "node_modules", ".venv"],
        description="Directory names never scanned",
    )
    poll_interval_seconds: float = Field(default=0.5, gt=0.0)
    encoding: str = Field(default="utf-8")
    log_level: str = Field(default="WARNING")
    profiles: list[RunProfile] = Field(
        default_factory=lambda: [RUN_PROFILE, COVERAGE_PROFILE],
    )

    @field_validator("log_level")
    @classmethod
    def log_level_is_known(cls, v: str) -> str:
        """Validate and normalize the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def get_profile(self, kind: RunProfileKind) -> RunProfile:
        """Get the default profile of a kind, falling back to the built-in one."""
        for profile in self.profiles:
            if profile.kind == kind and profile.is_default:
                return profile
        for profile in self.profiles:
            if profile.kind == kind:
                return profile
        return COVERAGE_PROFILE if kind == RunProfileKind.COVERAGE else RUN_PROFILE


class ConfigLoader:
    """Load and validate configuration from YAML files."""

    @classmethod
    def from_yaml(cls, path: str | Path) -> MathmarkConfig:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            MathmarkConfig loaded from file
        """
        path = Path(path)
        if not path.exists():
            msg = f"Configuration file not found: {path}"
            raise FileNotFoundError(msg)

        with path.open() as f:
            data = yaml.safe_load(f)

        if data is None:
            return MathmarkConfig()
        if not isinstance(data, dict):
            msg = f"Configuration must be a mapping: {path}"
            raise ConfigError(msg)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MathmarkConfig:
        """Create configuration from a dictionary."""
        return MathmarkConfig.model_validate(data)

    @classmethod
    def discover(cls, root: str | Path, explicit: str | Path | None = None) -> MathmarkConfig:
        """
        Load the explicit config file, else ``mathmark.yaml`` under root, else defaults.
        """
        if explicit is not None:
            return cls.from_yaml(explicit)

        candidate = Path(root) / CONFIG_FILE_NAME
        if candidate.is_file():
            return cls.from_yaml(candidate)
        return MathmarkConfig()
