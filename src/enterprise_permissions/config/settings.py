"""Engine configuration loader with Pydantic v2 validation.

Loads and validates an ``engine.yaml`` file into a typed
:class:`EngineConfig` object.  Unknown keys are allowed so older engines
can read newer files.

Example
-------
::

    config = ConfigLoader().load(Path("engine.yaml"))
    config.audit.evaluation_policy   # 'restricted'
"""
from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from enterprise_permissions.model.errors import DefinitionConfigError


class AuditConfig(BaseModel):
    """Configuration for the audit recorder and its sink."""

    model_config = {"extra": "allow"}

    sink: Literal["memory", "jsonl", "null"] = Field(default="memory")
    log_path: Path = Field(default=Path("./permission_audit.jsonl"))
    asynchronous: bool = Field(default=True)
    max_retries: int = Field(default=3, ge=0)
    backoff_seconds: float = Field(default=0.1, gt=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_retained: int = Field(default=1000, ge=1)
    evaluation_policy: Literal["restricted", "denials", "all"] = Field(default="restricted")


class CacheConfig(BaseModel):
    """Configuration for the per-snapshot resolution cache."""

    model_config = {"extra": "allow"}

    enabled: bool = Field(default=True)
    max_entries: int = Field(default=10_000, ge=1)


class EngineConfig(BaseModel):
    """Top-level engine configuration schema.

    All sections are optional and fall back to defaults.
    """

    model_config = {"extra": "allow"}

    version: str = Field(default="1")
    definitions_path: Path | None = Field(default=None)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


class ConfigLoader:
    """Loads and validates engine YAML configuration."""

    def load(self, config_path: str | Path) -> EngineConfig:
        """Load and validate an engine YAML file.

        Parameters
        ----------
        config_path:
            Path to the ``engine.yaml`` file.

        Returns
        -------
        EngineConfig
            Validated configuration object.

        Raises
        ------
        FileNotFoundError:
            When the config file does not exist.
        DefinitionConfigError:
            When the YAML cannot be parsed or fails validation.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Engine config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            return self.load_string(fh.read(), config_path=str(config_path))

    def load_string(self, yaml_content: str, config_path: str | None = None) -> EngineConfig:
        """Load and validate a YAML string directly."""
        try:
            raw = yaml.safe_load(yaml_content) or {}
        except yaml.YAMLError as exc:
            raise DefinitionConfigError(f"Failed to parse YAML: {exc}", config_path) from exc
        try:
            return EngineConfig.model_validate(raw)
        except ValidationError as exc:
            raise DefinitionConfigError(str(exc), config_path) from exc

    def defaults(self) -> EngineConfig:
        """Return a default configuration with all defaults applied."""
        return EngineConfig()
