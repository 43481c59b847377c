"""
Engine settings.

Settings are read from an optional YAML file and then overridden by
WORKFLOW_ENGINE_<FIELD> environment variables.
"""

import os
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.exceptions import ConfigurationError


ENV_PREFIX = "WORKFLOW_ENGINE_"


class EngineSettings(BaseModel):
    """Engine-wide defaults."""

    model_config = ConfigDict(extra="forbid")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    structured_logging: bool = True
    log_file: Optional[str] = None

    retry_delay_seconds: float = Field(default=0.1, ge=0)
    retry_backoff: Literal["fixed", "exponential"] = "fixed"
    retry_max_delay_seconds: float = Field(default=30.0, ge=0)

    # None means unbounded
    max_concurrent_jobs: Optional[int] = Field(default=None, ge=1)
    strict_task_types: bool = False

    database_url: Optional[str] = None


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides = {}
    for name in EngineSettings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key not in environ:
            continue
        value = environ[key]
        # Empty strings clear optional values
        overrides[name] = None if value == "" else value
        if name == "log_level" and value:
            overrides[name] = value.upper()
    return overrides


def load_settings(path: Optional[Union[str, Path]] = None,
                  environ: Optional[Mapping[str, str]] = None) -> EngineSettings:
    """
    Load engine settings.

    Args:
        path: Optional YAML settings file
        environ: Environment mapping; defaults to os.environ

    Returns:
        Validated EngineSettings

    Raises:
        ConfigurationError: if the file cannot be read or a value is invalid
    """
    data: Dict[str, Any] = {}

    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(str(path), f"cannot read settings file: {e}")

        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError(str(path), "settings file must contain a mapping")
        data.update(loaded or {})

    data.update(_env_overrides(os.environ if environ is None else environ))

    try:
        return EngineSettings.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(p) for p in first.get("loc", ())) or "settings"
        raise ConfigurationError(key, first.get("msg", str(e)))
