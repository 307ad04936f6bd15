"""
Configuration module for simulation sessions.

Provides a Pydantic model for YAML settings parsing and validation.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from .entity import VALID_LOG_LEVELS
from .presets import PRESETS


class SimulationSettings(BaseModel):
    """Settings for a simulation session (shell or embedding program)."""

    log_level: str = "WARNING"
    history_depth: int = Field(default=100, ge=1)  # Neuron voltage trace length
    max_history: int = Field(default=1000, ge=1)  # Network activity history length
    frame_rate: float = Field(default=60.0, gt=0.0)
    ticks_per_frame: int = Field(default=1, ge=0)  # 0 pauses time flow
    preset: str | None = None
    circuit_path: str | None = None
    cli_history_file: str = ".circuit_cli_history"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {v}. Allowed: {', '.join(VALID_LOG_LEVELS)}"
            )
        return level

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v):
        if v is not None and v not in PRESETS:
            raise ValueError(f"Unknown preset: {v}. Allowed: {sorted(PRESETS)}")
        return v


def load_settings(settings_path: str | Path) -> SimulationSettings:
    """Load and validate simulation settings from YAML file.

    Args:
        settings_path: Path to YAML settings file.

    Returns:
        Validated SimulationSettings object.

    Raises:
        FileNotFoundError: If settings file doesn't exist.
        ValueError: If the file is empty.
        pydantic.ValidationError: If settings are invalid.
    """
    settings_path = Path(settings_path)
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with open(settings_path, "r") as f:
        raw_settings = yaml.safe_load(f)

    if raw_settings is None:
        raise ValueError("Empty settings file")

    return SimulationSettings(**raw_settings)


def load_settings_from_string(settings_string: str) -> SimulationSettings:
    """Load and validate simulation settings from YAML string."""
    raw_settings = yaml.safe_load(settings_string)

    if raw_settings is None:
        raise ValueError("Empty settings string")

    return SimulationSettings(**raw_settings)
