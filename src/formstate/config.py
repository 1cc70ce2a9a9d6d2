"""
Engine-wide configuration.

Module-level current value with explicit setters, so applications configure
the engine once at startup and tests can swap it out and restore it.
"""
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class EngineConfig:
    """Tunable constants used across the engine."""
    money_places: int = 2
    date_format: str = '%Y-%m-%d'
    time_format: str = '%H:%M'
    id_field: str = 'id'
    submit_error_message: str = 'Failed to save record'
    validation_error_message: str = 'Please correct the errors in the form'
    load_error_message: str = 'Failed to load record'


_DEFAULT_CONFIG = EngineConfig()
_engine_config: EngineConfig = _DEFAULT_CONFIG


def set_engine_config(config: EngineConfig) -> None:
    """Replace the current engine configuration."""
    global _engine_config
    _engine_config = config


def get_engine_config() -> EngineConfig:
    """Get the current engine configuration."""
    return _engine_config


def update_engine_config(**changes: Any) -> EngineConfig:
    """Replace selected fields of the current configuration and return it."""
    config = replace(_engine_config, **changes)
    set_engine_config(config)
    return config


def reset_engine_config() -> None:
    set_engine_config(_DEFAULT_CONFIG)
