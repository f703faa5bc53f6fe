# ============================================================================
# CONFIG PACKAGE INIT
# ============================================================================
# STATUS: Active
# PURPOSE: Configuration package exports and environment singleton
# EXPORTS: AppConfig, DatabaseConfig, PipelineConfig, get_config, debug_config
# DEPENDENCIES: pydantic
# ============================================================================

"""
Configuration Package - Domain-Specific Configuration Modules

Structure:
    config/
    ├── __init__.py              # This file - exports and singleton
    ├── app_config.py            # Main config (composes domain configs)
    ├── database_config.py       # PostgreSQL/PostGIS + pool bound
    ├── pipeline_config.py       # Patch size, association threshold, artefacts
    └── defaults.py              # Default values and environment variable names

Usage:
    # Explicit (preferred inside the pipeline)
    config = AppConfig(database=DatabaseConfig(connection_string=...))
    pipeline = SensorDataPipeline(config)

    # Environment singleton (CLI)
    from config import get_config
    config = get_config()
"""

from typing import Optional

from .database_config import DatabaseConfig
from .pipeline_config import PipelineConfig
from .app_config import AppConfig
from .defaults import AppDefaults, DatabaseDefaults, EnvVars, PipelineDefaults


# ============================================================================
# SINGLETON PATTERN
# ============================================================================

_config_instance: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get global configuration singleton loaded from the environment.

    Raises:
        ConfigurationError: CITYDB_DATABASE_URL is not set
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = AppConfig.from_environment()
    return _config_instance


def reset_config() -> None:
    """Drop the cached singleton (tests, changed environment)."""
    global _config_instance
    _config_instance = None


def debug_config() -> dict:
    """
    Get sanitized configuration for debugging (masks sensitive values).

    Returns:
        Dictionary with configuration values, credentials masked, or the
        error message when the environment is incomplete.
    """
    try:
        return get_config().debug_dict()
    except Exception as e:
        return {"error": str(e), "error_type": type(e).__name__}


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "PipelineConfig",
    "AppDefaults",
    "DatabaseDefaults",
    "EnvVars",
    "PipelineDefaults",
    "get_config",
    "reset_config",
    "debug_config",
]
