"""Application configuration helpers."""

from __future__ import annotations

from .env import optional_float, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .logging import configure_logging
from .policy import ReconciliationPolicy, ScoringWeights, SlaPolicy, get_reconciliation_policy
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "ReconciliationPolicy",
    "ScoringWeights",
    "SlaPolicy",
    "StorageConfig",
    "configure_logging",
    "get_database_config",
    "get_reconciliation_policy",
    "get_storage_config",
    "optional_float",
    "require_env_vars",
]
