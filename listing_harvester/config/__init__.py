"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    DEFAULT_IDENTITY_RULES,
    FetchConfig,
    GlobalConfig,
    IdentityRule,
    JobConfig,
    RevealConfig,
    RevealMode,
    SourceConfig,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "DEFAULT_IDENTITY_RULES",
    "FetchConfig",
    "GlobalConfig",
    "IdentityRule",
    "JobConfig",
    "RevealConfig",
    "RevealMode",
    "SourceConfig",
]
