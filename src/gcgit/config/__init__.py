"""Instance configuration."""
from .instance import (
    CONFIG_FILENAME,
    ConfigError,
    ConfigManager,
    InstanceConfig,
    ModuleConfig,
    expand_env,
    normalize_fqdn,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "ConfigManager",
    "InstanceConfig",
    "ModuleConfig",
    "expand_env",
    "normalize_fqdn",
]
