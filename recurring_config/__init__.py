"""
recurring_config -- lifecycle configuration for the recurring engine.

``StartupConfig`` is the only runtime configuration object; it is built
from a mapping (``StartupConfig.from_mapping``) or a YAML file
(``load_startup_config``).  Nothing else in the engine reads
configuration files or environment variables.
"""

from recurring_config.loader import load_startup_config, load_yaml_file
from recurring_config.schema import DEFAULT_CRON_SCHEDULE, LogLevel, StartupConfig

__all__ = [
    "DEFAULT_CRON_SCHEDULE",
    "LogLevel",
    "StartupConfig",
    "load_startup_config",
    "load_yaml_file",
]
