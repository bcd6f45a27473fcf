"""
Lifecycle configuration schema.

``StartupConfig`` is the typed form of the settings that control system
startup: whether the cron jobs run, on what cadence, and at what log
level.  YAML files and request bodies are parsed into it by
``StartupConfig.from_mapping`` (see ``recurring_config.loader``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from recurring_batch.domain.schedule import validate_cron

DEFAULT_CRON_SCHEDULE = "0 0 * * *"  # daily at midnight


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @classmethod
    def parse(cls, value: LogLevel | str) -> LogLevel:
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text == "warning":
            return cls.WARN
        try:
            return cls(text)
        except ValueError:
            raise ValueError(
                f"Invalid log level {value!r}; expected one of "
                f"{', '.join(level.value for level in cls)}"
            ) from None


@dataclass(frozen=True)
class StartupConfig:
    """Settings consumed by ``SystemStartup.initialize()``.

    Raises:
        InvalidCronExpressionError: if ``cron_job_schedule`` is malformed.
        ValueError: if ``log_level`` is not a known level.
    """

    enable_cron_jobs: bool = True
    cron_job_schedule: str = DEFAULT_CRON_SCHEDULE
    log_level: LogLevel = LogLevel.INFO

    _KEY_ALIASES = {
        "enableCronJobs": "enable_cron_jobs",
        "cronJobSchedule": "cron_job_schedule",
        "logLevel": "log_level",
    }

    def __post_init__(self) -> None:
        if not isinstance(self.enable_cron_jobs, bool):
            raise ValueError(
                f"enable_cron_jobs must be a boolean, got {self.enable_cron_jobs!r}"
            )
        validate_cron(self.cron_job_schedule)
        object.__setattr__(self, "log_level", LogLevel.parse(self.log_level))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> StartupConfig:
        """Build a config from snake_case or camelCase keys.

        Missing keys take their defaults.

        Raises:
            ValueError: on unknown keys or invalid values.
        """
        fields: dict[str, Any] = {}
        for key, value in (data or {}).items():
            name = cls._KEY_ALIASES.get(key, key)
            if name.startswith("_") or name not in cls.__dataclass_fields__:
                raise ValueError(f"Unknown startup config key: {key!r}")
            fields[name] = value
        return cls(**fields)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enable_cron_jobs": self.enable_cron_jobs,
            "cron_job_schedule": self.cron_job_schedule,
            "log_level": self.log_level.value,
        }
