"""
Configuration management for avdusage
"""
import os
import socket
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EXCLUDED_PROCESSES = [
    "idle",
    "system",
    "registry",
    "csrss",
    "dwm",
    "fontdrvhost",
    "winlogon",
    "conhost",
]


def _default_output_root() -> Path:
    return Path(os.environ.get("ProgramData", "/var/lib")) / "AVDUsage"


class Settings(BaseSettings):
    """Sampler settings loaded from AVDUSAGE_* environment variables"""

    model_config = SettingsConfigDict(
        env_prefix="AVDUSAGE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Output layout
    output_root: Path = Field(default_factory=_default_output_root)
    process_subdir: str = "ProcessUsage"
    session_subdir: str = "SessionUsage"
    log_subdir: str = "Logs"
    process_file_prefix: str = "ProcessUsage"
    session_file_prefix: str = "SessionUsage"
    host_name: str = Field(default_factory=socket.gethostname)

    # Housekeeping
    retention_days: int = Field(default=7, ge=1)
    log_max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    log_keep_ratio: float = Field(default=0.75, gt=0.0, lt=1.0)

    # Sampling
    excluded_process_names: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_PROCESSES)
    )
    session_query_timeout: float = Field(default=30.0, gt=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    @property
    def process_dir(self) -> Path:
        return self.output_root / self.process_subdir

    @property
    def session_dir(self) -> Path:
        return self.output_root / self.session_subdir

    @property
    def log_dir(self) -> Path:
        return self.output_root / self.log_subdir
