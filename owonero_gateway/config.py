"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is driven by environment variables.

    Built once at startup and never mutated; the gateway receives it
    explicitly.
    """

    # HTTP listener
    port: int = Field(default=3001, ge=1, le=65535)
    listen_host: str = "0.0.0.0"

    # Request defaults for POST /api/tcp
    owo_default_host: str = "localhost"
    owo_default_port: int = Field(default=6969, ge=1, le=65535)
    owo_default_command: str = "getheight"

    # Daemon session
    owo_tcp_timeout_ms: int = Field(default=5000, gt=0)
    owo_idle_timeout_ms: int = Field(default=250, gt=0)
    owo_eol: str = "\r\n"
    owo_read_chunk_size: int = Field(default=4096, gt=0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "frozen": True}

    @field_validator("owo_eol")
    @classmethod
    def _decode_eol(cls, value: str) -> str:
        # Env files usually carry the escaped form, e.g. OWO_EOL=\r\n
        return value.replace("\\r", "\r").replace("\\n", "\n")

    @property
    def tcp_timeout(self) -> float:
        return self.owo_tcp_timeout_ms / 1000.0

    @property
    def idle_timeout(self) -> float:
        return self.owo_idle_timeout_ms / 1000.0


# Singleton – import this from anywhere
settings = Settings()
