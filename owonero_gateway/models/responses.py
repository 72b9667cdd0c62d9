"""HTTP request and response models."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, field_validator


class HealthResponse(BaseModel):
    ok: bool = True


class TcpProxyRequest(BaseModel):
    """Body of ``POST /api/tcp``.

    Falsy fields (``""``, ``0``) are treated as missing; the router fills in
    the gateway's configured defaults.
    """

    host: Optional[str] = None
    port: Optional[int] = None
    command: Optional[str] = None
    payload: Any = None

    @field_validator("host", "port", mode="before")
    @classmethod
    def _falsy_is_missing(cls, v: Any) -> Any:
        return v or None

    @field_validator("command", mode="before")
    @classmethod
    def _command_text(cls, v: Any) -> Any:
        return str(v) if v else None


class TcpProxyResponse(BaseModel):
    ok: bool = True
    adjusted: str
    # Only filled in for ?verbose=true
    raw: Optional[str] = None
    cleaned: Optional[str] = None
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
