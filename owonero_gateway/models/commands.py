"""Command-related data structures."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

NO_RESPONSE = "no response"


class CommandRequest(BaseModel):
    """One logical command against one daemon endpoint."""

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    command: str = Field(min_length=1)
    payload: Any = None

    model_config = {"frozen": True}


class CommandResult(BaseModel):
    """Internal result from a daemon TCP session."""

    command: str
    original: str
    cleaned: str
    adjusted: str
    elapsed_time: float = 0.0


class OutcomeStatus(str, Enum):
    ok = "ok"
    connection_error = "connection_error"
    timeout = "timeout"
    bad_request = "bad_request"


class GatewayOutcome(BaseModel):
    """Exactly one of these is produced per request.

    Failure kinds stay distinct here even though the HTTP surface renders
    all of them the same way.
    """

    status: OutcomeStatus
    result: Optional[CommandResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.ok

    @property
    def adjusted(self) -> str:
        if self.result is None or not self.result.adjusted.strip():
            return NO_RESPONSE
        return self.result.adjusted
