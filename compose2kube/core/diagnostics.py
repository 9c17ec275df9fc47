"""Non-fatal warnings collected while a pipeline run progresses."""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Stage(str, Enum):
    """Pipeline stage that emitted a diagnostic."""

    NORMALIZE = "normalize"
    GRAPH = "graph"
    CLASSIFY = "classify"
    POLICY = "policy"
    SECURITY = "security"
    COST = "cost"
    SYNTHESIZE = "synthesize"
    VALIDATE = "validate"


class Diagnostic(BaseModel):
    """A Warning-class event: recorded, logged, never fatal."""

    stage: Stage = Field(..., description="Stage that emitted the warning.")
    code: str = Field(..., description="Stable machine-readable code.")
    message: str = Field(..., description="Human-readable explanation.")
    service_id: str | None = Field(
        None, description="Owning service, when the warning is service-scoped."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    def __str__(self) -> str:
        scope = f"[{self.service_id}] " if self.service_id else ""
        return f"{self.stage.value}/{self.code}: {scope}{self.message}"


def warn(
    log: logging.Logger,
    sink: list[Diagnostic],
    stage: Stage,
    code: str,
    message: str,
    service_id: str | None = None,
) -> Diagnostic:
    """Log a warning and append the matching Diagnostic to ``sink``."""
    diagnostic = Diagnostic(
        stage=stage, code=code, message=message, service_id=service_id
    )
    log.warning(str(diagnostic))
    sink.append(diagnostic)
    return diagnostic


__all__ = ["Stage", "Diagnostic", "warn"]
