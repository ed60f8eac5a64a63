"""Exception types shared by the analysis pipeline, services, and routes."""

from __future__ import annotations

import os
from typing import Optional


class ServiceError(Exception):
    """An external completion/search call failed or returned unusable content."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        if self.cause is not None:
            return f"{base} (cause: {self.cause!r})"
        return base


class AnalysisNotFoundError(LookupError):
    """The analysis record does not exist (or vanished mid-run)."""

    def __init__(self, analysis_id: object):
        super().__init__(f"Analysis {analysis_id} not found")
        self.analysis_id = analysis_id


class PipelineAlreadyRunningError(RuntimeError):
    """A pipeline run for this analysis is already in flight."""

    def __init__(self, analysis_id: object):
        super().__init__(f"Analysis {analysis_id} is already being processed")
        self.analysis_id = analysis_id


class InvalidStageTransitionError(ValueError):
    """The pipeline tried to move to a stage that does not follow the current one."""


def debug_enabled() -> bool:
    return os.getenv("DEBUG", "false").lower() == "true"


def user_facing_message(step: str, exc: BaseException) -> str:
    """Stored error text for a failed run; raw detail only when DEBUG=true."""
    message = f"Analysis failed during {step}. Please try rerunning the analysis."
    if debug_enabled():
        message += f" ({type(exc).__name__}: {exc})"
    return message
