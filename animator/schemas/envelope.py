"""Machine-readable error body returned next to ``detail`` on every error."""

from typing import Any

from pydantic import BaseModel, Field


class ErrorLocation(BaseModel):
    """Which request field or resource the error is about."""

    field: str | None = None
    project_id: str | None = None
    track_id: str | None = None
    segment_id: str | None = None
    pipeline: str | None = None


class SuggestedAction(BaseModel):
    action: str
    endpoint: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class ErrorInfo(BaseModel):
    code: str
    message: str
    retryable: bool = False
    location: ErrorLocation | None = None
    suggested_fix: str | None = None
    suggested_actions: list[SuggestedAction] = Field(default_factory=list)
