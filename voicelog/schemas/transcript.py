"""Transcript request/response schemas.

Field names are snake_case in Python and camelCase on the wire, matching
the upstream voice backend's end-of-call report format.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Inbound webhook
# ---------------------------------------------------------------------------


class CallInfo(CamelModel):
    """``call`` block of an end-of-call report."""

    id: str | None = None
    started_at: str | None = None
    ended_at: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _default_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


class Artifact(CamelModel):
    """``artifact`` block of an end-of-call report."""

    transcript: str | None = None
    messages: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def _default_messages(cls, value: Any) -> Any:
        return [] if value is None else value


class EndOfCallReport(CamelModel):
    """POST /api/transcript request body."""

    type: str | None = None
    ended_reason: str | None = None
    call: CallInfo = Field(default_factory=CallInfo)
    artifact: Artifact = Field(default_factory=Artifact)

    @field_validator("call", "artifact", mode="before")
    @classmethod
    def _default_blocks(cls, value: Any) -> Any:
        return {} if value is None else value


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class TranscriptRecord(CamelModel):
    """One finished call, stored under its session id."""

    session_id: str
    call_id: str
    timestamp: str
    ended_reason: str | None = None
    started_at: str | None = None
    ended_at: str | None = None
    transcript: str
    messages: list[dict[str, Any]] = Field(default_factory=list)
    processed: bool = False
    processed_at: str | None = None


class LatestPointer(CamelModel):
    """Reference to the most recently ingested record."""

    session_id: str
    timestamp: str


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class IngestResponse(CamelModel):
    """POST /api/transcript response body."""

    success: bool = True
    session_id: str | None = None
    message: str | None = None


class SessionSummary(CamelModel):
    """Metadata-only listing entry."""

    session_id: str
    integrity_tag: str | None = None


class SessionListResponse(CamelModel):
    sessions: list[SessionSummary]
    count: int


class UnprocessedResponse(CamelModel):
    transcripts: list[TranscriptRecord]
    count: int


class LatestTranscriptResponse(CamelModel):
    """``transcript`` is null until the first ingestion."""

    transcript: TranscriptRecord | None = None


class MarkProcessedResponse(CamelModel):
    success: bool = True
    session_id: str
    processed_at: str
