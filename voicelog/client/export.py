"""Markdown export of a finished session.

The export is a projection of the message log, never a source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

SUMMARY_PLACEHOLDER = "[TO BE FILLED]"


class ExportableMessage(Protocol):
    role: str
    text: str


@dataclass(frozen=True)
class SpeakerLabels:
    user: str = "Jordan"
    assistant: str = "eA"

    def for_role(self, role: str) -> str:
        return self.user if role == "user" else self.assistant


def format_duration(seconds: int) -> str:
    """125 → ``"2m 5s"``."""
    return f"{seconds // 60}m {seconds % 60}s"


def format_start_time(start: datetime) -> str:
    """``T-HHMM`` in the start time's own zone."""
    return f"T-{start:%H%M}"


def export_filename(session_id: str) -> str:
    return f"{session_id}_sT_raw.md"


def format_transcript_for_export(
    session_id: str,
    duration: str,
    start_time: datetime,
    messages: Iterable[ExportableMessage],
    labels: SpeakerLabels | None = None,
) -> str:
    labels = labels or SpeakerLabels()
    lines = [
        "---",
        f"session_id: {session_id}",
        f"duration: {duration}",
        f"start_time: {format_start_time(start_time)}",
        f"summary: {SUMMARY_PLACEHOLDER}",
        "---",
        "",
        "",
    ]
    document = "\n".join(lines)
    for message in messages:
        document += f"**{labels.for_role(message.role)}:** {message.text}\n\n"
    return document
