"""Session identifier format and the allocator interface.

Identifiers look like ``<PREFIX>_<DDMmmYY>-<N>``, e.g. ``sS_05Oct26-3``.
The prefix separates client-generated provisional ids from server
allocated durable ids; ``N`` is a 1-based sequence within the day.

Both the server allocator and the client's local counter implement
``SessionIdAllocator`` so either can be swapped for a deterministic
fake in tests.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# call.metadata key the client uses to send its provisional id
PROVISIONAL_ID_METADATA_KEY = "provisionalSessionId"

_SESSION_ID_RE = re.compile(
    r"^(?P<prefix>[A-Za-z0-9]+)_(?P<day>\d{2})(?P<month>[A-Z][a-z]{2})(?P<year>\d{2})-(?P<number>[1-9]\d*)$"
)


@dataclass(frozen=True)
class SessionId:
    """Parsed form of a session identifier."""

    prefix: str
    day: date
    number: int

    @property
    def date_prefix(self) -> str:
        return date_prefix(self.prefix, self.day)

    def __str__(self) -> str:
        return compose(self.prefix, self.day, self.number)


def day_stamp(day: date) -> str:
    """``date(2026, 10, 5)`` → ``"05Oct26"``."""
    return f"{day.day:02d}{MONTHS[day.month - 1]}{day.year % 100:02d}"


def date_prefix(prefix: str, day: date) -> str:
    """Key prefix shared by every identifier of ``prefix`` on ``day``."""
    return f"{prefix}_{day_stamp(day)}-"


def compose(prefix: str, day: date, number: int) -> str:
    if number < 1:
        raise ValueError(f"Sequence number must be positive, got {number}")
    return f"{date_prefix(prefix, day)}{number}"


def parse(session_id: str) -> SessionId | None:
    """Parse an identifier. Returns None when it is not well-formed."""
    match = _SESSION_ID_RE.match(session_id)
    if match is None or match["month"] not in MONTHS:
        return None
    try:
        day = date(
            2000 + int(match["year"]),
            MONTHS.index(match["month"]) + 1,
            int(match["day"]),
        )
    except ValueError:
        return None
    return SessionId(prefix=match["prefix"], day=day, number=int(match["number"]))


def sequence_number(session_id: str, prefix: str) -> int | None:
    """Return ``N`` if ``session_id`` is ``<prefix><N>``, else None."""
    if not session_id.startswith(prefix):
        return None
    tail = session_id[len(prefix):]
    if not tail.isdigit() or tail.startswith("0"):
        return None
    return int(tail)


class SessionIdAllocator(ABC):
    """Hands out identifiers that are unique within a date prefix."""

    @abstractmethod
    async def allocate(self, date_prefix: str) -> str:
        """Return a fresh identifier starting with ``date_prefix``.

        Args:
            date_prefix: Output of ``date_prefix()``, e.g. ``"sS_05Oct26-"``.

        Returns:
            The composite identifier, e.g. ``"sS_05Oct26-4"``.
        """
        ...

    async def claim(self, session_id: str) -> bool:
        """Reserve a specific identifier. Returns False if it cannot be reserved."""
        return False

    async def release(self, session_id: str) -> None:
        """Give back an identifier returned by allocate() or claim() that was never used."""
        return None
