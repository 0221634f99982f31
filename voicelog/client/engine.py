"""Abstract voice engine interface.

The call session controller depends only on this class, never on a
concrete engine SDK. Engines report exactly four events: call-start,
call-end, transcript and error. Handlers are plain callables invoked on
the event loop that owns the controller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable


class EngineEvent(str, Enum):
    CALL_START = "call-start"
    CALL_END = "call-end"
    TRANSCRIPT = "transcript"
    ERROR = "error"


EventHandler = Callable[[Any], None]


@dataclass(frozen=True)
class TranscriptFragment:
    """One speech-to-text result from the engine."""

    role: str
    text: str
    is_final: bool

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> TranscriptFragment | None:
        """Parse an engine transcript message.

        Missing role means the assistant; missing transcriptType means final.
        Returns None when the text is empty after trimming.
        """
        text = (message.get("transcript") or message.get("text") or "").strip()
        if not text:
            return None
        role = message.get("role") or "assistant"
        is_final = (message.get("transcriptType") or "final") == "final"
        return cls(role=role, text=text, is_final=is_final)


class VoiceEngine(ABC):
    """Abstract base class for voice engines."""

    def __init__(self) -> None:
        self._handlers: dict[EngineEvent, list[EventHandler]] = defaultdict(list)

    def on(self, event: EngineEvent, handler: EventHandler) -> None:
        """Register ``handler`` for ``event``."""
        self._handlers[event].append(handler)

    def emit(self, event: EngineEvent, payload: Any = None) -> None:
        """Deliver ``payload`` to every handler registered for ``event``."""
        for handler in list(self._handlers[event]):
            handler(payload)

    @abstractmethod
    async def start(self, assistant_id: str, metadata: dict[str, Any] | None = None) -> None:
        """Request a call with ``assistant_id``.

        The engine emits CALL_START once the call is up, or ERROR.

        Raises:
            Exception: If the request cannot be issued at all.
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Hang up. The engine emits CALL_END when the call is down."""
        ...

    @abstractmethod
    def set_muted(self, muted: bool) -> None:
        """Mute or unmute the local microphone."""
        ...


EngineFactory = Callable[[str], Awaitable[VoiceEngine]]
