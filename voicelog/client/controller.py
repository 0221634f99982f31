"""Call session controller: the client-side call lifecycle state machine.

States::

    idle --start()--> connecting --call-start--> conversation --call-end--> ended
    ended --new_session()--> idle
    any --error--> idle

Transcript merge rules:
  - Empty text (after trimming) is dropped regardless of finality.
  - Interim fragments only set the "speaking" indicator to their role.
    They never touch the message log.
  - Final fragments are appended to the log in arrival order as immutable
    entries and clear the indicator if it shows the same role.

Everything runs on one asyncio loop. Engine callbacks are dispatched on that
loop, so the log and state need no locking.

end() while connecting aborts the pending connection: the engine is told to
stop, the controller returns to idle, and a late call-start is ignored.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import structlog

from voicelog.client.engine import (
    EngineEvent,
    EngineFactory,
    TranscriptFragment,
    VoiceEngine,
)
from voicelog.client.export import (
    SpeakerLabels,
    export_filename,
    format_duration,
    format_transcript_for_export,
)
from voicelog.core.exceptions import EngineUnavailableError
from voicelog.core.session_ids import PROVISIONAL_ID_METADATA_KEY, SessionIdAllocator, date_prefix

logger = structlog.get_logger(__name__)


class CallState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONVERSATION = "conversation"
    ENDED = "ended"


@dataclass(frozen=True)
class Message:
    """One finalized utterance in the live log."""

    id: str
    role: str
    text: str
    is_final: bool = True


def _message_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class CallSessionController:
    """Drives one call at a time against a VoiceEngine."""

    def __init__(
        self,
        engine_factory: EngineFactory,
        *,
        public_key: str,
        assistant_id: str,
        id_allocator: SessionIdAllocator,
        id_prefix: str = "eS",
        labels: SpeakerLabels | None = None,
        auto_reset_seconds: float | None = None,
        tick_seconds: float = 1.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._engine_factory = engine_factory
        self._public_key = public_key
        self._assistant_id = assistant_id
        self._id_allocator = id_allocator
        self._id_prefix = id_prefix
        self._labels = labels or SpeakerLabels()
        self._auto_reset_seconds = auto_reset_seconds
        self._tick_seconds = tick_seconds
        self._clock = clock or (lambda: datetime.now().astimezone())

        self._engine: VoiceEngine | None = None
        self._state = CallState.IDLE
        self._session_id: str | None = None
        self._messages: list[Message] = []
        self._speaking: str | None = None
        self._duration = 0
        self._started_at: datetime | None = None
        self._muted = False
        self._tick_task: asyncio.Task | None = None
        self._auto_reset_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def speaking(self) -> str | None:
        return self._speaking

    @property
    def duration(self) -> int:
        return self._duration

    @property
    def started_at(self) -> datetime | None:
        return self._started_at

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def can_start(self) -> bool:
        """False until an engine is ready; the start affordance stays disabled."""
        return self._engine is not None and self._state is CallState.IDLE

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Create the engine and subscribe to its events.

        Failures are logged and leave the controller idle with can_start False.
        """
        if self._engine is not None:
            return True
        if not self._public_key:
            logger.error("voice_engine_missing_public_key")
            return False
        if not self._assistant_id:
            logger.error("voice_engine_missing_assistant_id")
            return False
        try:
            engine = await self._engine_factory(self._public_key)
        except Exception as e:
            logger.error("voice_engine_init_failed", error=str(e))
            return False

        engine.on(EngineEvent.CALL_START, self._on_call_start)
        engine.on(EngineEvent.CALL_END, self._on_call_end)
        engine.on(EngineEvent.TRANSCRIPT, self._on_transcript)
        engine.on(EngineEvent.ERROR, self._on_error)
        self._engine = engine
        logger.info("voice_engine_ready", engine=type(engine).__name__)
        return True

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def start(self) -> str | None:
        """Begin a call. Returns the provisional session id, or None if it
        could not be started.

        Raises:
            EngineUnavailableError: If called before a successful initialize().
        """
        if self._engine is None:
            raise EngineUnavailableError()
        if self._state is not CallState.IDLE:
            logger.warning("start_ignored", state=self._state.value)
            return None
        # Claimed before the first await so overlapping start() calls see it.
        self._state = CallState.CONNECTING
        prefix = date_prefix(self._id_prefix, self._clock().date())
        try:
            session_id = await self._id_allocator.allocate(prefix)
        except Exception:
            if self._state is CallState.CONNECTING:
                self._state = CallState.IDLE
            raise
        if self._state is not CallState.CONNECTING:
            logger.info("call_start_abandoned", session_id=session_id, state=self._state.value)
            return None
        self._session_id = session_id
        logger.info("call_connecting", session_id=session_id)

        try:
            await self._engine.start(
                self._assistant_id,
                metadata={PROVISIONAL_ID_METADATA_KEY: session_id},
            )
        except Exception as e:
            logger.error("call_start_failed", session_id=session_id, error=str(e))
            if self._state is CallState.CONNECTING:
                self._state = CallState.IDLE
            return None
        return session_id

    async def end(self) -> None:
        """Hang up, or abort a connection that is still being established."""
        if self._engine is None:
            return
        if self._state is CallState.CONVERSATION:
            await self._engine.stop()
        elif self._state is CallState.CONNECTING:
            logger.info("call_connect_aborted", session_id=self._session_id)
            self._state = CallState.IDLE
            try:
                await self._engine.stop()
            except Exception as e:
                logger.warning("engine_stop_failed", error=str(e))

    def toggle_mute(self) -> bool:
        """Flip the microphone mute during a conversation. Returns the new state."""
        if self._engine is None or self._state is not CallState.CONVERSATION:
            return self._muted
        self._muted = not self._muted
        self._engine.set_muted(self._muted)
        return self._muted

    def new_session(self) -> None:
        """Discard the finished session and return to idle.

        A fresh provisional id is generated by the next start().
        """
        self._cancel_tick()
        self._cancel_auto_reset()
        self._state = CallState.IDLE
        self._session_id = None
        self._messages = []
        self._speaking = None
        self._duration = 0
        self._started_at = None
        self._muted = False

    def view_transcript(self) -> tuple[Message, ...]:
        """Keep the ended session on screen; cancels any pending auto reset."""
        self._cancel_auto_reset()
        return self.messages

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export(self) -> str:
        return format_transcript_for_export(
            session_id=self._session_id or "",
            duration=format_duration(self._duration),
            start_time=self._started_at or self._clock(),
            messages=self._messages,
            labels=self._labels,
        )

    def save_export(self, directory: Path) -> Path:
        """Write the export to ``<directory>/<session_id>_sT_raw.md``."""
        path = Path(directory) / export_filename(self._session_id or "session")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.export(), encoding="utf-8")
        logger.info("transcript_exported", path=str(path), message_count=len(self._messages))
        return path

    async def aclose(self) -> None:
        """Stop background tasks and hang up any live call."""
        self._cancel_auto_reset()
        self._cancel_tick()
        if self._engine is not None and self._state in (CallState.CONNECTING, CallState.CONVERSATION):
            try:
                await self._engine.stop()
            except Exception as e:
                logger.warning("engine_stop_failed", error=str(e))

    # ------------------------------------------------------------------
    # Engine events
    # ------------------------------------------------------------------

    def _on_call_start(self, _: Any = None) -> None:
        if self._state is not CallState.CONNECTING:
            logger.info("call_start_ignored", state=self._state.value)
            return
        self._messages = []
        self._speaking = None
        self._duration = 0
        self._started_at = self._clock()
        self._muted = False
        self._state = CallState.CONVERSATION
        self._tick_task = asyncio.get_running_loop().create_task(self._tick())
        logger.info("call_started", session_id=self._session_id)

    def _on_call_end(self, _: Any = None) -> None:
        if self._state is CallState.CONVERSATION:
            self._cancel_tick()
            self._speaking = None
            self._state = CallState.ENDED
            logger.info(
                "call_ended",
                session_id=self._session_id,
                duration=self._duration,
                message_count=len(self._messages),
            )
            if self._auto_reset_seconds is not None:
                self._auto_reset_task = asyncio.get_running_loop().create_task(
                    self._auto_reset(self._auto_reset_seconds)
                )
        elif self._state is CallState.CONNECTING:
            logger.info("call_ended_before_start", session_id=self._session_id)
            self._state = CallState.IDLE

    def _on_transcript(self, message: Any) -> None:
        if self._state is not CallState.CONVERSATION or not isinstance(message, dict):
            return
        fragment = TranscriptFragment.from_message(message)
        if fragment is None:
            return
        if not fragment.is_final:
            self._speaking = fragment.role
            return
        if self._speaking == fragment.role:
            self._speaking = None
        self._messages.append(
            Message(id=_message_id(), role=fragment.role, text=fragment.text, is_final=True)
        )

    def _on_error(self, error: Any = None) -> None:
        logger.error("voice_engine_error", state=self._state.value, error=str(error))
        self._cancel_tick()
        self._cancel_auto_reset()
        self._messages = []
        self._speaking = None
        self._duration = 0
        self._started_at = None
        self._muted = False
        self._state = CallState.IDLE

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._tick_seconds)
            self._duration += 1

    async def _auto_reset(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._state is CallState.ENDED:
            logger.info("session_auto_reset", session_id=self._session_id)
            self._auto_reset_task = None
            self.new_session()

    def _cancel_tick(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    def _cancel_auto_reset(self) -> None:
        if self._auto_reset_task is not None:
            self._auto_reset_task.cancel()
            self._auto_reset_task = None
