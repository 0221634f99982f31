"""Client side: call session controller and transcript API client."""

from voicelog.client.controller import CallSessionController, CallState, Message
from voicelog.client.engine import EngineEvent, EngineFactory, TranscriptFragment, VoiceEngine
from voicelog.client.export import SpeakerLabels
from voicelog.client.provisional import LocalCounterAllocator
from voicelog.core.config import settings


def controller_from_settings(engine_factory: EngineFactory) -> CallSessionController:
    """Build a controller wired from application settings."""
    return CallSessionController(
        engine_factory,
        public_key=settings.voice_public_key,
        assistant_id=settings.voice_assistant_id,
        id_allocator=LocalCounterAllocator(settings.client_state_path),
        id_prefix=settings.client_session_prefix,
        labels=SpeakerLabels(user=settings.user_label, assistant=settings.assistant_label),
        auto_reset_seconds=settings.auto_reset_seconds,
    )


__all__ = [
    "CallSessionController",
    "CallState",
    "EngineEvent",
    "EngineFactory",
    "LocalCounterAllocator",
    "Message",
    "SpeakerLabels",
    "TranscriptFragment",
    "VoiceEngine",
    "controller_from_settings",
]
