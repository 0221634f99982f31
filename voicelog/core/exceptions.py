"""Custom exception classes for structured error handling."""

from typing import Any


class VoicelogError(Exception):
    """Base exception for all Voicelog errors."""

    def __init__(self, code: str, message: str, status_code: int = 500) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": {"code": self.code, "message": self.message}}


class TranscriptNotFoundError(VoicelogError):
    def __init__(self, message: str = "Transcript not found") -> None:
        super().__init__(code="TRANSCRIPT_NOT_FOUND", message=message, status_code=404)


class InvalidQueryError(VoicelogError):
    def __init__(self, message: str = "Invalid query parameters") -> None:
        super().__init__(code="INVALID_QUERY", message=message, status_code=400)


class MethodNotAllowedError(VoicelogError):
    def __init__(self, message: str = "Method not allowed") -> None:
        super().__init__(code="METHOD_NOT_ALLOWED", message=message, status_code=405)


class StoreUnavailableError(VoicelogError):
    def __init__(self, message: str = "Transcript store unavailable") -> None:
        super().__init__(code="STORE_UNAVAILABLE", message=message, status_code=500)


class AllocationExhaustedError(VoicelogError):
    def __init__(self, message: str = "Could not allocate a session identifier") -> None:
        super().__init__(code="ALLOCATION_EXHAUSTED", message=message, status_code=500)


class IngestionError(VoicelogError):
    def __init__(self, message: str = "Transcript ingestion failed") -> None:
        super().__init__(code="INGESTION_FAILED", message=message, status_code=500)


class EngineUnavailableError(VoicelogError):
    def __init__(self, message: str = "Voice engine is not available") -> None:
        super().__init__(code="ENGINE_UNAVAILABLE", message=message, status_code=503)
