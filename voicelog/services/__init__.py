"""Server-side services.

Imports are intentionally NOT eagerly loaded here. Use explicit imports:
    from voicelog.services.ingestion import TranscriptIngestionService
"""
