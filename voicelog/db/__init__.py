"""Storage backends.

Imports are intentionally NOT eagerly loaded here. Use explicit imports:
``from voicelog.db.store import TranscriptStore``, etc.
"""
