"""Voicelog: live call transcripts on the client, durable transcripts on the server."""

__version__ = "1.0.0"
