"""Provisional session ids generated on the client.

A small JSON file remembers the last date prefix and the number handed out
for it. The counter restarts at 1 when the stored prefix is not today's.
These ids are for display and export only; the server allocates the
durable id independently.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from voicelog.core.session_ids import SessionIdAllocator

logger = structlog.get_logger(__name__)


class LocalCounterAllocator(SessionIdAllocator):
    """Same-day counter persisted to ``state_path``."""

    def __init__(self, state_path: Path) -> None:
        self._path = Path(state_path).expanduser()

    def _read(self) -> dict:
        try:
            state = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("provisional_state_unreadable", path=str(self._path), error=str(e))
            return {}
        return state if isinstance(state, dict) else {}

    def _write(self, state: dict) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(state), encoding="utf-8")
        except OSError as e:
            logger.warning("provisional_state_write_failed", path=str(self._path), error=str(e))

    async def allocate(self, date_prefix: str) -> str:
        state = self._read()
        number = 1
        if state.get("date") == date_prefix:
            try:
                number = int(state.get("num", 0)) + 1
            except (TypeError, ValueError):
                number = 1
        self._write({"date": date_prefix, "num": number})
        return f"{date_prefix}{number}"
