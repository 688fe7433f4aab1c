"""
Ledger State Stores

Pluggable persistence for ledger snapshots. The ledger only needs load/save;
the document format is plain JSON.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

from .models import LedgerSnapshot

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    async def load(self) -> Optional[LedgerSnapshot]:
        ...

    async def save(self, snapshot: LedgerSnapshot) -> None:
        ...


class InMemoryStateStore:
    """Keeps the last saved snapshot in memory. Used by tests and dry runs."""

    def __init__(self, snapshot: Optional[LedgerSnapshot] = None):
        self.snapshot = snapshot
        self.save_count = 0

    async def load(self) -> Optional[LedgerSnapshot]:
        if self.snapshot is None:
            return None
        return self.snapshot.model_copy(deep=True)

    async def save(self, snapshot: LedgerSnapshot) -> None:
        self.snapshot = snapshot.model_copy(deep=True)
        self.save_count += 1


class JsonFileStateStore:
    """
    Stores the snapshot as a JSON file.

    Writes go to a temporary sibling and are moved into place, so a crash
    mid-write never leaves a truncated state file. File I/O runs in a worker
    thread to keep the event loop free.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    async def load(self) -> Optional[LedgerSnapshot]:
        if not self.path.exists():
            logger.info(f"No state file at {self.path}, starting fresh")
            return None

        raw = await asyncio.to_thread(self.path.read_text, "utf-8")
        snapshot = LedgerSnapshot.model_validate_json(raw)
        logger.info(
            f"Loaded state: {len(snapshot.accounts)} accounts, {len(snapshot.trades)} trades"
        )
        return snapshot

    async def save(self, snapshot: LedgerSnapshot) -> None:
        payload = snapshot.model_dump_json(indent=2)
        await asyncio.to_thread(self._write, payload)

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, self.path)
