"""Stash — a scratch copy of the live source tree taken before a risky change.

A :class:`Stash` is an owned resource: the caller either commits it (the
snapshot is discarded) or rolls back (the snapshot replaces ``src``).
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class Stash:
    """Snapshot of a source tree held in a temporary directory."""

    def __init__(self, source: Path, location: Path, had_source: bool):
        self.source = source
        self.location = location
        self.had_source = had_source

    @property
    def snapshot(self) -> Path:
        return self.location / source_name(self.source)

    @property
    def active(self) -> bool:
        return self.location.exists()

    async def commit(self) -> None:
        """Keep the current tree and discard the snapshot."""
        await asyncio.to_thread(_remove, self.location)

    async def rollback(self) -> None:
        """Restore the source tree to the snapshot, then discard it."""
        if not self.active:
            raise RuntimeError(f"Stash at {self.location} was already released")
        await asyncio.to_thread(self._restore)
        await self.commit()
        logger.debug("Rolled back %s from stash", self.source)

    def _restore(self) -> None:
        _remove(self.source)
        if self.had_source:
            shutil.copytree(self.snapshot, self.source)


class StashManager:
    """Creates and removes stashes of a project's ``src`` tree."""

    def __init__(self, source_dir: str | Path, prefix: str = "mm_"):
        self.source_dir = Path(source_dir)
        self.prefix = prefix
        self.current: Stash | None = None

    async def create_stash(self) -> Stash:
        """Copy the source tree to a scratch location.

        A missing source tree is not an error; the stash is simply empty.
        """
        stash = await asyncio.to_thread(self._create)
        self.current = stash
        return stash

    def _create(self) -> Stash:
        location = Path(tempfile.mkdtemp(prefix=self.prefix))
        had_source = self.source_dir.exists()
        if had_source:
            shutil.copytree(self.source_dir, location / source_name(self.source_dir))
        logger.debug("Stashed %s to %s", self.source_dir, location)
        return Stash(self.source_dir, location, had_source)

    async def remove_stash(self) -> None:
        """Delete the current stash, if any. Safe to call repeatedly."""
        if self.current is not None:
            await self.current.commit()
            self.current = None

    @asynccontextmanager
    async def bracket(self, rollback_on_error: bool = False) -> AsyncIterator[Stash]:
        """Stash around a block; roll back on error only when asked to."""
        stash = await self.create_stash()
        try:
            yield stash
        except BaseException:
            if rollback_on_error and stash.active:
                await stash.rollback()
            raise
        finally:
            await self.remove_stash()


def source_name(source: Path) -> str:
    return source.name or "src"


def _remove(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()
