"""Apply strategies — how an extracted retrieve result reaches the live tree."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

from metamirror.errors import SyncTraversalError
from metamirror.metadata.catalog import PACKAGE_FILE

logger = logging.getLogger(__name__)


class ApplyStrategy:
    """Moves the contents of a scratch tree into the live source tree."""

    name = ""

    async def apply(self, scratch: Path, live: Path) -> list[Path]:
        """Apply *scratch* onto *live* and return the live paths written."""
        raise NotImplementedError


class ReplaceTreeStrategy(ApplyStrategy):
    """Delete the live tree, then rename the scratch tree into its place.

    Nothing from the previous tree survives unless the retrieve returned it.
    """

    name = "replace"

    async def apply(self, scratch: Path, live: Path) -> list[Path]:
        return await asyncio.to_thread(self._swap, scratch, live)

    def _swap(self, scratch: Path, live: Path) -> list[Path]:
        if live.exists():
            shutil.rmtree(live)
        if not scratch.exists():
            logger.debug("Retrieve produced no %s; %s left empty", scratch.name, live)
            return []
        os.rename(scratch, live)
        return [p for p in live.rglob("*") if p.is_file()]


class SpliceStrategy(ApplyStrategy):
    """Copy each retrieved file over its live counterpart.

    Every file except the package descriptor is written to the same relative
    path under *live*: any existing file is deleted, then the retrieved copy
    is copied in. Files absent from the retrieve are untouched. The scratch
    tree is removed once all files are handled. A traversal error aborts
    with files already spliced left in place.
    """

    name = "splice"

    async def apply(self, scratch: Path, live: Path) -> list[Path]:
        written = await asyncio.to_thread(self._splice, scratch, live)
        await asyncio.to_thread(remove_tree, scratch)
        return written

    def _splice(self, scratch: Path, live: Path) -> list[Path]:
        written: list[Path] = []

        def _on_error(err: OSError) -> None:
            raise SyncTraversalError(f"Could not process retrieved metadata: {err}") from err

        if not scratch.is_dir():
            raise SyncTraversalError(
                f"Could not process retrieved metadata: {scratch} does not exist"
            )

        for dirpath, _dirnames, filenames in os.walk(scratch, onerror=_on_error):
            directory = Path(dirpath)
            destination_dir = live / directory.relative_to(scratch)
            for filename in filenames:
                if filename == PACKAGE_FILE:
                    continue
                try:
                    destination_dir.mkdir(parents=True, exist_ok=True)
                    destination = destination_dir / filename
                    destination.unlink(missing_ok=True)
                    shutil.copy2(directory / filename, destination)
                except OSError as e:
                    raise SyncTraversalError(
                        f"Could not process retrieved metadata: {e}"
                    ) from e
                written.append(destination)
        return written


REPLACE_TREE = ReplaceTreeStrategy()
SPLICE = SpliceStrategy()


def remove_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
