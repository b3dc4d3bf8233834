"""Zip archive utility for retrieve results and deploy payloads."""

from __future__ import annotations

import asyncio
import io
import zipfile
from pathlib import Path

from metamirror.errors import PathScopeError


class ZipArchive:
    """Builds and unpacks zip archives off the event loop.

    ``zip_directory(dir)`` stores entries under ``dir.name/`` so that an
    archive of ``.../unpackaged`` extracts back to ``<dest>/unpackaged``.
    """

    async def zip_directory(self, directory: Path) -> bytes:
        return await asyncio.to_thread(zip_directory, Path(directory))

    async def extract(self, archive: bytes, dest: Path) -> None:
        await asyncio.to_thread(extract, archive, Path(dest))


def zip_directory(directory: Path) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for path in sorted(directory.rglob("*")):
            if path.is_file():
                arcname = Path(directory.name) / path.relative_to(directory)
                zf.write(path, arcname.as_posix())
    return buf.getvalue()


def extract(archive: bytes, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    root = dest.resolve()
    with zipfile.ZipFile(io.BytesIO(archive), "r") as zf:
        for member in zf.namelist():
            target = (dest / member).resolve()
            if not target.is_relative_to(root):
                raise PathScopeError(member)
        zf.extractall(dest)
