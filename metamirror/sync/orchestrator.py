"""Sync orchestrator — retrieve-based workflows.

All workflows share one pipeline (request package -> retrieve archive ->
extract to the scratch directory) and differ only in the apply strategy:

- populate, clean, edit: :data:`REPLACE_TREE`
- refresh: :data:`SPLICE`
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from metamirror.errors import (
    MetaMirrorError,
    PackageParseError,
    ProjectExistsError,
    SyncTraversalError,
)
from metamirror.metadata.catalog import PACKAGE_FILE, MetadataCatalog, MetadataEntity
from metamirror.metadata.package import PackageInput, PackageSpec, resolve_request
from metamirror.project.project import Project
from metamirror.remote import RetrieveResult
from metamirror.sync.strategies import REPLACE_TREE, SPLICE, ApplyStrategy, remove_tree

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one retrieve workflow."""

    package: PackageSpec
    strategy: str
    written: list[Path] = field(default_factory=list)
    file_properties: list[dict[str, Any]] = field(default_factory=list)
    local_store_rebuilt: bool = False


class SyncOrchestrator:
    """Drives populate, clean, edit and refresh for one project."""

    def __init__(self, project: Project):
        self.project = project

    # ── Workflows ────────────────────────────────────────────────────

    async def populate(self) -> SyncResult:
        """Retrieve a new project's metadata and write it, with config, to disk.

        On any failure the partially written project directory is removed so
        a retry starts clean.
        """
        project = self.project
        store = project.store
        created = False
        try:
            if project.path.exists():
                raise ProjectExistsError(
                    "Project with this name already exists in the specified workspace."
                )

            package = resolve_request(project.package, project.config.default_package)
            async with store.lock:
                project.describe = await project.call_remote(
                    "describe", project.client.describe()
                )
                logger.debug("got describe info: %s", project.describe)
                project.catalog = MetadataCatalog.from_describe(project.describe)
                retrieved = await self._retrieve(package)

                await asyncio.to_thread(project.path.mkdir)
                created = True
                await asyncio.to_thread(store.config_dir.mkdir)
                written = await self._extract_and_apply(retrieved, REPLACE_TREE)

                await asyncio.to_thread(project.write_config)
                project.local_store = await asyncio.to_thread(
                    store.rebuild_local_store, retrieved.file_properties, project.catalog
                )
        except BaseException:
            # Only remove a directory this call created.
            if created and project.path.exists():
                await asyncio.to_thread(shutil.rmtree, project.path, True)
            raise
        finally:
            store.release()

        return SyncResult(
            package=package,
            strategy=REPLACE_TREE.name,
            written=written,
            file_properties=retrieved.file_properties,
            local_store_rebuilt=True,
        )

    async def clean(self) -> SyncResult:
        """Revert the project to server state based on ``src/package.xml``."""
        package = await asyncio.to_thread(
            PackageSpec.parse, self.project.source_dir / PACKAGE_FILE
        )
        logger.debug("package is: %s", package.types)
        return await self._sync(package, REPLACE_TREE, rebuild=True, stash=True)

    async def edit(self, package: PackageInput) -> SyncResult:
        """Replace the project's contents with the given package."""
        pkg = PackageSpec.coerce(package)
        if pkg is None:
            raise PackageParseError("Edit requires a non-empty package")
        logger.debug("requested package is: %s", pkg.types)
        return await self._sync(pkg, REPLACE_TREE, rebuild=True, stash=True)

    async def refresh(self, items: Iterable[str | Path | MetadataEntity]) -> SyncResult:
        """Refresh local copies of the given metadata from the server.

        The local store is left as is; it is only ever rebuilt whole.
        """
        entities = self.project.coerce_metadata(items)
        package = PackageSpec.from_entities(entities)
        return await self._sync(package, SPLICE, rebuild=False)

    # ── Pipeline ─────────────────────────────────────────────────────

    async def _sync(
        self,
        package: PackageSpec,
        strategy: ApplyStrategy,
        rebuild: bool,
        stash: bool = False,
    ) -> SyncResult:
        project = self.project
        async with project.store.lock, AsyncExitStack() as stack:
            if stash:
                # Snapshot of src for the duration of the swap; not restored on failure.
                await stack.enter_async_context(project.stash.bracket())
            await asyncio.to_thread(remove_tree, project.scratch_dir)
            retrieved = await self._retrieve(package)
            written = await self._extract_and_apply(retrieved, strategy)
            if rebuild:
                project.local_store = await asyncio.to_thread(
                    project.store.rebuild_local_store,
                    retrieved.file_properties,
                    project.catalog,
                )

        logger.debug(
            "%s applied %d file(s) for %s", strategy.name, len(written), list(package.types)
        )
        return SyncResult(
            package=package,
            strategy=strategy.name,
            written=written,
            file_properties=retrieved.file_properties,
            local_store_rebuilt=rebuild,
        )

    async def _retrieve(self, package: PackageSpec) -> RetrieveResult:
        return await self.project.call_remote(
            "retrieve", self.project.client.retrieve_unpackaged(package)
        )

    async def _extract_and_apply(
        self, retrieved: RetrieveResult, strategy: ApplyStrategy
    ) -> list[Path]:
        project = self.project
        try:
            await project.archive.extract(retrieved.archive, project.store.path)
        except MetaMirrorError:
            raise
        except Exception as e:
            raise SyncTraversalError(f"Could not extract retrieved metadata: {e}") from e
        try:
            return await strategy.apply(project.scratch_dir, project.source_dir)
        except OSError as e:
            raise SyncTraversalError(f"Could not apply retrieved metadata: {e}") from e
