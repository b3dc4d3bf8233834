"""Deploy orchestrator — compile, full-project deploy and server-side delete.

Every batch is scope-checked against the project root before any remote
call is made.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Iterable

from metamirror.deploy.staging import (
    check_scope,
    choose_compile_api,
    stage_delete,
    stage_source,
)
from metamirror.errors import InvalidProjectError
from metamirror.metadata.catalog import CompileApi, MetadataEntity
from metamirror.project.project import Project
from metamirror.remote import DeployOptions

logger = logging.getLogger(__name__)


class DeployOrchestrator:
    """Stages and submits deploy, compile and delete requests for a project."""

    def __init__(self, project: Project):
        self.project = project

    def _prepare(self, items: Iterable[str | Path | MetadataEntity]) -> list[MetadataEntity]:
        entities = self.project.coerce_metadata(items)
        check_scope(entities, self.project.store.path)
        return entities

    async def compile_metadata(
        self, items: Iterable[str | Path | MetadataEntity]
    ) -> dict[str, Any]:
        """Compile existing metadata via the tooling or metadata API."""
        entities = self._prepare(items)
        api = choose_compile_api(entities, self.project.config.compile_with_tooling_api)
        logger.debug("compiling %d item(s) with the %s API", len(entities), api.value)

        client = self.project.client
        if api is CompileApi.TOOLING:
            call = client.compile_with_tooling_api(entities)
        else:
            call = client.compile_with_metadata_api(entities)
        return await self.project.call_remote("compile", call)

    async def compile_project(self) -> dict[str, Any]:
        """Deploy the entire source tree, rolling back on any error."""
        source_dir = self.project.source_dir
        if not source_dir.is_dir():
            raise InvalidProjectError(f"No source tree at {source_dir}")

        async with self._workdir() as workdir:
            staging = await asyncio.to_thread(stage_source, source_dir, workdir)
            archive = await self.project.archive.zip_directory(staging)
            return await self.project.call_remote(
                "deploy",
                self.project.client.deploy(archive, DeployOptions(rollback_on_error=True)),
            )

    async def delete_from_server(
        self, items: Iterable[str | Path | MetadataEntity]
    ) -> dict[str, Any]:
        """Delete metadata on the server, then remove the local copies.

        Local files (and sidecar ``-meta.xml`` files) are removed only after
        the deploy resolves successfully; a failed delete leaves them intact.
        """
        entities = self._prepare(items)
        logger.debug("deleting metadata from server: %s", [str(e.path) for e in entities])

        async with self._workdir() as workdir:
            staging = await asyncio.to_thread(
                stage_delete, entities, workdir, self.project.config.api_version
            )
            archive = await self.project.archive.zip_directory(staging)
            result = await self.project.call_remote(
                "delete",
                self.project.client.deploy(archive, DeployOptions(rollback_on_error=True)),
            )

        logger.debug("Deletion result: %s", result)
        if result.get("success") is False:
            logger.warning("Server rejected deletion; local files kept")
            return result

        await asyncio.to_thread(self.project.delete_local_metadata, entities)
        return result

    @asynccontextmanager
    async def _workdir(self) -> AsyncIterator[Path]:
        workdir = Path(tempfile.mkdtemp(prefix=self.project.config.scratch_prefix))
        try:
            yield workdir
        finally:
            await asyncio.to_thread(shutil.rmtree, workdir, True)
