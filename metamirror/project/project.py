"""Project — a local mirror of a remote metadata repository.

A project is either created fresh (new id, nothing on disk until the initial
populate) or loaded from an existing directory validated by the presence of
``config/.settings``.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Awaitable, Iterable, TypeVar

from metamirror.config import MirrorConfig
from metamirror.errors import (
    InvalidProjectError,
    MetaMirrorError,
    RemoteOperationError,
    UnknownMetadataTypeError,
)
from metamirror.metadata.catalog import MetadataCatalog, MetadataEntity
from metamirror.metadata.package import PackageInput
from metamirror.project.models import LocalStoreEntry, Session, Settings
from metamirror.project.stash import StashManager
from metamirror.project.store import ProjectStore
from metamirror.remote import Credentials, RemoteResult
from metamirror.utils.archive import ZipArchive

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Project:
    """State and lifecycle of one project.

    Args:
        config: Global configuration.
        client: Remote client (describe/retrieve/deploy/compile).
        secrets: Secret store holding the project password.
        archive: Archive utility; defaults to :class:`ZipArchive`.
        index_service: Server-side metadata indexing service.
        path: Explicit project directory.
        workspace: Workspace directory (with *project_name*).
        project_name: Project name; required for new projects.
        subscription: Metadata types the project subscribes to.
        package: Package to request on initial populate.
    """

    def __init__(
        self,
        config: MirrorConfig,
        client,
        secrets=None,
        archive=None,
        index_service=None,
        *,
        path: str | Path | None = None,
        workspace: str | Path | None = None,
        project_name: str | None = None,
        subscription: list[str] | None = None,
        package: PackageInput = None,
        username: str = "",
        password: str = "",
        org_type: str = "",
    ):
        self.config = config
        self.client = client
        self.secrets = secrets
        self.archive = archive or ZipArchive()
        self.index_service = index_service

        self.path = Path(path) if path is not None else None
        self.workspace = Path(workspace) if workspace is not None else None
        self.project_name = project_name
        self.subscription = subscription
        self.package = package
        self.username = username
        self.password = password
        self.org_type = org_type

        self.id: str | None = None
        self.settings: Settings | None = None
        self.session: Session | None = None
        self.describe: dict[str, Any] = {}
        self.local_store: dict[str, LocalStoreEntry] = {}
        self.org_metadata: list[dict[str, Any]] | None = None
        self.catalog = MetadataCatalog()
        self._store: ProjectStore | None = None
        self._stash: StashManager | None = None

    # -- properties ----------------------------------------------------------

    @property
    def store(self) -> ProjectStore:
        if self._store is None:
            raise InvalidProjectError("Project has not been initialized")
        return self._store

    @property
    def stash(self) -> StashManager:
        if self._stash is None:
            self._stash = StashManager(self.source_dir, prefix=self.config.scratch_prefix)
        return self._stash

    @property
    def source_dir(self) -> Path:
        return self.store.source_dir

    @property
    def scratch_dir(self) -> Path:
        """Where retrieve archives are extracted before being applied."""
        return self.store.path / "unpackaged"

    def get_subscription(self) -> list[str]:
        if self.settings is not None and self.settings.subscription:
            return self.settings.subscription
        return self.subscription or list(self.config.default_subscription)

    # -- initialization ------------------------------------------------------

    async def initialize(self, is_new: bool = False) -> Project:
        if is_new:
            await self._init_new()
        else:
            await self._init_existing()
        return self

    async def _init_existing(self) -> None:
        self.path = ProjectStore.resolve_path(self.path, self.workspace, self.project_name)
        self._store = ProjectStore(self.path, secrets=self.secrets)
        self.workspace = self.path.parent
        self.project_name = self.path.name

        try:
            self.store.load()
            self.settings = self.store.load_settings()
            self.id = self.settings.id
            self.session = self.store.load_session()
            await self.call_remote(
                "authenticate",
                self.client.authenticate(
                    Credentials(
                        username=self.settings.username,
                        password=self.settings.password,
                        org_type=self.settings.environment,
                        session=self.session,
                    )
                ),
            )
            self.describe = self.store.load_describe()
            self.catalog = MetadataCatalog.from_describe(self.describe)
            self.local_store = self.store.load_local_store()
            user_settings = self.store.load_user_settings(self.project_name)
            if user_settings:
                self.config = self.config.with_overrides(user_settings)
            if self.store.has_org_metadata():
                self.org_metadata = self.store.load_org_metadata()
        except MetaMirrorError:
            raise
        except Exception as e:
            raise InvalidProjectError(
                f"Could not initiate existing Project instance: {e}"
            ) from e
        logger.debug("Loaded project %s from %s", self.project_name, self.path)

    async def _init_new(self) -> None:
        if not self.project_name:
            raise InvalidProjectError("A project name is required for new projects")

        if self.workspace is None:
            workspace = self.config.default_workspace
            logger.debug("Workspace not specified, using base workspace: %s", workspace)
            if workspace is None:
                raise InvalidProjectError("No workspace specified or configured")
            self.workspace = Path(workspace)
        self.workspace.mkdir(parents=True, exist_ok=True)

        self.path = self.workspace / self.project_name
        self._store = ProjectStore(self.path, secrets=self.secrets)
        self.store.claim()
        try:
            await self.call_remote(
                "authenticate",
                self.client.authenticate(
                    Credentials(
                        username=self.username,
                        password=self.password,
                        org_type=self.org_type,
                    )
                ),
            )
        except BaseException:
            self.store.release()
            raise
        self.id = str(uuid.uuid1())

    # -- remote calls --------------------------------------------------------

    async def call_remote(self, operation: str, call: Awaitable[RemoteResult[T]]) -> T:
        """Await a remote call, wrap its failure, and persist a renewed session."""
        try:
            result = await call
        except MetaMirrorError:
            raise
        except Exception as e:
            raise RemoteOperationError(operation, e) from e
        return self.accept(result)

    def accept(self, result: RemoteResult[T]) -> T:
        if result.session is not None:
            self.session = result.session
            if self._store is not None and self._store.config_dir.exists():
                self._store.save_session(result.session)
        return result.value

    # -- config --------------------------------------------------------------

    def write_config(self) -> None:
        """Write every config file of a freshly populated project."""
        self.settings = Settings(
            project_name=self.project_name or "",
            username=self.client.get_username(),
            id=self.id or "",
            namespace=self.client.get_namespace() or "",
            environment=self.client.get_org_type(),
            workspace=str(self.workspace),
            subscription=self.subscription or list(self.config.default_subscription),
        )
        self.session = Session(
            access_token=self.client.get_access_token(),
            instance_url=self.client.get_instance_url(),
        )
        self.store.save_settings(self.settings)
        self.store.save_session(self.session)
        self.store.save_debug_config([self.client.get_user_id()])
        self.store.save_describe(self.describe)
        self.store.store_password(self.settings.id, self.password)

    # -- server metadata index -----------------------------------------------

    async def index_metadata(self) -> list[dict[str, Any]]:
        """Populate ``config/.org_metadata`` from the project's subscription."""
        if self.index_service is None:
            raise RemoteOperationError("index", "no index service configured")
        try:
            org_metadata = await self.index_service.index_server_properties(
                self.get_subscription()
            )
        except Exception as e:
            raise RemoteOperationError("index", e) from e
        self.store.save_org_metadata(org_metadata)
        self.org_metadata = org_metadata
        return org_metadata

    def has_indexed_metadata(self) -> bool:
        return isinstance(self.org_metadata, list)

    # -- local metadata ------------------------------------------------------

    def get_metadata(self, paths: Iterable[str | Path]) -> list[MetadataEntity]:
        """Classify local files into metadata entities."""
        entities = []
        for p in paths:
            entity = MetadataEntity.from_path(p, self.catalog)
            if entity is None:
                raise UnknownMetadataTypeError(str(p))
            entities.append(entity)
        return entities

    def coerce_metadata(
        self, items: Iterable[str | Path | MetadataEntity]
    ) -> list[MetadataEntity]:
        items = list(items)
        if all(isinstance(i, MetadataEntity) for i in items):
            return items  # type: ignore[return-value]
        return [
            i if isinstance(i, MetadataEntity) else self.get_metadata([i])[0]
            for i in items
        ]

    def delete_local_metadata(self, entities: Iterable[MetadataEntity]) -> None:
        """Remove local copies, along with sidecar ``-meta.xml`` files."""
        for entity in entities:
            entity.path.unlink(missing_ok=True)
            if entity.requires_meta_file:
                entity.meta_path.unlink(missing_ok=True)
