"""Contracts for the external collaborators this layer drives.

The concrete network client, secret store and indexing service live outside
this package. Remote calls return a :class:`RemoteResult` so that a renewed
session travels back to the caller explicitly instead of through a listener.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, Protocol, Sequence, TypeVar

from metamirror.project.models import Session

if TYPE_CHECKING:
    from metamirror.metadata.catalog import MetadataEntity
    from metamirror.metadata.package import PackageSpec

T = TypeVar("T")


@dataclass
class RemoteResult(Generic[T]):
    """Value returned by a remote call, plus a renewed session if one was issued."""

    value: T
    session: Session | None = None


@dataclass
class RetrieveResult:
    """Archive bytes and per-file descriptors returned by a retrieve."""

    archive: bytes
    file_properties: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class DeployOptions:
    rollback_on_error: bool = True
    single_package: bool = True
    purge_on_delete: bool = False
    check_only: bool = False


@dataclass
class Credentials:
    username: str = ""
    password: str = ""
    org_type: str = ""
    session: Session | None = None


class RemoteClient(Protocol):
    async def authenticate(self, credentials: Credentials) -> RemoteResult[None]: ...

    async def describe(self) -> RemoteResult[dict[str, Any]]: ...

    async def retrieve_unpackaged(
        self, package: PackageSpec
    ) -> RemoteResult[RetrieveResult]: ...

    async def deploy(
        self, archive: bytes, options: DeployOptions
    ) -> RemoteResult[dict[str, Any]]: ...

    async def compile_with_tooling_api(
        self, items: Sequence[MetadataEntity]
    ) -> RemoteResult[dict[str, Any]]: ...

    async def compile_with_metadata_api(
        self, items: Sequence[MetadataEntity]
    ) -> RemoteResult[dict[str, Any]]: ...

    def get_access_token(self) -> str: ...

    def get_instance_url(self) -> str: ...

    def get_username(self) -> str: ...

    def get_user_id(self) -> str: ...

    def get_namespace(self) -> str: ...

    def get_org_type(self) -> str: ...


class SecretStore(Protocol):
    def store(self, key: str, value: str) -> bool: ...

    def retrieve(self, key: str) -> str:
        """Return the stored secret; raise if nothing is stored under *key*."""
        ...


class ArchiveUtility(Protocol):
    async def zip_directory(self, directory: Path) -> bytes: ...

    async def extract(self, archive: bytes, dest: Path) -> None: ...


class IndexService(Protocol):
    async def index_server_properties(
        self, subscription: Sequence[str]
    ) -> list[dict[str, Any]]: ...
