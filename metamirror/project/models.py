"""Project data models — settings, cached session and local-store entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class EntryState:
    CLEAN = "clean"


@dataclass
class Settings:
    """Persisted project settings (``config/.settings``).

    The password is merged in from the secret store at load time and is
    never written to disk.
    """

    project_name: str
    username: str = ""
    id: str = ""
    namespace: str = ""
    environment: str = ""
    workspace: str = ""
    subscription: list[str] = field(default_factory=list)
    password: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectName": self.project_name,
            "username": self.username,
            "id": self.id,
            "namespace": self.namespace,
            "environment": self.environment,
            "workspace": self.workspace,
            "subscription": list(self.subscription),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        return cls(
            project_name=data.get("projectName", ""),
            username=data.get("username", ""),
            id=data.get("id", ""),
            namespace=data.get("namespace") or "",
            environment=data.get("environment", ""),
            workspace=data.get("workspace", ""),
            subscription=list(data.get("subscription") or []),
        )


@dataclass
class Session:
    """Cached access token (``config/.session``), always overwritten whole."""

    access_token: str = ""
    instance_url: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"accessToken": self.access_token, "instanceUrl": self.instance_url}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            access_token=data.get("accessToken", ""),
            instance_url=data.get("instanceUrl", ""),
        )


@dataclass
class LocalStoreEntry:
    """Last-known state of one metadata item.

    ``properties`` holds the remote file descriptor as returned by a
    retrieve (fullName, fileName, lastModifiedDate, ...).
    """

    properties: dict[str, Any]
    state: str = EntryState.CLEAN

    @property
    def full_name(self) -> str:
        return self.properties.get("fullName", "")

    @property
    def file_name(self) -> str:
        return self.properties.get("fileName", "")

    @property
    def type(self) -> str:
        return self.properties.get("type", "")

    def to_dict(self) -> dict[str, Any]:
        return {**self.properties, "mmState": self.state}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalStoreEntry:
        properties = {k: v for k, v in data.items() if k != "mmState"}
        return cls(properties=properties, state=data.get("mmState", EntryState.CLEAN))
