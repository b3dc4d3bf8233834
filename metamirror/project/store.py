"""File-based JSON storage for project config caches and the local store.

Layout under ``<workspace>/<projectName>/``::

    config/.settings      project settings
    config/.session       cached access token
    config/.local_store   index of last-known metadata state
    config/.describe      cached describe result
    config/.org_metadata  indexed server metadata (absent if never indexed)
    config/.debug         debug-log configuration
    src/                  live metadata source tree
    <projectName>.json    optional user-level settings override

Every save fully overwrites its target file; nothing is merged.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import weakref
from pathlib import Path
from typing import Any, Iterable

from metamirror.errors import (
    ConfigCorruptError,
    InvalidProjectError,
    ProjectExistsError,
    SecretError,
)
from metamirror.metadata.catalog import PACKAGE_FILE, MetadataCatalog
from metamirror.project.models import EntryState, LocalStoreEntry, Session, Settings

logger = logging.getLogger(__name__)

DEBUG_LEVELS = {
    "ApexCode": "DEBUG",
    "ApexProfiling": "INFO",
    "Callout": "INFO",
    "Database": "INFO",
    "System": "DEBUG",
    "Validation": "INFO",
    "Visualforce": "DEBUG",
    "Workflow": "INFO",
}
DEBUG_EXPIRATION_MINUTES = 480

# Advisory, in-process only. A lock lives as long as someone holds or awaits it.
_locks: weakref.WeakValueDictionary[Path, asyncio.Lock] = weakref.WeakValueDictionary()
_claimed: set[Path] = set()


class ProjectStore:
    """Reads and writes everything under a project's ``config`` directory."""

    CONFIG_DIR = "config"
    SOURCE_DIR = "src"
    SETTINGS_FILE = ".settings"
    SESSION_FILE = ".session"
    LOCAL_STORE_FILE = ".local_store"
    DESCRIBE_FILE = ".describe"
    ORG_METADATA_FILE = ".org_metadata"
    DEBUG_FILE = ".debug"

    def __init__(self, project_path: str | Path, secrets=None):
        self.path = Path(project_path)
        self.secrets = secrets
        self.config_dir = self.path / self.CONFIG_DIR
        self.source_dir = self.path / self.SOURCE_DIR

    @staticmethod
    def resolve_path(
        path: str | Path | None = None,
        workspace: str | Path | None = None,
        project_name: str | None = None,
    ) -> Path:
        """Explicit path, else workspace + name, else the current directory."""
        if path is not None:
            return Path(path)
        if workspace is not None and project_name is not None:
            return Path(workspace) / project_name
        return Path.cwd()

    def config_file(self, name: str) -> Path:
        return self.config_dir / name

    @property
    def lock(self) -> asyncio.Lock:
        key = self.path.resolve()
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # New-project reservation
    # ------------------------------------------------------------------

    def claim(self) -> None:
        """Reserve the project directory for a new project.

        Fails if the directory exists or another new project in this
        process has already claimed it.
        """
        key = self.path.resolve()
        if self.path.exists() or key in _claimed:
            raise ProjectExistsError("Directory already exists!")
        _claimed.add(key)

    def release(self) -> None:
        _claimed.discard(self.path.resolve())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            raise ConfigCorruptError(f"Could not read {path}: {e}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        self._write_text(path, json.dumps(data, indent=4))

    def _write_text(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=path.name + ".")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def is_valid(self) -> bool:
        return self.config_file(self.SETTINGS_FILE).exists()

    def load(self) -> None:
        """Check that the directory looks like a project."""
        if not self.is_valid():
            raise InvalidProjectError(
                f"This does not seem to be a valid project directory: {self.path}"
            )

    def load_settings(self, with_password: bool = True) -> Settings:
        """Parse ``config/.settings`` and merge in the stored password."""
        data = self._read_json(self.config_file(self.SETTINGS_FILE), None)
        if data is None:
            raise InvalidProjectError(f"Missing settings file in {self.config_dir}")
        if not isinstance(data, dict):
            raise ConfigCorruptError("Project settings must be a JSON object")

        settings = Settings.from_dict(data)
        if with_password:
            settings.password = self.retrieve_password(settings.id)
        return settings

    def load_session(self) -> Session | None:
        data = self._read_json(self.config_file(self.SESSION_FILE), None)
        return Session.from_dict(data) if isinstance(data, dict) else None

    def load_local_store(self) -> dict[str, LocalStoreEntry]:
        data = self._read_json(self.config_file(self.LOCAL_STORE_FILE), {})
        if not isinstance(data, dict):
            raise ConfigCorruptError("Local store must be a JSON object")
        return {key: LocalStoreEntry.from_dict(value) for key, value in data.items()}

    def load_describe(self) -> dict[str, Any]:
        return self._read_json(self.config_file(self.DESCRIBE_FILE), {})

    def load_org_metadata(self) -> list[dict[str, Any]]:
        return self._read_json(self.config_file(self.ORG_METADATA_FILE), [])

    def has_org_metadata(self) -> bool:
        return self.config_file(self.ORG_METADATA_FILE).exists()

    def load_user_settings(self, project_name: str) -> dict[str, Any]:
        """Optional ``<projectName>.json`` override in the project root."""
        data = self._read_json(self.path / f"{project_name}.json", {})
        if not isinstance(data, dict):
            raise ConfigCorruptError(f"{project_name}.json must be a JSON object")
        return data

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save_settings(self, settings: Settings) -> None:
        self._write_json(self.config_file(self.SETTINGS_FILE), settings.to_dict())

    def save_session(self, session: Session) -> None:
        self._write_json(self.config_file(self.SESSION_FILE), session.to_dict())

    def save_describe(self, describe: dict[str, Any]) -> None:
        self._write_json(self.config_file(self.DESCRIBE_FILE), describe)

    def save_org_metadata(self, org_metadata: list[dict[str, Any]]) -> None:
        self._write_json(self.config_file(self.ORG_METADATA_FILE), org_metadata)

    def save_debug_config(self, user_ids: Iterable[str]) -> None:
        self._write_json(
            self.config_file(self.DEBUG_FILE),
            {
                "levels": dict(DEBUG_LEVELS),
                "expiration": DEBUG_EXPIRATION_MINUTES,
                "userIds": [uid for uid in user_ids if uid],
            },
        )

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def store_password(self, project_id: str, password: str) -> None:
        if self.secrets is None or not self.secrets.store(project_id, password):
            raise SecretError("Could not store password securely")

    def retrieve_password(self, project_id: str) -> str:
        if self.secrets is None:
            raise SecretError("Could not retrieve password securely: no secret store")
        try:
            password = self.secrets.retrieve(project_id)
        except Exception as e:
            raise SecretError(f"Could not retrieve password securely: {e}") from e
        if not password:
            raise SecretError("Could not retrieve password securely")
        return password

    # ------------------------------------------------------------------
    # Local store
    # ------------------------------------------------------------------

    def rebuild_local_store(
        self,
        file_properties: Iterable[dict[str, Any]],
        catalog: MetadataCatalog,
    ) -> dict[str, LocalStoreEntry]:
        """Recompute the whole local store from a retrieve's file descriptors.

        Keys are ``<fullName>.<suffix>``; every entry is tagged clean.
        Unclassifiable entries and the package descriptor are dropped, and
        anything missing from *file_properties* disappears from the index.
        """
        store: dict[str, LocalStoreEntry] = {}
        for fp in file_properties:
            full_name = fp.get("fullName", "")
            if PACKAGE_FILE in full_name:
                continue
            descriptor = catalog.classify(fp.get("fileName", ""))
            if descriptor is None:
                logger.debug("Could not determine metadata type for: %s", fp)
                continue
            key = f"{full_name}.{descriptor.suffix}"
            store[key] = LocalStoreEntry(properties=dict(fp), state=EntryState.CLEAN)

        self._write_json(
            self.config_file(self.LOCAL_STORE_FILE),
            {key: entry.to_dict() for key, entry in store.items()},
        )
        logger.debug("Rebuilt local store with %d entries", len(store))
        return store
