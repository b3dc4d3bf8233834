"""Deploy staging — batch checks and on-disk payloads for deploy requests."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, Sequence

from metamirror.errors import PathScopeError
from metamirror.metadata.catalog import PACKAGE_FILE, CompileApi, MetadataEntity
from metamirror.metadata.package import PackageSpec

DESTRUCTIVE_FILE = "destructiveChanges.xml"
STAGING_DIR = "unpackaged"


def choose_compile_api(entities: Sequence[MetadataEntity], tooling_enabled: bool) -> CompileApi:
    """Pick the compile path for a whole batch.

    The tooling path is used only when enabled and every item supports it;
    a single ineligible item sends the entire batch down the metadata path.
    """
    if tooling_enabled and all(e.tooling_eligible for e in entities):
        return CompileApi.TOOLING
    return CompileApi.METADATA


def check_scope(entities: Iterable[MetadataEntity], root: Path) -> None:
    """Reject the batch if any item resolves outside the project root."""
    resolved_root = root.resolve()
    for entity in entities:
        if not entity.path.resolve().is_relative_to(resolved_root):
            raise PathScopeError(str(entity.path))


def stage_delete(
    entities: Iterable[MetadataEntity], workdir: Path, api_version: str
) -> Path:
    """Write an empty package plus a destructive-changes manifest.

    Returns the staging directory, ready to be zipped.
    """
    staging = workdir / STAGING_DIR
    staging.mkdir(parents=True, exist_ok=True)
    (staging / PACKAGE_FILE).write_bytes(PackageSpec().to_xml(api_version))
    (staging / DESTRUCTIVE_FILE).write_bytes(
        PackageSpec.from_entities(entities).to_xml(api_version)
    )
    return staging


def stage_source(source_dir: Path, workdir: Path) -> Path:
    """Copy the whole source tree into the staging directory."""
    staging = workdir / STAGING_DIR
    shutil.copytree(source_dir, staging)
    return staging
