"""Metadata catalog — classify local paths and remote file names into types.

The catalog is the single source of truth for type inference: local-store
rebuilds and deploy staging both go through :meth:`MetadataCatalog.classify`
so a given file maps to the same type everywhere.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Iterable

META_SUFFIX = "-meta.xml"
PACKAGE_FILE = "package.xml"
DESTRUCTIVE_PREFIX = "destructiveChanges"


class CompileApi(Enum):
    """Which compile path a metadata type supports."""

    TOOLING = "tooling"  # Lightweight single-item compile
    METADATA = "metadata"  # General deploy path only


@dataclass(frozen=True)
class TypeDescriptor:
    xml_name: str
    directory_name: str
    suffix: str = ""
    in_folder: bool = False
    meta_file: bool = False
    compile_api: CompileApi = CompileApi.METADATA

    @property
    def tooling_eligible(self) -> bool:
        return self.compile_api is CompileApi.TOOLING


BUILTIN_TYPES = [
    TypeDescriptor("ApexClass", "classes", "cls", meta_file=True, compile_api=CompileApi.TOOLING),
    TypeDescriptor("ApexComponent", "components", "component", meta_file=True, compile_api=CompileApi.TOOLING),
    TypeDescriptor("ApexPage", "pages", "page", meta_file=True, compile_api=CompileApi.TOOLING),
    TypeDescriptor("ApexTrigger", "triggers", "trigger", meta_file=True, compile_api=CompileApi.TOOLING),
    TypeDescriptor("StaticResource", "staticresources", "resource", meta_file=True),
    TypeDescriptor("CustomObject", "objects", "object"),
    TypeDescriptor("Layout", "layouts", "layout"),
    TypeDescriptor("Workflow", "workflows", "workflow"),
    TypeDescriptor("Profile", "profiles", "profile"),
    TypeDescriptor("CustomTab", "tabs", "tab"),
    TypeDescriptor("CustomLabels", "labels", "labels"),
    TypeDescriptor("EmailTemplate", "email", "email", in_folder=True, meta_file=True),
    TypeDescriptor("Document", "documents", "", in_folder=True, meta_file=True),
    TypeDescriptor("Report", "reports", "report", in_folder=True),
    TypeDescriptor("Dashboard", "dashboards", "dashboard", in_folder=True),
]


class MetadataCatalog:
    """Lookup tables from file suffix and directory name to type descriptors."""

    def __init__(self, descriptors: Iterable[TypeDescriptor] = BUILTIN_TYPES):
        self._by_name: dict[str, TypeDescriptor] = {}
        self._by_suffix: dict[str, TypeDescriptor] = {}
        self._by_directory: dict[str, TypeDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    @classmethod
    def from_describe(cls, describe: dict[str, Any] | None) -> MetadataCatalog:
        """Build a catalog from the built-ins plus a cached describe result.

        Built-in descriptors win when both define the same type.
        """
        catalog = cls()
        for obj in (describe or {}).get("metadataObjects", []):
            name = obj.get("xmlName")
            if not name or name in catalog._by_name:
                continue
            catalog.register(
                TypeDescriptor(
                    xml_name=name,
                    directory_name=obj.get("directoryName", ""),
                    suffix=obj.get("suffix") or "",
                    in_folder=_as_bool(obj.get("inFolder")),
                    meta_file=_as_bool(obj.get("metaFile")),
                )
            )
        return catalog

    def register(self, descriptor: TypeDescriptor) -> None:
        self._by_name[descriptor.xml_name] = descriptor
        if descriptor.suffix:
            self._by_suffix.setdefault(descriptor.suffix, descriptor)
        if descriptor.directory_name:
            self._by_directory.setdefault(descriptor.directory_name, descriptor)

    def get(self, xml_name: str) -> TypeDescriptor | None:
        return self._by_name.get(xml_name)

    @property
    def types(self) -> list[TypeDescriptor]:
        return list(self._by_name.values())

    def classify(self, path_or_name: str | Path) -> TypeDescriptor | None:
        """Return the type for a local path or a remote file name.

        Sidecar ``-meta.xml`` files classify as their owner. Package
        descriptors and destructive-change manifests are not metadata.
        """
        path = PurePosixPath(str(path_or_name).replace("\\", "/"))
        name = path.name
        if name == PACKAGE_FILE or name.startswith(DESTRUCTIVE_PREFIX):
            return None
        if name.endswith(META_SUFFIX):
            name = name[: -len(META_SUFFIX)]

        if "." in name:
            descriptor = self._by_suffix.get(name.rsplit(".", 1)[1])
            if descriptor is not None:
                return descriptor

        # Folder-based types sit one level deeper: documents/<folder>/<file>.
        parents = path.parent.parts
        if parents:
            descriptor = self._by_directory.get(parents[-1])
            if descriptor is not None:
                return descriptor
        if len(parents) > 1:
            descriptor = self._by_directory.get(parents[-2])
            if descriptor is not None and descriptor.in_folder:
                return descriptor
        return None


@dataclass(frozen=True)
class MetadataEntity:
    """A local metadata file with its inferred type."""

    path: Path
    type: TypeDescriptor

    @classmethod
    def from_path(cls, path: str | Path, catalog: MetadataCatalog) -> MetadataEntity | None:
        descriptor = catalog.classify(path)
        if descriptor is None:
            return None
        return cls(path=Path(path).absolute(), type=descriptor)

    @property
    def suffix(self) -> str:
        return self.path.suffix.lstrip(".")

    @property
    def name(self) -> str:
        # Documents keep their extension in the member name.
        if self.type.suffix and self.path.suffix == f".{self.type.suffix}":
            return self.path.stem
        return self.path.name

    @property
    def full_name(self) -> str:
        """Member name as it appears in a package descriptor."""
        if self.type.in_folder and self.path.parent.name != self.type.directory_name:
            return f"{self.path.parent.name}/{self.name}"
        return self.name

    @property
    def requires_meta_file(self) -> bool:
        return self.type.meta_file

    @property
    def meta_path(self) -> Path:
        return self.path.with_name(self.path.name + META_SUFFIX)

    @property
    def tooling_eligible(self) -> bool:
        return self.type.tooling_eligible


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)
