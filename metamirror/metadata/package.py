"""Package descriptors — the manifest naming metadata types and members.

A package maps each metadata type to either the wildcard marker ``"*"`` or
an ordered list of member names. Packages are parsed from a ``package.xml``
stream, built from local entities, or given directly by a caller.
"""

from __future__ import annotations

import io
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Iterable, Mapping, Union

from metamirror.errors import PackageParseError
from metamirror.metadata.catalog import MetadataEntity

logger = logging.getLogger(__name__)

WILDCARD = "*"
METADATA_NS = "http://soap.sforce.com/2006/04/metadata"

_CHUNK_SIZE = 8192

Members = Union[str, list[str]]
PackageInput = Union["PackageSpec", Mapping[str, Members], Iterable[str], None]


@dataclass
class PackageSpec:
    """In-memory package: metadata type -> ``"*"`` or ordered member list."""

    types: dict[str, Members] = field(default_factory=dict)
    version: str = ""

    def is_empty(self) -> bool:
        return not self.types

    def is_wildcard(self, type_name: str) -> bool:
        return self.types.get(type_name) == WILDCARD

    def members(self, type_name: str) -> Members:
        return self.types.get(type_name, [])

    def add(self, type_name: str, member: str) -> None:
        """Append a member; a wildcard entry absorbs further members."""
        current = self.types.setdefault(type_name, [])
        if current == WILDCARD:
            return
        if member == WILDCARD:
            self.types[type_name] = WILDCARD
        elif member not in current:
            current.append(member)

    # ── Construction ─────────────────────────────────────────────────

    @classmethod
    def wildcard(cls, type_names: Iterable[str]) -> PackageSpec:
        return cls(types={name: WILDCARD for name in type_names})

    @classmethod
    def from_entities(cls, entities: Iterable[MetadataEntity]) -> PackageSpec:
        pkg = cls()
        for entity in entities:
            pkg.add(entity.type.xml_name, entity.full_name)
        return pkg

    @classmethod
    def coerce(cls, value: PackageInput) -> PackageSpec | None:
        """Normalize a caller-supplied package.

        Accepts a PackageSpec, a mapping of type to members, or a plain list
        of type names (each requested in full). Absent or empty input gives
        None.
        """
        if value is None:
            return None
        if isinstance(value, PackageSpec):
            pkg = value
        elif isinstance(value, Mapping):
            pkg = cls(
                types={
                    name: WILDCARD if members == WILDCARD else list(members)
                    for name, members in value.items()
                }
            )
        elif isinstance(value, str):
            pkg = cls.wildcard([value])
        else:
            pkg = cls.wildcard(value)
        return None if pkg.is_empty() else pkg

    @classmethod
    def parse(cls, source: bytes | str | Path | IO[bytes]) -> PackageSpec:
        """Parse a package descriptor by streaming through its XML.

        For each ``<types>`` block the first ``<name>`` is the type key and
        every ``<members>`` value is appended, except that the first ``*``
        collapses the entry to the wildcard and later members are dropped.
        On a parse error the rest of the stream is still drained before
        PackageParseError is raised.
        """
        if isinstance(source, Path):
            try:
                with open(source, "rb") as f:
                    return cls._parse_stream(f)
            except OSError as e:
                raise PackageParseError(f"Could not read {source}: {e}") from e
        if isinstance(source, str):
            source = source.encode("utf-8")
        if isinstance(source, bytes):
            return cls._parse_stream(io.BytesIO(source.strip()))
        return cls._parse_stream(source)

    @classmethod
    def _parse_stream(cls, stream: IO[bytes]) -> PackageSpec:
        parser = ET.XMLPullParser(events=("start", "end"))
        builder = _PackageBuilder()
        error: ET.ParseError | None = None

        while True:
            chunk = stream.read(_CHUNK_SIZE)
            if not chunk:
                break
            if error is not None:
                continue  # drain
            try:
                parser.feed(chunk)
                builder.consume(parser.read_events())
            except ET.ParseError as e:
                logger.debug("Parse error: package.xml --> %s", e)
                error = e

        if error is None:
            try:
                parser.close()
                builder.consume(parser.read_events())
            except ET.ParseError as e:
                logger.debug("Parse error: package.xml --> %s", e)
                error = e

        if error is not None:
            raise PackageParseError(f"Could not parse package.xml: {error}") from error

        pkg = cls(types=builder.types, version=builder.version)
        logger.debug("parsed package.xml to --> %s", pkg.types)
        return pkg

    # ── Rendering ────────────────────────────────────────────────────

    def to_xml(self, api_version: str | None = None) -> bytes:
        """Render as a ``package.xml`` document (types sorted by name)."""
        ET.register_namespace("", METADATA_NS)
        root = ET.Element(_qualified("Package"))
        for type_name in sorted(self.types):
            members = self.types[type_name]
            types_el = ET.SubElement(root, _qualified("types"))
            for member in [WILDCARD] if members == WILDCARD else members:
                ET.SubElement(types_el, _qualified("members")).text = member
            ET.SubElement(types_el, _qualified("name")).text = type_name
        version = api_version or self.version
        if version:
            ET.SubElement(root, _qualified("version")).text = version
        ET.indent(root, space="    ")
        return ET.tostring(root, encoding="UTF-8", xml_declaration=True)


def resolve_request(package: PackageInput, default_types: Iterable[str]) -> PackageSpec:
    """Return the caller's package, or the default set when none was given.

    The default is used only when no package is supplied at all; it is never
    merged into a partial caller package.
    """
    pkg = PackageSpec.coerce(package)
    if pkg is None:
        return PackageSpec.wildcard(default_types)
    return pkg


class _PackageBuilder:
    """Accumulates parser events into a type -> members mapping."""

    def __init__(self):
        self.types: dict[str, Members] = {}
        self.version = ""
        self._depth = 0
        self._in_types = False
        self._name: str | None = None
        self._members: Members = []

    def consume(self, events) -> None:
        for event, elem in events:
            tag = _local(elem.tag)
            if event == "start":
                self._depth += 1
                if tag == "types" and self._depth == 2:
                    self._in_types = True
                    self._name = None
                    self._members = []
                continue

            self._depth -= 1
            text = (elem.text or "").strip()
            if self._in_types and tag == "name" and self._name is None and text:
                self._name = text
            elif self._in_types and tag == "members":
                if self._members != WILDCARD:
                    if text == WILDCARD:
                        self._members = WILDCARD
                    else:
                        self._members.append(text)
            elif tag == "types" and self._depth == 1:
                self._in_types = False
                if self._name is not None:
                    self.types[self._name] = self._members
            elif tag == "version" and self._depth == 1:
                self.version = text


def _qualified(tag: str) -> str:
    return f"{{{METADATA_NS}}}{tag}"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]
