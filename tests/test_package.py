"""Tests for package descriptor parsing and rendering."""

import io

import pytest

from metamirror.config import CORE_TYPES
from metamirror.errors import PackageParseError
from metamirror.metadata.catalog import MetadataCatalog, MetadataEntity
from metamirror.metadata.package import WILDCARD, PackageSpec, resolve_request


def _package(*types: str) -> str:
    body = "".join(types)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<Package xmlns="http://soap.sforce.com/2006/04/metadata">'
        f"{body}<version>30.0</version></Package>"
    )


class _CountingStream(io.BytesIO):
    """Reads in tiny chunks and remembers whether it hit EOF."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.exhausted = False

    def read(self, size=-1):
        chunk = super().read(16)
        if not chunk:
            self.exhausted = True
        return chunk


def test_parse_explicit_members():
    xml = _package(
        "<types><members>Foo</members><members>Bar</members><name>ApexClass</name></types>"
    )
    pkg = PackageSpec.parse(xml)
    assert pkg.types == {"ApexClass": ["Foo", "Bar"]}
    assert pkg.version == "30.0"


def test_wildcard_first_discards_later_members():
    xml = _package(
        "<types><members>*</members><members>Foo</members><name>ApexClass</name></types>"
    )
    assert PackageSpec.parse(xml).types == {"ApexClass": WILDCARD}


def test_wildcard_after_members_collapses_entry():
    xml = _package(
        "<types><members>Foo</members><members>*</members><members>Bar</members>"
        "<name>ApexPage</name></types>"
    )
    assert PackageSpec.parse(xml).types == {"ApexPage": WILDCARD}


def test_first_name_is_the_type_key():
    xml = _package(
        "<types><name>ApexClass</name><members>Foo</members><name>ApexPage</name></types>"
    )
    assert PackageSpec.parse(xml).types == {"ApexClass": ["Foo"]}


def test_multiple_types():
    xml = _package(
        "<types><members>*</members><name>ApexClass</name></types>",
        "<types><members>Home</members><name>ApexPage</name></types>",
    )
    pkg = PackageSpec.parse(xml.encode())
    assert pkg.types == {"ApexClass": WILDCARD, "ApexPage": ["Home"]}


def test_parse_from_path(tmp_path):
    path = tmp_path / "package.xml"
    path.write_text(_package("<types><members>X</members><name>ApexTrigger</name></types>"))
    assert PackageSpec.parse(path).types == {"ApexTrigger": ["X"]}


def test_missing_file_raises(tmp_path):
    with pytest.raises(PackageParseError):
        PackageSpec.parse(tmp_path / "package.xml")


def test_malformed_xml_raises_after_draining_stream():
    xml = _package("<types><members>Foo</members><name>ApexClass</name></typos>")
    stream = _CountingStream((xml + " " * 200).encode())
    with pytest.raises(PackageParseError):
        PackageSpec.parse(stream)
    assert stream.exhausted


def test_empty_document_raises():
    with pytest.raises(PackageParseError):
        PackageSpec.parse(b"")


def test_default_request_when_no_package():
    pkg = resolve_request(None, CORE_TYPES)
    assert set(pkg.types) == {
        "ApexClass",
        "ApexComponent",
        "ApexPage",
        "ApexTrigger",
        "StaticResource",
    }
    assert all(m == WILDCARD for m in pkg.types.values())


def test_empty_package_counts_as_absent():
    assert set(resolve_request({}, CORE_TYPES).types) == set(CORE_TYPES)
    assert set(resolve_request([], CORE_TYPES).types) == set(CORE_TYPES)


def test_caller_package_prevents_default():
    pkg = resolve_request({"CustomObject": ["Account"]}, CORE_TYPES)
    assert pkg.types == {"CustomObject": ["Account"]}


def test_type_list_requests_everything():
    pkg = resolve_request(["ApexClass", "ApexPage"], CORE_TYPES)
    assert pkg.types == {"ApexClass": WILDCARD, "ApexPage": WILDCARD}


def test_from_entities_groups_by_type():
    catalog = MetadataCatalog()
    entities = [
        MetadataEntity.from_path("/p/src/classes/Foo.cls", catalog),
        MetadataEntity.from_path("/p/src/classes/Bar.cls", catalog),
        MetadataEntity.from_path("/p/src/pages/Home.page", catalog),
    ]
    pkg = PackageSpec.from_entities(entities)
    assert pkg.types == {"ApexClass": ["Foo", "Bar"], "ApexPage": ["Home"]}


def test_to_xml_parses_back():
    pkg = PackageSpec(types={"ApexPage": ["Home"], "ApexClass": WILDCARD})
    xml = pkg.to_xml("31.0")
    assert xml.startswith(b"<?xml")
    assert b"http://soap.sforce.com/2006/04/metadata" in xml
    assert xml.index(b"ApexClass") < xml.index(b"ApexPage")
    parsed = PackageSpec.parse(xml)
    assert parsed.types == pkg.types
    assert parsed.version == "31.0"


def test_empty_package_xml_has_only_version():
    parsed = PackageSpec.parse(PackageSpec().to_xml("30.0"))
    assert parsed.is_empty()
    assert parsed.version == "30.0"
