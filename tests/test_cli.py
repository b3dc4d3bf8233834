"""Tests for the command-line interface."""

from click.testing import CliRunner

from metamirror.cli import main
from metamirror.metadata.catalog import MetadataCatalog
from metamirror.project.models import Settings
from metamirror.project.store import ProjectStore
from tests.fakes import DEFAULT_FILES, PACKAGE_XML, file_properties_for


def _project(tmp_path):
    store = ProjectStore(tmp_path / "Acme")
    store.save_settings(
        Settings(
            project_name="Acme",
            username="dev@acme.test",
            id="p-1",
            environment="developer",
            subscription=["ApexClass"],
        )
    )
    store.rebuild_local_store(file_properties_for(DEFAULT_FILES), MetadataCatalog())
    return store


def test_classify():
    result = CliRunner().invoke(main, ["classify", "src/classes/Foo.cls", "src/unknown/x.bin"])
    assert result.exit_code == 0
    assert "ApexClass" in result.output
    assert "unknown" in result.output


def test_package(tmp_path):
    path = tmp_path / "package.xml"
    path.write_text(PACKAGE_XML)
    result = CliRunner().invoke(main, ["package", str(path)])
    assert result.exit_code == 0
    assert "ApexPage" in result.output
    assert "* (all)" in result.output


def test_package_parse_error(tmp_path):
    path = tmp_path / "package.xml"
    path.write_text("<Package><types>")
    result = CliRunner().invoke(main, ["package", str(path)])
    assert result.exit_code == 1


def test_status(tmp_path):
    store = _project(tmp_path)
    result = CliRunner().invoke(main, ["status", "--path", str(store.path)])
    assert result.exit_code == 0
    assert "Acme" in result.output
    assert "ApexClass" in result.output


def test_status_outside_project(tmp_path):
    result = CliRunner().invoke(main, ["status", "--path", str(tmp_path)])
    assert result.exit_code == 1
    assert "valid project" in result.output


def test_local_store_filter(tmp_path):
    store = _project(tmp_path)
    result = CliRunner().invoke(
        main, ["local-store", "--path", str(store.path), "--type", "ApexPage"]
    )
    assert result.exit_code == 0
    assert "Home.page" in result.output
    assert "Foo.cls" not in result.output
