"""Tests for retrieve-based workflows (populate, clean, edit, refresh)."""

import shutil
from pathlib import Path

import pytest

from metamirror.config import CORE_TYPES, MirrorConfig
from metamirror.errors import (
    PackageParseError,
    ProjectExistsError,
    RemoteOperationError,
    SecretError,
    SyncTraversalError,
)
from metamirror.metadata.package import WILDCARD
from metamirror.project.project import Project
from metamirror.sync import strategies
from metamirror.sync.orchestrator import SyncOrchestrator
from metamirror.sync.strategies import SPLICE
from tests.fakes import DEFAULT_FILES, PACKAGE_XML, FakeClient, FakeSecretStore, create_project


def _tree(root):
    return {
        p.relative_to(root).as_posix(): p.read_text()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


async def _reopen(project, client):
    reopened = Project(MirrorConfig(), client, project.secrets, path=project.path)
    return await reopened.initialize()


# --- Populate ---


@pytest.mark.asyncio
async def test_populate_requests_default_package(tmp_path):
    client = FakeClient()
    await create_project(tmp_path, client=client)
    assert client.remote_calls == ["describe", "retrieve"]
    requested = client.retrieved[0]
    assert set(requested.types) == set(CORE_TYPES)
    assert all(m == WILDCARD for m in requested.types.values())


@pytest.mark.asyncio
async def test_populate_uses_caller_package_only(tmp_path):
    client = FakeClient()
    await create_project(tmp_path, client=client, package={"ApexClass": ["Foo"]})
    assert client.retrieved[0].types == {"ApexClass": ["Foo"]}


@pytest.mark.asyncio
async def test_populate_failure_removes_project_directory(tmp_path):
    with pytest.raises(RemoteOperationError):
        await create_project(tmp_path, client=FakeClient(fail={"retrieve"}))
    assert not (tmp_path / "Acme").exists()

    project = await create_project(tmp_path)
    assert (project.path / "src" / "classes" / "Foo.cls").exists()


@pytest.mark.asyncio
async def test_populate_secret_failure_removes_project_directory(tmp_path):
    with pytest.raises(SecretError):
        await create_project(tmp_path, secrets=FakeSecretStore(accept=False))
    assert not (tmp_path / "Acme").exists()


@pytest.mark.asyncio
async def test_populate_classifies_describe_only_types(tmp_path):
    client = FakeClient(files={**DEFAULT_FILES, "flows/Onboard.flow": "<Flow/>"})
    client.describe_result = {
        "metadataObjects": [
            {"xmlName": "Flow", "directoryName": "flows", "suffix": "flow", "metaFile": "false"}
        ]
    }
    project = await create_project(tmp_path, client=client)
    assert "Onboard.flow" in project.local_store
    populated = set(project.local_store)

    reopened = await _reopen(project, FakeClient(files=client.files))
    await SyncOrchestrator(reopened).clean()
    assert set(reopened.local_store) == populated


@pytest.mark.asyncio
async def test_populate_onto_existing_directory_keeps_name_available(tmp_path):
    project = Project(
        MirrorConfig(workspaces=[str(tmp_path)]),
        FakeClient(),
        FakeSecretStore(),
        project_name="Acme",
        password="s3cret",
    )
    await project.initialize(is_new=True)
    (tmp_path / "Acme").mkdir()

    with pytest.raises(ProjectExistsError, match="already exists in the specified workspace"):
        await SyncOrchestrator(project).populate()
    assert (tmp_path / "Acme").is_dir()

    (tmp_path / "Acme").rmdir()
    project = await create_project(tmp_path)
    assert (project.path / "src" / "classes" / "Foo.cls").exists()


# --- Clean / Edit ---


@pytest.mark.asyncio
async def test_clean_replaces_whole_tree(tmp_path):
    project = await create_project(tmp_path)
    src = project.path / "src"
    (src / "classes" / "Stale.cls").write_text("stale")
    (src / "classes" / "Foo.cls").write_text("local edit")

    client = FakeClient()
    project = await _reopen(project, client)
    result = await SyncOrchestrator(project).clean()

    assert client.retrieved[0].types == {"ApexClass": WILDCARD, "ApexPage": WILDCARD}
    assert result.strategy == "replace"
    assert not (src / "classes" / "Stale.cls").exists()
    assert (src / "classes" / "Foo.cls").read_text() == "public class Foo {}"
    assert not (project.path / "unpackaged").exists()


@pytest.mark.asyncio
async def test_clean_discards_its_stash(tmp_path):
    project = await create_project(tmp_path)
    project = await _reopen(project, FakeClient(fail={"retrieve"}))

    stashes = []
    create_stash = project.stash.create_stash

    async def _spy():
        stash = await create_stash()
        stashes.append(stash)
        return stash

    project.stash.create_stash = _spy
    with pytest.raises(RemoteOperationError):
        await SyncOrchestrator(project).clean()

    assert len(stashes) == 1
    assert not stashes[0].active
    assert project.stash.current is None
    assert (project.path / "src" / "classes" / "Foo.cls").exists()


@pytest.mark.asyncio
async def test_clean_without_package_descriptor(tmp_path):
    project = await create_project(tmp_path)
    (project.path / "src" / "package.xml").unlink()

    client = FakeClient()
    project = await _reopen(project, client)
    with pytest.raises(PackageParseError):
        await SyncOrchestrator(project).clean()
    assert client.remote_calls == []


@pytest.mark.asyncio
async def test_edit_replaces_tree_and_local_store(tmp_path):
    project = await create_project(tmp_path)
    client = FakeClient(
        files={
            "package.xml": PACKAGE_XML,
            "classes/Baz.cls": "public class Baz {}",
            "classes/Baz.cls-meta.xml": "<ApexClass/>",
        }
    )
    project = await _reopen(project, client)
    await SyncOrchestrator(project).edit({"ApexClass": ["Baz"]})

    assert client.retrieved[0].types == {"ApexClass": ["Baz"]}
    assert set(_tree(project.path / "src")) == {
        "package.xml",
        "classes/Baz.cls",
        "classes/Baz.cls-meta.xml",
    }
    assert set(project.local_store) == {"Baz.cls"}
    assert set(project.store.load_local_store()) == {"Baz.cls"}


@pytest.mark.asyncio
async def test_edit_requires_package(tmp_path):
    project = await create_project(tmp_path)
    with pytest.raises(PackageParseError):
        await SyncOrchestrator(project).edit({})


@pytest.mark.asyncio
async def test_retrieve_failure_leaves_tree_untouched(tmp_path):
    project = await create_project(tmp_path)
    before = _tree(project.path / "src")

    project = await _reopen(project, FakeClient(fail={"retrieve"}))
    with pytest.raises(RemoteOperationError) as exc_info:
        await SyncOrchestrator(project).clean()

    assert exc_info.value.operation == "retrieve"
    assert _tree(project.path / "src") == before


# --- Refresh ---


@pytest.mark.asyncio
async def test_refresh_splices_only_retrieved_files(tmp_path):
    project = await create_project(tmp_path)
    src = project.path / "src"
    (src / "classes" / "Foo.cls").write_text("local foo")
    (src / "classes" / "Bar.cls").write_text("local bar")
    package_before = (src / "package.xml").read_text()
    store_before = (project.path / "config" / ".local_store").read_text()

    client = FakeClient(
        files={
            "package.xml": "<Package/>",
            "classes/Foo.cls": "server foo v2",
            "classes/Foo.cls-meta.xml": "<ApexClass>v2</ApexClass>",
        }
    )
    project = await _reopen(project, client)
    result = await SyncOrchestrator(project).refresh([src / "classes" / "Foo.cls"])

    assert client.retrieved[0].types == {"ApexClass": ["Foo"]}
    assert result.strategy == "splice"
    assert (src / "classes" / "Foo.cls").read_text() == "server foo v2"
    assert (src / "classes" / "Foo.cls-meta.xml").read_text() == "<ApexClass>v2</ApexClass>"
    assert (src / "classes" / "Bar.cls").read_text() == "local bar"
    assert (src / "package.xml").read_text() == package_before
    assert (project.path / "config" / ".local_store").read_text() == store_before
    assert not (project.path / "unpackaged").exists()


@pytest.mark.asyncio
async def test_refresh_creates_missing_directories(tmp_path):
    project = await create_project(tmp_path)
    client = FakeClient(files={"triggers/OnAccount.trigger": "trigger OnAccount on Account () {}"})
    project = await _reopen(project, client)

    target = project.path / "src" / "triggers" / "OnAccount.trigger"
    await SyncOrchestrator(project).refresh([str(target)])
    assert target.read_text() == "trigger OnAccount on Account () {}"


@pytest.mark.asyncio
async def test_refresh_removes_stale_scratch_first(tmp_path):
    project = await create_project(tmp_path)
    ghost = project.path / "unpackaged" / "classes" / "Ghost.cls"
    ghost.parent.mkdir(parents=True)
    ghost.write_text("left over from a failed run")

    project = await _reopen(project, FakeClient(files={"classes/Foo.cls": "v2"}))
    await SyncOrchestrator(project).refresh([project.path / "src" / "classes" / "Foo.cls"])

    assert not (project.path / "src" / "classes" / "Ghost.cls").exists()
    assert not ghost.exists()


@pytest.mark.asyncio
async def test_refresh_copy_failure_keeps_files_already_spliced(tmp_path, monkeypatch):
    project = await create_project(tmp_path)
    response = {
        "classes/Foo.cls": "server Foo",
        "classes/Bar.cls": "server Bar",
        "pages/Home.page": "server Home",
    }
    project = await _reopen(project, FakeClient(files=response))
    src = project.path / "src"

    real_copy = shutil.copy2
    copied = []

    def _fail_on_second_copy(source, destination):
        if copied:
            raise OSError("disk full")
        real_copy(source, destination)
        copied.append(Path(destination))

    monkeypatch.setattr(strategies.shutil, "copy2", _fail_on_second_copy)
    with pytest.raises(SyncTraversalError, match="disk full"):
        await SyncOrchestrator(project).refresh([src / rel for rel in response])

    assert len(copied) == 1
    spliced = copied[0]
    assert spliced.read_text() == response[spliced.relative_to(src).as_posix()]


@pytest.mark.asyncio
async def test_splice_requires_scratch_tree(tmp_path):
    with pytest.raises(SyncTraversalError):
        await SPLICE.apply(tmp_path / "missing", tmp_path / "src")
