"""metamirror CLI — inspect projects and metadata without touching the server."""

import logging
from collections import Counter
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from metamirror import __version__
from metamirror.errors import MetaMirrorError

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool):
    """metamirror — local mirror of a remote metadata repository.

    Inspect the local store, package descriptors and type classification
    of a project on disk.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# ── Classify ─────────────────────────────────────────────────────────


@main.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--path", "-p", "project_path", default=None, help="Project directory (uses its cached describe)")
def classify(paths: tuple, project_path: str | None):
    """Show the metadata type inferred for each PATH."""
    from metamirror.metadata.catalog import MetadataCatalog, MetadataEntity
    from metamirror.project.store import ProjectStore

    describe = ProjectStore(project_path).load_describe() if project_path else None
    catalog = MetadataCatalog.from_describe(describe)

    table = Table(title="Metadata Classification")
    table.add_column("Path", style="cyan")
    table.add_column("Type")
    table.add_column("Member")
    table.add_column("Meta File", justify="center")
    table.add_column("Tooling", justify="center")

    for p in paths:
        entity = MetadataEntity.from_path(p, catalog)
        if entity is None:
            table.add_row(p, "[red]unknown[/]", "", "", "")
            continue
        table.add_row(
            p,
            entity.type.xml_name,
            entity.full_name,
            "[green]Y[/]" if entity.requires_meta_file else "N",
            "[green]Y[/]" if entity.tooling_eligible else "N",
        )

    console.print(table)


# ── Package ──────────────────────────────────────────────────────────


@main.command()
@click.argument("package_path", type=click.Path(exists=True, dir_okay=False))
def package(package_path: str):
    """Show the contents of a package descriptor."""
    from metamirror.metadata.package import WILDCARD, PackageSpec

    try:
        pkg = PackageSpec.parse(Path(package_path))
    except MetaMirrorError as e:
        console.print(f"[red]{e.message}[/]")
        raise SystemExit(1)

    table = Table(title=f"{package_path} (version {pkg.version or '?'})")
    table.add_column("Type", style="cyan")
    table.add_column("Members")

    for type_name in sorted(pkg.types):
        members = pkg.types[type_name]
        shown = "[bold]* (all)[/]" if members == WILDCARD else ", ".join(members)
        table.add_row(type_name, shown)

    console.print(table)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.option("--path", "-p", "project_path", default=".", help="Project directory")
def status(project_path: str):
    """Summarize a project's settings and local store."""
    from metamirror.project.store import ProjectStore

    store = ProjectStore(project_path)
    try:
        store.load()
        settings = store.load_settings(with_password=False)
        local_store = store.load_local_store()
    except MetaMirrorError as e:
        console.print(f"[red]{e.message}[/]")
        raise SystemExit(1)

    indexed = "[green]yes[/]" if store.has_org_metadata() else "[yellow]no[/]"
    console.print(
        Panel(
            f"Name: {settings.project_name}\n"
            f"Id: {settings.id}\n"
            f"User: {settings.username} ({settings.environment})\n"
            f"Subscription: {', '.join(settings.subscription)}\n"
            f"Org metadata indexed: {indexed}",
            title="Project",
        )
    )

    counts = Counter(entry.type or "?" for entry in local_store.values())
    if not counts:
        console.print("[yellow]Local store is empty.[/]")
        return

    table = Table(title=f"Local Store ({len(local_store)} items)")
    table.add_column("Type", style="cyan")
    table.add_column("Items", justify="right")
    for type_name, count in sorted(counts.items()):
        table.add_row(type_name, str(count))
    console.print(table)


# ── Local store ──────────────────────────────────────────────────────


@main.command(name="local-store")
@click.option("--path", "-p", "project_path", default=".", help="Project directory")
@click.option("--type", "-t", "type_name", default=None, help="Filter by metadata type")
def local_store(project_path: str, type_name: str | None):
    """List local-store entries."""
    from metamirror.project.store import ProjectStore

    store = ProjectStore(project_path)
    try:
        store.load()
        entries = store.load_local_store()
    except MetaMirrorError as e:
        console.print(f"[red]{e.message}[/]")
        raise SystemExit(1)

    table = Table(title="Local Store")
    table.add_column("Key", style="cyan")
    table.add_column("Type")
    table.add_column("State", justify="center")
    table.add_column("Last Modified")

    for key in sorted(entries):
        entry = entries[key]
        if type_name and entry.type != type_name:
            continue
        state = "[green]clean[/]" if entry.state == "clean" else f"[yellow]{entry.state}[/]"
        table.add_row(key, entry.type, state, entry.properties.get("lastModifiedDate", ""))

    console.print(table)


if __name__ == "__main__":
    main()
