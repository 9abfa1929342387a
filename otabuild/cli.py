"""Thin CLI wrapper for otabuild.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any

import httpx
import typer
from rich.console import Console

from otabuild import __version__
from otabuild.config import Settings, get_settings, print_settings_json

app = typer.Typer(
    name="otabuild",
    help="otabuild - remote app builds and over-the-air update manifests",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"otabuild version {__version__}")
        raise typer.Exit()


def _print_json(data: Any) -> None:
    """Print data as JSON without rich markup or wrapping."""
    console.print(
        json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True
    )


def _default_base_url(settings: Settings) -> str:
    """Base URL of the configured server."""
    if settings.public_url:
        return settings.public_url.rstrip("/")
    return f"http://{settings.host}:{settings.port}"


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """otabuild - remote app builds and over-the-air update manifests."""
    logging.basicConfig(level=get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), markup=False, soft_wrap=True)
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Storage directory:   {settings.storage_dir}")
    console.print(f"  Database URL:        {settings.db_url}")
    console.print(f"  Executor logs:       {settings.executor_log_dir}")
    console.print()
    console.print("[bold]Server:[/bold]")
    console.print(f"  Bind address:        {settings.host}:{settings.port}")
    console.print(f"  Public URL:          {settings.public_url or '(request host)'}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  API keys:            {len(settings.api_keys) or 'none (open)'}")
    console.print()
    console.print("[bold]Builds:[/bold]")
    console.print(f"  Executor:            {settings.executor}")
    console.print(f"  Runtime version:     {settings.default_runtime_version}")
    console.print(f"  Max archive bytes:   {settings.max_archive_bytes}")
    console.print(f"  Verify asset hashes: {settings.verify_asset_hashes}")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Build timeout:       {settings.build_timeout}")
    console.print(f"  Dispatch timeout:    {settings.dispatch_timeout}")


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (default from settings)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Bind port (default from settings)"),
    ] = None,
) -> None:
    """Run the HTTP server."""
    import uvicorn

    from web.app import create_app

    settings = get_settings()
    if host:
        settings.host = host
    if port:
        settings.port = port

    console.print(
        f"[bold]Serving otabuild on http://{settings.host}:{settings.port}[/bold]"
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


builds_app = typer.Typer(help="Inspect build records")
app.add_typer(builds_app, name="builds")


@builds_app.command("list")
def builds_list(
    project: Annotated[
        str | None,
        typer.Option("--project", help="Filter by project key"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum results"),
    ] = 20,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List recent builds, newest first."""
    from otabuild.builds.service import list_builds
    from otabuild.db import create_all_tables, get_engine, get_session_factory

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        builds = list_builds(session, project_key=project, limit=limit)

        if json_output:
            _print_json([b.to_dict() for b in builds])
            return

        if not builds:
            console.print("[yellow]No builds found[/yellow]")
            return

        console.print(f"[bold]Found {len(builds)} build(s):[/bold]")
        console.print()
        for b in builds:
            color = {"success": "green", "failed": "red"}.get(b.status, "yellow")
            console.print(f"  [{color}]{b.id}[/{color}]  {b.status}")
            console.print(f"    Project: {b.project_key}")
            console.print(f"    Platform: {b.platform}  Runtime: {b.runtime_version}")
            if b.error:
                console.print(f"    Error: {b.error}")
            console.print()


@builds_app.command("show")
def builds_show(
    build_id: Annotated[str, typer.Argument(help="Build ID to show")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show details of a build."""
    from otabuild.builds.service import get_build
    from otabuild.db import create_all_tables, get_engine, get_session_factory
    from otabuild.errors import BuildNotFoundError

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        try:
            build = get_build(session, build_id)
        except BuildNotFoundError:
            console.print(f"[red]Build not found: {build_id}[/red]")
            raise typer.Exit(code=1) from None

        data = build.to_dict()
        if json_output:
            _print_json(data)
            return

        console.print(f"[bold]Build {build.id}[/bold]")
        for key in (
            "project_key",
            "status",
            "platform",
            "runtime_version",
            "created_at",
            "completed_at",
            "error",
        ):
            if data[key] is not None:
                console.print(f"  {key}: {data[key]}", markup=False)


@app.command()
def manifest(
    build_id: Annotated[str, typer.Argument(help="Build ID")],
    platform: Annotated[
        str,
        typer.Option("--platform", help="Client platform (ios or android)"),
    ] = "ios",
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", help="Base URL for asset links"),
    ] = None,
) -> None:
    """Print the update manifest served for a build."""
    from otabuild.builds.service import get_build
    from otabuild.db import create_all_tables, get_engine, get_session_factory
    from otabuild.errors import BuildNotFoundError, MissingBundleError
    from otabuild.manifests.generator import generate_manifest
    from otabuild.manifests.protocol import normalize_platform

    settings = get_settings()
    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with factory() as session:
        try:
            build = get_build(session, build_id)
        except BuildNotFoundError:
            console.print(f"[red]Build not found: {build_id}[/red]")
            raise typer.Exit(code=1) from None

        if not build.is_succeeded():
            console.print(f"[red]Build not ready: {build_id} ({build.status})[/red]")
            raise typer.Exit(code=1)

        try:
            result = generate_manifest(
                build,
                base_url or _default_base_url(settings),
                normalize_platform(platform),
            )
        except MissingBundleError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1) from None

        _print_json(result.to_wire())


@app.command()
def deploy(
    archive: Annotated[Path, typer.Argument(help="Project archive (.tar.gz)")],
    project: Annotated[str, typer.Option("--project", help="Project key")],
    name: Annotated[str, typer.Option("--name", help="Application name")],
    slug: Annotated[str, typer.Option("--slug", help="Application slug")],
    owner: Annotated[
        str | None,
        typer.Option("--owner", help="Account owning the application"),
    ] = None,
    platform: Annotated[
        str,
        typer.Option("--platform", help="ios, android or all"),
    ] = "all",
    runtime_version: Annotated[
        str | None,
        typer.Option("--runtime-version", help="Runtime compatibility tag"),
    ] = None,
    api_url: Annotated[
        str | None,
        typer.Option("--api-url", help="Server base URL (default from settings)"),
    ] = None,
    api_key: Annotated[
        str | None,
        typer.Option("--api-key", envvar="OTABUILD_API_KEY", help="API key"),
    ] = None,
) -> None:
    """Upload a project archive and start a build."""
    if not archive.is_file():
        console.print(f"[red]Archive not found: {archive}[/red]")
        raise typer.Exit(code=1)

    source_config: dict[str, Any] = {"name": name, "slug": slug}
    if owner:
        source_config["owner"] = owner
    metadata: dict[str, Any] = {
        "project_key": project,
        "platform": platform,
        "source_config": source_config,
    }
    if runtime_version:
        metadata["runtime_version"] = runtime_version

    url = f"{(api_url or _default_base_url(get_settings())).rstrip('/')}/v1/upload"
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

    try:
        with archive.open("rb") as f:
            response = httpx.post(
                url,
                files={"tarball": (archive.name, f, "application/gzip")},
                data={"metadata": json.dumps(metadata)},
                headers=headers,
                timeout=300,
            )
    except httpx.RequestError as e:
        console.print(f"[red]Upload failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    if response.status_code != 201:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None
        message = detail.get("message") if isinstance(detail, dict) else detail
        console.print(
            f"[red]Upload rejected ({response.status_code}): "
            f"{message or response.text}[/red]"
        )
        raise typer.Exit(code=1)

    result = response.json()
    if result.get("status") == "failed":
        console.print(
            f"[red]Build {result['build_id']} failed: {result.get('error')}[/red]"
        )
        raise typer.Exit(code=1)

    console.print(f"[green]Build {result['build_id']} submitted[/green]")
    console.print(f"Status: {result['status']}")


if __name__ == "__main__":
    app()
