"""CLI entry point for Rockcast."""

import asyncio
import sys
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from rockcast.config.logging import setup_logging
from rockcast.config.manager import ConfigManager
from rockcast.playback.models import format_time
from rockcast.session import Session
from rockcast.utils.errors import (
    AudioDownloadError,
    CloudAuthError,
    EpisodeNotFoundError,
    RockcastError,
)
from rockcast.utils.paths import get_config_file

app = typer.Typer(
    name="rockcast",
    help="Download, mirror and resume .NET Rocks! episodes",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"
    ),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write logs to file"
    ),
) -> None:
    """Rockcast - .NET Rocks! episodes, cached locally and mirrored to Google Drive."""
    level = None
    if get_config_file().exists():
        try:
            level = ConfigManager().load_config().log_level
        except RockcastError:
            # Reported by the command that needs the config
            level = None
    setup_logging(verbose=verbose, log_file=log_file, level=level)


@app.command("version")
def show_version() -> None:
    """Show version information."""
    from rockcast import __version__

    console.print(f"[bold cyan]Rockcast[/bold cyan] v{__version__}")


def _transfer_progress() -> Progress:
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    )


@app.command("resolve")
def resolve_command(
    episode: int = typer.Argument(..., min=1, help="Episode number"),
) -> None:
    """Find where an episode's audio can be fetched from, without downloading.

    Examples:
        rockcast resolve 1001
    """

    async def run() -> None:
        async with Session.create() as session:
            result = await session.resolver.resolve(episode)

        if not result.success:
            console.print(f"[red]✗[/red] No audio found for episode {episode}")
            console.print(f"[dim]Tried: {', '.join(result.attempts)}[/dim]")
            sys.exit(1)

        table = Table(show_header=False, box=None)
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Title", result.episode.title)
        table.add_row("Source", result.source or "")
        table.add_row("Tried", ", ".join(result.attempts))
        if result.local_path:
            table.add_row("Local file", str(result.local_path))
        if result.episode.audio_url:
            table.add_row("Audio URL", result.episode.audio_url)
        if result.episode.publish_date:
            table.add_row("Published", result.episode.publish_date.strftime("%Y-%m-%d"))
        console.print(table)

    try:
        asyncio.run(run())
    except RockcastError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


@app.command("download")
def download_command(
    episode: int = typer.Argument(..., min=1, help="Episode number"),
    upload: bool | None = typer.Option(
        None, "--upload/--no-upload", help="Mirror the audio to Google Drive afterwards"
    ),
) -> None:
    """Download an episode into the local cache.

    Examples:
        rockcast download 1001

        rockcast download 1001 --upload
    """

    async def run() -> None:
        async with Session.create() as session:
            if upload is not None:
                session.episodes.mirror_uploads = upload

            with _transfer_progress() as progress:
                task = progress.add_task(f"Episode {episode}", total=1.0)
                path = await session.episodes.acquire(
                    episode, lambda fraction: progress.update(task, completed=fraction)
                )

        console.print(f"[green]✓[/green] Episode {episode} saved to {path}")

    try:
        asyncio.run(run())
    except EpisodeNotFoundError as e:
        console.print(f"[red]✗[/red] {e}")
        console.print("[dim]  Checked Drive, the RSS feed and the episode page[/dim]")
        sys.exit(1)
    except AudioDownloadError as e:
        console.print(f"[red]✗[/red] Download failed: {e}")
        sys.exit(1)
    except RockcastError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


@app.command("download-range")
def download_range_command(
    start: int = typer.Argument(..., min=1, help="First episode"),
    end: int = typer.Argument(..., min=1, help="Last episode (inclusive)"),
) -> None:
    """Download a range of episodes, skipping ones already cached."""
    if end < start:
        console.print("[red]✗[/red] END must not be lower than START")
        sys.exit(1)

    styles = {"downloaded": "[green]✓[/green]", "skipped": "[dim]•[/dim]", "failed": "[red]✗[/red]"}

    async def run() -> None:
        async with Session.create() as session:
            summary = await session.episodes.download_range(
                start,
                end,
                lambda number, outcome: console.print(f"{styles[outcome]} Episode {number}: {outcome}"),
            )

        console.print(
            f"\n[bold]{len(summary.succeeded)}[/bold] downloaded, "
            f"[bold]{len(summary.skipped)}[/bold] skipped, "
            f"[bold]{len(summary.failed)}[/bold] failed"
        )
        if summary.failed:
            sys.exit(1)

    try:
        asyncio.run(run())
    except RockcastError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


@app.command("cache-metadata")
def cache_metadata_command(
    start: int = typer.Argument(..., min=1, help="First episode"),
    end: int = typer.Argument(..., min=1, help="Last episode (inclusive)"),
) -> None:
    """Record episode titles, descriptions and audio URLs on Google Drive."""
    if end < start:
        console.print("[red]✗[/red] END must not be lower than START")
        sys.exit(1)

    async def run() -> None:
        async with Session.create() as session:
            if session.mirror is None or not await session.mirror.is_authenticated():
                raise CloudAuthError("Sign in first: rockcast auth login")
            result = await session.episodes.cache_metadata_range(start, end)

        console.print(
            f"[green]✓[/green] Cached metadata for {result.episodes_cached} episode(s) "
            f"in {len(result.groups)} group(s)"
        )
        for label in result.groups:
            console.print(f"  • {label}")
        if result.missing:
            console.print(
                f"[yellow]⚠[/yellow] No audio found for: {', '.join(map(str, result.missing))}"
            )

    try:
        asyncio.run(run())
    except RockcastError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


@app.command("cache")
def cache_command(
    action: str = typer.Argument(..., help="Action: stats, clear"),
) -> None:
    """Manage the local episode cache.

    Actions:
        stats: Show cached episodes and feed cache age
        clear: Delete cached audio, the cached feed and remembered URLs
    """

    async def run() -> None:
        async with Session.create() as session:
            if action == "stats":
                stats = session.episodes.cache_stats()
                feed = stats["feed"]

                console.print("\n[bold]Episode Cache[/bold]\n")
                table = Table(show_header=False, box=None)
                table.add_column("Key", style="cyan")
                table.add_column("Value", style="white")
                table.add_row("Episodes", str(stats["episodes"]))
                table.add_row("Size", f"{stats['size_bytes'] / 1024 / 1024:.2f} MB")
                table.add_row("Cache directory", stats["cache_dir"])
                table.add_row("Feed fetched", feed["fetched_at"] or "never")
                table.add_row("Feed fresh", "✓" if feed["fresh"] else "✗")
                console.print(table)

            elif action == "clear":
                if not typer.confirm("\nDelete all cached episodes?"):
                    console.print("[yellow]Cancelled[/yellow]")
                    return
                count = await session.episodes.clear_cache()
                console.print(f"[green]✓[/green] Removed {count} cached file(s)")

            else:
                console.print(f"[red]✗[/red] Unknown action: {action}")
                console.print("Valid actions: stats, clear")
                sys.exit(1)

    try:
        asyncio.run(run())
    except RockcastError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


@app.command("state")
def state_command() -> None:
    """Show the saved playback state (from Drive when signed in, else local)."""

    async def run() -> None:
        async with Session.create() as session:
            await session.start()
            state = session.sync.last_saved_state

        if state is None:
            console.print("[dim]No saved playback state[/dim]")
            return

        table = Table(show_header=False, box=None)
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Episode", str(state.episode_number))
        if state.episode_title:
            table.add_row("Title", state.episode_title)
        table.add_row("Position", f"{format_time(state.position)} / {format_time(state.duration)}")
        table.add_row("Playing", "✓" if state.is_playing else "✗")
        table.add_row("Updated", state.last_updated.strftime("%Y-%m-%d %H:%M:%S"))
        table.add_row("Device", state.device_name or state.device_id or "unknown")
        console.print(table)

    try:
        asyncio.run(run())
    except RockcastError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


def _extract_code(answer: str) -> str:
    """Accept either the bare code or the full redirect URL."""
    answer = answer.strip()
    if "code=" in answer:
        values = parse_qs(urlparse(answer).query).get("code")
        if values:
            return values[0]
    return answer


@app.command("auth")
def auth_command(
    action: str = typer.Argument(..., help="Action: login, logout, status"),
) -> None:
    """Manage Google Drive sign-in.

    Examples:
        rockcast auth login

        rockcast auth status
    """

    async def code_provider(url: str) -> str:
        console.print("\nOpen this URL in a browser and approve access:\n")
        console.print(f"[cyan]{url}[/cyan]\n")
        return _extract_code(typer.prompt("Paste the redirect URL or the code"))

    async def run() -> None:
        async with Session.create() as session:
            if session.auth is None:
                console.print("[yellow]⚠[/yellow] Cloud mirror is disabled (cloud.enabled)")
                return

            if action == "login":
                await session.auth.authenticate(code_provider)
                console.print("[green]✓[/green] Signed in to Google Drive")
            elif action == "logout":
                await session.auth.sign_out()
                console.print("[green]✓[/green] Signed out")
            elif action == "status":
                if await session.auth.is_authenticated():
                    console.print("[green]✓[/green] Signed in")
                else:
                    console.print("[yellow]✗[/yellow] Not signed in")
            else:
                console.print(f"[red]✗[/red] Unknown action: {action}")
                console.print("Valid actions: login, logout, status")
                sys.exit(1)

    try:
        asyncio.run(run())
    except RockcastError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


@app.command("config")
def config_command(
    action: str = typer.Argument(..., help="Action: show, or set <key> <value>"),
    key: str | None = typer.Argument(None, help="Config key, dotted for sections (for 'set')"),
    value: str | None = typer.Argument(None, help="Config value (for 'set')"),
) -> None:
    """Manage Rockcast configuration.

    Examples:
        rockcast config show

        rockcast config set log_level DEBUG

        rockcast config set cloud.mirror_uploads true
    """
    try:
        manager = ConfigManager()

        if action == "show":
            config = manager.load_config()

            console.print("\n[bold]Rockcast Configuration[/bold]\n")
            table = Table(show_header=False, box=None)
            table.add_column("Key", style="cyan")
            table.add_column("Value", style="white")
            table.add_row("Config file", str(manager.config_file))
            table.add_row("Data directory", str(manager.resolve_data_dir(config)))
            table.add_row("Cache directory", str(manager.resolve_cache_dir(config)))
            table.add_row("", "")
            table.add_row("Log level", config.log_level)
            table.add_row("Feed", config.show.feed_url)
            table.add_row("Feed TTL", f"{config.show.feed_ttl_hours:g}h")
            table.add_row("Page scraper", "✓" if config.scraper.enabled else "✗")
            table.add_row("Drive mirror", "✓" if config.cloud.enabled else "✗")
            table.add_row("Upload audio", "✓" if config.cloud.mirror_uploads else "✗")
            table.add_row("OAuth client", config.cloud.client_id or "[dim]not set[/dim]")
            table.add_row("Default episode", str(config.playback.default_episode))
            console.print(table)

        elif action == "set":
            if not key or value is None:
                console.print("[red]✗[/red] Usage: rockcast config set <key> <value>")
                sys.exit(1)

            manager.set_value(key, value)
            shown = "********" if key.endswith("secret") else value
            console.print(f"[green]✓[/green] Set [cyan]{key}[/cyan] = [yellow]{shown}[/yellow]")

        else:
            console.print(f"[red]✗[/red] Unknown action: {action}")
            console.print("Valid actions: show, set")
            sys.exit(1)

    except RockcastError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    app()
