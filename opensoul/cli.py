"""
OpenSoul CLI

Command-line interface: swap your agent's SOUL.md with souls from the
registry, manage the local cache, and run the registry server.
"""

import sys
import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt
from rich.table import Table

from . import __version__
from .client import (
    RegistryClient,
    Resolver,
    SkillInstaller,
    SoulCache,
    SwapEngine,
    to_label,
)
from .config import (
    ClientConfig,
    create_default_config,
    default_client_config_path,
    get_config_value,
    load_client_config,
    load_config,
    set_config_value,
)
from .errors import NotFoundError, OpenSoulError, ResolutionAmbiguity


console = Console()


def fail(message: str):
    """Print an error and exit 1."""
    console.print(f"[red]✗[/red] {message}")
    sys.exit(1)


def registry_client(config: ClientConfig) -> RegistryClient:
    return RegistryClient(config.registry_url, token=config.auth_token, timeout=config.timeout)


def _config(ctx) -> ClientConfig:
    try:
        return load_client_config(ctx.obj.get("config_path"))
    except OpenSoulError as e:
        fail(f"Invalid config: {e}")


def _resolver(config: ClientConfig) -> Resolver:
    return Resolver(SoulCache(config.cache_dir), lambda: registry_client(config))


def _suggestion_block(names) -> str:
    lines = "\n".join(f"    [cyan]{escape(n)}[/cyan]" for n in names)
    return f"\n\n  Did you mean one of these?\n{lines}"


@click.group()
@click.version_option(__version__, "-v", "--version", prog_name="soul")
@click.option("--config", "-c", "config_path", type=click.Path(), envvar="SOULRC",
              help="Path to client config (default ~/.soulrc.yaml)")
@click.option("--verbose", is_flag=True, help="Enable verbose output for debugging")
@click.pass_context
def cli(ctx, config_path: Optional[str], verbose: bool):
    """OpenSoul - swap your agent's SOUL.md"""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


# =============================================================================
# Swap Commands
# =============================================================================

@cli.command()
@click.argument("path_or_name")
@click.option("--dry-run", is_flag=True, help="Preview the swap without writing anything")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def possess(ctx, path_or_name: str, dry_run: bool, yes: bool):
    """Swap your bot's SOUL.md with a soul file, cached soul or registry soul."""
    config = _config(ctx)
    engine = SwapEngine(config)
    cache = SoulCache(config.cache_dir)

    try:
        resolution = asyncio.run(_resolver(config).resolve(path_or_name))
    except ResolutionAmbiguity as e:
        fail(
            f"Soul '{escape(path_or_name)}' not found in cache."
            f"{_suggestion_block(e.candidates)}\n\n"
            f"  Use the exact name, or 'soul summon <label>' to download from the registry."
        )
    except NotFoundError as e:
        suggestions = _suggestion_block(e.suggestions) if e.suggestions else ""
        fail(f"{escape(str(e))}{suggestions}")
    except OpenSoulError as e:
        fail(escape(str(e)))

    target = engine.soul_path
    if not target.parent.exists():
        fail(
            f"Target directory not found: [yellow]{target.parent}[/yellow]\n\n"
            f"  Your configured SOUL.md path is: [cyan]{target}[/cyan]\n"
            f"  Use [bold]soul path <newPath>[/bold] to set the correct path to your SOUL.md file."
        )
    if target.name != "SOUL.md":
        fail(
            f"Configured path points to [yellow]{target.name}[/yellow], expected [cyan]SOUL.md[/cyan]\n\n"
            f"  Your configured path is: [cyan]{target}[/cyan]\n"
            f"  Use [bold]soul path <newPath>[/bold] to set it to a valid SOUL.md file or its parent directory."
        )

    first_swap = target.exists() and not engine.is_swapped()

    if dry_run:
        stripped = resolution.content.strip()
        preview = stripped.split("\n")[0] if stripped else ""
        console.print(Panel(
            f"Source: {escape(resolution.source)}\n"
            f"Target: {target}\n"
            f"Backup: {'would create' if first_swap else 'already exists'}\n"
            f"Preview: [cyan]{escape(preview)}[/cyan]",
            title=escape("[dry-run] Would possess with"),
        ))
        return

    if not yes and (config.swap_mode == "confirm" or (first_swap and sys.stdin.isatty())):
        console.print(f"[dim]  SOUL.md location: {target}[/dim]")
        if not Confirm.ask(
            "This will modify your SOUL.md (original will be backed up locally). Continue?",
            default=True,
        ):
            console.print("[dim]Aborted.[/dim]")
            return

    result = engine.swap(resolution.content)
    if resolution.name:
        cache.touch(resolution.name)

    display = resolution.name or Path(path_or_name).name
    console.print(f"\n[green]👻 Possessed with [bold yellow]{escape(display)}[/bold yellow][/green]")
    console.print(f"[dim]  Written to {result.path}[/dim]")
    if result.backed_up:
        console.print("[dim]  Original SOUL.md backed up (use 'soul exorcise' to restore)[/dim]")


@cli.command()
@click.pass_context
def exorcise(ctx):
    """Restore the original SOUL.md from backup."""
    engine = SwapEngine(_config(ctx))

    if not engine.has_backup():
        fail("No backup found. Nothing to exorcise.")

    if not engine.rollback():
        fail("Failed to exorcise soul.")

    console.print("\n[green]🕯️  Soul exorcised - [yellow]SOUL.md[/yellow] restored[/green]")
    console.print(f"[dim]  {engine.soul_path}[/dim]")


@cli.command()
@click.pass_context
def status(ctx):
    """Show current SOUL.md status and swap state."""
    engine = SwapEngine(_config(ctx))
    state = engine.status()

    if not state.path.parent.exists():
        console.print(f"[yellow]OpenClaw workspace not found at {state.path.parent}[/yellow]")
        console.print("[dim]Is OpenClaw installed? Expected ~/.openclaw/workspace/[/dim]")
        return

    if not state.exists:
        console.print(f"[yellow]No SOUL.md found at {state.path}[/yellow]")
        return

    swapped = state.state.value == "swapped"
    lines = [
        f"Path: {state.path}",
        f"State: {'[cyan]swapped[/cyan]' if swapped else '[green]original[/green]'}",
        f"Backup: {'[green]saved[/green]' if state.has_backup else '[dim]none[/dim]'}",
    ]
    if swapped:
        lines.append(f"Preview: [cyan]{escape(state.preview or '')}[/cyan]")

    console.print(Panel("\n".join(lines), title="SOUL.md Status"))


# =============================================================================
# Registry Commands
# =============================================================================

def _soul_line(soul: dict) -> str:
    rating = ""
    if soul.get("rating_avg"):
        rating = f" [yellow]★ {soul['rating_avg']:.1f}[/yellow] [dim]({soul['rating_count']} ratings)[/dim]"
    name_tag = f" [yellow]({escape(soul['name'])})[/yellow]" if soul["name"] != soul["label"] else ""
    desc = f" [dim]- {escape(soul['description'])}[/dim]" if soul.get("description") else ""
    return (
        f"[bold cyan]{escape(soul['label'])}[/bold cyan]{name_tag} "
        f"[magenta]by {escape(soul['author'])}[/magenta]{rating}{desc}"
    )


@cli.command()
@click.argument("query", required=False)
@click.option("--top", is_flag=True, help="Sort by highest-rated")
@click.option("--popular", is_flag=True, help="Sort by most popular")
@click.option("--tag", "-t", help="Only souls with this tag")
@click.option("--page", "-p", default=1, type=int, help="Result page")
@click.option("--limit", "-n", default=20, type=int, help="Results per page")
@click.option("--interactive/--no-interactive", default=None,
              help="Pick a result to summon (default: on when attached to a terminal)")
@click.pass_context
def search(ctx, query: Optional[str], top: bool, popular: bool, tag: Optional[str],
           page: int, limit: int, interactive: Optional[bool]):
    """Search the soul registry."""
    config = _config(ctx)
    sort = "top" if top else "popular" if popular else None

    async def run():
        async with registry_client(config) as client:
            return await client.search(query, sort=sort, tag=tag, page=page, limit=limit)

    try:
        result = asyncio.run(run())
    except OpenSoulError as e:
        fail(escape(str(e)))

    souls = result.get("data", [])
    pagination = result.get("pagination", {})

    if not souls:
        console.print("[yellow]No souls found.[/yellow]")
        return

    console.print(
        f"\n[bold]{pagination.get('total', len(souls))} soul(s) found "
        f"(page {pagination.get('page', 1)}/{pagination.get('totalPages', 1)}):[/bold]\n"
    )
    for i, soul in enumerate(souls, 1):
        prefix = f"[dim]{i:>2}.[/dim] " if interactive or (interactive is None and sys.stdin.isatty()) else "  "
        console.print(f"{prefix}{_soul_line(soul)}")

    if interactive is False or (interactive is None and not sys.stdin.isatty()):
        return

    choice = IntPrompt.ask("Select a soul to pull (0 to cancel)", default=0)
    if not 1 <= choice <= len(souls):
        return

    label = souls[choice - 1]["label"]
    try:
        resolution = asyncio.run(_resolver(config).fetch(label))
    except OpenSoulError as e:
        fail(escape(str(e)))

    console.print(f"[green]🔮 Summoned [bold yellow]{escape(resolution.name)}[/bold yellow] ({label})[/green]")

    if Confirm.ask("Possess your bot with this soul now?", default=True):
        result = SwapEngine(config).swap(resolution.content)
        SoulCache(config.cache_dir).touch(resolution.name)
        console.print(f"\n[green]👻 Possessed with [bold yellow]{escape(resolution.name)}[/bold yellow][/green]")
        console.print(f"[dim]  Written to {result.path}[/dim]")
        if result.backed_up:
            console.print("[dim]  Original SOUL.md backed up (use 'soul exorcise' to restore)[/dim]")
    else:
        console.print(f"[dim]  Use 'soul possess {escape(resolution.name)}' to activate later.[/dim]")


@cli.command()
@click.argument("label")
@click.pass_context
def summon(ctx, label: str):
    """Download a soul from the registry to the local cache."""
    config = _config(ctx)
    try:
        resolution = asyncio.run(_resolver(config).fetch(to_label(label), original=label))
    except NotFoundError as e:
        suggestions = _suggestion_block(e.suggestions) if e.suggestions else ""
        fail(f"{escape(str(e))}{suggestions}")
    except OpenSoulError as e:
        fail(escape(str(e)))

    console.print(
        f"\n[green]🔮 Summoned [bold yellow]{escape(resolution.name)}[/bold yellow] "
        f"({escape(resolution.label or label)})[/green]"
    )
    console.print(f"[dim]  Cached locally. Use 'soul possess {escape(resolution.name)}' to activate.[/dim]")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--name", help="Display name (default: first heading)")
@click.option("--description", "-d", help="One-line description")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag (repeatable)")
@click.pass_context
def publish(ctx, file: str, name: Optional[str], description: Optional[str], tags):
    """Upload a soul file to the registry."""
    config = _config(ctx)
    if not config.auth_token:
        fail("No auth token configured. Run 'soul config set auth_token <token>' first.")

    content = Path(file).read_text(encoding="utf-8")

    async def run():
        async with registry_client(config) as client:
            return await client.upload(content, name=name, description=description, tags=list(tags))

    try:
        result = asyncio.run(run())
    except OpenSoulError as e:
        fail(escape(str(e)))

    console.print(
        f"[green]✓[/green] Published [bold yellow]{escape(result['name'])}[/bold yellow] "
        f"as [cyan]{result['label']}[/cyan]"
    )
    console.print(f"[dim]  slug {result['slug']}, sha256 {result['hash'][:12]}[/dim]")


@cli.command()
@click.argument("label")
@click.argument("rating", type=click.IntRange(1, 5))
@click.pass_context
def rate(ctx, label: str, rating: int):
    """Rate a registry soul from 1 to 5."""
    config = _config(ctx)
    if not config.auth_token:
        fail("No auth token configured. Run 'soul config set auth_token <token>' first.")

    async def run():
        async with registry_client(config) as client:
            return await client.rate(label, rating)

    try:
        result = asyncio.run(run())
    except OpenSoulError as e:
        fail(escape(str(e)))

    console.print(
        f"[green]✓[/green] Rated [cyan]{escape(label)}[/cyan] {rating}/5 "
        f"(now [yellow]★ {result['rating_avg']:.1f}[/yellow] from {result['rating_count']} ratings)"
    )


# =============================================================================
# Cache Commands
# =============================================================================

@cli.command("list")
@click.option("--page", "-p", default=1, type=int, help="Page number")
@click.option("--per-page", "-n", default=20, type=int, help="Souls per page")
@click.pass_context
def list_cached(ctx, page: int, per_page: int):
    """List locally cached souls (most recently used first)."""
    config = _config(ctx)
    entries = SoulCache(config.cache_dir).list()

    if not entries:
        console.print("[yellow]No cached souls. Use 'soul summon <label>' to download one.[/yellow]")
        return

    per_page = max(1, per_page)
    total_pages = -(-len(entries) // per_page)
    page = min(max(1, page), total_pages)
    start = (page - 1) * per_page

    table = Table(title="Cached Souls")
    table.add_column("Label", style="yellow")
    table.add_column("Name")
    table.add_column("Last used", style="dim")

    for entry in entries[start:start + per_page]:
        name = entry.name if entry.label and entry.name != entry.label else ""
        table.add_row(
            escape(entry.display_label),
            escape(name),
            (entry.last_used_at or "-")[:19],
        )

    console.print(table)
    if total_pages > 1:
        console.print(f"[dim]\n  Page {page}/{total_pages} ({len(entries)} souls)[/dim]")


@cli.command()
@click.argument("name")
@click.pass_context
def banish(ctx, name: str):
    """Remove a soul from the local cache."""
    config = _config(ctx)
    if not SoulCache(config.cache_dir).remove(name):
        fail(f"Soul '{escape(name)}' not found in cache.")

    console.print(f"\n[green]🚪 Banished [bold yellow]{escape(name)}[/bold yellow] from cache[/green]")


# =============================================================================
# Setup Commands
# =============================================================================

@cli.command()
@click.argument("new_path", required=False)
@click.option("--skills", is_flag=True, help="Show or set the OpenClaw skills directory path")
@click.pass_context
def path(ctx, new_path: Optional[str], skills: bool):
    """Show or set the SOUL.md path (or the skills directory with --skills)."""
    key = "skills_path" if skills else "soul_path"
    label = "Skills path" if skills else "SOUL.md path"

    if new_path:
        resolved = str(Path(new_path).expanduser().resolve())
        try:
            set_config_value(key, resolved, path=ctx.obj.get("config_path"))
        except OpenSoulError as e:
            fail(escape(str(e)))
        console.print(f"[green]  {label} set to [yellow]{resolved}[/yellow][/green]")
        return

    config = _config(ctx)
    console.print(config.skills_path if skills else str(SwapEngine(config).soul_path))


@cli.command()
@click.pass_context
def install(ctx):
    """Install the OpenSoul skill into OpenClaw."""
    result = SkillInstaller(_config(ctx)).install()
    console.print(f"\n[green]✓ {'Updated' if result.updated else 'Installed'} OpenSoul skill[/green]")
    console.print(f"[dim]  {result.path}[/dim]")
    console.print("[dim]  Your OpenClaw bot can now swap souls via natural language.[/dim]")


@cli.command()
@click.pass_context
def uninstall(ctx):
    """Remove the OpenSoul skill from OpenClaw."""
    installer = SkillInstaller(_config(ctx))
    if not installer.is_installed():
        console.print("[yellow]OpenSoul skill is not installed.[/yellow]")
        return

    if not installer.uninstall():
        fail("Failed to uninstall skill.")
    console.print("\n[green]✓ Uninstalled OpenSoul skill[/green]")


@cli.group("config")
def config_group():
    """Get or set CLI configuration values."""
    pass


@config_group.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx, key: str):
    """Print a config value."""
    try:
        value = get_config_value(_config(ctx), key)
    except OpenSoulError as e:
        fail(escape(str(e)))
    console.print(str(value), markup=False)


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key: str, value: str):
    """Set and save a config value."""
    try:
        set_config_value(key, value, path=ctx.obj.get("config_path"))
    except OpenSoulError as e:
        fail(escape(str(e)))

    path = ctx.obj.get("config_path") or default_client_config_path()
    console.print(f"[green]✓[/green] Set {key} = {escape(value)}")
    console.print(f"[dim]  {path}[/dim]")


# =============================================================================
# Server Commands
# =============================================================================

@cli.group()
def server():
    """Run and administer the registry server."""
    pass


@server.command("start")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Server config file")
def server_start(config_path: Optional[str]):
    """Start the registry server."""
    from .config import OpenSoulConfig

    config = load_config(config_path) if config_path else OpenSoulConfig()
    if config_path:
        console.print(f"[green]✓[/green] Loaded config from {config_path}")

    console.print(Panel(
        f"[bold]OpenSoul Registry v{__version__}[/bold]\n"
        f"Starting server on [cyan]http://{config.server.host}:{config.server.port}[/cyan]\n"
        f"Storage: {config.storage.backend}",
        title="🚀 Starting"
    ))

    from .server import main as server_main
    server_main(config_path)


@server.command("init")
@click.argument("output", default="opensoul.yaml", type=click.Path())
def server_init(output: str):
    """Write a default server config file."""
    config_path = Path(output)

    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    config_path.write_text(create_default_config())
    console.print(f"[green]✓[/green] Created {config_path}")
    console.print("\nEdit the file to configure storage, then run:")
    console.print(f"  [cyan]soul server start -c {config_path}[/cyan]")


@server.command("add-user")
@click.argument("username")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Server config file")
def server_add_user(username: str, config_path: Optional[str]):
    """Create a registry account and print its token."""
    from .config import OpenSoulConfig
    from .registry import SoulStorage

    config = load_config(config_path) if config_path else OpenSoulConfig()
    storage = SoulStorage(db_path=config.registry.db_path)

    try:
        user, token = storage.create_user(username)
    except OpenSoulError as e:
        fail(escape(str(e)))

    console.print(Panel(
        f"User: [bold]{escape(user.username)}[/bold]\n"
        f"Token: [cyan]{token}[/cyan]\n\n"
        f"[dim]Shown once. On the client run:[/dim]\n"
        f"  soul config set auth_token {token}",
        title="✓ User created",
    ))


# =============================================================================
# Main
# =============================================================================

def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
