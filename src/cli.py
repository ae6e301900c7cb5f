"""CLI interface for postdesk."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from postdesk.config import PostdeskConfig, load_config, merge_cli_overrides
from postdesk.content.frontmatter import FrontMatter, decode, encode
from postdesk.content.models import Post, SyncReport, SyncState
from postdesk.content.store import DraftStore
from postdesk.errors import (
    PostdeskError,
    RateLimitedError,
    UnauthorizedError,
)
from postdesk.integrations.git_host import create_gateway
from postdesk.sync.reconciler import SyncReconciler

T = TypeVar("T")

app = typer.Typer(
    name="postdesk",
    help="Edit Markdown posts locally and sync them through your Git host.",
)

console = Console()

_STATE_STYLES = {
    SyncState.SYNCED: "green",
    SyncState.LOCAL_ONLY: "cyan",
    SyncState.LOCAL_DIRTY: "yellow",
    SyncState.PUSH_FAILED: "red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from postdesk import __version__

        console.print(f"postdesk {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .postdesk.toml file."),
    ] = None,
    drafts_dir: Annotated[
        Optional[Path],
        typer.Option("--drafts-dir", help="Directory holding the local draft store."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """postdesk - local-first editing for Git-hosted blogs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = load_config(config_path)
    ctx.obj = merge_cli_overrides(
        config, drafts_dir=str(drafts_dir) if drafts_dir is not None else None
    )


# ── Helpers ──────────────────────────────────────────────────────────


def _config(ctx: typer.Context) -> PostdeskConfig:
    if isinstance(ctx.obj, PostdeskConfig):
        return ctx.obj
    return load_config()


def _local_reconciler(config: PostdeskConfig) -> SyncReconciler:
    return SyncReconciler(DraftStore(config.drafts_dir))


def _run_remote(config: PostdeskConfig, action: Callable[[SyncReconciler], Awaitable[T]]) -> T:
    """Run a network action with a gateway built from config.

    Maps gateway errors to user-facing messages and exit code 1.
    """
    host = config.to_git_host_config()
    if not host.is_configured:
        console.print("[red]Error:[/red] Git host not configured (owner/repo/api url).")
        raise typer.Exit(1)

    async def _go() -> T:
        async with create_gateway(host, config.auth.token) as gateway:
            reconciler = SyncReconciler(
                DraftStore(config.drafts_dir),
                gateway,
                max_concurrency=config.sync.max_concurrency,
            )
            return await action(reconciler)

    try:
        return asyncio.run(_go())
    except UnauthorizedError as exc:
        console.print(f"[red]Not authorized:[/red] {exc}")
        console.print("Re-authenticate and set GITHUB_TOKEN / GITEA_TOKEN. Local drafts are untouched.")
        raise typer.Exit(1)
    except RateLimitedError as exc:
        wait = f" Retry in {exc.retry_after:.0f}s." if exc.retry_after else ""
        console.print(f"[yellow]Rate limited:[/yellow] {exc}.{wait}")
        raise typer.Exit(1)
    except PostdeskError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)


def _parse_assignments(values: list[str] | None) -> FrontMatter:
    result: FrontMatter = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            console.print(f"[red]Error:[/red] Expected KEY=VALUE, got {item!r}")
            raise typer.Exit(1)
        result[key.strip()] = value
    return result


def _posts_table(posts: list[Post]) -> Table:
    table = Table(title=f"Posts ({len(posts)})")
    table.add_column("File")
    table.add_column("Title")
    table.add_column("Tags")
    table.add_column("State")
    table.add_column("Modified")
    for post in posts:
        tags = post.front_matter.get("tags", "")
        if isinstance(tags, list):
            tags = ", ".join(tags[:3])
        style = _STATE_STYLES[post.state]
        table.add_row(
            post.filename,
            post.title,
            tags,
            f"[{style}]{post.state.value}[/{style}]",
            post.last_modified.strftime("%Y-%m-%d %H:%M"),
        )
    return table


def _print_report(report: SyncReport, verb: str) -> None:
    for outcome in report.outcomes:
        if outcome.ok:
            console.print(f"  [green]✓[/green] {outcome.filename} ({outcome.action.value})")
        elif outcome.is_conflict:
            console.print(f"  [yellow]![/yellow] {outcome.filename}: conflict - {outcome.error}")
        else:
            console.print(f"  [red]✗[/red] {outcome.filename}: {outcome.error}")
    console.print(
        f"{verb}: {len(report.succeeded)} ok, {len(report.failed)} failed"
    )
    if report.conflicts:
        console.print(
            "Resolve conflicts with [bold]postdesk resolve FILE --keep-local[/bold]"
            " or [bold]--take-remote[/bold]."
        )


# ── Local commands ───────────────────────────────────────────────────


@app.command(name="list")
def list_cmd(
    ctx: typer.Context,
    search: Annotated[
        Optional[str],
        typer.Option("--search", "-s", help="Filter by filename or title."),
    ] = None,
    state: Annotated[
        Optional[SyncState],
        typer.Option("--state", help="Only show posts in this sync state."),
    ] = None,
) -> None:
    """List local drafts."""
    store = DraftStore(_config(ctx).drafts_dir)
    posts = store.search(search) if search else store.list()
    if state is not None:
        posts = [p for p in posts if p.state == state]
    if not posts:
        console.print("No posts found matching your search." if search else "No posts available.")
        return
    console.print(_posts_table(posts))


@app.command()
def status(ctx: typer.Context) -> None:
    """Summarize drafts by sync state."""
    posts = _local_reconciler(_config(ctx)).status()
    counts = {s: 0 for s in SyncState}
    for post in posts:
        counts[post.state] += 1
    for sync_state, count in counts.items():
        style = _STATE_STYLES[sync_state]
        console.print(f"[{style}]{sync_state.value:<12}[/{style}] {count}")
    for post in posts:
        if post.push_error:
            console.print(f"  [red]{post.filename}[/red]: {post.push_error}")
        elif post.has_remote_changes and not post.synced:
            console.print(f"  [yellow]{post.filename}[/yellow]: changed remotely since last sync")


@app.command()
def show(
    ctx: typer.Context,
    filename: Annotated[str, typer.Argument(help="Post filename.")],
) -> None:
    """Print a draft as it would be committed."""
    post = DraftStore(_config(ctx).drafts_dir).get(filename)
    if post is None:
        console.print(f"[red]Error:[/red] No draft named {filename}")
        raise typer.Exit(1)
    typer.echo(encode(post.front_matter, post.content))


@app.command()
def new(
    ctx: typer.Context,
    filename: Annotated[str, typer.Argument(help="New post filename (.md or .mdx).")],
    title: Annotated[Optional[str], typer.Option("--title", "-t")] = None,
    tag: Annotated[Optional[list[str]], typer.Option("--tag", help="Repeatable.")] = None,
    from_file: Annotated[
        Optional[Path],
        typer.Option("--from-file", "-f", exists=True, dir_okay=False, help="Markdown file to import."),
    ] = None,
) -> None:
    """Create a new local draft."""
    front_matter: FrontMatter = {}
    content = ""
    if from_file is not None:
        front_matter, content = decode(from_file.read_text(encoding="utf-8"))
    if title is not None:
        front_matter["title"] = title
    if tag:
        front_matter["tags"] = list(tag)

    try:
        _local_reconciler(_config(ctx)).create(filename, content, front_matter)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
    console.print(f"[green]Created draft[/green] {filename}")


@app.command()
def edit(
    ctx: typer.Context,
    filename: Annotated[str, typer.Argument(help="Post filename.")],
    from_file: Annotated[
        Optional[Path],
        typer.Option("--from-file", "-f", exists=True, dir_okay=False, help="Replace with this file."),
    ] = None,
    title: Annotated[Optional[str], typer.Option("--title", "-t")] = None,
    tag: Annotated[Optional[list[str]], typer.Option("--tag", help="Replace tags. Repeatable.")] = None,
    assign: Annotated[
        Optional[list[str]],
        typer.Option("--set", help="Set a front-matter field, KEY=VALUE. Repeatable."),
    ] = None,
) -> None:
    """Edit a draft from a file, from flags, or in $EDITOR."""
    reconciler = _local_reconciler(_config(ctx))
    post = reconciler.store.get(filename)
    if post is None:
        console.print(f"[red]Error:[/red] No draft named {filename}")
        raise typer.Exit(1)

    front_matter = dict(post.front_matter)
    content = post.content
    if from_file is not None:
        front_matter, content = decode(from_file.read_text(encoding="utf-8"))
    elif title is None and not tag and not assign:
        edited = typer.edit(encode(front_matter, content), extension=".md")
        if edited is None:
            console.print("No changes.")
            return
        front_matter, content = decode(edited)

    if title is not None:
        front_matter["title"] = title
    if tag:
        front_matter["tags"] = list(tag)
    front_matter.update(_parse_assignments(assign))

    if front_matter == post.front_matter and content == post.content:
        console.print("No changes.")
        return
    reconciler.edit(filename, content=content, front_matter=front_matter)
    console.print(f"[yellow]Edited[/yellow] {filename} (unsynced)")


# ── Sync commands ────────────────────────────────────────────────────


@app.command()
def pull(ctx: typer.Context) -> None:
    """Fetch remote posts; drafts with unpushed edits are kept."""
    report = _run_remote(_config(ctx), lambda r: r.pull())
    _print_report(report, "Pull")
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def push(ctx: typer.Context) -> None:
    """Commit every unsynced draft to the Git host."""
    report = _run_remote(_config(ctx), lambda r: r.push())
    if not report.outcomes:
        console.print("Nothing to push.")
        return
    _print_report(report, "Push")
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def delete(
    ctx: typer.Context,
    filename: Annotated[str, typer.Argument(help="Post filename.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
) -> None:
    """Delete a post remotely and locally."""
    config = _config(ctx)
    post = DraftStore(config.drafts_dir).get(filename)
    if post is None:
        console.print(f"[red]Error:[/red] No draft named {filename}")
        raise typer.Exit(1)
    if not yes:
        typer.confirm(f"Delete {filename}?", abort=True)

    if post.revision_token is None:
        outcome = asyncio.run(_local_reconciler(config).delete(filename))
    else:
        outcome = _run_remote(config, lambda r: r.delete(filename))
    if not outcome.ok:
        console.print(f"[red]Delete failed[/red] ({outcome.error_kind}): {outcome.error}")
        console.print("The local draft was kept.")
        raise typer.Exit(1)
    console.print(f"[green]Deleted[/green] {filename}")


@app.command()
def resolve(
    ctx: typer.Context,
    filename: Annotated[str, typer.Argument(help="Post filename.")],
    keep_local: Annotated[
        bool,
        typer.Option("--keep-local/--take-remote", help="Which side wins."),
    ] = True,
) -> None:
    """Resolve a conflicted draft."""
    config = _config(ctx)
    try:
        if keep_local:
            _local_reconciler(config).keep_local(filename)
            console.print(f"{filename} will overwrite the remote on next push.")
        else:
            _run_remote(config, lambda r: r.adopt_remote(filename))
            console.print(f"{filename} replaced with the remote version.")
    except KeyError:
        console.print(f"[red]Error:[/red] No draft named {filename}")
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
