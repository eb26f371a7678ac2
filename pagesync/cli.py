"""pagesync CLI — the main entry point."""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from pagesync import __version__
from pagesync.config import explicit_keys, load_config
from pagesync.errors import PagesyncError

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool) -> None:
    """Route the ``pagesync`` logger through rich; one line per stage at INFO."""
    logger = logging.getLogger("pagesync")
    logger.handlers.clear()
    handler = RichHandler(console=err_console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="%H:%M:%S"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    # Silence noisy third-party loggers
    for name in ("httpcore", "httpx", "git"):
        logging.getLogger(name).setLevel(logging.WARNING)


_RUN_OPTIONS = [
    click.argument("repo_path"),
    click.option("--config", "-c", "config_path", default=None,
                 type=click.Path(exists=True, dir_okay=False), help="Operator YAML config file"),
    click.option("--source-branch", default=None, help="Source branch (default: remote HEAD)"),
    click.option("--publish-branch", default=None, help="Publish branch (default: gh-pages)"),
    click.option("--remote", default=None, help="Remote name (default: origin)"),
    click.option("--storage-root", default=None, type=click.Path(file_okay=False),
                 help="Where cloned repos are kept"),
    click.option("--verbose", "-v", is_flag=True, help="Debug logging"),
]


def run_options(func):
    """Options shared by every command that works on one repository."""
    for option in reversed(_RUN_OPTIONS):
        func = option(func)
    return func


def _load(config_path, **overrides):
    config = load_config(config_path, **overrides)
    return config, explicit_keys(config_path, **overrides)


def _fail(e: Exception) -> None:
    console.print(f"[red]Error:[/] {e}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def main():
    """pagesync — incrementally republish generated docs into a pages branch.

    Each publish commit records the source commit it mirrors, so the next run
    re-renders only what changed since then.
    """


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@run_options
@click.option("--production/--dry-run", default=None, help="Push the publish branch (default: dry run)")
@click.option("--classifier-url", default=None, help="Language-classification service URL")
def sync(repo_path, config_path, source_branch, publish_branch, remote, storage_root, verbose, production, classifier_url):
    """Synchronize REPO_PATH's publish branch with its source branch.

    REPO_PATH can be a local path or a Git URL (cloned into the storage root).
    """
    from pagesync.runner import sync_repository
    from pagesync.sync.journal import SyncJournal

    setup_logging(verbose)
    console.print(f"\n[bold blue]pagesync[/] — Synchronizing: {repo_path}\n")

    try:
        config, explicit = _load(
            config_path,
            source_branch=source_branch,
            publish_branch=publish_branch,
            remote=remote,
            storage_root=storage_root,
            production=production,
            classifier_url=classifier_url,
        )
        outcome = sync_repository(
            repo_path,
            config,
            explicit=explicit,
            journal=SyncJournal(config.storage_root),
        )
    except PagesyncError as e:
        _fail(e)
        return

    console.print(Panel(outcome.plan.summary(), title="Plan"))

    if outcome.plan.is_noop:
        console.print("[green]Nothing to do.[/]")
        return

    applied = outcome.applied
    table = Table(title="Apply")
    table.add_column("Rendered", justify="right", style="green")
    table.add_column("Removed", justify="right")
    table.add_column("Skipped", justify="right", style="dim")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Assets", justify="right")
    table.add_row(
        str(len(applied.rendered)),
        str(len(applied.removed)),
        str(len(applied.skipped)),
        str(len(applied.failures)),
        str(applied.assets_copied),
    )
    console.print(table)

    for failure in applied.failures:
        console.print(f"  [red]x[/] {failure.path}: {failure.error}")

    if outcome.published is None:
        console.print("[yellow]Publish tree unchanged; nothing committed.[/]")
    elif outcome.pushed:
        console.print(f"\n[green]Published[/] {outcome.published} and pushed.")
    else:
        console.print(f"\n[green]Committed[/] {outcome.published} (dry run, not pushed).")


# ── Plan ─────────────────────────────────────────────────────────────


@main.command()
@run_options
@click.option("--files/--no-files", default=False, help="List every touched path")
def plan(repo_path, config_path, source_branch, publish_branch, remote, storage_root, verbose, files):
    """Show what a sync would do, without changing anything."""
    from pagesync.runner import prepare

    setup_logging(verbose)
    try:
        config, explicit = _load(
            config_path,
            source_branch=source_branch,
            publish_branch=publish_branch,
            remote=remote,
            storage_root=storage_root,
        )
        run = prepare(repo_path, config, explicit)
    except PagesyncError as e:
        _fail(e)
        return

    p = run.plan
    console.print(Panel(p.summary(), title=f"Plan: {p.mode.value}"))
    if p.trigger_paths:
        console.print("[yellow]Full rebuild forced by:[/]")
        for path in p.trigger_paths:
            console.print(f"  [yellow]![/] {path}")

    if files and not p.is_noop:
        table = Table(title="Touched Set")
        table.add_column("Status", width=8)
        table.add_column("Path", style="cyan")
        for path in p.touched.added_or_modified:
            table.add_row("[green]render[/]", path)
        for path in p.touched.deleted:
            table.add_row("[red]delete[/]", path)
        console.print(table)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@run_options
def status(repo_path, config_path, source_branch, publish_branch, remote, storage_root, verbose):
    """Show the latest synchronization record and whether it can be trusted."""
    from pagesync.sync.locator import locate_record
    from pagesync.sync.trust import validate_record
    from pagesync.utils.git_ops import GitVCS, ensure_local_repo

    setup_logging(verbose)
    try:
        config, _ = _load(
            config_path,
            source_branch=source_branch,
            publish_branch=publish_branch,
            remote=remote,
            storage_root=storage_root,
        )
        handle = ensure_local_repo(repo_path, config.storage_root, config.remote)
        vcs = GitVCS(handle.repo, config.remote)
        source_ref = vcs.source_ref(config.source_branch)
        head = vcs.head(source_ref)
        publish_ref = vcs.branch_ref(config.publish_branch, remote_only=config.production)
        record = locate_record(vcs, publish_ref)
        verdict = validate_record(vcs, record, source_ref)
    except PagesyncError as e:
        _fail(e)
        return

    table = Table(title=f"Status: {handle.display_path}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Source head", f"{head} ({source_ref})")
    table.add_row("Publish branch", publish_ref or "[yellow](missing)[/]")
    if record:
        table.add_row("Record", f"{record.publish_sha[:7]} -> {record.source_sha[:7]} {record.source_subject}")
        table.add_row("Schema", str(record.schema_version))
    else:
        table.add_row("Record", "[yellow](none)[/]")
    trust = "[green]trusted[/]" if verdict.trusted else f"[red]untrusted[/] {verdict.detail}"
    table.add_row("Trust", trust)
    if verdict.trusted:
        synced = "yes" if verdict.commit.sha == head.sha else "no"
        table.add_row("Up to date", synced)
    console.print(table)


# ── History ──────────────────────────────────────────────────────────


@main.command()
@click.option("--storage-root", default=None, type=click.Path(file_okay=False), help="Where cloned repos are kept")
@click.option("--repo", default=None, help="Only show runs for this repository")
@click.option("--limit", "-n", default=20, help="Most recent N runs")
def history(storage_root, repo, limit):
    """Show the local journal of past runs."""
    from pagesync.sync.journal import SyncJournal

    try:
        config = load_config(storage_root=storage_root)
    except PagesyncError as e:
        _fail(e)
        return

    entries = SyncJournal(config.storage_root).get_history(repo)
    if not entries:
        console.print("[yellow]No runs recorded.[/]")
        return

    table = Table(title=f"Runs ({len(entries)} recorded)")
    table.add_column("Finished", style="dim")
    table.add_column("Repo", style="cyan")
    table.add_column("Mode")
    table.add_column("Source", width=8)
    table.add_column("Published", width=9)
    table.add_column("Result")

    for entry in entries[-limit:]:
        if entry.succeeded:
            result = "[green]pushed[/]" if entry.pushed else "ok"
            if entry.failures:
                result += f" [yellow]({len(entry.failures)} failed)[/]"
        else:
            result = f"[red]{entry.error[:60]}[/]"
        table.add_row(
            entry.finished_at[:19],
            entry.repo,
            entry.mode + (f" ({entry.reason})" if entry.reason else ""),
            entry.source_sha[:7],
            entry.published_sha[:7],
            result,
        )

    console.print(table)


if __name__ == "__main__":
    main()
