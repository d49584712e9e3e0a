"""Command-line tools for creating, writing and reading Roam pages."""

import contextlib
import functools
import json
import logging
import sys
from collections.abc import Iterable, Iterator
from datetime import date, datetime, time, timezone
from typing import IO, Any

import click

from .client import RoamClient
from .config import load_config
from .errors import AuthenticationError, RoamAPIError
from .pages import (
    CHILDREN_VIEW_TYPES,
    BlockWriteReport,
    ItemStatus,
    PageCreationReport,
    create_page_action,
    create_pages,
    daily_page_title,
    ensure_page_uid,
    unique_titles,
    write_blocks,
)
from .queries import (
    fetch_children,
    find_page_uid,
    find_pages_modified_since,
    find_references,
    group_references,
)
from .tree import DEFAULT_MAX_DEPTH, build_tree, format_tree, tree_to_json

logger = logging.getLogger(__name__)

PROGRESS_MARKS = {
    ItemStatus.CREATED: ".",
    ItemStatus.SKIPPED: "s",
    ItemStatus.FAILED: "x",
}

MISSING_CREDENTIALS_HELP = (
    "Please set the following environment variables (or put them in a .env file):\n"
    "  ROAM_GRAPH_NAME    Your Roam Research graph name\n"
    "  ROAM_API_TOKEN     Your Roam Research API token\n"
    "\n"
    "Example:\n"
    '  export ROAM_GRAPH_NAME="my-graph"\n'
    '  export ROAM_API_TOKEN="roam-graph-token-xxx"'
)


def read_lines(stream: IO[str]) -> list[str]:
    """Read non-empty, non-comment lines from a text stream, stripped."""
    lines = []
    for line in stream:
        text = line.strip()
        if text and not text.startswith("#"):
            lines.append(text)
    return lines


def preview(text: str, width: int) -> str:
    """Truncate ``text`` to ``width`` characters, ending in '...' if cut."""
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def _show_progress(status: ItemStatus) -> None:
    click.echo(PROGRESS_MARKS[status], nl=False)


@contextlib.contextmanager
def fatal_errors() -> Iterator[None]:
    """Turn uncaught Roam errors into a clean exit with status 1."""
    try:
        yield
    except RoamAPIError as e:
        logger.debug("Fatal error", exc_info=True)
        raise click.ClickException(f"Fatal error: {e}") from e


def get_client(ctx: click.Context) -> RoamClient:
    try:
        config = load_config(timeout=ctx.obj.get("timeout"))
    except AuthenticationError as e:
        raise click.ClickException(f"{e}\n\n{MISSING_CREDENTIALS_HELP}") from e
    return RoamClient(config)


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase log verbosity.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Request time budget in seconds (default 30).",
)
@click.pass_context
def main(ctx: click.Context, verbose: int, timeout: float | None) -> None:
    """Create, write and read Roam Research pages.

    Credentials come from the ROAM_API_TOKEN and ROAM_GRAPH_NAME
    environment variables.
    """
    logging_level = logging.WARN
    if verbose == 1:
        logging_level = logging.INFO
    elif verbose >= 2:
        logging_level = logging.DEBUG

    logging.basicConfig(level=logging_level, stream=sys.stderr)
    ctx.ensure_object(dict)
    ctx.obj["timeout"] = timeout


def _print_list(heading: str, items: Iterable[str]) -> None:
    click.echo(heading)
    for i, item in enumerate(items, 1):
        click.echo(f"  {i}. {item}")
    click.echo("")


def _print_creation_summary(report: PageCreationReport) -> None:
    click.echo("\n")
    click.echo("Summary:")
    click.echo(f"  ✓ Created: {len(report.created)}")
    click.echo(f"  ⊙ Skipped (already exists): {len(report.skipped)}")
    click.echo(f"  ✗ Failed: {len(report.failed)}")
    click.echo("")

    if report.created:
        _print_list("Created pages:", report.created)
    if report.skipped:
        _print_list("Skipped pages (already exist):", report.skipped)
    if report.failed:
        _print_list(
            "Failed pages:", (f"{f.item}: {f.error}" for f in report.failed)
        )


@main.command("create-pages")
@click.option("--titles", help="Comma-separated list of page titles.")
@click.option(
    "-f",
    "--file",
    "titles_file",
    type=click.File("r"),
    help="Read page titles from a file, one per line.",
)
@click.option("--stdin", "use_stdin", is_flag=True, help="Read titles from stdin.")
@click.option(
    "--children-view-type",
    type=click.Choice(CHILDREN_VIEW_TYPES),
    help="View type for the new pages' children.",
)
@click.option(
    "--batch", is_flag=True, help="Create all pages in one batch-actions request."
)
@click.option("--dry-run", is_flag=True, help="Show what would be created.")
@click.pass_context
def create_pages_command(
    ctx: click.Context,
    titles: str | None,
    titles_file: IO[str] | None,
    use_stdin: bool,
    children_view_type: str | None,
    batch: bool,
    dry_run: bool,
) -> None:
    """Create pages, skipping any that already exist."""
    if use_stdin:
        requested = read_lines(click.get_text_stream("stdin"))
    elif titles_file is not None:
        requested = read_lines(titles_file)
    elif titles:
        requested = [t.strip() for t in titles.split(",") if t.strip()]
    else:
        requested = []

    if not requested:
        raise click.UsageError(
            "No page titles provided. Use --titles, --file, or --stdin."
        )

    pending = unique_titles(requested)

    if dry_run:
        click.echo("Dry run mode - no pages will be created")
        _print_list(f"Would create {len(pending)} pages:", pending)
        if children_view_type:
            click.echo(f"With children-view-type: {children_view_type}")
        return

    with fatal_errors():
        client = get_client(ctx)
        click.echo(
            f"Creating {len(pending)} pages in Roam Research graph: "
            f"{client.config.graph_name}"
        )
        if children_view_type:
            click.echo(f"Children view type: {children_view_type}")
        click.echo("")

        if batch:
            client.batch(
                [create_page_action(t, children_view_type) for t in pending]
            )
            _print_list(f"Created {len(pending)} pages in one batch:", pending)
            return

        report = create_pages(
            client, pending, children_view_type, on_progress=_show_progress
        )

    _print_creation_summary(report)
    if report.failed:
        ctx.exit(1)


def _print_write_summary(report: BlockWriteReport) -> None:
    click.echo("\n")
    click.echo("Summary:")
    click.echo(f"  ✓ Written: {len(report.written)}")
    click.echo(f"  ✗ Failed: {len(report.failed)}")
    click.echo("")

    if report.written:
        _print_list("Written blocks:", (preview(w, 80) for w in report.written))
    if report.failed:
        _print_list(
            "Failed blocks:",
            (f"{preview(f.item, 60)}: {f.error}" for f in report.failed),
        )


@main.command("write")
@click.option("-p", "--page", help="Target page title.")
@click.option("-t", "--today", is_flag=True, help="Write to today's daily page.")
@click.option("-c", "--content", help="Content to write as a new block.")
@click.option(
    "--stdin", "use_stdin", is_flag=True, help="Read blocks from stdin, one per line."
)
@click.option("--dry-run", is_flag=True, help="Preview without making API calls.")
@click.pass_context
def write_command(
    ctx: click.Context,
    page: str | None,
    today: bool,
    content: str | None,
    use_stdin: bool,
    dry_run: bool,
) -> None:
    """Append blocks to a page, creating the page if needed."""
    if not page and not today:
        raise click.UsageError("Must specify either --page <title> or --today")
    if page and today:
        raise click.UsageError("Cannot use both --page and --today")

    title = page or daily_page_title(date.today())

    if use_stdin:
        lines = read_lines(click.get_text_stream("stdin"))
    elif content:
        lines = [content]
    else:
        lines = []

    if not lines:
        raise click.UsageError(
            "No content provided. Use --content <text> or --stdin."
        )

    if dry_run:
        click.echo("Dry run mode - no changes will be made")
        click.echo(f'Target page: "{title}"')
        _print_list(f"Content blocks to write ({len(lines)}):", lines)
        return

    with fatal_errors():
        client = get_client(ctx)
        click.echo(f"Writing to Roam Research graph: {client.config.graph_name}")
        click.echo(f'Target page: "{title}"')
        click.echo("")

        page_uid = ensure_page_uid(client, title)
        click.echo(f"  Page UID: {page_uid}")

        report = write_blocks(client, page_uid, lines, on_progress=_show_progress)

    _print_write_summary(report)
    if report.failed:
        ctx.exit(1)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _require_page_uid(ctx: click.Context, client: RoamClient, title: str) -> str:
    uid = find_page_uid(client, title)
    if not uid:
        click.echo(f'Error: Page "{title}" not found.', err=True)
        ctx.exit(1)
    return uid


def _read_page(
    ctx: click.Context,
    client: RoamClient,
    title: str,
    as_json: bool,
    max_depth: int,
) -> None:
    uid = _require_page_uid(ctx, client, title)
    blocks = build_tree(functools.partial(fetch_children, client), uid, max_depth)

    if as_json:
        _echo_json({"title": title, "uid": uid, "blocks": tree_to_json(blocks)})
        return

    click.echo(f'Page: "{title}" (uid: {uid})')
    if not blocks:
        click.echo("  (empty page)")
    else:
        click.echo(format_tree(blocks))


def _read_references(
    ctx: click.Context, client: RoamClient, title: str, as_json: bool
) -> None:
    uid = _require_page_uid(ctx, client, title)
    references = find_references(client, title)
    by_page = group_references(references)

    if as_json:
        _echo_json(
            {
                "referenceTo": title,
                "uid": uid,
                "count": len(references),
                "references": [
                    {
                        "page": page,
                        "blocks": [{"string": r.string, "uid": r.uid} for r in refs],
                    }
                    for page, refs in by_page.items()
                ],
            }
        )
        return

    click.echo(f'References to "{title}" ({len(references)} found):')
    click.echo("")
    if not by_page:
        click.echo("  (no references found)")
        return

    for page in sorted(by_page):
        click.echo(f'From "{page}":')
        for ref in by_page[page]:
            click.echo(f"  - {preview(ref.string, 100)} (uid: {ref.uid})")
        click.echo("")


def _iso_utc(ms: int) -> str:
    moment = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _read_modified_today(client: RoamClient, as_json: bool) -> None:
    today = date.today()
    start_of_day = datetime.combine(today, time.min)
    edits = find_pages_modified_since(client, int(start_of_day.timestamp() * 1000))

    if as_json:
        _echo_json(
            {
                "date": today.isoformat(),
                "count": len(edits),
                "pages": [
                    {
                        "title": e.title,
                        "lastEdited": _iso_utc(e.last_edited)
                        if e.last_edited
                        else None,
                    }
                    for e in edits
                ],
            }
        )
        return

    click.echo(f"Pages modified today ({len(edits)} found):")
    if not edits:
        click.echo("  (none found)")
        return

    for i, edit in enumerate(edits, 1):
        suffix = ""
        if edit.last_edited:
            edited_at = datetime.fromtimestamp(edit.last_edited / 1000)
            suffix = f" (last edit: {edited_at:%H:%M:%S})"
        click.echo(f"  {i}. {edit.title}{suffix}")


@main.command("read")
@click.option("-p", "--page", help="Read the full block tree of a page.")
@click.option("-r", "--references", help="Find all blocks that reference a page.")
@click.option(
    "--modified-today", is_flag=True, help="List pages with blocks modified today."
)
@click.option("--json", "as_json", is_flag=True, help="Output results as JSON.")
@click.option(
    "--max-depth",
    type=click.IntRange(min=0),
    default=DEFAULT_MAX_DEPTH,
    show_default=True,
    help="Maximum block nesting to fetch with --page.",
)
@click.pass_context
def read_command(
    ctx: click.Context,
    page: str | None,
    references: str | None,
    modified_today: bool,
    as_json: bool,
    max_depth: int,
) -> None:
    """Read page trees, backlinks, or today's edits."""
    modes = [m for m in (page, references, modified_today) if m]
    if not modes:
        raise click.UsageError(
            "Must specify one of --page, --references, or --modified-today"
        )
    if len(modes) > 1:
        raise click.UsageError(
            "Cannot combine --page, --references, and --modified-today"
        )

    with fatal_errors():
        client = get_client(ctx)
        if page:
            _read_page(ctx, client, page, as_json, max_depth)
        elif references:
            _read_references(ctx, client, references, as_json)
        else:
            _read_modified_today(client, as_json)
