"""
CLI interface for tag search.

Usage:
    tagsearch find -t work -t 2024
    tagsearch find -t work -t personal --any --name report
    tagsearch query 'tag = "work" AND (size >= 10MB OR type = "image")'
    tagsearch history
"""

import atexit
import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import TagSearch
from .errors import QueryError
from .evaluator import SortKey
from .logging_config import enable_debug_mode
from .predicate import to_dict, to_query_text
from .types import Combinator, Item, SearchCriteria, SearchHistoryEntry, format_timestamp


# Set TAGSEARCH_VERBOSE=1 to enable debug mode via environment
if os.environ.get("TAGSEARCH_VERBOSE") == "1":
    enable_debug_mode()


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"tagsearch {version('tagsearch')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="tagsearch",
    help="Search tagged files by tag selection or structured query.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="TAGSEARCH_STORE_PATH",
        help="Path to the store directory (default: ~/.tagsearch/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Search tagged files by tag selection or structured query."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

SortOption = Annotated[
    Optional[SortKey],
    typer.Option(
        "--sort",
        help="Sort key (default from store config)",
        case_sensitive=False,
    )
]

DescOption = Annotated[
    bool,
    typer.Option(
        "--desc",
        help="Sort descending",
    )
]


def _get_searcher() -> TagSearch:
    """Open the store, handling errors gracefully."""
    try:
        ts = TagSearch(_get_store_override())
    except Exception as e:
        typer.echo(f"Error: Failed to open store: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(ts.close)
    return ts


def _sort_args(sort: Optional[SortKey], desc: bool) -> tuple[Optional[str], Optional[str]]:
    return (sort.value if sort is not None else None), ("desc" if desc else None)


# -----------------------------------------------------------------------------
# Output Formatting
# -----------------------------------------------------------------------------

def _format_size(item: Item) -> str:
    if item.is_directory:
        return "<dir>"
    if item.size is None:
        return "-"
    return str(item.size)


def _format_items(items: list[Item]) -> str:
    """One line per item: id date size path."""
    if _get_json_output():
        return json.dumps([item.to_dict() for item in items], indent=2)
    if not items:
        return "No results."
    id_width = max(len(str(item.id)) for item in items)
    size_width = max(len(_format_size(item)) for item in items)
    lines = []
    for item in items:
        date = format_timestamp(item.modified_time) or "-"
        lines.append(
            f"{str(item.id).rjust(id_width)} {date.ljust(10)} "
            f"{_format_size(item).rjust(size_width)} {item.path}"
        )
    return "\n".join(lines)


def _describe_criteria(ts: TagSearch, criteria: SearchCriteria) -> str:
    """Criteria as query text; falls back to raw ids if a tag was removed."""
    tag_values = {tag.id: tag.value for tag in ts.list_tags()}
    try:
        predicate = criteria.to_predicate(tag_values)
    except ValueError:
        return f"tags {list(criteria.tag_ids)} ({criteria.mode.value})"
    return to_query_text(predicate) if predicate is not None else "(empty)"


def _format_history(ts: TagSearch, entries: list[SearchHistoryEntry]) -> str:
    if _get_json_output():
        return json.dumps([entry.to_dict() for entry in entries], indent=2)
    if not entries:
        return "No search history."
    id_width = max(len(str(entry.id)) for entry in entries)
    lines = []
    for entry in entries:
        if entry.criteria is not None:
            text = f"[find] {_describe_criteria(ts, entry.criteria)}"
        else:
            text = f"[query] {entry.query}"
        lines.append(f"{str(entry.id).rjust(id_width)} {format_timestamp(entry.last_used_at)} {text}")
    return "\n".join(lines)


def _report_query_error(text: str, error: QueryError) -> None:
    """Print the error with a caret under the offending position."""
    typer.echo(f"Error: {error}", err=True)
    typer.echo(f"  {text}", err=True)
    typer.echo("  " + " " * error.position + "^", err=True)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def find(
    tags: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Tag id or tag value (repeatable)",
    )] = None,
    any_tag: Annotated[bool, typer.Option(
        "--any",
        help="Match items with any selected tag (default: all)",
    )] = False,
    name: Annotated[Optional[str], typer.Option(
        "--name", "-n",
        help="Filename must contain this text",
    )] = None,
    sort: SortOption = None,
    desc: DescOption = False,
):
    """
    Find items by tag selection (checkbox mode).

    \b
    Examples:
        tagsearch find -t work -t 2024          # both tags
        tagsearch find -t work -t home --any    # either tag
        tagsearch find -n invoice               # filename only
    """
    ts = _get_searcher()
    try:
        tag_ids = ts.resolve_tag_ids(tags or [])
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    criteria = SearchCriteria(
        tag_ids=tuple(tag_ids),
        mode=Combinator.OR if any_tag else Combinator.AND,
        name_substring=name,
    )
    if criteria.is_empty:
        typer.echo("Error: Specify at least one --tag or --name", err=True)
        raise typer.Exit(1)

    sort_key, sort_order = _sort_args(sort, desc)
    items = ts.search(criteria, sort_key, sort_order)
    typer.echo(_format_items(items))


@app.command()
def query(
    text: Annotated[str, typer.Argument(help="Structured query")],
    sort: SortOption = None,
    desc: DescOption = False,
    explain: Annotated[bool, typer.Option(
        "--explain",
        help="Show how the query was understood instead of running it",
    )] = False,
):
    """
    Run a structured query.

    \b
    Fields and operators:
        tag = != IN      name ~ (glob)     type = != IN
        size > < >= <=  (B, KB, MB, GB)
        modified > < >= <=  ("YYYY-MM-DD" or unix seconds)

    \b
    Examples:
        tagsearch query 'tag = "work" AND NOT tag = "draft"'
        tagsearch query 'type IN ("image", "video") AND size >= 10MB'
        tagsearch query 'name ~ "*.pdf" OR modified > "2024-01-01"'
    """
    ts = _get_searcher()
    sort_key, sort_order = _sort_args(sort, desc)
    try:
        if explain:
            predicate = ts.parse(text)
            if _get_json_output():
                typer.echo(json.dumps(to_dict(predicate), indent=2))
            else:
                typer.echo(to_query_text(predicate))
            return
        items = ts.query(text, sort_key, sort_order)
    except QueryError as e:
        _report_query_error(text, e)
        raise typer.Exit(1)
    typer.echo(_format_items(items))


@app.command("tags")
def list_tags():
    """List tag groups and their tags."""
    ts = _get_searcher()
    groups = ts.list_tag_groups()
    tags = ts.list_tags()

    if _get_json_output():
        typer.echo(json.dumps([
            {
                "id": group.id,
                "name": group.name,
                "color": group.color,
                "tags": [
                    {"id": tag.id, "value": tag.value}
                    for tag in tags if tag.group_id == group.id
                ],
            }
            for group in groups
        ], indent=2))
        return

    if not groups:
        typer.echo("No tags.")
        return
    for group in groups:
        color = f" {group.color}" if group.color else ""
        typer.echo(f"{group.name}{color}")
        for tag in tags:
            if tag.group_id == group.id:
                typer.echo(f"  {tag.id}: {tag.value}")


@app.command()
def history(
    limit: Annotated[int, typer.Option(
        "--limit", "-n",
        help="Maximum entries to show",
    )] = 10,
):
    """Show recent searches, most recent first."""
    ts = _get_searcher()
    typer.echo(_format_history(ts, ts.list_history(limit)))


@app.command("history-delete")
def history_delete(
    entry_id: Annotated[int, typer.Argument(help="History entry id")],
):
    """Delete one history entry."""
    ts = _get_searcher()
    if not ts.delete_history(entry_id):
        typer.echo(f"Error: No history entry {entry_id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted history entry {entry_id}")


@app.command("history-clear")
def history_clear():
    """Delete all history entries."""
    ts = _get_searcher()
    count = ts.clear_history()
    typer.echo(f"Cleared {count} history entries")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="tagsearch CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
