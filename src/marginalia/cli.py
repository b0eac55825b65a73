"""CLI entry point for marginalia."""

import json
import os
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from marginalia.anchors import create_target
from marginalia.locking import LockTimeout
from marginalia.models import CommentStatus, ResolvedAnchor
from marginalia.navigation import find_navigation_target
from marginalia.settings import (
    DEFAULT_STORAGE_DIR,
    Settings,
    load_settings,
    save_settings,
    settings_path,
)
from marginalia.storage import CommentStore
from marginalia.threads import filter_panel_data, get_panel_data
from marginalia.utils.logging import get_logger, init_logger

SNIPPET_LENGTH = 60


def find_project_root(start_path: Path | None = None) -> Path:
    """Find the project root: the nearest directory holding .marginalia or .git.

    Raises:
        ValueError: If no such directory exists above start_path
    """
    current = (start_path or Path.cwd()).resolve()

    for parent in [current, *current.parents]:
        if (parent / DEFAULT_STORAGE_DIR).is_dir() or (parent / ".git").exists():
            return parent

    raise ValueError(
        f"No {DEFAULT_STORAGE_DIR} or .git directory found in {current} or any parent directory.\n"
        f"Create {DEFAULT_STORAGE_DIR}/ in your project root to start commenting."
    )


def to_note_path(path: Path, project_root: Path) -> str:
    """Convert a file path to the POSIX path stored in comment files.

    Raises:
        ValueError: If the path is outside the project root
    """
    resolved = path.resolve() if path.is_absolute() else (Path.cwd() / path).resolve()
    try:
        return resolved.relative_to(project_root.resolve()).as_posix()
    except ValueError:
        raise ValueError(
            f"Path is outside project root:\n  Path: {resolved}\n  Root: {project_root}"
        )


def read_document(path: Path) -> str:
    """Read a document as text.

    Raises:
        ValueError: If the file is binary or not UTF-8
    """
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Not a UTF-8 text file: {path}") from e


def _open_store() -> tuple[Path, Settings, CommentStore]:
    """Locate the project, load settings and open its comment store (exits on failure)."""
    try:
        project_root = find_project_root()
        settings = load_settings(settings_path(project_root))
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    store = CommentStore(project_root / settings.storage_dir)
    try:
        store.initialize()
    except OSError as e:
        click.echo(f"Error: Cannot open comment storage: {e}", err=True)
        sys.exit(2)

    return project_root, settings, store


def _note_path_or_exit(path: Path, project_root: Path) -> str:
    try:
        return to_note_path(path, project_root)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _threshold_or_exit(threshold: float | None, settings: Settings) -> float:
    if threshold is None:
        return settings.fuzzy_match_threshold
    if not 0.0 <= threshold <= 1.0:
        click.echo(f"Error: Threshold must be between 0 and 1, got {threshold}", err=True)
        sys.exit(1)
    return threshold


def _snippet(text: str) -> str:
    text = " ".join(text.split())
    return text if len(text) <= SNIPPET_LENGTH else text[: SNIPPET_LENGTH - 3] + "..."


def _format_status(status: CommentStatus) -> str:
    if os.environ.get("NO_COLOR"):
        return status.value
    return click.style(status.value, fg="green" if status == CommentStatus.ACTIVE else "red")


def _anchor_json(anchor: ResolvedAnchor | None) -> dict | None:
    if anchor is None:
        return None
    return {"start": anchor.start, "end": anchor.end, "line": anchor.line, "stage": anchor.stage}


@click.group()
@click.version_option(version="0.1.0", prog_name="marginalia")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug output on stderr")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors on stderr")
def cli(verbose: bool, quiet: bool):
    """Comments anchored to text spans that survive document edits."""
    init_logger(verbose=verbose, quiet=quiet)


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--match", "match_text", required=True, metavar="TEXT", help="Text to anchor to")
@click.option(
    "--occurrence",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Which occurrence of TEXT to anchor to",
)
@click.argument("body", required=True)
def add(file_path: Path, match_text: str, occurrence: int, body: str):
    """
    Add a comment anchored to a span of text.

    Examples:

        marginalia add notes/today.md --match "the quick fox" "Which fox?"

        marginalia add notes/today.md --match "TODO" --occurrence 2 "Still open"
    """
    project_root, _, store = _open_store()
    note_path = _note_path_or_exit(file_path, project_root)

    try:
        doc_text = read_document(file_path)
    except (OSError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    offsets = []
    idx = doc_text.find(match_text) if match_text else -1
    while idx != -1:
        offsets.append(idx)
        idx = doc_text.find(match_text, idx + 1)

    if not offsets:
        click.echo(f"Error: Text not found: '{match_text}'", err=True)
        sys.exit(1)
    if occurrence > len(offsets):
        click.echo(
            f"Error: Text appears {len(offsets)} time(s); cannot use occurrence {occurrence}",
            err=True,
        )
        sys.exit(1)

    try:
        target = create_target(doc_text, offsets[occurrence - 1], match_text)
        comment = store.add_comment(note_path, body, target)
    except LockTimeout as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(f"Error writing comments: {e}", err=True)
        sys.exit(2)

    click.echo(f"Created comment {comment.id}")
    click.echo(f"  File: {note_path}")
    click.echo(f"  Line: {(target.line_hint or 0) + 1}")


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("body", required=True)
def note(file_path: Path, body: str):
    """Add a comment about the whole document."""
    project_root, _, store = _open_store()
    note_path = _note_path_or_exit(file_path, project_root)

    try:
        comment = store.add_note_comment(note_path, body)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except (OSError, LockTimeout) as e:
        click.echo(f"Error writing comments: {e}", err=True)
        sys.exit(2)

    click.echo(f"Created note {comment.id}")


@cli.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.argument("comment_id", required=True)
@click.argument("body", required=True)
def reply(file_path: Path, comment_id: str, body: str):
    """Reply to an anchored comment."""
    project_root, _, store = _open_store()
    note_path = _note_path_or_exit(file_path, project_root)

    try:
        created = store.add_reply(note_path, comment_id, body)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except (OSError, LockTimeout) as e:
        click.echo(f"Error writing comments: {e}", err=True)
        sys.exit(2)

    if created is None:
        click.echo(f"Error: No anchored comment {comment_id} in {note_path}", err=True)
        sys.exit(1)
    click.echo(f"Added reply {created.id} to {comment_id}")


@cli.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.argument("comment_id", required=True)
@click.argument("body", required=True)
def edit(file_path: Path, comment_id: str, body: str):
    """Replace the body of a comment."""
    project_root, _, store = _open_store()
    note_path = _note_path_or_exit(file_path, project_root)

    try:
        updated = store.update_comment(note_path, comment_id, body)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except (OSError, LockTimeout) as e:
        click.echo(f"Error writing comments: {e}", err=True)
        sys.exit(2)

    if updated is None:
        click.echo(f"Error: Comment not found: {comment_id}", err=True)
        sys.exit(1)
    click.echo(f"Updated comment {comment_id}")


@cli.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.argument("comment_id", required=True)
def toggle(file_path: Path, comment_id: str):
    """Toggle a comment between open and resolved."""
    project_root, _, store = _open_store()
    note_path = _note_path_or_exit(file_path, project_root)

    try:
        updated = store.toggle_resolution(note_path, comment_id)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except (OSError, LockTimeout) as e:
        click.echo(f"Error writing comments: {e}", err=True)
        sys.exit(2)

    if updated is None:
        click.echo(f"Error: No root comment {comment_id} in {note_path}", err=True)
        sys.exit(1)
    click.echo(f"Comment {comment_id} is now {updated.resolution.value}")


@cli.command()
@click.argument("file_path", type=click.Path(path_type=Path))
@click.argument("comment_id", required=True)
@click.option("--force", is_flag=True, help="Skip confirmation prompt")
def delete(file_path: Path, comment_id: str, force: bool):
    """Delete a comment (replies of an anchored comment go with it)."""
    project_root, _, store = _open_store()
    note_path = _note_path_or_exit(file_path, project_root)

    if not force and not click.confirm(f"Delete comment {comment_id}?"):
        click.echo("Aborted.")
        return

    try:
        deleted = store.delete_comment(note_path, comment_id)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except (OSError, LockTimeout) as e:
        click.echo(f"Error writing comments: {e}", err=True)
        sys.exit(2)

    if not deleted:
        click.echo(f"Error: Comment not found: {comment_id}", err=True)
        sys.exit(1)
    click.echo(f"Deleted comment {comment_id}")


def _reconcile_document(file_path: Path, threshold: float | None):
    """Shared front half of list/reconcile/navigate: resolve every anchor of a document."""
    project_root, settings, store = _open_store()
    note_path = _note_path_or_exit(file_path, project_root)
    threshold = _threshold_or_exit(threshold, settings)

    try:
        doc_text = read_document(file_path)
        report = store.resolve_anchors(note_path, doc_text, threshold)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except (OSError, LockTimeout) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    return note_path, settings, store, report


@cli.command(name="list")
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--filter",
    "thread_filter",
    type=click.Choice(["all", "open", "resolved", "active", "orphaned"], case_sensitive=False),
    default="all",
    show_default=True,
    help="Which comments to show",
)
@click.option(
    "--sort",
    "sort_order",
    type=click.Choice(["position", "created"], case_sensitive=False),
    help="Thread order (defaults to the comment_sort_order setting)",
)
@click.option("--threshold", type=float, help="Fuzzy match threshold (0-1)")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def list_comments(
    file_path: Path,
    thread_filter: str,
    sort_order: str | None,
    threshold: float | None,
    json_output: bool,
):
    """
    Re-anchor and list the comments of a document.

    Examples:

        marginalia list notes/today.md

        marginalia list notes/today.md --filter orphaned --json
    """
    note_path, settings, store, report = _reconcile_document(file_path, threshold)
    panel = filter_panel_data(
        get_panel_data(store.get_comments(note_path)),
        thread_filter.lower(),
        (sort_order or settings.comment_sort_order).lower(),
        report.anchors,
    )

    if json_output:
        output = {
            "file": note_path,
            "notes": [
                {"id": n.id, "body": n.body, "resolution": n.resolution.value}
                for n in panel.note_comments
            ],
            "threads": [
                {
                    "id": t.root.id,
                    "body": t.root.body,
                    "exact": t.root.target.exact,
                    "status": t.root.status.value,
                    "resolution": t.root.resolution.value,
                    "anchor": _anchor_json(report.anchors.get(t.root.id)),
                    "replies": [{"id": r.id, "body": r.body} for r in t.replies],
                }
                for t in panel.threads
            ],
        }
        click.echo(json.dumps(output, indent=2))
        return

    if not panel.note_comments and not panel.threads:
        click.echo("No matching comments found.")
        return

    for n in panel.note_comments:
        click.echo(f"{n.id} [note] [{n.resolution.value}] {note_path}")
        click.echo(f"    {n.body}")

    for thread in panel.threads:
        root = thread.root
        anchor = report.anchors.get(root.id)
        location = f"{note_path}:{anchor.line + 1}" if anchor else note_path
        click.echo(
            f"{root.id} [{_format_status(root.status)}] [{root.resolution.value}] {location} "
            f'"{_snippet(root.target.exact)}" ({len(thread.replies)} replies)'
        )
        click.echo(f"    {root.body}")
        for r in thread.replies:
            click.echo(f"      > {r.body}")


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--threshold", type=float, help="Fuzzy match threshold (0-1)")
@click.option("--json", "json_output", is_flag=True, help="Output results as JSON")
def reconcile(file_path: Path, threshold: float | None, json_output: bool):
    """
    Re-anchor a document's comments and update their active/orphaned status.

    Examples:
        marginalia reconcile notes/today.md
        marginalia reconcile notes/today.md --threshold 0.2 --json
    """
    note_path, _, _, report = _reconcile_document(file_path, threshold)

    if json_output:
        click.echo(
            json.dumps(
                {
                    "file": note_path,
                    "total": report.total_anchored,
                    "active": report.active_count,
                    "orphaned": report.orphaned_count,
                    "restored": report.restored_count,
                    "newly_orphaned": report.newly_orphaned_count,
                    "changed": report.changed_count,
                    "anchors": {cid: _anchor_json(a) for cid, a in report.anchors.items()},
                },
                indent=2,
            )
        )
        return

    click.echo(f"Reconciled {note_path}:")
    click.echo(f"  Total anchored comments: {report.total_anchored}")
    click.echo(f"  Active: {report.active_count}")
    click.echo(f"  Orphaned: {report.orphaned_count}")
    if report.restored_count:
        click.echo(f"  Restored: {report.restored_count}")
    if report.newly_orphaned_count:
        click.echo(f"  Newly orphaned: {report.newly_orphaned_count}")


@cli.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--offset", type=click.IntRange(min=0), required=True, help="Cursor offset")
@click.option(
    "--direction",
    type=click.Choice(["next", "prev"], case_sensitive=False),
    default="next",
    show_default=True,
)
@click.option("--threshold", type=float, help="Fuzzy match threshold (0-1)")
def navigate(file_path: Path, offset: int, direction: str, threshold: float | None):
    """Print the next or previous comment location from a cursor offset."""
    _, _, _, report = _reconcile_document(file_path, threshold)

    target = find_navigation_target(report.anchors, offset, direction.lower())
    if target is None:
        click.echo("No anchored comments to navigate to.")
        return

    comment_id = next(cid for cid, a in report.anchors.items() if a == target)
    click.echo(f"{comment_id} line {target.line + 1} offset {target.start}-{target.end}")


@cli.command()
@click.argument("old_path", type=click.Path(path_type=Path))
@click.argument("new_path", type=click.Path(path_type=Path))
def rename(old_path: Path, new_path: Path):
    """Move a document's comments after the document was renamed."""
    project_root, _, store = _open_store()
    old_note = _note_path_or_exit(old_path, project_root)
    new_note = _note_path_or_exit(new_path, project_root)

    try:
        moved = store.handle_rename(old_note, new_note)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except (OSError, LockTimeout) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if not moved:
        click.echo(f"No comments recorded for {old_note}")
        return
    click.echo(f"Moved comments: {old_note} -> {new_note}")


@cli.command()
@click.argument("file_path", type=click.Path(path_type=Path))
def forget(file_path: Path):
    """Forget a deleted document (deletes its comments if orphan_handling is "delete")."""
    project_root, settings, store = _open_store()
    note_path = _note_path_or_exit(file_path, project_root)
    delete_file = settings.orphan_handling == "delete"

    try:
        forgotten = store.handle_delete(note_path, delete_file=delete_file)
    except OSError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if not forgotten:
        click.echo(f"No comments recorded for {note_path}")
        return

    if delete_file:
        click.echo(f"Deleted comments for {note_path}")
    else:
        click.echo(f"Forgot {note_path} (comment file kept)")
        get_logger().debug("orphan_handling=keep; comment file left in place", path=note_path)


@cli.command()
@click.argument("key", required=False)
@click.argument("value", required=False)
def config(key: str | None, value: str | None):
    """Show or change project settings.

    \b
    Without arguments every setting is listed; with KEY its value is
    printed; with KEY and VALUE the setting is validated and saved.
    """
    try:
        project_root = find_project_root()
        path = settings_path(project_root)
        settings = load_settings(path)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    current = settings.model_dump(mode="json")

    if key is None:
        for name, setting in current.items():
            click.echo(f"{name} = {setting}")
        return

    if key not in current:
        click.echo(f"Error: Unknown setting: {key}", err=True)
        click.echo(f"Known settings: {', '.join(current)}", err=True)
        sys.exit(1)

    if value is None:
        click.echo(current[key])
        return

    try:
        updated = Settings.model_validate({**current, key: value})
    except ValidationError as e:
        click.echo(f"Error: Invalid value for {key}: {e.errors()[0]['msg']}", err=True)
        sys.exit(1)

    try:
        save_settings(path, updated)
    except OSError as e:
        click.echo(f"Error: Cannot write settings: {e}", err=True)
        sys.exit(2)

    get_logger().debug("Settings saved", path=str(path), key=key)
    click.echo(f"{key} = {updated.model_dump(mode='json')[key]}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
