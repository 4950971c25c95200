"""auditmark CLI — track what you have read and what you found.

Commands:
    auditmark init [NAME]                  create auditmark.toml + .audit/audit.db
    auditmark scope add|list|remove        include/exclude rules (first match wins)
    auditmark setting get|set              e.g. default_scope blacklist|whitelist
    auditmark review PATH START [END]      mark lines as read
    auditmark unreview PATH LINE           drop a review covering LINE
    auditmark note add PATH START [TEXT] [--end N]
    auditmark note show|list|delete|tagged
    auditmark next PATH LINE [COL]         position of the next/previous note
    auditmark thread new|switch|last|tree|show
    auditmark coverage PATH                coverage of one file
    auditmark signs PATH                   sign placements for an editor
    auditmark status                       project report
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click

from auditmark.config import DEFAULT_SCOPES, AuditConfig, init_config, load_config
from auditmark.errors import AmbiguousChoice, DatabaseUnavailable, NotReviewable
from auditmark.models import NoteType
from auditmark.report import coverage_band
from auditmark.scope import DEFAULT_SCOPE_KEY
from auditmark.session import AuditSession, open_session

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from auditmark.models import Note, Review

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> AuditConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _open() -> AuditSession:
    session = open_session(_load_cfg())
    try:
        session.require()
    except DatabaseUnavailable as exc:
        click.echo(f"{exc} — run `auditmark init` first", err=True)
    return session


def _abs(path: str) -> str:
    """User paths are relative to the cwd; the store wants them absolute."""
    return str(Path(path).resolve())


@contextlib.contextmanager
def _reported() -> Iterator[None]:
    """Turn precondition failures into a CLI error (nothing has been written)."""
    try:
        yield
    except (NotReviewable, AmbiguousChoice, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


def _choose(candidates: Sequence[Note] | Sequence[Review], choice: int | None, describe) -> int | None:
    """Ask which record to use when several share a line. Returns a 1-based choice."""
    if choice is not None or len(candidates) < 2:
        return choice
    for i, item in enumerate(candidates, 1):
        click.echo(f"  {i}. {describe(item)}")
    try:
        return click.prompt("Which one", type=int)
    except click.Abort:
        click.echo("Cancelled")
        raise SystemExit(1) from None


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="auditmark")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose: bool) -> None:
    """auditmark — personal code-audit tracker."""
    level = "DEBUG" if verbose else "WARNING"
    if not verbose:
        with contextlib.suppress(Exception):
            level = load_config().log.level
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format="%(levelname)s %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# auditmark init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
@click.option("--whitelist", is_flag=True, help="Track nothing unless a scope rule includes it")
def init(name: str | None, root: str, whitelist: bool) -> None:
    """Create auditmark.toml and the audit database in the current project."""
    root_path = Path(root).resolve()
    default_scope = "whitelist" if whitelist else "blacklist"
    try:
        config_path = init_config(root_path, name=name, default_scope=default_scope)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("auditmark.toml already exists — skipping")

    cfg = load_config(root_path)
    session = open_session(cfg, create=True)
    click.echo(f"Database  : {cfg.db_path}")
    click.echo(f"Default   : {session.scope.default_scope}")


# ---------------------------------------------------------------------------
# auditmark scope / setting
# ---------------------------------------------------------------------------


@cli.group()
def scope() -> None:
    """Include/exclude rules, checked in the order they were added."""


@scope.command("add")
@click.argument("path")
@click.option("--include/--exclude", default=False, show_default=True)
def scope_add(path: str, include: bool) -> None:
    session = _open()
    rule = session.scope.add_scope(path, include)
    if rule is not None:
        click.echo(f"{'include' if rule.include else 'exclude'} {rule.path}")


@scope.command("list")
def scope_list() -> None:
    session = _open()
    rules = session.scope.list_scopes()
    for i, rule in enumerate(rules, 1):
        click.echo(f"{i:>3}. {'+' if rule.include else '-'} {rule.path}")
    click.echo(f"default: {session.scope.default_scope}")


@scope.command("remove")
@click.argument("path")
def scope_remove(path: str) -> None:
    session = _open()
    n = session.scope.remove_scope(path)
    click.echo(f"Removed {n} rule(s)")


@cli.group()
def setting() -> None:
    """Read or change stored settings."""


@setting.command("get")
@click.argument("name", required=False)
def setting_get(name: str | None) -> None:
    session = _open()
    if name is None:
        for key, value in session.settings.all().items():
            click.echo(f"{key} = {value}")
        return
    click.echo(session.settings.get(name) or "")


@setting.command("set")
@click.argument("name")
@click.argument("value")
def setting_set(name: str, value: str) -> None:
    session = _open()
    if name == DEFAULT_SCOPE_KEY and value not in DEFAULT_SCOPES:
        raise click.BadParameter(f"must be one of {', '.join(DEFAULT_SCOPES)}", param_hint="VALUE")
    session.scope.set_setting(name, value)
    click.echo(f"{name} = {value}")


# ---------------------------------------------------------------------------
# auditmark review / unreview
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path")
@click.argument("start", type=int)
@click.argument("end", type=int, required=False)
def review(path: str, start: int, end: int | None) -> None:
    """Mark lines START..END of PATH as read."""
    session = _open()
    with _reported():
        rev = session.store.add_review(_abs(path), start, end or start)
    if rev is not None:
        cov = session.store.coverage(_abs(path))
        click.echo(f"Reviewed {start}-{end or start}  ({cov:.0%} covered)")


@cli.command()
@click.argument("path")
@click.argument("line", type=int)
@click.option("--choice", "-n", type=int, default=None, help="Which review when several cover LINE")
def unreview(path: str, line: int, choice: int | None) -> None:
    """Delete a review covering LINE."""
    session = _open()
    reviews = session.store.reviews_overlapping_line(_abs(path), line)
    if not reviews:
        click.echo("(no review on that line)")
        return
    choice = _choose(reviews, choice, lambda r: f"lines {r.line_start}-{r.line_end}  {r.created[:19]}")
    with _reported():
        target = session.store.pick(reviews, choice)
    session.store.delete_review(target.id)
    click.echo(f"Removed review {target.line_start}-{target.line_end}")


# ---------------------------------------------------------------------------
# auditmark note …
# ---------------------------------------------------------------------------


@cli.group()
def note() -> None:
    """Add, show and delete notes (NOTE / TODO / FINDING)."""


@note.command("add")
@click.argument("path")
@click.argument("start", type=int)
@click.argument("text", required=False)
@click.option("--end", "-e", type=int, default=None, help="Last line of the range (default: START)")
@click.option("--tag", default=None, help="Identifier to tag the note with")
@click.option("--col-start", type=int, default=0)
@click.option("--col-end", type=int, default=0)
@click.option("--thread", "thread_id", type=int, default=None, help="Thread id (default: current)")
@click.option("--no-review", is_flag=True, help="Don't mark the range as reviewed")
def note_add(
    path: str,
    start: int,
    end: int | None,
    text: str | None,
    tag: str | None,
    col_start: int,
    col_end: int,
    thread_id: int | None,
    no_review: bool,
) -> None:
    """Attach a note to START..END. Prompts for TEXT when not given."""
    session = _open()
    if not session.available:
        return
    with _reported():
        session.scope.check_reviewable(_abs(path))
    if text is None:
        try:
            text = click.prompt("Note", default="", show_default=False)
        except click.Abort:
            text = ""
    with _reported():
        created = session.store.add_note(
            _abs(path), start, end or start, text, session.ctx,
            tag=tag, col_start=col_start, col_end=col_end,
            thread_id=thread_id, mark_reviewed=not no_review,
        )
    if created is None:
        click.echo("Cancelled")
        return
    session.save()
    click.echo(f"{created.note_type.value} #{created.id} on {start}-{end or start}")


@note.command("show")
@click.argument("path")
@click.argument("line", type=int)
def note_show(path: str, line: int) -> None:
    """Notes overlapping LINE."""
    session = _open()
    notes = sorted(session.store.notes_overlapping_line(_abs(path), line), key=lambda n: (n.line_start, n.id))
    if not notes:
        click.echo("(no notes)")
        return
    for n in notes:
        click.echo(f"#{n.id} {n.format_line().strip()}")


@note.command("list")
@click.argument("path")
def note_list(path: str) -> None:
    """All notes of PATH with its coverage."""
    session = _open()
    text = session.store.format_notes(_abs(path))
    click.echo(text or "(file not tracked)")


@note.command("delete")
@click.argument("path")
@click.argument("line", type=int)
@click.option("--choice", "-n", type=int, default=None, help="Which note when several cover LINE")
def note_delete(path: str, line: int, choice: int | None) -> None:
    """Delete a note overlapping LINE."""
    session = _open()
    notes = sorted(session.store.notes_overlapping_line(_abs(path), line), key=lambda n: (n.line_start, n.id))
    if not notes:
        click.echo("(no notes)")
        return
    choice = _choose(notes, choice, lambda n: n.format_line().strip())
    with _reported():
        target = session.store.pick(notes, choice)
    session.store.delete_note(target.id)
    click.echo(f"Deleted #{target.id}")


@note.command("tagged")
@click.argument("tag")
def note_tagged(tag: str) -> None:
    """Notes carrying TAG across the project."""
    session = _open()
    paths = {f.id: f.path for f in session.store.list_files()}
    notes = session.store.notes_with_tag(tag)
    if not notes:
        click.echo("(no notes)")
        return
    for n in notes:
        click.echo(f"{paths.get(n.file_id, '?')}:{n.line_start}  {n.note_type.value}  {n.text}")


# ---------------------------------------------------------------------------
# auditmark next
# ---------------------------------------------------------------------------


@cli.command("next")
@click.argument("path")
@click.argument("line", type=int)
@click.argument("col", type=int, default=1)
@click.option("--back", "-b", is_flag=True, help="Search backwards")
@click.option(
    "--kind", "-k", "kinds", multiple=True,
    type=click.Choice([t.value for t in NoteType], case_sensitive=False),
    help="Only jump to these note types",
)
def next_cmd(path: str, line: int, col: int, back: bool, kinds: tuple[str, ...]) -> None:
    """Print LINE:COL of the next (or previous) note, wrapping around."""
    session = _open()
    wanted = {NoteType(k.upper()) for k in kinds} or None
    pos = session.navigator.next(_abs(path), line, col, forward=not back, kinds=wanted)
    if pos is None:
        click.echo("(no notes)")
        raise SystemExit(1)
    click.echo(f"{pos[0]}:{pos[1]}")


# ---------------------------------------------------------------------------
# auditmark thread …
# ---------------------------------------------------------------------------


@cli.group()
def thread() -> None:
    """Investigation threads."""


@thread.command("new")
@click.argument("name")
@click.option("--file", "path", default=None, help="Anchor the thread to a file")
@click.option("--line", type=int, default=0)
@click.option("--tag", default=None)
@click.option("--desc", default="")
@click.option("--parent", type=int, default=None, help="Parent thread id (default: current)")
def thread_new(name: str, path: str | None, line: int, tag: str | None, desc: str, parent: int | None) -> None:
    """Start a thread under the current one and switch to it."""
    session = _open()
    with _reported():
        node = session.tree.create_node(
            session.ctx, name,
            file=_abs(path) if path else None, line=line, tag=tag, desc=desc, parent=parent,
        )
    if node is None:
        return
    session.save()
    click.echo(f"#{node.id} {session.tree.path_label(node.id)}")


@thread.command("switch")
@click.argument("node_id", type=int)
def thread_switch(node_id: int) -> None:
    session = _open()
    with _reported():
        node = session.tree.switch_current(session.ctx, node_id)
    if node is None:
        return
    session.save()
    click.echo(f"Current: #{node.id} {session.tree.path_label(node.id)}")


@thread.command("last")
def thread_last() -> None:
    """Go back to the previously current thread."""
    session = _open()
    node = session.tree.switch_last(session.ctx)
    if node is None:
        click.echo("(no previous thread)")
        return
    session.save()
    click.echo(f"Current: #{node.id} {session.tree.path_label(node.id)}")


@thread.command("tree")
@click.option("--collapse", "-c", multiple=True, type=int, help="Fold these thread ids")
def thread_tree(collapse: tuple[int, ...]) -> None:
    session = _open()
    text = session.tree.render(session.ctx, collapsed=collapse)
    click.echo(text or "(no threads)")


@thread.command("show")
@click.argument("node_id", type=int, required=False)
def thread_show(node_id: int | None) -> None:
    """Notes collected under a thread (default: current)."""
    session = _open()
    node = session.tree.get(node_id) if node_id is not None else session.tree.active(session.ctx)
    if node is None:
        raise click.ClickException(f"no thread #{node_id}")
    click.echo(f"#{node.id} {session.tree.path_label(node.id) or node.name}")
    if node.desc:
        click.echo(f"  {node.desc}")
    paths = {f.id: f.path for f in session.store.list_files()}
    tags = session.store.tag_names()
    for n in session.store.notes_for_thread(node.id):
        label = f"  [{tags[n.tag_id]}]" if n.tag_id in tags else ""
        click.echo(f"  {paths.get(n.file_id, '?')}:{n.line_start}  {n.note_type.value}  {n.text}{label}")


# ---------------------------------------------------------------------------
# auditmark coverage / signs / status
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path")
def coverage(path: str) -> None:
    session = _open()
    file = session.store.get_file(_abs(path))
    if file is None:
        click.echo("(file not tracked)")
        return
    cov = session.store.coverage(_abs(path))
    click.echo(f"{file.path}: {cov:.1%} of {file.line_count} lines  [{coverage_band(cov, session.cfg.report)}]")


@cli.command()
@click.argument("path")
def signs(path: str) -> None:
    """Sign placements (id kind line) for an editor to draw."""
    session = _open()
    for s in session.store.sign_placements(_abs(path)):
        click.echo(f"{s.id}\t{s.kind}\t{s.line}\t{s.path}")


@cli.command()
def status() -> None:
    """Coverage and note counts for every tracked file, plus unopened files."""
    session = _open()
    result = session.report.project_status()
    text = session.report.format_status(result)
    click.echo(text or "(nothing tracked yet)")


if __name__ == "__main__":
    cli()
