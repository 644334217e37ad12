"""
File utilities behind ``dm tools``.

Each tool is a ``run_*`` function whose options may be None; a missing
option is asked for interactively, so the same function serves the tools
menu (everything prompted) and the ``dm tools <name> --opt ...`` commands.
Tools raise DMError for bad input and return an exit code otherwise.
"""

import logging
import os
import sys
import zipfile
from datetime import datetime

import click

from dmcli import filesearch, opener, renamer, store, sysinfo, ui
from dmcli.exceptions import DMError, NotFoundError
from dmcli.util import (
    current_working_dir,
    expand_user_path,
    is_truthy,
    page,
    parse_menu_choice,
    parse_selection_index,
    validate_existing_dir,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
PATH_HINT = "Hint: use '.' for current dir or '..' for parent dir."


class Tool:
    def __init__(self, key, name, synopsis, aliases=(), risk="low", risk_note="read/inspect operation"):
        self.key = key
        self.name = name
        self.synopsis = synopsis
        self.aliases = tuple(aliases)
        self.risk = risk
        self.risk_note = risk_note

    def __repr__(self):
        return f"Tool({self.name!r})"


REGISTRY = [
    Tool("s", "search", "Search files by name/extension", ("s",)),
    Tool("r", "rename", "Batch rename files with preview", ("r",), "medium", "batch rename files"),
    Tool("n", "note", "Append a quick note to a pack inbox", ("n",), "medium", "appends to knowledge/inbox.md"),
    Tool("e", "recent", "Show recent files", ("rec",)),
    Tool("b", "backup", "Create a pack or folder zip backup", ("b",), "medium", "writes backup archive"),
    Tool("c", "clean", "Delete empty folders", ("c",), "low", "preview only"),
    Tool("y", "system", "Show system/network snapshot", ("sys", "htop")),
]


def normalize_tool_name(text):
    """Canonical tool name for a name, key, 1-based index or alias; None if unknown."""
    lc = (text or "").strip().lower()
    if not lc:
        return None
    for i, tool in enumerate(REGISTRY, 1):
        if lc in (tool.name, tool.key, str(i)) or lc in tool.aliases:
            return tool.name
    return None


def get_tool(name):
    canonical = normalize_tool_name(name)
    for tool in REGISTRY:
        if tool.name == canonical:
            return tool
    return None


def tool_risk(name, args=None):
    """Return (level, note) describing what running the tool may change."""
    tool = get_tool(name)
    if tool is None:
        return "low", "read/inspect operation"
    if tool.name == "clean" and is_truthy((args or {}).get("apply")):
        return "high", "delete empty directories"
    return tool.risk, tool.risk_note


def _ask(label, value, default=""):
    """Return value, or prompt for it when it is None."""
    if value is not None:
        return value
    return click.prompt(ui.prompt_text(label), default=default,
                        show_default=bool(default)).strip()


def _confirm(label, value=None):
    if value is not None:
        return value
    answer = click.prompt(ui.prompt_text(label), default="N", show_default=False)
    return answer.strip().lower() == "y"


def _interactive() -> bool:
    return sys.stdin.isatty()


def _base_dir_arg(raw, fallback=None):
    fallback = fallback or current_working_dir(".")
    path = expand_user_path(_ask("Base path", raw, fallback), fallback)
    problem = validate_existing_dir(path, "base path")
    if problem:
        raise DMError(f"{problem}\n{PATH_HINT}")
    return path


def _show_pages(items, render, noun, limit, offset):
    """Print items page by page. Further pages are offered on a terminal only."""
    while True:
        shown, start, end, total = page(items, offset, limit)
        if not shown:
            click.echo("No more files.")
            return
        click.echo(f"Showing {start}-{end} of {total} {noun}")
        for i, item in enumerate(shown, start):
            click.echo(render(i, item))
        remaining = total - end
        if remaining <= 0:
            return
        click.echo(ui.muted(f"... and {remaining} more"))
        if not _interactive() or not click.confirm(f"Show next {limit} {noun}?", default=True):
            return
        offset = end


def run_search(base=None, name=None, ext=None, sort=None, limit=DEFAULT_LIMIT, offset=0,
               open_result=None) -> int:
    base = _base_dir_arg(base)
    name = _ask("Name contains", name)
    ext = _ask("Extension (optional)", ext)
    sort = _ask("Sort (name|date|size)", sort, "name")

    results = filesearch.find(base, name, ext, sort)
    if not results:
        click.echo("No files found.")
        return 0

    def render(i, r):
        return f"{ui.warn(f'{i:2d})')} {filesearch.render_line(r)}"

    _show_pages(results, render, "results", limit, offset)

    if open_result is None and _interactive():
        open_result = _ask("Select result to open (number, Enter to skip)", None)
    if open_result:
        idx = parse_selection_index(str(open_result), len(results))
        if idx is None:
            raise DMError("Invalid selection.")
        opener.open_file(results[idx].path)
    return 0


def run_recent(base=None, limit=None, offset=0) -> int:
    base = _base_dir_arg(base)
    raw_limit = _ask("Limit", None if limit is None else str(limit), str(DEFAULT_LIMIT))
    try:
        limit = int(raw_limit)
    except ValueError:
        limit = 0
    if limit <= 0:
        raise DMError("invalid limit.")

    items = filesearch.recent(base)
    if not items:
        click.echo("No files found.")
        return 0
    _show_pages(items, lambda i, r: filesearch.render_line(r), "files", limit, offset)
    return 0


def run_rename(base=None, name=None, replace_from=None, replace_to=None,
               case_sensitive=None, use_regex=False, recursive=True, apply=None) -> int:
    base = _base_dir_arg(base)
    name = _ask("Name contains (optional)", name)
    replace_from = _ask("Replace from", replace_from)
    if not replace_from:
        raise DMError("replace-from is required.")
    replace_to = _ask("Replace to (empty = delete)", replace_to)
    if case_sensitive is None:
        case_sensitive = _confirm("Case sensitive for replace? (y/N)")

    plan = renamer.build_plan(base, name, replace_from, replace_to,
                              recursive=recursive, use_regex=use_regex,
                              case_sensitive=case_sensitive)
    if not plan:
        click.echo("No files to rename.")
        return 0

    click.echo("\nPreview:")
    for item in plan:
        click.echo(f"{item.old_path} -> {item.new_path}")
    renamer.check_plan(plan)

    if not _confirm("Proceed? [y/N]", apply):
        click.echo(ui.warn("Canceled."))
        return 0
    renamer.apply_plan(plan)
    click.echo("Done.")
    return 0


def find_empty_dirs(base) -> list[str]:
    """Directories below base that are empty right now, deepest first."""
    dirs = []
    for dirpath, dirnames, filenames in os.walk(base):
        if os.path.normpath(dirpath) == os.path.normpath(base):
            continue
        if not dirnames and not filenames:
            dirs.append(dirpath)
    dirs.sort(key=len, reverse=True)
    return dirs


def run_clean(base=None, apply=None) -> int:
    """
    Remove empty folders below base.

    apply=True deletes without asking, apply=False only previews, None asks.
    """
    base = _base_dir_arg(base)
    dirs = find_empty_dirs(base)
    if not dirs:
        click.echo("No empty folders found.")
        return 0

    click.echo("\nEmpty folders:")
    for d in dirs:
        click.echo(d)

    if not _confirm("Delete these folders? [y/N]", apply):
        click.echo(ui.warn("Canceled."))
        return 0
    for d in dirs:
        try:
            os.rmdir(d)
        except OSError as e:
            logger.warning("cannot remove %s: %s", d, e)
    click.echo("Done.")
    return 0


def zip_dir(src, zip_path):
    """Store every file under src in zip_path with its relative path."""
    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zf:
        for dirpath, dirnames, filenames in os.walk(src):
            dirnames.sort()
            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)
                if os.path.abspath(path) == os.path.abspath(zip_path):
                    continue
                rel = os.path.relpath(path, src).replace(os.sep, "/")
                zf.write(path, rel)


def backup_name(label, now=None, is_pack=True) -> str:
    now = now or datetime.now()
    prefix = "pack" if is_pack else "backup"
    return f"{prefix}-{label}-{now:%Y%m%d-%H%M}.zip"


def run_backup(base_dir, pack=None, source=None, output=None, now=None) -> int:
    """Zip a pack (default: the active one) or, with source, any folder."""
    if source:
        src = expand_user_path(source, ".")
        problem = validate_existing_dir(src, "source")
        if problem:
            raise DMError(problem)
        label = os.path.basename(os.path.abspath(src)) or "root"
        is_pack = False
    else:
        pack = _ask("Pack name", pack, store.get_active_pack(base_dir) or "")
        if not pack:
            raise DMError("pack name is required.")
        if not store.pack_exists(base_dir, pack):
            raise NotFoundError("pack", pack)
        src = str(store.pack_dir(base_dir, pack))
        label = pack
        is_pack = True

    out_dir = _ask("Output dir", output, os.path.join(str(base_dir), "backups"))
    if not out_dir:
        raise DMError("output dir is required.")
    out_dir = expand_user_path(out_dir, out_dir)
    os.makedirs(out_dir, exist_ok=True)

    out_path = os.path.join(out_dir, backup_name(label, now, is_pack))
    zip_dir(src, out_path)
    click.echo(f"Saved: {out_path}")
    return 0


def run_note(base_dir, pack=None, text=None) -> int:
    pack = _ask("Pack name", pack, store.get_active_pack(base_dir) or "")
    if not pack:
        raise DMError("pack name is required.")
    if not store.pack_exists(base_dir, pack):
        raise NotFoundError("pack", pack)
    text = _ask("Note", text)
    if not text.strip():
        raise DMError("note is empty.")
    path = store.append_note(base_dir, pack, text)
    click.echo(f"Saved: {path}")
    return 0


def run_system() -> int:
    sysinfo.render(sysinfo.collect())
    return 0


def run_by_name(base_dir, name) -> int:
    """Run a tool with every option prompted."""
    canonical = normalize_tool_name(name)
    if canonical == "search":
        return run_search()
    if canonical == "rename":
        return run_rename()
    if canonical == "note":
        return run_note(base_dir)
    if canonical == "recent":
        return run_recent()
    if canonical == "backup":
        return run_backup(base_dir)
    if canonical == "clean":
        return run_clean()
    if canonical == "system":
        return run_system()
    raise NotFoundError("tool", f"{name} (use: {'|'.join(t.name for t in REGISTRY)})")


def print_menu():
    ui.section("Tools")
    for i, tool in enumerate(REGISTRY, 1):
        click.echo(f"{i:2d}) [{ui.warn(tool.key)}] {ui.accent(tool.name)} {ui.muted('- ' + tool.synopsis)}")
    click.echo(" 0) " + ui.error("[x] Exit"))
    click.echo(ui.muted(" h <n|letter>) Help"))


def _menu_index(choice):
    """Menu choice by number, key letter or name."""
    v = choice.strip().lower()
    if v.isdigit():
        return parse_menu_choice(v, len(REGISTRY))
    for i, tool in enumerate(REGISTRY):
        if v in (tool.key, tool.name):
            return i
    return None


def _wait_for_enter():
    click.prompt(ui.prompt_text("Press Enter to continue..."), default="",
                 show_default=False, prompt_suffix="")


def run_menu(base_dir) -> int:
    while True:
        print_menu()
        choice = click.prompt(ui.prompt_text("Select tool >"), default="",
                              show_default=False, prompt_suffix=" ").strip()
        if choice.lower() in ("", "0", "x", "exit"):
            return 0

        if choice.lower().startswith("h "):
            idx = _menu_index(choice[2:])
            if idx is None:
                click.echo(ui.error("Invalid help selection."))
                continue
            tool = REGISTRY[idx]
            click.echo(f"{ui.accent('Tool:')} {tool.name}")
            click.echo(f"{ui.accent('Summary:')} {tool.synopsis}")
            if tool.aliases:
                click.echo(f"{ui.accent('Aliases:')} {', '.join(tool.aliases)}")
            _wait_for_enter()
            continue

        idx = _menu_index(choice)
        if idx is None:
            click.echo(ui.error("Invalid selection."))
            continue
        try:
            run_by_name(base_dir, REGISTRY[idx].name)
        except DMError as e:
            click.echo(f"{ui.error('Error:')} {e}")
        _wait_for_enter()
