import json
import logging
from pathlib import Path

import click
import yaml

from dmcli import (
    __version__,
    config,
    doctor,
    knowledge,
    menu,
    plugins,
    runner,
    store,
    tools,
    ui,
    validate,
)
from dmcli.completion import DEFAULT_BASE_DIR, PACK, PROJECT, RUN_ALIAS, get_target_completions
from dmcli.exceptions import DMError, NotFoundError
from dmcli.util import current_working_dir, unique_non_empty

logger = logging.getLogger(__name__)

GROUP_SHORTCUTS = {
    "-t": "tools",
    "--tools": "tools",
    "-p": "plugins",
    "--plugins": "plugins",
    "-k": "pack",
    "--packs": "pack",
}
VALUE_OPTIONS = ("--base-dir", "--profile", "--pack")


def rewrite_shortcuts(args):
    """
    Turn a group shortcut among the global options into its command.

        dm -k list          → dm pack list
        dm --pack git -t s  → dm --pack git tools s
    Only the global options are scanned, so plugin arguments pass untouched.
    """
    out = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in GROUP_SHORTCUTS:
            return out + [GROUP_SHORTCUTS[arg]] + list(args[i + 1:])
        out.append(arg)
        if arg in VALUE_OPTIONS and i + 1 < len(args):
            out.append(args[i + 1])
            i += 2
            continue
        if not arg.startswith("-"):
            return out + list(args[i + 1:])
        i += 1
    return out


class Runtime:
    """Resolved global options; the merged config is loaded on first use."""

    def __init__(self, base_dir, profile=None, pack=None, use_cache=True):
        self.base_dir = Path(base_dir)
        self.profile = profile
        self.pack = pack
        self.use_cache = use_cache
        self._config = None

    @property
    def config_path(self) -> Path:
        return self.base_dir / config.CONFIG_FILENAME

    @property
    def config(self):
        if self._config is None:
            self._config = config.load(self.config_path, profile=self.profile, pack=self.pack,
                                       use_cache=self.use_cache, base_dir=self.base_dir)
        return self._config


pass_runtime = click.make_pass_decorator(Runtime)


def _exit(code):
    if code:
        raise SystemExit(code)


class DMGroup(click.Group):
    """
    Top-level group.

    Rewrites the -t/-p/-k shortcuts, sends unknown command names to the
    target/plugin fallback and reports DMError as ``Error: ...``.
    """

    def parse_args(self, ctx, args):
        return super().parse_args(ctx, rewrite_shortcuts(args))

    def resolve_command(self, ctx, args):
        name = click.utils.make_str(args[0])
        if not name.startswith("-") and self.get_command(ctx, name) is None:
            return name, open_target, args
        return super().resolve_command(ctx, args)

    def shell_complete(self, ctx, incomplete):
        items = super().shell_complete(ctx, incomplete)
        items.extend(get_target_completions(ctx, None, incomplete))
        return items

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except DMError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1)
        except OSError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1)


class ToolsGroup(click.Group):
    """Accepts tool keys, indexes and aliases (``dm tools s``) as command names."""

    def resolve_command(self, ctx, args):
        canonical = tools.normalize_tool_name(args[0])
        if canonical and self.get_command(ctx, canonical) is not None:
            args = [canonical] + list(args[1:])
        return super().resolve_command(ctx, args)


@click.group(cls=DMGroup, invoke_without_command=True)
@click.option("--base-dir", envvar="DM_HOME", default=DEFAULT_BASE_DIR, show_default=True,
              type=click.Path(file_okay=False), help="Directory holding dm.json, packs/ and plugins/.")
@click.option("--profile", default=None, help="Profile from dm.json to apply.")
@click.option("--pack", default=None, type=PACK, help="Pack to load (defaults to the active pack).")
@click.option("--no-cache", is_flag=True, help="Ignore and do not write the config cache.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr.")
@click.version_option(__version__, prog_name="dm")
@click.pass_context
def cli(ctx, base_dir, profile, pack, no_cache, verbose):
    """dm: personal launcher for folders, commands, projects and packs.

    \b
    Examples:
        dm work              → menu for the 'work' jump or project
        dm api test          → run action 'test' of project 'api'
        dm run deploy        → run the 'deploy' alias
        dm -k use git        → make 'git' the active pack
        dm -t                → file tools menu
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    base_dir = Path(base_dir).expanduser()
    if not pack:
        pack = store.get_active_pack(base_dir)
        if pack:
            logger.debug("using active pack %s", pack)
    ctx.obj = Runtime(base_dir, profile=profile, pack=pack, use_cache=not no_cache)

    if ctx.invoked_subcommand is None:
        config_path = ctx.obj.config_path if ctx.obj.config_path.exists() else None
        ui.print_splash(base_dir, len(store.list_packs(base_dir)), pack,
                        config_path=config_path, version=__version__)


@click.command("target", hidden=True,
               context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("name")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@pass_runtime
def open_target(rt, name, args):
    """Project action, target menu, or plugin, in that order."""
    cfg = rt.config
    if name in cfg.projects and args:
        _exit(runner.run_project_command(cfg, name, args[0], rt.base_dir))
        return
    raw = cfg.target_path(name)
    if raw is None:
        plugins.run(rt.base_dir, name, args)
        return
    _exit(menu.show_menu(cfg, name, config.resolve_path(rt.base_dir, raw), rt.base_dir))


# --- configuration -----------------------------------------------------------


@cli.command("config")
@click.option("--yaml", "as_yaml", is_flag=True, help="Print the merged config as YAML.")
@click.option("--json", "as_json", is_flag=True, help="Print the merged config as JSON.")
@pass_runtime
def config_cmd(rt, as_yaml, as_json):
    """Show jumps, run aliases and projects of the merged config."""
    cfg = rt.config
    if as_yaml:
        click.echo(yaml.dump(cfg.to_dict(), default_flow_style=False, sort_keys=False), nl=False)
    elif as_json:
        click.echo(json.dumps(cfg.to_dict(), indent=2))
    else:
        ui.print_aliases(cfg)


cli.add_command(config_cmd, "aliases")


@cli.group("list")
def list_group():
    """List jumps, run aliases, projects or a project's actions."""
    pass


@list_group.command("jumps")
@pass_runtime
def list_jumps(rt):
    ui.print_map(rt.config.jump)


@list_group.command("runs")
@pass_runtime
def list_runs(rt):
    ui.print_map(rt.config.run)


@list_group.command("projects")
@pass_runtime
def list_projects(rt):
    ui.print_projects(rt.config.projects)


@list_group.command("actions")
@click.argument("project", type=PROJECT)
@pass_runtime
def list_actions(rt, project):
    p = rt.config.projects.get(project)
    if p is None:
        click.echo(f"Project not found: {project}", err=True)
        raise SystemExit(1)
    ui.print_map(p.commands)


@cli.group()
def add():
    """Add entries to the base dm.json.

    \b
    Examples:
        dm add jump docs ~/Documents
        dm add run up docker compose up -d
        dm add project api ~/src/api
        dm add action api test pytest -q
    """
    pass


@add.command("jump")
@click.argument("name")
@click.argument("path")
@pass_runtime
def add_jump(rt, name, path):
    def mutate(data):
        data["jump"][name] = path

    config.update_root_config(rt.base_dir, mutate)
    click.echo("OK: jump added")


@add.command("run", context_settings={"ignore_unknown_options": True})
@click.argument("name")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@pass_runtime
def add_run(rt, name, command):
    def mutate(data):
        data["run"][name] = " ".join(command)

    config.update_root_config(rt.base_dir, mutate)
    click.echo("OK: run added")


@add.command("project")
@click.argument("name")
@click.argument("path")
@pass_runtime
def add_project(rt, name, path):
    def mutate(data):
        entry = data["projects"].get(name)
        if not isinstance(entry, dict):
            entry = {}
        entry["path"] = path
        if not isinstance(entry.get("commands"), dict):
            entry["commands"] = {}
        data["projects"][name] = entry

    config.update_root_config(rt.base_dir, mutate)
    click.echo("OK: project added")


@add.command("action", context_settings={"ignore_unknown_options": True})
@click.argument("project", type=PROJECT)
@click.argument("name")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@pass_runtime
def add_action(rt, project, name, command):
    cfg = config.load(rt.config_path, use_cache=False, base_dir=rt.base_dir)
    p = cfg.projects.get(project)
    if p is None:
        click.echo("Project not found. Add the project first.", err=True)
        raise SystemExit(1)
    p.commands[name] = " ".join(command)

    def mutate(data):
        data["projects"][project] = p.to_dict()

    config.update_root_config(rt.base_dir, mutate)
    click.echo("OK: action added")


@cli.command("validate")
@pass_runtime
def validate_cmd(rt):
    """Check the merged config for empty or colliding entries."""
    issues = validate.validate(rt.config)
    if not issues:
        click.echo("OK: valid configuration")
        return
    for issue in issues:
        click.echo(str(issue))
    raise SystemExit(1)


# --- running -----------------------------------------------------------------


@cli.command("run")
@click.argument("alias", type=RUN_ALIAS)
@click.option("--cwd", default=None, type=click.Path(file_okay=False), help="Working directory.")
@pass_runtime
def run_cmd(rt, alias, cwd):
    """Run a configured run alias through the shell."""
    _exit(runner.run_alias(rt.config, alias, cwd))


@cli.command("find")
@click.argument("query", nargs=-1, required=True)
@pass_runtime
def find_cmd(rt, query):
    """Search the markdown notes of the knowledge folder.

    \b
    Examples:
        dm find rebase
        dm --pack git find "force push"
    """
    rel = rt.config.knowledge
    knowledge_dir = config.resolve_path(rt.base_dir, rel) if rel.strip() else ""
    knowledge.search_knowledge(knowledge_dir, " ".join(query).strip())


cli.add_command(find_cmd, "search")


# --- packs -------------------------------------------------------------------


@cli.group()
def pack():
    """Create, inspect and activate packs.

    \b
    A pack groups:
        - shortcuts (jump)
        - aliases (run)
        - projects/actions
        - knowledge path used by find
    """
    pass


@pack.command("new")
@click.argument("name")
@click.option("--description", default=None, help="Description for the pack.")
@pass_runtime
def pack_new(rt, name, description):
    """Create packs/<name>/ with pack.json and knowledge/."""
    store.create_pack(rt.base_dir, name, description)
    click.echo("OK: pack created")


@pack.command("clone")
@click.argument("src", type=PACK)
@click.argument("dst")
@pass_runtime
def pack_clone(rt, src, dst):
    """Copy a pack as a template for a new one."""
    store.clone_pack(rt.base_dir, src, dst)
    click.echo(f"OK: pack cloned {src} -> {dst}")


@pack.command("list")
@click.option("-v", "--verbose", is_flag=True, help="Show pack metadata.")
@pass_runtime
def pack_list(rt, verbose):
    """List packs that contain packs/<name>/pack.json."""
    names = store.list_packs(rt.base_dir)
    if not names:
        click.echo(ui.warn("No packs found."))
        return
    active = store.get_active_pack(rt.base_dir)
    if not verbose:
        for name in names:
            click.echo(f"{name} {ui.ok('(active)')}" if name == active else name)
        return

    ui.section("Packs")
    click.echo(f"{'Name':<18} {'Summary':<34} {'Owner':<12} Tags")
    for name in names:
        try:
            info = store.pack_info(rt.base_dir, name)
        except DMError as e:
            click.echo(f"{name:<18} {ui.error(f'error: {e}')}")
            continue
        summary = info.summary.strip() or info.description.strip()
        owner = info.owner.strip() or "-"
        tags = ",".join(info.tags) or "-"
        click.echo(f"{name:<18} {summary:<34} {owner:<12} {tags}")


@pack.command("edit")
@click.argument("name", type=PACK)
@click.option("--description", default=None, help="Set pack description.")
@click.option("--summary", default=None, help="Set one-line summary.")
@click.option("--owner", default=None, help="Set owner.")
@click.option("--tag", "tags", multiple=True, help="Add tag (repeatable).")
@click.option("--example", "examples", multiple=True, help="Add example command (repeatable).")
@click.option("--replace-tags", is_flag=True, help="Replace tags instead of appending.")
@click.option("--replace-examples", is_flag=True, help="Replace examples instead of appending.")
@pass_runtime
def pack_edit(rt, name, description, summary, owner, tags, examples, replace_tags, replace_examples):
    """Update pack metadata. Only the given options change.

    \b
    Examples:
        dm pack edit git --description "Git workflows"
        dm pack edit git --tag vcs --tag git
        dm pack edit git --example "dm --pack git find rebase" --replace-examples
    """
    if not store.pack_exists(rt.base_dir, name):
        raise NotFoundError("pack", name)
    path = store.pack_path(rt.base_dir, name)
    pf = store.load_pack_file(path)

    changed = False
    if description is not None:
        pf.description = description.strip()
        changed = True
    if summary is not None:
        pf.summary = summary.strip()
        changed = True
    if owner is not None:
        pf.owner = owner.strip()
        changed = True
    if tags or replace_tags:
        pf.tags = unique_non_empty(list(tags) if replace_tags else pf.tags + list(tags))
        changed = True
    if examples or replace_examples:
        pf.examples = unique_non_empty(list(examples) if replace_examples else pf.examples + list(examples))
        changed = True

    if not changed:
        click.echo("Error: no changes: use at least one metadata flag", err=True)
        raise SystemExit(1)
    store.save_pack_file(path, pf)
    click.echo("OK: pack metadata updated")


@pack.command("info")
@click.argument("name", type=PACK)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
@pass_runtime
def pack_info(rt, name, as_json):
    """Show pack metadata and entry counts."""
    info = store.pack_info(rt.base_dir, name)
    if as_json:
        click.echo(json.dumps(info.to_dict(), indent=2))
        return
    ui.section(f"Pack: {name}")
    ui.kv("Path", info.path)
    ui.kv("Description", info.description or "-")
    ui.kv("Summary", info.summary or "-")
    ui.kv("Owner", info.owner or "-")
    ui.kv("Tags", ", ".join(info.tags) or "-")
    ui.kv("Knowledge", info.knowledge or "-")
    ui.kv("Jumps", info.jumps)
    ui.kv("Runs", info.runs)
    ui.kv("Projects", info.projects)
    ui.kv("Actions", info.actions)
    if info.examples:
        click.echo("Examples:")
        for ex in info.examples:
            click.echo(f"  {ex}")


@pack.command("use")
@click.argument("name", type=PACK)
@pass_runtime
def pack_use(rt, name):
    """Set the pack used when --pack is not passed."""
    store.set_active_pack(rt.base_dir, name)
    click.echo(f"OK: active pack set to {name}")


@pack.command("current")
@pass_runtime
def pack_current(rt):
    """Print the active pack."""
    active = store.get_active_pack(rt.base_dir)
    click.echo(active if active else "No active pack.")


@pack.command("unset")
@pass_runtime
def pack_unset(rt):
    """Clear the active pack."""
    store.clear_active_pack(rt.base_dir)
    click.echo("OK: active pack cleared")


@pack.command("doctor")
@click.argument("name", type=PACK)
@click.option("--json", "as_json", is_flag=True, help="Output result as JSON.")
@pass_runtime
def pack_doctor(rt, name, as_json):
    """Check pack metadata completeness and its knowledge folder."""
    if not store.pack_exists(rt.base_dir, name):
        raise NotFoundError("pack", name)
    pf = store.load_pack_file(store.pack_path(rt.base_dir, name))
    rel = pf.knowledge.strip()
    abs_path = config.resolve_path(rt.base_dir, rel)
    issues = store.pack_doctor_issues(pf, rel, abs_path)

    if as_json:
        click.echo(json.dumps({
            "name": name,
            "ok": not issues,
            "issues": issues,
            "knowledge": rel,
            "knowledge_path": abs_path,
        }, indent=2))
        _exit(1 if issues else 0)
        return

    if not issues:
        click.echo(f"{ui.ok('OK:')} pack '{name}' looks good")
        return
    ui.section(f"Pack Doctor: {name}")
    click.echo(f"{ui.warn('WARN:')} {len(issues)} issue(s) found")
    for issue in issues:
        click.echo(f"- {issue}")
    raise SystemExit(1)


# --- plugins -----------------------------------------------------------------


@cli.group("plugins", invoke_without_command=True)
@click.pass_context
def plugins_group(ctx):
    """List, inspect and run plugins from <base-dir>/plugins/."""
    if ctx.invoked_subcommand is None:
        _exit(menu.plugin_menu(ctx.find_object(Runtime).base_dir))


@plugins_group.command("list")
@click.option("-f", "--functions", "include_functions", is_flag=True,
              help="Include PowerShell functions.")
@pass_runtime
def plugins_list(rt, include_functions):
    items = plugins.list_entries(rt.base_dir, include_functions=include_functions)
    if not items:
        click.echo("No plugins/functions found.")
        return
    for item in items:
        if include_functions:
            click.echo(f"{item.name:<24} {ui.muted(item.kind)}")
        else:
            click.echo(item.name)


@plugins_group.command("info")
@click.argument("name")
@pass_runtime
def plugins_info(rt, name):
    ui.print_plugin_info(plugins.get_info(rt.base_dir, name))


@plugins_group.command("run", context_settings={"ignore_unknown_options": True,
                                               "allow_interspersed_args": False})
@click.argument("name")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@pass_runtime
def plugins_run(rt, name, args):
    plugins.run(rt.base_dir, name, args)


@plugins_group.command("menu")
@pass_runtime
def plugins_menu(rt):
    """Browse plugin function files interactively."""
    _exit(menu.plugin_menu(rt.base_dir))


# --- tools -------------------------------------------------------------------


@cli.group("tools", cls=ToolsGroup, invoke_without_command=True)
@click.pass_context
def tools_group(ctx):
    """File utilities. Without a tool name, opens the tools menu.

    \b
    Tools (key, aliases):
        search  s        rename  r       note  n
        recent  e, rec   backup  b       clean c
        system  y, sys, htop
    """
    if ctx.invoked_subcommand is None:
        _exit(tools.run_menu(ctx.find_object(Runtime).base_dir))


@tools_group.command("search")
@click.option("--base", default=None, help="Folder to search (prompted when no option is given).")
@click.option("--name", default=None, help="Name contains.")
@click.option("--ext", default=None, help="Extension, with or without the dot.")
@click.option("--sort", default=None, type=click.Choice(["name", "date", "size"]), help="Sort order.")
@click.option("--limit", default=tools.DEFAULT_LIMIT, show_default=True, type=int, help="Results per page.")
@click.option("--offset", default=0, type=int, help="Results to skip.")
@click.option("--open", "open_result", default=None, help="Open result number N.")
def tools_search(base, name, ext, sort, limit, offset, open_result):
    """Search files by name and extension."""
    if any(v is not None for v in (base, name, ext, sort)):
        base = base or current_working_dir(".")
        name = name or ""
        ext = ext or ""
        sort = sort or "name"
    _exit(tools.run_search(base, name, ext, sort, limit, offset, open_result))


@tools_group.command("rename")
@click.option("--base", default=None, help="Folder holding the files.")
@click.option("--name", default=None, help="Only files whose name contains this.")
@click.option("--from", "replace_from", default=None, help="Text (or regex) to replace.")
@click.option("--to", "replace_to", default=None, help="Replacement; empty deletes.")
@click.option("--case-sensitive/--ignore-case", default=None, help="Case handling for --from.")
@click.option("--regex", "use_regex", is_flag=True, help="Treat --name and --from as regular expressions.")
@click.option("--no-recursive", is_flag=True, help="Only the top level of --base.")
@click.option("-y", "--yes", is_flag=True, help="Apply without asking.")
@click.option("-n", "--dry-run", is_flag=True, help="Preview only.")
def tools_rename(base, name, replace_from, replace_to, case_sensitive, use_regex, no_recursive,
                 yes, dry_run):
    """Batch rename files with a preview.

    \b
    Examples:
        dm tools rename --base . --from IMG_ --to photo- -n
        dm tools rename --base . --regex --from "(\\d+)" --to "n\\1" -y
    """
    if replace_from is not None:
        base = base or current_working_dir(".")
        name = name or ""
        replace_to = replace_to or ""
        case_sensitive = bool(case_sensitive)
    apply = False if dry_run else (True if yes else None)
    _exit(tools.run_rename(base, name, replace_from, replace_to, case_sensitive,
                           use_regex=use_regex, recursive=not no_recursive, apply=apply))


@tools_group.command("note")
@click.option("--pack", "pack_name", default=None, type=PACK, help="Pack (default: active pack).")
@click.argument("text", nargs=-1)
@pass_runtime
def tools_note(rt, pack_name, text):
    """Append a timestamped note to a pack's knowledge/inbox.md."""
    text = " ".join(text) if text else None
    if text is not None and pack_name is None:
        pack_name = rt.pack or ""
    _exit(tools.run_note(rt.base_dir, pack_name, text))


@tools_group.command("recent")
@click.option("--base", default=None, help="Folder to scan.")
@click.option("--limit", default=None, type=int, help="Files per page.")
@click.option("--offset", default=0, type=int, help="Files to skip.")
def tools_recent(base, limit, offset):
    """Show the most recently modified files."""
    if base is not None and limit is None:
        limit = tools.DEFAULT_LIMIT
    _exit(tools.run_recent(base, limit, offset))


@tools_group.command("backup")
@click.option("--pack", "pack_name", default=None, type=PACK, help="Pack to back up.")
@click.option("--source", default=None, type=click.Path(file_okay=False), help="Back up this folder instead.")
@click.option("--output", default=None, help="Output directory (default: <base-dir>/backups).")
@pass_runtime
def tools_backup(rt, pack_name, source, output):
    """Zip a pack or a folder into a timestamped archive."""
    if (pack_name or source) and output is None:
        output = str(rt.base_dir / "backups")
    _exit(tools.run_backup(rt.base_dir, pack_name, source, output))


@tools_group.command("clean")
@click.option("--base", default=None, help="Folder to clean.")
@click.option("--apply", is_flag=True, help="Delete without asking.")
@click.option("-n", "--dry-run", is_flag=True, help="Only list the empty folders.")
def tools_clean(base, apply, dry_run):
    """Delete empty folders, deepest first."""
    _exit(tools.run_clean(base, False if dry_run else (True if apply else None)))


@tools_group.command("system")
def tools_system():
    """Show a system and network snapshot."""
    _exit(tools.run_system())


# --- diagnostics -------------------------------------------------------------


@cli.command("doctor")
@click.option("--json", "as_json", is_flag=True, help="Output the report as JSON.")
@pass_runtime
def doctor_cmd(rt, as_json):
    """Check config, agent providers, plugins and common folders."""
    report = doctor.run_checks(rt.base_dir)
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        doctor.render_text(report)
    _exit(1 if report.failed else 0)


@cli.command("help")
@click.argument("name", required=False)
@click.pass_context
def help_cmd(ctx, name):
    """Show help for a command, or info for a plugin."""
    parent = ctx.parent
    if not name:
        click.echo(parent.get_help())
        return
    cmd = cli.get_command(parent, name)
    if cmd is not None:
        with click.Context(cmd, info_name=name, parent=parent) as sub:
            click.echo(cmd.get_help(sub))
        return
    ui.print_plugin_info(plugins.get_info(ctx.find_object(Runtime).base_dir, name))


if __name__ == "__main__":
    cli()
