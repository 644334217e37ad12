"""Interactive menus: the target menu of ``dm <name>`` and the plugin browser."""

import logging

import click

from dmcli import opener, plugins, runner, ui
from dmcli.exceptions import DMError
from dmcli.util import letter_label, parse_menu_choice, parse_selection_index, truncate

logger = logging.getLogger(__name__)


def _read_choice(label):
    return click.prompt(ui.prompt_text(label), default="", show_default=False,
                        prompt_suffix=" ").strip()


def _launched(ok, what):
    if not ok:
        click.echo(ui.error(f"Could not open {what}."))
        return 1
    return 0


def show_menu(cfg, name, target_path, base_dir):
    """
    Offer what to do with target_path. Returns an exit code.

    \b
    1/p/Enter  print the path (for: cd $(dm <name>))
    2/o        open the file browser
    3/v        open VS Code
    4/t        open a terminal
    5/a        project actions (projects with commands only)
    0/x        exit
    """
    project = cfg.projects.get(name)
    actions = sorted(project.commands) if project is not None else []

    ui.section("Target")
    ui.kv("Name", name)
    ui.kv("Path", target_path)

    ui.section("Actions")
    ui.menu_line("1", "[p] Print path (for: cd $(dm ...))", is_default=True)
    ui.menu_line("2", "[o] Open Explorer/Finder")
    ui.menu_line("3", "[v] Open VS Code (code .)")
    ui.menu_line("4", "[t] Open new terminal here")
    if actions:
        ui.menu_line("5", "[a] Project actions...")
    ui.menu_line("0", "[x] Exit")
    click.echo()

    choice = _read_choice("Select option >").lower()

    if choice in ("", "1", "p"):
        click.echo(str(target_path).replace("\\", "/"))
        return 0
    if choice in ("2", "o"):
        return _launched(opener.open_file_browser(target_path), "file browser")
    if choice in ("3", "v"):
        return _launched(opener.open_vscode(target_path), "VS Code")
    if choice in ("4", "t"):
        return _launched(opener.open_terminal(target_path), "terminal")
    if choice in ("5", "a"):
        if not actions:
            click.echo(ui.warn("No actions defined for this project."))
            return 0
        ui.section("Project Actions")
        for i, action in enumerate(actions, 1):
            ui.menu_line(str(i), action)
        click.echo()
        idx = parse_selection_index(_read_choice("Select action >"), len(actions))
        if idx is None:
            click.echo(ui.error("Invalid selection."))
            return 0
        return runner.run_project_command(cfg, name, actions[idx], base_dir)
    if choice in ("0", "x"):
        return 0

    click.echo(ui.error("Invalid selection."))
    return 0


def _wait_for_enter():
    click.prompt(ui.prompt_text("Press Enter to continue..."), default="",
                 show_default=False, prompt_suffix="")


def _run_plugin(base_dir, name, args=()):
    try:
        plugins.run(base_dir, name, args)
    except DMError as e:
        click.echo(f"{ui.error('Error:')} {e}")


def plugin_menu(base_dir) -> int:
    """Browse plugin function files, then the functions of the chosen file."""
    root = plugins.plugins_dir(base_dir).replace("\\", "/") + "/"
    while True:
        files = plugins.list_function_files(base_dir)
        if not files:
            click.echo("No plugin function files found.")
            return 0

        click.echo()
        click.echo(ui.accent("Plugin Files"))
        click.echo(ui.muted("------------"))
        for i, f in enumerate(files):
            rel = f.path.replace("\\", "/")
            if rel.startswith(root):
                rel = rel[len(root):]
            click.echo(f"{i + 1:2d}) [{ui.warn(letter_label(i))}] {ui.accent(rel)} "
                       f"{ui.muted(f'({len(f.functions)})')}")
        click.echo(" 0) " + ui.error("[x] Exit"))

        choice = _read_choice("Select file >")
        if choice.lower() in ("", "0", "x"):
            return 0
        idx = parse_menu_choice(choice, len(files))
        if idx is None:
            click.echo(ui.error("Invalid selection."))
            continue
        functions_menu(base_dir, files[idx])


def functions_menu(base_dir, function_file) -> int:
    names = function_file.functions
    infos = {}
    for name in names:
        try:
            infos[name] = plugins.get_info(base_dir, name)
        except DMError as e:
            logger.debug("no info for %s: %s", name, e)

    while True:
        click.echo()
        path = function_file.path.replace("\\", "/")
        click.echo(f"{ui.accent('Functions:')} {ui.accent(path)}")
        click.echo(ui.muted("----------------"))
        for i, name in enumerate(names):
            info = infos.get(name)
            line = f"{i + 1:2d}) [{ui.warn(letter_label(i))}] {ui.accent(name)}"
            if info is not None and info.parameters:
                line += " " + ui.warn("[args]")
            if info is not None and info.synopsis.strip():
                line += " " + ui.muted("- " + truncate(info.synopsis, 72))
            click.echo(line)
        click.echo(" 0) " + ui.error("[x] Exit"))
        click.echo(ui.muted(" h <n|letter>) Help"))

        choice = _read_choice("Select function >")
        lc = choice.lower()
        if lc in ("", "0", "x", "exit"):
            return 0

        if lc.startswith("h "):
            idx = parse_menu_choice(choice[2:], len(names))
            if idx is None:
                click.echo(ui.error("Invalid help selection."))
                continue
            try:
                ui.print_plugin_info(plugins.get_info(base_dir, names[idx]))
            except DMError as e:
                click.echo(f"{ui.error('Error:')} {e}")
            _wait_for_enter()
            continue

        idx = parse_menu_choice(choice, len(names))
        if idx is None:
            click.echo(ui.error("Invalid selection."))
            continue
        name = names[idx]
        info = infos.get(name)
        if info is None or not info.parameters:
            _run_plugin(base_dir, name)
            _wait_for_enter()
            continue

        click.echo(ui.accent("Parameters:"))
        for p in info.parameters:
            click.echo(f"- {p}")
        if info.examples:
            click.echo(ui.accent("Example:"))
            click.echo(f"- {info.examples[0]}")
            hint = plugins.args_hint_from_example(name, info.examples[0])
            if hint:
                click.echo(f"{ui.accent('Args hint:')} {hint}")
        try:
            args = plugins.split_args(_read_choice("Args (optional) >"))
        except ValueError as e:
            click.echo(f"{ui.error('Error:')} {e}")
            continue
        _run_plugin(base_dir, name, args)
        _wait_for_enter()
