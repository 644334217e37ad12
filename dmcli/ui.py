"""Terminal output helpers shared by the commands and menus."""

import os

import click


def supports_color() -> bool:
    if "NO_COLOR" in os.environ:
        return False
    return os.environ.get("TERM", "").strip().lower() != "dumb"


def _style(text, **kwargs):
    if not supports_color():
        return text
    return click.style(text, **kwargs)


def accent(text):
    return _style(text, fg="cyan")


def ok(text):
    return _style(text, fg="green")


def warn(text):
    return _style(text, fg="yellow")


def error(text):
    return _style(text, fg="red")


def muted(text):
    return _style(text, fg="bright_black")


def prompt_text(text):
    return _style(text, fg="bright_cyan")


def section(title):
    click.echo()
    click.echo(accent(f"== {title} =="))


def kv(label, value):
    label = label.strip() or "value"
    click.echo(f"{label + ':':<12} {value}")


def menu_line(key, label, is_default=False):
    k = warn(f"{key})")
    rendered = label
    if "[x] exit" in label.lower() or label.strip().lower() == "exit":
        rendered = error(label)
    if is_default:
        click.echo(f"  {k} {rendered} {muted('[Enter]')}")
    else:
        click.echo(f"  {k} {rendered}")


def print_map(m: dict):
    for key in sorted(m):
        click.echo(f"{key:<12} -> {m[key]}")


def print_projects(projects: dict):
    for name in sorted(projects):
        p = projects[name]
        click.echo(f"{name:<12} -> {p.path}")
        if p.commands:
            click.echo(f"  actions: {', '.join(sorted(p.commands))}")


def print_aliases(cfg):
    for title, printer, data in (
        ("JUMP", print_map, cfg.jump),
        ("RUN", print_map, cfg.run),
        ("PROJECTS", print_projects, cfg.projects),
    ):
        click.echo(f"\n{title}")
        click.echo("-" * 24)
        printer(data)
    click.echo()


def print_splash(base_dir, pack_count, active_pack, config_path=None, version=""):
    click.echo(accent("dm") + (f" {muted(version)}" if version else ""))
    click.echo("dm - personal launcher")
    click.echo()
    click.echo("Project Info")
    click.echo("------------")
    click.echo(f"Base dir   : {base_dir}")
    click.echo(f"Packs      : {pack_count}")
    click.echo(f"Active pack: {active_pack or 'none'}")
    if config_path:
        click.echo(f"Config     : {config_path}")
    else:
        click.echo("Config     : default (packs/*/pack.json)")
    click.echo()
    click.echo("Quick Start")
    click.echo("-----------")
    for line in ("dm help", "dm pack list", "dm pack use <name>", "dm tools"):
        click.echo(line)


def print_plugin_info(info):
    click.echo(f"Name      : {info.name}")
    click.echo(f"Kind      : {info.kind}")
    click.echo(f"Path      : {info.path}")
    click.echo(f"Runner    : {info.runner}")
    if len(info.sources) > 1:
        click.echo(f"Sources   : {', '.join(info.sources)}")
    if info.synopsis.strip():
        click.echo(f"Synopsis  : {info.synopsis}")
    if info.description.strip():
        click.echo(f"Description: {info.description}")
    for title, items in (("Parameters", info.parameters), ("Examples", info.examples)):
        if items:
            click.echo(f"{title}:")
            for item in items:
                click.echo(f"- {item}")
