"""Custom shell completion for jump, project and pack names."""

import os
from pathlib import Path

import click
from click.shell_completion import CompletionItem

DEFAULT_BASE_DIR = "~/.dm"


def base_dir_from_context(ctx) -> Path:
    """
    The --base-dir in effect while completing.

    Group callbacks do not run during completion, so read the parsed
    parameter, then DM_HOME, then the default.
    """
    root = ctx.find_root() if ctx is not None else None
    raw = root.params.get("base_dir") if root is not None else None
    raw = raw or os.environ.get("DM_HOME") or DEFAULT_BASE_DIR
    return Path(raw).expanduser()


def _load_config(ctx):
    from dmcli import config, store

    base_dir = base_dir_from_context(ctx)
    pack = store.get_active_pack(base_dir)
    return config.load(base_dir / config.CONFIG_FILENAME, pack=pack, base_dir=base_dir)


def get_target_completions(ctx, param, incomplete, kinds=("jump", "project")):
    """
    Complete configured names.

    - jumps help with their path
    - projects help with their action list
    """
    try:
        cfg = _load_config(ctx)
    except Exception:
        return []

    completions = []
    if "jump" in kinds:
        for name in sorted(cfg.jump):
            if name.startswith(incomplete):
                completions.append(CompletionItem(name, help=cfg.jump[name]))
    if "run" in kinds:
        for name in sorted(cfg.run):
            if name.startswith(incomplete):
                completions.append(CompletionItem(name, help=cfg.run[name]))
    if "project" in kinds:
        for name in sorted(cfg.projects):
            if name.startswith(incomplete):
                actions = ", ".join(sorted(cfg.projects[name].commands)) or "no actions"
                completions.append(CompletionItem(name, help=actions))
    return completions


def get_pack_completions(ctx, param, incomplete):
    from dmcli import store

    try:
        names = store.list_packs(base_dir_from_context(ctx))
    except OSError:
        return []
    return [CompletionItem(n) for n in names if n.startswith(incomplete)]


class TargetType(click.ParamType):
    """Click parameter type completing jump and project names."""
    name = "target"

    def __init__(self, kinds=("jump", "project")):
        self.kinds = kinds

    def shell_complete(self, ctx, param, incomplete):
        return get_target_completions(ctx, param, incomplete, self.kinds)

    def convert(self, value, param, ctx):
        return value


class PackNameType(click.ParamType):
    """Click parameter type completing pack names."""
    name = "pack"

    def shell_complete(self, ctx, param, incomplete):
        return get_pack_completions(ctx, param, incomplete)

    def convert(self, value, param, ctx):
        return value


TARGET = TargetType()
PROJECT = TargetType(kinds=("project",))
RUN_ALIAS = TargetType(kinds=("run",))
PACK = PackNameType()
