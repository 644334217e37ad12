"""Run configured shell commands: run aliases and project actions."""

import logging
import os
import subprocess
import sys

import click

from dmcli.config import resolve_path
from dmcli.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def shell_argv(command: str) -> list[str]:
    if sys.platform == "win32":
        return ["cmd", "/C", command]
    return ["sh", "-lc", command]


def exec_shell(command: str, work_dir=None) -> int:
    """Echo and run command through the platform shell. Returns the exit code."""
    click.echo(f"> {command}")
    cwd = work_dir or None
    if cwd and not os.path.isdir(cwd):
        raise NotFoundError("working directory", cwd)
    logger.debug("exec %r in %s", command, cwd or os.getcwd())
    result = subprocess.run(shell_argv(command), cwd=cwd)
    return result.returncode


def run_alias(cfg, name, work_dir=None) -> int:
    command = cfg.run.get(name)
    if command is None:
        raise NotFoundError("run alias", name)
    return exec_shell(command, work_dir)


def run_project_command(cfg, project, action, base_dir) -> int:
    p = cfg.projects.get(project)
    if p is None:
        raise NotFoundError("project", project)
    command = p.commands.get(action)
    if command is None:
        raise NotFoundError(f"action for project '{project}'", action)
    return exec_shell(command, resolve_path(base_dir, p.path))
