"""Search the markdown notes of the knowledge folder."""

import logging
import os
import shutil
import subprocess

import click

logger = logging.getLogger(__name__)

RULE = "-" * 24


class Match:
    def __init__(self, path, line_no, text):
        self.path = path
        self.line_no = line_no
        self.text = text

    def __str__(self):
        return f"{os.path.basename(self.path)}:{self.line_no}: {self.text}"

    def __repr__(self):
        return f"Match({self.path!r}, {self.line_no}, {self.text!r})"


def try_ripgrep(knowledge_dir, query) -> bool:
    """Run rg over knowledge_dir. False when rg is missing or finds nothing."""
    if shutil.which("rg") is None:
        logger.debug("rg not on PATH, using built-in search")
        return False
    argv = ["rg", "--no-heading", "--line-number", "--smart-case", query, str(knowledge_dir)]
    try:
        result = subprocess.run(argv)
    except OSError as e:
        logger.debug("rg failed to start: %s", e)
        return False
    return result.returncode == 0


def walk_markdown(knowledge_dir, query) -> list[Match]:
    q = query.lower()
    matches = []
    for dirpath, dirnames, filenames in os.walk(knowledge_dir):
        dirnames.sort()
        for filename in sorted(filenames):
            if not filename.lower().endswith(".md"):
                continue
            path = os.path.join(dirpath, filename)
            try:
                with open(path, encoding="utf-8", errors="replace") as f:
                    lines = f.read().split("\n")
            except OSError as e:
                logger.debug("cannot read %s: %s", path, e)
                continue
            for i, line in enumerate(lines, 1):
                if q in line.lower():
                    matches.append(Match(path, i, line))
    return matches


def search_knowledge(knowledge_dir, query, use_ripgrep=True) -> list[Match]:
    """
    Print lines of the knowledge notes containing query.

    ripgrep is preferred when installed; otherwise every ``*.md`` file is
    scanned case-insensitively and the matches are returned.
    """
    if not query:
        click.echo("Usage: dm find <query>")
        return []
    if not knowledge_dir or not str(knowledge_dir).strip():
        click.echo("Knowledge path not configured.")
        return []

    click.echo(f"\nfind: {query}")
    click.echo(RULE)

    matches = []
    if not (use_ripgrep and try_ripgrep(knowledge_dir, query)):
        matches = walk_markdown(knowledge_dir, query)
        for m in matches:
            click.echo(str(m))

    click.echo(RULE)
    click.echo()
    return matches
