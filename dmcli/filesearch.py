"""Find files below a directory by name fragment and extension."""

import logging
import os
from datetime import datetime

from dmcli.util import format_size

logger = logging.getLogger(__name__)

SORT_KEYS = ("name", "date", "size")


class Result:
    def __init__(self, path, size, mtime):
        self.path = path
        self.size = size
        self.mtime = mtime

    @property
    def modified(self) -> datetime:
        return datetime.fromtimestamp(self.mtime)

    def __repr__(self):
        return f"Result({self.path!r}, {self.size}, {self.mtime})"


def _on_walk_error(err):
    logger.debug("skipping %s: %s", err.filename, err.strerror)


def walk_files(base):
    """Yield Result for every readable file under base."""
    for dirpath, _dirnames, filenames in os.walk(base, onerror=_on_walk_error):
        for filename in filenames:
            path = os.path.join(dirpath, filename)
            try:
                st = os.stat(path)
            except OSError as e:
                logger.debug("cannot stat %s: %s", path, e)
                continue
            yield filename, Result(path, st.st_size, st.st_mtime)


def normalize_ext(ext: str) -> str:
    ext = (ext or "").strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def find(base=".", name_part="", ext="", sort_by="name") -> list[Result]:
    """
    Search files under base.

    name_part is a case-insensitive substring of the file name; ext is
    matched case-insensitively with or without its leading dot.
    """
    base = base or "."
    name_part = (name_part or "").strip().lower()
    ext = normalize_ext(ext)

    results = []
    for filename, result in walk_files(base):
        name = filename.lower()
        if name_part and name_part not in name:
            continue
        if ext and os.path.splitext(name)[1] != ext:
            continue
        results.append(result)

    sort_results(results, sort_by)
    return results


def sort_results(results: list, sort_by: str) -> None:
    key = (sort_by or "").strip().lower()
    if key == "date":
        results.sort(key=lambda r: r.mtime, reverse=True)
    elif key == "size":
        results.sort(key=lambda r: r.size, reverse=True)
    else:
        results.sort(key=lambda r: r.path.lower())


def render_line(result: Result) -> str:
    return f"{result.modified:%Y-%m-%d %H:%M} | {format_size(result.size)} | {result.path}"


def recent(base=".") -> list[Result]:
    """All files under base, most recently modified first."""
    items = [result for _, result in walk_files(base or ".")]
    items.sort(key=lambda r: r.mtime, reverse=True)
    return items
