"""
Batch rename planning.

A plan is computed first (old path → new path for every matching file) so
it can be previewed; apply_plan refuses to touch the disk when two files
would get the same name or a target already exists.
"""

import logging
import os
import re

from dmcli.exceptions import PlanError

logger = logging.getLogger(__name__)


class PlanItem:
    def __init__(self, old_path, new_path):
        self.old_path = old_path
        self.new_path = new_path

    def __eq__(self, other):
        if not isinstance(other, PlanItem):
            return NotImplemented
        return (self.old_path, self.new_path) == (other.old_path, other.new_path)

    def __hash__(self):
        return hash((self.old_path, self.new_path))

    def __repr__(self):
        return f"PlanItem({self.old_path!r} -> {self.new_path!r})"


def _iter_files(base, recursive):
    if not recursive:
        try:
            entries = sorted(os.scandir(base), key=lambda e: e.name)
        except OSError as e:
            logger.debug("cannot list %s: %s", base, e)
            return
        for entry in entries:
            if entry.is_file():
                yield base, entry.name
        return
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames.sort()
        for filename in sorted(filenames):
            yield dirpath, filename


def _compile(pattern, flags, label):
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise PlanError(f"invalid {label} regex: {e}") from e


def _check_template(pattern, template):
    """Reject bad escapes and group references before any file is visited."""
    try:
        pattern.sub(template, "")
    except re.error as e:
        raise PlanError(f"invalid replacement: {e}") from e


def build_plan(base=".", name_part="", replace_from="", replace_to="",
               recursive=True, use_regex=False, case_sensitive=False) -> list[PlanItem]:
    """
    Plan renames of files under base.

    In regex mode name_part and replace_from are regular expressions and
    replace_to may use group references (\\1, \\g<name>). Otherwise both are
    literal; name_part is always matched case-insensitively.
    """
    base = base or "."
    name_part = (name_part or "").strip()
    if not replace_from:
        raise PlanError("replace-from is required")

    flags = 0 if case_sensitive else re.IGNORECASE
    if use_regex:
        name_re = _compile(name_part, re.IGNORECASE, "name") if name_part else None
        from_re = _compile(replace_from, flags, "replace")
        _check_template(from_re, replace_to or "")
    else:
        name_re = None
        from_re = re.compile(re.escape(replace_from), flags)
        # literal replacement text: no backslash processing
        replace_to = (replace_to or "").replace("\\", "\\\\")

    plan = []
    seen = set()
    for dirpath, name in _iter_files(base, recursive):
        if use_regex:
            if name_re is not None and not name_re.search(name):
                continue
        elif name_part and name_part.lower() not in name.lower():
            continue
        if not from_re.search(name):
            continue
        new_name = from_re.sub(replace_to or "", name)
        if new_name == name or not new_name:
            continue
        item = PlanItem(os.path.join(dirpath, name), os.path.join(dirpath, new_name))
        if item not in seen:
            seen.add(item)
            plan.append(item)
    return plan


def _same_file(a, b) -> bool:
    try:
        return os.path.samefile(a, b)
    except OSError:
        return False


def check_plan(plan: list[PlanItem]) -> None:
    """Raise PlanError if applying plan would clobber or collide."""
    targets = set()
    for item in plan:
        if item.new_path in targets:
            raise PlanError(f"duplicate target path: {item.new_path}")
        targets.add(item.new_path)
        if os.path.lexists(item.new_path) and not _same_file(item.old_path, item.new_path):
            raise PlanError(f"target already exists: {item.new_path}")


def apply_plan(plan: list[PlanItem]) -> None:
    check_plan(plan)
    for item in plan:
        logger.debug("rename %s -> %s", item.old_path, item.new_path)
        os.rename(item.old_path, item.new_path)
