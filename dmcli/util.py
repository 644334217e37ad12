import os
from pathlib import Path
from typing import Optional


KB = 1024
MB = 1024 * KB
GB = 1024 * MB
TB = 1024 * GB

HOME_FOLDERS = {
    "downloads": "Downloads",
    "desktop": "Desktop",
    "documents": "Documents",
}


def format_size(n: int, with_tb: bool = False) -> str:
    """Human-readable size: 512B, 1.50KB, 2.00MB ..."""
    if with_tb and n >= TB:
        return f"{n / TB:.2f}TB"
    if n >= GB:
        return f"{n / GB:.2f}GB"
    if n >= MB:
        return f"{n / MB:.2f}MB"
    if n >= KB:
        return f"{n / KB:.2f}KB"
    return f"{n}B"


def is_truthy(value) -> bool:
    """Parse yes/no style flags passed as strings."""
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "y")


def current_working_dir(fallback: str = ".") -> str:
    try:
        return os.getcwd()
    except OSError:
        return fallback


def normalize_input_path(raw: Optional[str], fallback: str) -> str:
    """Clean a typed path: strip spaces and quotes, fall back when empty."""
    p = (raw or "").strip().strip("\"'")
    if not p:
        p = fallback
    if not p.strip():
        p = "."
    return os.path.normpath(p)


def expand_user_path(raw: Optional[str], fallback: str) -> str:
    """
    Like normalize_input_path, but also understands the common home folders
    ("downloads", "~/Desktop", ...) and a leading ~/.
    """
    p = (raw or "").strip()
    if not p:
        return normalize_input_path(fallback, fallback)
    key = p.replace("\\", "/").lower()
    if key.startswith("~/"):
        key = key[2:]
    if key in HOME_FOLDERS:
        return str(Path.home() / HOME_FOLDERS[key])
    if p.startswith("~/") or p.startswith("~\\"):
        p = str(Path.home() / p[2:])
    return normalize_input_path(p, fallback)


def validate_existing_dir(path: str, label: str = "base path") -> Optional[str]:
    """Return an error message if path is not an existing directory."""
    if not os.path.exists(path):
        return f"{label} not found: {path}"
    if not os.path.isdir(path):
        return f"{label} is not a directory: {path}"
    return None


def parse_selection_index(raw: str, count: int) -> Optional[int]:
    """1-based menu selection → 0-based index, or None."""
    try:
        n = int(raw.strip())
    except (ValueError, AttributeError):
        return None
    if 1 <= n <= count:
        return n - 1
    return None


def letter_label(i: int) -> str:
    return chr(ord("a") + i) if i < 26 else "?"


def parse_menu_choice(choice: str, count: int) -> Optional[int]:
    """Accept a 1-based number or a letter label (a = first)."""
    v = (choice or "").strip().lower()
    if not v:
        return None
    if v.isdigit():
        return parse_selection_index(v, count)
    if len(v) == 1 and "a" <= v <= "z":
        idx = ord(v) - ord("a")
        if idx < count:
            return idx
    return None


def truncate(text: str, limit: int) -> str:
    txt = (text or "").strip()
    if limit <= 0 or len(txt) <= limit:
        return txt
    if limit <= 3:
        return txt[:limit]
    return txt[:limit - 3] + "..."


def page(items: list, offset: int, limit: int):
    """
    Slice one page out of items.

    Returns (shown, start, end, total) where start/end are 1-based for display.
    An offset past the end gives an empty page.
    """
    total = len(items)
    offset = max(offset, 0)
    if offset >= total:
        return [], 0, 0, total
    shown = items[offset:offset + limit] if limit > 0 else items[offset:]
    return shown, offset + 1, offset + len(shown), total


def unique_non_empty(items) -> list:
    out = []
    for raw in items:
        v = (raw or "").strip()
        if v and v not in out:
            out.append(v)
    return out
