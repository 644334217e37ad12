"""
Packs on disk.

A pack is a directory ``<base_dir>/packs/<name>/`` holding ``pack.json``
(jumps, run aliases, projects and metadata) and a ``knowledge/`` folder of
markdown notes. The active pack name lives in ``<base_dir>/.dm.active-pack``.
"""

import json
import logging
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional

from dmcli.exceptions import ConfigError, DMError, NotFoundError
from dmcli.models import PackFile

logger = logging.getLogger(__name__)

ACTIVE_PACK_FILENAME = ".dm.active-pack"
PACK_FILENAME = "pack.json"
INBOX_FILENAME = "inbox.md"

_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def validate_pack_name(name: str) -> str:
    name = (name or "").strip()
    if not name or name in (".", "..") or not _NAME_RE.match(name):
        raise DMError(f"invalid pack name: {name!r} (use letters, digits, '.', '_' or '-')")
    return name


def packs_dir(base_dir) -> Path:
    return Path(base_dir) / "packs"


def pack_dir(base_dir, name) -> Path:
    return packs_dir(base_dir) / name


def pack_path(base_dir, name) -> Path:
    return pack_dir(base_dir, name) / PACK_FILENAME


def knowledge_rel(name) -> str:
    return f"packs/{name}/knowledge"


def default_pack(name, description=None) -> PackFile:
    return PackFile(
        description=description or f"Pack {name}",
        summary=f"Commands and knowledge for {name}",
        examples=[
            f"dm --pack {name} find <query>",
            f"dm --pack {name} run <alias>",
        ],
        knowledge=knowledge_rel(name),
    )


def load_pack_file(path) -> PackFile:
    """Read a pack.json. A missing file gives an empty pack."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return PackFile(schema_version=0)
    except OSError as e:
        raise ConfigError(path, f"cannot read: {e.strerror or e}") from e
    try:
        data = json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as e:
        raise ConfigError(path, f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(path, "top level must be an object")
    return PackFile.from_dict(data)


def save_pack_file(path, pf: PackFile) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(pf.to_dict(), indent=2) + "\n", encoding="utf-8")


def pack_exists(base_dir, name) -> bool:
    return pack_path(base_dir, name).is_file()


def create_pack(base_dir, name, description=None) -> Path:
    name = validate_pack_name(name)
    if pack_exists(base_dir, name):
        raise DMError(f"pack already exists: {name}")
    (pack_dir(base_dir, name) / "knowledge").mkdir(parents=True, exist_ok=True)
    path = pack_path(base_dir, name)
    save_pack_file(path, default_pack(name, (description or "").strip() or None))
    logger.debug("created pack %s at %s", name, path)
    return path


def clone_pack(base_dir, src, dst) -> Path:
    """Copy packs/<src> to packs/<dst>, renaming default metadata."""
    src = validate_pack_name(src)
    dst = validate_pack_name(dst)
    if not pack_exists(base_dir, src):
        raise NotFoundError("pack", src)
    if pack_dir(base_dir, dst).exists():
        raise DMError(f"pack already exists: {dst}")
    shutil.copytree(pack_dir(base_dir, src), pack_dir(base_dir, dst))

    path = pack_path(base_dir, dst)
    pf = load_pack_file(path)
    old, new = default_pack(src), default_pack(dst)
    if pf.description == old.description:
        pf.description = new.description
    if pf.summary == old.summary:
        pf.summary = new.summary
    pf.examples = [
        new.examples[old.examples.index(ex)] if ex in old.examples else ex
        for ex in pf.examples
    ]
    if pf.knowledge.replace("\\", "/") == old.knowledge:
        pf.knowledge = new.knowledge
    save_pack_file(path, pf)
    return path


def list_packs(base_dir) -> list[str]:
    root = packs_dir(base_dir)
    if not root.is_dir():
        return []
    return sorted(p.name for p in root.iterdir() if (p / PACK_FILENAME).is_file())


class PackInfo:
    def __init__(self, name, path, pf: PackFile):
        self.name = name
        self.path = path
        self.description = pf.description
        self.summary = pf.summary
        self.owner = pf.owner
        self.tags = list(pf.tags)
        self.examples = list(pf.examples)
        self.knowledge = pf.knowledge
        self.jumps = len(pf.jump)
        self.runs = len(pf.run)
        self.projects = len(pf.projects)
        self.actions = pf.action_count

    def to_dict(self):
        return {
            "name": self.name,
            "path": str(self.path),
            "description": self.description,
            "summary": self.summary,
            "owner": self.owner,
            "tags": self.tags,
            "examples": self.examples,
            "knowledge": self.knowledge,
            "jumps": self.jumps,
            "runs": self.runs,
            "projects": self.projects,
            "actions": self.actions,
        }


def pack_info(base_dir, name) -> PackInfo:
    if not pack_exists(base_dir, name):
        raise NotFoundError("pack", name)
    path = pack_path(base_dir, name)
    return PackInfo(name, path, load_pack_file(path))


def active_pack_path(base_dir) -> Path:
    return Path(base_dir) / ACTIVE_PACK_FILENAME


def get_active_pack(base_dir) -> Optional[str]:
    try:
        name = active_pack_path(base_dir).read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return None
    return name or None


def set_active_pack(base_dir, name) -> None:
    if not pack_exists(base_dir, name):
        raise NotFoundError("pack", name)
    path = active_pack_path(base_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(name + "\n", encoding="utf-8")


def clear_active_pack(base_dir) -> None:
    try:
        active_pack_path(base_dir).unlink()
    except FileNotFoundError:
        pass


def pack_doctor_issues(pf: PackFile, knowledge_rel_path: str, knowledge_abs) -> list[str]:
    issues = []
    if pf.schema_version != PackFile.SCHEMA_VERSION:
        issues.append(f"schema_version {pf.schema_version} is not supported "
                      f"(expected {PackFile.SCHEMA_VERSION})")
    if not pf.description.strip():
        issues.append("description is empty")
    if not pf.summary.strip():
        issues.append("summary is empty")
    if not pf.examples:
        issues.append("examples is empty")
    if not (knowledge_rel_path or "").strip():
        issues.append("search.knowledge is empty")
    elif not Path(knowledge_abs).is_dir():
        issues.append(f"knowledge path not found: {knowledge_abs}")
    if not pf.jump and not pf.run and not pf.projects:
        issues.append("pack has no jump/run/projects entries")
    return issues


def append_note(base_dir, pack, text, now=None) -> Path:
    """Append a timestamped bullet to the pack's knowledge/inbox.md."""
    text = (text or "").strip()
    if not text:
        raise DMError("note text is empty")
    if not pack_exists(base_dir, pack):
        raise NotFoundError("pack", pack)
    now = now or datetime.now()
    path = pack_dir(base_dir, pack) / "knowledge" / INBOX_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(f"- {now:%Y-%m-%d %H:%M} {text}\n")
    return path
