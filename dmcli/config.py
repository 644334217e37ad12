"""
Layered configuration for dm.

The base file (dm.json) can pull in more files through ``include`` globs,
profiles can swap the include list and knowledge path, and a pack replaces
the include list with its own pack.json. Later files win, key by key.

Resolution order: base file → profile → pack include → includes (sorted
glob matches) → pack defaults.

The merged result is cached in a JSON file next to the base config and
reused while every source file keeps its modification time.
"""

import glob
import json
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from dmcli.exceptions import ConfigError
from dmcli.models import Config, Project

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "dm.json"
CACHE_PREFIX = ".dm.cache"


def resolve_path(base_dir, p: str) -> str:
    """Resolve a config path against base_dir. Accepts E:/style slashes and ~."""
    if not p:
        return p
    p = os.path.expanduser(p.replace("/", os.sep))
    if os.path.isabs(p):
        return p
    return os.path.join(str(base_dir), p)


def read_data(path) -> dict:
    """Read a JSON (or YAML, by extension) config file into a dict."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(path, f"cannot read: {e.strerror or e}") from e
    if not text.strip():
        return {}
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(path, f"invalid content: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(path, "top level must be an object")
    return data


def load_file(path) -> Config:
    return Config.from_dict(read_data(path))


def merge_config(dst: Config, src: Config) -> None:
    """Merge src into dst. Maps merge per key; projects merge per name."""
    dst.jump.update(src.jump)
    dst.run.update(src.run)
    for name, project in src.projects.items():
        existing = dst.projects.get(name)
        if existing is None:
            dst.projects[name] = Project(project.path, project.commands)
            continue
        if project.path:
            existing.path = project.path
        existing.commands.update(project.commands)
    if src.knowledge:
        dst.knowledge = src.knowledge


def apply_profile(cfg: Config, name: str) -> None:
    profile = cfg.profiles.get(name)
    if profile is None:
        logger.debug("profile %s not defined, ignoring", name)
        return
    if profile.include:
        cfg.include = list(profile.include)
    if profile.knowledge:
        cfg.knowledge = profile.knowledge


def pack_include(pack: str) -> str:
    return f"packs/{pack}/pack.json"


def apply_pack_defaults(cfg: Config, pack: Optional[str]) -> None:
    if not pack:
        return
    if not cfg.knowledge.strip():
        cfg.knowledge = f"packs/{pack}/knowledge"


def _matches(base_dir, pattern):
    return sorted(glob.glob(resolve_path(base_dir, pattern)))


def apply_includes(cfg: Config, base_dir) -> None:
    for pattern in cfg.include:
        for match in _matches(base_dir, pattern):
            logger.debug("merging include %s", match)
            merge_config(cfg, load_file(match))


def collect_sources(config_path, include, base_dir) -> dict:
    """Map every source file to its modification time in nanoseconds."""
    sources = {}
    paths = [str(config_path)]
    for pattern in include:
        paths.extend(_matches(base_dir, pattern))
    for p in paths:
        try:
            sources[p] = os.stat(p).st_mtime_ns
        except FileNotFoundError:
            if p == str(config_path):
                continue  # no base file yet
            raise
    return sources


def cache_file_path(base_dir, profile: Optional[str] = None, pack: Optional[str] = None) -> Path:
    parts = [CACHE_PREFIX]
    if profile:
        parts.append(profile)
    if pack:
        parts.append(f"pack-{pack}")
    return Path(base_dir) / (".".join(parts) + ".json")


def load_valid_cache(path: Path, sources: dict) -> Optional[Config]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or data.get("sources") != sources:
        return None
    return Config.from_dict(data.get("config"))


def write_cache(path: Path, sources: dict, cfg: Config) -> None:
    payload = {"sources": sources, "config": cfg.to_dict()}
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def load(path, profile: Optional[str] = None, pack: Optional[str] = None,
         use_cache: bool = True, base_dir=None) -> Config:
    """
    Load the effective configuration rooted at path.

    A missing base file counts as an empty config so that a fresh base
    directory (or a pack-only setup) still works.
    """
    path = Path(path)
    base_dir = Path(base_dir) if base_dir is not None else path.parent

    if path.exists():
        cfg = load_file(path)
    else:
        logger.debug("no base config at %s", path)
        cfg = Config()

    if profile:
        apply_profile(cfg, profile)
    if pack:
        cfg.include = [pack_include(pack)]

    try:
        sources = collect_sources(path, cfg.include, base_dir)
    except OSError as e:
        raise ConfigError(e.filename or path, f"cannot stat: {e.strerror or e}") from e

    cache_path = cache_file_path(base_dir, profile, pack)
    if use_cache:
        cached = load_valid_cache(cache_path, sources)
        if cached is not None:
            logger.debug("config cache hit: %s", cache_path)
            return cached
        logger.debug("config cache miss: %s", cache_path)

    apply_includes(cfg, base_dir)
    apply_pack_defaults(cfg, pack)

    if use_cache:
        try:
            write_cache(cache_path, sources, cfg)
        except OSError as e:
            logger.warning("cannot write config cache %s: %s", cache_path, e)

    return cfg


def update_root_config(base_dir, mutate) -> Path:
    """
    Apply mutate(data) to the raw dm.json and write it back.

    Works on the raw dict so include/profiles and unknown keys survive.
    """
    path = Path(base_dir) / CONFIG_FILENAME
    data = read_data(path) if path.exists() else {}
    for key in ("jump", "run", "projects"):
        if not isinstance(data.get(key), dict):
            data[key] = {}
    mutate(data)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path
