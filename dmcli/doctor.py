"""
Environment health checks behind ``dm doctor``.

Every check is independent: it looks at one thing (a file, an endpoint, an
environment variable) and returns a Check. Nothing here raises.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path

import click
import requests

from dmcli import config as config_mod
from dmcli import plugins, validate
from dmcli.exceptions import ConfigError

logger = logging.getLogger(__name__)

OK = "OK"
WARN = "WARN"
ERROR = "ERROR"

AGENT_CONFIG_FILENAME = "dm.agent.json"
OLLAMA_URL = "http://127.0.0.1:11434"
OLLAMA_MODEL = "deepseek-coder-v2:latest"
OPENAI_URL = "https://api.openai.com/v1"
OPENAI_MODEL = "gpt-4o-mini"
HTTP_TIMEOUT = 3


class Check:
    def __init__(self, level, name, message):
        self.level = level
        self.name = name
        self.message = message

    def to_dict(self):
        return {"level": self.level, "name": self.name, "message": self.message}

    def __repr__(self):
        return f"Check({self.level!r}, {self.name!r}, {self.message!r})"


class Report:
    def __init__(self, generated_at=None):
        self.generated_at = generated_at or datetime.now().astimezone()
        self.checks = []
        self.ok_count = 0
        self.warn_count = 0
        self.error_count = 0

    def add(self, check: Check):
        self.checks.append(check)
        if check.level == OK:
            self.ok_count += 1
        elif check.level == WARN:
            self.warn_count += 1
        elif check.level == ERROR:
            self.error_count += 1

    @property
    def failed(self) -> bool:
        return self.error_count > 0

    def to_dict(self):
        return {
            "generated_at": self.generated_at.isoformat(timespec="seconds"),
            "checks": [c.to_dict() for c in self.checks],
            "ok_count": self.ok_count,
            "warn_count": self.warn_count,
            "error_count": self.error_count,
        }


def agent_config_path(base_dir) -> Path:
    env = os.environ.get("DM_AGENT_CONFIG", "").strip()
    if env:
        return Path(env)
    return Path(base_dir) / AGENT_CONFIG_FILENAME


def read_agent_config(base_dir) -> dict:
    try:
        data = json.loads(agent_config_path(base_dir).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _section_value(raw, section, key, default):
    block = raw.get(section)
    if isinstance(block, dict):
        v = block.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    return default


def check_config(base_dir) -> Check:
    path = Path(base_dir) / config_mod.CONFIG_FILENAME
    try:
        cfg = config_mod.load(path, use_cache=False, base_dir=base_dir)
    except ConfigError as e:
        return Check(ERROR, "config", str(e))
    issues = validate.validate(cfg)
    if issues:
        errors = sum(1 for i in issues if i.level == validate.ERROR)
        warns = len(issues) - errors
        return Check(WARN, "config", f"{errors} error(s), {warns} warning(s); run 'dm validate'")
    if not path.exists():
        return Check(OK, "config", f"no {path.name} yet (packs only)")
    return Check(OK, "config", f"loaded {path}")


def check_agent_config(base_dir) -> Check:
    path = agent_config_path(base_dir)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Check(WARN, "agent-config", f"config not found: {path}")
    except OSError as e:
        return Check(ERROR, "agent-config", f"cannot read config: {e}")
    try:
        json.loads(text)
    except ValueError as e:
        return Check(ERROR, "agent-config", f"invalid JSON in {path}: {e}")
    return Check(OK, "agent-config", f"loaded {path}")


def check_ollama(base_dir) -> Check:
    raw = read_agent_config(base_dir)
    base_url = _section_value(raw, "ollama", "base_url", OLLAMA_URL)
    model = _section_value(raw, "ollama", "model", OLLAMA_MODEL)
    try:
        res = requests.get(base_url.rstrip("/") + "/api/tags", timeout=HTTP_TIMEOUT)
    except requests.RequestException as e:
        logger.debug("ollama ping failed: %s", e)
        return Check(WARN, "ollama", f"unreachable at {base_url} ({e})")
    if not 200 <= res.status_code < 300:
        return Check(WARN, "ollama", f"endpoint returned {res.status_code} {res.reason}")
    return Check(OK, "ollama", f"reachable at {base_url} (model={model})")


def check_openai(base_dir) -> Check:
    raw = read_agent_config(base_dir)
    base_url = _section_value(raw, "openai", "base_url", OPENAI_URL)
    model = _section_value(raw, "openai", "model", OPENAI_MODEL)
    key = _section_value(raw, "openai", "api_key", os.environ.get("OPENAI_API_KEY", "").strip())
    if not key:
        return Check(WARN, "openai", f"missing API key (set in {AGENT_CONFIG_FILENAME} or OPENAI_API_KEY)")
    return Check(OK, "openai", f"configured (base_url={base_url} model={model})")


def check_plugins(base_dir) -> Check:
    try:
        items = plugins.list_entries(base_dir, include_functions=True)
    except OSError as e:
        return Check(ERROR, "plugins", f"scan failed: {e}")
    if not items:
        return Check(WARN, "plugins", "no plugins found")
    return Check(OK, "plugins", f"found {len(items)} plugin/function entries")


def check_tool_paths() -> Check:
    home = Path.home()
    missing = [
        str(home / d) for d in ("Downloads", "Desktop", "Documents")
        if not (home / d).is_dir()
    ]
    if missing:
        return Check(WARN, "tool-paths", "missing: " + ", ".join(missing))
    return Check(OK, "tool-paths", "common user paths are available")


def run_checks(base_dir) -> Report:
    report = Report()
    report.add(check_config(base_dir))
    report.add(check_agent_config(base_dir))
    report.add(check_ollama(base_dir))
    report.add(check_openai(base_dir))
    report.add(check_plugins(base_dir))
    report.add(check_tool_paths())
    return report


def render_text(report: Report):
    click.echo(f"Doctor report ({report.generated_at.isoformat(timespec='seconds')})")
    for c in report.checks:
        click.echo(f"[{c.level}] {c.name:<18} {c.message}")
    click.echo(f"Summary: OK={report.ok_count} WARN={report.warn_count} ERROR={report.error_count}")
