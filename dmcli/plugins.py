"""
External plugins under ``<base_dir>/plugins/``.

Two kinds are supported:

- scripts: top-level files (``.sh``, ``.ps1``, ``.cmd``, ``.bat``, ``.exe``,
  ``.out`` or no extension) run by name, e.g. ``dm backup-photos``;
- functions: ``function Name`` declarations found in ``.ps1``/``.psm1``/``.txt``
  files anywhere below ``plugins/``, run through PowerShell after the files
  are dot-sourced. Names starting with ``_`` are private helpers.

A script always shadows a function of the same name.
"""

import codecs
import logging
import os
import re
import shutil
import subprocess
import sys

import click

from dmcli.exceptions import DMError, PluginNotFoundError, PluginRunError

logger = logging.getLogger(__name__)

SCRIPT = "script"
FUNCTION = "function"

SCRIPT_EXTENSIONS = (".ps1", ".cmd", ".bat", ".exe", ".sh", "", ".out")
FUNCTION_SOURCE_EXTENSIONS = (".ps1", ".psm1", ".txt")

_FUNCTION_LINE = re.compile(r"^\s*function\s+([a-z0-9_-]+)\b", re.IGNORECASE)
_HELP_TAG = re.compile(
    r"^\.(synopsis|description|example|parameter)\b(?:\s+([a-z0-9_-]+))?\s*$",
    re.IGNORECASE,
)
_PARAM_NAME = re.compile(r"^-[A-Za-z_][\w-]*$")


class Entry:
    def __init__(self, name, kind, path):
        self.name = name
        self.kind = kind
        self.path = path

    def __repr__(self):
        return f"Entry({self.name!r}, {self.kind!r}, {self.path!r})"


class FunctionFile:
    def __init__(self, path, functions):
        self.path = path
        self.functions = functions

    def __repr__(self):
        return f"FunctionFile({self.path!r}, {self.functions!r})"


class PluginInfo:
    def __init__(self, name, kind, path, sources=None, runner="", synopsis="",
                 description="", parameters=None, examples=None):
        self.name = name
        self.kind = kind
        self.path = path
        self.sources = list(sources or [])
        self.runner = runner
        self.synopsis = synopsis
        self.description = description
        self.parameters = list(parameters or [])
        self.examples = list(examples or [])

    def to_dict(self):
        return {
            "name": self.name,
            "kind": self.kind,
            "path": self.path,
            "sources": self.sources,
            "runner": self.runner,
            "synopsis": self.synopsis,
            "description": self.description,
            "parameters": self.parameters,
            "examples": self.examples,
        }


def plugins_dir(base_dir) -> str:
    return os.path.join(str(base_dir), "plugins")


def _ext(path) -> str:
    return os.path.splitext(path)[1].lower()


def is_supported_script(filename) -> bool:
    return _ext(filename) in SCRIPT_EXTENSIONS


def plugin_name(filename) -> str:
    return os.path.splitext(filename)[0]


def _shell_looks_like_bash() -> bool:
    shell = os.environ.get("SHELL", "").strip().lower()
    return any(s in shell for s in ("bash", "zsh", "fish"))


def preferred_ext_order() -> list[str]:
    if sys.platform != "win32":
        return [".sh", "", ".out", ".ps1"]
    if _shell_looks_like_bash():
        return [".sh", ".ps1", ".cmd", ".bat", ".exe", "", ".out"]
    return [".ps1", ".cmd", ".bat", ".exe", ".sh", "", ".out"]


def _script_score(path) -> int:
    order = preferred_ext_order()
    ext = _ext(path)
    return order.index(ext) if ext in order else len(order) + 1


def _scripts(directory) -> dict:
    """Best script path per plugin name."""
    try:
        entries = list(os.scandir(directory))
    except FileNotFoundError:
        return {}
    best = {}
    for entry in sorted(entries, key=lambda e: e.name.lower()):
        if entry.is_dir() or not is_supported_script(entry.name):
            continue
        name = plugin_name(entry.name)
        current = best.get(name)
        if current is None or _script_score(entry.path) < _script_score(current):
            best[name] = entry.path
    return best


def find_script(directory, name):
    return _scripts(directory).get(name)


def _function_source_score(path) -> int:
    ext = _ext(path)
    if ext in FUNCTION_SOURCE_EXTENSIONS:
        return FUNCTION_SOURCE_EXTENSIONS.index(ext)
    return len(FUNCTION_SOURCE_EXTENSIONS)


def function_source_files(directory) -> list[str]:
    files = []
    for dirpath, _dirnames, filenames in os.walk(directory):
        for filename in filenames:
            if _ext(filename) in FUNCTION_SOURCE_EXTENSIONS:
                files.append(os.path.join(dirpath, filename))
    files.sort(key=lambda p: (_function_source_score(p), p.lower()))
    return files


def is_public_function_name(name) -> bool:
    return not name.startswith("_")


def read_function_names(path) -> list[str]:
    """Public function names declared in path, in file order."""
    names = []
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            for line in f:
                m = _FUNCTION_LINE.match(line)
                if not m:
                    continue
                name = m.group(1).strip()
                if name and is_public_function_name(name) and name not in names:
                    names.append(name)
    except FileNotFoundError:
        return []
    return names


def collect_functions(directory):
    """Return ({function: first defining file}, all source files)."""
    files = function_source_files(directory)
    catalog = {}
    for path in files:
        for name in read_function_names(path):
            catalog.setdefault(name, path)
    return catalog, files


def list_entries(base_dir, include_functions=False) -> list[Entry]:
    directory = plugins_dir(base_dir)
    scripts = _scripts(directory)
    out = [Entry(name, SCRIPT, path) for name, path in scripts.items()]
    if include_functions:
        catalog, _ = collect_functions(directory)
        out.extend(
            Entry(name, FUNCTION, path)
            for name, path in catalog.items()
            if name not in scripts
        )
    out.sort(key=lambda e: (e.name, e.kind))
    return out


def list_function_files(base_dir) -> list[FunctionFile]:
    out = []
    for path in function_source_files(plugins_dir(base_dir)):
        names = read_function_names(path)
        if names:
            out.append(FunctionFile(path, sorted(names)))
    out.sort(key=lambda f: f.path.lower())
    return out


def parse_comment_help(lines) -> dict:
    """Parse the body of a ``<# ... #>`` comment-based help block."""
    synopsis = ""
    description = ""
    examples = []
    params = {}
    mode = ""
    param = ""
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        m = _HELP_TAG.match(line)
        if m:
            mode = m.group(1).lower()
            param = (m.group(2) or "").strip() if mode == "parameter" else ""
            if param:
                params.setdefault(param, [])
            continue
        if mode == "synopsis":
            synopsis = f"{synopsis} {line}".strip()
        elif mode == "description":
            description = f"{description} {line}".strip()
        elif mode == "example":
            examples.append(line)
        elif mode == "parameter" and param:
            params[param].append(line)

    parameters = []
    for name in sorted(params):
        text = " ".join(params[name]).strip()
        parameters.append(f"{name}: {text}" if text else name)
    return {
        "synopsis": synopsis,
        "description": description,
        "parameters": parameters,
        "examples": examples,
    }


def parse_function_help(path, function_name) -> dict:
    empty = parse_comment_help([])
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            lines = f.read().split("\n")
    except OSError as e:
        logger.debug("cannot read help from %s: %s", path, e)
        return empty

    fn_idx = None
    for i, line in enumerate(lines):
        m = _FUNCTION_LINE.match(line)
        if m and m.group(1).lower() == function_name.lower():
            fn_idx = i
            break
    if fn_idx is None:
        return empty

    end = fn_idx - 1
    while end >= 0 and not lines[end].strip():
        end -= 1
    if end < 0 or lines[end].strip() != "#>":
        return empty
    start = end - 1
    while start >= 0 and lines[start].strip() != "<#":
        start -= 1
    if start < 0:
        return empty
    return parse_comment_help(lines[start + 1:end])


def runner_for_path(path) -> str:
    ext = _ext(path)
    if sys.platform == "win32":
        return {
            ".ps1": "powershell -File",
            ".sh": "sh",
            ".cmd": "cmd /C",
            ".bat": "cmd /C",
        }.get(ext, "direct")
    return {".ps1": "pwsh -File", ".sh": "sh"}.get(ext, "direct")


def get_info(base_dir, name) -> PluginInfo:
    directory = plugins_dir(base_dir)
    script = find_script(directory, name)
    if script is not None:
        return PluginInfo(name, SCRIPT, script, sources=[script], runner=runner_for_path(script))

    catalog, files = collect_functions(directory)
    path = catalog.get(name)
    if path is None:
        raise PluginNotFoundError(name)
    sources = [p for p in files if name in read_function_names(p)] or [path]
    return PluginInfo(name, FUNCTION, path, sources=sources,
                      runner="powershell function bridge",
                      **parse_function_help(path, name))


def _first_binary(*names):
    for n in names:
        if shutil.which(n):
            return n
    return None


def script_argv(path) -> list[str]:
    ext = _ext(path)
    if ext == ".ps1":
        order = ("powershell", "pwsh") if sys.platform == "win32" else ("pwsh", "powershell")
        ps = _first_binary(*order)
        if ps is None:
            raise DMError("pwsh/powershell executable not found")
        if sys.platform == "win32":
            return [ps, "-ExecutionPolicy", "Bypass", "-File", path]
        return [ps, "-File", path]
    if ext == ".sh":
        if sys.platform == "win32":
            sh = _first_binary("sh", "bash")
            if sh is None:
                raise DMError("sh/bash executable not found")
            return [sh, path]
        return ["sh", path]
    if sys.platform == "win32" and ext in (".cmd", ".bat"):
        return ["cmd", "/C", path]
    return [path]


def quote_ps(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def function_script(sources, function_name, args) -> str:
    """
    PowerShell that dot-sources every plugin file and calls function_name.

    ``-Name`` style arguments are passed through as parameter names so that
    ``-Path x -Force`` binds like a normal PowerShell call; everything else is
    single-quoted.
    """
    lines = ["$ErrorActionPreference = 'Stop'"]
    for p in sources:
        lines.append(f"if (Test-Path -LiteralPath {quote_ps(p)}) {{ . {quote_ps(p)} }}")
    lines.append(f"if (-not (Get-Command -Name {quote_ps(function_name)} -CommandType Function "
                 f"-ErrorAction SilentlyContinue)) {{")
    lines.append(f"  throw \"Function '{function_name}' was not loaded from plugin sources.\"")
    lines.append("}")
    call = [function_name]
    for a in args:
        call.append(a if _PARAM_NAME.match(a) else quote_ps(a))
    lines.append(" ".join(call))
    return "\n".join(lines)


def function_argv(sources, function_name, args) -> list[str]:
    ps = _first_binary("pwsh", "powershell")
    if ps is None:
        raise DMError("pwsh/powershell executable not found")
    return [ps, "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command",
            function_script(sources, function_name, args)]


def _exec(name, argv) -> None:
    """
    Run argv, passing its stdout through as it arrives and keeping a copy for
    the error message. stdin and stderr stay attached to the terminal so
    prompts without a trailing newline show up before the plugin waits.
    """
    logger.debug("plugin %s: %s", name, argv)
    try:
        proc = subprocess.Popen(argv, stdout=subprocess.PIPE)
    except OSError as e:
        raise DMError(f"cannot start plugin {name}: {e.strerror or e}") from e
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    output = []
    with proc.stdout:
        fd = proc.stdout.fileno()
        while True:
            chunk = os.read(fd, 4096)
            text = decoder.decode(chunk, final=not chunk)
            if text:
                output.append(text)
                click.echo(text, nl=False)
            if not chunk:
                break
    returncode = proc.wait()
    if returncode != 0:
        raise PluginRunError(name, returncode, "".join(output))


def run(base_dir, name, args=()) -> None:
    directory = plugins_dir(base_dir)
    args = list(args)
    script = find_script(directory, name)
    if script is not None:
        _exec(name, script_argv(script) + args)
        return
    catalog, files = collect_functions(directory)
    if name not in catalog:
        raise PluginNotFoundError(name)
    _exec(name, function_argv(files, name, args))


def split_args(text: str) -> list[str]:
    """Split a typed argument line; single and double quotes group words."""
    out = []
    current = []
    quote = None
    in_token = False
    for ch in text:
        if quote:
            if ch == quote:
                quote = None
            else:
                current.append(ch)
            continue
        if ch in ("'", '"'):
            quote = ch
            in_token = True
        elif ch.isspace():
            if in_token:
                out.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(ch)
            in_token = True
    if quote:
        raise ValueError("unterminated quote in arguments")
    if in_token:
        out.append("".join(current))
    return out


def args_hint_from_example(function_name, example) -> str:
    """Strip the function name from an example line to suggest arguments."""
    ex = (example or "").strip()
    if ex.lower().startswith(function_name.lower()):
        return ex[len(function_name):].strip()
    return ""
