"""Open folders and files in the desktop: file browser, VS Code, a terminal."""

import logging
import shutil
import subprocess
import sys

logger = logging.getLogger(__name__)


def _launch(argv) -> bool:
    """Start argv detached. Returns False when the program is missing."""
    if shutil.which(argv[0]) is None:
        logger.warning("%s not found on PATH", argv[0])
        return False
    try:
        subprocess.Popen(argv, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL,
                         stderr=subprocess.DEVNULL, start_new_session=True)
    except OSError as e:
        logger.warning("cannot launch %s: %s", argv[0], e)
        return False
    return True


def _opener():
    if sys.platform == "win32":
        return "explorer"
    if sys.platform == "darwin":
        return "open"
    return "xdg-open"


def open_file_browser(path) -> bool:
    return _launch([_opener(), str(path)])


def open_file(path) -> bool:
    return _launch([_opener(), str(path)])


def open_vscode(path) -> bool:
    return _launch(["code", str(path)])


def escape_quotes(s: str) -> str:
    return s.replace('"', '\\"')


def open_terminal(path) -> bool:
    path = str(path)
    if sys.platform == "win32":
        return _launch(["cmd", "/C", "start", "pwsh", "-NoExit", "-Command",
                        f'Set-Location -LiteralPath "{escape_quotes(path)}"'])
    return _launch(["x-terminal-emulator", "--working-directory", path])
