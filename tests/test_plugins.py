import os
import sys

import pytest

from dmcli import plugins
from dmcli.exceptions import DMError, PluginNotFoundError, PluginRunError

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses sh")

HELPERS = """\
function _private { }

<#
.SYNOPSIS
Clean up the downloads
folder.
.DESCRIPTION
Moves old files away.
.PARAMETER Days
Age in days.
.PARAMETER Path
Folder to clean.
.EXAMPLE
Clear-Downloads -Days 30
#>
function Clear-Downloads {
  param($Days, $Path)
}

function Get-Weather { }
"""


@pytest.fixture
def plugin_dir(base_dir):
    d = base_dir / "plugins"
    d.mkdir()
    return d


def test_script_preference_posix(plugin_dir, monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    (plugin_dir / "backup.ps1").write_text("")
    (plugin_dir / "backup.sh").write_text("")
    (plugin_dir / "tidy.ps1").write_text("")
    (plugin_dir / "tidy").write_text("")
    (plugin_dir / "readme.md").write_text("")

    assert plugins.find_script(str(plugin_dir), "backup").endswith("backup.sh")
    assert plugins.find_script(str(plugin_dir), "tidy").endswith(os.sep + "tidy")
    assert plugins.find_script(str(plugin_dir), "readme") is None


def test_script_preference_windows(plugin_dir, monkeypatch):
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setenv("SHELL", "")
    (plugin_dir / "backup.ps1").write_text("")
    (plugin_dir / "backup.sh").write_text("")
    assert plugins.find_script(str(plugin_dir), "backup").endswith("backup.ps1")

    monkeypatch.setenv("SHELL", "/usr/bin/bash")
    assert plugins.find_script(str(plugin_dir), "backup").endswith("backup.sh")


def test_list_entries_with_functions(base_dir, plugin_dir):
    (plugin_dir / "Get-Weather.sh").write_text("echo sunny\n")
    (plugin_dir / "lib").mkdir()
    (plugin_dir / "lib" / "helpers.ps1").write_text(HELPERS)

    names = [(e.name, e.kind) for e in plugins.list_entries(base_dir)]
    assert names == [("Get-Weather", "script")]

    names = [(e.name, e.kind) for e in plugins.list_entries(base_dir, include_functions=True)]
    assert names == [("Clear-Downloads", "function"), ("Get-Weather", "script")]


def test_list_function_files(base_dir, plugin_dir):
    (plugin_dir / "b.txt").write_text("function Zed { }\nfunction Alpha { }\n")
    (plugin_dir / "a.ps1").write_text("function _hidden { }\n")
    files = plugins.list_function_files(base_dir)
    assert [os.path.basename(f.path) for f in files] == ["b.txt"]
    assert files[0].functions == ["Alpha", "Zed"]


def test_function_help(base_dir, plugin_dir):
    (plugin_dir / "helpers.ps1").write_text(HELPERS)

    info = plugins.get_info(base_dir, "Clear-Downloads")
    assert info.kind == plugins.FUNCTION
    assert info.synopsis == "Clean up the downloads folder."
    assert info.description == "Moves old files away."
    assert info.parameters == ["Days: Age in days.", "Path: Folder to clean."]
    assert info.examples == ["Clear-Downloads -Days 30"]

    info = plugins.get_info(base_dir, "Get-Weather")
    assert info.synopsis == ""
    assert info.to_dict()["runner"] == "powershell function bridge"


def test_get_info_script_and_missing(base_dir, plugin_dir):
    (plugin_dir / "hello.sh").write_text("echo hi\n")
    info = plugins.get_info(base_dir, "hello")
    assert info.kind == plugins.SCRIPT
    assert info.sources == [info.path]

    with pytest.raises(PluginNotFoundError, match="plugin not found: nope"):
        plugins.get_info(base_dir, "nope")


@posix_only
def test_run_script(base_dir, plugin_dir, capsys):
    (plugin_dir / "hello.sh").write_text('echo "hi $1"\n')
    plugins.run(base_dir, "hello", ["there"])
    assert capsys.readouterr().out == "hi there\n"


@posix_only
def test_run_script_failure(base_dir, plugin_dir):
    (plugin_dir / "boom.sh").write_text("echo oops\nexit 3\n")
    with pytest.raises(PluginRunError) as excinfo:
        plugins.run(base_dir, "boom")
    assert excinfo.value.returncode == 3
    assert excinfo.value.output == "oops\n"


def test_run_missing(base_dir, plugin_dir):
    with pytest.raises(PluginNotFoundError):
        plugins.run(base_dir, "nope")


def test_function_script_quoting():
    script = plugins.function_script(["/p/a.ps1"], "Do-It", ["-Path", "it's here", "-Force"])
    lines = script.split("\n")
    assert "if (Test-Path -LiteralPath '/p/a.ps1') { . '/p/a.ps1' }" in lines
    assert lines[-1] == "Do-It -Path 'it''s here' -Force"


def test_split_args():
    assert plugins.split_args('-Path "C:/My Files" -Days 3') == ["-Path", "C:/My Files", "-Days", "3"]
    assert plugins.split_args("a '' b") == ["a", "", "b"]
    assert plugins.split_args("   ") == []
    with pytest.raises(ValueError):
        plugins.split_args('"open')


def test_args_hint_from_example():
    assert plugins.args_hint_from_example("Clear-Downloads", "clear-downloads -Days 30") == "-Days 30"
    assert plugins.args_hint_from_example("X", "other") == ""


@posix_only
def test_run_passes_partial_output_through(base_dir, plugin_dir, monkeypatch):
    chunks = []
    monkeypatch.setattr(plugins.click, "echo", lambda text, nl=True: chunks.append(text))
    (plugin_dir / "ask.sh").write_text("printf 'Name: '\nsleep 0.5\necho done\n")

    plugins.run(base_dir, "ask")

    assert chunks[0] == "Name: "
    assert "".join(chunks) == "Name: done\n"


@posix_only
def test_run_keeps_stderr_separate(base_dir, plugin_dir, capfd):
    (plugin_dir / "noisy.sh").write_text("echo out\necho err >&2\nexit 1\n")
    with pytest.raises(PluginRunError) as excinfo:
        plugins.run(base_dir, "noisy")
    assert excinfo.value.output == "out\n"
    captured = capfd.readouterr()
    assert "err" in captured.err
    assert "err" not in captured.out


def test_function_script_checks_function_loaded():
    lines = plugins.function_script(["/p/a.ps1"], "Do-It", []).split("\n")
    assert lines[0] == "$ErrorActionPreference = 'Stop'"
    assert "Get-Command -Name 'Do-It' -CommandType Function" in "\n".join(lines)
    assert "throw \"Function 'Do-It' was not loaded from plugin sources.\"" in "\n".join(lines)
    assert lines[-1] == "Do-It"


def test_function_argv(monkeypatch):
    monkeypatch.setattr(plugins.shutil, "which", lambda name: "/usr/bin/pwsh" if name == "pwsh" else None)
    argv = plugins.function_argv(["/p/a.ps1"], "Do-It", ["-Path", "C:/My Files", "-Force"])
    assert argv[:5] == ["pwsh", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command"]
    assert argv[5].split("\n")[-1] == "Do-It -Path 'C:/My Files' -Force"


def test_function_argv_without_powershell(monkeypatch):
    monkeypatch.setattr(plugins.shutil, "which", lambda name: None)
    with pytest.raises(DMError, match="pwsh/powershell executable not found"):
        plugins.function_argv([], "Do-It", [])
