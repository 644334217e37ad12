import json
import sys

import pytest
import yaml

from dmcli import doctor, store
from dmcli.cli import rewrite_shortcuts

from tests.conftest import write_json

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses sh")


@pytest.mark.parametrize("args, expected", [
    (["-k", "list"], ["pack", "list"]),
    (["--pack", "git", "-t", "s"], ["--pack", "git", "tools", "s"]),
    (["-v", "-p", "list"], ["-v", "plugins", "list"]),
    (["myplugin", "-k", "x"], ["myplugin", "-k", "x"]),
    (["--pack", "-k"], ["--pack", "-k"]),
])
def test_rewrite_shortcuts(args, expected):
    assert rewrite_shortcuts(args) == expected


def test_splash(invoke, base_dir):
    result = invoke()
    assert result.exit_code == 0
    assert f"Base dir   : {base_dir}" in result.output
    assert "Active pack: none" in result.output
    assert "Config     : default (packs/*/pack.json)" in result.output


def test_add_and_list(invoke, base_dir):
    assert invoke("add", "jump", "docs", "/srv/docs").exit_code == 0
    assert invoke("add", "run", "up", "docker", "compose", "up").exit_code == 0
    assert invoke("add", "project", "api", "/src/api").exit_code == 0
    result = invoke("add", "action", "api", "test", "pytest", "-q")
    assert result.exit_code == 0, result.output
    assert "OK: action added" in result.output

    data = json.loads((base_dir / "dm.json").read_text(encoding="utf-8"))
    assert data["jump"] == {"docs": "/srv/docs"}
    assert data["run"] == {"up": "docker compose up"}
    assert data["projects"]["api"] == {"path": "/src/api", "commands": {"test": "pytest -q"}}

    result = invoke("list", "jumps")
    assert "docs" in result.output and "/srv/docs" in result.output

    result = invoke("list", "actions", "api")
    assert "test" in result.output and "pytest -q" in result.output

    result = invoke("list", "actions", "nope")
    assert result.exit_code == 1
    assert "Project not found: nope" in result.output


def test_add_project_keeps_commands(invoke, base_dir):
    write_json(base_dir / "dm.json", {"projects": {"api": {"path": "/old", "commands": {"t": "x"}}}})
    invoke("add", "project", "api", "/new")
    data = json.loads((base_dir / "dm.json").read_text(encoding="utf-8"))
    assert data["projects"]["api"] == {"path": "/new", "commands": {"t": "x"}}


def test_add_action_requires_project(invoke):
    result = invoke("add", "action", "api", "test", "pytest")
    assert result.exit_code == 1
    assert "Project not found. Add the project first." in result.output


def test_validate(invoke, base_dir):
    write_json(base_dir / "dm.json", {"jump": {"a": "/a"}, "search": {"knowledge": "kb"}})
    result = invoke("validate")
    assert result.exit_code == 0
    assert "OK: valid configuration" in result.output

    write_json(base_dir / "dm.json", {"jump": {"a": ""}, "search": {"knowledge": "kb"}})
    result = invoke("--no-cache", "validate")
    assert result.exit_code == 1
    assert "error: jump 'a' has empty path" in result.output


def test_broken_config_reports_error(invoke, base_dir):
    (base_dir / "dm.json").write_text("{", encoding="utf-8")
    result = invoke("list", "jumps")
    assert result.exit_code == 1
    assert result.output.startswith("Error: ")


def test_config_yaml_and_json(invoke, base_dir):
    write_json(base_dir / "dm.json", {"jump": {"a": "/a"}})
    data = yaml.safe_load(invoke("config", "--yaml").output)
    assert data["jump"] == {"a": "/a"}

    data = json.loads(invoke("aliases", "--json").output)
    assert data["jump"] == {"a": "/a"}


def test_pack_lifecycle(invoke, base_dir):
    result = invoke("pack", "new", "git", "--description", "Git helpers")
    assert result.exit_code == 0
    assert "OK: pack created" in result.output

    assert invoke("-k", "new", "git").exit_code == 1

    result = invoke("-k", "list")
    assert result.output.splitlines() == ["git"]

    assert invoke("pack", "current").output.strip() == "No active pack."
    assert invoke("pack", "use", "git").exit_code == 0
    assert store.get_active_pack(base_dir) == "git"
    assert "git (active)" in invoke("pack", "list").output
    assert invoke("pack", "current").output.strip() == "git"

    result = invoke("pack", "edit", "git", "--owner", "me", "--tag", "vcs", "--tag", "vcs")
    assert result.exit_code == 0
    info = json.loads(invoke("pack", "info", "git", "--json").output)
    assert info["owner"] == "me"
    assert info["tags"] == ["vcs"]
    assert info["description"] == "Git helpers"

    result = invoke("pack", "edit", "git")
    assert result.exit_code == 1
    assert "no changes" in result.output

    assert invoke("pack", "clone", "git", "hg").exit_code == 0
    assert invoke("pack", "list").output.splitlines() == ["git (active)", "hg"]

    assert invoke("pack", "unset").exit_code == 0
    assert store.get_active_pack(base_dir) is None


def test_pack_use_missing(invoke):
    result = invoke("pack", "use", "nope")
    assert result.exit_code == 1
    assert "Error: pack not found: nope" in result.output


def test_pack_doctor(invoke, base_dir):
    invoke("pack", "new", "git")
    result = invoke("pack", "doctor", "git", "--json")
    assert result.exit_code == 1
    data = json.loads(result.output)
    assert data["issues"] == ["pack has no jump/run/projects entries"]

    path = store.pack_path(base_dir, "git")
    pf = store.load_pack_file(path)
    pf.run = {"st": "git status"}
    store.save_pack_file(path, pf)
    result = invoke("pack", "doctor", "git")
    assert result.exit_code == 0
    assert "pack 'git' looks good" in result.output


def test_active_pack_config(invoke, base_dir):
    write_json(base_dir / "dm.json", {"jump": {"root": "/"}})
    invoke("pack", "new", "git")
    path = store.pack_path(base_dir, "git")
    pf = store.load_pack_file(path)
    pf.jump = {"repo": "/src/repo"}
    store.save_pack_file(path, pf)

    assert "repo" not in invoke("list", "jumps").output
    invoke("pack", "use", "git")
    output = invoke("list", "jumps").output
    assert "repo" in output and "root" in output


def test_find_in_pack_knowledge(invoke, base_dir, monkeypatch):
    monkeypatch.setattr("dmcli.knowledge.try_ripgrep", lambda d, q: False)
    invoke("pack", "new", "git")
    notes = base_dir / "packs" / "git" / "knowledge" / "tips.md"
    notes.write_text("always rebase\n", encoding="utf-8")

    result = invoke("--pack", "git", "find", "rebase")
    assert result.exit_code == 0
    assert "tips.md:1: always rebase" in result.output


def test_unknown_name_is_plugin(invoke):
    result = invoke("nothing-here")
    assert result.exit_code == 1
    assert "Error: plugin not found: nothing-here" in result.output


def test_target_menu_prints_path(invoke, base_dir):
    write_json(base_dir / "dm.json", {"jump": {"docs": "sub/docs"}})
    result = invoke("docs", input="\n")
    assert result.exit_code == 0
    expected = str(base_dir / "sub" / "docs").replace("\\", "/")
    assert result.output.rstrip().splitlines()[-1] == expected


@posix_only
def test_project_action_and_run_alias(invoke, base_dir, tmp_path):
    work = tmp_path / "work"
    work.mkdir()
    write_json(base_dir / "dm.json", {
        "run": {"fail": "exit 3", "touch": "touch marker"},
        "projects": {"api": {"path": str(work), "commands": {"mk": "touch built"}}},
    })

    assert invoke("api", "mk").exit_code == 0
    assert (work / "built").exists()

    assert invoke("run", "fail").exit_code == 3
    assert invoke("run", "touch", "--cwd", str(work)).exit_code == 0
    assert (work / "marker").exists()

    result = invoke("run", "missing")
    assert result.exit_code == 1
    assert "Error: run alias not found: missing" in result.output


@posix_only
def test_plugin_fallback_runs_script(invoke, base_dir):
    (base_dir / "plugins").mkdir()
    (base_dir / "plugins" / "hello.sh").write_text('echo "hello $1"\n')
    result = invoke("hello", "world")
    assert result.exit_code == 0
    assert "hello world" in result.output

    result = invoke("plugins", "list")
    assert result.output.splitlines() == ["hello"]


def test_tools_alias_dispatch(invoke, tmp_path):
    (tmp_path / "empty").mkdir()
    result = invoke("-t", "c", "--base", str(tmp_path), "-n")
    assert result.exit_code == 0
    assert str(tmp_path / "empty") in result.output
    assert (tmp_path / "empty").exists()


def test_tools_note(invoke, base_dir):
    invoke("pack", "new", "git")
    invoke("pack", "use", "git")
    result = invoke("tools", "note", "remember", "this")
    assert result.exit_code == 0
    inbox = base_dir / "packs" / "git" / "knowledge" / "inbox.md"
    assert inbox.read_text(encoding="utf-8").rstrip().endswith("remember this")


def test_doctor_json(invoke, monkeypatch):
    class Response:
        status_code = 200
        reason = "OK"

    monkeypatch.setattr(doctor.requests, "get", lambda url, timeout: Response())
    result = invoke("doctor", "--json")
    assert result.exit_code == 0
    data = json.loads(result.output)
    assert [c["name"] for c in data["checks"]][:3] == ["config", "agent-config", "ollama"]


def test_help_for_command(invoke):
    result = invoke("help", "pack")
    assert result.exit_code == 0
    assert "Create, inspect and activate packs." in result.output


def test_tools_menu_exit(invoke):
    result = invoke("tools", input="0\n")
    assert result.exit_code == 0
    assert "search" in result.output and "system" in result.output


def test_plugins_menu_empty(invoke):
    result = invoke("plugins")
    assert result.exit_code == 0
    assert "No plugin function files found." in result.output


def test_target_menu_without_actions(invoke, base_dir):
    write_json(base_dir / "dm.json", {"projects": {"api": {"path": "/src/api"}}})
    result = invoke("api", input="a\n")
    assert result.exit_code == 0
    assert "No actions defined for this project." in result.output


@posix_only
def test_target_menu_runs_project_action(invoke, base_dir, tmp_path):
    work = tmp_path / "work"
    work.mkdir()
    write_json(base_dir / "dm.json", {
        "projects": {"api": {"path": str(work), "commands": {"mk": "touch built", "build": "touch other"}}},
    })
    result = invoke("api", input="a\n2\n")
    assert result.exit_code == 0
    assert result.output.index("1) build") < result.output.index("2) mk")
    assert (work / "built").exists()
    assert not (work / "other").exists()


def test_target_menu_invalid_selection(invoke, base_dir):
    write_json(base_dir / "dm.json", {
        "jump": {"docs": "/docs"},
        "projects": {"api": {"path": "/src/api", "commands": {"t": "true"}}},
    })
    result = invoke("docs", input="q\n")
    assert result.exit_code == 0
    assert "Invalid selection." in result.output

    result = invoke("api", input="a\n9\n")
    assert result.exit_code == 0
    assert "Invalid selection." in result.output


def test_tools_menu_reprompts_on_invalid_selection(invoke):
    result = invoke("tools", input="zz\n0\n")
    assert result.exit_code == 0
    assert "Invalid selection." in result.output
    assert result.output.count("== Tools ==") == 2
