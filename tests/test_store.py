import json
from datetime import datetime

import pytest

from dmcli import store
from dmcli.exceptions import ConfigError, DMError, NotFoundError
from dmcli.models import PackFile, Project


def test_validate_pack_name():
    assert store.validate_pack_name(" git ") == "git"
    for bad in ("", "..", "a/b", "has space"):
        with pytest.raises(DMError):
            store.validate_pack_name(bad)


def test_create_pack(base_dir):
    path = store.create_pack(base_dir, "git", "Git helpers")
    assert path == base_dir / "packs" / "git" / "pack.json"
    assert (base_dir / "packs" / "git" / "knowledge").is_dir()

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["schema_version"] == 1
    assert data["description"] == "Git helpers"
    assert data["search"] == {"knowledge": "packs/git/knowledge"}
    assert data["examples"] == ["dm --pack git find <query>", "dm --pack git run <alias>"]

    with pytest.raises(DMError, match="pack already exists: git"):
        store.create_pack(base_dir, "git")


def test_clone_pack_rewrites_defaults(base_dir):
    store.create_pack(base_dir, "git")
    pf = store.load_pack_file(store.pack_path(base_dir, "git"))
    pf.owner = "me"
    pf.run = {"st": "git status"}
    store.save_pack_file(store.pack_path(base_dir, "git"), pf)
    (base_dir / "packs" / "git" / "knowledge" / "tips.md").write_text("rebase", encoding="utf-8")

    store.clone_pack(base_dir, "git", "hg")

    clone = store.load_pack_file(store.pack_path(base_dir, "hg"))
    assert clone.description == "Pack hg"
    assert clone.summary == "Commands and knowledge for hg"
    assert clone.examples == ["dm --pack hg find <query>", "dm --pack hg run <alias>"]
    assert clone.knowledge == "packs/hg/knowledge"
    assert clone.owner == "me"
    assert clone.run == {"st": "git status"}
    assert (base_dir / "packs" / "hg" / "knowledge" / "tips.md").exists()


def test_clone_errors(base_dir):
    with pytest.raises(NotFoundError):
        store.clone_pack(base_dir, "nope", "x")
    store.create_pack(base_dir, "a")
    store.create_pack(base_dir, "b")
    with pytest.raises(DMError, match="pack already exists: b"):
        store.clone_pack(base_dir, "a", "b")


def test_list_packs_ignores_dirs_without_pack_file(base_dir):
    assert store.list_packs(base_dir) == []
    store.create_pack(base_dir, "zeta")
    store.create_pack(base_dir, "alpha")
    (base_dir / "packs" / "stray").mkdir()
    assert store.list_packs(base_dir) == ["alpha", "zeta"]


def test_load_pack_file(base_dir):
    missing = store.load_pack_file(base_dir / "nope.json")
    assert missing.schema_version == 0

    bad = base_dir / "bad.json"
    bad.write_text("[]", encoding="utf-8")
    with pytest.raises(ConfigError):
        store.load_pack_file(bad)


def test_pack_info(base_dir):
    store.create_pack(base_dir, "git")
    path = store.pack_path(base_dir, "git")
    pf = store.load_pack_file(path)
    pf.projects = {"repo": Project("/r", {"a": "x", "b": "y"})}
    pf.jump = {"j": "/j"}
    store.save_pack_file(path, pf)

    info = store.pack_info(base_dir, "git").to_dict()
    assert info["name"] == "git"
    assert info["jumps"] == 1
    assert info["projects"] == 1
    assert info["actions"] == 2

    with pytest.raises(NotFoundError, match="pack not found: x"):
        store.pack_info(base_dir, "x")


def test_active_pack(base_dir):
    assert store.get_active_pack(base_dir) is None
    with pytest.raises(NotFoundError):
        store.set_active_pack(base_dir, "git")

    store.create_pack(base_dir, "git")
    store.set_active_pack(base_dir, "git")
    assert store.get_active_pack(base_dir) == "git"

    store.clear_active_pack(base_dir)
    store.clear_active_pack(base_dir)
    assert store.get_active_pack(base_dir) is None


def test_pack_doctor_issues(tmp_path):
    assert store.pack_doctor_issues(PackFile(schema_version=0), "", tmp_path) == [
        "schema_version 0 is not supported (expected 1)",
        "description is empty",
        "summary is empty",
        "examples is empty",
        "search.knowledge is empty",
        "pack has no jump/run/projects entries",
    ]

    pf = store.default_pack("git")
    pf.run = {"st": "git status"}
    assert store.pack_doctor_issues(pf, pf.knowledge, tmp_path) == []
    assert store.pack_doctor_issues(pf, pf.knowledge, tmp_path / "missing") == [
        f"knowledge path not found: {tmp_path / 'missing'}",
    ]


def test_append_note(base_dir):
    store.create_pack(base_dir, "git")
    path = store.append_note(base_dir, "git", "  squash before merge ", now=datetime(2024, 3, 1, 9, 5))
    store.append_note(base_dir, "git", "second", now=datetime(2024, 3, 2, 10, 0))
    assert path.read_text(encoding="utf-8") == (
        "- 2024-03-01 09:05 squash before merge\n"
        "- 2024-03-02 10:00 second\n"
    )

    with pytest.raises(DMError, match="note text is empty"):
        store.append_note(base_dir, "git", "  ")
    with pytest.raises(NotFoundError):
        store.append_note(base_dir, "other", "x")
