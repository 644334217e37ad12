from dmcli.knowledge import search_knowledge


def test_builtin_search(tmp_path, capsys):
    (tmp_path / "git.md").write_text("# Git\nUse REBASE carefully\nnothing\n", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "more.md").write_text("rebase -i HEAD~3\n", encoding="utf-8")
    (tmp_path / "skip.txt").write_text("rebase\n", encoding="utf-8")

    matches = search_knowledge(tmp_path, "rebase", use_ripgrep=False)

    assert [str(m) for m in matches] == [
        "git.md:2: Use REBASE carefully",
        "more.md:1: rebase -i HEAD~3",
    ]
    out = capsys.readouterr().out
    assert "find: rebase" in out
    assert "-" * 24 in out
    assert "git.md:2: Use REBASE carefully" in out


def test_empty_query(tmp_path, capsys):
    assert search_knowledge(tmp_path, "", use_ripgrep=False) == []
    assert "Usage: dm find <query>" in capsys.readouterr().out


def test_unconfigured(capsys):
    assert search_knowledge("", "x", use_ripgrep=False) == []
    assert "Knowledge path not configured." in capsys.readouterr().out
