import json

import pytest
from click.testing import CliRunner


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def base_dir(tmp_path, monkeypatch):
    """An empty dm home, isolated from the real environment."""
    home = tmp_path / "dmhome"
    home.mkdir()
    monkeypatch.delenv("DM_HOME", raising=False)
    monkeypatch.delenv("DM_AGENT_CONFIG", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("NO_COLOR", "1")
    return home


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, base_dir):
    """Run the dm CLI against base_dir."""
    from dmcli.cli import cli

    def _invoke(*args, input=None):
        return runner.invoke(cli, ["--base-dir", str(base_dir), *args], input=input)

    return _invoke
