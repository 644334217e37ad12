from dmcli.models import Config, Project
from dmcli.validate import ERROR, WARN, Issue, validate


def test_clean_config_has_no_issues():
    cfg = Config(
        jump={"docs": "/docs"},
        run={"up": "docker compose up"},
        projects={"api": Project("/src/api", {"test": "pytest"})},
        knowledge="kb",
    )
    assert validate(cfg) == []


def test_empty_knowledge_warns():
    assert validate(Config()) == [Issue(WARN, "search.knowledge is empty")]


def test_issues_sorted_errors_first():
    cfg = Config(
        jump={"docs": ""},
        run={"up": " "},
        projects={"api": Project("", {})},
        knowledge="kb",
    )
    assert validate(cfg) == [
        Issue(ERROR, "jump 'docs' has empty path"),
        Issue(ERROR, "project 'api' has empty path"),
        Issue(ERROR, "run 'up' has empty command"),
        Issue(WARN, "project 'api' has no commands"),
    ]


def test_empty_action():
    cfg = Config(projects={"api": Project("/api", {"build": ""})}, knowledge="kb")
    assert validate(cfg) == [Issue(ERROR, "project 'api' action 'build' is empty")]


def test_name_collisions():
    cfg = Config(
        jump={"api": "/api"},
        run={"api": "echo"},
        projects={"api": Project("/api", {"t": "x"})},
        knowledge="kb",
    )
    messages = [i.message for i in validate(cfg)]
    assert messages == [
        "name 'api' exists in jump and projects",
        "name 'api' exists in jump and run",
    ]


def test_issue_str():
    assert str(Issue(ERROR, "boom")) == "error: boom"
