"""Consistency checks for a loaded configuration."""

from dmcli.models import Config

ERROR = "error"
WARN = "warn"


class Issue:
    def __init__(self, level, message):
        self.level = level
        self.message = message

    def __eq__(self, other):
        if not isinstance(other, Issue):
            return NotImplemented
        return (self.level, self.message) == (other.level, other.message)

    def __repr__(self):
        return f"Issue({self.level!r}, {self.message!r})"

    def __str__(self):
        return f"{self.level}: {self.message}"


def _blank(s):
    return not s or not s.strip()


def validate(cfg: Config) -> list[Issue]:
    issues = []

    if _blank(cfg.knowledge):
        issues.append(Issue(WARN, "search.knowledge is empty"))

    for key, path in cfg.jump.items():
        if _blank(key):
            issues.append(Issue(ERROR, "jump key is empty"))
        if _blank(path):
            issues.append(Issue(ERROR, f"jump '{key}' has empty path"))

    for key, command in cfg.run.items():
        if _blank(key):
            issues.append(Issue(ERROR, "run key is empty"))
        if _blank(command):
            issues.append(Issue(ERROR, f"run '{key}' has empty command"))

    for name, project in cfg.projects.items():
        if _blank(name):
            issues.append(Issue(ERROR, "project name is empty"))
        if _blank(project.path):
            issues.append(Issue(ERROR, f"project '{name}' has empty path"))
        for action, command in project.commands.items():
            if _blank(action):
                issues.append(Issue(ERROR, f"project '{name}' has empty command name"))
            if _blank(command):
                issues.append(Issue(ERROR, f"project '{name}' action '{action}' is empty"))
        if not project.commands:
            issues.append(Issue(WARN, f"project '{name}' has no commands"))

    issues.extend(detect_name_collisions(cfg))

    issues.sort(key=lambda i: (i.level, i.message))
    return issues


def detect_name_collisions(cfg: Config) -> list[Issue]:
    """Names shared between jump, run and projects shadow each other on the CLI."""
    issues = []
    seen = {k: "jump" for k in cfg.jump}
    for kind, names in (("run", cfg.run), ("projects", cfg.projects)):
        for name in names:
            if name in seen:
                issues.append(Issue(WARN, f"name '{name}' exists in {seen[name]} and {kind}"))
            else:
                seen[name] = kind
    return issues
