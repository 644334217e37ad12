from typing import Optional


def _str_map(value) -> dict:
    """Coerce a JSON object of strings, treating null/missing as empty."""
    if not value:
        return {}
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _str_list(value) -> list:
    if not value:
        return []
    return [str(v) for v in value]


def _knowledge(data: dict) -> str:
    search = data.get("search") or {}
    return str(search.get("knowledge") or "")


class Project:
    """A named directory with shell actions (e.g. build, test, serve)."""

    def __init__(self, path="", commands=None):
        self.path = path
        self.commands = dict(commands or {})

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(str(data.get("path") or ""), _str_map(data.get("commands")))

    def to_dict(self):
        return {"path": self.path, "commands": dict(self.commands)}

    def __eq__(self, other):
        if not isinstance(other, Project):
            return NotImplemented
        return self.path == other.path and self.commands == other.commands

    def __repr__(self):
        return f"Project({self.path!r}, {self.commands!r})"


class Profile:
    def __init__(self, include=None, knowledge=""):
        self.include = list(include or [])
        self.knowledge = knowledge

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(_str_list(data.get("include")), _knowledge(data))

    def to_dict(self):
        return {"include": list(self.include), "search": {"knowledge": self.knowledge}}


class Config:
    """The merged launcher configuration: jumps, run aliases and projects."""

    def __init__(self, jump=None, run=None, projects=None, knowledge="",
                 include=None, profiles=None):
        self.jump = dict(jump or {})
        self.run = dict(run or {})
        self.projects = dict(projects or {})
        self.knowledge = knowledge
        self.include = list(include or [])
        self.profiles = dict(profiles or {})

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        projects = {
            str(name): Project.from_dict(p)
            for name, p in (data.get("projects") or {}).items()
        }
        profiles = {
            str(name): Profile.from_dict(p)
            for name, p in (data.get("profiles") or {}).items()
        }
        return cls(
            jump=_str_map(data.get("jump")),
            run=_str_map(data.get("run")),
            projects=projects,
            knowledge=_knowledge(data),
            include=_str_list(data.get("include")),
            profiles=profiles,
        )

    def to_dict(self):
        result = {
            "jump": dict(self.jump),
            "run": dict(self.run),
            "projects": {name: p.to_dict() for name, p in self.projects.items()},
            "search": {"knowledge": self.knowledge},
        }
        if self.include:
            result["include"] = list(self.include)
        if self.profiles:
            result["profiles"] = {name: p.to_dict() for name, p in self.profiles.items()}
        return result

    def names(self):
        """Yield (kind, name) for every addressable entry."""
        for name in self.jump:
            yield "jump", name
        for name in self.run:
            yield "run", name
        for name in self.projects:
            yield "project", name

    def target_path(self, name) -> Optional[str]:
        """Raw (unresolved) path of a jump or project, or None."""
        if name in self.jump:
            return self.jump[name]
        if name in self.projects:
            return self.projects[name].path
        return None


class PackFile:
    """Contents of packs/<name>/pack.json."""

    SCHEMA_VERSION = 1

    def __init__(self, schema_version=SCHEMA_VERSION, description="", summary="",
                 owner="", tags=None, examples=None, jump=None, run=None,
                 projects=None, knowledge=""):
        self.schema_version = schema_version
        self.description = description
        self.summary = summary
        self.owner = owner
        self.tags = list(tags or [])
        self.examples = list(examples or [])
        self.jump = dict(jump or {})
        self.run = dict(run or {})
        self.projects = dict(projects or {})
        self.knowledge = knowledge

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        try:
            schema_version = int(data.get("schema_version") or 0)
        except (TypeError, ValueError):
            schema_version = 0
        return cls(
            schema_version=schema_version,
            description=str(data.get("description") or ""),
            summary=str(data.get("summary") or ""),
            owner=str(data.get("owner") or ""),
            tags=_str_list(data.get("tags")),
            examples=_str_list(data.get("examples")),
            jump=_str_map(data.get("jump")),
            run=_str_map(data.get("run")),
            projects={
                str(name): Project.from_dict(p)
                for name, p in (data.get("projects") or {}).items()
            },
            knowledge=_knowledge(data),
        )

    def to_dict(self):
        return {
            "schema_version": self.schema_version,
            "description": self.description,
            "summary": self.summary,
            "owner": self.owner,
            "tags": list(self.tags),
            "examples": list(self.examples),
            "jump": dict(self.jump),
            "run": dict(self.run),
            "projects": {name: p.to_dict() for name, p in self.projects.items()},
            "search": {"knowledge": self.knowledge},
        }

    @property
    def action_count(self):
        return sum(len(p.commands) for p in self.projects.values())
