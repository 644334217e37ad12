"""dm: personal launcher for folders, aliases, project actions and file tools."""

__version__ = "0.4.0"
