class DMError(Exception):
    pass


class ConfigError(DMError):
    def __init__(self, path, message):
        self.path = path
        super().__init__(f"{path}: {message}")


class NotFoundError(DMError):
    def __init__(self, kind, name):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} not found: {name}")


class PluginNotFoundError(NotFoundError):
    def __init__(self, name):
        super().__init__("plugin", name)


class PluginRunError(DMError):
    def __init__(self, name, returncode, output=""):
        self.name = name
        self.returncode = returncode
        self.output = output
        super().__init__(f"plugin {name} exited with status {returncode}")


class PlanError(DMError):
    pass
