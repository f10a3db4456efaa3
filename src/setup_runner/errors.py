"""Error types shared by the dispatcher, stager and actions."""


class ConfigError(Exception):
    """Raised when required configuration or a required root path is missing."""
    pass


class CatalogMissingError(ConfigError):
    """Raised when the action catalog directory has not been staged."""

    def __init__(self, catalog_dir):
        self.catalog_dir = catalog_dir
        super().__init__(
            f"Action catalog not found: {catalog_dir}\n"
            f"Run 'setup-runner stage <checkout>' first."
        )


class UnknownActionError(ValueError):
    """Raised when an action name has no catalog entry."""

    def __init__(self, name: str, message: str = ""):
        self.name = name
        super().__init__(message or f"Unknown action: {name}")


class InvalidActionNameError(UnknownActionError):
    """Raised when an action name contains characters outside [A-Za-z0-9_-]."""

    def __init__(self, name: str):
        super().__init__(name, f"Invalid action name: {name!r}")


class ProvisioningError(Exception):
    """Raised by a step inside an action's work; carries the exit code to record."""

    def __init__(self, message: str, rc: int = 1):
        self.rc = rc if rc else 1
        super().__init__(message)
