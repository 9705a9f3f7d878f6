from collections.abc import Sequence


class BuildError(Exception):
    pass


class ConfigReadError(BuildError):
    pass


class MalformedConfigError(ConfigReadError):
    pass


class RenderError(BuildError):
    def __init__(self, template_name: str, cause: Exception) -> None:
        self.template_name = template_name
        self.cause = cause
        super().__init__(f"Failed to render template '{template_name}': {cause}")


class ScriptCollectionError(BuildError):
    def __init__(self, failures: Sequence[tuple[str, BaseException]]) -> None:
        self.failures = list(failures)
        self.paths = [path for path, _ in self.failures]
        details = "; ".join(f"{path}: {error}" for path, error in self.failures)
        super().__init__(f"Failed to read event handler scripts: {details}")


class ArchiveError(BuildError):
    pass


class BackendUnavailableError(BuildError):
    pass


class BuildStepFailure(BuildError):
    pass
