"""Exception taxonomy for probing, graph building and assembly."""


class FFmpegNotFoundError(RuntimeError):
    pass


class ProbeError(RuntimeError):
    """Duration probing failed for a segment."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class ToolUnavailableError(ProbeError):
    """The probe subprocess could not be started."""


class UnparsableOutputError(ProbeError):
    """The probe output was not a finite positive number of seconds."""


class GraphBuildError(Exception):
    pass


class InsufficientDataError(GraphBuildError):
    """Not enough measured data to build transitions; join segments plainly instead."""


class AssemblyError(RuntimeError):
    """The media engine did not produce a usable output file."""

    def __init__(self, message: str, details: str = "", returncode: int | None = None):
        super().__init__(message)
        self.details = details
        self.returncode = returncode

    def __str__(self) -> str:
        base = super().__str__()
        if self.details:
            return f"{base}: {self.details[-1000:]}"
        return base


class ToolFailedError(AssemblyError):
    pass


class EmptyOutputError(AssemblyError):
    pass


class MissingOutputError(AssemblyError):
    pass
