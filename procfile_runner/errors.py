from __future__ import annotations


class InvalidLoad(ValueError):
    """The process list handed to a load is empty or malformed."""


class UnknownProcess(LookupError):
    """A name that is not part of the currently loaded process set."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No process named '{name}'")
        self.name = name


class ExternalCallFailure(RuntimeError):
    """A supervisor or auxiliary call failed; shown to the user verbatim."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(str(cause) or cause.__class__.__name__)
        self.operation = operation
        self.cause = cause
