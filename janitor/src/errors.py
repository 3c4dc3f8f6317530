from __future__ import annotations


class JanitorError(Exception):
    """Base class for every failure surfaced by a janitor operation."""


class NotFoundError(JanitorError):
    """A namespace, source project, workload, secret or pod required by the operation is absent."""


class AmbiguousSourceError(NotFoundError):
    """Zero or several GitLab groups matched an instance domain.

    The project is never guessed: an ambiguous match is rejected the same way
    a missing one is.
    """


class RemoteIOError(JanitorError):
    """A call to GitLab or the Kubernetes API failed in transport or returned garbage."""


class UnsupportedVersionError(JanitorError):
    """The caller asked for an API version this service does not implement."""


class PartialFailureError(JanitorError):
    """Some items of a bulk pass failed while the others succeeded."""

    def __init__(self, message: str, failed: list[str]) -> None:
        super().__init__(message)
        self.failed = list(failed)
