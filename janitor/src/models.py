from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

API_VERSION = "v1"

# group name -> (file name -> raw content); "" is the repository root
ConfigTree = dict[str, dict[str, bytes]]


class Status(str, Enum):
    """Status tag carried by every response."""

    OK = "OK"
    PENDING = "PENDING"
    FAILED = "FAILED"


class Readiness(str, Enum):
    READY = "READY"
    PENDING = "PENDING"
    FAILED = "FAILED"

    def to_status(self) -> Status:
        if self is Readiness.READY:
            return Status.OK
        if self is Readiness.PENDING:
            return Status.PENDING
        return Status.FAILED


@dataclass(frozen=True)
class Instance:
    """A tenant application deployment.

    Attributes:
        uid:       Stable identifier, root of every derived object name.
        namespace: Kubernetes namespace the instance lives in.
        domain:    Tenant grouping in GitLab, used to locate the config project.
    """

    uid: str
    namespace: str
    domain: str = ""


@dataclass(frozen=True)
class Credentials:
    user: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class PodRef:
    name: str
    containers: tuple[str, ...] = ()


@dataclass(frozen=True)
class PodSummary:
    name: str
    display_name: str
    containers: tuple[str, ...]


@dataclass(frozen=True)
class InstanceStatus:
    readiness: Readiness
    message: str
    error: Exception | None = None


@dataclass(frozen=True)
class AppliedObject:
    """Outcome of a single create-or-update against the cluster."""

    kind: str
    name: str
    action: str


@dataclass(frozen=True)
class TeardownResult:
    deleted: tuple[str, ...]
    failed: tuple[str, ...]


@dataclass(frozen=True)
class ServiceResponse:
    """Transport-agnostic answer returned by every operation.

    ``payload`` is ``None``, a string (IP or service name), a list of
    :class:`PodSummary` or a list of log strings depending on the operation.
    ``error`` keeps the underlying exception for programmatic callers.
    """

    status: Status
    message: str = ""
    payload: Any = None
    error: Exception | None = None
    api: str = API_VERSION

    @property
    def ok(self) -> bool:
        return self.status is Status.OK
