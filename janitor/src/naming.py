from __future__ import annotations

AUTH_SECRET_SUFFIX = "auth"
TLS_SECRET_SUFFIX = "tls"


def object_name(uid: str, group: str = "") -> str:
    """Return the ConfigMap name for *group* of instance *uid*.

    The root group (``""``) maps to the bare uid, every other group to
    ``<uid>-<group>``.
    """
    if not group:
        return uid
    return f"{uid}-{group}"


def belongs_to_instance(uid: str, candidate_name: str) -> bool:
    """Return True when *candidate_name* is one of the objects derived from *uid*.

    Matching on the name prefix lets teardown find every group's object even
    after the source tree changed or disappeared.
    """
    return candidate_name == uid or candidate_name.startswith(f"{uid}-")


def auth_secret_name(uid: str) -> str:
    return object_name(uid, AUTH_SECRET_SUFFIX)


def tls_secret_name(uid: str) -> str:
    return object_name(uid, TLS_SECRET_SUFFIX)


def pod_name_prefix(uid: str) -> str:
    return f"{uid}-"
