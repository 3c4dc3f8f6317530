from __future__ import annotations

import base64
import logging
import random
import secrets
import string

from kubernetes.client import CoreV1Api
from passlib.hash import apr_md5_crypt

from janitor.src.kube import ensure_namespace, require_namespace
from janitor.src.models import AppliedObject, Credentials, Instance
from janitor.src.naming import auth_secret_name, tls_secret_name
from janitor.src.objects import (
    ObjectStore,
    UpdateStrategy,
    apply_object,
    build_object,
    delete_object,
    object_exists,
    secret_store,
)

LOGGER = logging.getLogger(__name__)

AUTH_KEY = "auth"
SALT_LENGTH = 8
SALT_ALPHABET = string.ascii_uppercase


def random_salt(rng: random.Random, length: int = SALT_LENGTH) -> str:
    return "".join(rng.choice(SALT_ALPHABET) for _ in range(length))


def hash_secret_payload(credentials: Credentials, rng: random.Random | None = None) -> bytes:
    """Return an htpasswd line ``user:$apr1$<salt>$<digest>`` for *credentials*.

    The Apache apr1 MD5 scheme is what ingress controllers expect in a
    basic-auth secret.  The salt is drawn from *rng*, a cryptographically
    secure source unless the caller injects another one.
    """
    salt = random_salt(rng or secrets.SystemRandom())
    digest = apr_md5_crypt.using(salt=salt).hash(credentials.password)
    return f"{credentials.user}:{digest}".encode()


class CredentialReconciler:
    """Manages the ``<uid>-auth`` basic-auth secret and removes ``<uid>-tls``.

    The auth secret is created once and merge-patched afterwards, so keys an
    operator added next to ``auth`` survive a credential change.  The TLS
    secret belongs to cert-manager; only its deletion happens here.
    """

    def __init__(
        self,
        core_api: CoreV1Api,
        rng: random.Random | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.core_api = core_api
        self.rng = rng or secrets.SystemRandom()
        self.store: ObjectStore = secret_store(core_api)
        self.logger = logger or LOGGER

    def reconcile(self, instance: Instance, credentials: Credentials) -> AppliedObject:
        ensure_namespace(self.core_api, instance.namespace)

        payload = hash_secret_payload(credentials, self.rng)
        body = build_object(
            kind="Secret",
            name=auth_secret_name(instance.uid),
            namespace=instance.namespace,
            payload={"data": {AUTH_KEY: base64.b64encode(payload).decode("ascii")}},
        )
        return apply_object(self.store, instance.namespace, body, UpdateStrategy.MERGE_PATCH)

    def _delete_secret(self, instance: Instance, name: str) -> bool:
        require_namespace(self.core_api, instance.namespace)
        if not object_exists(self.store, instance.namespace, name):
            self.logger.info("Secret %s/%s does not exist", instance.namespace, name)
            return False
        return delete_object(self.store, instance.namespace, name)

    def teardown(self, instance: Instance) -> bool:
        """Delete the auth secret; return False when there was nothing to delete."""
        return self._delete_secret(instance, auth_secret_name(instance.uid))

    def teardown_tls(self, instance: Instance) -> bool:
        return self._delete_secret(instance, tls_secret_name(instance.uid))
