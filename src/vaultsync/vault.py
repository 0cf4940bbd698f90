"""
Vault endpoint facade — one locked connection per Vault server.

Wraps an ``hvac.Client`` and exposes exactly the operations the sync
engine needs. Every public method holds the endpoint lock for one
Vault call only, so the token worker can swap or renew the token
between calls made by the full sync and the reconciler.

All failures surface as EndpointError with the operation and target.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Optional

import hvac
from hvac.exceptions import VaultError
from requests.exceptions import RequestException

from .errors import EndpointError
from .models import AuthMethod, EngineVersion, VaultHost

logger = logging.getLogger("vaultsync.vault")


@dataclass(frozen=True)
class Credential:
    """An access token and the lease metadata Vault reported for it.

    Defaults describe a root token: not renewable, no TTL, no max TTL.
    """

    token: str = field(repr=False)
    renewable: bool = False
    ttl: Optional[timedelta] = None
    max_ttl: Optional[timedelta] = None

    @classmethod
    def from_lookup(cls, token: str, data: dict) -> "Credential":
        """Build from the ``data`` block of a token lookup-self response."""
        ttl = int(data.get("ttl") or 0)
        max_ttl = int(data.get("explicit_max_ttl") or 0)
        return cls(
            token=token,
            renewable=bool(data.get("renewable", False)),
            ttl=timedelta(seconds=ttl) if ttl > 0 else None,
            max_ttl=timedelta(seconds=max_ttl) if max_ttl > 0 else None,
        )


class VaultEndpoint:
    """Thread-safe facade over a single Vault server.

    Args:
        host: Endpoint configuration (URL, auth, namespace, engine version).
        name: Label used in log messages ("src" or "dst").
        client: Pre-built hvac client, mainly for tests.
    """

    def __init__(
        self,
        host: VaultHost,
        name: str = "vault",
        client: Optional[hvac.Client] = None,
    ):
        self.host = host
        self.name = name
        self._lock = threading.Lock()
        self._client = client or hvac.Client(url=host.url, namespace=host.namespace)
        self._credential: Optional[Credential] = None

    @classmethod
    def connect(cls, host: VaultHost, name: str = "vault") -> "VaultEndpoint":
        """Create an endpoint and authenticate it.

        Raises:
            EndpointError: If login or the token lookup fails.
        """
        endpoint = cls(host, name=name)
        endpoint.login()
        return endpoint

    @property
    def version(self) -> EngineVersion:
        return self.host.version

    @property
    def can_reissue(self) -> bool:
        """True if a brand-new token can be requested (AppRole)."""
        return self.host.auth_method == AuthMethod.APPROLE

    # ─── Auth ──────────────────────────────────────────────

    def login(self) -> Credential:
        """Authenticate with the configured credentials."""
        with self._lock:
            self._credential = self._authenticate()
        logger.info("Authenticated to %s (%s)", self.host.url, self.host.auth_method.value)
        return self._credential

    def credential_metadata(self) -> Credential:
        """Current credential, as observed at the last login or reissue."""
        with self._lock:
            if self._credential is None:
                return Credential(token=self._client.token or "")
            return self._credential

    def renew_credential(self) -> None:
        """Renew the current token in place."""
        with self._lock:
            self._call("renew", self.host.url, self._client.auth.token.renew_self)

    def reissue_credential(self) -> Credential:
        """Exchange the AppRole credentials for a brand-new token.

        The new token replaces the old one atomically under the lock.
        """
        if not self.can_reissue:
            raise EndpointError("reissue", self.host.url, "only AppRole tokens can be reissued")
        with self._lock:
            self._credential = self._authenticate()
            return self._credential

    def _authenticate(self) -> Credential:
        # Caller holds the lock.
        if self.host.auth_method == AuthMethod.APPROLE:
            self._call(
                "login",
                self.host.url,
                self._client.auth.approle.login,
                role_id=self.host.role_id,
                secret_id=self.host.secret_id,
                use_token=True,
            )
        else:
            self._client.token = self.host.token
        response = self._call("lookup-self", self.host.url, self._client.auth.token.lookup_self)
        return Credential.from_lookup(self._client.token, _data(response))

    # ─── Secrets ───────────────────────────────────────────

    def list_children(self, mount: str, path: str) -> list[str]:
        """List the names directly under ``path``; sub-trees end with '/'."""
        with self._lock:
            response = self._call(
                "list", f"{mount}/{path}", self._kv().list_secrets, path=path, mount_point=mount,
            )
        keys = _data(response).get("keys")
        if not isinstance(keys, list):
            raise EndpointError("list", f"{mount}/{path}", "response has no key list")
        return [str(k) for k in keys]

    def read_secret(self, mount: str, path: str) -> dict:
        with self._lock:
            if self.version == EngineVersion.V2:
                response = self._call(
                    "read",
                    f"{mount}/{path}",
                    self._client.secrets.kv.v2.read_secret_version,
                    path=path,
                    mount_point=mount,
                    raise_on_deleted_version=True,
                )
            else:
                response = self._call(
                    "read",
                    f"{mount}/{path}",
                    self._client.secrets.kv.v1.read_secret,
                    path=path,
                    mount_point=mount,
                )
        data = _data(response)
        if self.version == EngineVersion.V2:
            data = data.get("data")
        if not isinstance(data, dict):
            raise EndpointError("read", f"{mount}/{path}", "response has no secret data")
        return data

    def write_secret(self, mount: str, path: str, value: dict) -> None:
        with self._lock:
            self._call(
                "write",
                f"{mount}/{path}",
                self._kv().create_or_update_secret,
                path=path,
                secret=value,
                mount_point=mount,
            )

    def delete_secret(self, mount: str, path: str) -> None:
        """Delete a secret (for KV v2, the latest version)."""
        with self._lock:
            if self.version == EngineVersion.V2:
                delete = self._client.secrets.kv.v2.delete_latest_version_of_secret
            else:
                delete = self._client.secrets.kv.v1.delete_secret
            self._call("delete", f"{mount}/{path}", delete, path=path, mount_point=mount)

    # ─── Audit devices ─────────────────────────────────────

    def query_audit_devices(self) -> set[str]:
        """Names of the enabled audit devices, without the trailing '/'."""
        with self._lock:
            response = self._call(
                "audit-list", self.host.url, self._client.sys.list_enabled_audit_devices,
            )
        return {name.rstrip("/") for name in _data(response)}

    # ─── Internals ─────────────────────────────────────────

    def _kv(self):
        if self.version == EngineVersion.V2:
            return self._client.secrets.kv.v2
        return self._client.secrets.kv.v1

    @staticmethod
    def _call(operation: str, target: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except (VaultError, RequestException) as exc:
            raise EndpointError(operation, target, exc) from exc


def _data(response: Any) -> dict:
    """The ``data`` block of a Vault JSON response."""
    if isinstance(response, dict) and isinstance(response.get("data"), dict):
        return response["data"]
    return {}
