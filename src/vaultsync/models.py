"""
Pydantic models for the vault-sync configuration.

The YAML file maps onto VaultSyncConfig. Validation here enforces
the invariants the sync engine relies on: every endpoint has some
form of auth, mount lists line up one-to-one, and the listener
address is well formed.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_MOUNT = "secret"
MASK = "***"


class EngineVersion(int, Enum):
    """KV secrets engine path convention."""

    V1 = 1
    V2 = 2


class AuthMethod(str, Enum):
    """How an endpoint authenticates."""

    TOKEN = "token"
    APPROLE = "approle"


class VaultHost(BaseModel):
    """Connection and path settings for one Vault endpoint.

    Auth is either a fixed ``token`` or an AppRole ``role_id`` plus
    ``secret_id``. ``token_ttl`` and ``token_max_ttl`` are optional
    ceilings (seconds) that can only tighten what the server reports.
    """

    url: str
    prefix: str = ""
    namespace: Optional[str] = None
    backend: Optional[str] = None
    backends: Optional[list[str]] = None
    version: EngineVersion = EngineVersion.V2

    token: Optional[str] = Field(default=None, repr=False)
    role_id: Optional[str] = Field(default=None, repr=False)
    secret_id: Optional[str] = Field(default=None, repr=False)
    token_ttl: Optional[int] = Field(default=None, ge=0)
    token_max_ttl: Optional[int] = Field(default=None, ge=0)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, v: Any) -> Any:
        """Accept ``2`` and ``"2"`` alike."""
        if isinstance(v, str) and v.strip().isdigit():
            return int(v)
        return v

    @model_validator(mode="after")
    def check_mounts(self) -> "VaultHost":
        if self.backend is not None and self.backends is not None:
            raise ValueError("set either 'backend' or 'backends', not both")
        if self.backends is not None and not self.backends:
            raise ValueError("'backends' must not be empty")
        return self

    @property
    def has_mounts(self) -> bool:
        """True if this section names its own mounts."""
        return self.backend is not None or self.backends is not None

    @property
    def mounts(self) -> list[str]:
        """Configured mounts in declaration order."""
        if self.backends is not None:
            return list(self.backends)
        if self.backend is not None:
            return [self.backend]
        return [DEFAULT_MOUNT]

    @property
    def auth_method(self) -> Optional[AuthMethod]:
        """The auth method implied by the configured credentials."""
        if self.token:
            return AuthMethod.TOKEN
        if self.role_id and self.secret_id:
            return AuthMethod.APPROLE
        return None


class VaultSyncConfig(BaseModel):
    """Complete vault-sync configuration.

    Attributes:
        id: Instance name; also the audit device name looked up on the source.
        full_sync_interval: Seconds between full syncs.
        bind: Optional ``host:port`` for the audit log listener.
        src: Source Vault.
        dst: Destination Vault.
    """

    id: str = "vault-sync"
    full_sync_interval: int = Field(default=3600, ge=1)
    bind: Optional[str] = None
    src: VaultHost
    dst: VaultHost

    @field_validator("bind")
    @classmethod
    def bind_must_have_port(cls, v: Optional[str]) -> Optional[str]:
        """Ensure bind looks like host:port."""
        if v is None:
            return v
        host, sep, port = v.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"bind must be host:port, got '{v}'")
        return v

    @model_validator(mode="after")
    def align_mounts(self) -> "VaultSyncConfig":
        if not self.dst.has_mounts:
            self.dst.backends = self.src.mounts
        src_count = len(self.src.mounts)
        dst_count = len(self.dst.mounts)
        if src_count != dst_count:
            raise ValueError(
                f"source has {src_count} mount(s) but destination has {dst_count}; "
                "only one-to-one mount mappings are supported"
            )
        return self

    @property
    def bind_address(self) -> Optional[tuple[str, int]]:
        """``bind`` split into a (host, port) tuple, or None."""
        if self.bind is None:
            return None
        host, _, port = self.bind.rpartition(":")
        return host.strip("[]"), int(port)

    def sanitized(self) -> dict:
        """Serializable dump with credentials masked, for logging."""
        data = self.model_dump(mode="json")
        for section in ("src", "dst"):
            for key in ("token", "role_id", "secret_id"):
                if data[section].get(key) is not None:
                    data[section][key] = MASK
        return data
