"""
Path translation between Vault's native paths and sync identities.

A secret is identified by its mount plus a logical path inside that
mount. Native audit paths carry engine-specific segments (``data/``
for KV v2) which are stripped here, and logical paths are moved from
the source prefix to the destination prefix.

    parse_native_path("secret/data/app/db", V2) -> SecretRef("secret", "app/db")
    translate_path("src/", "dst/", "src/app/db") -> "dst/app/db"
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from ..models import EngineVersion

SEPARATOR = "/"


@dataclass(frozen=True)
class SecretRef:
    """Endpoint-agnostic identity of a secret."""

    mount: str
    path: str

    def __str__(self) -> str:
        return f"{self.mount}{SEPARATOR}{self.path}"


def normalize_prefix(prefix: str) -> str:
    """Return ``prefix`` with a trailing separator, or empty if empty."""
    if not prefix:
        return ""
    if prefix.endswith(SEPARATOR):
        return prefix
    return prefix + SEPARATOR


def parse_native_path(native_path: str, version: EngineVersion) -> Optional[SecretRef]:
    """Split a native Vault request path into mount and logical path.

    Args:
        native_path: Path as it appears in the audit log, e.g. ``secret/data/a/b``.
        version: KV engine version of the mount.

    Returns:
        SecretRef, or None if the path does not address a secret. For KV v2
        only ``data/`` paths are supported; ``metadata/`` paths yield None.
    """
    parts = native_path.split(SEPARATOR)
    if version == EngineVersion.V1:
        if len(parts) < 2:
            return None
        return SecretRef(parts[0], SEPARATOR.join(parts[1:]))

    if len(parts) < 3 or parts[1] != "data":
        return None
    return SecretRef(parts[0], SEPARATOR.join(parts[2:]))


def translate_path(src_prefix: str, dst_prefix: str, path: str) -> str:
    """Move a logical path from the source prefix to the destination prefix.

    Both prefixes must already be normalized.
    """
    if src_prefix and path.startswith(src_prefix):
        path = path[len(src_prefix):]
    return dst_prefix + path


@dataclass(frozen=True)
class PrefixPair:
    """Normalized source and destination path prefixes."""

    src: str
    dst: str

    @classmethod
    def from_raw(cls, src: str, dst: str) -> "PrefixPair":
        return cls(normalize_prefix(src), normalize_prefix(dst))

    def covers(self, path: str) -> bool:
        """True if ``path`` lies under the source prefix."""
        return path.startswith(self.src)

    def translate(self, path: str) -> str:
        return translate_path(self.src, self.dst, path)


class MountMap:
    """Index-aligned, one-to-one mapping of source mounts to destination mounts.

    Args:
        src_mounts: Source mounts in configuration order.
        dst_mounts: Destination mounts; must be the same length.

    Raises:
        ValueError: If the lists differ in length.
    """

    def __init__(self, src_mounts: Iterable[str], dst_mounts: Iterable[str]):
        src_mounts = list(src_mounts)
        dst_mounts = list(dst_mounts)
        if len(src_mounts) != len(dst_mounts):
            raise ValueError(
                f"mount lists differ in length: {len(src_mounts)} != {len(dst_mounts)}"
            )
        self._pairs = dict(zip(src_mounts, dst_mounts))
        self.src_mounts = src_mounts

    def __getitem__(self, src_mount: str) -> str:
        return self._pairs[src_mount]

    def __contains__(self, src_mount: object) -> bool:
        return src_mount in self._pairs

    def __len__(self) -> int:
        return len(self._pairs)

    def __repr__(self) -> str:
        return f"MountMap({self._pairs!r})"
