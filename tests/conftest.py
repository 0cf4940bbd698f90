"""Shared test fixtures for vault-sync."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pytest
import yaml

from vaultsync.errors import EndpointError
from vaultsync.models import VaultHost
from vaultsync.vault import Credential


class FakeVault:
    """In-memory stand-in for VaultEndpoint.

    Secrets are keyed by (mount, path). Every call is recorded in
    ``calls`` as (operation, mount, path); entries in ``fail`` make the
    matching call raise EndpointError.
    """

    def __init__(
        self,
        secrets: Optional[dict] = None,
        name: str = "fake",
        host: Optional[VaultHost] = None,
        credential: Optional[Credential] = None,
        audit_devices: Optional[set] = None,
    ):
        self.secrets = dict(secrets or {})
        self.name = name
        self.host = host or VaultHost(url="http://fake:8200", token="t")
        self.credential = credential or Credential(token="t")
        self.audit_devices = audit_devices or set()
        self.calls: list[tuple] = []
        self.fail: set[tuple] = set()

    def _check(self, op: str, mount: str = "", path: str = "") -> None:
        self.calls.append((op, mount, path))
        if (op, mount, path) in self.fail:
            raise EndpointError(op, f"{mount}/{path}", "injected failure")

    def calls_of(self, op: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == op]

    def list_children(self, mount: str, path: str) -> list[str]:
        self._check("list", mount, path)
        children: list[str] = []
        for m, p in self.secrets:
            if m != mount or not p.startswith(path):
                continue
            rest = p[len(path):]
            head, sep, _ = rest.partition("/")
            name = head + sep
            if name not in children:
                children.append(name)
        if not children:
            raise EndpointError("list", f"{mount}/{path}", "not found")
        return children

    def read_secret(self, mount: str, path: str) -> dict:
        self._check("read", mount, path)
        try:
            return dict(self.secrets[(mount, path)])
        except KeyError:
            raise EndpointError("read", f"{mount}/{path}", "not found") from None

    def write_secret(self, mount: str, path: str, value: dict) -> None:
        self._check("write", mount, path)
        self.secrets[(mount, path)] = dict(value)

    def delete_secret(self, mount: str, path: str) -> None:
        self._check("delete", mount, path)
        self.secrets.pop((mount, path), None)

    def query_audit_devices(self) -> set:
        self._check("audit-list")
        return set(self.audit_devices)

    # Token lifecycle surface

    @property
    def can_reissue(self) -> bool:
        return self.host.auth_method is not None and self.host.auth_method.value == "approle"

    def credential_metadata(self) -> Credential:
        return self.credential

    def renew_credential(self) -> None:
        self._check("renew")

    def reissue_credential(self) -> Credential:
        self._check("reissue")
        return self.credential


class ScriptedStop:
    """Stop event stand-in: records each wait() and stops after ``sleeps`` of them.

    If ``clock`` is given, every wait advances it by the timeout plus ``drift``.
    """

    def __init__(self, sleeps: int, clock: Optional["FakeClock"] = None, drift: float = 0.0):
        self.waits: list[float] = []
        self._sleeps = sleeps
        self._clock = clock
        self._drift = drift

    def is_set(self) -> bool:
        return len(self.waits) > self._sleeps

    def wait(self, timeout: Optional[float] = None) -> bool:
        self.waits.append(timeout)
        if self._clock is not None and timeout is not None:
            self._clock.now += timeout + self._drift
        return self.is_set()


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def write_config(tmp_path: Path):
    """Write a config mapping to a YAML file and return its path."""

    def _write(data: dict) -> Path:
        path = tmp_path / "vault-sync.yaml"
        path.write_text(yaml.dump(data, default_flow_style=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def base_config() -> dict:
    """Minimal valid configuration with token auth on both sides."""
    return {
        "id": "vault-sync",
        "full_sync_interval": 60,
        "src": {"url": "http://src:8200", "prefix": "", "token": "src-token"},
        "dst": {"url": "http://dst:8200", "prefix": "", "token": "dst-token"},
    }
