"""
Sync events — the messages flowing from producers to the reconciler.

Producers (full sync, audit tailers) put events on one queue; the
reconciler is its only consumer. CycleComplete is the end-of-pass
marker emitted by the full sync after every Create of that pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .paths import SecretRef


@dataclass(frozen=True)
class Create:
    """A secret exists at the source and should exist at the destination."""

    ref: SecretRef


@dataclass(frozen=True)
class Update:
    """A secret was written at the source."""

    ref: SecretRef


@dataclass(frozen=True)
class Delete:
    """A secret was deleted at the source."""

    ref: SecretRef


@dataclass(frozen=True)
class CycleComplete:
    """End of one full sync pass."""


SecretEvent = Union[Create, Update, Delete]
SyncEvent = Union[Create, Update, Delete, CycleComplete]

OPERATION_EVENTS = {
    "create": Create,
    "update": Update,
    "delete": Delete,
}


@dataclass
class SyncStats:
    """Destination changes since the last CycleComplete."""

    updated: int = 0
    deleted: int = 0

    def reset(self) -> None:
        self.updated = 0
        self.deleted = 0
