"""
Full sync — enumerate every secret under the source prefix.

Walks each configured mount depth-first with an explicit stack. Every
leaf becomes a Create event; one CycleComplete follows once all mounts
have been walked.

A listing failure drops that sub-tree for the current pass only. The
next scheduled pass tries again.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol

from ..errors import EndpointError
from .events import CycleComplete, Create, SyncEvent
from .paths import SEPARATOR, SecretRef, normalize_prefix

logger = logging.getLogger("vaultsync.sync.discovery")


class SecretLister(Protocol):
    def list_children(self, mount: str, path: str) -> list[str]: ...


@dataclass
class _Frame:
    """One directory being listed: its path, children, and a cursor."""

    parent: str
    children: Optional[list[str]] = None
    index: int = 0


def walk_mount(
    lister: SecretLister,
    mount: str,
    prefix: str,
    emit: Callable[[SyncEvent], None],
) -> int:
    """Emit a Create for every secret under ``prefix`` in ``mount``.

    Args:
        lister: Endpoint used for listing.
        mount: Mount to walk.
        prefix: Normalized logical path to start from ("" for the whole mount).
        emit: Receives each Create event.

    Returns:
        Number of secrets found.
    """
    found = 0
    stack = [_Frame(parent=prefix)]

    while stack:
        frame = stack[-1]
        if frame.children is None:
            try:
                frame.children = lister.list_children(mount, frame.parent)
            except EndpointError as exc:
                logger.warning("Failed to list secrets in %s/%s: %s", mount, frame.parent, exc)
                stack.pop()
                continue

        descended = False
        while frame.index < len(frame.children):
            name = frame.children[frame.index]
            frame.index += 1
            if name.endswith(SEPARATOR):
                stack.append(_Frame(parent=frame.parent + name))
                descended = True
                break
            emit(Create(SecretRef(mount, frame.parent + name)))
            found += 1

        if not descended:
            stack.pop()

    return found


def full_sync(
    lister: SecretLister,
    mounts: Iterable[str],
    prefix: str,
    events: "queue.Queue[SyncEvent]",
) -> None:
    """Run one full pass over ``mounts`` and finish with CycleComplete."""
    prefix = normalize_prefix(prefix)
    logger.info("FullSync started")
    started = time.monotonic()
    total = 0
    for mount in mounts:
        total += walk_mount(lister, mount, prefix, events.put)
    events.put(CycleComplete())
    logger.info(
        "FullSync finished in %dms, %d secret(s) found",
        (time.monotonic() - started) * 1000,
        total,
    )


class FullSyncScheduler:
    """Runs full_sync every ``interval`` seconds until stopped.

    The first pass starts immediately.
    """

    def __init__(
        self,
        lister: SecretLister,
        mounts: Iterable[str],
        prefix: str,
        events: "queue.Queue[SyncEvent]",
        interval: float,
        stop_event: Optional[threading.Event] = None,
    ):
        self.lister = lister
        self.mounts = list(mounts)
        self.prefix = prefix
        self.events = events
        self.interval = interval
        self._stop_event = stop_event or threading.Event()

    def run(self) -> None:
        logger.info("FullSync worker started, interval %ss", self.interval)
        while not self._stop_event.is_set():
            full_sync(self.lister, self.mounts, self.prefix, self.events)
            if self._stop_event.wait(timeout=self.interval):
                break
        logger.info("FullSync worker stopped")
