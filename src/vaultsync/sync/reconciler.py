"""
Reconciler — applies sync events to the destination Vault.

The single consumer of the event queue. Events are handled strictly
in arrival order; two changes to the same secret are never merged or
reordered. A Create/Update is copied only if the destination differs,
so replaying events (every full sync does) costs reads, not writes.

Per-secret failures are logged and dropped. The next full sync or
audit event for that secret heals the destination.
"""

from __future__ import annotations

import logging
import queue
from typing import Optional, Protocol

from ..errors import EndpointError
from .events import CycleComplete, Create, Delete, SecretEvent, SyncEvent, SyncStats, Update
from .paths import MountMap, PrefixPair, SecretRef

logger = logging.getLogger("vaultsync.sync.reconciler")


class SecretStore(Protocol):
    def read_secret(self, mount: str, path: str) -> dict: ...

    def write_secret(self, mount: str, path: str, value: dict) -> None: ...

    def delete_secret(self, mount: str, path: str) -> None: ...


class Reconciler:
    """Mirrors source secrets onto the destination, one event at a time.

    Args:
        src: Source endpoint.
        dst: Destination endpoint.
        mount_map: Source mount to destination mount mapping.
        prefixes: Normalized source/destination prefixes.
        dry_run: Compute changes but never touch the destination.
        run_once: Stop at the first CycleComplete.
    """

    def __init__(
        self,
        src: SecretStore,
        dst: SecretStore,
        mount_map: MountMap,
        prefixes: PrefixPair,
        dry_run: bool = False,
        run_once: bool = False,
    ):
        self.src = src
        self.dst = dst
        self.mount_map = mount_map
        self.prefixes = prefixes
        self.dry_run = dry_run
        self.run_once = run_once
        self.stats = SyncStats()

    def destination_of(self, ref: SecretRef) -> SecretRef:
        """Where ``ref`` lives on the destination.

        Raises:
            KeyError: If the source mount is not configured.
        """
        return SecretRef(self.mount_map[ref.mount], self.prefixes.translate(ref.path))

    def handle(self, event: SyncEvent) -> bool:
        """Apply one event.

        Returns:
            True if the consumer loop should stop.
        """
        if isinstance(event, (Create, Update)):
            self._copy(event)
        elif isinstance(event, Delete):
            self._delete(event)
        elif isinstance(event, CycleComplete):
            logger.info(
                "Secrets created/updated: %d, deleted: %d",
                self.stats.updated,
                self.stats.deleted,
            )
            self.stats.reset()
            return self.run_once
        else:
            raise TypeError(f"unknown sync event: {event!r}")
        return False

    def run(self, events: "queue.Queue[SyncEvent]") -> None:
        """Consume ``events`` until a stopping CycleComplete arrives."""
        logger.info("Sync worker started (dry run: %s)", self.dry_run)
        while True:
            if self.handle(events.get()):
                break
        logger.info("Sync worker finished")

    def _copy(self, event: SecretEvent) -> None:
        src_ref = event.ref
        dst_ref = self.destination_of(src_ref)

        try:
            value = self.src.read_secret(src_ref.mount, src_ref.path)
        except EndpointError as exc:
            logger.warning("Failed to get secret %s: %s", src_ref, exc)
            return

        current: Optional[dict]
        try:
            current = self.dst.read_secret(dst_ref.mount, dst_ref.path)
        except EndpointError:
            current = None

        if current == value:
            return

        logger.info("Creating/updating secret %s", dst_ref)
        if self.dry_run:
            return
        try:
            self.dst.write_secret(dst_ref.mount, dst_ref.path, value)
        except EndpointError as exc:
            logger.warning("Failed to set secret %s: %s", dst_ref, exc)
            return
        self.stats.updated += 1

    def _delete(self, event: Delete) -> None:
        dst_ref = self.destination_of(event.ref)
        logger.info("Deleting secret %s", dst_ref)
        if not self.dry_run:
            try:
                self.dst.delete_secret(dst_ref.mount, dst_ref.path)
            except EndpointError as exc:
                logger.warning("Failed to delete secret %s: %s", dst_ref, exc)
        # Counts intended deletions, including dry-run and failed ones.
        self.stats.deleted += 1
