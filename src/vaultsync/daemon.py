"""
Sync daemon — the long-running vault-sync process.

Connects to both Vault servers, then runs the workers as threads:

    fullsync  - periodic full sync of the source into the event queue
    audit     - TCP listener for the source audit device (if bound)
    sync      - the reconciler, sole consumer of the event queue
    token-src - token lifecycle for the source
    token-dst - token lifecycle for the destination

In one-shot mode only a single full sync and the reconciler run, and
the process is done at the first CycleComplete.
"""

from __future__ import annotations

import json
import logging
import queue
import signal
import threading
from typing import Callable, Optional

from .models import VaultHost, VaultSyncConfig
from .sync.audit import AuditFilter, AuditLogServer, audit_device_exists
from .sync.discovery import FullSyncScheduler, full_sync
from .sync.events import SyncEvent
from .sync.paths import MountMap, PrefixPair
from .sync.reconciler import Reconciler
from .tokens import TokenLifecycleManager
from .vault import VaultEndpoint

logger = logging.getLogger("vaultsync.daemon")

Connector = Callable[[VaultHost, str], VaultEndpoint]


class SyncService:
    """The vault-sync process.

    Args:
        config: Validated configuration.
        dry_run: Never modify the destination.
        run_once: Run one full sync and stop.
        connect: Builds an authenticated endpoint; replaced in tests.
    """

    def __init__(
        self,
        config: VaultSyncConfig,
        dry_run: bool = False,
        run_once: bool = False,
        connect: Connector = VaultEndpoint.connect,
    ):
        self.config = config
        self.dry_run = dry_run
        self.run_once = run_once
        self._connect = connect
        self.events: "queue.Queue[SyncEvent]" = queue.Queue()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._server: Optional[AuditLogServer] = None
        self.src: Optional[VaultEndpoint] = None
        self.dst: Optional[VaultEndpoint] = None
        self.reconciler: Optional[Reconciler] = None

    def start(self) -> None:
        """Connect to both endpoints and start the workers.

        Raises:
            EndpointError: If either endpoint cannot be reached or logged into.
            OSError: If the audit listener cannot bind.
        """
        config = self.config
        logger.info("Configuration:\n%s", json.dumps(config.sanitized(), indent=2))

        if config.bind_address and not self.run_once:
            self._server = AuditLogServer(
                config.bind_address,
                AuditFilter(config.src.mounts, config.src.prefix, config.src.version),
                self.events,
            )

        try:
            logger.info("Connecting to %s", config.src.url)
            self.src = self._connect(config.src, "src")
            logger.info(
                "Audit device %s exists: %s",
                config.id,
                audit_device_exists(self.src, config.id),
            )
            logger.info("Connecting to %s", config.dst.url)
            self.dst = self._connect(config.dst, "dst")
        except Exception:
            if self._server is not None:
                self._server.server_close()
                self._server = None
            raise

        self.reconciler = Reconciler(
            self.src,
            self.dst,
            MountMap(config.src.mounts, config.dst.mounts),
            PrefixPair.from_raw(config.src.prefix, config.dst.prefix),
            dry_run=self.dry_run,
            run_once=self.run_once,
        )
        logger.info("Dry run: %s", self.dry_run)
        self._spawn("sync", lambda: self.reconciler.run(self.events))

        if self.run_once:
            return

        scheduler = FullSyncScheduler(
            self.src,
            config.src.mounts,
            config.src.prefix,
            self.events,
            interval=config.full_sync_interval,
            stop_event=self._stop_event,
        )
        self._spawn("fullsync", scheduler.run)
        self._spawn("token-src", TokenLifecycleManager(self.src, self._stop_event).run)
        self._spawn("token-dst", TokenLifecycleManager(self.dst, self._stop_event).run)
        if self._server is not None:
            self._spawn("audit", self._server.serve_forever)

    def run_once_and_wait(self) -> None:
        """Run a single full sync and wait for the reconciler to drain it."""
        full_sync(self.src, self.config.src.mounts, self.config.src.prefix, self.events)
        for t in self._threads:
            t.join()

    def run_forever(self) -> None:
        """Block until a shutdown signal arrives, then stop."""
        self._setup_signals()
        try:
            while not self._stop_event.is_set():
                self._stop_event.wait(timeout=1)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the scheduler, token workers and listener."""
        logger.info("vault-sync stopping...")
        self._stop_event.set()
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
        # The reconciler blocks on the queue and ends with the process.
        for t in self._threads:
            if t.name != "vault-sync-sync":
                t.join(timeout=5)
        logger.info("vault-sync stopped.")

    def _spawn(self, name: str, target: Callable[[], None]) -> None:
        t = threading.Thread(target=target, name=f"vault-sync-{name}", daemon=True)
        t.start()
        self._threads.append(t)

    def _setup_signals(self) -> None:
        """Register signal handlers for graceful shutdown."""
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, self._handle_signal)

    def _handle_signal(self, signum, frame):
        logger.info("Received signal %s, stopping", signal.Signals(signum).name)
        self._stop_event.set()
