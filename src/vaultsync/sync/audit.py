"""
Audit log tail — incremental changes from the source Vault.

Vault's socket audit device streams one JSON record per line for every
request it serves. A TCP listener accepts those streams (one thread
per connection) and turns successful KV create/update/delete
responses under the source prefix into sync events.

Anything else on the stream is ignored. Records that fail to decode
are logged and skipped; they never close the connection.
"""

from __future__ import annotations

import logging
import queue
import socket
import socketserver
from typing import IO, Iterable, Optional

from pydantic import BaseModel, ValidationError

from ..errors import EndpointError
from ..models import EngineVersion
from .events import OPERATION_EVENTS, SecretEvent, SyncEvent
from .paths import normalize_prefix, parse_native_path

logger = logging.getLogger("vaultsync.sync.audit")

RESPONSE_TYPE = "response"
KV_MOUNT_TYPE = "kv"


class AuditRequest(BaseModel):
    """The request half of an audit record."""

    operation: str
    mount_type: Optional[str] = None
    path: str


class AuditRecord(BaseModel):
    """One line of the Vault audit log (unused fields are dropped)."""

    time: str
    type: str
    request: AuditRequest


class AuditFilter:
    """Decides which audit records become sync events.

    Args:
        mounts: Source mounts being synced.
        prefix: Source prefix; normalized here.
        version: Source KV engine version.
    """

    def __init__(self, mounts: Iterable[str], prefix: str, version: EngineVersion):
        self.mounts = frozenset(mounts)
        self.prefix = normalize_prefix(prefix)
        self.version = version

    def to_event(self, record: AuditRecord) -> Optional[SecretEvent]:
        """Translate a record into an event, or None if it is not relevant."""
        if record.type != RESPONSE_TYPE:
            return None
        if record.request.mount_type != KV_MOUNT_TYPE:
            return None
        event_type = OPERATION_EVENTS.get(record.request.operation)
        if event_type is None:
            return None
        ref = parse_native_path(record.request.path, self.version)
        if ref is None:
            return None
        if ref.mount not in self.mounts:
            return None
        if not ref.path.startswith(self.prefix):
            return None
        return event_type(ref)


def decode_record(line: bytes | str) -> AuditRecord:
    """Parse one audit log line.

    Raises:
        ValidationError: If the line is not a well-formed audit record.
    """
    return AuditRecord.model_validate_json(line)


def tail(
    stream: IO[bytes],
    audit_filter: AuditFilter,
    events: "queue.Queue[SyncEvent]",
    peer: str = "unknown",
) -> int:
    """Read audit records from ``stream`` until EOF or a read error.

    Returns:
        Number of events queued.
    """
    queued = 0
    try:
        for line in stream:
            line = line.strip()
            if not line:
                continue
            logger.debug("Log from %s: %r", peer, line)
            try:
                record = decode_record(line)
            except (ValidationError, UnicodeDecodeError) as exc:
                logger.warning("Failed to decode audit record from %s: %s, line: %r", peer, exc, line)
                continue
            event = audit_filter.to_event(record)
            if event is not None:
                events.put(event)
                queued += 1
    except OSError as exc:
        logger.warning("Audit stream from %s failed: %s", peer, exc)
    return queued


class AuditStreamHandler(socketserver.StreamRequestHandler):
    """Tails one audit device connection."""

    server: "AuditLogServer"

    def handle(self) -> None:
        peer = "%s:%s" % self.client_address[:2]
        logger.info("New connection from %s", peer)
        queued = tail(self.rfile, self.server.audit_filter, self.server.events, peer=peer)
        logger.info("Closed connection from %s, %d event(s) queued", peer, queued)


def address_family(host: str) -> socket.AddressFamily:
    """AF_INET6 for an IPv6 literal such as ``::1``, AF_INET otherwise."""
    return socket.AF_INET6 if ":" in host else socket.AF_INET


class AuditLogServer(socketserver.ThreadingTCPServer):
    """TCP listener for the Vault socket audit device.

    Binds on construction, so an unusable address fails at startup.

    Args:
        address: (host, port) to listen on.
        audit_filter: Shared, read-only record filter.
        events: Queue the tailers feed.
    """

    allow_reuse_address = True
    daemon_threads = True

    def __init__(
        self,
        address: tuple[str, int],
        audit_filter: AuditFilter,
        events: "queue.Queue[SyncEvent]",
    ):
        self.audit_filter = audit_filter
        self.events = events
        self.address_family = address_family(address[0])
        super().__init__(address, AuditStreamHandler)
        logger.info("Listening for audit logs on %s:%d", *self.server_address[:2])


def audit_device_exists(endpoint, name: str) -> bool:
    """Report whether an audit device called ``name`` is enabled.

    Failures to query are logged and reported as False.
    """
    try:
        return name in endpoint.query_audit_devices()
    except EndpointError as exc:
        logger.warning("Failed to list audit devices: %s", exc)
        return False
