"""
Secret sync engine — discovery, audit tail, and reconciliation.

Full syncs and audit tailers produce events onto one queue; the
reconciler consumes them and brings the destination in line.
"""

from .events import CycleComplete, Create, Delete, SyncStats, Update
from .paths import MountMap, PrefixPair, SecretRef
from .reconciler import Reconciler

__all__ = [
    "Create",
    "CycleComplete",
    "Delete",
    "MountMap",
    "PrefixPair",
    "Reconciler",
    "SecretRef",
    "SyncStats",
    "Update",
]
