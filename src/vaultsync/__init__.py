"""
vault-sync — continuous secret replication between Vault servers.

Mirrors KV secrets from a source Vault to a destination Vault.
Full syncs catch up on drift, the audit log tail catches changes
as they happen, and token workers keep both connections alive.
"""

import os

__version__ = "0.1.0"
__author__ = "vault-sync contributors"

DEFAULT_CONFIG = os.environ.get("VAULT_SYNC_CONFIG", "./vault-sync.yaml")
