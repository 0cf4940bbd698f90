"""
Configuration loading — YAML file plus environment credentials.

Credentials can stay out of the file: any endpoint without a token
or AppRole pair picks them up from the environment.

    VAULT_SYNC_SRC_TOKEN / VAULT_SYNC_SRC_ROLE_ID + VAULT_SYNC_SRC_SECRET_ID
    VAULT_SYNC_DST_TOKEN / VAULT_SYNC_DST_ROLE_ID + VAULT_SYNC_DST_SECRET_ID
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import ValidationError

from .errors import ConfigError
from .models import VaultHost, VaultSyncConfig

logger = logging.getLogger("vaultsync.config")

ENV_PREFIXES = {"src": "VAULT_SYNC_SRC", "dst": "VAULT_SYNC_DST"}


def load_config(
    path: Path | str,
    environ: Optional[Mapping[str, str]] = None,
) -> VaultSyncConfig:
    """Load, validate and complete a configuration file.

    Args:
        path: YAML configuration file.
        environ: Environment used for credential fallback. Defaults to os.environ.

    Returns:
        VaultSyncConfig with auth set on both endpoints.

    Raises:
        ConfigError: If the file is unreadable, malformed, invalid, or an
            endpoint has no credentials.
    """
    path = Path(path)
    environ = os.environ if environ is None else environ

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    try:
        config = VaultSyncConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration in {path}:\n{exc}") from exc

    for section, env_prefix in ENV_PREFIXES.items():
        host: VaultHost = getattr(config, section)
        if host.auth_method is None:
            apply_env_auth(host, env_prefix, environ)
        if host.auth_method is None:
            raise ConfigError(
                f"{section}: Vault token or both app role id and secret id are required "
                f"(set them in the file or via {env_prefix}_TOKEN / "
                f"{env_prefix}_ROLE_ID + {env_prefix}_SECRET_ID)"
            )

    return config


def apply_env_auth(host: VaultHost, env_prefix: str, environ: Mapping[str, str]) -> None:
    """Fill in auth for ``host`` from environment variables, token first."""
    token = environ.get(f"{env_prefix}_TOKEN")
    role_id = environ.get(f"{env_prefix}_ROLE_ID")
    secret_id = environ.get(f"{env_prefix}_SECRET_ID")
    if token:
        host.token = token
        logger.debug("Using %s_TOKEN from environment", env_prefix)
    elif role_id and secret_id:
        host.role_id = role_id
        host.secret_id = secret_id
        logger.debug("Using %s_ROLE_ID/%s_SECRET_ID from environment", env_prefix, env_prefix)
