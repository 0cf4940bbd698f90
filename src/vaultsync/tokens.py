"""
Token lifecycle — keep each endpoint's Vault token alive.

One TokenLifecycleManager runs per endpoint for the life of the
process. Each cycle it reads the token metadata, applies the
configured TTL ceilings, sleeps for half of the effective lifetime,
then either reissues (AppRole, once the token is past half its max
TTL) or renews the token in place.

    token auth:   renew, renew, renew, ...     (cannot be reissued)
    AppRole auth: renew, ..., reissue, renew, ... (fresh login)

Non-renewable tokens (root tokens) need no care: the manager exits.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Callable, Optional

from .errors import EndpointError
from .models import AuthMethod, VaultHost
from .vault import Credential, VaultEndpoint

logger = logging.getLogger("vaultsync.tokens")

APPROLE_DEFAULT_MAX_TTL = timedelta(days=32)


@dataclass(frozen=True)
class RenewalPlan:
    """Effective token lifetime after applying configured ceilings."""

    renewable: bool
    ttl: Optional[timedelta] = None
    max_ttl: Optional[timedelta] = None


def _tighten(observed: Optional[timedelta], ceiling: Optional[int]) -> Optional[timedelta]:
    """Apply a ceiling in seconds; it never loosens an observed value."""
    if not ceiling:
        return observed
    limit = timedelta(seconds=ceiling)
    if observed is None or limit < observed:
        return limit
    return observed


def build_plan(credential: Credential, host: VaultHost) -> RenewalPlan:
    """Combine observed token metadata with the host's TTL ceilings."""
    return RenewalPlan(
        renewable=credential.renewable,
        ttl=_tighten(credential.ttl, host.token_ttl),
        max_ttl=_tighten(credential.max_ttl, host.token_max_ttl),
    )


def normalize_plan(plan: RenewalPlan, method: Optional[AuthMethod]) -> RenewalPlan:
    """Adjust a plan for what the auth method can actually do.

    AppRole tokens get a 32 day max TTL when none is known; fixed
    tokens can only be renewed, so any max TTL is dropped.
    """
    if method == AuthMethod.APPROLE and plan.max_ttl is None:
        logger.warning("Auth method is AppRole, but max_ttl is not set, using 32 days instead")
        return replace(plan, max_ttl=APPROLE_DEFAULT_MAX_TTL)
    if method == AuthMethod.TOKEN and plan.max_ttl is not None:
        logger.info("Auth method is Token, but max_ttl is set, ignoring")
        return replace(plan, max_ttl=None)
    return plan


def sleep_duration(plan: RenewalPlan) -> Optional[timedelta]:
    """Half of the shorter of ttl and max_ttl, or None if neither is known."""
    known = [d for d in (plan.ttl, plan.max_ttl) if d is not None]
    if not known:
        return None
    return min(known) / 2


class TokenLifecycleManager:
    """Renews or reissues one endpoint's token until stopped.

    Args:
        endpoint: The endpoint whose token is managed.
        stop_event: Set to end the loop; its wait() is the only sleep.
        clock: Monotonic clock in seconds, used for the token age.
    """

    def __init__(
        self,
        endpoint: VaultEndpoint,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.endpoint = endpoint
        self.host = endpoint.host
        self._stop_event = stop_event or threading.Event()
        self._clock = clock

    def run(self) -> None:
        name = self.endpoint.name
        issued_at = self._clock()

        while not self._stop_event.is_set():
            credential = self.endpoint.credential_metadata()
            logger.info("[%s] Token: %s", name, credential)

            plan = build_plan(credential, self.host)
            logger.info("[%s] Plan: %s", name, plan)
            if not plan.renewable:
                logger.info("[%s] Token is not renewable, token worker exiting", name)
                return

            plan = normalize_plan(plan, self.host.auth_method)
            duration = sleep_duration(plan)
            if duration is None:
                logger.warning("[%s] Token has neither ttl nor max_ttl, token worker exiting", name)
                return

            logger.debug("[%s] Sleeping %ss", name, duration.total_seconds())
            if self._stop_event.wait(timeout=duration.total_seconds()):
                return

            if plan.max_ttl is not None and self.endpoint.can_reissue:
                age = self._clock() - issued_at
                if age > plan.max_ttl.total_seconds() / 2:
                    logger.info("[%s] Requesting a new token", name)
                    try:
                        self.endpoint.reissue_credential()
                    except EndpointError as exc:
                        logger.warning("[%s] Failed to request a new token: %s", name, exc)
                    else:
                        issued_at = self._clock()
                        continue

            if plan.ttl is not None:
                logger.info("[%s] Renewing token", name)
                try:
                    self.endpoint.renew_credential()
                except EndpointError as exc:
                    logger.warning("[%s] Failed to renew token: %s", name, exc)
