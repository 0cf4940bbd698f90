"""Tests for the token lifecycle manager."""

from __future__ import annotations

from datetime import timedelta

from conftest import FakeClock, FakeVault, ScriptedStop
from vaultsync.models import AuthMethod, VaultHost
from vaultsync.tokens import (
    APPROLE_DEFAULT_MAX_TTL,
    RenewalPlan,
    TokenLifecycleManager,
    build_plan,
    normalize_plan,
    sleep_duration,
)
from vaultsync.vault import Credential

HOUR = timedelta(hours=1)


def token_host(**kwargs) -> VaultHost:
    return VaultHost(url="http://vault:8200", token="t", **kwargs)


def approle_host(**kwargs) -> VaultHost:
    return VaultHost(url="http://vault:8200", role_id="r", secret_id="s", **kwargs)


class TestBuildPlan:
    """Tests for applying configured TTL ceilings."""

    def test_no_ceilings_keeps_observed(self):
        cred = Credential(token="t", renewable=True, ttl=HOUR, max_ttl=2 * HOUR)
        assert build_plan(cred, token_host()) == RenewalPlan(True, HOUR, 2 * HOUR)

    def test_smaller_ceiling_tightens(self):
        cred = Credential(token="t", renewable=True, ttl=HOUR)
        plan = build_plan(cred, token_host(token_ttl=600))
        assert plan.ttl == timedelta(seconds=600)

    def test_larger_ceiling_never_loosens(self):
        cred = Credential(token="t", renewable=True, ttl=HOUR)
        plan = build_plan(cred, token_host(token_ttl=7200))
        assert plan.ttl == HOUR

    def test_ceiling_fills_missing_value(self):
        cred = Credential(token="t", renewable=True)
        plan = build_plan(cred, approle_host(token_max_ttl=86400))
        assert plan.max_ttl == timedelta(days=1)
        assert plan.ttl is None

    def test_zero_ceiling_is_ignored(self):
        cred = Credential(token="t", renewable=True, ttl=HOUR)
        assert build_plan(cred, token_host(token_ttl=0)).ttl == HOUR


class TestNormalizePlan:
    """Tests for auth-method plan adjustments."""

    def test_approle_defaults_max_ttl(self, caplog):
        plan = RenewalPlan(True, ttl=HOUR)
        with caplog.at_level("WARNING", logger="vaultsync.tokens"):
            out = normalize_plan(plan, AuthMethod.APPROLE)
        assert out.max_ttl == APPROLE_DEFAULT_MAX_TTL == timedelta(days=32)
        assert "using 32 days" in caplog.text

    def test_approle_keeps_known_max_ttl(self):
        plan = RenewalPlan(True, ttl=HOUR, max_ttl=2 * HOUR)
        assert normalize_plan(plan, AuthMethod.APPROLE) == plan

    def test_token_drops_max_ttl(self):
        plan = RenewalPlan(True, ttl=HOUR, max_ttl=2 * HOUR)
        assert normalize_plan(plan, AuthMethod.TOKEN).max_ttl is None


class TestSleepDuration:
    """Tests for the half-lifetime sleep."""

    def test_half_of_ttl(self):
        assert sleep_duration(RenewalPlan(True, ttl=HOUR)) == timedelta(minutes=30)

    def test_half_of_max_ttl_alone(self):
        assert sleep_duration(RenewalPlan(True, max_ttl=4 * HOUR)) == 2 * HOUR

    def test_half_of_smaller(self):
        plan = RenewalPlan(True, ttl=4 * HOUR, max_ttl=HOUR)
        assert sleep_duration(plan) == timedelta(minutes=30)

    def test_nothing_known(self):
        assert sleep_duration(RenewalPlan(True)) is None


class TestTokenLifecycleManager:
    """Tests for the renew and reissue loop."""

    def test_token_auth_sleeps_half_ttl_then_renews(self):
        vault = FakeVault(
            host=token_host(),
            credential=Credential(token="t", renewable=True, ttl=timedelta(seconds=3600)),
        )
        stop = ScriptedStop(sleeps=1)
        TokenLifecycleManager(vault, stop_event=stop).run()

        assert stop.waits[0] == 1800.0
        assert len(vault.calls_of("renew")) == 1
        assert vault.calls_of("reissue") == []

    def test_non_renewable_token_exits_immediately(self):
        vault = FakeVault(host=token_host(), credential=Credential(token="root"))
        stop = ScriptedStop(sleeps=10)
        TokenLifecycleManager(vault, stop_event=stop).run()

        assert stop.waits == []
        assert vault.calls == []

    def test_renewable_without_lifetime_exits(self):
        vault = FakeVault(host=token_host(), credential=Credential(token="t", renewable=True))
        stop = ScriptedStop(sleeps=10)
        TokenLifecycleManager(vault, stop_event=stop).run()
        assert stop.waits == []

    def test_configured_ceiling_shortens_sleep(self):
        vault = FakeVault(
            host=token_host(token_ttl=600),
            credential=Credential(token="t", renewable=True, ttl=HOUR),
        )
        stop = ScriptedStop(sleeps=0)
        TokenLifecycleManager(vault, stop_event=stop).run()
        assert stop.waits == [300.0]

    def test_approle_reissues_past_half_max_ttl_then_renews(self):
        clock = FakeClock()
        vault = FakeVault(
            host=approle_host(),
            credential=Credential(token="t", renewable=True, ttl=HOUR, max_ttl=4 * HOUR),
        )
        stop = ScriptedStop(sleeps=8, clock=clock)
        TokenLifecycleManager(vault, stop_event=stop, clock=clock).run()

        # Woken at 0.5h, 1h, 1.5h, 2h: renew. At 2.5h the token is past half of 4h.
        # The new token is then 0.5h, 1h and 1.5h old at the next wakes: renew.
        ops = [c[0] for c in vault.calls]
        assert ops == ["renew"] * 4 + ["reissue"] + ["renew"] * 3

    def test_reissue_failure_falls_back_to_renew(self):
        clock = FakeClock()
        vault = FakeVault(
            host=approle_host(),
            credential=Credential(token="t", renewable=True, ttl=HOUR, max_ttl=timedelta(minutes=1)),
        )
        vault.fail.add(("reissue", "", ""))
        stop = ScriptedStop(sleeps=1, clock=clock, drift=1.0)
        TokenLifecycleManager(vault, stop_event=stop, clock=clock).run()

        assert [c[0] for c in vault.calls] == ["reissue", "renew"]

    def test_token_auth_never_reissues(self):
        clock = FakeClock()
        vault = FakeVault(
            host=token_host(),
            credential=Credential(token="t", renewable=True, ttl=HOUR, max_ttl=HOUR),
        )
        stop = ScriptedStop(sleeps=4, clock=clock, drift=10_000)
        TokenLifecycleManager(vault, stop_event=stop, clock=clock).run()

        assert vault.calls_of("reissue") == []
        assert len(vault.calls_of("renew")) == 4

    def test_renew_failure_keeps_looping(self):
        vault = FakeVault(
            host=token_host(),
            credential=Credential(token="t", renewable=True, ttl=HOUR),
        )
        vault.fail.add(("renew", "", ""))
        stop = ScriptedStop(sleeps=3)
        TokenLifecycleManager(vault, stop_event=stop).run()
        assert len(vault.calls_of("renew")) == 3

    def test_stop_during_sleep(self):
        vault = FakeVault(
            host=token_host(),
            credential=Credential(token="t", renewable=True, ttl=HOUR),
        )
        stop = ScriptedStop(sleeps=0)
        TokenLifecycleManager(vault, stop_event=stop).run()
        assert vault.calls_of("renew") == []

    def test_credential_repr_hides_token(self):
        assert "supersecret" not in repr(Credential(token="supersecret", renewable=True))
