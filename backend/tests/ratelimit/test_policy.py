import json

import pytest

from admission.core.exceptions import CorruptPolicy, StoreUnavailable
from admission.ratelimit.policy import (
    CustomLimit,
    PolicyStore,
    TenantPolicy,
    default_policy,
)
from admission.ratelimit.redis_backend import policy_key
from tests.helpers.redis_stub import FakeAsyncRedis


class TestTenantPolicy:
    def test_parses_original_document_names(self):
        raw = json.dumps(
            {
                "generalLimit": 100,
                "windowSizeInSeconds": 60,
                "excludeIps": ["192.168.1.1"],
                "customLimits": [{"ip": "203.0.113.2", "limit": 50}],
                "enableLogging": False,
                "logLevel": "error",
                "enableRateLimit": True,
                "blockStrategy": "temporary",
                "blockDurationInSeconds": 300,
                "blockedIps": [
                    {
                        "ip": "198.51.100.1",
                        "blockStartTime": "2023-12-20T12:00:00Z",
                        "blockDurationInSeconds": 600,
                    }
                ],
            }
        )
        policy = TenantPolicy.from_json(raw)
        assert policy.general_limit == 100
        assert policy.window_size_seconds == 60
        assert policy.is_excluded("192.168.1.1")
        assert not policy.is_excluded("192.168.1.9")
        assert policy.custom_limits == (CustomLimit(identity="203.0.113.2", limit=50),)
        assert policy.enable_logging is False
        assert policy.blocked_identities[0].identity == "198.51.100.1"

    def test_round_trip_uses_wire_names(self):
        payload = json.loads(default_policy().to_json())
        assert payload["generalLimit"] == 100
        assert payload["excludeIps"] == ["192.168.1.1", "192.168.1.2"]
        assert payload["customLimits"][1] == {"ip": "203.0.113.2", "limit": 50}
        assert TenantPolicy.from_json(default_policy().to_json()) == default_policy()

    @pytest.mark.parametrize("raw", ["not json", "[]", '{"generalLimit": "lots"}', ""])
    def test_malformed_document_raises_corrupt_policy(self, raw):
        with pytest.raises(CorruptPolicy) as exc_info:
            TenantPolicy.from_json(raw, tenant="acme")
        assert exc_info.value.details["tenant"] == "acme"

    def test_custom_limit_first_match_wins(self):
        policy = TenantPolicy(
            general_limit=100,
            custom_limits=(
                CustomLimit(identity="1.2.3.4", limit=5),
                CustomLimit(identity="1.2.3.4", limit=500),
            ),
        )
        assert policy.resolve_limit("1.2.3.4") == 5
        assert policy.resolve_limit("5.6.7.8") == 100

    def test_zero_custom_limit_falls_back_to_general(self):
        policy = TenantPolicy(
            general_limit=100, custom_limits=(CustomLimit(identity="1.2.3.4", limit=0),)
        )
        assert policy.resolve_limit("1.2.3.4") == 100

    def test_missing_general_limit_resolves_nothing(self):
        assert TenantPolicy().resolve_limit("1.2.3.4") is None
        assert TenantPolicy(general_limit=0).resolve_limit("1.2.3.4") is None

    def test_policy_is_immutable(self):
        policy = default_policy()
        with pytest.raises(Exception):
            policy.general_limit = 1  # type: ignore[misc]


class TestPolicyStore:
    @pytest.mark.asyncio
    async def test_unseen_tenant_gets_persisted_default(self, fake_redis):
        store = PolicyStore(fake_redis)
        policy = await store.load_policy("acme")

        assert policy == default_policy()
        assert TenantPolicy.from_json(fake_redis.strings[policy_key("acme")]) == policy

    @pytest.mark.asyncio
    async def test_default_uses_configured_window(self, fake_redis):
        policy = await PolicyStore(fake_redis, window_size_seconds=30).load_policy("acme")
        assert policy.window_size_seconds == 30

    @pytest.mark.asyncio
    async def test_initialization_is_idempotent(self, fake_redis):
        store = PolicyStore(fake_redis)
        first = await store.load_policy("acme")
        stored = fake_redis.strings[policy_key("acme")]
        second = await store.load_policy("acme")

        assert first == second
        assert fake_redis.strings[policy_key("acme")] == stored
        assert list(fake_redis.strings) == [policy_key("acme")]
        assert fake_redis.calls.count("set") == 1

    @pytest.mark.asyncio
    async def test_existing_policy_is_returned(self, fake_redis):
        custom = TenantPolicy(general_limit=2, window_size_seconds=60)
        fake_redis.strings[policy_key("acme")] = custom.to_json()

        assert await PolicyStore(fake_redis).load_policy("acme") == custom
        assert "set" not in fake_redis.calls

    @pytest.mark.asyncio
    async def test_corrupt_policy_is_not_redefaulted(self, fake_redis):
        fake_redis.strings[policy_key("acme")] = "{broken"

        with pytest.raises(CorruptPolicy):
            await PolicyStore(fake_redis).load_policy("acme")
        assert fake_redis.strings[policy_key("acme")] == "{broken"

    @pytest.mark.asyncio
    async def test_lost_initialization_race_adopts_stored_value(self):
        winner = TenantPolicy(general_limit=7, window_size_seconds=60)

        class RacingRedis(FakeAsyncRedis):
            async def set(self, key, value, nx=False):
                # Another process writes between our GET and SET NX.
                self.strings[key] = winner.to_json()
                return await super().set(key, value, nx=nx)

        redis = RacingRedis()
        policy = await PolicyStore(redis).load_policy("acme")
        assert policy == winner

    @pytest.mark.asyncio
    async def test_store_failure_surfaces_as_store_unavailable(self):
        store = PolicyStore(FakeAsyncRedis(fail_on={"get"}))
        with pytest.raises(StoreUnavailable):
            await store.load_policy("acme")

    @pytest.mark.asyncio
    async def test_save_and_delete(self, fake_redis):
        store = PolicyStore(fake_redis)
        policy = TenantPolicy(general_limit=3, window_size_seconds=10)
        await store.save_policy("acme", policy)
        assert await store.load_policy("acme") == policy

        assert await store.delete_policy("acme") is True
        assert await store.delete_policy("acme") is False
