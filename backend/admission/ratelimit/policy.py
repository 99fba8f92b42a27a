"""
Tenant policy documents and their persistence.

A policy is stored as JSON under ``policy:{tenant}`` using the camelCase
field names of the original policy documents (``generalLimit``,
``excludeIps``, ...). Once loaded, a policy is an immutable snapshot.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from admission.core.exceptions import CorruptPolicy

from .metrics import rl_policy_initialized
from .redis_backend import policy_key, store_call

logger = logging.getLogger(__name__)

DEFAULT_GENERAL_LIMIT = 100
DEFAULT_WINDOW_SECONDS = 60


class CustomLimit(BaseModel):
    """Per-identity limit override."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    identity: str = Field(alias="ip")
    limit: int


class BlockedIdentity(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    identity: str = Field(alias="ip")
    block_start_time: datetime = Field(alias="blockStartTime")
    block_duration_seconds: int = Field(alias="blockDurationInSeconds")


class TenantPolicy(BaseModel):
    """
    Rate-limit policy for a single tenant.

    The block fields are carried through storage untouched; admission
    decisions do not read them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    general_limit: Optional[int] = Field(default=None, alias="generalLimit")
    window_size_seconds: Optional[int] = Field(default=None, alias="windowSizeInSeconds", gt=0)
    exclude_identities: Tuple[str, ...] = Field(default=(), alias="excludeIps")
    custom_limits: Tuple[CustomLimit, ...] = Field(default=(), alias="customLimits")
    enable_rate_limit: bool = Field(default=True, alias="enableRateLimit")
    enable_logging: bool = Field(default=True, alias="enableLogging")
    log_level: str = Field(default="warning", alias="logLevel")
    block_strategy: Optional[str] = Field(default=None, alias="blockStrategy")
    block_duration_seconds: Optional[int] = Field(default=None, alias="blockDurationInSeconds")
    blocked_identities: Tuple[BlockedIdentity, ...] = Field(default=(), alias="blockedIps")

    def is_excluded(self, identity: str) -> bool:
        return identity in self.exclude_identities

    def resolve_limit(self, identity: str) -> Optional[int]:
        """First matching custom limit wins; otherwise the general limit.

        Returns None when no positive limit can be resolved.
        """
        for entry in self.custom_limits:
            if entry.identity == identity:
                if entry.limit > 0:
                    return entry.limit
                break
        if self.general_limit is not None and self.general_limit > 0:
            return self.general_limit
        return None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes, tenant: Optional[str] = None) -> "TenantPolicy":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise CorruptPolicy(
                "Stored policy could not be parsed",
                details={
                    "tenant": tenant,
                    "errors": [err["msg"] for err in exc.errors()],
                },
            ) from exc


def default_policy(window_size_seconds: int = DEFAULT_WINDOW_SECONDS) -> TenantPolicy:
    """Deterministic policy written for a tenant seen for the first time."""
    return TenantPolicy(
        general_limit=DEFAULT_GENERAL_LIMIT,
        window_size_seconds=window_size_seconds,
        exclude_identities=("192.168.1.1", "192.168.1.2"),
        custom_limits=(
            CustomLimit(identity="203.0.113.1", limit=200),
            CustomLimit(identity="203.0.113.2", limit=50),
        ),
        enable_rate_limit=True,
        enable_logging=True,
        log_level="warning",
        block_strategy="temporary",
        block_duration_seconds=300,
        blocked_identities=(
            BlockedIdentity(
                identity="198.51.100.1",
                block_start_time=datetime(2023, 12, 20, 12, 0, tzinfo=timezone.utc),
                block_duration_seconds=600,
            ),
            BlockedIdentity(
                identity="198.51.100.2",
                block_start_time=datetime(2023, 12, 20, 13, 0, tzinfo=timezone.utc),
                block_duration_seconds=1200,
            ),
        ),
    )


class PolicyStore:
    """Load, initialize, and replace tenant policies in the shared store."""

    def __init__(self, redis: Any, window_size_seconds: int = DEFAULT_WINDOW_SECONDS) -> None:
        self.redis = redis
        self.window_size_seconds = window_size_seconds

    async def _get(self, key: str) -> Optional[str]:
        async with store_call("get", key):
            raw: Optional[str] = await self.redis.get(key)
        return raw

    async def load_policy(self, tenant: str) -> TenantPolicy:
        """
        Return the tenant's stored policy, creating the default on first access.

        Raises:
            CorruptPolicy: the stored value is not a valid policy document.
            StoreUnavailable: the store could not be reached.
        """
        key = policy_key(tenant)
        raw = await self._get(key)
        if raw is not None:
            return TenantPolicy.from_json(raw, tenant=tenant)

        policy = default_policy(self.window_size_seconds)
        async with store_call("set", key):
            created = await self.redis.set(key, policy.to_json(), nx=True)
        if created:
            rl_policy_initialized.labels(tenant=tenant).inc()
            logger.info("[RATE-LIMIT] Initialized default policy for tenant %s", tenant)
            return policy

        # Another process initialized the tenant first; adopt its value.
        raw = await self._get(key)
        if raw is None:
            return policy
        return TenantPolicy.from_json(raw, tenant=tenant)

    async def save_policy(self, tenant: str, policy: TenantPolicy) -> None:
        key = policy_key(tenant)
        async with store_call("set", key):
            await self.redis.set(key, policy.to_json())

    async def delete_policy(self, tenant: str) -> bool:
        key = policy_key(tenant)
        async with store_call("delete", key):
            deleted = await self.redis.delete(key)
        return bool(deleted)
