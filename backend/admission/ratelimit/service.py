"""
Admission decisions for tenant traffic.

``RateLimiterService`` is bound to one tenant and its policy snapshot;
``AdmissionController`` routes requests for many tenants to lazily built
services. Neither raises from a decision: store and policy failures admit
the request and are logged at ERROR with the cause kept on the Decision.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

from fastapi import Request

from admission.core.config import RateLimiterConfig, settings
from admission.core.exceptions import CorruptPolicy, InvalidConfiguration, StoreUnavailable
from admission.core.redis import get_redis

from .decision import Decision, DecisionReason
from .identity import resolve_request_identity
from .log_policy import DecisionLogger, PolicyLogger
from .metrics import rl_decisions, rl_eval_duration, rl_eval_errors, rl_retry_after
from .policy import PolicyStore, TenantPolicy
from .redis_backend import SlidingWindowStore, rate_key
from .sliding_window import sliding_window_decide, window_bounds

# Counter bucket for requests with no resolvable client address.
UNKNOWN_IDENTITY = "unknown"

Clock = Callable[[], float]


def _coerce_config(config: Union[RateLimiterConfig, Mapping[str, Any]]) -> RateLimiterConfig:
    if isinstance(config, RateLimiterConfig):
        return config
    return RateLimiterConfig.build(**dict(config))


class RateLimiterService:
    """
    Weighted sliding-window rate limiter for a single tenant.

    Build instances with :meth:`create`, which loads the tenant policy
    before returning; a constructed service always holds a policy.
    """

    def __init__(
        self,
        config: RateLimiterConfig,
        policy: TenantPolicy,
        redis: Any,
        logger: Optional[DecisionLogger] = None,
        clock: Clock = time.time,
    ) -> None:
        self.config = config
        self.tenant = config.tenant_name
        self.policy = policy
        self.window_size_seconds = policy.window_size_seconds or config.window_size_seconds
        self.store = SlidingWindowStore(redis)
        self.log = PolicyLogger.for_policy(logger or logging.getLogger(__name__), policy)
        self.enabled = getattr(settings, "rate_limit_enabled", True)
        self._clock = clock

    @classmethod
    async def create(
        cls,
        config: Union[RateLimiterConfig, Mapping[str, Any]],
        *,
        redis: Any = None,
        logger: Optional[DecisionLogger] = None,
        clock: Clock = time.time,
    ) -> "RateLimiterService":
        """
        Validate config, load (or initialize) the tenant policy, return a ready service.

        Raises:
            InvalidConfiguration: tenant name or window size missing/invalid.
            CorruptPolicy: the stored policy cannot be parsed.
            StoreUnavailable: the store cannot be reached.
        """
        config = _coerce_config(config)
        if redis is None:
            redis = await get_redis(config.redis_url)
        store = PolicyStore(redis, window_size_seconds=config.window_size_seconds)
        policy = await store.load_policy(config.tenant_name)
        return cls(config, policy, redis, logger=logger, clock=clock)

    async def evaluate(
        self, identity: Optional[str], path: Optional[str] = None, method: Optional[str] = None
    ) -> Decision:
        """Return a Decision for one request; never raises."""
        identity = identity or UNKNOWN_IDENTITY
        started = time.perf_counter()
        try:
            decision = await self._evaluate(identity, path, method)
        except StoreUnavailable as exc:
            rl_eval_errors.labels(tenant=self.tenant).inc()
            self.log.error(
                "[RATE-LIMIT] Store unavailable for tenant %s, identity %s; failing open: %s",
                self.tenant,
                identity,
                exc.details.get("error", exc.message),
            )
            decision = Decision(True, DecisionReason.STORE_ERROR, error=exc)
        except Exception as exc:
            rl_eval_errors.labels(tenant=self.tenant).inc()
            self.log.error(
                "[RATE-LIMIT] Evaluation failed for tenant %s, identity %s; failing open: %r",
                self.tenant,
                identity,
                exc,
            )
            decision = Decision(True, DecisionReason.STORE_ERROR, error=exc)
        finally:
            rl_eval_duration.labels(tenant=self.tenant).observe(time.perf_counter() - started)

        rl_decisions.labels(tenant=self.tenant, action=decision.action).inc()
        if decision.retry_after_s is not None:
            rl_retry_after.labels(tenant=self.tenant).observe(decision.retry_after_s)
        return decision

    async def _evaluate(self, identity: str, path: Optional[str], method: Optional[str]) -> Decision:
        policy = self.policy
        if not self.enabled or not policy.enable_rate_limit:
            self.log.info("[RATE-LIMIT] Rate limiter is disabled for %s", self.tenant)
            return Decision(True, DecisionReason.DISABLED)

        if policy.is_excluded(identity):
            self.log.info("[RATE-LIMIT] Rate limiter skipped for identity %s", identity)
            return Decision(True, DecisionReason.EXCLUDED)

        limit = policy.resolve_limit(identity)
        if limit is None:
            self.log.error("[RATE-LIMIT] Not able to get the request limit for %s", self.tenant)
            return Decision(True, DecisionReason.NO_LIMIT)

        window = self.window_size_seconds
        bounds = window_bounds(self._clock(), window)
        key = rate_key(self.tenant, identity)

        await self.store.prune(key, bounds.previous_window_start)
        previous_count, current_count = await self.store.count_windows(
            key, bounds.previous_window_start, bounds.current_window_start, bounds.current_time
        )

        decision = sliding_window_decide(bounds, window, previous_count, current_count, limit)
        if not decision.allowed:
            self.log.warning(
                "[RATE-LIMIT] The rate limit exceeds for identity %s, end point %s and method %s; retry after %ss",
                identity,
                path,
                method,
                decision.retry_after_s,
            )
            return decision

        await self.store.record(key, bounds.current_time, window)
        return decision

    async def decide(
        self, identity: Optional[str], path: Optional[str] = None, method: Optional[str] = None
    ) -> bool:
        decision = await self.evaluate(identity, path, method)
        return decision.allowed

    async def decide_request(self, request: Request) -> bool:
        identity = resolve_request_identity(request)
        return await self.decide(identity, request.url.path, request.method)


class AdmissionController:
    """Admission decisions for any tenant, one lazily built service per tenant."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        window_size_seconds: Optional[int] = None,
        *,
        redis: Any = None,
        logger: Optional[DecisionLogger] = None,
        clock: Clock = time.time,
    ) -> None:
        self.redis_url = redis_url or settings.redis_url
        self.window_size_seconds = window_size_seconds or settings.rate_limit_window_seconds
        self._redis = redis
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._services: Dict[str, RateLimiterService] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def service_for(self, tenant: str) -> RateLimiterService:
        # Validated first so cache keys use the normalized tenant name.
        config = RateLimiterConfig.build(
            tenant_name=tenant,
            window_size_seconds=self.window_size_seconds,
            redis_url=self.redis_url,
        )
        tenant = config.tenant_name
        existing = self._services.get(tenant)
        if existing is not None:
            return existing

        lock = self._locks.setdefault(tenant, asyncio.Lock())
        async with lock:
            existing = self._services.get(tenant)
            if existing is not None:
                return existing
            service = await RateLimiterService.create(
                config, redis=self._redis, logger=self._logger, clock=self._clock
            )
            self._services[tenant] = service
            return service

    async def evaluate(
        self,
        tenant: str,
        identity: Optional[str],
        request_meta: Optional[Mapping[str, Any]] = None,
    ) -> Decision:
        """
        Decide for ``identity`` under ``tenant``.

        Raises:
            InvalidConfiguration: ``tenant`` is empty.
        """
        try:
            service = await self.service_for(tenant)
        except InvalidConfiguration:
            raise
        except CorruptPolicy as exc:
            rl_eval_errors.labels(tenant=tenant).inc()
            rl_decisions.labels(tenant=tenant, action="fail_open").inc()
            self._logger.error(
                "[RATE-LIMIT] Corrupt policy for tenant %s; failing open: %s", tenant, exc.details
            )
            return Decision(True, DecisionReason.POLICY_ERROR, error=exc)
        except Exception as exc:
            rl_eval_errors.labels(tenant=tenant).inc()
            rl_decisions.labels(tenant=tenant, action="fail_open").inc()
            self._logger.error(
                "[RATE-LIMIT] Could not load policy for tenant %s; failing open: %r", tenant, exc
            )
            return Decision(True, DecisionReason.STORE_ERROR, error=exc)

        meta = request_meta or {}
        return await service.evaluate(identity, meta.get("path"), meta.get("method"))

    async def decide(
        self,
        tenant: str,
        identity: Optional[str],
        request_meta: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        decision = await self.evaluate(tenant, identity, request_meta)
        return decision.allowed
