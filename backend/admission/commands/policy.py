#!/usr/bin/env python
# backend/admission/commands/policy.py
"""
Tenant policy management commands.

Running services hold the policy they loaded at startup; a change made
here applies to services built afterwards.

Usage:
    python -m admission.commands.policy show acme            # Print stored policy
    python -m admission.commands.policy init acme            # Create default if absent
    python -m admission.commands.policy set acme policy.json # Replace policy
    python -m admission.commands.policy delete acme          # Remove policy
    python -m admission.commands.policy reset acme 1.2.3.4   # Drop one counter
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path
import sys
from typing import Any, Dict, Optional, Sequence

from redis.asyncio import Redis as AsyncRedis

from admission.core.config import settings
from admission.core.exceptions import RateLimitError
from admission.ratelimit.policy import PolicyStore, TenantPolicy
from admission.ratelimit.redis_backend import (
    SlidingWindowStore,
    policy_key,
    rate_key,
    store_call,
)

logger = logging.getLogger(__name__)


class PolicyCommand:
    """Policy management command handler."""

    def __init__(self, redis: Any, window_size_seconds: Optional[int] = None) -> None:
        self.redis = redis
        self.policies = PolicyStore(
            redis, window_size_seconds=window_size_seconds or settings.rate_limit_window_seconds
        )

    async def show(self, tenant: str) -> Dict[str, Any]:
        key = policy_key(tenant)
        async with store_call("get", key):
            raw = await self.redis.get(key)
        if raw is None:
            return {"tenant": tenant, "exists": False}
        policy = TenantPolicy.from_json(raw, tenant=tenant)
        return {"tenant": tenant, "exists": True, "policy": policy.model_dump(mode="json", by_alias=True)}

    async def init(self, tenant: str) -> Dict[str, Any]:
        policy = await self.policies.load_policy(tenant)
        return {"tenant": tenant, "policy": policy.model_dump(mode="json", by_alias=True)}

    async def set(self, tenant: str, path: Path) -> Dict[str, Any]:
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise RateLimitError(
                "Policy file could not be read",
                code="PolicyFileUnreadable",
                details={"path": str(path), "error": str(exc)},
            ) from exc
        policy = TenantPolicy.from_json(raw, tenant=tenant)
        await self.policies.save_policy(tenant, policy)
        logger.info("Stored policy for tenant %s from %s", tenant, path)
        return {"tenant": tenant, "stored": True}

    async def delete(self, tenant: str) -> Dict[str, Any]:
        return {"tenant": tenant, "deleted": await self.policies.delete_policy(tenant)}

    async def reset(self, tenant: str, identity: str) -> Dict[str, Any]:
        deleted = await SlidingWindowStore(self.redis).reset(rate_key(tenant, identity))
        return {"tenant": tenant, "identity": identity, "reset": deleted}

    async def dispatch(self, args: argparse.Namespace) -> Dict[str, Any]:
        if args.command == "show":
            return await self.show(args.tenant)
        if args.command == "init":
            return await self.init(args.tenant)
        if args.command == "set":
            return await self.set(args.tenant, Path(args.file))
        if args.command == "delete":
            return await self.delete(args.tenant)
        return await self.reset(args.tenant, args.identity)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage tenant rate-limit policies")
    parser.add_argument("--redis-url", default=None, help="Overrides RATE_LIMIT_REDIS_URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    show = subparsers.add_parser("show", help="Print the stored policy")
    show.add_argument("tenant")

    init = subparsers.add_parser("init", help="Create the default policy if absent")
    init.add_argument("tenant")

    set_cmd = subparsers.add_parser("set", help="Replace a policy from a JSON file")
    set_cmd.add_argument("tenant")
    set_cmd.add_argument("file")

    delete = subparsers.add_parser("delete", help="Remove a stored policy")
    delete.add_argument("tenant")

    reset = subparsers.add_parser("reset", help="Drop the counter for one identity")
    reset.add_argument("tenant")
    reset.add_argument("identity")
    return parser


async def _run(args: argparse.Namespace) -> Dict[str, Any]:
    redis = AsyncRedis.from_url(
        args.redis_url or settings.redis_url, encoding="utf-8", decode_responses=True
    )
    try:
        return await PolicyCommand(redis).dispatch(args)
    finally:
        await redis.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        result = asyncio.run(_run(args))
    except RateLimitError as exc:
        logger.error("%s: %s", exc.code, exc.message)
        print(json.dumps(exc.to_dict(), indent=2))
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
