from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DecisionReason(Enum):
    """Why a request was admitted or rejected."""

    UNDER_LIMIT = "under_limit"
    OVER_LIMIT = "over_limit"
    DISABLED = "disabled"
    EXCLUDED = "excluded"
    NO_LIMIT = "no_limit"
    POLICY_ERROR = "policy_error"
    STORE_ERROR = "store_error"


# Reasons that admit a request without a confident count behind them.
FAIL_OPEN_REASONS = frozenset(
    {DecisionReason.NO_LIMIT, DecisionReason.STORE_ERROR, DecisionReason.POLICY_ERROR}
)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DecisionReason
    limit: Optional[int] = None
    weighted_rate: Optional[float] = None
    retry_after_s: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def fail_open(self) -> bool:
        return self.reason in FAIL_OPEN_REASONS

    @property
    def action(self) -> str:
        """Metric label for this outcome."""
        if self.fail_open:
            return "no_limit" if self.reason is DecisionReason.NO_LIMIT else "fail_open"
        if self.reason is DecisionReason.OVER_LIMIT:
            return "deny"
        if self.reason is DecisionReason.UNDER_LIMIT:
            return "allow"
        return self.reason.value

    def __bool__(self) -> bool:
        return self.allowed

