from prometheus_client import Counter, Histogram

from admission.monitoring.prometheus_metrics import REGISTRY

rl_decisions = Counter(
    "admission_rl_decisions_total",
    "rate-limit decisions",
    ["tenant", "action"],
    registry=REGISTRY,
)
rl_retry_after = Histogram(
    "admission_rl_retry_after_seconds",
    "retry-after values for denied requests",
    ["tenant"],
    registry=REGISTRY,
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0, 3600.0),
)

rl_eval_errors = Counter(
    "admission_rl_eval_errors_total",
    "errors during rate-limit evaluation (e.g., Redis failures)",
    ["tenant"],
    registry=REGISTRY,
)

rl_eval_duration = Histogram(
    "admission_rl_eval_duration_seconds",
    "duration of rate-limit evaluation",
    ["tenant"],
    registry=REGISTRY,
    buckets=(0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1),
)

rl_policy_initialized = Counter(
    "admission_rl_policy_initialized_total",
    "default tenant policies written on first access",
    ["tenant"],
    registry=REGISTRY,
)

__all__ = [
    "rl_decisions",
    "rl_retry_after",
    "rl_eval_errors",
    "rl_eval_duration",
    "rl_policy_initialized",
]
