from admission.monitoring.prometheus_metrics import REGISTRY, render_metrics
from admission.ratelimit.metrics import rl_decisions, rl_policy_initialized


def test_rate_limit_series_are_exposed():
    rl_decisions.labels(tenant="exposition", action="allow").inc()
    rl_policy_initialized.labels(tenant="exposition").inc()

    payload, content_type = render_metrics()
    text = payload.decode()

    assert content_type.startswith("text/plain")
    assert (
        REGISTRY.get_sample_value(
            "admission_rl_decisions_total", {"tenant": "exposition", "action": "allow"}
        )
        == 1.0
    )
    assert "admission_rl_decisions_total" in text
    assert "admission_rl_policy_initialized_total" in text
    assert "admission_rl_eval_duration_seconds" in text
