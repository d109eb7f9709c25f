# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics

Counters for deployments and upgrade gating decisions. Metrics live on a
private registry so the CLI can dump them and tests stay isolated from the
process-wide default registry.
"""

from prometheus_client import Counter, CollectorRegistry, generate_latest

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# DEPLOYMENT METRICS
# ═══════════════════════════════════════════════════════════════════

deployments_total = Counter(
    'slotguard_deployments_total',
    'Contracts deployed, by deployment kind',
    ['kind'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# UPGRADE METRICS
# ═══════════════════════════════════════════════════════════════════

upgrade_attempts_total = Counter(
    'slotguard_upgrade_attempts_total',
    'Upgrade attempts, by outcome',
    ['outcome'],
    registry=metrics_registry
)

layout_collisions_total = Counter(
    'slotguard_layout_collisions_total',
    'Colliding storage positions found in layout comparisons',
    registry=metrics_registry
)

address_mismatches_total = Counter(
    'slotguard_address_mismatches_total',
    'Fast-path deployments that landed at an unexpected address',
    registry=metrics_registry
)


def record_deployment(kind: str):
    deployments_total.labels(kind=kind).inc()


def record_upgrade_attempt(outcome: str, collisions: int = 0):
    upgrade_attempts_total.labels(outcome=outcome).inc()
    if collisions:
        layout_collisions_total.inc(collisions)


def record_address_mismatch():
    address_mismatches_total.inc()


def render_metrics() -> bytes:
    """Metrics in Prometheus text exposition format."""
    return generate_latest(metrics_registry)
