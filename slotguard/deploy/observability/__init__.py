# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides deployment and upgrade metrics for SlotGuard.
"""

from .metrics import metrics_registry, render_metrics

__all__ = ['metrics_registry', 'render_metrics']
