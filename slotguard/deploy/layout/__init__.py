# MIT License
# Copyright (c) 2025 Hashborn

"""
Storage Layout Tracking

Baseline persistence and collision detection for proxied contracts.
"""

from .store import LayoutSnapshotStore
from .collision import CollisionDetector, CollisionReport, compare

__all__ = ["LayoutSnapshotStore", "CollisionDetector", "CollisionReport", "compare"]
