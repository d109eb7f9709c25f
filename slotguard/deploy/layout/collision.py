# MIT License
# Copyright (c) 2025 Hashborn

"""
Storage Layout Collision Detector

Decides whether a candidate layout can safely replace a baseline behind a proxy.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from ...protocol.types.layout import StorageLayoutSnapshot, StorageSlotEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollisionReport:
    """
    Result of a layout comparison.

    Attributes:
        compatible: True if the candidate reproduces the baseline as a prefix
        diff_lines: Human readable differences (collisions, label renames, appends)
        collisions: Number of baseline positions that collide
    """
    compatible: bool
    diff_lines: List[str] = field(default_factory=list)
    collisions: int = 0

    def format(self) -> str:
        return "\n".join(self.diff_lines)


def _fmt(entry: StorageSlotEntry) -> str:
    return f"[slot {entry.slot:>3} | offset {entry.offset:>2}] {entry.label} : {entry.type}"


def compare(baseline: StorageLayoutSnapshot, candidate: StorageLayoutSnapshot) -> CollisionReport:
    """
    Compare a candidate layout against the baseline backing a live proxy.

    The baseline must be reproduced exactly as a prefix of the candidate:
    every baseline index needs a candidate entry with the same slot, offset
    and type. Label changes are reported but are not collisions. Entries
    past the end of the baseline are pure appends and always compatible.

    Args:
        baseline: Layout currently backing the proxy
        candidate: Layout of the implementation about to be installed

    Returns:
        CollisionReport
    """
    diff_lines: List[str] = []
    collisions = 0

    base_entries = baseline.entries
    cand_entries = candidate.entries

    for i, old in enumerate(base_entries):
        if i >= len(cand_entries):
            collisions += 1
            diff_lines.append(f"- removed  {_fmt(old)}")
            continue

        new = cand_entries[i]
        changes = []
        if new.slot != old.slot:
            changes.append(f"slot {old.slot}->{new.slot}")
        if new.offset != old.offset:
            changes.append(f"offset {old.offset}->{new.offset}")
        if new.type != old.type:
            changes.append(f"type {old.type}->{new.type}")

        if changes:
            collisions += 1
            diff_lines.append(
                f"! collision at slot {old.slot} offset {old.offset} ({', '.join(changes)})"
            )
            diff_lines.append(f"    old  {_fmt(old)}")
            diff_lines.append(f"    new  {_fmt(new)}")
        elif new.label != old.label:
            diff_lines.append(
                f"~ renamed  [slot {old.slot:>3} | offset {old.offset:>2}] "
                f"{old.label} -> {new.label} (cosmetic)"
            )

    for new in cand_entries[len(base_entries):]:
        diff_lines.append(f"+ appended {_fmt(new)}")

    report = CollisionReport(
        compatible=collisions == 0,
        diff_lines=diff_lines,
        collisions=collisions,
    )
    logger.debug(
        f"Layout comparison for {candidate.contract_name or baseline.contract_name or '<unnamed>'}: "
        f"{len(base_entries)} baseline / {len(cand_entries)} candidate entries, "
        f"{collisions} collision(s)"
    )
    return report


class CollisionDetector:
    """Stateless wrapper around `compare` for injection into the upgrade workflow."""

    def compare(self, baseline: StorageLayoutSnapshot,
                candidate: StorageLayoutSnapshot) -> CollisionReport:
        return compare(baseline, candidate)
