# MIT License
# Copyright (c) 2025 Hashborn

"""
Layout Snapshot Store

Persists storage-layout baselines per (contract, network) and manages the
scratch copy used while an upgrade attempt is in flight.
"""

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from pydantic import ValidationError

from ...protocol.config.params import SCRATCH_DIR_NAME
from ...protocol.types.common import LayoutError
from ...protocol.types.deployment import utc_timestamp
from ...protocol.types.layout import LayoutRecord, StorageLayoutSnapshot

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


class LayoutSnapshotStore:
    """
    File-backed layout store.

    Files are plain JSON LayoutRecords:
    - <root>/<network_id>/<contract_name>.json (baseline)
    - <root>/<network_id>/.scratch/<contract_name>.json (in-flight upgrade attempt)
    """

    def __init__(self, root_dir: str = "layouts"):
        """
        Args:
            root_dir: Directory holding per-network layout files (default: "layouts")
        """
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)

    # --- Baselines ---

    def read_baseline(self, contract_name: str, network_id: str) -> Optional[StorageLayoutSnapshot]:
        """
        Load the recorded baseline.

        Returns:
            The snapshot, or None if no baseline is recorded for this key

        Raises:
            LayoutError: If the file exists but is corrupt
        """
        return self._read(self._baseline_path(contract_name, network_id))

    def write_baseline(self, contract_name: str, network_id: str,
                       snapshot: StorageLayoutSnapshot) -> Path:
        path = self._write(self._baseline_path(contract_name, network_id),
                           contract_name, network_id, snapshot)
        logger.info(
            f"Recorded baseline layout for {contract_name} on {network_id} "
            f"({len(snapshot)} entries)"
        )
        return path

    def list_baselines(self, network_id: Optional[str] = None) -> List[Tuple[str, str]]:
        """
        List recorded baselines.

        Returns:
            Sorted (network_id, contract_name) pairs
        """
        keys = []
        networks = [self._network_dir(network_id)] if network_id else sorted(self.root_dir.iterdir())
        for net_dir in networks:
            if not net_dir.is_dir():
                continue
            for path in net_dir.glob("*.json"):
                keys.append((net_dir.name, path.stem))
        keys.sort()
        return keys

    # --- Scratch ---

    def write_scratch(self, contract_name: str, network_id: str,
                      snapshot: StorageLayoutSnapshot) -> Path:
        """Write (or overwrite) the scratch copy for this key."""
        path = self._write(self._scratch_path(contract_name, network_id),
                           contract_name, network_id, snapshot)
        logger.debug(f"Wrote scratch layout {path}")
        return path

    def read_scratch(self, contract_name: str, network_id: str) -> Optional[StorageLayoutSnapshot]:
        return self._read(self._scratch_path(contract_name, network_id))

    def discard_scratch(self, contract_name: str, network_id: str):
        """Remove the scratch copy. Missing files are ignored."""
        path = self._scratch_path(contract_name, network_id)
        if path.exists():
            path.unlink()
            logger.debug(f"Discarded scratch layout {path}")

    @contextmanager
    def scratch(self, contract_name: str, network_id: str,
                snapshot: StorageLayoutSnapshot) -> Iterator[StorageLayoutSnapshot]:
        """
        Hold the scratch slot for the duration of an upgrade attempt.

        The scratch copy is written on entry and removed on every exit path,
        including exceptions.
        """
        self.write_scratch(contract_name, network_id, snapshot)
        try:
            yield self.read_scratch(contract_name, network_id)
        finally:
            self.discard_scratch(contract_name, network_id)

    # --- Internals ---

    def _read(self, path: Path) -> Optional[StorageLayoutSnapshot]:
        if not path.exists():
            return None

        try:
            record = LayoutRecord.model_validate_json(path.read_text())
        except ValidationError as e:
            raise LayoutError(f"Layout file {path} is malformed: {e}")

        if not record.verify_hash():
            raise LayoutError(f"Layout file {path} failed hash verification")

        return record.snapshot

    def _write(self, path: Path, contract_name: str, network_id: str,
               snapshot: StorageLayoutSnapshot) -> Path:
        record = LayoutRecord(
            contract_name=contract_name,
            network_id=network_id,
            captured_at=utc_timestamp(),
            snapshot=snapshot,
        )
        record.hash = record.calculate_hash()

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(record.model_dump_json(indent=2))
        tmp_path.replace(path)
        return path

    def _network_dir(self, network_id: str) -> Path:
        _check_name(network_id, "network id")
        return self.root_dir / network_id

    def _baseline_path(self, contract_name: str, network_id: str) -> Path:
        _check_name(contract_name, "contract name")
        return self._network_dir(network_id) / f"{contract_name}.json"

    def _scratch_path(self, contract_name: str, network_id: str) -> Path:
        _check_name(contract_name, "contract name")
        return self._network_dir(network_id) / SCRATCH_DIR_NAME / f"{contract_name}.json"


def _check_name(value: str, what: str):
    if not value or value.startswith(".") or not _SAFE_NAME_RE.match(value):
        raise ValueError(f"Invalid {what}: {value!r}")
