"""
Deployment record log.

Every deployment, proxy deployment and completed upgrade is appended here.
Records are immutable once written.
"""
import logging
from typing import List, Optional

from ...protocol.crypto.addresses import normalize_address
from ...protocol.types.deployment import DeploymentRecord
from ..storage.db import DeploymentDB

logger = logging.getLogger(__name__)


class DeploymentLog:
    """Append-only log of DeploymentRecords, persisted in a DeploymentDB."""

    def __init__(self, db_path: str = ":memory:"):
        """
        Args:
            db_path: sqlite file path (default: in-memory, for tests and dry runs)
        """
        self.db = DeploymentDB(db_path)

    def append(self, record: DeploymentRecord) -> int:
        """
        Append a record.

        Returns:
            Sequence number assigned to the record
        """
        proxy = normalize_address(record.proxy_address) if record.proxy_address else None
        seq = self.db.append(
            record.contract_name,
            record.network_id,
            proxy,
            normalize_address(record.implementation_address),
            record.model_dump_json(),
        )
        logger.debug(
            f"Recorded {record.action.value} #{seq}: {record.contract_name} on {record.network_id} "
            f"impl={record.implementation_address} proxy={record.proxy_address}"
        )
        return seq

    def history(self, contract_name: Optional[str] = None,
                network_id: Optional[str] = None) -> List[DeploymentRecord]:
        """Records matching the filters, oldest first."""
        rows = self.db.query(contract_name=contract_name, network_id=network_id)
        return [DeploymentRecord.model_validate_json(data) for _, data in rows]

    def for_proxy(self, proxy_address: str) -> List[DeploymentRecord]:
        rows = self.db.query(proxy_address=normalize_address(proxy_address))
        return [DeploymentRecord.model_validate_json(data) for _, data in rows]

    def latest(self, contract_name: str, network_id: str) -> Optional[DeploymentRecord]:
        records = self.history(contract_name, network_id)
        return records[-1] if records else None

    def __len__(self) -> int:
        return self.db.count()

    def close(self):
        self.db.close()
