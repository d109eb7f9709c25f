import sqlite3
import threading
from typing import List, Optional, Tuple

class DeploymentDB:
    """
    Append-only deployment log backed by sqlite.

    Rows are never updated or deleted; `seq` preserves insertion order.
    """

    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS deployments (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    contract_name TEXT NOT NULL,
                    network_id TEXT NOT NULL,
                    proxy_address TEXT,
                    implementation_address TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            ''')
            self.cursor.execute('''
                CREATE INDEX IF NOT EXISTS deployments_by_key
                ON deployments (contract_name, network_id)
            ''')
            self.cursor.execute('''
                CREATE INDEX IF NOT EXISTS deployments_by_proxy
                ON deployments (proxy_address)
            ''')
            self.conn.commit()

    def append(self, contract_name: str, network_id: str, proxy_address: Optional[str],
               implementation_address: str, data: str) -> int:
        """Insert a row and return its sequence number."""
        with self._lock:
            self.cursor.execute(
                'INSERT INTO deployments (contract_name, network_id, proxy_address, implementation_address, data) '
                'VALUES (?, ?, ?, ?, ?)',
                (contract_name, network_id, proxy_address, implementation_address, data)
            )
            self.conn.commit()
            return self.cursor.lastrowid

    def query(self, contract_name: Optional[str] = None, network_id: Optional[str] = None,
              proxy_address: Optional[str] = None) -> List[Tuple[int, str]]:
        """Returns (seq, data) rows matching the filters, oldest first."""
        clauses = []
        params = []
        if contract_name is not None:
            clauses.append('contract_name = ?')
            params.append(contract_name)
        if network_id is not None:
            clauses.append('network_id = ?')
            params.append(network_id)
        if proxy_address is not None:
            clauses.append('proxy_address = ?')
            params.append(proxy_address)

        sql = 'SELECT seq, data FROM deployments'
        if clauses:
            sql += ' WHERE ' + ' AND '.join(clauses)
        sql += ' ORDER BY seq ASC'

        with self._lock:
            self.cursor.execute(sql, params)
            return self.cursor.fetchall()

    def count(self) -> int:
        with self._lock:
            self.cursor.execute('SELECT COUNT(*) FROM deployments')
            return self.cursor.fetchone()[0]

    def close(self):
        with self._lock:
            self.conn.close()
