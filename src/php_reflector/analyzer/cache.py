"""Result cache for dependency (vendor) files.

Vendor code rarely changes between scans, so its per-file detector output is
memoized in a small SQLite key/value store with a time-to-live. Project files
are never cached.

Cache Strategy:
- Key: 'class_usages_vendor_' + SHA-256 of (file content digest, target, usage types)
- Value: JSON list of usage records without the file path
- Expiry: absolute timestamp, default one day after the write
- Every written key is tracked, so a flush removes exactly what this cache wrote

Location: .reflector_cache/usages.db in the project root (":memory:" for tests)
"""

import hashlib
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
KEY_PREFIX = 'class_usages_vendor_'


class UsageCache:
    """Key/value store with TTL and tracked keys for selective flushing."""

    def __init__(self, db_path: str | Path = ':memory:', ttl_seconds: int = DEFAULT_TTL_SECONDS):
        """Open (and create if needed) the cache database.

        Args:
            db_path: SQLite file path, or ':memory:' for a throwaway cache
            ttl_seconds: Default time-to-live for new entries
        """
        self.ttl_seconds = ttl_seconds
        self.db_path = str(db_path)

        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(self.db_path)
        self._init_database()

    def _init_database(self):
        """Create cache tables if they don't exist."""
        cursor = self.conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS usage_cache (
                cache_key TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                expires_at REAL NOT NULL
            )
        ''')

        # Keys written by this cache; flushing deletes exactly these
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS tracked_keys (
                cache_key TEXT PRIMARY KEY
            )
        ''')

        self.conn.commit()

    @staticmethod
    def make_key(content: bytes, target: str, usage_types: Iterable[str] = ()) -> str:
        """Build a content-derived cache key.

        The target and requested usage types are part of the key: the stored
        records only answer that exact question about that exact content.
        """
        digest = hashlib.sha256(content).hexdigest()
        types = ','.join(sorted(usage_types))
        normalized = target.strip().lstrip('\\')
        key_material = f"{digest}|{normalized}|{types}"
        return KEY_PREFIX + hashlib.sha256(key_material.encode('utf-8')).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""
        cursor = self.conn.cursor()
        cursor.execute('''
            SELECT payload, expires_at FROM usage_cache
            WHERE cache_key = ?
        ''', (key,))

        result = cursor.fetchone()
        if not result:
            return None

        payload, expires_at = result
        if expires_at <= time.time():
            logger.debug("Cache entry expired: %s", key)
            self.forget(key)
            return None

        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt cache entry: %s", key)
            self.forget(key)
            return None

    def put(self, key: str, value: Any, ttl_seconds: Optional[int] = None):
        """Store a JSON-serializable value; last writer wins."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        cursor = self.conn.cursor()
        cursor.execute('''
            INSERT OR REPLACE INTO usage_cache (cache_key, payload, expires_at)
            VALUES (?, ?, ?)
        ''', (key, json.dumps(value), time.time() + ttl))
        cursor.execute('INSERT OR IGNORE INTO tracked_keys (cache_key) VALUES (?)', (key,))
        self.conn.commit()

    def forget(self, key: str):
        cursor = self.conn.cursor()
        cursor.execute('DELETE FROM usage_cache WHERE cache_key = ?', (key,))
        cursor.execute('DELETE FROM tracked_keys WHERE cache_key = ?', (key,))
        self.conn.commit()

    def tracked_keys(self) -> List[str]:
        cursor = self.conn.cursor()
        cursor.execute('SELECT cache_key FROM tracked_keys ORDER BY cache_key')
        return [row[0] for row in cursor.fetchall()]

    def invalidate_all(self) -> int:
        """Forget every tracked key.

        Returns:
            Number of keys removed
        """
        keys = self.tracked_keys()
        cursor = self.conn.cursor()
        cursor.executemany('DELETE FROM usage_cache WHERE cache_key = ?', [(key,) for key in keys])
        cursor.execute('DELETE FROM tracked_keys')
        self.conn.commit()
        logger.debug("Flushed %d vendor cache entries", len(keys))
        return len(keys)

    def purge_expired(self) -> int:
        """Delete expired entries, returning how many were removed."""
        now = time.time()
        cursor = self.conn.cursor()
        cursor.execute('SELECT cache_key FROM usage_cache WHERE expires_at <= ?', (now,))
        expired = [(row[0],) for row in cursor.fetchall()]
        cursor.executemany('DELETE FROM usage_cache WHERE cache_key = ?', expired)
        cursor.executemany('DELETE FROM tracked_keys WHERE cache_key = ?', expired)
        self.conn.commit()
        return len(expired)

    def get_cache_stats(self) -> Dict[str, int]:
        """Get cache statistics."""
        now = time.time()
        cursor = self.conn.cursor()
        cursor.execute('SELECT COUNT(*) FROM usage_cache')
        total_entries = cursor.fetchone()[0]
        cursor.execute('SELECT COUNT(*) FROM usage_cache WHERE expires_at <= ?', (now,))
        expired_entries = cursor.fetchone()[0]
        cursor.execute('SELECT COUNT(*) FROM tracked_keys')
        tracked = cursor.fetchone()[0]

        return {
            'total_entries': total_entries,
            'live_entries': total_entries - expired_entries,
            'expired_entries': expired_entries,
            'tracked_keys': tracked,
        }

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
