"""SQLite-backed subscription store"""
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .models import Subscriber
from ..errors import EmptyEntitySet, InvalidCadence
from ..utils.logger import setup_logger
from ..utils.team_names import normalize_entities, normalize_entity
from ..utils.timezone import now_utc

logger = setup_logger(__name__)


class SubscriptionStore:
    """
    Source of truth for who wants updates about which teams, and how often

    Every read and write goes through one re-entrant lock, so bookkeeping for
    a given subscriber has a single writer at a time and multi-statement
    writes are never observed half-applied.
    """

    def __init__(
        self,
        db_path: str = "data/bot.db",
        min_cadence: timedelta = timedelta(minutes=1)
    ):
        """
        Initialize the store

        Args:
            db_path: Path of the SQLite database file
            min_cadence: Smallest accepted interval between deliveries
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.min_cadence = min_cadence
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self):
        """Create tables if they don't exist"""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS subscribers (
                    id TEXT PRIMARY KEY,
                    cadence_seconds INTEGER NOT NULL,
                    last_delivered_at TEXT,
                    last_payload_hash TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS watched_entities (
                    subscriber_id TEXT NOT NULL,
                    entity TEXT NOT NULL,
                    PRIMARY KEY (subscriber_id, entity),
                    FOREIGN KEY (subscriber_id) REFERENCES subscribers(id)
                        ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS favorites (
                    subscriber_id TEXT PRIMARY KEY,
                    team TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_watched_entities_subscriber
                ON watched_entities(subscriber_id)
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def upsert(
        self,
        subscriber_id: str,
        entities: Iterable[str],
        cadence: timedelta
    ) -> Subscriber:
        """
        Create or replace a subscription

        The watch set and cadence are replaced in one transaction. Delivery
        bookkeeping of an existing subscriber is kept.

        Raises:
            InvalidCadence: cadence is below the configured minimum
            EmptyEntitySet: no usable team names were given
        """
        if cadence < self.min_cadence:
            raise InvalidCadence(
                cadence.total_seconds() / 60,
                self.min_cadence.total_seconds() / 60
            )

        watched = normalize_entities(entities)
        if not watched:
            raise EmptyEntitySet(subscriber_id)

        now = now_utc().isoformat()
        with self._lock, self._get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("""
                    INSERT INTO subscribers
                    (id, cadence_seconds, last_delivered_at, last_payload_hash,
                     created_at, updated_at)
                    VALUES (?, ?, NULL, NULL, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        cadence_seconds = excluded.cadence_seconds,
                        updated_at = excluded.updated_at
                """, (subscriber_id, int(cadence.total_seconds()), now, now))
                conn.execute(
                    "DELETE FROM watched_entities WHERE subscriber_id = ?",
                    (subscriber_id,)
                )
                conn.executemany(
                    "INSERT INTO watched_entities (subscriber_id, entity) VALUES (?, ?)",
                    [(subscriber_id, entity) for entity in sorted(watched)]
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

        logger.info(
            f"Subscriber {subscriber_id} now watching {', '.join(sorted(watched))} "
            f"every {cadence}"
        )
        subscriber = self.get(subscriber_id)
        if subscriber is None:
            raise RuntimeError(f"Subscriber {subscriber_id} vanished after upsert")
        return subscriber

    def remove(self, subscriber_id: str) -> bool:
        """
        Remove a subscription; removing an unknown subscriber is a no-op

        Returns:
            True if a subscription was deleted
        """
        with self._lock, self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM watched_entities WHERE subscriber_id = ?",
                (subscriber_id,)
            )
            cursor.execute("DELETE FROM subscribers WHERE id = ?", (subscriber_id,))
            deleted = cursor.rowcount > 0
            conn.commit()

        if deleted:
            logger.info(f"Removed subscription for {subscriber_id}")
        return deleted

    def get(self, subscriber_id: str) -> Optional[Subscriber]:
        """Get a subscriber by ID"""
        with self._lock, self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM subscribers WHERE id = ?", (subscriber_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            cursor.execute(
                "SELECT entity FROM watched_entities WHERE subscriber_id = ?",
                (subscriber_id,)
            )
            entities = [r['entity'] for r in cursor.fetchall()]
        return self._row_to_subscriber(row, entities)

    def count(self) -> int:
        """Number of active subscriptions"""
        with self._lock, self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM subscribers")
            return cursor.fetchone()[0]

    def due_subscribers(self, now: datetime) -> Iterator[Subscriber]:
        """
        Yield subscribers whose cadence has elapsed at `now`

        The rows are read in a single transaction when the generator starts,
        so the sequence reflects one consistent state of the store. Every call
        returns a new, finite iterator.
        """
        for subscriber in self._snapshot():
            if not subscriber.watched_entities:
                logger.error(
                    f"Subscriber {subscriber.subscriber_id} has no watched teams; "
                    f"excluding from schedule"
                )
                continue
            if subscriber.is_due(now):
                yield subscriber

    def _snapshot(self) -> List[Subscriber]:
        """Read every subscriber with its watch set"""
        with self._lock, self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM subscribers ORDER BY id ASC")
            rows = cursor.fetchall()
            cursor.execute("SELECT subscriber_id, entity FROM watched_entities")
            entities: Dict[str, List[str]] = {}
            for row in cursor.fetchall():
                entities.setdefault(row['subscriber_id'], []).append(row['entity'])

        return [
            self._row_to_subscriber(row, entities.get(row['id'], []))
            for row in rows
        ]

    def record_delivery(self, subscriber_id: str, payload_hash: str, now: datetime):
        """
        Store the result of a delivery

        Does nothing if the subscriber was removed in the meantime.
        """
        with self._lock, self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE subscribers
                SET last_delivered_at = ?, last_payload_hash = ?
                WHERE id = ?
            """, (now.isoformat(), payload_hash, subscriber_id))
            updated = cursor.rowcount
            conn.commit()

        if not updated:
            logger.debug(f"Discarding delivery record for removed subscriber {subscriber_id}")

    def set_favorite(self, subscriber_id: str, team: str):
        """Remember a user's favorite team"""
        with self._lock, self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO favorites (subscriber_id, team, updated_at)
                VALUES (?, ?, ?)
            """, (subscriber_id, normalize_entity(team), now_utc().isoformat()))
            conn.commit()

    def get_favorite(self, subscriber_id: str) -> Optional[str]:
        """Get a user's favorite team, if one was set"""
        with self._lock, self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT team FROM favorites WHERE subscriber_id = ?",
                (subscriber_id,)
            )
            row = cursor.fetchone()
            return row['team'] if row else None

    def _row_to_subscriber(self, row: sqlite3.Row, entities: List[str]) -> Subscriber:
        """Convert database row to Subscriber object"""
        last_delivered = row['last_delivered_at']
        return Subscriber(
            subscriber_id=row['id'],
            watched_entities=frozenset(entities),
            cadence=timedelta(seconds=row['cadence_seconds']),
            created_at=datetime.fromisoformat(row['created_at']),
            updated_at=datetime.fromisoformat(row['updated_at']),
            last_delivered_at=datetime.fromisoformat(last_delivered) if last_delivered else None,
            last_payload_hash=row['last_payload_hash']
        )
