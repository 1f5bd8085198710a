"""
Match ledger.

Keeps notification matches with their delivery state, and the ids of the
messages that have already gone through matching so a message is matched
at most once.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

import duckdb
import pandas as pd

from .models import NotificationMatch

logger = logging.getLogger(__name__)


class MatchStore(ABC):
    """Abstract interface for the match ledger."""

    @abstractmethod
    def write_matches(self, matches: list[NotificationMatch]) -> int:
        """Store new matches as not yet notified. Returns the number written."""
        ...

    @abstractmethod
    def processed_message_ids(self) -> set[str]:
        ...

    @abstractmethod
    def mark_processed(self, message_ids: Iterable[str]) -> None:
        ...

    @abstractmethod
    def unnotified(self) -> list[NotificationMatch]:
        """Stored matches not yet delivered, with their ledger ids."""
        ...

    @abstractmethod
    def mark_notified(self, match_ids: Iterable[int]) -> int:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class DuckDBMatchStore(MatchStore):
    """
    DuckDB match ledger.

    Matches and processed message ids live in separate tables; pass
    ":memory:" for a throwaway ledger.
    """

    DDL_SEQUENCE = "CREATE SEQUENCE IF NOT EXISTS notification_match_ids START 1;"

    DDL_MATCHES = """
    CREATE TABLE IF NOT EXISTS notification_matches (
        id BIGINT PRIMARY KEY DEFAULT nextval('notification_match_ids'),
        message_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        interest_id TEXT NOT NULL,
        distance_m DOUBLE,
        matched_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        notified BOOLEAN DEFAULT FALSE,
        notified_at TIMESTAMP
    );
    """

    DDL_PROCESSED = """
    CREATE TABLE IF NOT EXISTS processed_messages (
        message_id TEXT PRIMARY KEY,
        processed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """

    def __init__(self, db_path: Optional[Path | str] = None):
        """
        Args:
            db_path: Path to the DuckDB file; None or ":memory:" keeps the ledger in memory
        """
        if db_path is None or str(db_path) == ":memory:":
            self.db_path = ":memory:"
        else:
            path = Path(db_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path = str(path)
        self.con = duckdb.connect(self.db_path)
        self.con.execute(self.DDL_SEQUENCE)
        self.con.execute(self.DDL_MATCHES)
        self.con.execute(self.DDL_PROCESSED)
        logger.info(f"Initialized match ledger: {self.db_path}")

    def write_matches(self, matches: list[NotificationMatch]) -> int:
        if not matches:
            return 0

        df = pd.DataFrame(
            [(m.message_id, m.user_id, m.interest_id, float(m.distance_m)) for m in matches],
            columns=['message_id', 'user_id', 'interest_id', 'distance_m'],
        )
        self.con.register('batch_matches', df)
        self.con.execute(
            """
            INSERT INTO notification_matches (message_id, user_id, interest_id, distance_m)
            SELECT message_id, user_id, interest_id, distance_m FROM batch_matches
            """
        )
        self.con.unregister('batch_matches')
        logger.info(f"Stored {len(df)} matches")
        return len(df)

    def processed_message_ids(self) -> set[str]:
        rows = self.con.execute("SELECT message_id FROM processed_messages").fetchall()
        return {row[0] for row in rows}

    def mark_processed(self, message_ids: Iterable[str]) -> None:
        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return
        self.con.register('batch_processed', pd.DataFrame({'message_id': ids}))
        self.con.execute(
            """
            INSERT INTO processed_messages (message_id)
            SELECT message_id FROM batch_processed
            ON CONFLICT (message_id) DO NOTHING
            """
        )
        self.con.unregister('batch_processed')

    def unnotified(self) -> list[NotificationMatch]:
        rows = self.con.execute(
            """
            SELECT id, message_id, user_id, interest_id, distance_m
            FROM notification_matches
            WHERE NOT notified
            ORDER BY id
            """
        ).fetchall()
        return [
            NotificationMatch(message_id=r[1], user_id=r[2], interest_id=r[3], distance_m=r[4], id=r[0])
            for r in rows
        ]

    def mark_notified(self, match_ids: Iterable[int]) -> int:
        ids = [int(i) for i in dict.fromkeys(match_ids)]
        if not ids:
            return 0
        self.con.register('batch_notified', pd.DataFrame({'id': ids}))
        self.con.execute(
            """
            UPDATE notification_matches
            SET notified = TRUE, notified_at = CURRENT_TIMESTAMP
            WHERE id IN (SELECT id FROM batch_notified)
            """
        )
        self.con.unregister('batch_notified')
        logger.info(f"Marked {len(ids)} matches as notified")
        return len(ids)

    def get_summary(self) -> dict[str, int]:
        matches, notified = self.con.execute(
            "SELECT COUNT(*), COUNT(*) FILTER (WHERE notified) FROM notification_matches"
        ).fetchone()
        processed = self.con.execute("SELECT COUNT(*) FROM processed_messages").fetchone()[0]
        return {'matches': matches, 'notified': notified, 'processed_messages': processed}

    def close(self) -> None:
        if self.con:
            self.con.close()
            logger.info("Closed match ledger")
