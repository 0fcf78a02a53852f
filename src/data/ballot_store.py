import logging
import random
import time
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Sequence

import duckdb
import pandas as pd

try:
    from ..tabulation.types import BLANK, Ballot, Candidate, Overvote, Single
except ImportError:
    from tabulation.types import BLANK, Ballot, Candidate, Overvote, Single

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS candidates (
    candidate_order INTEGER,
    candidate_id TEXT,
    candidate_name TEXT,
    short_label TEXT,
    bio TEXT
);
CREATE TABLE IF NOT EXISTS ballots (
    ballot_order INTEGER,
    ballot_id TEXT,
    source TEXT,
    rank_slots INTEGER
);
CREATE TABLE IF NOT EXISTS ballot_marks (
    ballot_id TEXT,
    rank_position INTEGER,
    mark_order INTEGER,
    candidate_id TEXT
);
"""


def connect_with_retry(
    db_path: str, read_only: bool = True, max_retries: int = 3
) -> duckdb.DuckDBPyConnection:
    """
    Open a DuckDB connection, retrying while another process holds the lock.

    Args:
        db_path: Path to DuckDB file (``:memory:`` for an in-memory database)
        read_only: Whether to open in read-only mode (avoids locks)
        max_retries: Maximum number of connection attempts

    Returns:
        DuckDB connection

    Raises:
        FileNotFoundError: if a read-only file database does not exist
    """
    on_disk = db_path != ":memory:"
    if read_only and on_disk and not Path(db_path).exists():
        raise FileNotFoundError(f"Database file not found: {db_path}")

    for attempt in range(max_retries):
        try:
            if read_only and on_disk:
                conn = duckdb.connect(db_path, read_only=True)
                logger.debug(f"Opened read-only connection to {db_path}")
            else:
                conn = duckdb.connect(db_path)
                logger.debug(f"Opened read-write connection to {db_path}")
            return conn
        except duckdb.IOException as e:
            if "lock" in str(e).lower() and attempt < max_retries - 1:
                # Exponential backoff with jitter
                wait_time = (2**attempt) + random.uniform(0, 1)  # nosec B311
                logger.warning(
                    f"Database locked, retrying in {wait_time:.2f}s (attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(wait_time)
                continue
            logger.error(f"Failed to connect to database after {attempt + 1} attempts: {e}")
            raise

    raise duckdb.IOException(
        f"Could not establish database connection after {max_retries} attempts"
    )


class BallotStore:
    """
    Stores candidates and ballots in DuckDB in normalized long format.

    Each marked candidate on each rank is one ``ballot_marks`` row, so an
    overvote is several rows sharing a rank position and a blank rank has
    no rows. ``ballots.rank_slots`` keeps the fixed ballot length.
    """

    def __init__(self, db_path: Optional[str] = None, read_only: bool = False):
        """
        Initialize the store.

        Args:
            db_path: Path to DuckDB file. If None, uses in-memory database.
            read_only: Open connections read-only (for serving stored data)
        """
        self.db_path = db_path or ":memory:"
        self.read_only = read_only
        self._conn = None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create a database connection on-demand."""
        if self._conn is None:
            self._conn = connect_with_retry(self.db_path, self.read_only)
        return self._conn

    @contextmanager
    def transaction(self):
        self.conn.execute("BEGIN TRANSACTION")
        try:
            yield self.conn
        except Exception:
            self.conn.execute("ROLLBACK")
            raise
        else:
            self.conn.execute("COMMIT")

    def create_schema(self):
        self.conn.execute(SCHEMA_SQL)
        logger.info("Ballot store schema ready")

    def query(self, sql: str, params: Optional[Sequence] = None) -> pd.DataFrame:
        """Execute a SQL query and return results as DataFrame."""
        if params is None:
            return self.conn.execute(sql).fetchdf()
        return self.conn.execute(sql, list(params)).fetchdf()

    def table_exists(self, table_name: str) -> bool:
        result = self.conn.execute(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?",
            [table_name],
        ).fetchone()
        return result[0] > 0

    def save_candidates(self, candidates: Sequence[Candidate]):
        """Replace the stored candidate list, keeping the given order."""
        self.create_schema()
        rows = [
            (i, c.id, c.name, c.short_label, c.bio) for i, c in enumerate(candidates)
        ]
        with self.transaction() as conn:
            conn.execute("DELETE FROM candidates")
            if rows:
                conn.executemany("INSERT INTO candidates VALUES (?, ?, ?, ?, ?)", rows)
        logger.info(f"Saved {len(rows)} candidates")

    def save_ballots(self, ballots: Sequence[Ballot]):
        """Replace the stored ballots, keeping the given order."""
        self.create_schema()
        ballot_rows = []
        mark_rows = []
        for order, ballot in enumerate(ballots):
            ballot_rows.append((order, ballot.id, ballot.source, len(ballot.ranks)))
            for position, mark in enumerate(ballot.ranks, 1):
                if isinstance(mark, Single):
                    mark_rows.append((ballot.id, position, 0, mark.candidate_id))
                elif isinstance(mark, Overvote):
                    for mark_order, candidate_id in enumerate(mark.candidate_ids):
                        mark_rows.append((ballot.id, position, mark_order, candidate_id))

        with self.transaction() as conn:
            conn.execute("DELETE FROM ballot_marks")
            conn.execute("DELETE FROM ballots")
            if ballot_rows:
                conn.executemany("INSERT INTO ballots VALUES (?, ?, ?, ?)", ballot_rows)
            if mark_rows:
                conn.executemany(
                    "INSERT INTO ballot_marks VALUES (?, ?, ?, ?)", mark_rows
                )
        logger.info(f"Saved {len(ballot_rows)} ballots ({len(mark_rows)} marks)")

    def load_candidates(self) -> List[Candidate]:
        df = self.query(
            "SELECT candidate_id, candidate_name, short_label, bio "
            "FROM candidates ORDER BY candidate_order"
        )
        return [
            Candidate(
                id=row["candidate_id"],
                name=row["candidate_name"],
                short_label=row["short_label"] or "",
                bio=row["bio"] or "",
            )
            for _, row in df.iterrows()
        ]

    def load_ballots(self) -> List[Ballot]:
        """Rebuild Ballot objects, restoring blanks and overvotes."""
        ballots_df = self.query(
            "SELECT ballot_id, source, rank_slots FROM ballots ORDER BY ballot_order"
        )
        marks_df = self.query(
            "SELECT ballot_id, rank_position, candidate_id FROM ballot_marks "
            "ORDER BY ballot_id, rank_position, mark_order"
        )

        marks_by_ballot = {}
        for (ballot_id, position), group in marks_df.groupby(
            ["ballot_id", "rank_position"], sort=False
        ):
            marks_by_ballot.setdefault(ballot_id, {})[int(position)] = tuple(
                group["candidate_id"]
            )

        ballots = []
        for _, row in ballots_df.iterrows():
            positions = marks_by_ballot.get(row["ballot_id"], {})
            ranks = []
            for position in range(1, int(row["rank_slots"]) + 1):
                ids = positions.get(position, ())
                if not ids:
                    ranks.append(BLANK)
                elif len(ids) == 1:
                    ranks.append(Single(ids[0]))
                else:
                    ranks.append(Overvote(ids))
            ballots.append(
                Ballot(id=row["ballot_id"], ranks=tuple(ranks), source=row["source"])
            )

        logger.info(f"Loaded {len(ballots)} ballots from store")
        return ballots

    def get_first_choice_totals(self) -> pd.DataFrame:
        """
        First-rank marks per candidate.

        Counts raw rank-1 marks only; it is a data summary, not round 0 of a
        count (which skips blanks and stops at overvotes).
        """
        return self.query(
            """
            SELECT
                c.candidate_id,
                c.candidate_name,
                COUNT(m.ballot_id) AS first_choice_votes
            FROM candidates c
            LEFT JOIN ballot_marks m
                ON m.candidate_id = c.candidate_id AND m.rank_position = 1
            GROUP BY c.candidate_id, c.candidate_name, c.candidate_order
            ORDER BY first_choice_votes DESC, c.candidate_order
            """
        )

    def close(self):
        """Close database connection."""
        if self._conn:
            try:
                self._conn.close()
                logger.debug(f"Closed database connection to {self.db_path}")
            except Exception as e:
                logger.warning(f"Error closing database connection: {e}")
            finally:
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
