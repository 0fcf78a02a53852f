"""
Integration tests for the DuckDB ballot store.
"""

import duckdb
import pytest

from data.ballot_store import BallotStore, connect_with_retry
from tabulation import run_irv, run_stv
from tabulation.types import BLANK, Ballot, Candidate, Overvote, Single

CANDIDATES = [
    Candidate("A", "Alice", "Al", "First candidate"),
    Candidate("B", "Bob"),
    Candidate("C", "Charlie", "Chaz"),
]

BALLOTS = [
    Ballot("b1", (Single("A"), Single("B"), BLANK)),
    Ballot("b2", (Overvote(("A", "C")), BLANK, Single("B")), "survey"),
    Ballot("b3", (BLANK, BLANK, BLANK)),
    Ballot("b4", (Single("C"), Single("C"), Single("A"))),
    Ballot("b5", (Single("B"), BLANK, Overvote(("A", "B", "C")))),
]


@pytest.mark.integration
class TestBallotStoreRoundTrip:
    def test_candidates_round_trip(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.save_candidates(CANDIDATES)

        with BallotStore(temp_db_file, read_only=True) as store:
            assert store.load_candidates() == CANDIDATES

    def test_ballots_round_trip(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.save_ballots(BALLOTS)

        with BallotStore(temp_db_file, read_only=True) as store:
            assert store.load_ballots() == BALLOTS

    def test_saving_replaces_previous_data(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.save_ballots(BALLOTS)
            store.save_ballots(BALLOTS[:2])
            store.save_candidates(CANDIDATES)
            store.save_candidates(CANDIDATES[:1])

            assert store.load_ballots() == BALLOTS[:2]
            assert store.load_candidates() == CANDIDATES[:1]

    def test_in_memory_store(self):
        with BallotStore() as store:
            assert store.db_path == ":memory:"
            store.save_candidates(CANDIDATES)
            store.save_ballots(BALLOTS)
            assert store.load_ballots() == BALLOTS

    def test_counts_match_after_round_trip(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.save_candidates(CANDIDATES)
            store.save_ballots(BALLOTS)

        with BallotStore(temp_db_file, read_only=True) as store:
            candidate_ids = [c.id for c in store.load_candidates()]
            ballots = store.load_ballots()

        ids = [c.id for c in CANDIDATES]
        assert run_irv(ballots, candidate_ids, "s") == run_irv(BALLOTS, ids, "s")
        assert run_stv(ballots, candidate_ids, 2, "s") == run_stv(BALLOTS, ids, 2, "s")


@pytest.mark.integration
class TestBallotStoreQueries:
    def test_table_exists(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            assert not store.table_exists("ballots")
            store.create_schema()
            assert store.table_exists("ballots")
            assert store.table_exists("ballot_marks")
            assert store.table_exists("candidates")

    def test_marks_stored_long(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.save_ballots(BALLOTS)
            marks = store.query(
                "SELECT rank_position, candidate_id FROM ballot_marks "
                "WHERE ballot_id = ? ORDER BY rank_position, mark_order",
                ["b2"],
            )
            slots = store.query("SELECT rank_slots FROM ballots WHERE ballot_id = 'b3'")

        assert list(marks["rank_position"]) == [1, 1, 3]
        assert list(marks["candidate_id"]) == ["A", "C", "B"]
        assert slots.iloc[0]["rank_slots"] == 3

    def test_first_choice_totals(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.save_candidates(CANDIDATES)
            store.save_ballots(BALLOTS)
            totals = store.get_first_choice_totals()

        by_id = dict(zip(totals["candidate_id"], totals["first_choice_votes"]))
        # raw rank-1 marks, overvote marks included
        assert by_id == {"A": 2, "B": 1, "C": 2}
        assert list(totals.columns) == [
            "candidate_id",
            "candidate_name",
            "first_choice_votes",
        ]

    def test_failed_transaction_rolls_back(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.save_candidates(CANDIDATES)
            with pytest.raises(RuntimeError):
                with store.transaction() as conn:
                    conn.execute("DELETE FROM candidates")
                    raise RuntimeError("abort")
            assert store.load_candidates() == CANDIDATES


@pytest.mark.integration
class TestConnections:
    def test_lazy_connection(self, temp_db_file):
        store = BallotStore(temp_db_file)
        assert store._conn is None
        store.table_exists("ballots")
        assert store._conn is not None
        store.close()
        assert store._conn is None

    def test_close_twice(self, temp_db_file):
        store = BallotStore(temp_db_file)
        store.create_schema()
        store.close()
        store.close()

    def test_read_only_rejects_writes(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.create_schema()

        with BallotStore(temp_db_file, read_only=True) as store:
            with pytest.raises(duckdb.Error):
                store.conn.execute("DELETE FROM ballots")

    def test_multiple_read_only_connections(self, temp_db_file):
        with BallotStore(temp_db_file) as store:
            store.save_candidates(CANDIDATES)

        first = BallotStore(temp_db_file, read_only=True)
        second = BallotStore(temp_db_file, read_only=True)
        try:
            assert first.load_candidates() == second.load_candidates()
        finally:
            first.close()
            second.close()

    def test_read_only_missing_file_is_not_created(self, tmp_path):
        missing = tmp_path / "missing.db"
        store = BallotStore(str(missing), read_only=True)
        with pytest.raises(FileNotFoundError):
            store.table_exists("ballots")
        assert not missing.exists()

    def test_connect_with_retry_memory(self):
        conn = connect_with_retry(":memory:", read_only=True)
        try:
            assert conn.execute("SELECT 1").fetchone()[0] == 1
        finally:
            conn.close()
