"""
Unit tests for cross-checking results against PyRankVote.
"""

import numpy as np
import pandas as pd
import pytest
from pyrankvote import Candidate as ReferenceCandidate

from conftest import make_ballots, repeat
from tabulation.irv import run_irv
from tabulation.stv import run_stv
from tabulation.types import CountResult
from tabulation.verification import (
    ReferenceVerifier,
    convert_numpy_types,
    to_reference_ballots,
)

CANDIDATES = ["Alice", "Bob", "Charlie"]


@pytest.fixture
def clear_ballots():
    """Alice 50, Bob 40, Charlie 30 with no ties anywhere in the count."""
    return make_ballots(
        *repeat(["Alice", "Bob", None], 50),
        *repeat(["Bob", "Charlie", None], 40),
        *repeat(["Charlie", "Alice", None], 30),
    )


@pytest.mark.unit
class TestReferenceBallotConversion:
    def setup_method(self):
        self.candidates_map = {cid: ReferenceCandidate(cid) for cid in CANDIDATES}

    def names(self, reference_ballot):
        return [c.name for c in reference_ballot.ranked_candidates]

    def test_blanks_skipped(self):
        ballots = make_ballots([None, "Bob", None, "Alice"])
        converted = to_reference_ballots(ballots, self.candidates_map)
        assert self.names(converted[0]) == ["Bob", "Alice"]

    def test_duplicates_dropped(self):
        ballots = make_ballots(["Bob", "Bob", "Alice"])
        converted = to_reference_ballots(ballots, self.candidates_map)
        assert self.names(converted[0]) == ["Bob", "Alice"]

    def test_truncated_at_overvote(self):
        ballots = make_ballots(["Bob", ["Alice", "Charlie"], "Alice"])
        converted = to_reference_ballots(ballots, self.candidates_map)
        assert self.names(converted[0]) == ["Bob"]

    def test_empty_ballots_dropped(self):
        ballots = make_ballots(
            [None, None], [["Alice", "Bob"], "Charlie"], ["Charlie", None]
        )
        converted = to_reference_ballots(ballots, self.candidates_map)
        assert len(converted) == 1
        assert self.names(converted[0]) == ["Charlie"]

    def test_unknown_candidates_ignored(self):
        ballots = make_ballots(["Zed", "Alice"])
        converted = to_reference_ballots(ballots, self.candidates_map)
        assert self.names(converted[0]) == ["Alice"]


@pytest.mark.unit
class TestReferenceVerifier:
    def test_irv_agrees(self, clear_ballots):
        result = run_irv(clear_ballots, CANDIDATES, "seed")
        assert result.winner == "Alice"

        verifier = ReferenceVerifier(clear_ballots, CANDIDATES)
        verification = verifier.verify_irv(result)

        assert verification["winners_match"] is True
        assert verification["reference_winners"] == ["Alice"]
        assert verification["our_winners"] == ["Alice"]
        assert verification["missing_winners"] == []
        assert verification["extra_winners"] == []
        assert verification["total_vote_difference"] == 0
        assert verification["verification_passed"] is True

    def test_stv_agrees(self, clear_ballots):
        result = run_stv(clear_ballots, CANDIDATES, 2, "seed")
        assert set(result.winners) == {"Alice", "Bob"}

        verifier = ReferenceVerifier(clear_ballots, CANDIDATES)
        verification = verifier.verify_stv(result)

        assert verification["winners_match"] is True
        assert set(verification["reference_winners"]) == {"Alice", "Bob"}
        assert verification["verification_passed"] is True

    def test_first_choice_comparison(self, clear_ballots):
        result = run_irv(clear_ballots, CANDIDATES, "seed")
        verification = ReferenceVerifier(clear_ballots, CANDIDATES).verify_irv(result)

        comparison = verification["first_choice_comparison"]
        assert isinstance(comparison, pd.DataFrame)
        assert list(comparison["candidate_id"]) == CANDIDATES
        assert list(comparison["reference_votes"]) == [50, 40, 30]
        assert list(comparison["our_votes"]) == [50, 40, 30]

    def test_mismatch_detected(self, clear_ballots):
        real = run_irv(clear_ballots, CANDIDATES, "seed")
        wrong = CountResult(rounds=real.rounds, winner="Charlie")

        verification = ReferenceVerifier(clear_ballots, CANDIDATES).verify_irv(wrong)

        assert verification["winners_match"] is False
        assert verification["missing_winners"] == ["Alice"]
        assert verification["extra_winners"] == ["Charlie"]
        assert verification["verification_passed"] is False

    def test_report_passed(self, clear_ballots):
        verifier = ReferenceVerifier(clear_ballots, CANDIDATES)
        verification = verifier.verify_irv(run_irv(clear_ballots, CANDIDATES, "seed"))
        report = verifier.generate_verification_report(verification)

        assert "REFERENCE VERIFICATION REPORT" in report
        assert "VERIFICATION PASSED" in report
        assert "Our winners: Alice" in report

    def test_report_failed(self, clear_ballots):
        real = run_irv(clear_ballots, CANDIDATES, "seed")
        verifier = ReferenceVerifier(clear_ballots, CANDIDATES)
        verification = verifier.verify_irv(CountResult(rounds=real.rounds, winner="Bob"))
        report = verifier.generate_verification_report(verification)

        assert "VERIFICATION FAILED" in report
        assert "Missing winners: Alice" in report
        assert "Extra winners: Bob" in report


@pytest.mark.unit
class TestConvertNumpyTypes:
    def test_scalars(self):
        assert convert_numpy_types(np.int64(3)) == 3
        assert isinstance(convert_numpy_types(np.int64(3)), int)
        assert isinstance(convert_numpy_types(np.float64(1.5)), float)
        assert convert_numpy_types(np.bool_(True)) is True

    def test_nested(self):
        data = {"a": [np.int32(1), {"b": np.array([1, 2])}]}
        assert convert_numpy_types(data) == {"a": [1, {"b": [1, 2]}]}

    def test_dataframe_to_records(self):
        df = pd.DataFrame({"candidate_id": ["A"], "votes": [np.int64(2)]})
        assert convert_numpy_types(df) == [{"candidate_id": "A", "votes": 2}]

    def test_passthrough(self):
        assert convert_numpy_types("text") == "text"
        assert convert_numpy_types(None) is None
