import logging
from collections import Counter
from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd
from pyrankvote import Ballot as ReferenceBallot
from pyrankvote import Candidate as ReferenceCandidate
from pyrankvote import instant_runoff_voting, single_transferable_vote

from .types import Ballot, CountResult, Overvote, Single, STVResult

logger = logging.getLogger(__name__)


def convert_numpy_types(obj: Any) -> Any:
    """Convert numpy types to native Python types for JSON serialization."""
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, pd.DataFrame):
        return convert_numpy_types(obj.to_dict("records"))
    elif isinstance(obj, dict):
        return {k: convert_numpy_types(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [convert_numpy_types(item) for item in obj]
    else:
        return obj


def to_reference_ballots(
    ballots: Sequence[Ballot], candidates_map: Dict[str, ReferenceCandidate]
) -> List[ReferenceBallot]:
    """
    Convert ballots to PyRankVote format.

    PyRankVote has no notion of blanks or overvotes, so each ballot is
    reduced to its ordered distinct candidates up to the first overvote.
    Ballots left with no candidates are dropped.
    """
    reference_ballots = []
    for ballot in ballots:
        ranked_candidates = []
        seen_candidates = set()  # PyRankVote rejects duplicates
        for mark in ballot.ranks:
            if isinstance(mark, Overvote):
                break
            if isinstance(mark, Single):
                candidate_id = mark.candidate_id
                if candidate_id in candidates_map and candidate_id not in seen_candidates:
                    ranked_candidates.append(candidates_map[candidate_id])
                    seen_candidates.add(candidate_id)
        if ranked_candidates:
            reference_ballots.append(ReferenceBallot(ranked_candidates=ranked_candidates))
    return reference_ballots


class ReferenceVerifier:
    """
    Verifies our IRV/STV winners against the PyRankVote implementation.

    Agreement is only expected for counts without ties: PyRankVote breaks
    ties with its own unseeded randomness.
    """

    def __init__(self, ballots: Sequence[Ballot], candidate_ids: Sequence[str]):
        """
        Initialize verifier.

        Args:
            ballots: Ballots that were counted
            candidate_ids: Candidate ids in reporting order
        """
        self.ballots = list(ballots)
        self.candidate_ids = list(candidate_ids)
        self.candidates_map: Dict[str, ReferenceCandidate] = {}
        self.ballots_data: List[ReferenceBallot] = []

    def _prepare_pyrankvote_data(self):
        """Convert ballot data to PyRankVote format."""
        logger.info("Preparing data for PyRankVote")
        self.candidates_map = {cid: ReferenceCandidate(cid) for cid in self.candidate_ids}
        self.ballots_data = to_reference_ballots(self.ballots, self.candidates_map)
        logger.info(
            f"Created {len(self.candidates_map)} candidates and {len(self.ballots_data)} ballots"
        )

    def reference_irv_winners(self) -> List[str]:
        self._prepare_pyrankvote_data()
        result = instant_runoff_voting(
            candidates=list(self.candidates_map.values()), ballots=self.ballots_data
        )
        return [winner.name for winner in result.get_winners()]

    def reference_stv_winners(self, seats: int) -> List[str]:
        self._prepare_pyrankvote_data()
        result = single_transferable_vote(
            candidates=list(self.candidates_map.values()),
            ballots=self.ballots_data,
            number_of_seats=seats,
        )
        return [winner.name for winner in result.get_winners()]

    def verify_irv(self, result: CountResult) -> Dict:
        """
        Verify an IRV result against PyRankVote.

        Returns:
            Verification report dictionary
        """
        logger.info("Verifying IRV result against PyRankVote")
        reference = self.reference_irv_winners()
        return self._compare([result.winner], reference, result.rounds[0].tallies)

    def verify_stv(self, result: STVResult) -> Dict:
        """
        Verify an STV result against PyRankVote.

        Returns:
            Verification report dictionary
        """
        logger.info("Verifying STV result against PyRankVote")
        reference = self.reference_stv_winners(result.seats)
        return self._compare(list(result.winners), reference, result.rounds[0].tallies)

    def _first_choice_comparison(self, our_first_round: Dict[str, float]) -> pd.DataFrame:
        reference_counts = Counter(
            ballot.ranked_candidates[0].name for ballot in self.ballots_data
        )
        comparisons = []
        for candidate_id in self.candidate_ids:
            ours = our_first_round.get(candidate_id, 0)
            theirs = reference_counts.get(candidate_id, 0)
            comparisons.append(
                {
                    "candidate_id": candidate_id,
                    "reference_votes": theirs,
                    "our_votes": ours,
                    "difference": ours - theirs,
                }
            )
        return pd.DataFrame(comparisons)

    def _compare(
        self,
        our_winners: List[str],
        reference_winners: List[str],
        our_first_round: Dict[str, float],
    ) -> Dict:
        ours = set(our_winners)
        theirs = set(reference_winners)
        winners_match = ours == theirs

        vote_comparison_df = self._first_choice_comparison(our_first_round)
        total_vote_difference = float(vote_comparison_df["difference"].abs().sum())

        if not winners_match:
            logger.warning(
                f"Winner mismatch: ours={sorted(ours)} reference={sorted(theirs)}"
            )

        return {
            "winners_match": winners_match,
            "reference_winners": list(reference_winners),
            "our_winners": list(our_winners),
            "missing_winners": [w for w in reference_winners if w not in ours],
            "extra_winners": [w for w in our_winners if w not in theirs],
            "first_choice_comparison": vote_comparison_df,
            "total_vote_difference": total_vote_difference,
            "verification_passed": winners_match and total_vote_difference == 0,
        }

    def generate_verification_report(self, verification_results: Dict) -> str:
        """
        Generate a human-readable verification report.

        Args:
            verification_results: Results from verify_irv() or verify_stv()

        Returns:
            Formatted verification report string
        """
        report = []
        report.append("=" * 60)
        report.append("REFERENCE VERIFICATION REPORT")
        report.append("=" * 60)

        if verification_results["verification_passed"]:
            report.append("VERIFICATION PASSED - Results match PyRankVote")
        else:
            report.append("VERIFICATION FAILED - Discrepancies found")

        report.append("")
        report.append("WINNERS:")
        report.append(
            f"Reference winners: {', '.join(verification_results['reference_winners'])}"
        )
        report.append(f"Our winners: {', '.join(verification_results['our_winners'])}")
        if verification_results["missing_winners"]:
            report.append(
                f"Missing winners: {', '.join(verification_results['missing_winners'])}"
            )
        if verification_results["extra_winners"]:
            report.append(
                f"Extra winners: {', '.join(verification_results['extra_winners'])}"
            )

        report.append("")
        report.append("FIRST CHOICE VOTE COUNTS:")
        report.append(
            f"Total vote difference: {verification_results['total_vote_difference']}"
        )
        vote_df = verification_results["first_choice_comparison"]
        differing = vote_df[vote_df["difference"] != 0]
        for _, row in differing.iterrows():
            report.append(
                f"  {row['candidate_id']}: Reference={row['reference_votes']}, "
                f"Ours={row['our_votes']}, Diff={row['difference']}"
            )

        return "\n".join(report)
