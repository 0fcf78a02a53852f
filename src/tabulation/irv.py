import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd

from .common import build_transfers, round_cap, validate_inputs
from .errors import AlgorithmInvariantViolation
from .preference import Vote, resolve
from .rng import SeededRNG
from .types import (
    EXHAUSTED,
    START,
    Ballot,
    CountResult,
    ExhaustionCounter,
    MajorityCondition,
    PathStep,
    RCVRules,
    RoundResult,
    TieBreak,
    TieBreaker,
)

logger = logging.getLogger(__name__)


class IRVTabulator:
    """
    Instant-runoff (single winner) tabulation engine.

    Every round re-resolves each ballot from its first rank against the
    continuing set, checks for a majority, and otherwise eliminates the
    lowest candidate. Ties for lowest are broken per ``RCVRules``.
    """

    def __init__(
        self,
        ballots: Sequence[Ballot],
        candidate_ids: Sequence[str],
        seed: str,
        rules: Optional[RCVRules] = None,
        user_ballot_id: Optional[str] = None,
    ):
        """
        Initialize IRV tabulator.

        Args:
            ballots: Ballots to count (read only for the whole run)
            candidate_ids: Candidate ids; their order is the reporting order
            seed: Election seed; the tie-break stream uses ``seed + "-rcv"``
            rules: Tie-breaker and majority settings (defaults if omitted)
            user_ballot_id: Ballot whose allocation is traced round by round

        Raises:
            InputValidationError: if ballots, candidates or seed are unusable
        """
        validate_inputs(ballots, candidate_ids, seed)
        self.ballots = list(ballots)
        self.candidate_ids = list(candidate_ids)
        self.seed = seed
        self.rules = rules or RCVRules()
        self.user_ballot_id = user_ballot_id
        self.rounds: List[RoundResult] = []
        self.winner: Optional[str] = None
        self.eliminated: List[str] = []

    def run_irv_tabulation(self) -> CountResult:
        """
        Run the complete count.

        Returns:
            CountResult with every round, the winner and the optional user path

        Raises:
            AlgorithmInvariantViolation: if the round cap is reached
        """
        logger.info(
            f"Starting IRV tabulation: {len(self.ballots)} ballots, "
            f"{len(self.candidate_ids)} candidates"
        )
        rng = SeededRNG(self.seed + "-rcv")
        self.rounds = []
        self.eliminated = []
        self.winner = None

        continuing = list(self.candidate_ids)
        user_index = self._find_user_ballot()
        user_path: List[PathStep] = []
        previous_allocation = START

        for round_index in range(round_cap(len(self.candidate_ids))):
            continuing_set = set(continuing)
            tallies: Dict[str, int] = {cid: 0 for cid in continuing}
            exhaustion = ExhaustionCounter()
            exhausted = 0
            allocation: List[str] = []

            for ballot in self.ballots:
                pref = resolve(ballot.ranks, continuing_set)
                if isinstance(pref, Vote):
                    tallies[pref.candidate_id] += 1
                    allocation.append(pref.candidate_id)
                else:
                    exhausted += 1
                    exhaustion.add(pref.reason)
                    allocation.append(EXHAUSTED)

            continuing_ballots = sum(tallies.values())
            threshold = continuing_ballots / 2

            winner, tie_break = self._find_majority_winner(
                round_index, tallies, threshold, rng
            )
            if winner is None and len(continuing) == 1:
                winner = continuing[0]

            eliminated = None
            transfers = []
            if winner is None:
                eliminated, tie_break = self._choose_elimination(
                    round_index, tallies, rng
                )
                transfers = self._compute_transfers(
                    eliminated, allocation, continuing_set - {eliminated}, continuing
                )

            self.rounds.append(
                RoundResult(
                    round_index=round_index,
                    continuing=tuple(continuing),
                    tallies=tallies,
                    exhausted=exhausted,
                    exhaustion_detail=exhaustion.freeze(),
                    continuing_ballots=continuing_ballots,
                    threshold=threshold,
                    winner=winner,
                    eliminated=eliminated,
                    tie_break=tie_break,
                    transfers=tuple(transfers),
                )
            )

            if self.user_ballot_id is not None:
                now = allocation[user_index] if user_index is not None else EXHAUSTED
                user_path.append(PathStep(round_index, previous_allocation, now))
                previous_allocation = now

            if winner is not None:
                logger.info(
                    f"Round {round_index}: {winner} wins with {tallies[winner]} of "
                    f"{continuing_ballots} continuing ballots"
                )
                self.winner = winner
                break

            logger.info(
                f"Round {round_index}: eliminating {eliminated} "
                f"with {tallies[eliminated]} votes"
            )
            continuing.remove(eliminated)
            self.eliminated.append(eliminated)
        else:
            raise AlgorithmInvariantViolation(
                f"IRV count reached {len(self.rounds)} rounds without a winner"
            )

        logger.info(f"IRV tabulation complete: winner {self.winner}")
        logger.info(f"Total rounds: {len(self.rounds)}")

        return CountResult(
            rounds=tuple(self.rounds),
            winner=self.winner,
            user_path=tuple(user_path) if self.user_ballot_id is not None else None,
        )

    def _find_user_ballot(self) -> Optional[int]:
        if self.user_ballot_id is None:
            return None
        for i, ballot in enumerate(self.ballots):
            if ballot.id == self.user_ballot_id:
                return i
        logger.warning(
            f"User ballot {self.user_ballot_id} not found; path will show it exhausted"
        )
        return None

    def _find_majority_winner(
        self, round_index: int, tallies: Dict[str, int], threshold: float, rng: SeededRNG
    ) -> Tuple[Optional[str], Optional[TieBreak]]:
        """
        Return the candidate meeting the majority condition, if any does.

        Under ``>=`` two candidates can both sit exactly on the threshold.
        One of them still wins this round: the higher tally, then a seeded
        draw over the sorted ids, recorded as a "majority" tie break.
        """
        if self.rules.majority_condition == MajorityCondition.GREATER_OR_EQUAL:
            meeting = [cid for cid, votes in tallies.items() if votes >= threshold]
        else:
            meeting = [cid for cid, votes in tallies.items() if votes > threshold]
        if not meeting:
            return None, None
        top = max(tallies[cid] for cid in meeting)
        leaders = sorted(cid for cid in meeting if tallies[cid] == top)
        if len(leaders) == 1:
            return leaders[0], None
        chosen = leaders[rng.draw_index(len(leaders))]
        logger.info(f"Round {round_index}: majority tie among {leaders} broken by lot")
        return chosen, TieBreak(
            round_index=round_index, tied=tuple(leaders), chosen=chosen, kind="majority"
        )

    def _choose_elimination(
        self, round_index: int, tallies: Dict[str, int], rng: SeededRNG
    ) -> Tuple[str, Optional[TieBreak]]:
        min_votes = min(tallies.values())
        lows = [cid for cid, votes in tallies.items() if votes == min_votes]
        if len(lows) == 1:
            return lows[0], None

        tied = tuple(sorted(lows))
        chosen = None
        if self.rules.tie_breaker == TieBreaker.LOOKBACK_THEN_LOT:
            chosen = self._lookback(lows)
        if chosen is None:
            chosen = tied[rng.draw_index(len(tied))]
            logger.info(f"Round {round_index}: tie among {list(tied)} broken by lot")
        else:
            logger.info(
                f"Round {round_index}: tie among {list(tied)} broken by prior rounds"
            )
        return chosen, TieBreak(round_index=round_index, tied=tied, chosen=chosen)

    def _lookback(self, lows: List[str]) -> Optional[str]:
        """Walk prior rounds newest first; the first to single out one lowest wins."""
        for previous in reversed(self.rounds):
            min_votes = min(previous.tallies.get(cid, 0) for cid in lows)
            lowest = [cid for cid in lows if previous.tallies.get(cid, 0) == min_votes]
            if len(lowest) == 1:
                return lowest[0]
        return None

    def _compute_transfers(
        self,
        eliminated: str,
        allocation: List[str],
        next_continuing: Set[str],
        order: List[str],
    ):
        amounts: Counter = Counter()
        for ballot, allocated in zip(self.ballots, allocation):
            if allocated != eliminated:
                continue
            pref = resolve(ballot.ranks, next_continuing)
            amounts[pref.candidate_id if isinstance(pref, Vote) else EXHAUSTED] += 1

        for to, count in amounts.items():
            logger.debug(f"  {eliminated} -> {to}: {count}")
        return build_transfers(eliminated, amounts, order)

    def get_round_summary(self) -> pd.DataFrame:
        """
        Get summary of all rounds as a DataFrame.

        Returns:
            DataFrame with one row per continuing candidate per round
        """
        if not self.rounds:
            return pd.DataFrame()

        summary_data = []
        for round_obj in self.rounds:
            for candidate_id, votes in round_obj.tallies.items():
                summary_data.append(
                    {
                        "round": round_obj.round_index,
                        "candidate_id": candidate_id,
                        "votes": votes,
                        "threshold": round_obj.threshold,
                        "status": self._get_candidate_status(candidate_id, round_obj),
                        "exhausted_votes": round_obj.exhausted,
                    }
                )

        return pd.DataFrame(summary_data)

    def _get_candidate_status(self, candidate_id: str, round_obj: RoundResult) -> str:
        if candidate_id == round_obj.winner:
            return "elected"
        elif candidate_id == round_obj.eliminated:
            return "eliminated"
        return "continuing"

    def get_final_results(self) -> pd.DataFrame:
        """
        Get final standings for every candidate.

        Eliminated candidates report the votes they held in the round they
        were eliminated.
        """
        if not self.rounds:
            return pd.DataFrame()

        results_data = []
        for candidate_id in self.candidate_ids:
            last_round = next(
                r for r in reversed(self.rounds) if candidate_id in r.tallies
            )
            results_data.append(
                {
                    "candidate_id": candidate_id,
                    "final_votes": last_round.tallies[candidate_id],
                    "status": "elected" if candidate_id == self.winner else "not_elected",
                    "last_round": last_round.round_index,
                }
            )

        return pd.DataFrame(results_data).sort_values(
            ["last_round", "final_votes"], ascending=False, kind="stable"
        )


def run_irv(
    ballots: Sequence[Ballot],
    candidate_ids: Sequence[str],
    seed: str,
    user_ballot_id: Optional[str] = None,
    rules: Optional[RCVRules] = None,
) -> CountResult:
    """Count a single-winner election; see IRVTabulator."""
    return IRVTabulator(
        ballots, candidate_ids, seed, rules=rules, user_ballot_id=user_ballot_id
    ).run_irv_tabulation()
