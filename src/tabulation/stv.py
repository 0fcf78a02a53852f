import logging
from collections import Counter
from fractions import Fraction
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd

from .common import build_transfers, round_cap, validate_inputs
from .errors import AlgorithmInvariantViolation, InputValidationError
from .preference import Vote, resolve
from .rng import SeededRNG
from .types import (
    EXHAUSTED,
    Ballot,
    ExhaustionCounter,
    STVAction,
    STVResult,
    STVRoundResult,
    SurplusTransfer,
    TieBreak,
)

logger = logging.getLogger(__name__)


class _BallotState:
    """
    Per-ballot weight and rank pointer, private to a single run.

    Weights are exact fractions so a tally built from transferred surpluses
    compares against the quota without rounding.
    """

    __slots__ = ("weights", "pointers", "allocation")

    def __init__(self, count: int):
        self.weights: List[Fraction] = [Fraction(1)] * count
        self.pointers: List[int] = [0] * count
        self.allocation: List[Optional[str]] = [None] * count


class STVTabulator:
    """
    Single Transferable Vote tabulation engine.
    Implements multi-winner RCV using the Droop quota.

    Each round performs exactly one action: elect the leading candidate at
    or above quota (transferring any surplus at a fractional value), elect
    every remaining candidate once they can no longer lose, or eliminate the
    lowest candidate and transfer their ballots at full current weight.
    """

    def __init__(
        self, ballots: Sequence[Ballot], candidate_ids: Sequence[str], seats: int, seed: str
    ):
        """
        Initialize STV tabulator.

        Args:
            ballots: Ballots to count (read only for the whole run)
            candidate_ids: Candidate ids; their order is the reporting order
            seats: Number of seats to fill, 1 <= seats < len(candidate_ids)
            seed: Seed for the tie-break stream

        Raises:
            InputValidationError: on unusable ballots, candidates, seed or seats
        """
        validate_inputs(ballots, candidate_ids, seed)
        if isinstance(seats, bool) or not isinstance(seats, int) or seats < 1:
            raise InputValidationError(f"Must elect at least 1 seat, got {seats!r}")
        if seats >= len(candidate_ids):
            raise InputValidationError(
                f"Seats ({seats}) must be fewer than candidates ({len(candidate_ids)})"
            )

        self.ballots = list(ballots)
        self.candidate_ids = list(candidate_ids)
        self.seats = seats
        self.seed = seed
        self.quota = self.calculate_droop_quota(len(self.ballots))
        self.rounds: List[STVRoundResult] = []
        self.winners: List[str] = []
        self.eliminated: List[str] = []

    def calculate_droop_quota(self, total_ballots: int) -> int:
        """
        Calculate Droop quota: floor(total_ballots / (seats + 1)) + 1

        Args:
            total_ballots: Number of ballots in the count

        Returns:
            Droop quota
        """
        return total_ballots // (self.seats + 1) + 1

    def run_stv_tabulation(self) -> STVResult:
        """
        Run complete STV tabulation.

        Returns:
            STVResult with every round and the winners in order of election

        Raises:
            AlgorithmInvariantViolation: if the round cap is reached or the
                count ends without filling every seat
        """
        logger.info("Starting STV tabulation")
        logger.info(f"Total ballots: {len(self.ballots)}")
        logger.info(f"Droop quota: {self.quota}")
        logger.info(f"Seats to fill: {self.seats}")

        rng = SeededRNG(self.seed)
        state = _BallotState(len(self.ballots))
        self.rounds = []
        self.winners = []
        self.eliminated = []
        continuing = list(self.candidate_ids)
        cap = round_cap(len(self.candidate_ids))

        while len(self.winners) < self.seats and continuing:
            round_index = len(self.rounds)
            if round_index >= cap:
                raise AlgorithmInvariantViolation(
                    f"STV count reached {round_index} rounds with "
                    f"{len(self.winners)} of {self.seats} seats filled"
                )

            round_continuing = tuple(continuing)
            continuing_set = set(continuing)
            exhaustion = ExhaustionCounter()
            tallies, exhausted = self._count(state, continuing_set, exhaustion)
            continuing_ballots = sum(tallies.values())

            affected = None
            tie_break = None
            transfers = []
            surplus_transfer = None
            at_quota = [cid for cid in continuing if tallies[cid] >= self.quota]

            if at_quota:
                action = STVAction.ELECT
                affected, tie_break = self._pick(
                    at_quota, max, tallies, rng, round_index, "election"
                )
                continuing.remove(affected)
                self.winners.append(affected)
                logger.info(
                    f"Round {round_index}: {affected} elected with "
                    f"{float(tallies[affected]):.3f} votes"
                )

                surplus = tallies[affected] - self.quota
                if len(self.winners) < self.seats:
                    if surplus > 0:
                        transfer_value = surplus / tallies[affected]
                        surplus_transfer = SurplusTransfer(
                            from_candidate=affected,
                            surplus=float(surplus),
                            transfer_value=float(transfer_value),
                        )
                        logger.info(
                            f"Transferring surplus from {affected}: "
                            f"{float(surplus):.3f} votes "
                            f"at value {transfer_value}"
                        )
                        transfers, lost = self._transfer(
                            affected, transfer_value, state, set(continuing), exhaustion
                        )
                        exhausted += lost
                    else:
                        self._retain(affected, state)
            elif len(continuing) + len(self.winners) <= self.seats:
                action = STVAction.FINAL
                logger.info(
                    f"Round {round_index}: electing remaining candidates {continuing}"
                )
                self.winners.extend(continuing)
                continuing = []
            else:
                action = STVAction.ELIMINATE
                affected, tie_break = self._pick(
                    continuing, min, tallies, rng, round_index, "elimination"
                )
                continuing.remove(affected)
                self.eliminated.append(affected)
                logger.info(
                    f"Round {round_index}: eliminating {affected} with "
                    f"{float(tallies[affected]):.3f} votes"
                )
                transfers, lost = self._transfer(
                    affected, Fraction(1), state, set(continuing), exhaustion
                )
                exhausted += lost

            self.rounds.append(
                STVRoundResult(
                    round_index=round_index,
                    continuing=round_continuing,
                    elected=tuple(self.winners),
                    tallies={cid: float(votes) for cid, votes in tallies.items()},
                    exhausted=float(exhausted),
                    exhaustion_detail=exhaustion.freeze(),
                    continuing_ballots=float(continuing_ballots),
                    threshold=self.quota,
                    action=action,
                    affected_candidate=affected,
                    tie_break=tie_break,
                    transfers=tuple(transfers),
                    surplus_transfer=surplus_transfer,
                )
            )

        if len(self.winners) != self.seats:
            raise AlgorithmInvariantViolation(
                f"STV count filled {len(self.winners)} of {self.seats} seats"
            )

        logger.info("STV tabulation complete:")
        logger.info(f"Winners: {self.winners}")
        logger.info(f"Total rounds: {len(self.rounds)}")

        return STVResult(
            rounds=tuple(self.rounds), winners=tuple(self.winners), seats=self.seats
        )

    def _count(
        self, state: _BallotState, continuing: Set[str], exhaustion: ExhaustionCounter
    ) -> Tuple[Dict[str, Fraction], Fraction]:
        """Weighted tally of live ballots, resolving each from its stored pointer."""
        tallies: Dict[str, Fraction] = {
            cid: Fraction(0) for cid in self.candidate_ids if cid in continuing
        }
        exhausted = Fraction(0)
        for i, ballot in enumerate(self.ballots):
            state.allocation[i] = None
            weight = state.weights[i]
            if weight <= 0:
                continue
            pref = resolve(ballot.ranks, continuing, state.pointers[i])
            if isinstance(pref, Vote):
                tallies[pref.candidate_id] += weight
                state.pointers[i] = pref.rank_index
                state.allocation[i] = pref.candidate_id
            else:
                exhausted += weight
                exhaustion.add(pref.reason)
                state.weights[i] = Fraction(0)
        return tallies, exhausted

    def _pick(
        self,
        candidates: List[str],
        extreme,
        tallies: Dict[str, Fraction],
        rng: SeededRNG,
        round_index: int,
        kind: str,
    ) -> Tuple[str, Optional[TieBreak]]:
        """Pick the candidate with the extreme tally; ties go to a single seeded draw."""
        target = extreme(tallies[cid] for cid in candidates)
        tied = sorted(cid for cid in candidates if tallies[cid] == target)
        if len(tied) == 1:
            return tied[0], None
        chosen = tied[rng.draw_index(len(tied))]
        logger.info(f"Round {round_index}: {kind} tie among {tied} broken by lot")
        return chosen, TieBreak(
            round_index=round_index, tied=tuple(tied), chosen=chosen, kind=kind
        )

    def _transfer(
        self,
        from_candidate: str,
        factor: Fraction,
        state: _BallotState,
        continuing: Set[str],
        exhaustion: ExhaustionCounter,
    ):
        """
        Move every ballot counted for ``from_candidate`` to its next preference.

        Weights are scaled by ``factor`` first and pointers advance past the
        candidate's rank. Ballots with nowhere to go are exhausted for good.

        Returns:
            (transfers, exhausted weight)
        """
        amounts: Counter = Counter()
        lost = Fraction(0)
        for i, ballot in enumerate(self.ballots):
            if state.allocation[i] != from_candidate:
                continue
            state.weights[i] *= factor
            weight = state.weights[i]
            pref = resolve(ballot.ranks, continuing, state.pointers[i] + 1)
            if isinstance(pref, Vote):
                state.pointers[i] = pref.rank_index
                amounts[pref.candidate_id] += weight
            else:
                state.pointers[i] = pref.rank_index
                amounts[EXHAUSTED] += weight
                lost += weight
                exhaustion.add(pref.reason)
                state.weights[i] = Fraction(0)
            state.allocation[i] = None

        for to, amount in amounts.items():
            logger.debug(f"  {from_candidate} -> {to}: {float(amount):.3f}")
        amounts = {to: float(amount) for to, amount in amounts.items()}
        return build_transfers(from_candidate, amounts, self.candidate_ids), lost

    def _retain(self, winner: str, state: _BallotState):
        """A winner elected exactly at quota keeps every ballot: transfer value 0."""
        for i in range(len(self.ballots)):
            if state.allocation[i] == winner:
                state.weights[i] = Fraction(0)
                state.allocation[i] = None

    def get_round_summary(self) -> pd.DataFrame:
        """
        Get summary of all rounds as a DataFrame.

        Returns:
            DataFrame with round-by-round results
        """
        if not self.rounds:
            return pd.DataFrame()

        summary_data = []
        already_elected: Set[str] = set()
        already_eliminated: Set[str] = set()
        for round_obj in self.rounds:
            elected_now = set(round_obj.elected) - already_elected
            for candidate_id in self.candidate_ids:
                if candidate_id in elected_now:
                    status = "elected"
                elif (
                    round_obj.action == STVAction.ELIMINATE
                    and candidate_id == round_obj.affected_candidate
                ):
                    status = "eliminated"
                elif candidate_id in already_elected:
                    status = "already_elected"
                elif candidate_id in already_eliminated:
                    status = "already_eliminated"
                else:
                    status = "continuing"
                summary_data.append(
                    {
                        "round": round_obj.round_index,
                        "candidate_id": candidate_id,
                        "votes": round_obj.tallies.get(candidate_id),
                        "quota": round_obj.threshold,
                        "status": status,
                        "exhausted_votes": round_obj.exhausted,
                    }
                )
            already_elected |= elected_now
            if round_obj.action == STVAction.ELIMINATE:
                already_eliminated.add(round_obj.affected_candidate)

        return pd.DataFrame(summary_data)

    def get_final_results(self) -> pd.DataFrame:
        """
        Get final election results.

        Returns:
            DataFrame with final results for all candidates
        """
        if not self.rounds:
            return pd.DataFrame()

        results_data = []
        for candidate_id in self.candidate_ids:
            counted = [r for r in self.rounds if candidate_id in r.tallies]
            results_data.append(
                {
                    "candidate_id": candidate_id,
                    "final_votes": counted[-1].tallies[candidate_id] if counted else 0.0,
                    "status": "elected" if candidate_id in self.winners else "not_elected",
                    "election_round": next(
                        (
                            r.round_index
                            for r in self.rounds
                            if candidate_id in r.elected
                        ),
                        None,
                    ),
                }
            )

        return pd.DataFrame(results_data).sort_values("final_votes", ascending=False)


def run_stv(
    ballots: Sequence[Ballot], candidate_ids: Sequence[str], seats: int, seed: str
) -> STVResult:
    """Count a multi-winner election; see STVTabulator."""
    return STVTabulator(ballots, candidate_ids, seats, seed).run_stv_tabulation()
