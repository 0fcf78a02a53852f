import logging
from typing import Dict, Iterable, List, Sequence

from .errors import InputValidationError
from .types import EXHAUSTED, Ballot, Transfer

logger = logging.getLogger(__name__)

# Safety cap on the number of rounds. A count can never legitimately need
# more rounds than it has candidates, so the cap grows with the field.
MAX_ROUNDS = 50


def round_cap(candidate_count: int) -> int:
    return max(MAX_ROUNDS, candidate_count)


def validate_inputs(
    ballots: Sequence[Ballot], candidate_ids: Sequence[str], seed: str
) -> None:
    """
    Check the input contract shared by both tabulators.

    Raises:
        InputValidationError: on empty ballots, empty or duplicate candidate
            ids, or an empty seed
    """
    if not ballots:
        raise InputValidationError("No ballots provided for count")
    if not candidate_ids:
        raise InputValidationError("No candidates provided for count")
    if len(set(candidate_ids)) != len(candidate_ids):
        duplicates = sorted(
            {cid for cid in candidate_ids if list(candidate_ids).count(cid) > 1}
        )
        raise InputValidationError(f"Duplicate candidate ids: {duplicates}")
    if not seed or not isinstance(seed, str):
        raise InputValidationError("Seed required for count")


def build_transfers(
    from_candidate: str, amounts: Dict[str, float], order: Iterable[str]
) -> List[Transfer]:
    """
    Turn accumulated transfer amounts into Transfer records.

    Destinations are listed in ``order`` (candidate order) with exhaustion
    last, so records are stable across runs.
    """
    transfers = [
        Transfer(from_candidate, to, amounts[to])
        for to in order
        if amounts.get(to, 0) > 0
    ]
    if amounts.get(EXHAUSTED, 0) > 0:
        transfers.append(Transfer(from_candidate, EXHAUSTED, amounts[EXHAUSTED]))
    return transfers
