"""
Ballot preference resolution shared by the IRV and STV tabulators.

A ballot's effective vote is always recomputed from its rank marks and the
current continuing set; nothing about a ballot's history is cached here.
"""

from dataclasses import dataclass
from typing import AbstractSet, Sequence, Set, Union

from .types import Blank, ExhaustionReason, Overvote, RankMark, Single


@dataclass(frozen=True)
class Vote:
    """The ballot currently counts for ``candidate_id`` (found at ``rank_index``)."""

    candidate_id: str
    rank_index: int


@dataclass(frozen=True)
class Exhausted:
    """The ballot can no longer count; ``rank_index`` is where scanning stopped."""

    reason: ExhaustionReason
    rank_index: int


Resolution = Union[Vote, Exhausted]


def resolve(
    ranks: Sequence[RankMark], continuing: AbstractSet[str], start_index: int = 0
) -> Resolution:
    """
    Find the ballot's first valid preference among continuing candidates.

    Scans forward from ``start_index``. Blank slots are skipped. An overvote
    exhausts the ballot the moment it is reached. A candidate repeated later
    in the same scan is ignored. Candidates no longer continuing are skipped.
    Marks before ``start_index`` were seen by earlier scans, so they still
    make a ballot that runs out of choices exhaust as noValidNext.

    Args:
        ranks: The ballot's rank marks
        continuing: Candidate ids still in the count
        start_index: First rank position to consider

    Returns:
        Vote for the first continuing candidate, or Exhausted with the reason
        (overvote, noValidNext when some mark was seen, blank otherwise)
    """
    seen: Set[str] = set()
    saw_mark = any(not isinstance(mark, Blank) for mark in ranks[:start_index])

    for i in range(start_index, len(ranks)):
        mark = ranks[i]
        if isinstance(mark, Blank):
            continue
        saw_mark = True
        if isinstance(mark, Overvote):
            return Exhausted(ExhaustionReason.OVERVOTE, i)
        if isinstance(mark, Single):
            candidate_id = mark.candidate_id
            if candidate_id in seen:
                continue
            seen.add(candidate_id)
            if candidate_id in continuing:
                return Vote(candidate_id, i)
            continue
        raise TypeError(f"Unknown rank mark at position {i}: {mark!r}")

    reason = ExhaustionReason.NO_VALID_NEXT if saw_mark else ExhaustionReason.BLANK
    return Exhausted(reason, len(ranks))
