from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import InputValidationError

EXHAUSTED = "exhausted"
START = "start"


@dataclass(frozen=True)
class Candidate:
    """A candidate as supplied by the election setup."""

    id: str
    name: str
    short_label: str = ""
    bio: str = ""


@dataclass(frozen=True)
class Blank:
    """A rank slot left unmarked."""


@dataclass(frozen=True)
class Single:
    """A rank slot marked for exactly one candidate."""

    candidate_id: str


@dataclass(frozen=True)
class Overvote:
    """A rank slot marked for more than one candidate."""

    candidate_ids: Tuple[str, ...]

    def __post_init__(self):
        if len(self.candidate_ids) < 2:
            raise InputValidationError(
                f"Overvote needs at least two candidates, got {list(self.candidate_ids)}"
            )


RankMark = Union[Blank, Single, Overvote]

BLANK = Blank()


def rank_mark_from_raw(raw: Any) -> RankMark:
    """
    Convert a loosely typed rank value into a RankMark.

    Args:
        raw: None, a candidate id, or a list of candidate ids

    Returns:
        Blank for None or an empty list, Single for a string or a
        one-element list, Overvote for a list of two or more ids
    """
    if isinstance(raw, (Blank, Single, Overvote)):
        return raw
    if raw is None:
        return BLANK
    if isinstance(raw, str):
        return Single(raw) if raw else BLANK
    if isinstance(raw, (list, tuple)):
        ids = tuple(str(c) for c in raw)
        if not ids:
            return BLANK
        if len(ids) == 1:
            return Single(ids[0])
        return Overvote(ids)
    raise InputValidationError(f"Unsupported rank value: {raw!r}")


def rank_mark_to_raw(mark: RankMark) -> Union[None, str, List[str]]:
    """Inverse of rank_mark_from_raw, used for JSON output."""
    if isinstance(mark, Single):
        return mark.candidate_id
    if isinstance(mark, Overvote):
        return list(mark.candidate_ids)
    return None


@dataclass(frozen=True)
class Ballot:
    """One voter's fixed-length ranking."""

    id: str
    ranks: Tuple[RankMark, ...]
    source: str = "synthetic"

    @classmethod
    def from_raw(
        cls, ballot_id: str, ranks: Sequence[Any], source: str = "synthetic"
    ) -> "Ballot":
        return cls(
            id=str(ballot_id),
            ranks=tuple(rank_mark_from_raw(r) for r in ranks),
            source=source,
        )


class TieBreaker(str, Enum):
    LOOKBACK_THEN_LOT = "lookback-then-lot"
    LOT = "lot"
    SEEDED = "seeded"


class MajorityCondition(str, Enum):
    GREATER = ">"
    GREATER_OR_EQUAL = ">="


class STVAction(str, Enum):
    ELECT = "elect"
    ELIMINATE = "eliminate"
    FINAL = "final"


class ExhaustionReason(str, Enum):
    OVERVOTE = "overvote"
    NO_VALID_NEXT = "noValidNext"
    BLANK = "blank"


@dataclass(frozen=True)
class RCVRules:
    """Jurisdiction-specific knobs for single-winner counts."""

    tie_breaker: TieBreaker = TieBreaker.LOOKBACK_THEN_LOT
    majority_condition: MajorityCondition = MajorityCondition.GREATER

    @classmethod
    def from_values(
        cls, tie_breaker: Optional[str] = None, majority_condition: Optional[str] = None
    ) -> "RCVRules":
        """Build rules from plain strings, rejecting unknown values."""
        try:
            return cls(
                tie_breaker=TieBreaker(tie_breaker or TieBreaker.LOOKBACK_THEN_LOT),
                majority_condition=MajorityCondition(
                    majority_condition or MajorityCondition.GREATER
                ),
            )
        except ValueError as e:
            raise InputValidationError(str(e)) from e


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-ready representation."""
        return _plain(asdict(self))


@dataclass(frozen=True)
class ExhaustionDetail(_Serializable):
    overvote_at_rank: int = 0
    no_valid_next: int = 0
    blank_remaining: int = 0


@dataclass(frozen=True)
class TieBreak(_Serializable):
    round_index: int
    tied: Tuple[str, ...]
    chosen: str
    kind: str = "elimination"


@dataclass(frozen=True)
class Transfer(_Serializable):
    from_candidate: str
    to_candidate: str
    count: float


@dataclass(frozen=True)
class RoundResult(_Serializable):
    """One IRV round, recorded before the eliminated candidate is removed."""

    round_index: int
    continuing: Tuple[str, ...]
    tallies: Dict[str, int]
    exhausted: int
    exhaustion_detail: ExhaustionDetail
    continuing_ballots: int
    threshold: float
    winner: Optional[str] = None
    eliminated: Optional[str] = None
    tie_break: Optional[TieBreak] = None
    transfers: Tuple[Transfer, ...] = ()


@dataclass(frozen=True)
class PathStep(_Serializable):
    round_index: int
    from_allocation: str
    to_allocation: str


@dataclass(frozen=True)
class CountResult(_Serializable):
    rounds: Tuple[RoundResult, ...]
    winner: str
    user_path: Optional[Tuple[PathStep, ...]] = None


@dataclass(frozen=True)
class SurplusTransfer(_Serializable):
    from_candidate: str
    surplus: float
    transfer_value: float


@dataclass(frozen=True)
class STVRoundResult(_Serializable):
    """
    One STV round.

    ``continuing`` and ``tallies`` describe the count at the start of the
    round; ``elected`` is the elected set after this round's action.
    ``threshold`` is the Droop quota, fixed for the whole run.
    """

    round_index: int
    continuing: Tuple[str, ...]
    elected: Tuple[str, ...]
    tallies: Dict[str, float]
    exhausted: float
    exhaustion_detail: ExhaustionDetail
    continuing_ballots: float
    threshold: int
    action: STVAction
    affected_candidate: Optional[str] = None
    tie_break: Optional[TieBreak] = None
    transfers: Tuple[Transfer, ...] = ()
    surplus_transfer: Optional[SurplusTransfer] = None


@dataclass(frozen=True)
class STVResult(_Serializable):
    rounds: Tuple[STVRoundResult, ...]
    winners: Tuple[str, ...]
    seats: int


@dataclass
class ExhaustionCounter:
    """Mutable accumulator for the three exhaustion reasons within a round."""

    counts: Dict[ExhaustionReason, int] = field(
        default_factory=lambda: {reason: 0 for reason in ExhaustionReason}
    )

    def add(self, reason: ExhaustionReason):
        self.counts[reason] += 1

    def freeze(self) -> ExhaustionDetail:
        return ExhaustionDetail(
            overvote_at_rank=self.counts[ExhaustionReason.OVERVOTE],
            no_valid_next=self.counts[ExhaustionReason.NO_VALID_NEXT],
            blank_remaining=self.counts[ExhaustionReason.BLANK],
        )
