import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

try:
    from ..tabulation.types import (
        BLANK,
        Ballot,
        Candidate,
        Overvote,
        RankMark,
        Single,
        rank_mark_to_raw,
    )
except ImportError:
    from tabulation.types import (
        BLANK,
        Ballot,
        Candidate,
        Overvote,
        RankMark,
        Single,
        rank_mark_to_raw,
    )

logger = logging.getLogger(__name__)

OVERVOTE_SEPARATOR = "|"
RANK_PREFIX = "rank_"


def _rank_columns(columns) -> List[str]:
    ranks = [c for c in columns if str(c).startswith(RANK_PREFIX)]
    return sorted(ranks, key=lambda c: int(str(c)[len(RANK_PREFIX):]))


def parse_rank_cell(value: Any) -> RankMark:
    """
    Parse one CSV rank cell.

    Empty cells are blank, ``A|B`` is an overvote, anything else is a
    single mark for that candidate id.
    """
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return BLANK
    text = str(value).strip()
    if not text:
        return BLANK
    if OVERVOTE_SEPARATOR in text:
        ids = tuple(part.strip() for part in text.split(OVERVOTE_SEPARATOR) if part.strip())
        if len(ids) > 1:
            return Overvote(ids)
        return Single(ids[0]) if ids else BLANK
    return Single(text)


def load_ballots_csv(csv_path: str) -> List[Ballot]:
    """
    Load ballots from a wide CSV file.

    Args:
        csv_path: Path to a CSV with a ``ballot_id`` column, rank columns
            ``rank_1`` .. ``rank_N`` and an optional ``source`` column

    Returns:
        Ballots in file order
    """
    logger.info(f"Loading ballots from: {csv_path}")
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)

    if "ballot_id" not in df.columns:
        raise ValueError(f"CSV file {csv_path} has no ballot_id column")
    rank_columns = _rank_columns(df.columns)
    if not rank_columns:
        raise ValueError(f"CSV file {csv_path} has no {RANK_PREFIX}N columns")

    ballots = []
    for _, row in df.iterrows():
        ballots.append(
            Ballot(
                id=str(row["ballot_id"]),
                ranks=tuple(parse_rank_cell(row[c]) for c in rank_columns),
                source=row["source"] if "source" in df.columns and row["source"] else "synthetic",
            )
        )

    logger.info(f"Loaded {len(ballots)} ballots with {len(rank_columns)} rank slots")
    return ballots


def ballots_to_frame(ballots: List[Ballot]) -> pd.DataFrame:
    """Wide DataFrame in the layout load_ballots_csv reads."""
    slots = max((len(b.ranks) for b in ballots), default=0)
    rows = []
    for ballot in ballots:
        row: Dict[str, str] = {"ballot_id": ballot.id, "source": ballot.source}
        for i in range(slots):
            mark = ballot.ranks[i] if i < len(ballot.ranks) else BLANK
            raw = rank_mark_to_raw(mark)
            if isinstance(raw, list):
                raw = OVERVOTE_SEPARATOR.join(raw)
            row[f"{RANK_PREFIX}{i + 1}"] = raw or ""
        rows.append(row)
    return pd.DataFrame(rows, columns=["ballot_id", "source"] + [f"{RANK_PREFIX}{i + 1}" for i in range(slots)])


def load_election_json(
    json_path: str,
) -> Tuple[List[Candidate], List[Ballot], Dict[str, Optional[Any]]]:
    """
    Load candidates, ballots and run settings from a JSON election file.

    The file holds ``candidates`` (``id``, ``name``, ``shortLabel``, ``bio``),
    ``ballots`` (``id``, ``ranks`` with null / id / list-of-ids entries,
    ``source``) and optionally ``seed`` and ``seats``.

    Returns:
        (candidates, ballots, settings)
    """
    path = Path(json_path)
    logger.info(f"Loading election from: {path}")
    with open(path, "r") as f:
        payload = json.load(f)

    candidates = [
        Candidate(
            id=str(c["id"]),
            name=c.get("name", str(c["id"])),
            short_label=c.get("shortLabel", ""),
            bio=c.get("bio", ""),
        )
        for c in payload.get("candidates", [])
    ]
    ballots = [
        Ballot.from_raw(b["id"], b.get("ranks", []), b.get("source", "synthetic"))
        for b in payload.get("ballots", [])
    ]
    settings = {"seed": payload.get("seed"), "seats": payload.get("seats")}

    logger.info(f"Loaded {len(candidates)} candidates and {len(ballots)} ballots")
    return candidates, ballots, settings
