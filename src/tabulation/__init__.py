"""
Tabulation engine for ranked-choice elections.

This module provides:
- IRVTabulator / run_irv: single-winner instant-runoff counts
- STVTabulator / run_stv: multi-winner Single Transferable Vote (Droop quota)
- resolve: the per-ballot preference resolver both counts share
- SeededRNG: reproducible tie-break stream
- ReferenceVerifier: cross-check of winners against PyRankVote
"""

from .errors import AlgorithmInvariantViolation, InputValidationError, TabulationError
from .irv import IRVTabulator, run_irv
from .preference import Exhausted, Vote, resolve
from .rng import SeededRNG
from .stv import STVTabulator, run_stv
from .types import (
    BLANK,
    Ballot,
    Blank,
    Candidate,
    CountResult,
    MajorityCondition,
    Overvote,
    RCVRules,
    RoundResult,
    Single,
    STVAction,
    STVResult,
    STVRoundResult,
    TieBreaker,
)
from .verification import ReferenceVerifier

__all__ = [
    "IRVTabulator",
    "STVTabulator",
    "run_irv",
    "run_stv",
    "resolve",
    "Vote",
    "Exhausted",
    "SeededRNG",
    "ReferenceVerifier",
    "Ballot",
    "Candidate",
    "Blank",
    "BLANK",
    "Single",
    "Overvote",
    "RCVRules",
    "TieBreaker",
    "MajorityCondition",
    "RoundResult",
    "CountResult",
    "STVAction",
    "STVRoundResult",
    "STVResult",
    "TabulationError",
    "InputValidationError",
    "AlgorithmInvariantViolation",
]
