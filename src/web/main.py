import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

try:
    from ..data.ballot_store import BallotStore
    from ..tabulation.verification import convert_numpy_types
    from ..tabulation import (
        AlgorithmInvariantViolation,
        Ballot,
        InputValidationError,
        RCVRules,
        ReferenceVerifier,
        run_irv,
        run_stv,
    )
except ImportError:
    from data.ballot_store import BallotStore
    from tabulation.verification import convert_numpy_types
    from tabulation import (
        AlgorithmInvariantViolation,
        Ballot,
        InputValidationError,
        RCVRules,
        ReferenceVerifier,
        run_irv,
        run_stv,
    )

logger = logging.getLogger(__name__)

DATABASE_ENV_VAR = "RCV_DATABASE_PATH"
SEED_ENV_VAR = "RCV_DEFAULT_SEED"

app = FastAPI(
    title="Ranked Ballot Tabulator",
    description="IRV and STV tabulation service",
)

# Global database path - falls back to the environment when unset
db_path = None


class BallotIn(BaseModel):
    id: str
    ranks: List[Optional[Union[str, List[str]]]]
    source: str = "synthetic"


class RulesIn(BaseModel):
    tie_breaker: Optional[str] = None
    majority_condition: Optional[str] = None


class IRVRequest(BaseModel):
    ballots: List[BallotIn]
    candidate_ids: List[str]
    seed: str
    rules: Optional[RulesIn] = None
    user_ballot_id: Optional[str] = None


class STVRequest(BaseModel):
    ballots: List[BallotIn]
    candidate_ids: List[str]
    seats: int = Field(..., description="Number of seats to fill")
    seed: str


@app.on_event("startup")
async def startup_event():
    """Initialize the application."""
    logger.info("Starting Ranked Ballot Tabulator")


def default_seed() -> str:
    return os.environ.get(SEED_ENV_VAR) or "default"


def get_store() -> BallotStore:
    """
    Get the configured ballot store (read-only).

    Uses the path set via set_database_path(), else the RCV_DATABASE_PATH
    environment variable. A configured path that does not exist is an
    error rather than a new empty database.
    """
    path = db_path or os.environ.get(DATABASE_ENV_VAR)
    if not path:
        raise HTTPException(status_code=500, detail="Database not configured")
    if not Path(path).exists():
        logger.error(f"Configured database not found: {path}")
        raise HTTPException(status_code=500, detail="Database not found")
    return BallotStore(path, read_only=True)


def set_database_path(path: str):
    """Set the database path for the application."""
    global db_path
    db_path = path
    os.environ[DATABASE_ENV_VAR] = path
    logger.info(f"Database path set to: {path}")

    # Test connection to ensure database is accessible
    try:
        with BallotStore(path, read_only=True) as store:
            store.table_exists("ballots")
        logger.info("Database connection test successful")
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        raise


def _to_ballots(ballots: List[BallotIn]) -> List[Ballot]:
    try:
        return [Ballot.from_raw(b.id, b.ranks, b.source) for b in ballots]
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _tabulate(count, *args, **kwargs):
    """Run a count, mapping tabulation errors to HTTP errors."""
    try:
        return count(*args, **kwargs)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AlgorithmInvariantViolation as e:
        logger.error(f"Tabulation failed: {e}")
        raise HTTPException(status_code=500, detail=f"Tabulation failed: {str(e)}")


def _load_stored_election(store: BallotStore):
    if not store.table_exists("ballots") or not store.table_exists("candidates"):
        raise HTTPException(status_code=400, detail="No data loaded")
    candidates = store.load_candidates()
    ballots = store.load_ballots()
    return [c.id for c in candidates], ballots


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.post("/api/irv")
async def tabulate_irv(request: IRVRequest):
    """Count a single-winner election from the request body."""
    rules = None
    if request.rules is not None:
        try:
            rules = RCVRules.from_values(
                request.rules.tie_breaker, request.rules.majority_condition
            )
        except InputValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

    result = _tabulate(
        run_irv,
        _to_ballots(request.ballots),
        request.candidate_ids,
        request.seed,
        user_ballot_id=request.user_ballot_id,
        rules=rules,
    )
    return result.to_dict()


@app.post("/api/stv")
async def tabulate_stv(request: STVRequest):
    """Count a multi-winner election from the request body."""
    result = _tabulate(
        run_stv,
        _to_ballots(request.ballots),
        request.candidate_ids,
        request.seats,
        request.seed,
    )
    return result.to_dict()


@app.get("/api/candidates")
async def get_candidates():
    """Get list of stored candidates."""
    with get_store() as store:
        if not store.table_exists("candidates"):
            raise HTTPException(status_code=400, detail="No data loaded")
        candidates = store.load_candidates()
    return [
        {"id": c.id, "name": c.name, "shortLabel": c.short_label, "bio": c.bio}
        for c in candidates
    ]


@app.get("/api/irv-results")
async def get_irv_results(
    seed: Optional[str] = None,
    tie_breaker: Optional[str] = None,
    majority: Optional[str] = None,
    user_ballot_id: Optional[str] = None,
):
    """Count the stored ballots as a single-winner election."""
    with get_store() as store:
        candidate_ids, ballots = _load_stored_election(store)

    try:
        rules = RCVRules.from_values(tie_breaker, majority)
    except InputValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = _tabulate(
        run_irv,
        ballots,
        candidate_ids,
        seed or default_seed(),
        user_ballot_id=user_ballot_id,
        rules=rules,
    )
    return result.to_dict()


@app.get("/api/stv-results")
async def get_stv_results(seats: int = 3, seed: Optional[str] = None):
    """Count the stored ballots as a multi-winner election."""
    with get_store() as store:
        candidate_ids, ballots = _load_stored_election(store)

    result = _tabulate(run_stv, ballots, candidate_ids, seats, seed or default_seed())
    return result.to_dict()


@app.get("/api/verify-results")
async def verify_results(
    method: str = "irv", seats: int = 3, seed: Optional[str] = None
):
    """Cross-check the stored election's winners against PyRankVote."""
    if method not in ("irv", "stv"):
        raise HTTPException(status_code=400, detail=f"Unknown method: {method}")

    with get_store() as store:
        candidate_ids, ballots = _load_stored_election(store)

    verifier = ReferenceVerifier(ballots, candidate_ids)
    if method == "irv":
        result = _tabulate(run_irv, ballots, candidate_ids, seed or default_seed())
        verification = verifier.verify_irv(result)
    else:
        result = _tabulate(run_stv, ballots, candidate_ids, seats, seed or default_seed())
        verification = verifier.verify_stv(result)

    return convert_numpy_types(verification)
