#!/usr/bin/env python3
"""
Cross-check a stored election's winners against PyRankVote.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_store import BallotStore  # noqa: E402
from tabulation import ReferenceVerifier, TabulationError, run_irv, run_stv  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Verify results against PyRankVote")
    parser.add_argument("--db", required=True, help="Path to DuckDB database file")
    parser.add_argument("--method", choices=["irv", "stv"], default="irv")
    parser.add_argument(
        "--seats", type=int, default=3, help="Number of seats for STV (default: 3)"
    )
    parser.add_argument("--seed", default="default", help="Tie-break seed")

    args = parser.parse_args()

    if not Path(args.db).exists():
        logger.error(f"Database file not found: {args.db}")
        sys.exit(1)

    try:
        with BallotStore(args.db, read_only=True) as store:
            candidate_ids = [c.id for c in store.load_candidates()]
            ballots = store.load_ballots()

        verifier = ReferenceVerifier(ballots, candidate_ids)
        if args.method == "irv":
            results = verifier.verify_irv(run_irv(ballots, candidate_ids, args.seed))
        else:
            results = verifier.verify_stv(
                run_stv(ballots, candidate_ids, args.seats, args.seed)
            )

        print(verifier.generate_verification_report(results))

        if not results["verification_passed"]:
            sys.exit(2)

    except TabulationError as e:
        logger.error(f"Error during verification: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
