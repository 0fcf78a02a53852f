#!/usr/bin/env python3
"""
Load an election (candidates and ballots) into a DuckDB ballot store.
Accepts a JSON election file, or a ballots CSV plus a candidate list.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_loader import load_ballots_csv, load_election_json  # noqa: E402
from data.ballot_store import BallotStore  # noqa: E402
from tabulation.types import Candidate  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Load ballots into a DuckDB store")
    parser.add_argument("input_file", help="Path to JSON election file or ballots CSV")
    parser.add_argument("--db", required=True, help="Path to DuckDB database file")
    parser.add_argument(
        "--candidates",
        help="Comma-separated candidate ids (required for CSV input)",
    )

    args = parser.parse_args()

    input_path = Path(args.input_file)
    if not input_path.exists():
        logger.error(f"Input file not found: {input_path}")
        sys.exit(1)

    try:
        if input_path.suffix.lower() == ".json":
            candidates, ballots, _ = load_election_json(str(input_path))
        else:
            if not args.candidates:
                logger.error("--candidates is required for CSV input")
                sys.exit(1)
            candidates = [
                Candidate(id=cid.strip(), name=cid.strip())
                for cid in args.candidates.split(",")
                if cid.strip()
            ]
            ballots = load_ballots_csv(str(input_path))

        with BallotStore(args.db) as store:
            store.save_candidates(candidates)
            store.save_ballots(ballots)

            print(f"✓ Stored {len(candidates)} candidates")
            print(f"✓ Stored {len(ballots)} ballots")

            first_choice = store.get_first_choice_totals()
            print("\nFirst Choice Marks:")
            for _, row in first_choice.iterrows():
                print(
                    f"  {row['candidate_name']:25s}: {row['first_choice_votes']:5d} ballots"
                )

    except Exception as e:
        logger.error(f"Error loading ballots: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
