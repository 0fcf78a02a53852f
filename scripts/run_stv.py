#!/usr/bin/env python3
"""
Run STV tabulation on a stored election.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_store import BallotStore  # noqa: E402
from tabulation import STVTabulator, TabulationError  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run STV tabulation")
    parser.add_argument("--db", help="Path to DuckDB database file with stored ballots")
    parser.add_argument(
        "--seats", type=int, default=3, help="Number of seats to fill (default: 3)"
    )
    parser.add_argument("--seed", default="default", help="Tie-break seed")

    args = parser.parse_args()

    if not args.db or not Path(args.db).exists():
        logger.error("Database file required and must exist. Run load_ballots.py first.")
        sys.exit(1)

    try:
        with BallotStore(args.db, read_only=True) as store:
            for table in ["ballots", "candidates"]:
                if not store.table_exists(table):
                    logger.error(
                        f"Required table '{table}' not found. Run load_ballots.py first."
                    )
                    sys.exit(1)
            candidates = store.load_candidates()
            ballots = store.load_ballots()

        candidate_names = {c.id: c.name for c in candidates}

        logger.info(f"=== STV Tabulation ({args.seats} seats) ===")
        tabulator = STVTabulator(
            ballots, [c.id for c in candidates], seats=args.seats, seed=args.seed
        )
        tabulator.run_stv_tabulation()

        print("\n=== Round-by-Round Results ===")
        round_summary = tabulator.get_round_summary()

        for round_num in sorted(round_summary["round"].unique()):
            round_data = round_summary[round_summary["round"] == round_num]
            round_obj = tabulator.rounds[round_num]
            print(f"\nRound {round_num + 1} ({round_obj.action.value}):")
            print(f"Quota: {round_data.iloc[0]['quota']}")

            counted = round_data[round_data["votes"].notna()]
            for _, row in counted.sort_values("votes", ascending=False).iterrows():
                candidate_name = candidate_names.get(
                    row["candidate_id"], row["candidate_id"]
                )
                status_symbol = {
                    "elected": "🏆",
                    "eliminated": "❌",
                    "continuing": "  ",
                }.get(row["status"], "  ")

                print(
                    f"  {status_symbol} {candidate_name:25s}: {row['votes']:8.2f} votes"
                )

            if round_obj.surplus_transfer:
                print(
                    f"     Surplus {round_obj.surplus_transfer.surplus:.2f} transferred "
                    f"at {round_obj.surplus_transfer.transfer_value:.4f}"
                )
            if round_obj.exhausted > 0:
                print(f"     {'Exhausted':25s}: {round_obj.exhausted:8.2f} votes")

        print("\n=== Final Results ===")
        final_results = tabulator.get_final_results()

        print(f"\nElected ({len(tabulator.winners)} of {args.seats} seats):")
        for i, winner in enumerate(tabulator.winners, 1):
            row = final_results[final_results["candidate_id"] == winner].iloc[0]
            print(
                f"  {i}. {candidate_names.get(winner, winner):30s} (Round {int(row['election_round']) + 1})"
            )

        print("\nNot Elected:")
        not_elected = final_results[final_results["status"] == "not_elected"]
        for _, row in not_elected.iterrows():
            name = candidate_names.get(row["candidate_id"], row["candidate_id"])
            print(f"     {name:30s}: {row['final_votes']:8.2f} votes")

        print("\n✓ STV tabulation completed successfully")

    except TabulationError as e:
        logger.error(f"Error running STV tabulation: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
