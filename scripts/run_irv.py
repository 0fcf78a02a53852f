#!/usr/bin/env python3
"""
Run single-winner IRV tabulation on a stored election.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from data.ballot_store import BallotStore  # noqa: E402
from tabulation import IRVTabulator, RCVRules, TabulationError  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run IRV tabulation")
    parser.add_argument("--db", help="Path to DuckDB database file with stored ballots")
    parser.add_argument("--seed", default="default", help="Tie-break seed")
    parser.add_argument(
        "--tie-breaker",
        default="lookback-then-lot",
        choices=["lookback-then-lot", "lot", "seeded"],
        help="Tie-break rule for the lowest candidates",
    )
    parser.add_argument(
        "--majority",
        default=">",
        choices=[">", ">="],
        help="Majority condition against half the continuing ballots",
    )
    parser.add_argument("--user-ballot", help="Ballot id to trace round by round")

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
        rules = RCVRules.from_values(args.tie_breaker, args.majority)

        logger.info("=== IRV Tabulation ===")
        tabulator = IRVTabulator(
            ballots,
            [c.id for c in candidates],
            args.seed,
            rules=rules,
            user_ballot_id=args.user_ballot,
        )
        result = tabulator.run_irv_tabulation()

        print("\n=== Round-by-Round Results ===")
        for round_obj in result.rounds:
            print(f"\nRound {round_obj.round_index + 1}:")
            print(
                f"Continuing ballots: {round_obj.continuing_ballots} "
                f"(majority threshold {round_obj.threshold:.1f})"
            )
            for candidate_id, votes in sorted(
                round_obj.tallies.items(), key=lambda item: item[1], reverse=True
            ):
                status_symbol = "  "
                if candidate_id == round_obj.winner:
                    status_symbol = "🏆"
                elif candidate_id == round_obj.eliminated:
                    status_symbol = "❌"
                print(
                    f"  {status_symbol} {candidate_names.get(candidate_id, candidate_id):25s}: {votes:6d} votes"
                )

            detail = round_obj.exhaustion_detail
            print(
                f"     {'Exhausted':25s}: {round_obj.exhausted:6d} "
                f"(overvote {detail.overvote_at_rank}, no valid next {detail.no_valid_next}, "
                f"blank {detail.blank_remaining})"
            )
            if round_obj.tie_break:
                outcome = "wins" if round_obj.tie_break.kind == "majority" else "eliminated"
                print(
                    f"     Tie among {', '.join(round_obj.tie_break.tied)}: "
                    f"{round_obj.tie_break.chosen} {outcome}"
                )
            for transfer in round_obj.transfers:
                print(
                    f"     {transfer.from_candidate} -> {transfer.to_candidate}: {transfer.count}"
                )

        if result.user_path:
            print(f"\n=== Path of ballot {args.user_ballot} ===")
            for step in result.user_path:
                print(
                    f"  Round {step.round_index + 1}: {step.from_allocation} -> {step.to_allocation}"
                )

        print(f"\nWinner: {candidate_names.get(result.winner, result.winner)}")
        print(f"Total rounds: {len(result.rounds)}")
        print("\n✓ IRV tabulation completed successfully")

    except TabulationError as e:
        logger.error(f"Error running IRV tabulation: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
