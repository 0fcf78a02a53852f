"""
Ballot input and persistence.

- ballot_loader: CSV and JSON election files to Ballot objects
- ballot_store: DuckDB storage of candidates and ballots
"""
