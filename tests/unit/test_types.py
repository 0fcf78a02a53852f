"""
Unit tests for ballot, rules and result data classes.
"""

import json

import pytest

from tabulation.errors import InputValidationError
from tabulation.types import (
    BLANK,
    Ballot,
    Blank,
    CountResult,
    ExhaustionCounter,
    ExhaustionDetail,
    ExhaustionReason,
    MajorityCondition,
    Overvote,
    RCVRules,
    RoundResult,
    Single,
    STVAction,
    STVResult,
    STVRoundResult,
    TieBreak,
    TieBreaker,
    Transfer,
    rank_mark_from_raw,
    rank_mark_to_raw,
)


@pytest.mark.unit
class TestRankMarks:
    def test_none_is_blank(self):
        assert rank_mark_from_raw(None) == BLANK
        assert isinstance(rank_mark_from_raw(None), Blank)

    def test_empty_values_are_blank(self):
        assert rank_mark_from_raw("") == BLANK
        assert rank_mark_from_raw([]) == BLANK

    def test_string_is_single(self):
        assert rank_mark_from_raw("A") == Single("A")

    def test_one_element_list_is_single(self):
        assert rank_mark_from_raw(["A"]) == Single("A")

    def test_list_is_overvote(self):
        assert rank_mark_from_raw(["A", "B"]) == Overvote(("A", "B"))

    def test_existing_mark_passes_through(self):
        mark = Overvote(("A", "B"))
        assert rank_mark_from_raw(mark) is mark

    def test_unsupported_value_rejected(self):
        with pytest.raises(InputValidationError):
            rank_mark_from_raw(5)

    def test_overvote_needs_two_candidates(self):
        with pytest.raises(InputValidationError):
            Overvote(("A",))

    def test_to_raw(self):
        assert rank_mark_to_raw(BLANK) is None
        assert rank_mark_to_raw(Single("A")) == "A"
        assert rank_mark_to_raw(Overvote(("A", "B"))) == ["A", "B"]


@pytest.mark.unit
class TestBallot:
    def test_from_raw(self):
        ballot = Ballot.from_raw("b1", ["A", None, ["B", "C"]], source="survey")
        assert ballot.id == "b1"
        assert ballot.ranks == (Single("A"), BLANK, Overvote(("B", "C")))
        assert ballot.source == "survey"

    def test_default_source(self):
        assert Ballot.from_raw("b1", ["A"]).source == "synthetic"

    def test_ballot_is_immutable(self):
        ballot = Ballot.from_raw("b1", ["A"])
        with pytest.raises(AttributeError):
            ballot.id = "b2"


@pytest.mark.unit
class TestRCVRules:
    def test_defaults(self):
        rules = RCVRules()
        assert rules.tie_breaker == TieBreaker.LOOKBACK_THEN_LOT
        assert rules.majority_condition == MajorityCondition.GREATER

    def test_from_values(self):
        rules = RCVRules.from_values("lot", ">=")
        assert rules.tie_breaker == TieBreaker.LOT
        assert rules.majority_condition == MajorityCondition.GREATER_OR_EQUAL

    def test_from_values_none_uses_defaults(self):
        assert RCVRules.from_values(None, None) == RCVRules()

    def test_unknown_tie_breaker_rejected(self):
        with pytest.raises(InputValidationError):
            RCVRules.from_values("coin-flip", ">")

    def test_unknown_majority_rejected(self):
        with pytest.raises(InputValidationError):
            RCVRules.from_values("lot", ">>")


@pytest.mark.unit
class TestExhaustionCounter:
    def test_freeze(self):
        counter = ExhaustionCounter()
        counter.add(ExhaustionReason.OVERVOTE)
        counter.add(ExhaustionReason.BLANK)
        counter.add(ExhaustionReason.BLANK)
        assert counter.freeze() == ExhaustionDetail(
            overvote_at_rank=1, no_valid_next=0, blank_remaining=2
        )


@pytest.mark.unit
class TestResultSerialization:
    def test_count_result_to_dict_is_json_ready(self):
        result = CountResult(
            rounds=(
                RoundResult(
                    round_index=0,
                    continuing=("A", "B"),
                    tallies={"A": 1, "B": 1},
                    exhausted=0,
                    exhaustion_detail=ExhaustionDetail(),
                    continuing_ballots=2,
                    threshold=1.0,
                    eliminated="B",
                    tie_break=TieBreak(0, ("A", "B"), "B"),
                    transfers=(Transfer("B", "A", 1),),
                ),
            ),
            winner="A",
        )
        data = result.to_dict()
        assert data["winner"] == "A"
        assert data["rounds"][0]["continuing"] == ["A", "B"]
        assert data["rounds"][0]["tie_break"]["tied"] == ["A", "B"]
        assert data["rounds"][0]["transfers"][0]["to_candidate"] == "A"
        assert data["user_path"] is None
        json.dumps(data)

    def test_stv_action_serialized_as_value(self):
        result = STVResult(
            rounds=(
                STVRoundResult(
                    round_index=0,
                    continuing=("A", "B"),
                    elected=("A",),
                    tallies={"A": 2.0, "B": 1.0},
                    exhausted=0.0,
                    exhaustion_detail=ExhaustionDetail(),
                    continuing_ballots=3.0,
                    threshold=2,
                    action=STVAction.ELECT,
                    affected_candidate="A",
                ),
            ),
            winners=("A",),
            seats=1,
        )
        data = result.to_dict()
        assert data["rounds"][0]["action"] == "elect"
        assert data["winners"] == ["A"]
        json.dumps(data)
