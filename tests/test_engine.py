"""
Tests for differential/engine.py - result model and oracle.
"""

import json

import pytest

from zkfuzz.differential.engine import Diff, ExecutionResult, Status, compare, type_class
from zkfuzz.errors import ResultDocumentError


def ok(commits, elapsed_ms=1, **meta):
    return ExecutionResult.ok(commits, elapsed_ms, **meta)


class TestExecutionResult:
    """Tests for the ExecutionResult record."""

    def test_commits_are_immutable_tuple(self):
        result = ExecutionResult(Status.OK, 3, [1, 2])
        assert result.commits == (1, 2)
        assert isinstance(result.commits, tuple)

    def test_meta_not_part_of_equality(self):
        assert ok([1], runner="native") == ok([1], runner="vm")

    def test_panic_carries_message(self):
        result = ExecutionResult.panic(7, "boom", runner="native")
        assert result.status is Status.PANIC
        assert result.commits == ()
        assert result.meta["panic_msg"] == "boom"

    def test_panic_message_may_be_empty(self):
        assert ExecutionResult.panic(7).meta["panic_msg"] == ""

    def test_timeout_elapsed_is_deadline(self):
        result = ExecutionResult.timeout(250)
        assert result.status is Status.TIMEOUT
        assert result.elapsed_ms == 250

    def test_document_round_trip(self):
        result = ok([24, 6773, 3754], 12, runner="vm")
        doc = result.to_document()
        assert doc == {"status": "OK", "elapsed_ms": 12, "commits": [24, 6773, 3754], "meta": {"runner": "vm"}}
        assert ExecutionResult.from_document(json.dumps(doc)) == result

    def test_from_document_rejects_unknown_status(self):
        with pytest.raises(ResultDocumentError):
            ExecutionResult.from_document({"status": "CRASH", "elapsed_ms": 1})

    def test_from_document_rejects_extra_fields(self):
        with pytest.raises(ResultDocumentError):
            ExecutionResult.from_document({"status": "OK", "elapsed_ms": 1, "stdout": ""})

    def test_from_document_rejects_negative_elapsed(self):
        with pytest.raises(ResultDocumentError):
            ExecutionResult.from_document({"status": "OK", "elapsed_ms": -1})

    def test_from_document_keeps_bool_commits(self):
        result = ExecutionResult.from_document('{"status": "OK", "elapsed_ms": 0, "commits": [true, 1]}')
        assert result.commits[0] is True
        assert type_class(result.commits[1]) == "int"


class TestCompare:
    """Tests for the oracle."""

    @pytest.mark.parametrize("result", [
        ok([1, 2, 3]),
        ok([]),
        ExecutionResult.panic(5, "x"),
        ExecutionResult.timeout(100),
    ])
    def test_reflexive(self, result):
        diff = compare(result, result)
        assert diff.equal
        assert diff.reason is None
        assert diff.timing_delta_ms == 0

    def test_symmetric_equality(self):
        a, b = ok([1, 2], 3), ok([1, 2], 10)
        assert compare(a, b).equal == compare(b, a).equal

    def test_status_mismatch(self):
        diff = compare(ok([1]), ExecutionResult.panic(2, "boom"))
        assert not diff.equal
        assert diff.reason == "status mismatch: OK vs PANIC"

    def test_status_mismatch_timeout(self):
        diff = compare(ExecutionResult.timeout(100), ok([1]))
        assert diff.reason == "status mismatch: TIMEOUT vs OK"

    def test_both_panic_equal_despite_messages(self):
        a = ExecutionResult.panic(1, "Division by zero")
        b = ExecutionResult.panic(90, "guest panicked: Division by zero", exit_code=101)
        assert compare(a, b).equal

    def test_both_timeout_equal(self):
        assert compare(ExecutionResult.timeout(100), ExecutionResult.timeout(100)).equal

    def test_length_mismatch(self):
        diff = compare(ok([1, 2, 3]), ok([1, 2]))
        assert not diff.equal
        assert diff.reason == "commit stream length mismatch: 3 vs 2"

    def test_first_mismatching_index(self):
        diff = compare(ok([24, 6773, 3754]), ok([24, 6774, 1]))
        assert diff.reason == "commit mismatch at index 1: 6773 vs 6774"

    def test_bool_and_int_are_different_types(self):
        diff = compare(ok([True]), ok([1]))
        assert not diff.equal
        assert diff.reason == "commit mismatch at index 0: True vs 1"

    def test_empty_streams_equal(self):
        assert compare(ok([]), ok([])).equal

    def test_timing_never_affects_equality(self):
        diff = compare(ok([1], 1), ok([1], 5000))
        assert diff.equal
        assert diff.timing_delta_ms == 4999

    def test_diff_document(self):
        diff = Diff(False, "status mismatch: OK vs PANIC", 3)
        assert diff.to_document() == {"equal": False, "reason": "status mismatch: OK vs PANIC", "timing_delta_ms": 3}
