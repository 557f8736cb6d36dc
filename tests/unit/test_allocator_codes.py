"""Tests for batch code formatting."""

from datetime import date

from weighbatch.batching.allocator import batch_code_prefix, next_batch_code


def test_prefix_format():
    assert batch_code_prefix("1000", date(2026, 10, 18)) == "SUM100020261018"


def test_prefix_defaults_plant():
    assert batch_code_prefix(None, date(2026, 1, 2)) == "SUM000020260102"
    assert batch_code_prefix("", date(2026, 1, 2)) == "SUM000020260102"


def test_first_code_of_the_day():
    assert next_batch_code("SUM100020261018", None) == "SUM1000202610180001"


def test_next_code_increments_suffix():
    assert next_batch_code("SUM100020261018", "SUM1000202610180007") == "SUM1000202610180008"
    assert next_batch_code("SUM100020261018", "SUM1000202610180099") == "SUM1000202610180100"


def test_code_from_other_prefix_is_ignored():
    assert next_batch_code("SUM100020261018", "SUM1000202610170042") == "SUM1000202610180001"


def test_non_numeric_suffix_restarts():
    assert next_batch_code("SUM100020261018", "SUM100020261018XX") == "SUM1000202610180001"
