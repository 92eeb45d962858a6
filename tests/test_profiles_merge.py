"""Tests for src/profiles/merge.py - grouped query aggregation."""

import threading

import pytest

from src.profiles.classifier import ValueClassifier
from src.profiles.client import AnalyticsTable, DataPointRow
from src.profiles.errors import AnalyticsRequestError, DuplicateIdentifierError
from src.profiles.merge import (
    MISSING_NUMERIC,
    AggregationMerger,
    DuplicatePolicy,
    ValueMaps,
    find_duplicates,
    merge_tables,
    parse_numeric,
)
from src.profiles.transforms import TransformationEngine


def _table(*rows):
    return AnalyticsTable(rows=tuple(DataPointRow(*r) for r in rows))


class FakeClient:
    """Answers query() from a fixed identifier -> raw value mapping."""

    def __init__(self, values=None, fail_on=None):
        self.values = values or {}
        self.fail_on = set(fail_on or ())
        self.calls = []
        self._lock = threading.Lock()

    def query(self, identifiers, scope, period, precision_hint=False):
        with self._lock:
            self.calls.append(tuple(identifiers))
        if self.fail_on & set(identifiers):
            raise AnalyticsRequestError("/api/analytics", f"failed for {sorted(identifiers)}")
        rows = [(i, scope, period, self.values[i]) for i in identifiers if i in self.values]
        return _table(*rows)


@pytest.fixture
def classifier():
    return ValueClassifier({"TXT"})


@pytest.fixture
def engine():
    return TransformationEngine({"X1": ["multiplyBy100"], "Z": ["nullZeros"]})


class TestParseNumeric:
    @pytest.mark.parametrize("raw,expected", [("0.5", 0.5), ("12", 12.0), ("-3", -3.0), ("1e3", 1000.0)])
    def test_parses_numbers(self, raw, expected):
        assert parse_numeric(raw) == (expected, False)

    @pytest.mark.parametrize("raw", ["", "abc", None, "nan", "inf", "2016-2020"])
    def test_unparsable_becomes_missing_sentinel(self, raw):
        assert parse_numeric(raw) == (MISSING_NUMERIC, True)


class TestMergeTables:
    def test_end_to_end_transformed_value(self, classifier, engine):
        maps = merge_tables([_table(("X1", "ou1", "2024", "0.5"))], classifier, engine)
        assert maps.numeric["X1"] == 50

    def test_text_stored_verbatim(self, classifier, engine):
        maps = merge_tables([_table(("TXT", "ou1", "2024", "2016-2020"))], classifier, engine)
        assert maps.text == {"TXT": "2016-2020"}
        assert maps.numeric == {}

    def test_unparsable_numeric_is_zero_before_transform(self, classifier, engine):
        maps = merge_tables([_table(("N", "ou1", "2024", "n/a"), ("Z", "ou1", "2024", ""))], classifier, engine)
        assert maps.numeric["N"] == MISSING_NUMERIC
        # nullZeros applies to the substituted zero
        assert "Z" in maps.numeric and maps.numeric["Z"] is None
        assert maps.coerced == {"N", "Z"}

    def test_null_is_distinct_from_absent(self, classifier, engine):
        maps = merge_tables([_table(("Z", "ou1", "2024", "0"))], classifier, engine)
        assert "Z" in maps.numeric
        assert maps.numeric["Z"] is None
        assert "other" not in maps.numeric

    def test_later_rows_overwrite(self, classifier, engine):
        maps = merge_tables(
            [_table(("N", "ou1", "2024", "x")), _table(("N", "ou1", "2024", "7"))],
            classifier, engine,
        )
        assert maps.numeric["N"] == 7
        assert "N" not in maps.coerced


class TestValueMaps:
    def test_helpers(self):
        maps = ValueMaps(numeric={"A": 5.0, "B": None, "Y": 2019.0, "Z0": 0.0}, text={"T": "AL", "E": ""})
        assert maps.number("A") == 5.0
        assert maps.number("B") == 0
        assert maps.number("missing", default=-1) == -1
        assert maps.year("Y") == 2019
        assert maps.year("Z0") is None
        assert maps.year("missing") is None
        assert maps.has_number("A")
        assert not maps.has_number("B")
        assert maps.label("T") == "AL"
        assert maps.label("E") == "-"
        assert maps.label("missing") == "-"


class TestAggregationMerger:
    def test_build_queries_each_group(self, classifier, engine):
        client = FakeClient({"A": "1", "B": "2", "TXT": "hello"})
        merger = AggregationMerger(client, classifier, engine)

        maps = merger.build([["A"], ["B", "TXT"], []], "ou1", "2024")

        assert maps.numeric == {"A": 1.0, "B": 2.0}
        assert maps.text == {"TXT": "hello"}
        assert sorted(client.calls) == [("A",), ("B", "TXT")]

    def test_build_strict_duplicates_raise_before_querying(self, classifier, engine):
        client = FakeClient({"A": "1"})
        merger = AggregationMerger(client, classifier, engine, DuplicatePolicy.STRICT)

        with pytest.raises(DuplicateIdentifierError) as exc_info:
            merger.build([["A", "B"], ["A"]], "ou1", "2024", names=["first", "second"])

        assert exc_info.value.duplicates == {"A": {"first", "second"}}
        assert client.calls == []

    def test_build_overwrite_last_group_wins(self, classifier, engine, caplog):
        class OrderedClient(FakeClient):
            def query(self, identifiers, scope, period, precision_hint=False):
                value = "1" if identifiers[0] == "first" else "2"
                return _table(("A", scope, period, value))

        merger = AggregationMerger(OrderedClient(), classifier, engine, "overwrite")
        maps = merger.build([["first", "A"], ["second", "A"]], "ou1", "2024")

        assert maps.numeric["A"] == 2.0
        assert "last group wins" in caplog.text

    def test_build_group_failure_propagates(self, classifier, engine):
        client = FakeClient({"A": "1"}, fail_on={"B"})
        merger = AggregationMerger(client, classifier, engine)
        with pytest.raises(AnalyticsRequestError):
            merger.build([["A"], ["B"]], "ou1", "2024")

    def test_build_first_failure_in_declaration_order(self, classifier, engine):
        client = FakeClient(fail_on={"A", "B"})
        merger = AggregationMerger(client, classifier, engine)
        with pytest.raises(AnalyticsRequestError) as exc_info:
            merger.build([["A"], ["B"]], "ou1", "2024")
        assert "['A']" in str(exc_info.value)

    def test_build_no_groups(self, classifier, engine):
        assert AggregationMerger(FakeClient(), classifier, engine).build([], "ou1", "2024") == ValueMaps()

    def test_build_logs_coerced_summary(self, classifier, engine, caplog):
        merger = AggregationMerger(FakeClient({"A": "oops"}), classifier, engine)
        maps = merger.build([["A"]], "ou1", "2024")
        assert maps.coerced == {"A"}
        assert "unparsable" in caplog.text

    def test_find_duplicates_default_names(self):
        assert find_duplicates([["A", "B"], ["B"], ["C"]]) == {"B": {"0", "1"}}

    def test_invalid_policy_name_rejected(self, classifier, engine):
        with pytest.raises(ValueError):
            AggregationMerger(FakeClient(), classifier, engine, "ignore")
