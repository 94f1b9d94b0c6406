"""Tests for zapspine.core.models module."""

import pytest

from zapspine.core.errors import RecordValidationError
from zapspine.core.models import QueryFilter, Record, sort_newest_first


def _wire(**overrides):
    data = {
        "id": "r1",
        "pubkey": "pk",
        "created_at": 100,
        "kind": 9735,
        "tags": [["p", "subject"], ["e", "evt"]],
        "content": "",
        "sig": "s",
    }
    data.update(overrides)
    return data


class TestRecordFromDict:
    def test_valid_record(self):
        record = Record.from_dict(_wire())
        assert record.id == "r1"
        assert record.tags == (("p", "subject"), ("e", "evt"))
        assert record.tag_value("p") == "subject"
        assert record.tag_value("missing") is None

    def test_round_trip_to_dict(self):
        assert Record.from_dict(_wire()).to_dict() == _wire()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"id": ""},
            {"pubkey": None},
            {"created_at": "100"},
            {"created_at": True},
            {"kind": None},
            {"tags": "p"},
            {"tags": [["p", 1]]},
            {"content": 5},
        ],
    )
    def test_malformed_records_rejected(self, overrides):
        with pytest.raises(RecordValidationError):
            Record.from_dict(_wire(**overrides))

    def test_non_mapping_rejected(self):
        with pytest.raises(RecordValidationError):
            Record.from_dict(["not", "a", "record"])

    def test_tag_values(self):
        record = Record.from_dict(_wire(tags=[["t", "a"], ["t", "b"], ["p", "x"]]))
        assert record.tag_values("t") == ["a", "b"]


class TestQueryFilter:
    def test_to_dict_omits_unset(self):
        flt = QueryFilter.build(kinds=[9735], tags={"p": ["pk"]}, since=10, limit=5)
        assert flt.to_dict() == {"kinds": [9735], "#p": ["pk"], "since": 10, "limit": 5}

    def test_matches(self):
        record = Record.from_dict(_wire())
        assert QueryFilter.build(kinds=[9735], tags={"p": ["subject"]}).matches(record)
        assert not QueryFilter.build(kinds=[1]).matches(record)
        assert not QueryFilter.build(tags={"p": ["other"]}).matches(record)
        assert not QueryFilter.build(since=101).matches(record)
        assert not QueryFilter.build(until=99).matches(record)
        assert QueryFilter.build(since=100, until=100).matches(record)
        assert QueryFilter.build(ids=["r1"], authors=["pk"]).matches(record)

    def test_limit_ignored_by_matches(self):
        assert QueryFilter.build(limit=0).matches(Record.from_dict(_wire()))


def test_sort_newest_first_breaks_ties_by_id():
    records = [
        Record(id="b", pubkey="p", created_at=1, kind=1),
        Record(id="a", pubkey="p", created_at=1, kind=1),
        Record(id="c", pubkey="p", created_at=2, kind=1),
    ]
    assert [r.id for r in sort_newest_first(records)] == ["c", "a", "b"]
