"""Tests for the editable cut point store."""

import pytest

from speechcut.cutpoints import CutPointStore, format_timestamp, parse_timestamp
from speechcut.errors import IndexOutOfRange
from speechcut.models import CutPoint, Transcript

from tests.helpers import make_transcript


def _store() -> CutPointStore:
    return CutPointStore([
        CutPoint(0.0, 2.0, "Segment 1"),
        CutPoint(3.0, 7.0, "Segment 2"),
    ])


class TestInsert:
    def test_append(self):
        store = _store()
        index = store.insert(CutPoint(8.0, 9.0, "Outro"))
        assert index == 2
        assert store[2].description == "Outro"

    def test_insert_at_position_keeps_order_given(self):
        store = _store()
        store.insert(CutPoint(20.0, 25.0, "Late"), index=0)
        assert [cp.description for cp in store] == ["Late", "Segment 1", "Segment 2"]

    def test_insert_bad_position(self):
        store = _store()
        with pytest.raises(IndexOutOfRange):
            store.insert(CutPoint(0, 1), index=5)
        assert len(store) == 2

    def test_invalid_ranges_are_stored_as_is(self):
        store = CutPointStore()
        store.insert(CutPoint(9.0, 3.0, "backwards"))
        assert store[0] == CutPoint(9.0, 3.0, "backwards")


class TestUpdate:
    def test_update(self):
        store = _store()
        store.update(1, CutPoint(3.5, 6.0, "Edited"))
        assert store[1] == CutPoint(3.5, 6.0, "Edited")

    @pytest.mark.parametrize("index", [2, 10, -1])
    def test_out_of_range_leaves_store_unchanged(self, index):
        store = _store()
        before = store.snapshot()
        with pytest.raises(IndexOutOfRange):
            store.update(index, CutPoint(0, 1))
        assert store.snapshot() == before


class TestRemove:
    def test_remove(self):
        store = _store()
        removed = store.remove(0)
        assert removed.description == "Segment 1"
        assert len(store) == 1

    @pytest.mark.parametrize("index", [2, -1])
    def test_out_of_range_leaves_store_unchanged(self, index):
        store = _store()
        before = store.snapshot()
        with pytest.raises(IndexOutOfRange):
            store.remove(index)
        assert store.snapshot() == before

    def test_index_error_compatible(self):
        with pytest.raises(IndexError):
            CutPointStore().remove(0)


class TestAddDefault:
    def test_spans_to_last_segment(self):
        store = _store()
        cp = store.add_default(make_transcript((0.0, 2.0), (5.0, 11.5)))
        assert cp == CutPoint(0.0, 11.5, "Segment 3")
        assert store[2] == cp

    def test_empty_transcript_noop(self):
        store = _store()
        assert store.add_default(Transcript()) is None
        assert len(store) == 2


class TestSnapshot:
    def test_snapshot_is_detached(self):
        store = _store()
        snap = store.snapshot()
        snap[0].start_time = 99.0
        assert store[0].start_time == 0.0

    def test_sorted_by_time_does_not_reorder_store(self):
        store = CutPointStore([CutPoint(5, 6, "b"), CutPoint(1, 2, "a")])
        assert [cp.description for cp in store.sorted_by_time()] == ["a", "b"]
        assert [cp.description for cp in store] == ["b", "a"]

    def test_to_list_uses_wire_names(self):
        assert _store().to_list()[0] == {
            "startTime": 0.0, "endTime": 2.0, "description": "Segment 1",
        }


class TestTimestamps:
    def test_parse_minutes_seconds(self):
        assert parse_timestamp("01:30") == 90.0

    def test_parse_hours(self):
        assert parse_timestamp("1:00:05") == 3605.0

    def test_parse_plain_seconds(self):
        assert parse_timestamp("12.5") == 12.5
        assert parse_timestamp(7) == 7.0

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("ab:cd")

    def test_format(self):
        assert format_timestamp(90.7) == "01:30"
        assert format_timestamp(5) == "00:05"
