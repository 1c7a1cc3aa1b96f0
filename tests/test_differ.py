"""Tests for snapshot differencing."""

from __future__ import annotations

import pytest

from env_sync.sync.differ import ChangeSet, SnapshotDiffer

SNAPSHOTS = [
    {},
    {"A": "1"},
    {"A": "1", "B": "2", "C": ""},
    {"A": "2", "D": "4"},
]


class TestDiff:
    @pytest.mark.parametrize("snapshot", SNAPSHOTS)
    def test_identical_snapshots_have_no_changes(self, snapshot):
        changes = SnapshotDiffer.diff(snapshot, dict(snapshot))
        assert changes == ChangeSet()
        assert changes.is_empty

    def test_added_modified_removed(self):
        base = {"A": "1", "B": "2", "C": "3"}
        other = {"A": "1", "B": "20", "D": "4"}
        changes = SnapshotDiffer.diff(base, other)
        assert changes.added == {"D"}
        assert changes.modified == {"B"}
        assert changes.removed == {"C"}

    @pytest.mark.parametrize("base", SNAPSHOTS)
    @pytest.mark.parametrize("other", SNAPSHOTS)
    def test_sets_partition_keys(self, base, other):
        changes = SnapshotDiffer.diff(base, other)
        assert changes.added == other.keys() - base.keys()
        assert changes.removed == base.keys() - other.keys()
        unchanged = {k for k in base.keys() & other.keys() if base[k] == other[k]}
        assert not unchanged & (changes.added | changes.modified | changes.removed)
        assert not changes.added & changes.modified
        assert not changes.modified & changes.removed

    def test_swapping_base_swaps_added_and_removed(self):
        base = {"A": "1", "B": "2"}
        other = {"B": "3", "C": "4"}
        forward = SnapshotDiffer.diff(base, other)
        backward = SnapshotDiffer.diff(other, base)
        assert forward.added == backward.removed
        assert forward.removed == backward.added
        assert forward.modified == backward.modified

    def test_remote_adds_key(self):
        changes = SnapshotDiffer.diff({"A": "1"}, {"A": "1", "B": "2"})
        assert changes == ChangeSet(added={"B"})

    def test_summary(self):
        changes = ChangeSet(added={"A", "B"}, modified={"C"})
        assert changes.summary() == "+2 ~1 -0"


class TestModifiedValues:
    def test_sorted_old_and_new(self):
        items = SnapshotDiffer.modified_values(
            {"B": "1", "A": "x", "C": "same"}, {"B": "2", "A": "y", "C": "same"}
        )
        assert [(i.key, i.old_value, i.new_value) for i in items] == [
            ("A", "x", "y"),
            ("B", "1", "2"),
        ]
