"""Differencing utilities for comparing two key-value snapshots.

The same comparison serves local-vs-local checks (the detector's
baseline against the file) and local-vs-remote checks (the poller and
the ``diff`` command); the call sites differ only in which snapshot
plays the role of *base*.
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field


class ChangeSet(BaseModel):
    """Keys that differ between a base snapshot and another snapshot."""

    added: set[str] = Field(default_factory=set)
    modified: set[str] = Field(default_factory=set)
    removed: set[str] = Field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)

    def summary(self) -> str:
        """Compact ``+added ~modified -removed`` counter string."""
        return f"+{len(self.added)} ~{len(self.modified)} -{len(self.removed)}"


class ModifiedValue(BaseModel):
    """Old and new value of a key present in both snapshots."""

    key: str
    old_value: str
    new_value: str


class SnapshotDiffer:
    """Stateless helper for comparing ``PlainSnapshot`` mappings."""

    @staticmethod
    def diff(base: Mapping[str, str], other: Mapping[str, str]) -> ChangeSet:
        """Classify every key that differs between *base* and *other*.

        Args:
            base: The reference snapshot.
            other: The snapshot being compared against *base*.

        Returns:
            A ``ChangeSet`` where ``added`` holds keys only in *other*,
            ``removed`` keys only in *base*, and ``modified`` keys in
            both with unequal values.  Keys with equal values appear in
            no set.
        """
        base_keys = base.keys()
        other_keys = other.keys()
        return ChangeSet(
            added=set(other_keys - base_keys),
            removed=set(base_keys - other_keys),
            modified={k for k in base_keys & other_keys if base[k] != other[k]},
        )

    @staticmethod
    def modified_values(
        base: Mapping[str, str], other: Mapping[str, str]
    ) -> list[ModifiedValue]:
        """List old/new value pairs for modified keys, sorted by key."""
        return [
            ModifiedValue(key=k, old_value=base[k], new_value=other[k])
            for k in sorted(base.keys() & other.keys())
            if base[k] != other[k]
        ]
