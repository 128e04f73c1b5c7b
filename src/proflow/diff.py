"""Sequence diffing — old/new snapshots to sparse range patches.

Runs are opened at the first mismatching index and closed by the next equal
pair, so only positions that changed appear in the result.
"""

from __future__ import annotations

from typing import NamedTuple, Sequence


class Patch(NamedTuple):
    """A run of removed (`old`) and inserted (`new`) items at one index."""

    old: list
    new: list

    def swapped(self) -> Patch:
        return Patch(self.new, self.old)


def _same(a, b) -> bool:
    return a is b or a == b


def diff(old: Sequence, new: Sequence) -> dict[int, Patch]:
    """Compare two sequences and return {start_index: Patch} for every changed run.

    Usage:
        diff([1, 2, 3], [1, 2])     # {2: Patch(old=[3], new=[])}
        diff([1, 2, 3], [1, 4, 3])  # {1: Patch(old=[2], new=[4])}
    """
    if len(new) > len(old):
        return {index: patch.swapped() for index, patch in diff(new, old).items()}

    patches: dict[int, Patch] = {}
    start = -1
    common = len(new)
    for i in range(common):
        a, b = old[i], new[i]
        if _same(a, b):
            start = -1
            continue
        if start == -1:
            start = i
            patches[start] = Patch([], [])
        patches[start].old.append(a)
        patches[start].new.append(b)

    if len(old) > common:
        if start == -1:
            start = common
            patches[start] = Patch([], [])
        patches[start].old.extend(old[common:])

    return patches


def apply_patches(items: Sequence, patches: dict[int, Patch]) -> list:
    """Apply the output of diff(items, other) to a copy of items, returning other."""
    result = list(items)
    # Only the last run can change the length, so ascending order keeps indices valid.
    for index in sorted(patches):
        patch = patches[index]
        result[index:index + len(patch.old)] = patch.new
    return result
