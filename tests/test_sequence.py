"""Tests for ReactiveSequence, its change records and derived sequences."""

import json
import random

import pytest

from proflow import (
    ChangeRecord,
    Container,
    DestroyedError,
    Operation,
    ReactiveSequence,
    State,
    ValueEvent,
    autorun,
)


def _record(seq, topic=None):
    records = []
    seq.subscribe(records.append, topic)
    return records


def _indices_match(seq):
    return len(seq.p().containers) == len(seq._items)


class TestQueries:
    def test_basic_operations(self):
        seq = ReactiveSequence([1, 2, 3])
        assert len(seq) == 3
        assert seq[0] == 1
        assert seq[-1] == 3
        assert seq[1:] == [2, 3]
        assert list(seq) == [1, 2, 3]
        assert 2 in seq
        assert bool(seq) is True
        assert seq == [1, 2, 3]
        assert seq.index(3) == 2
        assert seq.count(2) == 1

    def test_reductions(self):
        seq = ReactiveSequence(["a", "b", "c"])
        assert seq.reduce(lambda acc, x: acc + x) == "abc"
        assert seq.reduce_right(lambda acc, x: acc + x, "") == "cba"
        assert seq.join("-") == "a-b-c"
        assert seq.every(str.isalpha)
        assert not seq.some(str.isdigit)

    def test_reads_register_observer(self):
        seq = ReactiveSequence([1, 2, 3])
        log = []
        autorun(lambda: log.append(sum(seq)))
        seq.append(4)
        seq[0] = 10
        seq.reverse()
        assert log == [6, 10, 19, 19]

    def test_serialization(self):
        seq = ReactiveSequence([1, ReactiveSequence([2, 3])])
        assert seq.to_list() == [1, [2, 3]]
        assert json.loads(seq.to_json()) == [1, [2, 3]]


class TestMutations:
    def test_append_records(self):
        seq = ReactiveSequence([1, 2, 3])
        records = _record(seq, "length")
        seq.append(4)
        seq.append(5)
        assert seq == [1, 2, 3, 4, 5]
        assert records == [
            ChangeRecord(Operation.ADD, 3, (), (4,)),
            ChangeRecord(Operation.ADD, 4, (), (5,)),
        ]

    def test_extend_and_prepend(self):
        seq = ReactiveSequence([3])
        records = _record(seq)
        seq.extend([4, 5])
        seq.prepend(1, 2)
        assert seq == [1, 2, 3, 4, 5]
        assert records == [
            ChangeRecord(Operation.ADD, 1, (), (4, 5)),
            ChangeRecord(Operation.ADD, 0, (), (1, 2)),
        ]

    def test_insert(self):
        seq = ReactiveSequence([1, 3])
        records = _record(seq)
        seq.insert(1, 2)
        seq.insert(-100, 0)
        assert seq == [0, 1, 2, 3]
        assert [r.index for r in records] == [1, 0]

    def test_pop_and_shift(self):
        seq = ReactiveSequence([1, 2, 3])
        records = _record(seq, "length")
        assert seq.pop() == 3
        assert seq.shift() == 1
        assert seq == [2]
        assert records == [
            ChangeRecord(Operation.REMOVE, 2, (3,), ()),
            ChangeRecord(Operation.REMOVE, 0, (1,), ()),
        ]

    def test_pop_empty_raises(self):
        seq = ReactiveSequence()
        with pytest.raises(IndexError):
            seq.pop()

    def test_remove_and_del(self):
        seq = ReactiveSequence([1, 2, 3, 4])
        seq.remove(2)
        del seq[0]
        assert seq == [3, 4]
        with pytest.raises(ValueError):
            seq.remove(99)

    def test_set_item(self):
        seq = ReactiveSequence([1, 2, 3])
        index_records = _record(seq, "index")
        length_records = _record(seq, "length")
        seq[1] = 20
        seq[1] = 20  # equal value: no record
        assert seq == [1, 20, 3]
        assert index_records == [ChangeRecord(Operation.SET, 1, (2,), (20,))]
        assert length_records == []

    def test_set_item_notifies_index_container(self):
        seq = ReactiveSequence([1, 2, 3])
        events = []
        container = seq.p(1)
        container.add_listener(events.append)
        seq[1] = 5
        assert events == [ValueEvent(container, 2, 5)]
        assert container.get() == 5
        container.set(6)
        assert seq[1] == 6

    def test_slice_assignment_is_splice(self):
        seq = ReactiveSequence([1, 2, 3, 4])
        records = _record(seq)
        seq[1:3] = [9]
        del seq[0:1]
        assert seq == [9, 4]
        assert records == [
            ChangeRecord(Operation.SPLICE, 1, (2, 3), (9,)),
            ChangeRecord(Operation.SPLICE, 0, (1,), ()),
        ]

    def test_set_length(self):
        seq = ReactiveSequence([1, 2, 3])
        records = _record(seq, "length")
        seq.set_length(1)
        seq.set_length(3)
        seq.set_length(3)
        assert seq == [1, None, None]
        assert records == [
            ChangeRecord(Operation.SET_LENGTH, 1, (2, 3), ()),
            ChangeRecord(Operation.SET_LENGTH, 3, (), (None, None)),
        ]

    def test_set_length_rejects_negative(self):
        seq = ReactiveSequence([1])
        with pytest.raises(ValueError):
            seq.set_length(-1)
        assert seq == [1]

    def test_reverse_and_sort(self):
        seq = ReactiveSequence([3, 1, 2])
        records = _record(seq, "index")
        seq.reverse()
        assert seq == [2, 1, 3]
        seq.sort()
        assert seq == [1, 2, 3]
        seq.sort(key=lambda v: -v)
        assert seq == [3, 2, 1]
        assert [r.op for r in records] == [Operation.REVERSE, Operation.SORT, Operation.SORT]
        assert records[2].added[1] is False

    def test_reverse_empty_is_silent(self):
        seq = ReactiveSequence()
        records = _record(seq)
        seq.reverse()
        seq.sort()
        assert records == []

    def test_sort_failure_leaves_storage(self):
        seq = ReactiveSequence([3, 1, 2])
        records = _record(seq)

        def bad_key(v):
            if v == 2:
                raise RuntimeError("boom")
            return v

        with pytest.raises(RuntimeError):
            seq.sort(key=bad_key)
        assert seq == [3, 1, 2]
        assert records == []

    def test_splice(self):
        seq = ReactiveSequence([1, 2, 3, 4, 5])
        index_records = _record(seq, "index")
        length_records = _record(seq, "length")
        assert seq.splice(1, 2, "a", "b") == [2, 3]
        assert seq.splice(-1) == [5]
        assert seq == [1, "a", "b", 4]
        assert index_records == [ChangeRecord(Operation.SPLICE, 1, (2, 3), ("a", "b"))]
        assert length_records == [ChangeRecord(Operation.SPLICE, 4, (5,), ())]

    def test_bad_index_fails_before_mutation(self):
        seq = ReactiveSequence([1, 2])
        records = _record(seq)
        with pytest.raises(IndexError):
            seq[5] = 1
        with pytest.raises(TypeError):
            seq["0"] = 1
        with pytest.raises(TypeError):
            seq.sort(key=3)
        assert seq == [1, 2]
        assert records == []

    def test_index_containers_follow_length(self):
        rng = random.Random(3)
        seq = ReactiveSequence([1, 2, 3])
        for _ in range(200):
            choice = rng.randrange(7)
            if choice == 0:
                seq.append(rng.randint(0, 9))
            elif choice == 1 and seq._items:
                seq.pop()
            elif choice == 2:
                seq.prepend(rng.randint(0, 9), rng.randint(0, 9))
            elif choice == 3:
                seq.set_length(rng.randint(0, 6))
            elif choice == 4:
                seq.splice(rng.randint(0, 4), rng.randint(0, 3), *range(rng.randint(0, 3)))
            elif choice == 5 and seq._items:
                seq.shift()
            else:
                seq.clear()
            assert _indices_match(seq)

    def test_removed_index_containers_are_destroyed(self):
        seq = ReactiveSequence([1, 2, 3])
        last = seq.p(2)
        seq.pop()
        assert last.state is State.DESTROYED


class TestDerived:
    def test_map_follows_source(self):
        source = ReactiveSequence([1, 2, 3])
        mapped = source.map(lambda v: v * 10)
        assert mapped == [10, 20, 30]

        source.append(4)
        source.prepend(0)
        source[1] = 5
        source.pop()
        source.splice(1, 1, 7, 8)
        assert mapped == [v * 10 for v in source]
        source.reverse()
        assert mapped == [v * 10 for v in source]
        source.sort()
        assert mapped == [v * 10 for v in source]
        source.set_length(2)
        assert mapped == [v * 10 for v in source]

    def test_map_translates_record_kind(self):
        source = ReactiveSequence([1, 2, 3])
        mapped = source.map(str)
        records = _record(mapped)
        source.append(4)
        assert records == [ChangeRecord(Operation.ADD, 3, (), ("4",))]

    def test_filter_keeps_source_order(self):
        source = ReactiveSequence([1, 2, 3, 4, 5])
        evens = source.filter(lambda v: v % 2 == 0)
        assert evens == [2, 4]
        records = _record(evens)
        source[2] = 6
        assert evens == [2, 6, 4]
        assert records == [ChangeRecord(Operation.SPLICE, 1, (4,), (6, 4))]

    def test_filter_appends_through_one_add(self):
        source = ReactiveSequence([1, 2, 3, 4, 5])
        evens = source.filter(lambda v: v % 2 == 0)
        records = _record(evens)
        source[4] = 6
        assert evens == [2, 4, 6]
        assert records == [ChangeRecord(Operation.ADD, 2, (), (6,))]

    def test_filter_follows_source(self):
        rng = random.Random(11)
        source = ReactiveSequence([rng.randint(0, 9) for _ in range(10)])
        evens = source.filter(lambda v: v % 2 == 0)
        for _ in range(100):
            choice = rng.randrange(4)
            if choice == 0:
                source.append(rng.randint(0, 9))
            elif choice == 1 and source._items:
                source[rng.randrange(len(source._items))] = rng.randint(0, 9)
            elif choice == 2:
                source.splice(rng.randint(0, 5), rng.randint(0, 3), rng.randint(0, 9))
            else:
                source.sort()
            assert evens == [v for v in source._items if v % 2 == 0]
            assert _indices_match(evens)

    def test_slice_follows_source(self):
        source = ReactiveSequence([0, 1, 2, 3, 4, 5])
        window = source.slice(1, 4)
        assert window == [1, 2, 3]
        records = _record(window)
        source[2] = 20
        assert window == [1, 20, 3]
        assert records == [ChangeRecord(Operation.SET, 1, (2,), (20,))]
        source[5] = 50  # outside the window
        assert len(records) == 1
        source.prepend(-1)
        assert window == source._items[1:4]
        source.reverse()
        assert window == source._items[1:4]

    def test_concat_follows_both_operands(self):
        left = ReactiveSequence([1, 2])
        right = ReactiveSequence([3, 4])
        joined = left.concat(right, [5], 6)
        assert joined == [1, 2, 3, 4, 5, 6]

        left.append(2.5)
        assert joined == [1, 2, 2.5, 3, 4, 5, 6]
        right[0] = 30
        assert joined == [1, 2, 2.5, 30, 4, 5, 6]
        right.prepend(29)
        left.shift()
        assert joined == [2, 2.5, 29, 30, 4, 5, 6]
        right.set_length(1)
        assert joined == [2, 2.5, 29, 5, 6]
        left.reverse()
        assert joined == [2.5, 2, 29, 5, 6]
        right.set_length(2)
        assert joined == [2.5, 2, 29, None, 5, 6]

    def test_derived_chain(self):
        source = ReactiveSequence([1, 2, 3, 4])
        result = source.filter(lambda v: v > 1).map(lambda v: v * 2)
        source.append(5)
        source[0] = 6
        assert result == [12, 4, 6, 8, 10]

    def test_bad_mapper_fails_immediately(self):
        source = ReactiveSequence([1])
        with pytest.raises(TypeError):
            source.map(None)
        with pytest.raises(TypeError):
            source.filter("x")

    def test_destroy_detaches_from_source(self):
        source = ReactiveSequence([1, 2])
        mapped = source.map(lambda v: v + 1)
        mapped.destroy()
        source.append(3)
        assert source.p()._derived == []
        with pytest.raises(DestroyedError):
            len(mapped)

    def test_computed_over_derived(self):
        source = ReactiveSequence([1, 2, 3, 4])
        evens = source.filter(lambda v: v % 2 == 0)
        total = Container("total", fn=lambda: sum(evens))
        assert total.get() == 6
        source.append(6)
        assert total.get() == 12
