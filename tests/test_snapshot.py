import pytest

from levelkit.snapshot import SnapshotList


def test_new_list_is_empty():
    snapshots = SnapshotList()
    assert snapshots.empty()
    assert len(snapshots) == 0
    assert list(snapshots) == []


def test_oldest_newest_on_empty_raise():
    snapshots = SnapshotList()
    with pytest.raises(IndexError):
        snapshots.oldest()
    with pytest.raises(IndexError):
        snapshots.newest()


def test_order_and_ends():
    snapshots = SnapshotList()
    a = snapshots.new(10)
    b = snapshots.new(20)
    c = snapshots.new(20)
    assert not snapshots.empty()
    assert snapshots.oldest() is a
    assert snapshots.newest() is c
    assert list(snapshots) == [a, b, c]
    assert len(snapshots) == 3


def test_delete_middle_and_ends():
    snapshots = SnapshotList()
    a = snapshots.new(1)
    b = snapshots.new(2)
    c = snapshots.new(3)
    snapshots.delete(b)
    assert list(snapshots) == [a, c]
    snapshots.delete(a)
    assert snapshots.oldest() is c
    snapshots.delete(c)
    assert snapshots.empty()


def test_decreasing_sequence_rejected():
    snapshots = SnapshotList()
    snapshots.new(5)
    with pytest.raises(ValueError):
        snapshots.new(4)
    assert len(snapshots) == 1


def test_delete_foreign_snapshot_rejected():
    first = SnapshotList()
    second = SnapshotList()
    snap = first.new(1)
    with pytest.raises(ValueError):
        second.delete(snap)
    snapshots_left = list(first)
    assert snapshots_left == [snap]


def test_delete_twice_rejected():
    snapshots = SnapshotList()
    snap = snapshots.new(1)
    snapshots.delete(snap)
    with pytest.raises(ValueError):
        snapshots.delete(snap)


def test_sequence_number_kept():
    snapshots = SnapshotList()
    snap = snapshots.new(42)
    assert snap.sequence_number == 42