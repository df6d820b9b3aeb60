import pytest

from ppg.buffer import RingBuffer


@pytest.mark.parametrize("capacity", [1, 2, 5, 8])
@pytest.mark.parametrize("pushes", [0, 1, 4, 8, 9, 23])
def test_snapshot_keeps_last_items_in_order(capacity, pushes):
    buf = RingBuffer(capacity)
    for i in range(pushes):
        buf.push(i)

    expected = list(range(pushes))[-min(pushes, capacity):] if pushes else []
    assert buf.snapshot() == expected
    assert len(buf) == min(pushes, capacity)
    assert list(buf) == expected


def test_latest_and_is_full():
    buf = RingBuffer(3)
    assert buf.latest() is None
    assert not buf.is_full
    for value in "abcd":
        buf.push(value)
    assert buf.latest() == "d"
    assert buf.is_full


def test_clear_keeps_capacity():
    buf = RingBuffer(4)
    for i in range(6):
        buf.push(i)
    buf.clear()
    assert len(buf) == 0
    assert buf.snapshot() == []
    assert buf.capacity == 4
    buf.push(42)
    assert buf.snapshot() == [42]


def test_snapshot_is_a_copy():
    buf = RingBuffer(3)
    buf.push(1)
    snap = buf.snapshot()
    snap.append(99)
    assert buf.snapshot() == [1]


@pytest.mark.parametrize("capacity", [0, -3])
def test_non_positive_capacity_rejected(capacity):
    with pytest.raises(ValueError):
        RingBuffer(capacity)
