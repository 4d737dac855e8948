import threading

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from stepumap.random_source import (
    SeededRandomSource,
    DefaultRandomSource,
    check_random_source,
    rng_state_from_source,
)

# ===================================================
#  Random Source Test cases
# ===================================================


def test_seeded_source_is_reproducible():
    first = SeededRandomSource(42)
    second = SeededRandomSource(42)
    assert [first.next_int(0, 1000) for _ in range(20)] == [
        second.next_int(0, 1000) for _ in range(20)
    ]
    assert [first.next_float() for _ in range(20)] == [
        second.next_float() for _ in range(20)
    ]


def test_seeded_sources_differ_by_seed():
    first = SeededRandomSource(1)
    second = SeededRandomSource(2)
    assert [first.next_float() for _ in range(10)] != [
        second.next_float() for _ in range(10)
    ]


@pytest.mark.parametrize("source", [SeededRandomSource(7), DefaultRandomSource(7)])
def test_floats_in_unit_interval(source):
    values = np.array([source.next_float() for _ in range(2000)])
    assert np.all(values >= 0.0)
    assert np.all(values < 1.0)
    # roughly uniform
    assert 0.4 < values.mean() < 0.6


@pytest.mark.parametrize("source", [SeededRandomSource(7), DefaultRandomSource(7)])
def test_ints_in_range(source):
    values = np.array([source.next_int(-3, 4) for _ in range(2000)])
    assert values.min() == -3
    assert values.max() == 3


@pytest.mark.parametrize("source", [SeededRandomSource(7), DefaultRandomSource(7)])
@pytest.mark.parametrize("dtype", [np.float32, np.float64])
def test_fill_floats(source, dtype):
    buffer = np.full(5000, -1.0, dtype=dtype)
    source.fill_floats(buffer)
    assert np.all(buffer >= 0.0)
    assert np.all(buffer < 1.0)
    assert np.unique(buffer).shape[0] > 4000


def test_fill_floats_matches_next_float():
    buffer = np.empty(10, dtype=np.float64)
    SeededRandomSource(3).fill_floats(buffer)
    source = SeededRandomSource(3)
    assert_array_equal(buffer, [source.next_float() for _ in range(10)])


def test_invalid_int_range():
    with pytest.raises(ValueError):
        SeededRandomSource(0).next_int(5, 5)
    with pytest.raises(ValueError):
        DefaultRandomSource().next_int(5, 1)


def test_thread_safety_flags():
    assert not SeededRandomSource(0).is_thread_safe()
    assert DefaultRandomSource().is_thread_safe()


def test_default_source_shared_between_threads():
    source = DefaultRandomSource(0)
    results = []

    def draw():
        buffer = np.empty(1000, dtype=np.float32)
        source.fill_floats(buffer)
        results.append(buffer)

    threads = [threading.Thread(target=draw) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 4
    assert all(np.all((r >= 0.0) & (r < 1.0)) for r in results)


def test_check_random_source():
    assert isinstance(check_random_source(None), DefaultRandomSource)
    assert isinstance(check_random_source(np.random), DefaultRandomSource)
    assert isinstance(check_random_source(42), SeededRandomSource)
    assert isinstance(check_random_source(np.int64(42)), SeededRandomSource)
    assert isinstance(
        check_random_source(np.random.RandomState(1)), DefaultRandomSource
    )
    assert isinstance(
        check_random_source(np.random.default_rng(1)), DefaultRandomSource
    )
    source = SeededRandomSource(5)
    assert check_random_source(source) is source


def test_check_random_source_bad_input():
    with pytest.raises(ValueError):
        check_random_source("not a source")
    with pytest.raises(ValueError):
        check_random_source(1.5)


def test_rng_state_from_source():
    state = rng_state_from_source(SeededRandomSource(11))
    assert state.shape == (3,)
    assert state.dtype == np.int64
    assert_array_equal(state, rng_state_from_source(SeededRandomSource(11)))


def test_seeded_ints_use_low_bits():
    source = SeededRandomSource(7)
    values = np.array([source.next_int(0, 2 ** 30) for _ in range(20000)])
    assert np.all((values >= 0) & (values < 2 ** 30))
    assert np.unique(values % 64).shape[0] == 64
    assert np.unique(values).shape[0] > 19000


def test_seeded_ints_wide_range():
    source = SeededRandomSource(7)
    values = np.array(
        [source.next_int(0, 2 ** 40) for _ in range(2000)], dtype=np.int64
    )
    assert np.all((values >= 0) & (values < 2 ** 40))
    assert values.max() > 2 ** 39
    assert np.unique(values % 64).shape[0] == 64
