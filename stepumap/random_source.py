# License: BSD 3 clause
"""Sources of randomness for the neighbor search and the layout optimizer.

A random source is anything exposing ``next_int(min, max)``,
``next_float()``, ``fill_floats(buffer)`` and ``is_thread_safe()``. Two
concrete sources are provided: a deterministic, seedable source built on
the same Tausworthe generator the numba kernels use, and a thread safe
source wrapping a numpy ``Generator``.
"""
import threading
import numbers

import numpy as np
from sklearn.utils import check_random_state

from stepumap.utils import tau_rand, tau_rand_int, tau_rand_fill

INT32_MIN = np.iinfo(np.int32).min + 1
INT32_MAX = np.iinfo(np.int32).max - 1

_SOURCE_METHODS = ("next_int", "next_float", "fill_floats", "is_thread_safe")


class SeededRandomSource(object):
    """Deterministic random source. Two sources built from the same seed
    produce identical streams. Not safe to share between threads.

    Parameters
    ----------
    seed: int
        The seed for the generator state.
    """

    def __init__(self, seed):
        self.seed = seed
        self._state = check_random_state(seed).randint(
            INT32_MIN, INT32_MAX, 3
        ).astype(np.int64)

    def next_int(self, min_value, max_value):
        if max_value <= min_value:
            raise ValueError("max_value must be greater than min_value")
        span = int(max_value - min_value)
        value = int(tau_rand_int(self._state)) & 0x7FFFFFFF
        if span > 0x7FFFFFFF:
            # 31 bits per draw; two draws cover any 62 bit span
            value = (value << 31) | (int(tau_rand_int(self._state)) & 0x7FFFFFFF)
        return min_value + value % span

    def next_float(self):
        return float(tau_rand(self._state))

    def fill_floats(self, buffer):
        tau_rand_fill(self._state, buffer)

    def is_thread_safe(self):
        return False

    def __repr__(self):
        return "SeededRandomSource(seed={!r})".format(self.seed)


class DefaultRandomSource(object):
    """Thread safe random source backed by ``numpy.random.Generator``.

    Parameters
    ----------
    seed: None, int, Generator or RandomState (optional, default None)
        Anything ``numpy.random.default_rng`` accepts, or a legacy
        ``RandomState`` from which a seed is drawn.
    """

    def __init__(self, seed=None):
        if isinstance(seed, np.random.RandomState):
            seed = seed.randint(np.iinfo(np.int32).max)
        self._generator = np.random.default_rng(seed)
        self._lock = threading.Lock()

    def next_int(self, min_value, max_value):
        if max_value <= min_value:
            raise ValueError("max_value must be greater than min_value")
        with self._lock:
            return int(self._generator.integers(min_value, max_value))

    def next_float(self):
        with self._lock:
            return float(self._generator.random())

    def fill_floats(self, buffer):
        # Generator.random only supports float32 and float64 outputs
        dtype = np.float32 if buffer.dtype == np.float32 else np.float64
        with self._lock:
            values = self._generator.random(buffer.shape[0], dtype=dtype)
        buffer[:] = values

    def is_thread_safe(self):
        return True

    def __repr__(self):
        return "DefaultRandomSource()"


def check_random_source(random_state):
    """Turn ``random_state`` into a random source.

    Parameters
    ----------
    random_state: None, int, numpy Generator or RandomState, or random source
        ``None`` (or the ``np.random`` module) gives a fresh thread safe
        ``DefaultRandomSource``; an int gives a deterministic
        ``SeededRandomSource``; numpy generators are wrapped in a
        ``DefaultRandomSource``; objects that already provide the random
        source operations are returned unchanged.

    Returns
    -------
    source: random source
    """
    if random_state is None or random_state is np.random:
        return DefaultRandomSource()
    if isinstance(random_state, numbers.Integral) and not isinstance(
        random_state, bool
    ):
        return SeededRandomSource(int(random_state))
    if isinstance(random_state, (np.random.Generator, np.random.RandomState)):
        return DefaultRandomSource(random_state)
    if all(callable(getattr(random_state, name, None)) for name in _SOURCE_METHODS):
        return random_state
    raise ValueError(
        "%r cannot be used as a random source; pass None, an int, a numpy "
        "random generator, or an object providing %s"
        % (random_state, ", ".join(_SOURCE_METHODS))
    )


def rng_state_from_source(random_source):
    """Draw the three int64 seeds driving the numba ``tau_rand`` kernels."""
    return np.array(
        [random_source.next_int(INT32_MIN, INT32_MAX) for _ in range(3)],
        dtype=np.int64,
    )
