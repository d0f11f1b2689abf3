"""Per-worker random streams producing uniform doubles in [0, 1).

Every rendering worker owns one stream; a stream is never shared, so kernels
draw from it without synchronisation. Two interchangeable backends exist:

FAST
    The classic C library ``rand()`` linear congruential generator. Only 15
    bits per draw and a short period, but cheap and fully reproducible from
    an explicit seed.

CRYPTO
    Bytes from the operating system CSPRNG (``os.urandom``), buffered 1 MiB
    per stream. Each draw consumes 8 bytes: the low 52 bits become the
    mantissa of a double with a zero exponent (a value in [1, 2)), and
    ``1 - eps/2`` is subtracted, so the result never reaches 1.0.

A kernel cannot call back into the OS to refill a buffer. A stream that runs
past the end of its buffer wraps around and flags itself as exhausted; the
host refills it and re-runs the work that consumed the stale bytes. See
``ensure_stream_headroom`` and ``take_exhausted_streams``.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu, default_fp=ti.f64, fast_math=False)
    >>> from src.rtweekend.core.sampler import (
    ...     RandomBackend, RandomSource, setup_random_streams
    ... )
    >>> setup_random_streams(4, RandomBackend.FAST, seed=7)
    >>> RandomSource(0).random_double()  # host-side draw from stream 0
"""

import logging
import os
import sys
from enum import IntEnum

import numpy as np
import taichi as ti

logger = logging.getLogger(__name__)


class RandomBackend(IntEnum):
    """Source of randomness behind every stream."""

    FAST = 0
    CRYPTO = 1


class RandomSourceError(RuntimeError):
    """The random source cannot produce trustworthy numbers.

    Raised when the OS entropy source fails, when a refill cannot be
    completed, or when a released stream is used. A render cannot continue
    safely after this error.
    """


# Maximum number of independent streams (and therefore rendering workers)
MAX_STREAMS = 16

# Seed used when the caller does not pick one (the C library's implicit seed)
DEFAULT_SEED = 1

# SeedSequence spawn key of the stream scene builders draw from. Render
# streams use the root sequence, so the two never replay each other.
SCENE_SPAWN_KEY = (0,)

# C library rand() constants
RAND_MAX = 32767
_LCG_MULTIPLIER = 1103515245
_LCG_INCREMENT = 12345

# Cryptographic buffer size per stream, in bytes and in 8-byte words
RAND_BUF_SIZE = 1024 * 1024
RAND_BUF_WORDS = RAND_BUF_SIZE // 8

# Subtracted from a double in [1, 2) to land in [0, 1) without reaching 1.0
_UNIT_SHIFT = 1.0 - sys.float_info.epsilon / 2.0

_FAST = int(RandomBackend.FAST)
_CRYPTO = int(RandomBackend.CRYPTO)

# =============================================================================
# Stream State (Taichi fields)
# =============================================================================

# Active backend; the streams are unusable while _num_streams is zero
_backend = ti.field(dtype=ti.i32, shape=())
_num_streams = ti.field(dtype=ti.i32, shape=())

# FAST backend: one LCG state word per stream
_lcg_state = ti.field(dtype=ti.u32, shape=MAX_STREAMS)

# CRYPTO backend: refillable word buffer and read cursor per stream
_crypto_buffer = ti.field(dtype=ti.u64, shape=(MAX_STREAMS, RAND_BUF_WORDS))
_crypto_cursor = ti.field(dtype=ti.i32, shape=MAX_STREAMS)

# Set by a kernel when a stream wrapped around its buffer
_stream_exhausted = ti.field(dtype=ti.i32, shape=MAX_STREAMS)


# =============================================================================
# Device-side Draws
# =============================================================================


@ti.func
def _fast_double(stream: ti.i32) -> ti.f64:
    """Draw from the LCG stream, rescaled by RAND_MAX + 1."""
    state = _lcg_state[stream] * ti.u32(_LCG_MULTIPLIER) + ti.u32(_LCG_INCREMENT)
    _lcg_state[stream] = state
    value = (state >> ti.u32(16)) & ti.u32(RAND_MAX)
    return ti.cast(value, ti.f64) / (RAND_MAX + 1.0)


@ti.func
def _crypto_double(stream: ti.i32) -> ti.f64:
    """Convert the next 8 buffered bytes into a double in [0, 1)."""
    pos = _crypto_cursor[stream]
    if pos >= RAND_BUF_WORDS:
        # Out of fresh bytes; the host discards this work and refills
        _stream_exhausted[stream] = 1
        pos = 0
    bits = _crypto_buffer[stream, pos]
    _crypto_cursor[stream] = pos + 1

    fraction = (bits << ti.u64(12)) >> ti.u64(12)
    exponent_bits = ti.u64(1023) << ti.u64(52)
    return ti.bit_cast(fraction | exponent_bits, ti.f64) - ti.f64(_UNIT_SHIFT)


@ti.func
def random_double(stream: ti.i32) -> ti.f64:
    """Draw a uniform double in [0, 1) from a worker's stream.

    Args:
        stream: Index of the stream owned by the calling worker.

    Returns:
        A uniform value in [0, 1).
    """
    result = ti.f64(0.0)
    if _backend[None] == _CRYPTO:
        result = _crypto_double(stream)
    else:
        result = _fast_double(stream)
    return result


@ti.func
def random_double_range(stream: ti.i32, min_value: ti.f64, max_value: ti.f64) -> ti.f64:
    """Draw a uniform double in [min_value, max_value).

    Args:
        stream: Index of the stream owned by the calling worker.
        min_value: Inclusive lower bound.
        max_value: Exclusive upper bound.

    Returns:
        ``min_value + (max_value - min_value) * random_double(stream)``.
    """
    return min_value + (max_value - min_value) * random_double(stream)


@ti.kernel
def _draw_double(stream: ti.i32) -> ti.f64:
    return random_double(stream)


@ti.kernel
def _load_stream_words(stream: ti.i32, words: ti.types.ndarray(dtype=ti.u64, ndim=1)):
    for k in range(RAND_BUF_WORDS):
        _crypto_buffer[stream, k] = words[k]


# =============================================================================
# Host-side Stream Management
# =============================================================================


def _read_os_entropy(num_bytes: int) -> np.ndarray:
    """Read bytes from the OS CSPRNG as native-endian 64-bit words."""
    try:
        raw = os.urandom(num_bytes)
    except (OSError, NotImplementedError) as exc:
        raise RandomSourceError(f"OS entropy source unavailable: {exc}") from exc
    if len(raw) != num_bytes:
        raise RandomSourceError(
            f"OS entropy source returned {len(raw)} of {num_bytes} requested bytes"
        )
    return np.frombuffer(raw, dtype=np.uint64).copy()


def _check_stream(stream: int) -> None:
    if _num_streams[None] == 0:
        raise RandomSourceError("Random streams are not set up (or were released)")
    if not 0 <= stream < _num_streams[None]:
        raise ValueError(f"Stream {stream} out of range [0, {_num_streams[None]})")


def setup_random_streams(
    num_streams: int,
    backend: RandomBackend = RandomBackend.FAST,
    seed: int = DEFAULT_SEED,
    spawn_key: tuple[int, ...] = (),
) -> None:
    """Create one independent random stream per worker.

    Any previously configured streams are replaced.

    Args:
        num_streams: Number of streams, in [1, MAX_STREAMS].
        backend: Which generator backs the streams.
        seed: Seed for the FAST backend. Per-stream seeds are derived from it
            with numpy's SeedSequence. Ignored by the CRYPTO backend.
        spawn_key: SeedSequence spawn key; a different key gives streams
            unrelated to those of the same seed. See SCENE_SPAWN_KEY.

    Raises:
        ValueError: If num_streams is outside [1, MAX_STREAMS].
        RandomSourceError: If the OS entropy source fails (CRYPTO backend).
    """
    if not 1 <= num_streams <= MAX_STREAMS:
        raise ValueError(f"num_streams = {num_streams} is outside [1, {MAX_STREAMS}]")
    backend = RandomBackend(backend)

    _stream_exhausted.fill(0)
    _crypto_cursor.fill(0)

    if backend == RandomBackend.FAST:
        states = np.random.SeedSequence(seed, spawn_key=spawn_key).generate_state(
            num_streams, dtype=np.uint32
        )
        for stream, state in enumerate(states):
            _lcg_state[stream] = int(state)
        logger.debug(
            "Seeded %d fast streams from seed %d, spawn key %s", num_streams, seed, spawn_key
        )
    else:
        for stream in range(num_streams):
            _load_stream_words(stream, _read_os_entropy(RAND_BUF_SIZE))
        logger.debug("Filled %d cryptographic stream buffers", num_streams)

    _num_streams[None] = num_streams
    _backend[None] = int(backend)


def release_random_streams() -> None:
    """Tear down the streams and wipe any buffered entropy.

    Drawing from a released stream raises RandomSourceError.
    """
    if _backend[None] == _CRYPTO:
        _crypto_buffer.fill(0)
    _crypto_cursor.fill(0)
    _stream_exhausted.fill(0)
    _lcg_state.fill(0)
    _num_streams[None] = 0
    _backend[None] = _FAST


def get_random_backend() -> RandomBackend | None:
    """Get the active backend, or None if no streams are set up."""
    if _num_streams[None] == 0:
        return None
    return RandomBackend(int(_backend[None]))


def get_stream_count() -> int:
    """Get the number of configured streams."""
    return int(_num_streams[None])


def refill_stream(stream: int) -> None:
    """Refill a cryptographic stream's buffer with fresh OS entropy.

    Resets the stream's cursor and clears its exhausted flag. A no-op for
    the FAST backend, which never runs dry.

    Raises:
        RandomSourceError: If the streams are not set up or the OS fails.
    """
    _check_stream(stream)
    if _backend[None] != _CRYPTO:
        return
    _load_stream_words(stream, _read_os_entropy(RAND_BUF_SIZE))
    _crypto_cursor[stream] = 0
    _stream_exhausted[stream] = 0
    logger.debug("Refilled random stream %d", stream)


def ensure_stream_headroom() -> list[int]:
    """Refill every cryptographic stream that has used half its buffer.

    Called before each unit of kernel work so that a stream rarely runs dry
    in the middle of a launch.

    Returns:
        The indices of the refilled streams.
    """
    if _backend[None] != _CRYPTO:
        return []
    count = get_stream_count()
    cursors = _crypto_cursor.to_numpy()[:count]
    refilled = [int(s) for s in np.nonzero(cursors > RAND_BUF_WORDS // 2)[0]]
    for stream in refilled:
        refill_stream(stream)
    return refilled


def take_exhausted_streams() -> list[int]:
    """Return the streams that ran past their buffer and clear the flags.

    Any work done by a kernel launch that exhausted a stream used repeated
    bytes and must be discarded by the caller.
    """
    count = get_stream_count()
    flags = _stream_exhausted.to_numpy()[:count]
    exhausted = [int(s) for s in np.nonzero(flags)[0]]
    for stream in exhausted:
        _stream_exhausted[stream] = 0
    return exhausted


class RandomSource:
    """Host-side handle on one stream, for code running outside kernels.

    Scene builders use it to place and colour spheres. Every draw is a
    kernel launch, so it is meant for setup work, not per-pixel sampling.

    Attributes:
        stream: Index of the underlying stream.
    """

    def __init__(self, stream: int = 0) -> None:
        _check_stream(stream)
        self.stream = stream

    def random_double(self) -> float:
        """Draw a uniform double in [0, 1).

        Raises:
            RandomSourceError: If the streams were released or a refill fails.
        """
        _check_stream(self.stream)
        value = float(_draw_double(self.stream))
        if self.stream in take_exhausted_streams():
            refill_stream(self.stream)
            value = float(_draw_double(self.stream))
        return value

    def random_double_range(self, min_value: float, max_value: float) -> float:
        """Draw a uniform double in [min_value, max_value)."""
        return min_value + (max_value - min_value) * self.random_double()

    def __repr__(self) -> str:
        return f"RandomSource(stream={self.stream}, backend={get_random_backend()!r})"

