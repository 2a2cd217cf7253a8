"""Bit vector helpers shared by the connectivity store and temporal memory.

Dense vectors are 1-D numpy bool arrays. Sparse vectors are sorted lists of
the indices of active bits.
"""

import numpy as np
from typing import (
    Iterable,
    List,
    Optional,
    Sequence,
    Union,
)

from parameters import ConfigurationError

BitVector = Union[np.ndarray, Sequence[bool], Sequence[int]]


def as_bitset(vector: BitVector, size: int, name: str = "vector") -> np.ndarray:
    """Validate a dense binary vector and return it as a new bool array.

    The vector must be one-dimensional, exactly ``size`` long and hold only
    0/1 (or False/True) values. Nothing is padded or truncated.
    """
    if isinstance(vector, (str, bytes)):
        raise ConfigurationError(f"{name} must be a binary vector, not {type(vector).__name__}.")
    try:
        array = np.asarray(vector)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a flat binary vector: {exc}") from exc
    if array.ndim != 1:
        raise ConfigurationError(f"{name} must be one-dimensional, got shape {array.shape}.")
    if array.shape[0] != size:
        raise ConfigurationError(f"{name} has length {array.shape[0]}, expected {size}.")
    if array.dtype != np.bool_:
        if not np.all(np.logical_or(array == 0, array == 1)):
            raise ConfigurationError(f"{name} must only contain 0/1 values.")
    return array.astype(bool, copy=True)


def sparsify(vector: BitVector) -> List[int]:
    """Converts a dense activity vector to a activation list."""
    return [int(i) for i in np.flatnonzero(np.asarray(vector))]


def dense(indices: Iterable[int], size: int) -> np.ndarray:
    """Converts an activation list to a dense bool vector of ``size`` bits."""
    out = np.zeros(size, dtype=bool)
    for idx in indices:
        value = int(idx)
        if value < 0 or value >= size:
            raise ValueError(f"Index {value} out of bounds for vector of size {size}.")
        out[value] = True
    return out


def overlap(a: BitVector, b: BitVector) -> int:
    """Number of bits active in both vectors."""
    first = np.asarray(a, dtype=bool)
    second = np.asarray(b, dtype=bool)
    if first.shape != second.shape:
        raise ValueError(f"Mismatched vector lengths {first.shape} and {second.shape}.")
    return int(np.count_nonzero(first & second))


def sparsity(vector: BitVector) -> float:
    """Fraction of active bits; 0.0 for an empty vector."""
    array = np.asarray(vector, dtype=bool)
    if array.size == 0:
        return 0.0
    return float(np.count_nonzero(array)) / array.size


def pretty(vector: BitVector) -> str:
    return "".join("1" if bit else "0" for bit in np.asarray(vector, dtype=bool))


def subsample(
    vector: BitVector,
    count: int,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Return a copy of ``vector`` keeping at most ``count`` random active bits."""
    rng = rng if rng is not None else np.random.default_rng()
    array = np.asarray(vector, dtype=bool)
    active = np.flatnonzero(array)
    out = np.zeros(array.shape[0], dtype=bool)
    if count >= active.size:
        out[active] = True
        return out
    out[rng.choice(active, size=max(0, count), replace=False)] = True
    return out


def union(*vectors: BitVector) -> np.ndarray:
    """Bitwise OR of equally sized vectors."""
    if not vectors:
        raise ValueError("union() needs at least one vector.")
    arrays = [np.asarray(v, dtype=bool) for v in vectors]
    size = arrays[0].shape
    for array in arrays:
        if array.shape != size:
            raise ValueError("Mismatched vector lengths in union().")
    return np.logical_or.reduce(arrays)
