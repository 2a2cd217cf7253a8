import numpy as np
import pytest

from parameters import ConfigurationError
from sdr import as_bitset, dense, overlap, pretty, sparsify, sparsity, subsample, union


def test_as_bitset_accepts_bools_and_binary_ints():
    assert as_bitset([True, False, True], 3).tolist() == [True, False, True]
    assert as_bitset(np.array([0, 1, 1]), 3).dtype == np.bool_
    assert as_bitset((1.0, 0.0), 2).tolist() == [True, False]


def test_as_bitset_returns_a_copy():
    source = np.array([True, False])
    result = as_bitset(source, 2)
    result[1] = True
    assert not source[1]


@pytest.mark.parametrize("vector, size", [
    ([1, 0], 3),
    ([1, 0, 0, 0], 3),
    ([[1, 0], [0, 1]], 4),
    ([0, 3, 1], 3),
    ("101", 3),
])
def test_as_bitset_rejects_bad_vectors(vector, size):
    with pytest.raises(ConfigurationError):
        as_bitset(vector, size, name="columns")


def test_sparsify_and_dense():
    assert sparsify([0, 1, 0, 1, 1]) == [1, 3, 4]
    assert dense([1, 3], 5).tolist() == [False, True, False, True, False]
    with pytest.raises(ValueError):
        dense([5], 5)


def test_overlap_counts_shared_active_bits():
    assert overlap([1, 1, 0, 0], [1, 0, 1, 0]) == 1
    assert overlap([0, 0], [0, 0]) == 0
    with pytest.raises(ValueError):
        overlap([1, 0], [1, 0, 0])


def test_sparsity_and_pretty():
    assert sparsity([1, 0, 0, 0]) == pytest.approx(0.25)
    assert sparsity([]) == 0.0
    assert pretty([True, False, True]) == "101"


def test_subsample_keeps_subset_of_active_bits():
    rng = np.random.default_rng(0)
    vector = dense([2, 5, 7, 9, 11], 12)
    sample = subsample(vector, 3, rng=rng)
    assert np.count_nonzero(sample) == 3
    assert set(sparsify(sample)) <= {2, 5, 7, 9, 11}
    assert np.array_equal(subsample(vector, 10, rng=rng), vector)


def test_union():
    assert union([1, 0, 0], [0, 0, 1]).tolist() == [True, False, True]
    with pytest.raises(ValueError):
        union([1, 0], [1])
    with pytest.raises(ValueError):
        union()
