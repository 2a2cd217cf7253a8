import numpy as np
import pytest

from parameters import TemporalMemoryParameters
from sequence_runner import StepResult, mean_anomaly, run_sequence
from temporal_memory import TemporalMemory


def make_tm() -> TemporalMemory:
    return TemporalMemory(TemporalMemoryParameters(
        num_columns=16,
        cells_per_column=4,
        segments_per_cell=8,
        synapses_per_segment=8,
        initial_permanence=0.21,
        connected_permanence=0.5,
        permanence_increment=0.1,
        permanence_decrement=0.05,
        max_new_synapses=4,
        active_threshold=3,
        matching_threshold=2,
        seed=42,
    ))


def alternating(steps):
    a = np.zeros(16, dtype=bool)
    a[0:4] = True
    b = np.zeros(16, dtype=bool)
    b[4:8] = True
    return [a if step % 2 == 0 else b for step in range(steps)]


def test_run_sequence_collects_one_result_per_step():
    results = run_sequence(make_tm(), alternating(6))
    assert len(results) == 6
    assert [r.step for r in results] == list(range(6))
    assert all(isinstance(r, StepResult) for r in results)
    assert results[0].anomaly_score == 1.0
    assert results[0].bursting_columns == 4


def test_anomaly_drops_once_sequence_is_learned():
    results = run_sequence(make_tm(), alternating(60), progress=True)
    assert mean_anomaly(results[:4]) == 1.0
    assert mean_anomaly(results, skip=40) < 0.05
    assert results[-1].predicted_columns == 4
    assert results[-1].num_segments > 0
    assert results[-1].num_synapses > 0


def test_reset_every_breaks_sequence_context():
    results = run_sequence(make_tm(), alternating(60), reset_every=2)
    # Every block starts from scratch, so its first input is never predicted.
    assert all(r.anomaly_score == 1.0 for r in results[0::2])
    assert results[-1].anomaly_score == 0.0


def test_run_sequence_without_learning_grows_nothing():
    results = run_sequence(make_tm(), alternating(10), learn=False)
    assert all(r.num_segments == 0 for r in results)
    assert all(r.anomaly_score == 1.0 for r in results)


def test_reset_every_must_be_positive():
    with pytest.raises(ValueError):
        run_sequence(make_tm(), alternating(2), reset_every=0)


def test_mean_anomaly_handles_empty_window():
    assert mean_anomaly([], skip=3) == 0.0


def test_step_results_match_memory_outputs():
    tm = make_tm()
    inputs = alternating(12)
    for vector in inputs:
        result = run_sequence(tm, [vector])[0]
        assert result.bursting_columns == len(tm.get_bursting_columns())
        assert result.predicted_columns == int(np.count_nonzero(tm.get_prediction()))
        assert (result.num_segments, result.num_synapses) == tm.get_stats()
