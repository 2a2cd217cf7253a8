"""Feed a stream of column activations through a TemporalMemory."""

from dataclasses import dataclass
from typing import (
    Iterable,
    List,
    Optional,
    Sequence,
)

import numpy as np
from tqdm import tqdm

from sdr import BitVector
from temporal_memory import TemporalMemory


@dataclass(frozen=True)
class StepResult:
    step: int
    anomaly_score: float
    accuracy: float
    bursting_columns: int
    predicted_columns: int
    num_segments: int
    num_synapses: int


def run_sequence(
    tm: TemporalMemory,
    inputs: Iterable[BitVector],
    learn: bool = True,
    progress: bool = False,
    reset_every: Optional[int] = None,
) -> List[StepResult]:
    """Compute every input in order and collect one StepResult per step.

    With ``reset_every`` set, ``tm.reset()`` runs before every
    ``reset_every``-th input (after the first), so each block is learned as a
    separate sequence.
    """
    if reset_every is not None and reset_every < 1:
        raise ValueError(f"reset_every must be positive, got {reset_every}.")

    total = len(inputs) if hasattr(inputs, "__len__") else None
    results: List[StepResult] = []
    for step, columns in enumerate(tqdm(inputs, total=total, desc="Sequence", disable=not progress)):
        if reset_every is not None and step > 0 and step % reset_every == 0:
            tm.reset()
        tm.compute(columns, learn=learn)
        num_segments, num_synapses = tm.get_stats()
        results.append(
            StepResult(
                step=step,
                anomaly_score=tm.get_anomaly_score(),
                accuracy=tm.get_accuracy(),
                bursting_columns=len(tm.get_bursting_columns()),
                predicted_columns=int(np.count_nonzero(tm.get_prediction())),
                num_segments=num_segments,
                num_synapses=num_synapses,
            )
        )
    return results


def mean_anomaly(results: Sequence[StepResult], skip: int = 0) -> float:
    """Mean anomaly score over ``results`` ignoring the first ``skip`` steps."""
    window = results[skip:]
    if not window:
        return 0.0
    return float(np.mean([r.anomaly_score for r in window]))
