"""Temporal Memory: sequence learning over sparse column activations.

Each ``compute`` call runs one timestep:

1. score the incoming columns against the previous prediction,
2. activate cells column by column (predicted, bursting or punished),
   learning on the connectivity store when enabled,
3. recompute segment activity against the new active cells,
4. clean up dead synapses and empty segments,
5. derive the column prediction for the next step.
"""

import logging
from statistics import fmean, pstdev
from typing import (
    List,
    Optional,
    Tuple,
)

import numpy as np

from connections import EPSILON, Connections
from parameters import TemporalMemoryParameters, check_parameters
from sdr import BitVector, as_bitset, sparsify

logger = logging.getLogger(__name__)


class TemporalMemory:
    """Temporal Memory region owning one ``Connections`` store.

    Cell state is kept as dense bool vectors over all
    ``num_columns * cells_per_column`` cells; the prediction is a bool
    vector over columns.
    """

    def __init__(self,
                 parameters: Optional[TemporalMemoryParameters] = None,
                 rng: Optional[np.random.Generator] = None) -> None:
        self.parameters: TemporalMemoryParameters = check_parameters(
            parameters if parameters is not None else TemporalMemoryParameters()
        )
        p = self.parameters
        self.num_columns: int = p.num_columns
        self.cells_per_column: int = p.cells_per_column
        self.num_cells: int = p.num_cells
        self.rng: np.random.Generator = rng if rng is not None else np.random.default_rng(p.seed)

        self.connections = Connections(
            num_columns=p.num_columns,
            cells_per_column=p.cells_per_column,
            segments_per_cell=p.segments_per_cell,
            synapses_per_segment=p.synapses_per_segment,
            rng=self.rng,
        )

        self.active_cells: np.ndarray = np.zeros(self.num_cells, dtype=bool)
        self.winner_cells: np.ndarray = np.zeros(self.num_cells, dtype=bool)
        self.prev_active_cells: np.ndarray = np.zeros(self.num_cells, dtype=bool)
        self.prev_winner_cells: np.ndarray = np.zeros(self.num_cells, dtype=bool)
        self.prediction: np.ndarray = np.zeros(self.num_columns, dtype=bool)
        self.bursting_columns: np.ndarray = np.zeros(self.num_columns, dtype=bool)

        self.anomaly_score: float = 0.0
        self.accuracy: float = 0.0
        self.num_segments: int = 0
        self.num_synapses: int = 0
        self.iteration: int = 0

    def __repr__(self) -> str:
        return (f"TemporalMemory(num_columns={self.num_columns}, cells_per_column={self.cells_per_column}, "
                f"iteration={self.iteration})")

    def compute(self, active_columns: BitVector, learn: bool = True) -> None:
        """Run one timestep on a dense vector of ``num_columns`` active column bits.

        Raises ``ConfigurationError`` when the vector has the wrong length or
        holds non-binary values.
        """
        active = as_bitset(active_columns, self.num_columns, name="active_columns")

        self._update_metrics(active)

        self.prev_active_cells = self.active_cells
        self.prev_winner_cells = self.winner_cells
        self.active_cells = np.zeros(self.num_cells, dtype=bool)
        self.winner_cells = np.zeros(self.num_cells, dtype=bool)
        self.bursting_columns = np.zeros(self.num_columns, dtype=bool)

        self._activate_cells(active, learn)

        p = self.parameters
        self.connections.clear()
        self.connections.compute_activity(
            self.active_cells,
            p.connected_permanence,
            p.active_threshold,
            p.matching_threshold,
        )
        self.connections.cleanup()

        self.prediction = self.connections.compute_predicted_columns()
        self.num_segments, self.num_synapses = self.connections.compute_stats()
        logger.debug(
            "Step %d: %d active columns, %d bursting, anomaly %.3f, %d segments, %d synapses.",
            self.iteration, int(np.count_nonzero(active)), int(np.count_nonzero(self.bursting_columns)),
            self.anomaly_score, self.num_segments, self.num_synapses,
        )

        if learn:
            self.iteration += 1
            self.connections.start_new_iteration()

    def _update_metrics(self, active: np.ndarray) -> None:
        """Compare the incoming columns with the prediction made last step."""
        active_count = int(np.count_nonzero(active))
        predicted_count = int(np.count_nonzero(self.prediction))
        correct = int(np.count_nonzero(active & self.prediction))

        self.anomaly_score = (active_count - correct) / active_count if active_count else 0.0
        self.accuracy = correct / predicted_count if predicted_count else 0.0

    def _activate_cells(self, active: np.ndarray, learn: bool) -> None:
        for col in range(self.num_columns):
            if active[col]:
                if self.connections.active_segments_for_column(col) > 0:
                    self._activate_predicted_column(col, learn)
                else:
                    self._burst_column(col, learn)
            elif learn and self.connections.matching_segments_for_column(col) > 0:
                self._punish_predicted_column(col)

    def _activate_predicted_column(self, col: int, learn: bool) -> None:
        p = self.parameters
        for cell in self.connections.predicted_cells_for_column(col):
            self.active_cells[cell] = True
            self.winner_cells[cell] = True
            if not learn:
                continue
            for seg in self.connections.active_segments_for_cell(cell):
                self.connections.adapt_segment(
                    cell, seg, self.prev_active_cells,
                    p.permanence_increment, p.permanence_decrement,
                )
                self.connections.grow_synapses(
                    cell, seg, self.prev_winner_cells,
                    p.initial_permanence, p.max_new_synapses,
                )

    def _burst_column(self, col: int, learn: bool) -> None:
        p = self.parameters
        cells = self.connections.cells_for_column(col)
        self.bursting_columns[col] = True
        self.active_cells[cells[0]:cells[-1] + 1] = True

        if self.connections.matching_segments_for_column(col) > 0:
            winner, seg = self.connections.best_matching_segment(col)
            if learn:
                self.connections.adapt_segment(
                    winner, seg, self.prev_active_cells,
                    p.permanence_increment, p.permanence_decrement,
                )
                self.connections.grow_synapses(
                    winner, seg, self.prev_winner_cells,
                    p.initial_permanence, p.max_new_synapses,
                )
        else:
            winner = self.connections.least_used_cell(col)
            if learn:
                seg = self.connections.create_segment(winner)
                self.connections.grow_synapses(
                    winner, seg, self.prev_winner_cells,
                    p.initial_permanence, p.max_new_synapses,
                )

        self.winner_cells[winner] = True

    def _punish_predicted_column(self, col: int) -> None:
        for cell in self.connections.cells_for_column(col):
            for seg in self.connections.matching_segments_for_cell(cell):
                self.connections.punish_segment(
                    cell, seg, self.prev_active_cells, self.parameters.punish_decrement,
                )

    def reset(self) -> None:
        """Forget the current sequence context; learned synapses are kept."""
        self.active_cells = np.zeros(self.num_cells, dtype=bool)
        self.winner_cells = np.zeros(self.num_cells, dtype=bool)
        self.prev_active_cells = np.zeros(self.num_cells, dtype=bool)
        self.prev_winner_cells = np.zeros(self.num_cells, dtype=bool)
        self.prediction = np.zeros(self.num_columns, dtype=bool)
        self.bursting_columns = np.zeros(self.num_columns, dtype=bool)
        self.connections.clear()

    # ===== Outputs =====

    def get_active_cells(self) -> List[int]:
        """Return indices of currently active cells."""
        return sparsify(self.active_cells)

    def get_winner_cells(self) -> List[int]:
        return sparsify(self.winner_cells)

    def get_predictive_cells(self) -> List[int]:
        """Return indices of cells with an active segment (predicted for next step)."""
        return [idx for idx, cell in enumerate(self.connections.cells) if cell.active_segments > 0]

    def get_prediction(self) -> np.ndarray:
        return self.prediction.copy()

    def get_bursting_columns(self) -> List[int]:
        return sparsify(self.bursting_columns)

    def get_anomaly_score(self) -> float:
        return self.anomaly_score

    def get_accuracy(self) -> float:
        return self.accuracy

    def get_stats(self) -> Tuple[int, int]:
        """Return ``(num_segments, num_synapses)`` as of the last compute."""
        return self.num_segments, self.num_synapses

    def print_stats(self) -> None:
        """Print statistics (with stddev) of the segments and synapses in the store."""
        def describe(values: List[float]) -> Tuple[int, float, float, float, float]:
            if not values:
                return 0, 0.0, 0.0, 0.0, 0.0
            count = len(values)
            std_val = pstdev(values) if count > 1 else 0.0
            return count, fmean(values), std_val, min(values), max(values)

        def format_metric(
            label: str,
            stats: Tuple[int, float, float, float, float],
            precision: str = ".2f",
        ) -> str:
            _, mean_val, std_val, min_val, max_val = stats
            return (
                f"| {label:<22}| {format(mean_val, precision):>8} ± {format(std_val, precision):<8}"
                f"| {format(min_val, precision):>8} | {format(max_val, precision):>8} |"
            )

        cells = self.connections.cells
        segments_per_cell = [len(cell.segments) for cell in cells]
        all_segments = [seg for cell in cells for seg in cell.segments]
        synapses_per_segment = [len(seg.synapses) for seg in all_segments]
        permanences = [syn.permanence for seg in all_segments for syn in seg.synapses]
        threshold = self.parameters.connected_permanence - EPSILON
        connected = sum(1 for perm in permanences if perm >= threshold)
        connected_ratio = connected / len(permanences) if permanences else 0.0

        print("TemporalMemory statistics:")
        print(f"  Columns: {self.num_columns} | Cells: {self.num_cells} | "
              f"Segments: {len(all_segments)} | Synapses: {len(permanences)}")
        for line in (
            "+------------------------+--------------------+----------+----------+",
            "| Metric                 |   Mean ± Std      |      Min |      Max |",
            "+------------------------+--------------------+----------+----------+",
            format_metric("Segments per cell", describe(segments_per_cell)),
            format_metric("Synapses per segment", describe(synapses_per_segment)),
            format_metric("Permanence", describe(permanences), precision=".3f"),
            "+------------------------+--------------------+----------+----------+",
        ):
            print(f"  {line}")
        print(f"  Connected synapses: {connected} ({connected_ratio:.1%})")
        print(f"  Anomaly score: {self.anomaly_score:.3f} | Accuracy: {self.accuracy:.3f}")
