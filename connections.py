"""Cellular connectivity store for the temporal memory.

Cells, segments and synapses live in one flat arena: the store owns a list
of cells indexed by flat cell index, each cell owns its segments and each
segment owns its synapses. Everything outside the store refers to a cell by
its flat index and to a segment by ``(cell, segment_index)``.

Segment indices shift when a segment is destroyed (by eviction or cleanup),
so callers must not hold them across calls that create or remove segments.
"""

import logging
import numbers
from typing import (
    List,
    Optional,
    Tuple,
)

import numpy as np

from parameters import ConfigurationError

logger = logging.getLogger(__name__)

# Constants
EPSILON = 0.00001  # Tolerance when comparing permanences against thresholds
MIN_PERMANENCE = 0.001  # Synapses below this permanence are destroyed on cleanup


def clamp_permanence(permanence: float) -> float:
    return min(1.0, max(0.0, permanence))


# ===== Basic Building Blocks =====

class Synapse:
    """Weighted link from a segment to its presynaptic cell."""

    def __init__(self, presynaptic_cell: int, permanence: float) -> None:
        self.presynaptic_cell: int = presynaptic_cell
        self.permanence: float = clamp_permanence(permanence)

    def __repr__(self) -> str:
        return f"Synapse(presynaptic_cell={self.presynaptic_cell}, permanence={self.permanence:.3f})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Synapse):
            return NotImplemented
        return (self.presynaptic_cell == other.presynaptic_cell
                and abs(self.permanence - other.permanence) <= EPSILON)


class Segment:
    """Distal segment composed of synapses to presynaptic cells.

    ``live`` counts connected synapses to active cells, ``dead`` counts
    unconnected ones. Both, along with ``active`` and ``matching``, describe
    the most recent ``Connections.compute_activity`` call.
    """

    def __init__(self, owner_cell: int, last_iteration: int = 0) -> None:
        self.owner_cell: int = owner_cell
        self.synapses: List[Synapse] = []
        self.live: int = 0
        self.dead: int = 0
        self.active: bool = False
        self.matching: bool = False
        self.last_iteration: int = last_iteration

    def __repr__(self) -> str:
        return (f"Segment(owner_cell={self.owner_cell}, synapses={len(self.synapses)}, "
                f"active={self.active}, matching={self.matching})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Segment):
            return NotImplemented
        return (self.owner_cell == other.owner_cell
                and self.last_iteration == other.last_iteration
                and self.synapses == other.synapses)

    def presynaptic_cells(self) -> set:
        return {syn.presynaptic_cell for syn in self.synapses}

    def find_synapse(self, presynaptic_cell: int) -> Optional[int]:
        """Return the index of the synapse onto ``presynaptic_cell``, if any."""
        for idx, syn in enumerate(self.synapses):
            if syn.presynaptic_cell == presynaptic_cell:
                return idx
        return None

    def reset_activity(self) -> None:
        self.live = 0
        self.dead = 0
        self.active = False
        self.matching = False


class Cell:
    """Single cell holding its distal segments and activity counters."""

    def __init__(self) -> None:
        self.segments: List[Segment] = []
        self.active_segments: int = 0
        self.matching_segments: int = 0

    def __repr__(self) -> str:
        return (f"Cell(segments={len(self.segments)}, active_segments={self.active_segments}, "
                f"matching_segments={self.matching_segments})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Cell):
            return NotImplemented
        return self.segments == other.segments

    def reset_activity(self) -> None:
        self.active_segments = 0
        self.matching_segments = 0
        for segment in self.segments:
            segment.reset_activity()


# ===== Connectivity Store =====

class Connections:
    """Owns the cell -> segment -> synapse graph of a temporal memory region.

    Cells are allocated once, ``num_columns * cells_per_column`` of them, and
    cell ``i`` belongs to column ``i // cells_per_column``. Segments and
    synapses are created during learning and removed by eviction, explicit
    destruction or ``cleanup``.

    Indices handed to the store are trusted; out of range values trip an
    assertion.
    """

    def __init__(self,
                 num_columns: int,
                 cells_per_column: int,
                 segments_per_cell: int = 16,
                 synapses_per_segment: int = 16,
                 rng: Optional[np.random.Generator] = None) -> None:
        for name, value in (("num_columns", num_columns),
                            ("cells_per_column", cells_per_column),
                            ("segments_per_cell", segments_per_cell),
                            ("synapses_per_segment", synapses_per_segment)):
            if not isinstance(value, numbers.Integral) or isinstance(value, bool) or value < 1:
                raise ConfigurationError(f"'{name}' must be a positive integer, got {value!r}.")

        self.num_columns: int = int(num_columns)
        self.cells_per_column: int = int(cells_per_column)
        self.segments_per_cell: int = int(segments_per_cell)
        self.synapses_per_segment: int = int(synapses_per_segment)
        self.rng: np.random.Generator = rng if rng is not None else np.random.default_rng()
        self.iteration: int = 0
        self.cells: List[Cell] = [Cell() for _ in range(self.num_cells)]

    def __repr__(self) -> str:
        return (f"Connections(num_columns={self.num_columns}, cells_per_column={self.cells_per_column}, "
                f"segments_per_cell={self.segments_per_cell}, "
                f"synapses_per_segment={self.synapses_per_segment})")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Connections):
            return NotImplemented
        return (self.num_columns == other.num_columns
                and self.cells_per_column == other.cells_per_column
                and self.segments_per_cell == other.segments_per_cell
                and self.synapses_per_segment == other.synapses_per_segment
                and self.iteration == other.iteration
                and self.cells == other.cells)

    @property
    def num_cells(self) -> int:
        return self.num_columns * self.cells_per_column

    # ----- index helpers -----

    def _check_cell(self, cell: int) -> None:
        assert 0 <= cell < self.num_cells, f"Cell index {cell} out of bounds for {self.num_cells} cells."

    def _check_column(self, col: int) -> None:
        assert 0 <= col < self.num_columns, f"Column index {col} out of bounds for {self.num_columns} columns."

    def _get_segment(self, cell: int, segment: int) -> Segment:
        self._check_cell(cell)
        segments = self.cells[cell].segments
        assert 0 <= segment < len(segments), \
            f"Segment index {segment} out of bounds for cell {cell} with {len(segments)} segments."
        return segments[segment]

    def _check_cell_vector(self, vector: np.ndarray) -> None:
        assert len(vector) == self.num_cells, \
            f"Cell vector has length {len(vector)}, expected {self.num_cells}."

    def column_for_cell(self, cell: int) -> int:
        self._check_cell(cell)
        return cell // self.cells_per_column

    def cells_for_column(self, col: int) -> List[int]:
        """Return the contiguous flat cell indices of column ``col``."""
        self._check_column(col)
        start = col * self.cells_per_column
        return list(range(start, start + self.cells_per_column))

    def segments_for_cell(self, cell: int) -> List[Segment]:
        self._check_cell(cell)
        return self.cells[cell].segments

    def synapses_for_segment(self, cell: int, segment: int) -> List[Synapse]:
        return self._get_segment(cell, segment).synapses

    # ----- topology mutation -----

    def create_segment(self, cell: int) -> int:
        """Append an empty segment to ``cell`` and return its index.

        A full cell first loses its least recently used segment.
        """
        self._check_cell(cell)
        segments = self.cells[cell].segments
        while len(segments) >= self.segments_per_cell:
            oldest = min(range(len(segments)), key=lambda idx: segments[idx].last_iteration)
            logger.debug("Evicting segment %d (last used %d) from full cell %d.",
                         oldest, segments[oldest].last_iteration, cell)
            self.destroy_segment(cell, oldest)

        segments.append(Segment(cell, last_iteration=self.iteration))
        return len(segments) - 1

    def destroy_segment(self, cell: int, segment: int) -> None:
        seg = self._get_segment(cell, segment)
        owner = self.cells[cell]
        if seg.active:
            owner.active_segments -= 1
        if seg.matching:
            owner.matching_segments -= 1
        del owner.segments[segment]

    def create_synapse(self, cell: int, segment: int, target: int, permanence: float) -> None:
        """Synapse ``segment`` onto ``target``; no-op if already synapsed there.

        A full segment first loses its weakest synapse (first one found on ties).
        """
        seg = self._get_segment(cell, segment)
        self._check_cell(target)
        if seg.find_synapse(target) is not None:
            return

        if len(seg.synapses) >= self.synapses_per_segment:
            weakest = 0
            for idx, syn in enumerate(seg.synapses):
                if syn.permanence < seg.synapses[weakest].permanence:
                    weakest = idx
            logger.debug("Evicting synapse to cell %d (permanence %.3f) from full segment (%d, %d).",
                         seg.synapses[weakest].presynaptic_cell, seg.synapses[weakest].permanence,
                         cell, segment)
            del seg.synapses[weakest]

        seg.synapses.append(Synapse(target, permanence))
        seg.last_iteration = self.iteration

    def destroy_synapse(self, cell: int, segment: int, synapse: int) -> None:
        seg = self._get_segment(cell, segment)
        assert 0 <= synapse < len(seg.synapses), \
            f"Synapse index {synapse} out of bounds for segment ({cell}, {segment})."
        del seg.synapses[synapse]

    # ----- learning -----

    def adapt_segment(self,
                      cell: int,
                      segment: int,
                      prev_active_cells: np.ndarray,
                      increment: float,
                      decrement: float) -> None:
        """Reinforce synapses to previously active cells, weaken all others."""
        seg = self._get_segment(cell, segment)
        self._check_cell_vector(prev_active_cells)
        for syn in seg.synapses:
            if prev_active_cells[syn.presynaptic_cell]:
                syn.permanence = clamp_permanence(syn.permanence + increment)
            else:
                syn.permanence = clamp_permanence(syn.permanence - decrement)
        seg.last_iteration = self.iteration

    def punish_segment(self,
                       cell: int,
                       segment: int,
                       prev_active_cells: np.ndarray,
                       decrement: float) -> None:
        """Weaken only the synapses to previously active cells."""
        seg = self._get_segment(cell, segment)
        self._check_cell_vector(prev_active_cells)
        for syn in seg.synapses:
            if prev_active_cells[syn.presynaptic_cell]:
                syn.permanence = clamp_permanence(syn.permanence - decrement)
        seg.last_iteration = self.iteration

    def grow_synapses(self,
                      cell: int,
                      segment: int,
                      prev_winner_cells: np.ndarray,
                      permanence: float,
                      max_new: int) -> None:
        """Grow up to ``max_new`` synapses toward previous winner cells.

        Winners already synapsed on the segment are skipped. When there are more
        candidates than ``max_new`` a uniform random sample is taken.
        """
        seg = self._get_segment(cell, segment)
        self._check_cell_vector(prev_winner_cells)
        if max_new <= 0:
            return

        existing = seg.presynaptic_cells()
        candidates = np.array(
            [idx for idx in np.flatnonzero(prev_winner_cells) if idx not in existing],
            dtype=np.int64,
        )
        if candidates.size == 0:
            return

        if candidates.size <= max_new:
            chosen = self.rng.permutation(candidates)
        else:
            chosen = self.rng.choice(candidates, size=max_new, replace=False)

        for target in chosen:
            self.create_synapse(cell, segment, int(target), permanence)

    # ----- activity -----

    def compute_activity(self,
                         active_cells: np.ndarray,
                         connected_threshold: float,
                         active_threshold: int,
                         match_threshold: int) -> None:
        """Count live/dead synapses of every segment against ``active_cells``.

        A segment is active with ``live >= active_threshold`` and matching with
        ``dead >= match_threshold``; every active segment is also matching.
        Counters accumulate on top of the current state, so call ``clear``
        first.
        """
        self._check_cell_vector(active_cells)
        active = set(np.flatnonzero(active_cells).tolist())
        threshold = connected_threshold - EPSILON

        for cell in self.cells:
            for seg in cell.segments:
                live = 0
                dead = 0
                for syn in seg.synapses:
                    if syn.presynaptic_cell in active:
                        if syn.permanence >= threshold:
                            live += 1
                        else:
                            dead += 1
                seg.live = live
                seg.dead = dead

                if live >= active_threshold:
                    seg.active = True
                    cell.active_segments += 1
                if seg.active or dead >= match_threshold:
                    seg.matching = True
                    cell.matching_segments += 1

    def clear(self) -> None:
        """Reset activity flags and counters; synapses are left untouched."""
        for cell in self.cells:
            cell.reset_activity()

    def cleanup(self) -> None:
        """Destroy near-zero synapses, then every segment left without synapses."""
        removed_synapses = 0
        removed_segments = 0
        for idx, cell in enumerate(self.cells):
            for seg in cell.segments:
                kept = [syn for syn in seg.synapses if syn.permanence >= MIN_PERMANENCE]
                removed_synapses += len(seg.synapses) - len(kept)
                seg.synapses = kept

            if any(not seg.synapses for seg in cell.segments):
                survivors = []
                for seg in cell.segments:
                    if seg.synapses:
                        survivors.append(seg)
                        continue
                    if seg.active:
                        cell.active_segments -= 1
                    if seg.matching:
                        cell.matching_segments -= 1
                    removed_segments += 1
                cell.segments = survivors

        if removed_synapses or removed_segments:
            logger.debug("Cleanup removed %d synapses and %d segments.", removed_synapses, removed_segments)

    def start_new_iteration(self) -> None:
        self.iteration += 1

    # ----- queries -----

    def active_segments_for_cell(self, cell: int) -> List[int]:
        self._check_cell(cell)
        return [idx for idx, seg in enumerate(self.cells[cell].segments) if seg.active]

    def matching_segments_for_cell(self, cell: int) -> List[int]:
        self._check_cell(cell)
        return [idx for idx, seg in enumerate(self.cells[cell].segments) if seg.matching]

    def active_segments_for_column(self, col: int) -> int:
        """Number of active segments over all cells of ``col``."""
        return sum(self.cells[cell].active_segments for cell in self.cells_for_column(col))

    def matching_segments_for_column(self, col: int) -> int:
        """Number of matching segments over all cells of ``col``."""
        return sum(self.cells[cell].matching_segments for cell in self.cells_for_column(col))

    def predicted_cells_for_column(self, col: int) -> List[int]:
        """Cells of ``col`` with at least one active segment."""
        return [cell for cell in self.cells_for_column(col) if self.cells[cell].active_segments > 0]

    def least_used_cell(self, col: int) -> int:
        """Return a random cell among those of ``col`` with the fewest segments."""
        cells = self.cells_for_column(col)
        assert cells, f"Column {col} has no cells."
        fewest = min(len(self.cells[cell].segments) for cell in cells)
        candidates = [cell for cell in cells if len(self.cells[cell].segments) == fewest]
        return int(candidates[self.rng.integers(len(candidates))])

    def best_matching_segment(self, col: int) -> Tuple[int, int]:
        """Return ``(cell, segment)`` of the column segment with the highest live count.

        Every segment in the column competes. Ties are broken uniformly at random.
        """
        pool = [(cell, idx, seg)
                for cell in self.cells_for_column(col)
                for idx, seg in enumerate(self.cells[cell].segments)]
        assert pool, f"Column {col} has no segments to choose from."

        best_live = max(seg.live for _, _, seg in pool)
        candidates = [(cell, idx) for cell, idx, seg in pool if seg.live == best_live]
        cell, idx = candidates[self.rng.integers(len(candidates))]
        return cell, idx

    def compute_predicted_columns(self) -> np.ndarray:
        """Bool vector over columns; True where any cell has an active segment."""
        counts = np.fromiter((cell.active_segments for cell in self.cells), dtype=np.int64, count=self.num_cells)
        return counts.reshape(self.num_columns, self.cells_per_column).sum(axis=1) > 0

    def compute_stats(self) -> Tuple[int, int]:
        """Return ``(num_segments, num_synapses)`` by full traversal."""
        num_segments = 0
        num_synapses = 0
        for cell in self.cells:
            num_segments += len(cell.segments)
            for seg in cell.segments:
                num_synapses += len(seg.synapses)
        return num_segments, num_synapses

    def num_segments(self, cell: Optional[int] = None) -> int:
        if cell is None:
            return self.compute_stats()[0]
        self._check_cell(cell)
        return len(self.cells[cell].segments)

    def num_synapses(self, cell: Optional[int] = None, segment: Optional[int] = None) -> int:
        if cell is None:
            return self.compute_stats()[1]
        if segment is None:
            self._check_cell(cell)
            return sum(len(seg.synapses) for seg in self.cells[cell].segments)
        return len(self._get_segment(cell, segment).synapses)
