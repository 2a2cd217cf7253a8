"""Configuration for the temporal memory and its connectivity store."""

import logging
import numbers
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Raised when parameters or inputs do not fit the configured region."""


@dataclass
class TemporalMemoryParameters:

    num_columns: int = 2048
    """
    * Number of columns in the input space, i.e. the length of the active
    * column vector handed to ``TemporalMemory.compute``.
    """
    cells_per_column: int = 32
    segments_per_cell: int = 16
    """
    * Upper bound on distal segments per cell. Creating a segment on a full
    * cell evicts the least recently used one.
    """
    synapses_per_segment: int = 16
    """
    * Upper bound on synapses per segment. Creating a synapse on a full
    * segment evicts the one with the lowest permanence.
    """
    initial_permanence: float = 0.21
    connected_permanence: float = 0.5
    permanence_increment: float = 0.05
    permanence_decrement: float = 0.03
    punish_decrement: float = 0.01
    """
    * Decrement applied to synapses of segments that predicted a column
    * which then stayed inactive.
    """
    max_new_synapses: int = 20
    active_threshold: int = 12
    """
    * Number of connected synapses to active cells needed for a segment to
    * become active.
    """
    matching_threshold: int = 10
    """
    * Number of potential (unconnected) synapses to active cells needed for
    * a segment to become matching. Must be below active_threshold.
    """
    seed: Optional[int] = None

    @property
    def num_cells(self) -> int:
        return self.num_columns * self.cells_per_column

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "TemporalMemoryParameters":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown temporal memory parameters: {', '.join(unknown)}.")
        return check_parameters(cls(**dict(values)))


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


def check_parameters(parameters: TemporalMemoryParameters) -> TemporalMemoryParameters:
    """Validate ``parameters`` and return them unchanged."""
    args = parameters

    for name in ("num_columns", "cells_per_column", "segments_per_cell", "synapses_per_segment"):
        value = getattr(args, name)
        _require(isinstance(value, numbers.Integral) and not isinstance(value, bool) and value > 0,
                 f"'{name}' must be a positive integer, got {value!r}.")

    for name in ("initial_permanence", "connected_permanence"):
        value = getattr(args, name)
        _require(0.0 <= value <= 1.0, f"'{name}' must be within [0, 1], got {value!r}.")

    for name in ("permanence_increment", "permanence_decrement", "punish_decrement"):
        value = getattr(args, name)
        _require(value >= 0.0, f"'{name}' must not be negative, got {value!r}.")

    _require(args.max_new_synapses >= 0,
             f"'max_new_synapses' must not be negative, got {args.max_new_synapses!r}.")
    _require(args.active_threshold >= 1,
             f"'active_threshold' must be at least 1, got {args.active_threshold!r}.")
    _require(args.matching_threshold >= 0,
             f"'matching_threshold' must not be negative, got {args.matching_threshold!r}.")
    _require(
        args.matching_threshold < args.active_threshold,
        "'matching_threshold' must be strictly below 'active_threshold' "
        f"({args.matching_threshold} >= {args.active_threshold}).",
    )

    if args.active_threshold > args.synapses_per_segment:
        logger.warning(
            "active_threshold %d exceeds synapses_per_segment %d; no segment can become active.",
            args.active_threshold,
            args.synapses_per_segment,
        )

    return args
