# src/hcanalysis/geometry/locator.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol

import numpy as np


class CaloLocator(Protocol):
    """Narrow geometry query interface used by the classifier (positions in mm)."""

    def row_z(self, side: int, row: int) -> float:
        ...

    def block_position(self, side: int, column: int, row: int) -> np.ndarray:
        ...


@dataclass
class GridCaloLocator:
    """
    Regular-grid calorimeter wall.

    Blocks sit on the plane x = -wall_x_mm (side 0) or x = +wall_x_mm (side 1),
    columns along y and rows along z, both centred on the module origin.
    """
    n_columns: int = 20
    n_rows: int = 13
    column_pitch_mm: float = 259.0
    row_pitch_mm: float = 259.0
    wall_x_mm: float = 435.0

    def __post_init__(self):
        if self.n_columns <= 0 or self.n_rows <= 0:
            raise ValueError("Calorimeter wall needs at least one column and one row")
        if self.row_pitch_mm <= 0 or self.column_pitch_mm <= 0:
            raise ValueError("Block pitches must be positive")

    def _check(self, side: int, column: int | None, row: int) -> None:
        if side not in (0, 1):
            raise ValueError(f"side must be 0 or 1, got {side}")
        if not 0 <= row < self.n_rows:
            raise ValueError(f"row {row} outside [0, {self.n_rows})")
        if column is not None and not 0 <= column < self.n_columns:
            raise ValueError(f"column {column} outside [0, {self.n_columns})")

    def row_z(self, side: int, row: int) -> float:
        self._check(side, None, row)
        return float((row - 0.5 * (self.n_rows - 1)) * self.row_pitch_mm)

    def column_y(self, side: int, column: int) -> float:
        if not 0 <= column < self.n_columns:
            raise ValueError(f"column {column} outside [0, {self.n_columns})")
        return float((column - 0.5 * (self.n_columns - 1)) * self.column_pitch_mm)

    def block_position(self, side: int, column: int, row: int) -> np.ndarray:
        self._check(side, column, row)
        x = self.wall_x_mm if side == 1 else -self.wall_x_mm
        return np.array([x, self.column_y(side, column), self.row_z(side, row)], dtype=np.float64)

