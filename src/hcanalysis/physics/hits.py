# src/hcanalysis/physics/hits.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np

from hcanalysis.geometry.ids import SensorId


@dataclass(slots=True)
class RawHit:
    """
    One simulated step hit (energy deposit on a sensor during one step).

    energy_deposit: MeV
    time_start: ns
    position_start / position_stop: (3,) arrays [mm]
    extras: source-specific fields kept for diagnostics
    """
    sensor_id: SensorId
    energy_deposit: float
    time_start: float
    position_start: np.ndarray
    position_stop: np.ndarray
    extras: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.position_start = np.asarray(self.position_start, dtype=np.float64).reshape(3)
        self.position_stop = np.asarray(self.position_stop, dtype=np.float64).reshape(3)
        if self.energy_deposit < 0:
            raise ValueError(f"Negative energy deposit {self.energy_deposit} on {self.sensor_id}")


@dataclass(slots=True)
class CaloHitSummary:
    """Per-block aggregate of all calorimeter step hits of one event."""
    sensor_id: SensorId
    energy: float
    time: float
    left_most_position: np.ndarray
    track_associated: bool = False

    @property
    def energy_keV(self) -> float:
        return self.energy * 1000.0

    @property
    def column(self) -> int:
        return self.sensor_id.field("column")

    @property
    def row(self) -> int:
        return self.sensor_id.field("row")
