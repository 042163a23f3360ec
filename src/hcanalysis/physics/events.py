# src/hcanalysis/physics/events.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np

from .hits import RawHit


@dataclass(slots=True)
class SimulatedEvent:
    """
    One simulated event record.

    step_hits maps a bank label ("calo", "gg", ...) to its step hits; a bank
    that is absent means the event carries no hits of that kind.
    """
    step_hits: Dict[str, List[RawHit]] = field(default_factory=dict)
    vertex: np.ndarray = field(default_factory=lambda: np.zeros(3))
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.vertex = np.asarray(self.vertex, dtype=np.float64).reshape(3)

    def has_category(self, name: str) -> bool:
        return bool(self.step_hits.get(name))

    def hits_of(self, name: str) -> List[RawHit]:
        return list(self.step_hits.get(name, ()))

    @property
    def n_hits(self) -> int:
        return sum(len(h) for h in self.step_hits.values())
