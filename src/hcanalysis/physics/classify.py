# src/hcanalysis/physics/classify.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Literal

import numpy as np

from hcanalysis.filters.deduplicate import deduplicate_geiger_hits
from hcanalysis.geometry.ids import SensorId
from hcanalysis.geometry.locator import CaloLocator
from hcanalysis.geometry.selector import Selector
from .aggregation import aggregate_calo_hits
from .events import SimulatedEvent
from .hits import CaloHitSummary

CALO_BANK = "calo"
GEIGER_BANK = "gg"

Topology = Literal["none", "geiger_only", "one_calo", "two_calos", "multi_calo"]


@dataclass
class EventClassification:
    """
    Per-event outcome of the classifier.

    calo_summaries only holds blocks above threshold, ordered by sensor id.
    track_calo_association and vertex_angles_deg are keyed like calo_summaries.
    """
    region_matched: bool = False
    calo_summaries: Dict[SensorId, CaloHitSummary] = field(default_factory=dict)
    geiger_hits: FrozenSet[SensorId] = frozenset()
    layers_hit: FrozenSet[int] = frozenset()
    full_track: bool = False
    track_calo_association: Dict[SensorId, bool] = field(default_factory=dict)
    last_layer_positions: List[np.ndarray] = field(default_factory=list)
    vertex_angles_deg: Dict[SensorId, float] = field(default_factory=dict)

    @property
    def n_calo(self) -> int:
        return len(self.calo_summaries)

    @property
    def n_geiger(self) -> int:
        return len(self.geiger_hits)

    @property
    def n_layers(self) -> int:
        return len(self.layers_hit)

    @property
    def any_association(self) -> bool:
        return any(self.track_calo_association.values())

    @property
    def topology(self) -> Topology:
        if self.n_calo == 0:
            return "geiger_only" if self.geiger_hits else "none"
        if self.n_calo == 1:
            return "one_calo"
        if self.n_calo == 2:
            return "two_calos"
        return "multi_calo"


def vector_angle(a: np.ndarray, b: np.ndarray) -> float:
    """Angle [rad] between two 3-vectors; 0 when either has zero length."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom <= 0:
        return 0.0
    return float(np.arccos(np.clip(np.dot(a, b) / denom, -1.0, 1.0)))


def is_track_associated(
    row_z: float,
    last_layer_positions: List[np.ndarray],
    half_window: float,
) -> bool:
    """True iff some last-layer stop position has |z - row_z| < half_window."""
    for pos in last_layer_positions:
        z = float(pos[2])
        if z - half_window < row_z < z + half_window:
            return True
    return False


def classify_event(
    event: SimulatedEvent,
    calo_selector: Selector,
    geiger_selector: Selector,
    locator: CaloLocator,
    *,
    threshold_keV: float,
    last_layer_index: int,
    total_layers: int,
    association_half_window: float,
) -> EventClassification:
    """
    Classify one event.

    1. drop repeated drift-cell triggers,
    2. select drift cells (recording stop positions on the last layer),
    3. aggregate selected calorimeter hits above threshold,
    4-5. derive region match and full-track flags,
    6. associate tracks with blocks for one- and two-block topologies,
    7. compute vertex/block angles for associated two-block events.
    """
    # 1-2
    geiger_hits = set()
    layers = set()
    last_layer_positions: List[np.ndarray] = []
    for h in deduplicate_geiger_hits(event.hits_of(GEIGER_BANK)):
        sid = h.sensor_id
        if not geiger_selector.match(sid):
            continue
        geiger_hits.add(sid)
        layer = sid.field("layer")
        layers.add(layer)
        if layer == last_layer_index:
            last_layer_positions.append(np.array(h.position_stop, dtype=np.float64))

    # 3
    summaries = aggregate_calo_hits(event.hits_of(CALO_BANK), calo_selector, threshold_keV)

    out = EventClassification(
        region_matched=bool(summaries) or bool(geiger_hits),
        calo_summaries=summaries,
        geiger_hits=frozenset(geiger_hits),
        layers_hit=frozenset(layers),
        full_track=len(layers) == total_layers,
        track_calo_association={sid: False for sid in summaries},
        last_layer_positions=last_layer_positions,
    )

    # 6
    if out.full_track and out.n_calo in (1, 2):
        for sid, s in summaries.items():
            zc = locator.row_z(sid.side, sid.row)
            s.track_associated = is_track_associated(zc, last_layer_positions, association_half_window)
            out.track_calo_association[sid] = s.track_associated

    # 7
    if out.n_calo == 2 and out.any_association:
        for sid, s in summaries.items():
            block = locator.block_position(sid.side, s.column, s.row)
            out.vertex_angles_deg[sid] = float(np.degrees(vector_angle(event.vertex, block)))

    return out
