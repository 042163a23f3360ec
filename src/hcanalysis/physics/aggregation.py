# src/hcanalysis/physics/aggregation.py
from __future__ import annotations
from typing import Dict, Iterable

import numpy as np

from hcanalysis.geometry.ids import SensorId
from hcanalysis.geometry.selector import Selector
from .hits import CaloHitSummary, RawHit


def fold_calo_hits(hits: Iterable[RawHit], selector: Selector) -> Dict[SensorId, CaloHitSummary]:
    """
    Fold selected step hits into one summary per block, in input order.

    energy is summed, time is the earliest time_start and left_most_position
    is the position_start with the smallest X (first one wins on equal X).
    """
    out: Dict[SensorId, CaloHitSummary] = {}
    for h in hits:
        sid = h.sensor_id
        if not selector.match(sid):
            continue
        s = out.get(sid)
        if s is None:
            out[sid] = CaloHitSummary(
                sensor_id=sid,
                energy=float(h.energy_deposit),
                time=float(h.time_start),
                left_most_position=np.array(h.position_start, dtype=np.float64),
            )
            continue
        s.energy += float(h.energy_deposit)
        if h.time_start < s.time:
            s.time = float(h.time_start)
        if h.position_start[0] < s.left_most_position[0]:
            s.left_most_position = np.array(h.position_start, dtype=np.float64)
    return out


def apply_energy_threshold(
    summaries: Dict[SensorId, CaloHitSummary],
    threshold_keV: float,
) -> Dict[SensorId, CaloHitSummary]:
    """Keep summaries with energy*1000 >= threshold_keV, ordered by sensor id."""
    return {
        sid: summaries[sid]
        for sid in sorted(summaries)
        if summaries[sid].energy * 1000.0 >= threshold_keV
    }


def aggregate_calo_hits(
    hits: Iterable[RawHit],
    selector: Selector,
    threshold_keV: float,
) -> Dict[SensorId, CaloHitSummary]:
    return apply_energy_threshold(fold_calo_hits(hits, selector), threshold_keV)
