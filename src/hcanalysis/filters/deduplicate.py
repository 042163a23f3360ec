# src/hcanalysis/filters/deduplicate.py
from __future__ import annotations
from typing import Dict, List, Sequence

from hcanalysis.geometry.ids import SensorId
from hcanalysis.physics.hits import RawHit


def _first_trigger_index(hits: Sequence[RawHit]) -> Dict[SensorId, int]:
    # earliest time_start per cell; strict '<' keeps the first-seen hit on ties
    best: Dict[SensorId, int] = {}
    for i, h in enumerate(hits):
        j = best.get(h.sensor_id)
        if j is None or h.time_start < hits[j].time_start:
            best[h.sensor_id] = i
    return best


def flag_repeated_triggers(hits: Sequence[RawHit]) -> List[bool]:
    """
    Per input index, True when the drift cell was already triggered earlier
    in the event (a later time_start on the same cell, or an equal time on a
    hit that comes later in the input).
    """
    keep = set(_first_trigger_index(hits).values())
    return [i not in keep for i in range(len(hits))]


def deduplicate_geiger_hits(hits: Sequence[RawHit]) -> List[RawHit]:
    """
    Keep only the first trigger of each drift cell, in input order.

    Later triggers are dropped entirely, they are never merged into the kept hit.
    """
    flags = flag_repeated_triggers(hits)
    return [h for h, already_hit in zip(hits, flags) if not already_hit]
