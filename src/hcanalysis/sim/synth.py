from __future__ import annotations
import numpy as np
from typing import List

from ..geometry.ids import SensorId
from ..geometry.locator import GridCaloLocator
from ..physics.events import SimulatedEvent
from ..physics.hits import RawHit


def _calo_hits(
    sid: SensorId,
    energy_MeV: float,
    t0_ns: float,
    block: np.ndarray,
    n_steps: int,
    rng: np.random.Generator,
) -> List[RawHit]:
    """Split one block deposit into n_steps step hits scattered inside the block."""
    shares = rng.dirichlet(np.ones(n_steps)) * energy_MeV
    hits = []
    for k in range(n_steps):
        p0 = block + rng.uniform(-50.0, 50.0, size=3)
        hits.append(RawHit(
            sensor_id=sid,
            energy_deposit=float(shares[k]),
            time_start=t0_ns + float(rng.uniform(0.0, 0.5)),
            position_start=p0,
            position_stop=p0 + rng.uniform(-5.0, 5.0, size=3),
        ))
    return hits


def _track_hits(
    module: int,
    side: int,
    rows: tuple[int, int],
    n_layers: int,
    z_end_mm: float,
    rng: np.random.Generator,
    repeat_prob: float = 0.0,
) -> List[RawHit]:
    """
    Straight track crossing layers 0..n_layers-1, ending near z_end_mm.

    With probability repeat_prob a cell is re-triggered by a later step.
    """
    hits = []
    row = int(rng.choice(rows))
    for layer in range(n_layers):
        z = z_end_mm * (layer + 1) / max(n_layers, 1)
        p = np.array([44.0 * layer, 0.0, z])
        sid = SensorId.geiger(module, side, layer, row)
        t = 0.1 * layer
        hits.append(RawHit(sid, 1e-3, t, p, p + np.array([1.0, 0.0, 0.0])))
        if rng.random() < repeat_prob:
            hits.append(RawHit(sid, 1e-3, t + 1.0, p, p + np.array([2.0, 0.0, 0.0])))
    return hits


def synth_zone_events(
    n_events: int,
    *,
    module: int = 0,
    side: int = 1,
    half_zone: int = 2,
    total_layers: int = 9,
    locator: GridCaloLocator | None = None,
    p_two_calos: float = 0.3,
    p_full_track: float = 0.6,
    energy_range_MeV: tuple[float, float] = (0.02, 1.5),
    repeat_prob: float = 0.1,
    rng: np.random.Generator | None = None,
) -> list[SimulatedEvent]:
    """
    Generate toy events in one half-commissioning zone.

    Each event has one or two calorimeter blocks in column half_zone, and
    either a full track (all layers, ending at the z of the first block's
    row) or a partial one. Energies below a typical threshold are produced
    on purpose so threshold handling is exercised.
    """
    rng = rng or np.random.default_rng()
    locator = locator or GridCaloLocator()
    g0 = half_zone * 6 - 3
    rows = (g0 + 2, g0 + 3)
    events: list[SimulatedEvent] = []

    for i in range(n_events):
        n_calo = 2 if rng.random() < p_two_calos else 1
        calo_rows = rng.choice(locator.n_rows, size=n_calo, replace=False)
        calo: List[RawHit] = []
        for r in calo_rows:
            sid = SensorId.calo(module, side, half_zone, int(r))
            block = locator.block_position(side, half_zone, int(r))
            e = float(rng.uniform(*energy_range_MeV))
            calo += _calo_hits(sid, e, float(rng.uniform(1.0, 5.0)), block, int(rng.integers(1, 4)), rng)

        full = rng.random() < p_full_track
        n_layers = total_layers if full else int(rng.integers(0, total_layers))
        z_end = locator.row_z(side, int(calo_rows[0]))
        gg = _track_hits(module, side, rows, n_layers, z_end, rng, repeat_prob=repeat_prob)

        step_hits = {"calo": calo}
        if gg:
            step_hits["gg"] = gg
        events.append(SimulatedEvent(
            step_hits=step_hits,
            vertex=np.array([0.0, locator.column_y(side, half_zone), 0.0]) + rng.normal(0.0, 10.0, size=3),
            meta={"event_id": i},
        ))
    return events
