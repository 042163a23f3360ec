"""
hcanalysis.io.adapters

Readers that turn simulated-data files into physics-layer events
(hcanalysis.physics.events.SimulatedEvent with RawHit step hits grouped by
bank label "calo" / "gg").

Design goals
------------
- Keep I/O concerns isolated from the classifier.
- Units on ingest: energies MeV, times ns, positions mm.
- Stream events one by one; the pipeline decides how many to read.

Entry points
------------
- class HDF5Adapter: containers written by hcanalysis.io.event_store.
- class TableAdapter: flat step-hit tables (CSV/Parquet), one row per hit.
- class ROOTAdapter: ROOT trees with jagged per-bank branches.
- function make_adapter(cfg): factory from the [io.adapter] TOML section.

Config (example)
----------------
[io.adapter]
type = "table"            # "hdf5" | "table" | "root"
tree = "SD"               # ROOT-only
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

import numpy as np
import pandas as pd

# Optional imports (guarded)
try:
    import uproot  # type: ignore
except Exception:  # pragma: no cover
    uproot = None  # type: ignore

from hcanalysis.errors import ConfigurationError
from hcanalysis.geometry.ids import BANK_CATEGORY, CATEGORY_FIELDS, SensorId
from hcanalysis.io.event_store import read_events
from hcanalysis.physics.events import SimulatedEvent
from hcanalysis.physics.hits import RawHit

# Generic id columns; for drift cells `column` carries the layer.
_ID_COLUMNS = ("module", "side", "column", "row", "part")
_POS_START = ("x_start", "y_start", "z_start")
_POS_STOP = ("x_stop", "y_stop", "z_stop")


def _sensor_id(category: str, raw: Mapping[str, Any]) -> SensorId:
    n = len(CATEGORY_FIELDS[category])
    return SensorId(category, tuple(int(raw[k]) for k in _ID_COLUMNS[:n]))


# ---------------------------------------------------------------------------
# Base adapter API
# ---------------------------------------------------------------------------

class BaseAdapter:
    """
    Abstract adapter interface.

    Yields SimulatedEvent objects in file order.
    """

    def iter_events(self, path: str) -> Iterator[SimulatedEvent]:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# HDF5 adapter
# ---------------------------------------------------------------------------

class HDF5Adapter(BaseAdapter):
    """Read the ragged HDF5 layout (also used for the output subsets)."""

    def iter_events(self, path: str) -> Iterator[SimulatedEvent]:
        for i, ev in enumerate(read_events(path)):
            ev.meta.setdefault("event_id", i)
            ev.meta["source"] = str(path)
            yield ev


# ---------------------------------------------------------------------------
# Table adapter
# ---------------------------------------------------------------------------

class TableAdapter(BaseAdapter):
    """
    Flat step-hit table, one row per hit.

    Required columns: event, bank, module, side, column, row, energy_deposit,
    time_start, x_start, y_start, z_start, x_stop, y_stop, z_stop.
    Optional: category (defaults from bank), part (default 0),
    vertex_x/vertex_y/vertex_z (default origin).
    """

    _REQUIRED = ("event", "bank", "module", "side", "column", "row",
                 "energy_deposit", "time_start") + _POS_START + _POS_STOP

    def __init__(self, unit_pos_is_cm: bool = False):
        self.pos_scale = 10.0 if unit_pos_is_cm else 1.0

    def _read_table(self, path: str) -> pd.DataFrame:
        p = Path(path)
        suffix = p.suffix.lower()
        if suffix == ".csv":
            df = pd.read_csv(p)
        elif suffix in {".parquet", ".pq"}:
            df = pd.read_parquet(p)
        else:
            raise ValueError(f"Unrecognized TableAdapter input: {p.name} (expected .csv/.parquet)")
        missing = [c for c in self._REQUIRED if c not in df.columns]
        if missing:
            raise ValueError(f"{p.name}: missing columns {missing}")
        if "part" not in df.columns:
            df["part"] = 0
        if "category" not in df.columns:
            df["category"] = df["bank"].map(BANK_CATEGORY)
        return df

    def iter_events(self, path: str) -> Iterator[SimulatedEvent]:
        df = self._read_table(path)
        for event_id, grp in df.groupby("event", sort=False):
            step_hits: Dict[str, List[RawHit]] = {}
            for r in grp.itertuples(index=False):
                row = r._asdict()
                bank, category = row["bank"], row["category"]
                # banks other than calo/gg (e.g. xcalo, gveto) are not analysed
                if bank not in BANK_CATEGORY or category not in CATEGORY_FIELDS:
                    continue
                hit = RawHit(
                    sensor_id=_sensor_id(category, row),
                    energy_deposit=float(row["energy_deposit"]),
                    time_start=float(row["time_start"]),
                    position_start=self.pos_scale * np.array([row[k] for k in _POS_START], dtype=float),
                    position_stop=self.pos_scale * np.array([row[k] for k in _POS_STOP], dtype=float),
                )
                step_hits.setdefault(bank, []).append(hit)
            first = grp.iloc[0]
            vertex = np.array([first.get(k, 0.0) for k in ("vertex_x", "vertex_y", "vertex_z")], dtype=float)
            yield SimulatedEvent(
                step_hits=step_hits,
                vertex=self.pos_scale * vertex,
                meta={"event_id": int(event_id), "source": str(path)},
            )


# ---------------------------------------------------------------------------
# ROOT adapter
# ---------------------------------------------------------------------------

class ROOTAdapter(BaseAdapter):
    """
    ROOT tree with one entry per event and jagged branches per bank:

      <bank>_module, <bank>_side, <bank>_column, <bank>_row, [<bank>_part],
      <bank>_energy_deposit, <bank>_time_start,
      <bank>_x_start ... <bank>_z_stop,
      vertex_x, vertex_y, vertex_z

    Banks are "calo" and "gg"; for "gg" the column branch carries the layer.
    """

    def __init__(self, tree: str = "SD", banks: Optional[List[str]] = None):
        if uproot is None:  # pragma: no cover
            raise RuntimeError("uproot is required for ROOTAdapter but is not installed.")
        self.tree_key = tree
        self.banks = [b for b in (banks or BANK_CATEGORY) if b in BANK_CATEGORY]

    def _bank_branches(self, bank: str) -> List[str]:
        n = len(CATEGORY_FIELDS[BANK_CATEGORY[bank]])
        cols = list(_ID_COLUMNS[:n]) + ["energy_deposit", "time_start"] + list(_POS_START + _POS_STOP)
        return [f"{bank}_{c}" for c in cols]

    def iter_events(self, path: str) -> Iterator[SimulatedEvent]:
        with uproot.open(path) as f:
            try:
                tree = f[self.tree_key]
            except Exception:
                first_key = next(iter(f.keys()))
                tree = f[first_key]

            available = set(tree.keys())
            banks = [b for b in self.banks if all(br in available for br in self._bank_branches(b))]
            if not banks:
                missing = {b: [br for br in self._bank_branches(b) if br not in available] for b in self.banks}
                raise ValueError(f"{path}: tree {tree.name!r} has no complete bank, missing branches {missing}")
            wanted = [br for b in banks for br in self._bank_branches(b)]
            wanted += [k for k in ("vertex_x", "vertex_y", "vertex_z") if k in available]

            offset = 0
            for arrays in tree.iterate(wanted, library="np", step_size="100 MB"):
                n = len(next(iter(arrays.values()))) if arrays else 0
                for i in range(n):
                    step_hits: Dict[str, List[RawHit]] = {}
                    for bank in banks:
                        category = BANK_CATEGORY[bank]
                        col = {c: np.asarray(arrays[f"{bank}_{c}"][i])
                               for c in self._bank_branches_short(bank)}
                        hits = []
                        for k in range(len(col["energy_deposit"])):
                            hits.append(RawHit(
                                sensor_id=_sensor_id(category, {c: v[k] for c, v in col.items()}),
                                energy_deposit=float(col["energy_deposit"][k]),
                                time_start=float(col["time_start"][k]),
                                position_start=np.array([col[c][k] for c in _POS_START], dtype=float),
                                position_stop=np.array([col[c][k] for c in _POS_STOP], dtype=float),
                            ))
                        if hits:
                            step_hits[bank] = hits
                    vertex = np.array(
                        [float(arrays[k][i]) if k in arrays else 0.0 for k in ("vertex_x", "vertex_y", "vertex_z")]
                    )
                    yield SimulatedEvent(
                        step_hits=step_hits,
                        vertex=vertex,
                        meta={"event_id": offset + i, "source": str(path)},
                    )
                offset += n

    def _bank_branches_short(self, bank: str) -> List[str]:
        return [b[len(bank) + 1:] for b in self._bank_branches(bank)]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def make_adapter(cfg: Dict) -> BaseAdapter:
    """
    Create an adapter from a config dict (from TOML/CLI).

    Expected keys under [io.adapter]:
      type: "hdf5" | "table" | "root"
      unit_pos_is_cm: bool           (table-only)
      tree: str                      (ROOT-only)
    """
    typ = (cfg.get("type") or "hdf5").lower()

    if typ == "hdf5":
        return HDF5Adapter()

    if typ == "table":
        return TableAdapter(unit_pos_is_cm=bool(cfg.get("unit_pos_is_cm", False)))

    if typ == "root":
        return ROOTAdapter(tree=cfg.get("tree", "SD"), banks=cfg.get("banks"))

    raise ConfigurationError(f"Unknown adapter type: {typ}")
