# src/hcanalysis/io/event_store.py
from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Sequence, Tuple

import h5py
import numpy as np

from hcanalysis.geometry.ids import CATEGORY_FIELDS, SensorId
from hcanalysis.physics.events import SimulatedEvent
from hcanalysis.physics.hits import RawHit

FORMAT_VERSION = "1.0"
SOFTWARE = "hc-analysis 0.1.0"
_MAX_ID_FIELDS = max(len(f) for f in CATEGORY_FIELDS.values())


def _flatten_bank(events: Sequence[SimulatedEvent], bank: str) -> Tuple[np.ndarray, Dict[str, np.ndarray]]:
    """
    CSR-style flattening of one step-hit bank.

    Returns event_ptr (N+1,) and per-hit columns:
      category (str), ids (M,5) int32 padded with -1, energy_deposit, time_start,
      position_start (M,3), position_stop (M,3).
    """
    n_events = len(events)
    ptr = np.zeros(n_events + 1, dtype=np.int64)
    for i, ev in enumerate(events):
        ptr[i + 1] = ptr[i] + len(ev.step_hits.get(bank, ()))

    M = int(ptr[-1])
    category = np.empty(M, dtype=object)
    ids = np.full((M, _MAX_ID_FIELDS), -1, dtype=np.int32)
    edep = np.empty(M, dtype=np.float64)
    t0 = np.empty(M, dtype=np.float64)
    p0 = np.empty((M, 3), dtype=np.float64)
    p1 = np.empty((M, 3), dtype=np.float64)

    w = 0
    for ev in events:
        for h in ev.step_hits.get(bank, ()):
            sid = h.sensor_id
            category[w] = sid.category
            ids[w, : len(sid.values)] = sid.values
            edep[w] = h.energy_deposit
            t0[w] = h.time_start
            p0[w] = h.position_start
            p1[w] = h.position_stop
            w += 1

    cols = {
        "category": category,
        "ids": ids,
        "energy_deposit": edep,
        "time_start": t0,
        "position_start": p0,
        "position_stop": p1,
    }
    return ptr, cols


def write_events(path: str | Path, events: Sequence[SimulatedEvent]) -> None:
    """
    Write events to an HDF5 container:

    /events/vertex            (N,3) float64
    /events/event_id          (N,)  int64   (-1 if missing in meta)
    /hits/<bank>/event_ptr    (N+1,) int64  CSR pointers into the hit columns
    /hits/<bank>/category     (M,)  str
    /hits/<bank>/ids          (M,5) int32
    /hits/<bank>/...          energy_deposit, time_start, position_start, position_stop
    """
    banks = sorted({b for ev in events for b in ev.step_hits})
    with h5py.File(str(path), "w") as f:
        f.attrs["format_version"] = FORMAT_VERSION
        f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
        f.attrs["software"] = SOFTWARE
        f.attrs["banks"] = np.array(banks, dtype=h5py.string_dtype())

        g_ev = f.require_group("events")
        vertex = np.zeros((len(events), 3), dtype=np.float64)
        event_id = np.full(len(events), -1, dtype=np.int64)
        for i, ev in enumerate(events):
            vertex[i] = ev.vertex
            if "event_id" in ev.meta:
                event_id[i] = int(ev.meta["event_id"])
        g_ev.create_dataset("vertex", data=vertex)
        g_ev.create_dataset("event_id", data=event_id)

        g_hits = f.require_group("hits")
        for bank in banks:
            ptr, cols = _flatten_bank(events, bank)
            g = g_hits.require_group(bank)
            g.create_dataset("event_ptr", data=ptr, dtype="i8")
            g.create_dataset("category", data=cols["category"], dtype=h5py.string_dtype())
            compression = "gzip" if ptr[-1] > 0 else None
            for key in ("ids", "energy_deposit", "time_start", "position_start", "position_stop"):
                g.create_dataset(key, data=cols[key], compression=compression)


def _as_str(x) -> str:
    return x.decode() if isinstance(x, bytes) else str(x)


def read_events(path: str | Path) -> Iterator[SimulatedEvent]:
    """Iterate over events of a container written by write_events()."""
    with h5py.File(str(path), "r") as f:
        vertex = np.array(f["events/vertex"], dtype=np.float64)
        event_id = np.array(f["events/event_id"], dtype=np.int64)
        banks: Dict[str, Dict[str, np.ndarray]] = {}
        for bank in f.get("hits", {}):
            g = f["hits"][bank]
            banks[bank] = {k: np.array(g[k]) for k in g.keys()}

    for i in range(len(vertex)):
        step_hits: Dict[str, List[RawHit]] = {}
        for bank, cols in banks.items():
            lo, hi = int(cols["event_ptr"][i]), int(cols["event_ptr"][i + 1])
            if hi == lo:
                continue
            hits = []
            for k in range(lo, hi):
                cat = _as_str(cols["category"][k])
                if cat not in CATEGORY_FIELDS:
                    continue
                n = len(CATEGORY_FIELDS[cat])
                hits.append(RawHit(
                    sensor_id=SensorId(cat, tuple(int(v) for v in cols["ids"][k, :n])),
                    energy_deposit=float(cols["energy_deposit"][k]),
                    time_start=float(cols["time_start"][k]),
                    position_start=cols["position_start"][k],
                    position_stop=cols["position_stop"][k],
                ))
            if hits:
                step_hits[bank] = hits
        meta = {"event_id": int(event_id[i])} if event_id[i] >= 0 else {}
        yield SimulatedEvent(step_hits=step_hits, vertex=vertex[i], meta=meta)


class EventSubsetWriter:
    """
    One output subset (one HDF5 file per subset name).

    Events are buffered unchanged and written once by close().
    """

    def __init__(self, name: str, path: str | Path):
        self.name = name
        self.path = Path(path)
        self._events: List[SimulatedEvent] = []
        self._closed = False

    def write(self, event: SimulatedEvent) -> None:
        if self._closed:
            raise RuntimeError(f"Subset writer {self.name!r} is closed")
        self._events.append(event)

    def __len__(self) -> int:
        return len(self._events)

    def close(self) -> Path:
        if not self._closed:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_events(self.path, self._events)
            self._closed = True
        return self.path
