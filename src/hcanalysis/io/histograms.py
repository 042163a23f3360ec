# src/hcanalysis/io/histograms.py
"""
Fixed-binning histograms declared from one table: name -> (kind, bins, range).

Samples outside the range go to underflow/overflow counters, matching the
usual ROOT TH1/TH2 convention (lower edge inclusive, upper edge exclusive).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

import h5py
import numpy as np

from hcanalysis.config.schemas import DetectorCfg, HistogramCfg
from hcanalysis.errors import ConfigurationError


def _bin_index(edges: np.ndarray, value: float) -> int:
    """-1 for underflow, len(edges)-1 for overflow (and NaN)."""
    if np.isnan(value) or value >= edges[-1]:
        return len(edges) - 1
    if value < edges[0]:
        return -1
    return int(np.searchsorted(edges, value, side="right")) - 1


@dataclass
class Histogram1D:
    name: str
    edges: np.ndarray
    title: str = ""
    counts: np.ndarray = field(init=False)
    underflow: int = 0
    overflow: int = 0

    def __post_init__(self):
        self.counts = np.zeros(len(self.edges) - 1, dtype=np.int64)

    def fill(self, value: float) -> None:
        i = _bin_index(self.edges, float(value))
        if i < 0:
            self.underflow += 1
        elif i >= len(self.counts):
            self.overflow += 1
        else:
            self.counts[i] += 1

    @property
    def entries(self) -> int:
        return int(self.counts.sum()) + self.underflow + self.overflow


@dataclass
class Histogram2D:
    name: str
    x_edges: np.ndarray
    y_edges: np.ndarray
    title: str = ""
    counts: np.ndarray = field(init=False)
    outside: int = 0

    def __post_init__(self):
        self.counts = np.zeros((len(self.x_edges) - 1, len(self.y_edges) - 1), dtype=np.int64)

    def fill(self, x: float, y: float) -> None:
        i = _bin_index(self.x_edges, float(x))
        j = _bin_index(self.y_edges, float(y))
        if 0 <= i < self.counts.shape[0] and 0 <= j < self.counts.shape[1]:
            self.counts[i, j] += 1
        else:
            self.outside += 1

    @property
    def entries(self) -> int:
        return int(self.counts.sum()) + self.outside


Histogram = Histogram1D | Histogram2D


class HistogramBook:
    """Named histogram collection; fill() on an undeclared name raises KeyError."""

    def __init__(self, table: Mapping[str, HistogramCfg]):
        self.histograms: Dict[str, Histogram] = {}
        for name, spec in table.items():
            self.histograms[name] = self._make(name, spec)

    @staticmethod
    def _make(name: str, spec: HistogramCfg) -> Histogram:
        edges = [np.linspace(lo, hi, n + 1) for n, (lo, hi) in zip(spec.bins, spec.range)]
        if spec.kind == "1d":
            return Histogram1D(name=name, edges=edges[0], title=spec.title)
        if spec.kind == "2d":
            return Histogram2D(name=name, x_edges=edges[0], y_edges=edges[1], title=spec.title)
        raise ConfigurationError(f"Unknown histogram kind {spec.kind!r} for {name!r}")

    def __contains__(self, name: str) -> bool:
        return name in self.histograms

    def __getitem__(self, name: str) -> Histogram:
        return self.histograms[name]

    def fill(self, name: str, value: float) -> None:
        h = self.histograms[name]
        if not isinstance(h, Histogram1D):
            raise TypeError(f"{name} is a 2-D histogram; use fill2d")
        h.fill(value)

    def fill2d(self, name: str, x: float, y: float) -> None:
        h = self.histograms[name]
        if not isinstance(h, Histogram2D):
            raise TypeError(f"{name} is a 1-D histogram; use fill")
        h.fill(x, y)

    def write(self, f: h5py.File, group: str = "histograms") -> None:
        """
        Store every histogram under /<group>/<name>:
          counts dataset + edge datasets, under/overflow and title as attrs.
        """
        grp = f.require_group(group)
        for name, h in self.histograms.items():
            if name in grp:
                del grp[name]
            g = grp.create_group(name)
            g.attrs["title"] = h.title
            g.attrs["entries"] = h.entries
            g.create_dataset("counts", data=h.counts, compression="gzip")
            if isinstance(h, Histogram1D):
                g.attrs["kind"] = "1d"
                g.attrs["underflow"] = h.underflow
                g.attrs["overflow"] = h.overflow
                g.create_dataset("edges", data=h.edges)
            else:
                g.attrs["kind"] = "2d"
                g.attrs["outside"] = h.outside
                g.create_dataset("x_edges", data=h.x_edges)
                g.create_dataset("y_edges", data=h.y_edges)


def read_histogram(path: str, name: str, group: str = "histograms") -> Tuple[np.ndarray, ...]:
    """Return (counts, edges) for 1-D or (counts, x_edges, y_edges) for 2-D."""
    with h5py.File(str(path), "r") as f:
        grp = f[group]
        if name not in grp:
            raise KeyError(f"{name} not found in /{group} of {path}")
        g = grp[name]
        counts = np.array(g["counts"])
        if g.attrs["kind"] == "1d":
            return counts, np.array(g["edges"])
        return counts, np.array(g["x_edges"]), np.array(g["y_edges"])


def _h1(bins: int, lo: float, hi: float, title: str) -> HistogramCfg:
    return HistogramCfg(kind="1d", bins=[bins], range=[[lo, hi]], title=title)


def _h2(nx: int, xlo: float, xhi: float, ny: int, ylo: float, yhi: float, title: str) -> HistogramCfg:
    return HistogramCfg(kind="2d", bins=[nx, ny], range=[[xlo, xhi], [ylo, yhi]], title=title)


def default_histogram_table(det: DetectorCfg) -> Dict[str, HistogramCfg]:
    """
    Histogram battery of the sort-and-analysis run for one half zone.

    Energies in keV, times in ns, calorimeter maps are (column,row), tracker
    maps are (row,layer) over the rows of the zone.
    """
    z = det.half_zone
    g0 = det.geiger_first_row
    ncol, nrow = det.calo_columns, det.calo_rows
    calo_map = (ncol, 0, ncol, nrow + 1, 0, nrow + 1)
    geiger_map = (7, g0, g0 + 7, det.total_layers + 1, 0, det.total_layers + 1)

    t: Dict[str, HistogramCfg] = {
        "calo_number": _h1(nrow, 0, nrow, f"Number of calorimeters touched, zone {z}"),
        "geiger_number": _h1(54, 0, 54, f"Number of Geiger cells touched, zone {z}"),
        "calo_total_energy": _h1(300, 0, 3000, f"Calo total energy spectrum, zone {z}"),
        "calo_event_total_energy": _h1(300, 0, 3000, f"Summed calo energy per event, zone {z}"),
        "calo_total_time": _h1(150, 0, 15, f"Time start for a calo, zone {z}"),
        "calo_total_distribution": _h2(*calo_map, f"Calo total distribution, zone {z}"),
        "geiger_total_distribution": _h2(*geiger_map, f"Geiger total distribution, zone {z}"),
        "calo_distribution_full_track": _h2(*calo_map, f"Calo full track distribution, zone {z}"),
        # one calo
        "one_calo_energy": _h1(150, 0, 1500, f"One calo energy, zone {z}"),
        "one_calo_distribution": _h2(*calo_map, f"One calo distribution, zone {z}"),
        "one_calo_no_track_energy": _h1(150, 0, 1500, f"One calo no track energy, zone {z}"),
        "one_calo_no_track_distribution": _h2(*calo_map, f"One calo no track, zone {z}"),
        "one_calo_one_track_energy": _h1(150, 0, 1500, f"One calo one track energy, zone {z}"),
        "one_calo_one_track_distribution": _h2(*calo_map, f"One calo one track, zone {z}"),
        "one_calo_one_track_geiger_distribution": _h2(
            *geiger_map, f"One calo one track geiger distribution, zone {z}"
        ),
        # two calos
        "two_calo_energy_min": _h1(150, 0, 1500, f"Two calos energy min spectrum, zone {z}"),
        "two_calo_energy_max": _h1(150, 0, 1500, f"Two calos energy max spectrum, zone {z}"),
        "two_calo_total_energy": _h1(300, 0, 3000, f"Two calos total energy spectrum, zone {z}"),
        "two_calo_delta_time": _h1(100, 0, 15, f"Delta time (ns) between 2 calos, zone {z}"),
        "two_calo_distribution": _h2(*calo_map, f"Two calos distribution, zone {z}"),
        "two_calo_geiger_distribution": _h2(*geiger_map, f"Two calos geiger distribution, zone {z}"),
        "two_calo_no_track_energy_min": _h1(150, 0, 1500, f"Two calos no track energy min, zone {z}"),
        "two_calo_no_track_energy_max": _h1(150, 0, 1500, f"Two calos no track energy max, zone {z}"),
        "two_calo_no_track_total_energy": _h1(300, 0, 3000, f"Two calos no track total energy, zone {z}"),
        "two_calo_no_track_delta_time": _h1(100, 0, 15, f"Delta time (ns) 2 calos no track, zone {z}"),
        "two_calo_no_track_distribution": _h2(*calo_map, f"Two calos no track distribution, zone {z}"),
        "two_calo_one_track_energy_min": _h1(150, 0, 1500, f"Two calos one track energy min, zone {z}"),
        "two_calo_one_track_energy_max": _h1(150, 0, 1500, f"Two calos one track energy max, zone {z}"),
        "two_calo_one_track_total_energy": _h1(300, 0, 3000, f"Two calos one track total energy, zone {z}"),
        "two_calo_one_track_electron_energy": _h1(150, 0, 1500, f"Two calos one track electron energy, zone {z}"),
        "two_calo_one_track_gamma_energy": _h1(150, 0, 1500, f"Two calos one track gamma energy, zone {z}"),
        "two_calo_one_track_delta_time": _h1(100, 0, 15, f"Delta time (ns) 2 calos one track, zone {z}"),
        "two_calo_one_track_angle": _h1(
            90, 0, 90, f"Angle (degrees) between the vertex and the calorimeters hit, zone {z}"
        ),
        "two_calo_one_track_calo_interaction_distribution": _h2(
            10, -50, 150, 90, -1500, 1500, f"Two calos one track calo interaction (x,z), zone {z}"
        ),
        "two_calo_one_track_distribution": _h2(*calo_map, f"Two calos one track distribution, zone {z}"),
        "two_calo_one_track_geiger_distribution": _h2(
            *geiger_map, f"Two calos one track geiger distribution, zone {z}"
        ),
    }
    for c in range(ncol):
        t[f"calo_column_{c}_energy"] = _h1(150, 0, 1500, f"Calo energy, column {c}")
    return t


def build_histogram_table(
    det: DetectorCfg,
    overrides: Mapping[str, HistogramCfg] | None = None,
) -> Dict[str, HistogramCfg]:
    """
    Default table updated with [histograms.<name>] overrides.

    An override of a built-in histogram must keep its kind, since the sink
    fills built-ins as 1-D or 2-D by name.
    """
    table = default_histogram_table(det)
    for name, spec in (overrides or {}).items():
        builtin = table.get(name)
        if builtin is not None and builtin.kind != spec.kind:
            raise ConfigurationError(
                f"Histogram {name!r} is {builtin.kind}; an override cannot make it {spec.kind}"
            )
        table[name] = spec
    return table
