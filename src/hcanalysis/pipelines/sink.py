# src/hcanalysis/pipelines/sink.py
from __future__ import annotations
from collections import Counter
from pathlib import Path
from typing import Dict, Mapping, Optional

from hcanalysis.io.event_store import EventSubsetWriter
from hcanalysis.io.histograms import HistogramBook
from hcanalysis.physics.classify import EventClassification
from hcanalysis.physics.events import SimulatedEvent

SUBSET_MATCH_RULES = "match_rules"
SUBSET_WITH_GEIGER = "match_rules_with_geiger"
SUBSET_FULL_TRACK = "full_track"
SUBSET_TWO_CALOS_ONE_TRACK = "two_calos_one_full_track"

SUBSETS = (SUBSET_MATCH_RULES, SUBSET_WITH_GEIGER, SUBSET_FULL_TRACK, SUBSET_TWO_CALOS_ONE_TRACK)


def make_subset_writers(output_dir: str | Path, stem: str) -> Dict[str, EventSubsetWriter]:
    """One writer per subset: <output_dir>/sorted/<stem>_<subset>.h5"""
    base = Path(output_dir) / "sorted"
    return {name: EventSubsetWriter(name, base / f"{stem}_{name}.h5") for name in SUBSETS}


class StatisticsSink:
    """
    Accumulates classifications into the histogram book and forwards events
    unchanged to the output subsets their topology selects.
    """

    def __init__(
        self,
        book: HistogramBook,
        writers: Optional[Mapping[str, EventSubsetWriter]] = None,
        diagnostics_level: int = 1,
    ):
        self.book = book
        self.writers = dict(writers or {})
        self.diagnostics_level = diagnostics_level
        self.counters: Counter[str] = Counter()

    def _route(self, subset: str, event: SimulatedEvent) -> None:
        self.counters[f"subset:{subset}"] += 1
        w = self.writers.get(subset)
        if w is not None:
            w.write(event)

    def record(self, c: EventClassification, event: SimulatedEvent) -> None:
        self.counters["events"] += 1
        if not c.region_matched:
            return
        self.counters["region_matched"] += 1
        self.counters[f"topology:{c.topology}"] += 1

        self._route(SUBSET_MATCH_RULES, event)
        if c.geiger_hits:
            self._route(SUBSET_WITH_GEIGER, event)

        book = self.book
        book.fill("calo_number", c.n_calo)
        book.fill("geiger_number", c.n_geiger)

        total_energy = 0.0
        for s in c.calo_summaries.values():
            book.fill("calo_total_energy", s.energy_keV)
            book.fill("calo_total_time", s.time)
            book.fill2d("calo_total_distribution", s.column, s.row)
            per_column = f"calo_column_{s.column}_energy"
            if per_column in book:
                book.fill(per_column, s.energy_keV)
            total_energy += s.energy
        if c.n_calo > 0:
            book.fill("calo_event_total_energy", total_energy * 1000.0)

        for sid in sorted(c.geiger_hits):
            book.fill2d("geiger_total_distribution", sid.field("row"), sid.field("layer"))

        if c.n_calo == 0:
            return

        if c.full_track:
            self.counters["full_track"] += 1
            for s in c.calo_summaries.values():
                book.fill2d("calo_distribution_full_track", s.column, s.row)
            self._route(SUBSET_FULL_TRACK, event)

        if c.n_calo == 1:
            self._record_one_calo(c)
        elif c.n_calo == 2:
            self._record_two_calos(c, event)

    def _fill_calo_map(self, name: str, c: EventClassification) -> None:
        for s in c.calo_summaries.values():
            self.book.fill2d(name, s.column, s.row)

    def _fill_geiger_map(self, name: str, c: EventClassification) -> None:
        for sid in sorted(c.geiger_hits):
            self.book.fill2d(name, sid.field("row"), sid.field("layer"))

    def _record_one_calo(self, c: EventClassification) -> None:
        book = self.book
        calo = next(iter(c.calo_summaries.values()))
        book.fill("one_calo_energy", calo.energy_keV)
        self._fill_calo_map("one_calo_distribution", c)

        if c.n_layers == 0:
            book.fill("one_calo_no_track_energy", calo.energy_keV)
            self._fill_calo_map("one_calo_no_track_distribution", c)

        if c.full_track:
            if c.track_calo_association.get(calo.sensor_id, False):
                self.counters["one_calo_one_track"] += 1
                book.fill("one_calo_one_track_energy", calo.energy_keV)
                self._fill_calo_map("one_calo_one_track_distribution", c)
                self._fill_geiger_map("one_calo_one_track_geiger_distribution", c)
            elif self.diagnostics_level >= 2:
                print(f"[sink] full track without calorimeter association: {calo.sensor_id}")

    def _record_two_calos(self, c: EventClassification, event: SimulatedEvent) -> None:
        book = self.book
        calo_1, calo_2 = c.calo_summaries.values()
        delta_t = abs(calo_1.time - calo_2.time)
        e_min = min(calo_1.energy, calo_2.energy) * 1000.0
        e_max = max(calo_1.energy, calo_2.energy) * 1000.0
        e_tot = e_min + e_max

        book.fill("two_calo_energy_min", e_min)
        book.fill("two_calo_energy_max", e_max)
        book.fill("two_calo_total_energy", e_tot)
        book.fill("two_calo_delta_time", delta_t)
        self._fill_calo_map("two_calo_distribution", c)
        self._fill_geiger_map("two_calo_geiger_distribution", c)

        if c.n_layers == 0:
            book.fill("two_calo_no_track_energy_min", e_min)
            book.fill("two_calo_no_track_energy_max", e_max)
            book.fill("two_calo_no_track_total_energy", e_tot)
            book.fill("two_calo_no_track_delta_time", delta_t)
            self._fill_calo_map("two_calo_no_track_distribution", c)

        if not c.full_track:
            return
        self._route(SUBSET_TWO_CALOS_ONE_TRACK, event)
        if not c.any_association:
            return

        self.counters["two_calos_one_track"] += 1
        book.fill("two_calo_one_track_energy_min", e_min)
        book.fill("two_calo_one_track_energy_max", e_max)
        book.fill("two_calo_one_track_total_energy", e_tot)
        book.fill("two_calo_one_track_delta_time", delta_t)

        for s in (calo_1, calo_2):
            if c.track_calo_association.get(s.sensor_id, False):
                book.fill("two_calo_one_track_electron_energy", s.energy_keV)
                book.fill2d(
                    "two_calo_one_track_calo_interaction_distribution",
                    s.left_most_position[0],
                    s.left_most_position[2],
                )
            else:
                book.fill("two_calo_one_track_gamma_energy", s.energy_keV)

        self._fill_calo_map("two_calo_one_track_distribution", c)
        self._fill_geiger_map("two_calo_one_track_geiger_distribution", c)
        for angle in c.vertex_angles_deg.values():
            book.fill("two_calo_one_track_angle", angle)

    def close(self) -> Dict[str, Path]:
        """Flush every subset writer; returns subset name -> written path."""
        return {name: w.close() for name, w in self.writers.items()}
