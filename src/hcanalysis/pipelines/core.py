from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

import h5py
import typer
from tqdm import tqdm

from hcanalysis.config.load import load_config, snapshot_config_toml
from hcanalysis.config.schemas import Config
from hcanalysis.errors import ConfigurationError, HCAnalysisError, InputError
from hcanalysis.geometry.locator import GridCaloLocator
from hcanalysis.geometry.selector import Selector, zone_selectors
from hcanalysis.io.adapters import BaseAdapter, make_adapter
from hcanalysis.io.event_store import SOFTWARE
from hcanalysis.io.histograms import HistogramBook, build_histogram_table
from hcanalysis.physics.classify import classify_event
from hcanalysis.physics.events import SimulatedEvent
from hcanalysis.pipelines.sink import StatisticsSink, make_subset_writers


def build_selectors(cfg: Config) -> Tuple[Selector, Selector]:
    """
    (calorimeter, tracker) selectors: rule file > inline rule > zone default.

    Raises ConfigurationError for malformed rules.
    """
    sel = cfg.selection
    default_calo, default_geiger = zone_selectors(cfg.detector)

    def _one(rule_file: str, rule: str, default: Selector, name: str) -> Selector:
        if rule_file:
            return Selector.from_file(rule_file, name=name)
        if rule:
            return Selector.from_rules(rule, name=name)
        return default

    calo = _one(sel.calo_rule_file, sel.calo_rule, default_calo, "calo selector")
    geiger = _one(sel.geiger_rule_file, sel.geiger_rule, default_geiger, "geiger selector")
    return calo, geiger


def build_locator(cfg: Config) -> GridCaloLocator:
    det = cfg.detector
    try:
        return GridCaloLocator(
            n_columns=det.calo_columns,
            n_rows=det.calo_rows,
            column_pitch_mm=det.locator.column_pitch_mm,
            row_pitch_mm=det.locator.row_pitch_mm,
            wall_x_mm=det.locator.wall_x_mm,
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid calorimeter geometry: {exc}") from exc


def _check_inputs(paths: List[str]) -> List[Path]:
    if not paths:
        raise InputError("No input file(s) !")
    out = [Path(p) for p in paths]
    missing = [str(p) for p in out if not p.exists()]
    if missing:
        raise InputError(f"Input file(s) not found: {missing}")
    return out


def _iter_source_events(adapter: BaseAdapter, inputs: Iterable[Path], max_events: int) -> Iterator[SimulatedEvent]:
    """
    Sequential event source over all inputs, at most max_events per file.
    """
    for file_ix, path in enumerate(inputs):
        n = 0
        for ev in adapter.iter_events(str(path)):
            if n >= max_events:
                break
            ev.meta["file_index"] = file_ix
            yield ev
            n += 1


def _output_stem(inputs: List[Path]) -> str:
    return inputs[0].stem if len(inputs) == 1 else "hc_analysis"


def run_pipeline(
    cfg_path: Optional[str] = None,
    *,
    inputs: Optional[List[str]] = None,
    output_path: Optional[str] = None,
    max_events: Optional[int] = None,
    calo_threshold_keV: Optional[float] = None,
    calo_rule_file: Optional[str] = None,
    geiger_rule_file: Optional[str] = None,
    debug: bool = False,
) -> Path:
    """
    Run selection, classification and histogramming over all inputs.

    CLI options override the corresponding TOML fields when not None.

    Returns
    -------
    Path to the written histogram HDF5 file.
    """
    cfg = load_config(cfg_path) if cfg_path else Config()

    # ---- apply CLI overrides on top of TOML ----
    if inputs:
        cfg.io.input_paths = list(inputs)
    if output_path is not None:
        cfg.io.output_path = output_path
    if max_events is not None:
        if max_events <= 0:
            raise ConfigurationError("max_events must be positive")
        cfg.run.max_events = max_events
    if calo_threshold_keV is not None:
        cfg.detector.calo_threshold_keV = calo_threshold_keV
    if calo_rule_file is not None:
        cfg.selection.calo_rule_file = calo_rule_file
    if geiger_rule_file is not None:
        cfg.selection.geiger_rule_file = geiger_rule_file
    if debug:
        cfg.run.diagnostics_level = 2

    diag_level = cfg.run.diagnostics_level
    det = cfg.detector

    input_files = _check_inputs(cfg.io.input_paths)
    calo_selector, geiger_selector = build_selectors(cfg)
    locator = build_locator(cfg)
    adapter = make_adapter(cfg.io.adapter)
    book = HistogramBook(build_histogram_table(det, cfg.histograms))

    if diag_level >= 1:
        print(f"[run] config = {cfg_path or '<defaults>'}")
        print(f"[run] inputs = {[str(p) for p in input_files]}")
        print(f"[run] max_events/file={cfg.run.max_events} threshold={det.calo_threshold_keV} keV "
              f"zone={det.half_zone} layers={det.total_layers}")
    if diag_level >= 2:
        print(f"[selector] {calo_selector.describe()}")
        print(f"[selector] {geiger_selector.describe()}")
    for s in (calo_selector, geiger_selector):
        if not s.is_configured and diag_level >= 1:
            print(f"[selector] WARNING {s.name} has no rule; it will never match")

    out_dir = Path(cfg.io.output_path)
    analysis_dir = out_dir / "analysis"
    analysis_dir.mkdir(parents=True, exist_ok=True)
    stem = _output_stem(input_files)

    sink = StatisticsSink(book, make_subset_writers(out_dir, stem), diagnostics_level=diag_level)

    events = _iter_source_events(adapter, input_files, cfg.run.max_events)
    if cfg.run.progress:
        events = tqdm(events, desc="events", unit="ev")

    for j, ev in enumerate(events):
        c = classify_event(
            ev,
            calo_selector,
            geiger_selector,
            locator,
            threshold_keV=det.calo_threshold_keV,
            last_layer_index=det.last_layer_index,
            total_layers=det.total_layers,
            association_half_window=det.association_half_window_mm,
        )
        if diag_level >= 2:
            print(f"[events] #{j} topology={c.topology} calos={c.n_calo} cells={c.n_geiger} "
                  f"layers={c.n_layers} full_track={c.full_track}")
        sink.record(c, ev)

    hist_path = analysis_dir / f"{stem}.h5"
    with h5py.File(hist_path, "w") as f:
        f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
        f.attrs["software"] = SOFTWARE
        f.attrs["config_json"] = cfg.model_dump_json()
        if cfg_path:
            f.attrs["config_toml"] = snapshot_config_toml(cfg_path)
        for key, value in sorted(sink.counters.items()):
            f.attrs[f"counter.{key}"] = value
        book.write(f)

    subset_paths = sink.close()

    if diag_level >= 1:
        for key, value in sorted(sink.counters.items()):
            print(f"[sink] {key} = {value}")
        for name, p in subset_paths.items():
            print(f"[sink] subset {name}: {len(sink.writers[name])} events -> {p}")
        print(f"[run] histograms -> {hist_path}")

    if cfg.run.write_pngs:
        from hcanalysis.vis.hdf import save_histogram_pngs

        pngs = save_histogram_pngs(str(hist_path), out_dir=str(analysis_dir / "png"))
        if diag_level >= 1:
            print(f"[run] wrote {len(pngs)} PNGs")

    return hist_path


# ---------------------------------------------------------------------------
# Unified CLI entry point
# ---------------------------------------------------------------------------

app = typer.Typer(help="Half-commissioning sort and analysis of simulated data (hcanalysis.pipelines.core)")


@app.command()
def main(
    cfg_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to TOML config file",
    ),
    inputs: Optional[List[str]] = typer.Option(
        None, "--input", "-i", help="Input file (repeat for several); overrides [io].input_paths",
    ),
    output_path: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output directory; overrides [io].output_path",
    ),
    max_events: Optional[int] = typer.Option(
        None, "--number-events", "--max-events", "-n", help="Maximum number of events per input file",
    ),
    calo_threshold: Optional[float] = typer.Option(
        None, "--calo-threshold", help="Calorimeter threshold in keV",
    ),
    calo_mapping: Optional[str] = typer.Option(
        None, "--calo-mapping", "-C", help="Calorimeter selector rule file",
    ),
    tracker_mapping: Optional[str] = typer.Option(
        None, "--tracker-mapping", "-T", help="Tracker selector rule file",
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Verbose diagnostics"),
):
    """
    Sort simulated events of the commissioning zone and fill the analysis histograms.
    """
    try:
        out_path = run_pipeline(
            cfg_path,
            inputs=inputs,
            output_path=output_path,
            max_events=max_events,
            calo_threshold_keV=calo_threshold,
            calo_rule_file=calo_mapping,
            geiger_rule_file=tracker_mapping,
            debug=debug,
        )
    except HCAnalysisError as exc:
        typer.echo(f"[run] FATAL: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(str(out_path))


if __name__ == "__main__":
    app()
