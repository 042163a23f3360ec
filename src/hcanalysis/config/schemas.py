# src/hcanalysis/config/schemas.py
from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Dict, List, Literal, Optional


class RunCfg(BaseModel):
    """
    Global run controls.

    TOML:

    [run]
    max_events = 10          # per input file
    diagnostics_level = 1
    """

    max_events: int = 10
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose
    write_pngs: bool = False
    progress: bool = False   # tqdm bar over events

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

    @field_validator("max_events")
    def _positive_events(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_events must be positive")
        return v


class IOCfg(BaseModel):
    """
    Input files, output directory and event source back-end.

    [io]
    input_paths = ["run0_SD.h5"]
    output_path = "output"

    [io.adapter]
    type = "hdf5"             # "hdf5" | "table" | "root"
    """

    input_paths: List[str] = Field(default_factory=list)
    output_path: str = "."
    adapter: Dict[str, Any] = Field(default_factory=dict)


class LocatorCfg(BaseModel):
    row_pitch_mm: float = 259.0
    column_pitch_mm: float = 259.0
    wall_x_mm: float = 435.0


class DetectorCfg(BaseModel):
    """
    Detector constants for the single module / zone under commissioning.

    [detector]
    half_zone = 2
    total_layers = 9
    association_half_window_mm = 185.0
    calo_threshold_keV = 50.0
    """

    module: int = 0
    side: int = 1
    half_zone: int = 2
    total_layers: int = 9
    association_half_window_mm: float = 185.0
    calo_columns: int = 20
    calo_rows: int = 13
    calo_threshold_keV: float = 50.0
    locator: LocatorCfg = Field(default_factory=LocatorCfg)

    @field_validator("side")
    def _side(cls, v: int) -> int:
        if v not in (0, 1):
            raise ValueError("side must be 0 or 1")
        return v

    @field_validator("total_layers")
    def _layers(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("total_layers must be positive")
        return v

    @property
    def last_layer_index(self) -> int:
        return self.total_layers - 1

    @property
    def geiger_first_row(self) -> int:
        return self.half_zone * 6 - 3


class SelectionCfg(BaseModel):
    """
    Selector rules. Empty strings fall back to the rules derived from
    [detector].half_zone; *_rule_file takes precedence over *_rule.
    """

    calo_rule: str = ""
    geiger_rule: str = ""
    calo_rule_file: str = ""
    geiger_rule_file: str = ""


class HistogramCfg(BaseModel):
    """One entry of the histogram table: [histograms.<name>]."""

    kind: Literal["1d", "2d"] = "1d"
    bins: List[int]
    range: List[List[float]]
    title: str = ""

    @model_validator(mode="after")
    def _shape(self) -> "HistogramCfg":
        ndim = 1 if self.kind == "1d" else 2
        if len(self.bins) != ndim or len(self.range) != ndim:
            raise ValueError(f"{self.kind} histogram needs {ndim} bins and {ndim} ranges")
        for b in self.bins:
            if b <= 0:
                raise ValueError("bin counts must be positive")
        for r in self.range:
            if len(r) != 2 or not r[0] < r[1]:
                raise ValueError(f"invalid range {r}")
        return self


class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg = Field(default_factory=IOCfg)
    detector: DetectorCfg = Field(default_factory=DetectorCfg)
    selection: SelectionCfg = Field(default_factory=SelectionCfg)
    histograms: Dict[str, HistogramCfg] = Field(default_factory=dict)
