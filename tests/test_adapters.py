import numpy as np
import pandas as pd
import pytest

from hcanalysis.errors import ConfigurationError
from hcanalysis.geometry.ids import SensorId
from hcanalysis.io.adapters import HDF5Adapter, TableAdapter, make_adapter
from hcanalysis.io.event_store import write_events
from hcanalysis.physics.events import SimulatedEvent
from hcanalysis.physics.hits import RawHit


def _row(event, bank, column, row, e, t, z=0.0):
    return {
        "event": event, "bank": bank, "module": 0, "side": 1, "column": column, "row": row,
        "energy_deposit": e, "time_start": t,
        "x_start": 1.0, "y_start": 2.0, "z_start": z,
        "x_stop": 1.5, "y_stop": 2.0, "z_stop": z,
        "vertex_x": 0.5, "vertex_y": 0.0, "vertex_z": -0.5,
    }


def test_table_adapter_csv(tmp_path):
    rows = [
        _row(3, "calo", 2, 6, 0.2, 1.0),
        _row(3, "gg", 8, 11, 0.001, 0.5, z=15.0),
        _row(3, "calo", 2, 6, 0.1, 0.8),
        _row(1, "gg", 0, 12, 0.001, 0.1),
    ]
    p = tmp_path / "steps.csv"
    pd.DataFrame(rows).to_csv(p, index=False)

    events = list(TableAdapter().iter_events(str(p)))
    assert [ev.meta["event_id"] for ev in events] == [3, 1]
    ev = events[0]
    assert [h.sensor_id for h in ev.hits_of("calo")] == [SensorId.calo(0, 1, 2, 6)] * 2
    gg = ev.hits_of("gg")[0]
    assert gg.sensor_id == SensorId.geiger(0, 1, 8, 11)
    assert gg.position_stop[2] == 15.0
    assert np.allclose(ev.vertex, [0.5, 0.0, -0.5])
    assert not events[1].has_category("calo")


def test_table_adapter_cm_scaling(tmp_path):
    p = tmp_path / "steps.csv"
    pd.DataFrame([_row(0, "gg", 8, 11, 0.001, 0.5, z=1.5)]).to_csv(p, index=False)
    ev = next(TableAdapter(unit_pos_is_cm=True).iter_events(str(p)))
    assert ev.hits_of("gg")[0].position_stop[2] == pytest.approx(15.0)
    assert ev.vertex[0] == pytest.approx(5.0)


def test_table_adapter_missing_columns(tmp_path):
    p = tmp_path / "bad.csv"
    pd.DataFrame([{"event": 0, "bank": "calo"}]).to_csv(p, index=False)
    with pytest.raises(ValueError):
        list(TableAdapter().iter_events(str(p)))


def test_hdf5_adapter(tmp_path):
    p = tmp_path / "in.h5"
    h = RawHit(SensorId.calo(0, 1, 2, 6), 0.3, 1.0, [0, 0, 0], [0, 0, 0])
    write_events(p, [SimulatedEvent({"calo": [h]}), SimulatedEvent({"calo": [h]})])
    events = list(HDF5Adapter().iter_events(str(p)))
    assert [ev.meta["event_id"] for ev in events] == [0, 1]
    assert events[0].meta["source"] == str(p)


def test_make_adapter():
    assert isinstance(make_adapter({}), HDF5Adapter)
    assert isinstance(make_adapter({"type": "table", "unit_pos_is_cm": True}), TableAdapter)
    with pytest.raises(ConfigurationError):
        make_adapter({"type": "phits"})


def test_make_root_adapter():
    pytest.importorskip("uproot")
    from hcanalysis.io.adapters import ROOTAdapter

    a = make_adapter({"type": "root", "tree": "SD"})
    assert isinstance(a, ROOTAdapter)
    assert a._bank_branches("gg") == [
        "gg_module", "gg_side", "gg_column", "gg_row", "gg_energy_deposit", "gg_time_start",
        "gg_x_start", "gg_y_start", "gg_z_start", "gg_x_stop", "gg_y_stop", "gg_z_stop",
    ]


def test_table_adapter_skips_other_banks(tmp_path):
    rows = [_row(0, "calo", 2, 6, 0.2, 1.0), _row(0, "xcalo", 0, 3, 0.4, 1.0), _row(1, "gveto", 0, 1, 0.1, 1.0)]
    p = tmp_path / "steps.csv"
    pd.DataFrame(rows).to_csv(p, index=False)
    events = list(TableAdapter().iter_events(str(p)))
    assert [ev.meta["event_id"] for ev in events] == [0, 1]
    assert set(events[0].step_hits) == {"calo"}
    assert events[0].n_hits == 1
    assert events[1].n_hits == 0


def test_hdf5_adapter_skips_unknown_categories(tmp_path):
    import h5py

    p = tmp_path / "in.h5"
    h = RawHit(SensorId.calo(0, 1, 2, 6), 0.3, 1.0, [0, 0, 0], [0, 0, 0])
    write_events(p, [SimulatedEvent({"calo": [h, h]})])
    with h5py.File(p, "r+") as f:
        f["hits/calo/category"][1] = "xcalo_block"
    ev = next(HDF5Adapter().iter_events(str(p)))
    assert [x.sensor_id for x in ev.hits_of("calo")] == [SensorId.calo(0, 1, 2, 6)]


def test_root_adapter_without_known_banks(tmp_path):
    uproot = pytest.importorskip("uproot")
    from hcanalysis.io.adapters import ROOTAdapter

    p = tmp_path / "other.root"
    with uproot.recreate(str(p)) as f:
        f["SD"] = {"vertex_x": np.zeros(3)}
    with pytest.raises(ValueError, match="gg_module"):
        list(ROOTAdapter().iter_events(str(p)))
