import h5py
import numpy as np
import pytest

from hcanalysis.geometry.ids import SensorId
from hcanalysis.io.event_store import EventSubsetWriter, read_events, write_events
from hcanalysis.physics.events import SimulatedEvent
from hcanalysis.physics.hits import RawHit


def _events():
    c = RawHit(SensorId.calo(0, 1, 2, 5, part=1), 0.4, 2.0, [435.0, 1.0, 2.0], [436.0, 1.0, 2.0])
    g = [RawHit(SensorId.geiger(0, 1, layer, 11), 1e-3, 0.1 * layer, [0, 0, 0], [0, 0, 10.0 * layer])
         for layer in range(3)]
    return [
        SimulatedEvent({"calo": [c], "gg": g}, vertex=[1.0, 2.0, 3.0], meta={"event_id": 7}),
        SimulatedEvent({"calo": [c]}),
    ]


def test_write_read_events(tmp_path):
    p = tmp_path / "ev.h5"
    write_events(p, _events())
    back = list(read_events(p))
    assert len(back) == 2

    ev0, ev1 = back
    assert ev0.meta == {"event_id": 7}
    assert np.allclose(ev0.vertex, [1.0, 2.0, 3.0])
    assert [h.sensor_id for h in ev0.hits_of("gg")] == [SensorId.geiger(0, 1, l, 11) for l in range(3)]
    calo = ev0.hits_of("calo")[0]
    assert calo.sensor_id == SensorId.calo(0, 1, 2, 5, part=1)
    assert calo.energy_deposit == pytest.approx(0.4)
    assert np.allclose(calo.position_stop, [436.0, 1.0, 2.0])

    assert not ev1.has_category("gg")
    assert ev1.meta == {}
    assert ev1.n_hits == 1

    with h5py.File(p, "r") as f:
        assert f["hits/gg/event_ptr"][()].tolist() == [0, 3, 3]
        assert f["hits/gg/ids"].shape == (3, 5)


def test_subset_writer(tmp_path):
    w = EventSubsetWriter("full_track", tmp_path / "sorted" / "x_full_track.h5")
    for ev in _events():
        w.write(ev)
    assert len(w) == 2
    path = w.close()
    assert path.exists()
    assert len(list(read_events(path))) == 2
    with pytest.raises(RuntimeError):
        w.write(_events()[0])


def test_empty_subset(tmp_path):
    path = EventSubsetWriter("empty", tmp_path / "empty.h5").close()
    assert list(read_events(path)) == []
