import numpy as np
import pytest

from hcanalysis.geometry.ids import SensorId
from hcanalysis.geometry.locator import GridCaloLocator
from hcanalysis.geometry.selector import Selector, zone_rules
from hcanalysis.physics.classify import classify_event, is_track_associated, vector_angle
from hcanalysis.physics.events import SimulatedEvent
from hcanalysis.physics.hits import RawHit

CALO_SEL, GG_SEL = (Selector.from_rules(r) for r in zone_rules(0, 1, 2))


class FixedLocator:
    """Every row sits at z=100 mm, every block at +y."""

    def row_z(self, side, row):
        return 100.0

    def block_position(self, side, column, row):
        return np.array([0.0, 1.0, 0.0])


def _calo(row, e=0.5, t=1.0):
    p = np.array([435.0, 0.0, 0.0])
    return RawHit(SensorId.calo(0, 1, 2, row), e, t, p, p)


def _track(n_layers=9, z_last=150.0, row=11):
    hits = []
    for layer in range(n_layers):
        z = z_last if layer == n_layers - 1 else 0.0
        hits.append(RawHit(SensorId.geiger(0, 1, layer, row), 1e-3, 0.1 * layer,
                           [0.0, 0.0, 0.0], [0.0, 0.0, z]))
    return hits


def _classify(event, locator=None, **kw):
    opts = dict(threshold_keV=50.0, last_layer_index=8, total_layers=9, association_half_window=185.0)
    opts.update(kw)
    return classify_event(event, CALO_SEL, GG_SEL, locator or FixedLocator(), **opts)


def test_full_track_one_calo_associated():
    ev = SimulatedEvent({"calo": [_calo(6)], "gg": _track(z_last=150.0)})
    c = _classify(ev)
    assert c.region_matched
    assert c.full_track
    assert c.n_layers == 9
    assert c.topology == "one_calo"
    sid = SensorId.calo(0, 1, 2, 6)
    assert c.track_calo_association == {sid: True}
    assert c.calo_summaries[sid].track_associated
    assert len(c.last_layer_positions) == 1


def test_association_window_is_strict():
    sid = SensorId.calo(0, 1, 2, 6)
    far = _classify(SimulatedEvent({"calo": [_calo(6)], "gg": _track(z_last=400.0)}))
    assert far.full_track
    assert far.track_calo_association == {sid: False}
    # |285 - 100| == 185 is outside the open window
    edge = _classify(SimulatedEvent({"calo": [_calo(6)], "gg": _track(z_last=285.0)}))
    assert edge.track_calo_association == {sid: False}
    assert is_track_associated(100.0, [np.array([0.0, 0.0, 284.9])], 185.0)
    assert not is_track_associated(100.0, [], 185.0)


def test_partial_track_has_no_association():
    c = _classify(SimulatedEvent({"calo": [_calo(6)], "gg": _track(n_layers=8, z_last=100.0)}))
    assert not c.full_track
    assert c.n_layers == 8
    # layer 7 is not the last layer
    assert c.last_layer_positions == []
    assert c.track_calo_association == {SensorId.calo(0, 1, 2, 6): False}


def test_full_track_counts_distinct_layers():
    hits = _track() + _track(row=12)
    c = _classify(SimulatedEvent({"gg": hits}))
    assert c.full_track
    assert c.n_geiger == 18
    assert c.topology == "geiger_only"
    assert c.region_matched


def test_missing_banks():
    c = _classify(SimulatedEvent({}))
    assert not c.region_matched
    assert c.topology == "none"
    assert not c.full_track

    c = _classify(SimulatedEvent({"calo": [_calo(6)]}))
    assert c.region_matched
    assert c.n_geiger == 0
    assert c.track_calo_association == {SensorId.calo(0, 1, 2, 6): False}


def test_below_threshold_and_out_of_zone_not_matched():
    out_of_zone = RawHit(SensorId.geiger(0, 1, 0, 13), 1e-3, 0.0, [0, 0, 0], [0, 0, 0])
    ev = SimulatedEvent({"calo": [_calo(6, e=0.01)], "gg": [out_of_zone]})
    c = _classify(ev)
    assert not c.region_matched
    assert c.n_calo == 0


def test_repeated_triggers_do_not_double_count():
    hits = _track()
    hits.append(RawHit(SensorId.geiger(0, 1, 8, 11), 1e-3, 9.0, [0, 0, 0], [0, 0, 5000.0]))
    c = _classify(SimulatedEvent({"calo": [_calo(6)], "gg": hits}))
    assert c.n_geiger == 9
    assert len(c.last_layer_positions) == 1
    assert c.last_layer_positions[0][2] == 150.0


def test_two_calos_angles():
    ev = SimulatedEvent({"calo": [_calo(6), _calo(3)], "gg": _track(z_last=150.0)}, vertex=[1.0, 0.0, 0.0])
    c = _classify(ev)
    assert c.topology == "two_calos"
    assert c.any_association
    assert list(c.vertex_angles_deg) == list(c.calo_summaries)
    for angle in c.vertex_angles_deg.values():
        assert angle == pytest.approx(90.0)


def test_two_calos_without_association_have_no_angles():
    ev = SimulatedEvent({"calo": [_calo(6), _calo(3)], "gg": _track(z_last=800.0)})
    c = _classify(ev)
    assert c.full_track
    assert not c.any_association
    assert c.vertex_angles_deg == {}


def test_three_calos_skip_association():
    ev = SimulatedEvent({"calo": [_calo(6), _calo(3), _calo(1)], "gg": _track(z_last=100.0)})
    c = _classify(ev)
    assert c.topology == "multi_calo"
    assert not c.any_association


def test_grid_locator_association():
    loc = GridCaloLocator()
    row = 9
    z = loc.row_z(1, row)
    c = _classify(SimulatedEvent({"calo": [_calo(row)], "gg": _track(z_last=z + 100.0)}), locator=loc)
    assert c.track_calo_association[SensorId.calo(0, 1, 2, row)]


def test_vector_angle():
    assert vector_angle([1, 0, 0], [0, 1, 0]) == pytest.approx(np.pi / 2)
    assert vector_angle([1, 0, 0], [2, 0, 0]) == pytest.approx(0.0)
    assert vector_angle([1, 0, 0], [-1, 0, 0]) == pytest.approx(np.pi)
    assert vector_angle([0, 0, 0], [1, 0, 0]) == 0.0


def test_grid_locator_geometry():
    loc = GridCaloLocator(n_columns=20, n_rows=13, row_pitch_mm=259.0)
    assert loc.row_z(1, 6) == 0.0
    assert loc.row_z(1, 7) - loc.row_z(1, 6) == pytest.approx(259.0)
    assert loc.block_position(0, 2, 6)[0] < 0 < loc.block_position(1, 2, 6)[0]
    with pytest.raises(ValueError):
        loc.row_z(1, 13)
    with pytest.raises(ValueError):
        loc.block_position(2, 0, 0)
