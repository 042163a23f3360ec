import numpy as np

from hcanalysis.filters.deduplicate import deduplicate_geiger_hits, flag_repeated_triggers
from hcanalysis.geometry.ids import SensorId
from hcanalysis.physics.hits import RawHit


def _gg(layer, row, t, tag=0.0):
    p = np.array([tag, 0.0, 0.0])
    return RawHit(SensorId.geiger(0, 1, layer, row), 1e-3, t, p, p)


def test_earliest_trigger_kept():
    hits = [_gg(0, 11, 5.0, 1), _gg(1, 11, 1.0), _gg(0, 11, 2.0, 2), _gg(0, 11, 7.0, 3)]
    out = deduplicate_geiger_hits(hits)
    assert len(out) == 2
    kept = [h for h in out if h.sensor_id == SensorId.geiger(0, 1, 0, 11)]
    assert len(kept) == 1
    assert kept[0].time_start == 2.0
    assert kept[0].position_start[0] == 2


def test_survivors_keep_input_order():
    hits = [_gg(3, 11, 1.0), _gg(0, 11, 5.0), _gg(0, 11, 2.0), _gg(1, 12, 0.5)]
    out = deduplicate_geiger_hits(hits)
    assert [h.sensor_id.field("layer") for h in out] == [3, 0, 1]
    assert flag_repeated_triggers(hits) == [False, True, False, False]


def test_equal_times_keep_first_seen():
    hits = [_gg(0, 11, 2.0, 1), _gg(0, 11, 2.0, 2)]
    out = deduplicate_geiger_hits(hits)
    assert len(out) == 1
    assert out[0].position_start[0] == 1


def test_no_repeats_is_identity():
    hits = [_gg(layer, 11, float(layer)) for layer in range(9)]
    out = deduplicate_geiger_hits(hits)
    assert len(out) == len(hits)
    assert all(a is b for a, b in zip(out, hits))
    assert deduplicate_geiger_hits([]) == []
