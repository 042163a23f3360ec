import pytest

from hcanalysis.geometry.ids import SensorId


def test_sensor_id_fields():
    sid = SensorId.calo(0, 1, 2, 7)
    assert sid.fields == ("module", "side", "column", "row", "part")
    assert sid.field("column") == 2
    assert sid.get(3) == 7
    assert sid.side == 1 and sid.row == 7
    g = SensorId.geiger(0, 1, 8, 11)
    assert g.field("layer") == 8
    assert g.row == 11
    with pytest.raises(KeyError):
        g.field("column")


def test_sensor_id_validation():
    with pytest.raises(ValueError):
        SensorId("calorimeter_block", (0, 1, 2))
    with pytest.raises(ValueError):
        SensorId("unknown", (0,))


def test_sensor_id_ordering_and_hashing():
    ids = [SensorId.calo(0, 1, 2, 5), SensorId.calo(0, 1, 2, 1), SensorId.calo(0, 0, 9, 9)]
    assert sorted(ids)[0] == SensorId.calo(0, 0, 9, 9)
    assert len({SensorId.calo(0, 1, 2, 5), SensorId.calo(0, 1, 2, 5)}) == 1
