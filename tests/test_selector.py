import pytest

from hcanalysis.errors import ConfigurationError
from hcanalysis.geometry.ids import SensorId
from hcanalysis.geometry.selector import Selector, parse_rule, zone_rules, zone_selectors


def test_parse_tracker_rule():
    rule = parse_rule("category='drift_cell_core' module={0} side={1} layer={*} row={11;12}")
    assert rule.category == "drift_cell_core"
    assert rule.predicates["row"] == frozenset({11, 12})
    assert rule.predicates["layer"] is None
    assert rule.accepts(SensorId.geiger(0, 1, 4, 11))
    assert rule.accepts(SensorId.geiger(0, 1, 8, 12))
    assert not rule.accepts(SensorId.geiger(0, 1, 4, 13))
    assert not rule.accepts(SensorId.geiger(0, 0, 4, 11))


def test_rule_never_matches_other_category():
    sel = Selector.from_rules("category='calorimeter_block' column={2}")
    assert sel.match(SensorId.calo(0, 1, 2, 5))
    assert not sel.match(SensorId.geiger(0, 1, 2, 5))


def test_omitted_fields_are_wildcards():
    sel = Selector.from_rules("category='calorimeter_block' column={2}")
    for row in range(13):
        assert sel.match(SensorId.calo(0, 0, 2, row, part=1))


def test_to_text_round_trips():
    text = "category='drift_cell_core' module={0} side={1} layer={*} row={11;12}"
    rule = parse_rule(text)
    assert parse_rule(rule.to_text()) == rule


@pytest.mark.parametrize(
    "text",
    [
        "",
        "module={0}",
        "category='no_such_thing' module={0}",
        "category='calorimeter_block' layer={1}",
        "category='calorimeter_block' column={a}",
        "category='calorimeter_block' column={}",
        "category='calorimeter_block' column={1} column={2}",
        "category='calorimeter_block' column=2",
    ],
)
def test_malformed_rules_rejected(text):
    with pytest.raises(ConfigurationError):
        parse_rule(text)


def test_unconfigured_selector_never_matches():
    sel = Selector()
    assert not sel.is_configured
    assert sel.category is None
    assert not sel.match(SensorId.calo(0, 1, 2, 5))
    assert "unconfigured" in sel.describe()


def test_empty_rule_file_leaves_selector_unconfigured(tmp_path):
    p = tmp_path / "calo.rules"
    p.write_text("# nothing selected\n\n")
    sel = Selector.from_file(p)
    assert not sel.is_configured
    assert not sel.match(SensorId.calo(0, 1, 2, 5))


def test_rule_file_with_comments(tmp_path):
    p = tmp_path / "gg.rules"
    p.write_text(
        "# zone 2 tracker cells\n"
        "category='drift_cell_core'\n"
        "module={0} side={1}   # French side\n"
        "layer={*} row={11;12}\n"
    )
    sel = Selector.from_file(p)
    assert sel.name == "gg"
    assert sel.match(SensorId.geiger(0, 1, 0, 11))
    assert not sel.match(SensorId.geiger(0, 1, 0, 10))


def test_missing_rule_file():
    with pytest.raises(ConfigurationError):
        Selector.from_file("/nonexistent/rules.txt")


def test_from_mapping():
    sel = Selector.from_mapping({"category": "drift_cell_core", "side": 1, "row": [11, 12], "layer": "*"})
    assert sel.match(SensorId.geiger(0, 1, 3, 12))
    assert not sel.match(SensorId.geiger(0, 0, 3, 12))
    with pytest.raises(ConfigurationError):
        Selector.from_mapping({"side": 1})


def test_zone_rules_zone2():
    calo_text, gg_text = zone_rules(0, 1, 2)
    calo, gg = Selector.from_rules(calo_text), Selector.from_rules(gg_text)
    assert calo.match(SensorId.calo(0, 1, 2, 0))
    assert not calo.match(SensorId.calo(0, 1, 3, 0))
    # zone 2 spans tracker rows 9..14, only 11 and 12 are read out
    assert [r for r in range(9, 15) if gg.match(SensorId.geiger(0, 1, 0, r))] == [11, 12]


def test_zone_selectors_from_detector_cfg():
    from hcanalysis.config.schemas import DetectorCfg

    calo, gg = zone_selectors(DetectorCfg(half_zone=3))
    assert calo.match(SensorId.calo(0, 1, 3, 0))
    assert [r for r in range(15, 21) if gg.match(SensorId.geiger(0, 1, 0, r))] == [17, 18]
