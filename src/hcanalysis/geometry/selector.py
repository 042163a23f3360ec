# src/hcanalysis/geometry/selector.py
"""
hcanalysis.geometry.selector

Rule-based sensor selection for the commissioning zone.

Grammar (one rule per selector, whitespace separated tokens):

    category='calorimeter_block' module={0} side={1} column={2} row={*} part={*}
    category='drift_cell_core' module={0} side={1} layer={*} row={11;12}

Each field predicate is either a wildcard ``{*}``, a literal ``{3}`` or a
small literal set ``{11;12}``. Fields left out of the rule are wildcards.

A Selector built without a rule is *unconfigured* and never matches.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import re
from typing import Any, Dict, FrozenSet, Mapping, Optional

from hcanalysis.errors import ConfigurationError
from hcanalysis.geometry.ids import CATEGORY_FIELDS, CALO_CATEGORY, GEIGER_CATEGORY, SensorId

_CATEGORY_RE = re.compile(r"^category\s*=\s*'([^']*)'$")
_FIELD_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*=\s*\{([^{}]*)\}$")
_TOKEN_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\s*=\s*(?:'[^']*'|\{[^{}]*\})|\S+")

# field -> allowed values (None = any value)
Predicate = Optional[FrozenSet[int]]


@dataclass(frozen=True)
class SelectorRule:
    category: str
    predicates: Dict[str, Predicate] = field(default_factory=dict)

    def accepts(self, sid: SensorId) -> bool:
        if sid.category != self.category:
            return False
        for name, allowed in self.predicates.items():
            if allowed is None:
                continue
            if sid.field(name) not in allowed:
                return False
        return True

    def to_text(self) -> str:
        parts = [f"category='{self.category}'"]
        for name in CATEGORY_FIELDS[self.category]:
            allowed = self.predicates.get(name)
            if allowed is None:
                parts.append(f"{name}={{*}}")
            else:
                parts.append(f"{name}={{{';'.join(str(v) for v in sorted(allowed))}}}")
        return " ".join(parts)


def _parse_values(field_name: str, raw: str) -> Predicate:
    raw = raw.strip()
    if raw == "*":
        return None
    if not raw:
        raise ConfigurationError(f"Empty value set for field {field_name!r}")
    values = set()
    for tok in raw.split(";"):
        tok = tok.strip()
        try:
            values.add(int(tok))
        except ValueError:
            raise ConfigurationError(
                f"Field {field_name!r}: {tok!r} is not an integer literal"
            ) from None
    return frozenset(values)


def _check_category(category: str) -> None:
    if category not in CATEGORY_FIELDS:
        raise ConfigurationError(
            f"Unknown category {category!r}; known: {sorted(CATEGORY_FIELDS)}"
        )


def parse_rule(text: str) -> SelectorRule:
    """Parse one rule string; raise ConfigurationError if malformed."""
    tokens = _TOKEN_RE.findall(text.strip())
    if not tokens:
        raise ConfigurationError("Empty selector rule")

    m = _CATEGORY_RE.match(tokens[0])
    if m is None:
        raise ConfigurationError(
            f"Selector rule must start with category='...', got {tokens[0]!r}"
        )
    category = m.group(1)
    _check_category(category)
    known = CATEGORY_FIELDS[category]

    predicates: Dict[str, Predicate] = {}
    for tok in tokens[1:]:
        fm = _FIELD_RE.match(tok)
        if fm is None:
            raise ConfigurationError(f"Malformed selector token {tok!r}")
        name, raw = fm.group(1), fm.group(2)
        if name not in known:
            raise ConfigurationError(
                f"Category {category!r} has no field {name!r} (fields: {known})"
            )
        if name in predicates:
            raise ConfigurationError(f"Field {name!r} given twice")
        predicates[name] = _parse_values(name, raw)
    return SelectorRule(category=category, predicates=predicates)


def rule_from_mapping(mapping: Mapping[str, Any]) -> SelectorRule:
    """
    Build a rule from a TOML-style table, e.g.

        {category = "drift_cell_core", side = 1, row = [11, 12], layer = "*"}
    """
    data = dict(mapping)
    category = data.pop("category", None)
    if not isinstance(category, str):
        raise ConfigurationError("Selector table needs a string 'category'")
    _check_category(category)
    known = CATEGORY_FIELDS[category]

    predicates: Dict[str, Predicate] = {}
    for name, value in data.items():
        if name not in known:
            raise ConfigurationError(
                f"Category {category!r} has no field {name!r} (fields: {known})"
            )
        if value == "*" or value is None:
            predicates[name] = None
        elif isinstance(value, (list, tuple, set, frozenset)):
            predicates[name] = _parse_values(name, ";".join(str(v) for v in value))
        else:
            predicates[name] = _parse_values(name, str(value))
    return SelectorRule(category=category, predicates=predicates)


class Selector:
    """
    Geometry selector: `match(sid)` is True iff the configured rule accepts sid.

    An unconfigured selector (no rule, or built from an empty rule file)
    never matches.
    """

    def __init__(self, rule: Optional[SelectorRule] = None, name: str = "selector"):
        self.rule = rule
        self.name = name

    @classmethod
    def from_rules(cls, text: str, name: str = "selector") -> "Selector":
        return cls(parse_rule(text), name=name)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], name: str = "selector") -> "Selector":
        return cls(rule_from_mapping(mapping), name=name)

    @classmethod
    def from_file(cls, path: str | Path, name: str | None = None) -> "Selector":
        """
        Read a rule from a text file (comments start with '#').

        An empty file leaves the selector unconfigured.
        """
        p = Path(path)
        try:
            text = p.read_text()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read selector rule file {p}: {exc}") from exc
        lines = [ln.split("#", 1)[0].strip() for ln in text.splitlines()]
        rule_text = " ".join(ln for ln in lines if ln)
        if not rule_text:
            return cls(None, name=name or p.stem)
        return cls(parse_rule(rule_text), name=name or p.stem)

    @property
    def is_configured(self) -> bool:
        return self.rule is not None

    @property
    def category(self) -> Optional[str]:
        return self.rule.category if self.rule is not None else None

    def match(self, sid: SensorId) -> bool:
        if self.rule is None:
            return False
        return self.rule.accepts(sid)

    def describe(self) -> str:
        if self.rule is None:
            return f"{self.name}: <unconfigured, never matches>"
        return f"{self.name}: {self.rule.to_text()}"

    def __repr__(self) -> str:
        return f"Selector({self.describe()!r})"


def zone_rules(module: int, side: int, half_zone: int) -> tuple[str, str]:
    """
    Default (calorimeter, tracker) rules for one half-commissioning zone.

    The calorimeter column equals the zone number; the zone spans six tracker
    rows starting at zone*6-3, of which only the middle two are read out.
    """
    geiger_first_row = half_zone * 6 - 3
    calo = (
        f"category='{CALO_CATEGORY}' module={{{module}}} side={{{side}}} "
        f"column={{{half_zone}}} row={{*}} part={{*}}"
    )
    geiger = (
        f"category='{GEIGER_CATEGORY}' module={{{module}}} side={{{side}}} layer={{*}} "
        f"row={{{geiger_first_row + 2};{geiger_first_row + 3}}}"
    )
    return calo, geiger


def zone_selectors(det: Any) -> tuple[Selector, Selector]:
    """(calorimeter, tracker) selectors for det.module / det.side / det.half_zone."""
    calo, geiger = zone_rules(det.module, det.side, det.half_zone)
    return (
        Selector.from_rules(calo, name=f"calo zone {det.half_zone}"),
        Selector.from_rules(geiger, name=f"geiger zone {det.half_zone}"),
    )
