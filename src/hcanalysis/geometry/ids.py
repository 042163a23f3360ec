# src/hcanalysis/geometry/ids.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Tuple

CALO_CATEGORY = "calorimeter_block"
GEIGER_CATEGORY = "drift_cell_core"

# category -> ordered address fields
CATEGORY_FIELDS: Dict[str, Tuple[str, ...]] = {
    CALO_CATEGORY: ("module", "side", "column", "row", "part"),
    GEIGER_CATEGORY: ("module", "side", "layer", "row"),
}

# step-hit bank label -> category
BANK_CATEGORY: Dict[str, str] = {
    "calo": CALO_CATEGORY,
    "gg": GEIGER_CATEGORY,
}


@dataclass(frozen=True, order=True, slots=True)
class SensorId:
    """
    Address of one physical sensor.

    Ordering and equality are lexicographic over (category, values), so ids
    can be used directly as dict/set keys and sorted like geometry ids.
    """
    category: str
    values: Tuple[int, ...]

    def __post_init__(self):
        fields = CATEGORY_FIELDS.get(self.category)
        if fields is None:
            raise ValueError(f"Unknown sensor category {self.category!r}")
        if len(self.values) != len(fields):
            raise ValueError(
                f"{self.category} ids need {len(fields)} values {fields}, got {self.values!r}"
            )

    @classmethod
    def calo(cls, module: int, side: int, column: int, row: int, part: int = 0) -> "SensorId":
        return cls(CALO_CATEGORY, (int(module), int(side), int(column), int(row), int(part)))

    @classmethod
    def geiger(cls, module: int, side: int, layer: int, row: int) -> "SensorId":
        return cls(GEIGER_CATEGORY, (int(module), int(side), int(layer), int(row)))

    @property
    def fields(self) -> Tuple[str, ...]:
        return CATEGORY_FIELDS[self.category]

    def get(self, index: int) -> int:
        return self.values[index]

    def field(self, name: str) -> int:
        try:
            return self.values[self.fields.index(name)]
        except ValueError:
            raise KeyError(f"{self.category} has no field {name!r}") from None

    @property
    def side(self) -> int:
        return self.values[1]

    @property
    def row(self) -> int:
        return self.values[3]

    def __str__(self) -> str:
        return f"[{self.category}:{'.'.join(str(v) for v in self.values)}]"
