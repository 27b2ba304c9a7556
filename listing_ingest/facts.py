"""Numeric property facts that may be unknown.

On the wire an unknown fact is ``-1``; inside the service it is ``UNKNOWN``
and in the database it is ``NULL``. Only ``parse_fact`` and ``to_wire`` know
about the sentinel.
"""
import math
from datetime import date
from typing import Optional, Union

SENTINEL = -1


class Unknown:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def to_column(self):
        return None

    def __repr__(self):
        return "UNKNOWN"


UNKNOWN = Unknown()


class Known:
    __slots__ = ("value",)

    def __init__(self, value: Union[int, float]):
        self.value = value

    def to_column(self):
        return self.value

    def __eq__(self, other):
        return isinstance(other, Known) and other.value == self.value

    def __hash__(self):
        return hash(("Known", self.value))

    def __repr__(self):
        return f"Known({self.value!r})"


Fact = Union[Known, Unknown]


class FactRule:
    def __init__(self, minimum: float, integer: bool = True, maximum=None):
        self.minimum = minimum
        self.integer = integer
        self._maximum = maximum

    @property
    def maximum(self) -> Optional[float]:
        return self._maximum() if callable(self._maximum) else self._maximum


def _max_year_built() -> int:
    return date.today().year + 2


FACT_RULES = {
    "bedrooms": FactRule(0),
    "bathrooms": FactRule(0, integer=False),
    "square_feet": FactRule(1),
    "lot_size": FactRule(0, integer=False),
    "year_built": FactRule(1800, maximum=_max_year_built),
    "stories": FactRule(1),
    "garage_spaces": FactRule(0),
}


def parse_fact(field: str, raw) -> Fact:
    """Translate a wire value into a fact, raising ValueError when invalid."""
    if isinstance(raw, (Known, Unknown)):
        return raw
    rule = FACT_RULES[field]
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{field} must be a number")
    if isinstance(raw, float) and not math.isfinite(raw):
        raise ValueError(f"{field} must be a finite number")
    if raw == SENTINEL:
        return UNKNOWN
    if rule.integer:
        if raw != int(raw):
            raise ValueError(f"{field} must be a whole number")
        raw = int(raw)
    if raw < rule.minimum:
        raise ValueError(f"{field} must be at least {rule.minimum} (or -1 if unknown)")
    maximum = rule.maximum
    if maximum is not None and raw > maximum:
        raise ValueError(f"{field} must be at most {maximum}")
    return Known(raw)


def to_wire(column_value) -> Union[int, float]:
    return SENTINEL if column_value is None else column_value
