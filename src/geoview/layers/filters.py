"""Filter predicates over record properties.

Filters are plain serializable descriptors, evaluated by a pure function:

    {"column": "pop", "type": "numeric", "value": {"type": "range", "min": 1, "max": 5}}
    {"column": "pop", "type": "numeric", "value": {"type": "comparison", "operator": ">=", "value": 3}}
    {"column": "kind", "type": "text", "value": {"type": "comparison", "operator": "=", "value": "Cafe"}}
    {"column": "kind", "type": "text", "value": {"type": "multiple", "values": ["cafe", "bar"]}}

All filters on a layer must pass. A missing (or null) property, or a
non-numeric value under a numeric filter, fails the predicate.
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from functools import partial
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from geoview.layers.classify import classify_column
from geoview.layers.properties import parse_number, to_text

ComparisonOperator = Literal["=", "<", "<=", ">", ">="]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class RangeValue(BaseModel):
    type: Literal["range"] = "range"
    min: float
    max: float


class ComparisonValue(BaseModel):
    type: Literal["comparison"] = "comparison"
    operator: ComparisonOperator
    value: Union[float, str]


class MultipleValue(BaseModel):
    type: Literal["multiple"] = "multiple"
    values: list[str]


FilterValue = Annotated[
    Union[RangeValue, ComparisonValue, MultipleValue],
    Field(discriminator="type"),
]


class FilterDescriptor(BaseModel):
    """A single filter on one property column."""

    column: str
    type: Literal["numeric", "text"]
    value: FilterValue

    @model_validator(mode="after")
    def _check_variant(self) -> FilterDescriptor:
        if self.type == "numeric":
            if isinstance(self.value, MultipleValue):
                raise ValueError("multi-value filters apply to text columns only")
            if isinstance(self.value, ComparisonValue) and parse_number(self.value.value) is None:
                raise ValueError(f"numeric comparison needs a number, got {self.value.value!r}")
        elif isinstance(self.value, RangeValue):
            raise ValueError("range filters apply to numeric columns only")
        return self


def evaluate(descriptor: FilterDescriptor, properties: Mapping[str, Any]) -> bool:
    """True if ``properties`` passes ``descriptor``."""
    raw = properties.get(descriptor.column)
    if raw is None:
        return False
    value = descriptor.value

    if descriptor.type == "numeric":
        number = parse_number(raw)
        if number is None:
            return False
        if isinstance(value, RangeValue):
            return value.min <= number <= value.max
        target = parse_number(value.value)
        if target is None:
            return False
        return _OPERATORS[value.operator](number, target)

    text = to_text(raw).lower()
    if isinstance(value, MultipleValue):
        return any(option.lower() in text for option in value.values)
    if isinstance(value, ComparisonValue):
        return _OPERATORS[value.operator](text, to_text(value.value).lower())
    return False


def compile_filter(descriptor: FilterDescriptor) -> Callable[[Mapping[str, Any]], bool]:
    """Bind a descriptor into a reusable predicate."""
    return partial(evaluate, descriptor)


def evaluate_all(filters: Sequence[FilterDescriptor], properties: Mapping[str, Any]) -> bool:
    return all(evaluate(f, properties) for f in filters)


def apply_filters(records: Iterable[Any], filters: Sequence[FilterDescriptor]) -> list:
    """Records whose properties pass every filter, in order."""
    if not filters:
        return list(records)
    return [r for r in records if evaluate_all(filters, r.properties)]


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)


def describe(descriptor: FilterDescriptor) -> str:
    """Human-readable label, e.g. ``pop: 1 to 5`` or ``kind: cafe OR bar``."""
    value = descriptor.value
    if isinstance(value, RangeValue):
        return f"{descriptor.column}: {_fmt(value.min)} to {_fmt(value.max)}"
    if isinstance(value, MultipleValue):
        return f"{descriptor.column}: {' OR '.join(value.values)}"
    if descriptor.type == "numeric":
        return f"{descriptor.column} {value.operator} {_fmt(parse_number(value.value))}"
    return f'{descriptor.column} {value.operator} "{value.value}"'


# ---------------------------------------------------------------------------
# Filter building helpers
# ---------------------------------------------------------------------------

@dataclass
class ColumnSummary:
    """What a filter builder needs to know about one property column."""

    name: str
    type: Literal["numeric", "text"]
    min: float | None = None
    max: float | None = None
    unique_values: list[str] | None = None

    def suggestions(self, search: str = "", limit: int | None = None) -> list[str]:
        """Distinct values containing ``search`` (case-insensitive)."""
        if not self.unique_values:
            return []
        needle = search.lower()
        found = [v for v in self.unique_values if needle in v.lower()]
        return found if limit is None else found[:limit]


def summarize_columns(records: Sequence[Any]) -> list[ColumnSummary]:
    """Classify every property column of ``records`` for filter building."""
    values: dict[str, list[Any]] = {}
    for record in records:
        for key, value in record.properties.items():
            values.setdefault(key, []).append(value)

    summaries = []
    for name, vals in values.items():
        info = classify_column(name, vals)
        if info.kind == "numeric":
            numbers = [n for n in (parse_number(v) for v in vals) if n is not None]
            summaries.append(ColumnSummary(name=name, type="numeric", min=min(numbers), max=max(numbers)))
        else:
            summaries.append(ColumnSummary(name=name, type="text", unique_values=info.unique_values))
    return summaries
