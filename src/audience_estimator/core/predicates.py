from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, List, Optional, Union

import pandas as pd


# ---------------------------------------------------------------------------
# Segment normalisation helpers
# ---------------------------------------------------------------------------

def segment_key(value: Any) -> str:
    """
    Canonical string form of a segment value, used for exact/set matching.

    Integral floats lose their trailing '.0' so that a segment loaded as 25.0
    compares equal to the age 25.
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def as_number(value: Any) -> Optional[float]:
    """
    Return the value as a float when it already is numeric, else None.

    Strings are never coerced: a string segment under a scored taxonomy is a
    data-integrity problem and must not match a threshold.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        f = float(value)
        return None if math.isnan(f) else f
    return None


def district_number(value: Any) -> Optional[int]:
    """
    Numeric district code with leading zeros removed ('09' -> 9, 9 -> 9).
    """
    num = as_number(value)
    if num is not None:
        return int(num) if float(num).is_integer() else None
    text = str(value).strip() if value is not None else ""
    if not text.isdigit():
        return None
    return int(text.lstrip("0") or "0")


def normalize_district_code(value: Any, width: int = 2) -> str:
    """
    Zero-padded district code ('9' -> '09'). Non-numeric codes are returned trimmed.
    """
    num = district_number(value)
    if num is None:
        return segment_key(value)
    return str(num).zfill(width)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

class _PredicateBase:
    kind = "base"

    def matches(self, segment: Any) -> bool:  # pragma: no cover - overridden
        raise NotImplementedError

    def mask(self, segments: pd.Series) -> pd.Series:
        """Boolean mask over a Series of raw segment values."""
        if segments.empty:
            return pd.Series([], dtype=bool, index=segments.index)
        return segments.map(self.matches).astype(bool)

    def expected_values(self) -> List[str]:
        return []

    def describe(self) -> str:
        return self.kind


@dataclass(frozen=True)
class Exact(_PredicateBase):
    value: str
    kind = "exact"

    def matches(self, segment: Any) -> bool:
        return segment_key(segment) == self.value

    def expected_values(self) -> List[str]:
        return [self.value]

    def describe(self) -> str:
        return f"== {self.value!r}"


@dataclass(frozen=True)
class ValueSet(_PredicateBase):
    values: FrozenSet[str]
    kind = "set"

    @classmethod
    def of(cls, values: Iterable[Any]) -> "ValueSet":
        return cls(frozenset(segment_key(v) for v in values))

    def matches(self, segment: Any) -> bool:
        return segment_key(segment) in self.values

    def expected_values(self) -> List[str]:
        return sorted(self.values)

    def describe(self) -> str:
        preview = ", ".join(self.expected_values()[:5])
        more = "..." if len(self.values) > 5 else ""
        return f"in {{{preview}{more}}} ({len(self.values)} values)"


@dataclass(frozen=True)
class Range(_PredicateBase):
    minimum: int
    maximum: int
    kind = "range"

    def matches(self, segment: Any) -> bool:
        num = district_number(segment)
        if num is None:
            return False
        return self.minimum <= num <= self.maximum

    def describe(self) -> str:
        return f"[{self.minimum}, {self.maximum}]"


@dataclass(frozen=True)
class Threshold(_PredicateBase):
    threshold: float
    above: bool = True  # True: segment > threshold, False: segment <= threshold
    kind = "threshold"

    def matches(self, segment: Any) -> bool:
        num = as_number(segment)
        if num is None:
            return False
        return num > self.threshold if self.above else num <= self.threshold

    def describe(self) -> str:
        op = ">" if self.above else "<="
        return f"{op} {self.threshold:g}"


@dataclass(frozen=True)
class Wildcard(_PredicateBase):
    kind = "all"

    def matches(self, segment: Any) -> bool:
        return True

    def mask(self, segments: pd.Series) -> pd.Series:
        return pd.Series(True, index=segments.index, dtype=bool)

    def describe(self) -> str:
        return "all"


SegmentPredicate = Union[Exact, ValueSet, Range, Threshold, Wildcard]

WILDCARD = Wildcard()
