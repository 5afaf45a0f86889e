"""Regex pattern table for mining-study metrics.

Each kind maps to an ordered tuple of patterns, most specific first. An
extractor turns a match into ``(value, unit)`` in the canonical unit of the
kind, or ``None`` when the match cannot be read.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping

from orelens.parsing import parse_number
from orelens.schemas.records import MetricKind

Extractor = Callable[[re.Match[str]], tuple[float, str] | None]

TROY_OUNCES_PER_TONNE = 32_150.7466
TONNES_PER_POUND = 0.000453592

_FLAGS = re.IGNORECASE

NUM = r"(?P<num>\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)"
_CURRENCY = r"(?:US\s?\$|USD\s?|C\$|\$)\s?"
DOLLARS = _CURRENCY + NUM + r"\s*(?P<scale>billion|million|bn|mln|mm|b|m)\b"
PER_UNIT = _CURRENCY + NUM + r"\s*(?:/|per)\s*(?:payable\s+)?(?P<unit>ounces?|oz|tonnes?|tons?|t|pounds?|lbs?)\b"
PERCENT = NUM + r"\s*%"
YEARS = NUM + r"[\s-]*(?:years?|yrs?)\b"
_SCALE_WORD = r"(?P<scale>thousand|million|billion)?"
# Mt and MTPA are million tonnes only when capitalised; "mt" is metric tons.
_MASS_UNIT = r"(?P<unit>ounces?|oz|koz|moz|tonnes?|tons?|tpa|ktpa|(?-i:Mt|Mtpa|MTPA)|mtpa|kt|mt|t|pounds?|lbs?|mlbs?)"
_GRADE_UNIT = r"(?P<unit>g/t|gpt|grams per tonne|oz/t|opt|ppm|%)(?![A-Za-z])"

DEFAULT_BOUNDS: dict[MetricKind, float] = {
    MetricKind.NPV: 50_000,
    MetricKind.IRR: 100,
    MetricKind.CAPEX: 20_000,
    MetricKind.OPEX: 5_000,
    MetricKind.AISC: 5_000,
    MetricKind.PAYBACK_YEARS: 50,
    MetricKind.MINE_LIFE_YEARS: 100,
    MetricKind.ANNUAL_PRODUCTION: 500_000_000,
    MetricKind.RESOURCE_GRADE: 100_000,
    MetricKind.RECOVERY_RATE: 100,
    MetricKind.RESOURCE_TONNAGE: 100_000_000_000,
}

_SCALES = {"thousand": 1e3, "million": 1e6, "billion": 1e9}

# unit token -> (base unit, multiplier)
_MASS_UNITS: dict[str, tuple[str, float]] = {
    "oz": ("oz", 1.0),
    "ounce": ("oz", 1.0),
    "ounces": ("oz", 1.0),
    "koz": ("oz", 1e3),
    "moz": ("oz", 1e6),
    "t": ("t", 1.0),
    "ton": ("t", 1.0),
    "tons": ("t", 1.0),
    "tonne": ("t", 1.0),
    "tonnes": ("t", 1.0),
    "tpa": ("t", 1.0),
    "kt": ("t", 1e3),
    "ktpa": ("t", 1e3),
    "mt": ("t", 1.0),
    "mtpa": ("t", 1.0),
    "Mt": ("t", 1e6),
    "Mtpa": ("t", 1e6),
    "MTPA": ("t", 1e6),
    "lb": ("lb", 1.0),
    "lbs": ("lb", 1.0),
    "pound": ("lb", 1.0),
    "pounds": ("lb", 1.0),
    "mlb": ("lb", 1e6),
    "mlbs": ("lb", 1e6),
}

_PER_UNITS = {
    "oz": "USD/oz",
    "ounce": "USD/oz",
    "ounces": "USD/oz",
    "t": "USD/t",
    "ton": "USD/t",
    "tons": "USD/t",
    "tonne": "USD/t",
    "tonnes": "USD/t",
    "lb": "USD/lb",
    "lbs": "USD/lb",
    "pound": "USD/lb",
    "pounds": "USD/lb",
}

_GRADE_UNITS = {
    "g/t": "g/t",
    "gpt": "g/t",
    "grams per tonne": "g/t",
    "oz/t": "oz/t",
    "opt": "oz/t",
    "ppm": "ppm",
    "%": "%",
}


@dataclass(frozen=True)
class MetricPattern:
    regex: re.Pattern[str]
    extractor: Extractor


@dataclass(frozen=True)
class PatternTable:
    patterns: Mapping[MetricKind, tuple[MetricPattern, ...]]
    bounds: Mapping[MetricKind, float] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_BOUNDS)))

    @property
    def kinds(self) -> tuple[MetricKind, ...]:
        return tuple(self.patterns)

    def is_plausible(self, kind: MetricKind, value: float, unit: str) -> bool:
        if value <= 0:
            return False
        if kind is MetricKind.RESOURCE_GRADE and unit == "%" and value > 100:
            return False
        bound = self.bounds.get(kind)
        return bound is None or value <= bound


def usd_millions(m: re.Match[str]) -> tuple[float, str] | None:
    """``$1.2 billion`` -> 1200, ``$485.3M`` -> 485.3."""
    value = parse_number(m.group("num"))
    if value is None:
        return None
    scale = (m.group("scale") or "").lower()
    if scale in {"billion", "bn", "b"}:
        value *= 1000
    return value, "USD m"


def percent(m: re.Match[str]) -> tuple[float, str] | None:
    value = parse_number(m.group("num"))
    return (value, "%") if value is not None else None


def years(m: re.Match[str]) -> tuple[float, str] | None:
    value = parse_number(m.group("num"))
    return (value, "years") if value is not None else None


def usd_per_unit(m: re.Match[str]) -> tuple[float, str] | None:
    value = parse_number(m.group("num"))
    unit = _PER_UNITS.get((m.group("unit") or "").lower())
    if value is None or unit is None:
        return None
    return value, unit


def _mass_in_tonnes(m: re.Match[str]) -> float | None:
    value = parse_number(m.group("num"))
    token = m.group("unit") or ""
    base = _MASS_UNITS.get(token) or _MASS_UNITS.get(token.lower())
    if value is None or base is None:
        return None
    unit, mult = base
    value *= _SCALES.get((m.group("scale") or "").lower(), 1.0) * mult
    if unit == "oz":
        return value / TROY_OUNCES_PER_TONNE
    if unit == "lb":
        return value * TONNES_PER_POUND
    return value


def tonnes_per_year(m: re.Match[str]) -> tuple[float, str] | None:
    value = _mass_in_tonnes(m)
    return (value, "t/y") if value is not None else None


def tonnes(m: re.Match[str]) -> tuple[float, str] | None:
    value = _mass_in_tonnes(m)
    return (value, "t") if value is not None else None


def grade(m: re.Match[str]) -> tuple[float, str] | None:
    value = parse_number(m.group("num"))
    unit = _GRADE_UNITS.get(" ".join((m.group("unit") or "").lower().split()))
    if value is None or unit is None:
        return None
    return value, unit


def _p(template: str, extractor: Extractor) -> MetricPattern:
    return MetricPattern(regex=re.compile(template, _FLAGS), extractor=extractor)


# A gap may step over a unit price (US$1,800/oz) but not over another total.
_GAP = r"(?:[^$]|\$(?=\s?[\d.,]+\s*(?:/|per\s))){0,60}?"
_CAPEX_WORDS = r"(?:capital(?:\s+(?:costs?|expenditures?|requirements?|investment))?|capex)"


def default_pattern_table() -> PatternTable:
    patterns: dict[MetricKind, tuple[MetricPattern, ...]] = {
        MetricKind.NPV: (
            _p(r"(?:after|post)[- ]tax\s+(?:NPV|net present value)" + _GAP + DOLLARS, usd_millions),
            _p(r"\bNPV\b" + _GAP + DOLLARS, usd_millions),
            _p(r"net present value" + _GAP + DOLLARS, usd_millions),
        ),
        MetricKind.IRR: (
            _p(r"(?:after|post)[- ]tax\s+(?:IRR|internal rate of return)\D{0,40}?" + PERCENT, percent),
            _p(r"\bIRR\b\D{0,40}?" + PERCENT, percent),
            _p(r"internal rate of return\D{0,40}?" + PERCENT, percent),
        ),
        MetricKind.CAPEX: (
            _p(r"(?:initial|pre-production|upfront|start-up)\s+" + _CAPEX_WORDS + _GAP + DOLLARS, usd_millions),
            _p(r"\bCAPEX\b" + _GAP + DOLLARS, usd_millions),
            _p(r"(?<!sustaining )capital\s+(?:costs?|expenditures?|investment)" + _GAP + DOLLARS, usd_millions),
        ),
        MetricKind.OPEX: (
            _p(r"(?:operating|mining|processing|site)\s+costs?" + _GAP + PER_UNIT, usd_per_unit),
            _p(r"\bOPEX\b" + _GAP + PER_UNIT, usd_per_unit),
            _p(r"\bcash costs?" + _GAP + PER_UNIT, usd_per_unit),
        ),
        MetricKind.AISC: (
            _p(r"all[- ]in[- ]sustaining\s+costs?" + _GAP + PER_UNIT, usd_per_unit),
            _p(r"\bAISC\b" + _GAP + PER_UNIT, usd_per_unit),
        ),
        MetricKind.PAYBACK_YEARS: (
            _p(r"\bpayback(?:\s+period)?\D{0,40}?" + YEARS, years),
        ),
        MetricKind.MINE_LIFE_YEARS: (
            _p(r"\b(?:life[- ]of[- ]mine|mine life|LOM)\b\D{0,40}?" + YEARS, years),
            _p(NUM + r"[\s-]*years?\s+(?:mine life|life of mine|LOM)\b", years),
        ),
        MetricKind.ANNUAL_PRODUCTION: (
            _p(r"\bannual(?:\s+\w+){0,2}?\s+production\D{0,50}?" + NUM + r"\s*" + _SCALE_WORD + r"\s*" + _MASS_UNIT + r"\b", tonnes_per_year),
            _p(NUM + r"\s*" + _SCALE_WORD + r"\s*" + _MASS_UNIT + r"\s*(?:per\s+(?:year|annum)|/\s*y(?:ea)?r|annually)\b", tonnes_per_year),
        ),
        MetricKind.RESOURCE_GRADE: (
            _p(r"\b(?:average|head|diluted|mined|resource|reserve)\s+grade\D{0,30}?" + NUM + r"\s*" + _GRADE_UNIT, grade),
            _p(NUM + r"\s*" + _GRADE_UNIT + r"\s*(?:Au|Ag|Cu|Ni|Zn|Pb|Li2O|Li|U3O8|gold|silver|copper|lithium)\b", grade),
            _p(r"\bgrade\D{0,30}?" + NUM + r"\s*" + _GRADE_UNIT, grade),
        ),
        MetricKind.RECOVERY_RATE: (
            _p(r"\b(?:metallurgical|process|plant|overall|average)\s+recover(?:y|ies)\D{0,40}?" + PERCENT, percent),
            _p(r"\brecover(?:y|ies)\D{0,40}?" + PERCENT, percent),
            _p(PERCENT + r"\s*(?:\w+\s+)?recovery\b", percent),
        ),
        MetricKind.RESOURCE_TONNAGE: (
            _p(r"\b(?:measured and indicated|M&I|indicated|inferred|total|mineral)\s+(?:mineral\s+)?resources?\D{0,60}?" + NUM + r"\s*" + _SCALE_WORD + r"\s*" + _MASS_UNIT + r"\b", tonnes),
            _p(NUM + r"\s*" + _SCALE_WORD + r"\s*" + _MASS_UNIT + r"\s+(?:at|grading|@)\s", tonnes),
        ),
    }
    return PatternTable(patterns=MappingProxyType(patterns))
