"""Commodity, project name, location and study stage from normalized report text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Sequence

DEFAULT_COMMODITY = "Other"


@dataclass(frozen=True)
class CommodityTerms:
    # Matched case-insensitively.
    words: tuple[str, ...]
    # Chemical symbols and abbreviations, matched case-sensitively.
    symbols: tuple[str, ...] = ()


# Declaration order breaks ties.
COMMODITY_TABLE: Mapping[str, CommodityTerms] = {
    "Gold": CommodityTerms(("gold", "auriferous"), ("Au", "AuEq")),
    "Silver": CommodityTerms(("silver",), ("Ag", "AgEq")),
    "Copper": CommodityTerms(("copper", "chalcopyrite", "porphyry copper"), ("Cu", "CuEq")),
    "Lithium": CommodityTerms(("lithium", "spodumene", "lepidolite"), ("Li", "Li2O", "LCE")),
    "Nickel": CommodityTerms(("nickel", "laterite", "pentlandite"), ("Ni",)),
    "Cobalt": CommodityTerms(("cobalt",)),
    "Zinc": CommodityTerms(("zinc", "sphalerite"), ("Zn",)),
    "Lead": CommodityTerms(("galena", "lead concentrate"), ("Pb",)),
    "Uranium": CommodityTerms(("uranium", "yellowcake"), ("U3O8",)),
    "Rare Earths": CommodityTerms(("rare earth", "rare earths", "neodymium", "praseodymium"), ("REE", "TREO", "NdPr")),
    "Graphite": CommodityTerms(("graphite",)),
    "Iron Ore": CommodityTerms(("iron ore", "magnetite", "hematite"), ("Fe",)),
    "Coal": CommodityTerms(("coal", "metallurgical coal", "thermal coal")),
    "Platinum Group Metals": CommodityTerms(("platinum", "palladium", "rhodium"), ("PGM", "PGE", "Pt", "Pd")),
    "Molybdenum": CommodityTerms(("molybdenum", "molybdenite"), ("Mo",)),
    "Vanadium": CommodityTerms(("vanadium",), ("V2O5",)),
    "Tungsten": CommodityTerms(("tungsten", "scheelite", "wolframite"), ("WO3",)),
    "Manganese": CommodityTerms(("manganese",), ("Mn",)),
    "Tin": CommodityTerms(("cassiterite",), ("Sn",)),
    "Antimony": CommodityTerms(("antimony", "stibnite"), ("Sb",)),
    "Potash": CommodityTerms(("potash", "sylvinite"), ("K2O", "KCl")),
    "Phosphate": CommodityTerms(("phosphate", "phosphorite"), ("P2O5",)),
}

_SUFFIXES = r"(?:Project|Mine|Property|Deposit|Operation)s?"
_SUFFIX_RE = re.compile(_SUFFIXES)
_WORD = r"[A-Z][\w'&\-]*"
_PHRASE = rf"{_WORD}(?:\s+(?:of|de|del|la|du)?\s*{_WORD}){{0,6}}"

PROJECT_NAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(rf"Technical Report(?: Summary)? (?:on|for) (?:the )?(?P<name>{_PHRASE})"),
    re.compile(rf"(?P<name>{_PHRASE}\s+{_SUFFIXES})\b"),
    re.compile(rf"(?:Project|Property)(?: Name)?\s*:\s*(?P<name>{_PHRASE})"),
)

_LEADING_BOILERPLATE = {
    "the", "s-k", "sk", "1300", "ni", "43-101", "technical", "report", "summary", "exhibit", "initial",
    "preliminary", "economic", "assessment", "feasibility", "pre-feasibility", "prefeasibility", "study",
    "updated", "amended", "on", "for", "of",
}

DENYLIST = {
    "the", "and", "report", "summary", "total", "initial", "technical", "mineral", "resource", "resources",
    "reserve", "reserves", "estimate", "study", "feasibility", "assessment", "economic", "preliminary",
    "exhibit", "table", "section", "figure", "item", "company", "capital", "cost", "costs", "life", "this",
    "project", "mine", "property", "deposit", "operation", "projects", "mines", "properties", "of", "for",
}

_CORPORATE_SUFFIX_RE = re.compile(
    r"[\s,]+(?:Inc|Incorporated|Corp|Corporation|Ltd|Limited|plc|LLC|L\.L\.C|LP|Co|Company|S\.A|N\.V|AG|NL|Holdings)\.?$",
    re.IGNORECASE,
)

STAGE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bcare\s+(?:and|&)\s+maintenance\b", re.IGNORECASE), "Care & Maintenance"),
    (re.compile(r"\bPEA\b|preliminary economic assessment", re.IGNORECASE), "PEA"),
    (re.compile(r"pre-?feasibility|\bPFS\b", re.IGNORECASE), "Pre-Feasibility"),
    (re.compile(r"\bfeasibility\b|\bDFS\b|\bBFS\b", re.IGNORECASE), "Feasibility"),
    (re.compile(r"\bconstruction\b", re.IGNORECASE), "Construction"),
    (re.compile(r"\bproduction\b", re.IGNORECASE), "Production"),
    (re.compile(r"\bdevelopment\b", re.IGNORECASE), "Development"),
)
DEFAULT_STAGE = "Exploration"

# Surface form -> country label.
COUNTRY_NAMES: Mapping[str, str] = {
    "United States of America": "USA",
    "United States": "USA",
    "U.S.A.": "USA",
    "USA": "USA",
    "U.S.": "USA",
    "Canada": "Canada",
    "Mexico": "Mexico",
    "México": "Mexico",
    "Peru": "Peru",
    "Chile": "Chile",
    "Argentina": "Argentina",
    "Brazil": "Brazil",
    "Colombia": "Colombia",
    "Ecuador": "Ecuador",
    "Bolivia": "Bolivia",
    "Guyana": "Guyana",
    "Australia": "Australia",
    "Papua New Guinea": "Papua New Guinea",
    "Ghana": "Ghana",
    "Mali": "Mali",
    "Burkina Faso": "Burkina Faso",
    "Tanzania": "Tanzania",
    "South Africa": "South Africa",
    "Namibia": "Namibia",
    "Zambia": "Zambia",
    "Democratic Republic of the Congo": "Democratic Republic of the Congo",
    "DRC": "Democratic Republic of the Congo",
    "Finland": "Finland",
    "Sweden": "Sweden",
    "Greenland": "Greenland",
    "Portugal": "Portugal",
    "Serbia": "Serbia",
    "Turkey": "Turkey",
    "Mongolia": "Mongolia",
    "Kazakhstan": "Kazakhstan",
    "China": "China",
    "Indonesia": "Indonesia",
    "Philippines": "Philippines",
}

# State, province or territory -> country label.
JURISDICTION_COUNTRIES: Mapping[str, str] = {
    **dict.fromkeys(
        (
            "Alaska", "Arizona", "California", "Colorado", "Idaho", "Michigan", "Minnesota", "Missouri",
            "Montana", "Nevada", "New Mexico", "North Carolina", "Oregon", "South Carolina", "South Dakota",
            "Tennessee", "Texas", "Utah", "Wyoming",
        ),
        "USA",
    ),
    **dict.fromkeys(
        (
            "British Columbia", "Yukon", "Northwest Territories", "Nunavut", "Alberta", "Saskatchewan",
            "Manitoba", "Ontario", "Quebec", "Québec", "New Brunswick", "Nova Scotia",
            "Newfoundland and Labrador", "Newfoundland", "Labrador",
        ),
        "Canada",
    ),
    **dict.fromkeys(
        ("Sonora", "Chihuahua", "Durango", "Sinaloa", "Zacatecas", "Guerrero", "Oaxaca", "Jalisco"),
        "Mexico",
    ),
    **dict.fromkeys(
        (
            "Western Australia", "Queensland", "New South Wales", "South Australia",
            "Northern Territory", "Tasmania",
        ),
        "Australia",
    ),
    **dict.fromkeys(("Atacama", "Antofagasta"), "Chile"),
    **dict.fromkeys(("Salta", "Jujuy", "Catamarca"), "Argentina"),
}

_PLACE_WORD = r"[A-Z][a-zà-ÿ]+"
_WHERE_RE = re.compile(
    r"(?:\b[Ll]ocated|\b[Ss]ituated|\b(?:Project|Property|Mine|Deposit)\s+in)\b(?P<where>.{0,100})"
)
_DIVISION_RE = re.compile(
    rf"(?P<name>{_PLACE_WORD}(?:\s+{_PLACE_WORD})?)\s+(?P<kind>Province|State|County|Region|Department|Territory)\b"
    r"(?P<tail>.{0,40})"
)
_PLACE_STOPWORDS = {"the", "technical", "report", "summary", "project", "mine", "property", "deposit", "in", "of"}


def _names_pattern(names: Sequence[str]) -> re.Pattern[str]:
    alts = "|".join(re.escape(n) for n in sorted(names, key=len, reverse=True))
    return re.compile(rf"(?<![\w-])(?:{alts})(?![\w-])")


_COUNTRY_RE = _names_pattern(tuple(COUNTRY_NAMES))
_JURISDICTION_RE = _names_pattern(tuple(JURISDICTION_COUNTRIES))


@dataclass(frozen=True)
class Location:
    jurisdiction: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class Classification:
    commodity: str
    project_name: str | None
    stage: str
    jurisdiction: str | None = None
    country: str | None = None


def _terms_pattern(terms: Sequence[str], *, ignore_case: bool) -> re.Pattern[str] | None:
    if not terms:
        return None
    alts = "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True))
    return re.compile(rf"(?<![\w-])(?:{alts})(?![\w-])", re.IGNORECASE if ignore_case else 0)


def commodity_counts(text: str, table: Mapping[str, CommodityTerms] = COMMODITY_TABLE) -> dict[str, int]:
    counts: dict[str, int] = {}
    for label, terms in table.items():
        n = 0
        for pattern in (
            _terms_pattern(terms.words, ignore_case=True),
            _terms_pattern(terms.symbols, ignore_case=False),
        ):
            if pattern is not None:
                n += len(pattern.findall(text))
        counts[label] = n
    return counts


def detect_commodity(
    text: str, table: Mapping[str, CommodityTerms] = COMMODITY_TABLE, *, default: str = DEFAULT_COMMODITY
) -> str:
    counts = commodity_counts(text or "", table)
    best, best_n = default, 0
    for label, n in counts.items():
        if n > best_n:
            best, best_n = label, n
    return best


def _clean_candidate(raw: str) -> str | None:
    tokens = raw.split()
    while tokens and tokens[0].lower().strip(".,:;") in _LEADING_BOILERPLATE:
        tokens.pop(0)
    for i, t in enumerate(tokens):
        if i and _SUFFIX_RE.fullmatch(t):
            tokens = tokens[: i + 1]
            break
    name = " ".join(tokens).strip(" .,;:-")
    if len(name) < 3:
        return None
    if all(t.lower().strip(".,:;") in DENYLIST for t in name.split()):
        return None
    return name


def detect_project_name(text: str, patterns: Sequence[re.Pattern[str]] = PROJECT_NAME_PATTERNS) -> str | None:
    for pattern in patterns:
        m = pattern.search(text or "")
        if m is None:
            continue
        name = _clean_candidate(m.group("name"))
        if name:
            return name
    return None


def detect_stage(text: str) -> str:
    for pattern, stage in STAGE_PATTERNS:
        if pattern.search(text or ""):
            return stage
    return DEFAULT_STAGE


def _known_location(fragment: str) -> Location:
    j = _JURISDICTION_RE.search(fragment)
    c = _COUNTRY_RE.search(fragment)
    jurisdiction = j.group(0) if j else None
    if c:
        country = COUNTRY_NAMES[c.group(0)]
    elif jurisdiction:
        country = JURISDICTION_COUNTRIES[jurisdiction]
    else:
        country = None
    return Location(jurisdiction=jurisdiction, country=country)


def detect_location(text: str) -> Location:
    """Jurisdiction and country of the project, from the first phrase that names one.

    "located in/near ..." phrases are read first, then "<Name> Province/State/
    County" phrases. A county yields to a state named right after it.
    """
    text = text or ""
    for m in _WHERE_RE.finditer(text):
        loc = _known_location(m.group("where"))
        if loc.country:
            return loc
    for m in _DIVISION_RE.finditer(text):
        tail = _known_location(m.group("tail"))
        if tail.jurisdiction:
            return tail
        tokens = m.group("name").split()
        while tokens and tokens[0].lower() in _PLACE_STOPWORDS:
            tokens.pop(0)
        if not tokens:
            continue
        name = " ".join(tokens)
        return Location(jurisdiction=name, country=tail.country or JURISDICTION_COUNTRIES.get(name))
    return Location()


def strip_corporate_suffix(company_name: str) -> str:
    name = (company_name or "").strip()
    while True:
        stripped = _CORPORATE_SUFFIX_RE.sub("", name).strip(" ,")
        if stripped == name:
            return name
        name = stripped


def fallback_project_name(company_name: str, commodity: str | None, *, default: str = DEFAULT_COMMODITY) -> str:
    """``("Acme Gold Corp.", "Gold")`` -> ``"Acme Gold Project"``."""
    parts = strip_corporate_suffix(company_name).split()
    if commodity and commodity != default and (not parts or parts[-1].lower() != commodity.lower()):
        parts.append(commodity)
    parts.append("Project")
    return " ".join(parts)


def classify(
    text: str,
    *,
    table: Mapping[str, CommodityTerms] = COMMODITY_TABLE,
    default: str = DEFAULT_COMMODITY,
) -> Classification:
    location = detect_location(text)
    return Classification(
        commodity=detect_commodity(text, table, default=default),
        project_name=detect_project_name(text),
        stage=detect_stage(text or ""),
        jurisdiction=location.jurisdiction,
        country=location.country,
    )
