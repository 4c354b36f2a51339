"""
Lookup tables driving classification and fallback pricing.

The tables are plain immutable mappings keyed by project type so new types
can be introduced by editing data rather than code.  The built-in values can
be extended or overridden from a JSON or YAML file, for example::

    keywords:
      interior-demolition: [demo, demolition, interior, gut]
    fallback_rates:
      abatement: 16.5
    priority: [abatement, hazmat-cleanup, restoration]

Keys present in the file replace the built-in entry for that type; types not
mentioned keep their built-in values.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

import yaml

from .models import (
    ABATEMENT,
    FULL_DEMOLITION,
    HAZMAT_CLEANUP,
    INTERIOR_DEMOLITION,
    PROJECT_TYPES,
    RESTORATION,
    RETAIL_FIT_OUT,
    normalize_project_type,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_KEYWORDS: Mapping[str, Tuple[str, ...]] = MappingProxyType(
    {
        INTERIOR_DEMOLITION: ("demo", "demolition", "interior", "gut", "strip", "removal", "tenant"),
        FULL_DEMOLITION: ("demo", "demolition", "full", "complete", "building", "structure", "teardown", "tear"),
        ABATEMENT: ("asbestos", "lead", "mold", "abatement", "vermiculite"),
        RETAIL_FIT_OUT: ("retail", "fit-out", "fitout", "store", "shop", "commercial", "office"),
        HAZMAT_CLEANUP: ("hazmat", "hazardous", "spill", "contamination", "chemical"),
        RESTORATION: ("restoration", "restore", "repair", "renovate", "renovation"),
    }
)

# Price per square foot used until a type has closed history.
DEFAULT_FALLBACK_RATES: Mapping[str, float] = MappingProxyType(
    {
        INTERIOR_DEMOLITION: 8.50,
        FULL_DEMOLITION: 12.00,
        ABATEMENT: 15.00,
        RETAIL_FIT_OUT: 10.00,
        HAZMAT_CLEANUP: 18.00,
        RESTORATION: 14.00,
    }
)
DEFAULT_FALLBACK_RATE = 10.00

DEFAULT_BREAKDOWN: Mapping[str, float] = MappingProxyType(
    {
        "labor": 0.40,
        "materials": 0.10,
        "disposal": 0.25,
        "equipment": 0.15,
        "overhead": 0.10,
    }
)

# Tie-break order for the classifier, most specific first.
DEFAULT_PRIORITY: Tuple[str, ...] = (
    ABATEMENT,
    HAZMAT_CLEANUP,
    RESTORATION,
    RETAIL_FIT_OUT,
    INTERIOR_DEMOLITION,
    FULL_DEMOLITION,
)


@dataclass(frozen=True)
class LookupTables:
    keywords: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: DEFAULT_KEYWORDS)
    fallback_rates: Mapping[str, float] = field(default_factory=lambda: DEFAULT_FALLBACK_RATES)
    default_rate: float = DEFAULT_FALLBACK_RATE
    breakdown: Mapping[str, float] = field(default_factory=lambda: DEFAULT_BREAKDOWN)
    priority: Tuple[str, ...] = DEFAULT_PRIORITY

    def fallback_rate(self, project_type: Optional[str]) -> float:
        if project_type and project_type in self.fallback_rates:
            return float(self.fallback_rates[project_type])
        return float(self.default_rate)

    def ordered_types(self) -> Tuple[str, ...]:
        """Every type known to the tables, in tie-break order."""

        seen = list(self.priority)
        extra = sorted(t for t in set(self.keywords) | set(self.fallback_rates) if t not in seen)
        return tuple(seen + extra)


DEFAULT_TABLES = LookupTables()


def _type_key(raw: object) -> str:
    text = str(raw).strip().lower()
    if not text:
        raise ValueError("Empty project type key in lookup tables")
    return normalize_project_type(text) or text


def _as_terms(type_key: str, value: object) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Keywords for {type_key!r} must be a list of strings")
    terms = tuple(str(term).strip().lower() for term in value if str(term).strip())
    return terms


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"Lookup table section {name!r} must be a mapping")
    return value


def _as_rate(key: str, value: object) -> float:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Rate for {key!r} is not numeric: {value!r}") from None
    if rate < 0:
        raise ValueError(f"Rate for {key!r} must not be negative: {rate}")
    return rate


def tables_from_dict(raw: Mapping[str, object], base: LookupTables = DEFAULT_TABLES) -> LookupTables:
    """Merge a parsed table document over ``base``."""

    if not isinstance(raw, Mapping):
        raise ValueError("Lookup table document must be a mapping")

    keywords: Dict[str, Tuple[str, ...]] = dict(base.keywords)
    for key, value in _section(raw, "keywords").items():
        type_key = _type_key(key)
        keywords[type_key] = _as_terms(type_key, value)

    rates: Dict[str, float] = dict(base.fallback_rates)
    for key, value in _section(raw, "fallback_rates").items():
        type_key = _type_key(key)
        rates[type_key] = _as_rate(type_key, value)

    breakdown: Dict[str, float] = dict(base.breakdown)
    if raw.get("breakdown"):
        breakdown = {str(k): _as_rate(str(k), v) for k, v in _section(raw, "breakdown").items()}

    default_rate = base.default_rate
    if raw.get("default_rate") is not None:
        default_rate = _as_rate("default_rate", raw["default_rate"])

    priority: Tuple[str, ...] = base.priority
    if raw.get("priority"):
        if not isinstance(raw["priority"], (list, tuple)):
            raise ValueError("Lookup table priority must be a list of project types")
        priority = _dedupe(_type_key(item) for item in raw["priority"])

    return LookupTables(
        keywords=MappingProxyType(keywords),
        fallback_rates=MappingProxyType(rates),
        default_rate=default_rate,
        breakdown=MappingProxyType(breakdown),
        priority=priority,
    )


def _dedupe(items: Iterable[str]) -> Tuple[str, ...]:
    ordered: list[str] = []
    for item in items:
        if item not in ordered:
            ordered.append(item)
    return tuple(ordered)


@lru_cache(maxsize=None)
def _load_tables_file(path: Path) -> LookupTables:
    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as handle:
        if suffix in {".yaml", ".yml"}:
            try:
                raw = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(f"Malformed lookup table file {path}: {exc}") from exc
        elif suffix == ".json":
            raw = json.load(handle)
        else:
            raise ValueError(f"Unsupported lookup table format: {path}")
    return tables_from_dict(raw or {})


def load_tables(path: Optional[Path] = None) -> LookupTables:
    """Return lookup tables, merged with ``path`` when it exists.

    A missing file is not an error: the built-in tables are returned and a
    warning is logged.  A file that exists but is malformed raises
    :class:`ValueError`.
    """

    if path is None:
        return DEFAULT_TABLES
    candidate = Path(path)
    if not candidate.exists():
        LOGGER.warning("Lookup table file %s not found; using built-in tables", candidate)
        return DEFAULT_TABLES
    tables = _load_tables_file(candidate.resolve())
    unknown = [t for t in tables.keywords if t not in PROJECT_TYPES]
    if unknown:
        LOGGER.info("Lookup tables define additional project types: %s", ", ".join(sorted(unknown)))
    return tables


__all__ = [
    "DEFAULT_BREAKDOWN",
    "DEFAULT_FALLBACK_RATES",
    "DEFAULT_KEYWORDS",
    "DEFAULT_PRIORITY",
    "DEFAULT_TABLES",
    "LookupTables",
    "load_tables",
    "tables_from_dict",
]
