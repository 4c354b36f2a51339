from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .models import INTERIOR_DEMOLITION, normalize_project_type

_BOOLEAN_TRUE = {"1", "true", "yes", "on"}

DEFAULT_UNKNOWN_AREA_WEIGHT = 0.25
DEFAULT_LOCATION_BONUS = 0.25
DEFAULT_CLIENT_BONUS = 0.3
DEFAULT_CONFIDENCE_WEIGHT_THRESHOLD = 2.5
DEFAULT_HIGH_CONFIDENCE_MIN = 5
DEFAULT_MEDIUM_CONFIDENCE_MIN = 2
DEFAULT_DUE_SOON_DAYS = 7


@dataclass(frozen=True)
class Config:
    """Runtime configuration assembled from environment variables."""

    unknown_area_weight: float = DEFAULT_UNKNOWN_AREA_WEIGHT
    location_bonus: float = DEFAULT_LOCATION_BONUS
    client_bonus: float = DEFAULT_CLIENT_BONUS
    confidence_weight_threshold: float = DEFAULT_CONFIDENCE_WEIGHT_THRESHOLD
    high_confidence_min: int = DEFAULT_HIGH_CONFIDENCE_MIN
    medium_confidence_min: int = DEFAULT_MEDIUM_CONFIDENCE_MIN
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS
    preserve_manual: bool = False
    default_project_type: str = INTERIOR_DEMOLITION
    tables_path: Optional[Path] = None


def _to_path(value: object | None) -> Optional[Path]:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser().resolve()
    text = str(value).strip()
    if not text:
        return None
    return Path(text).expanduser().resolve()


def _to_int(value: object | None) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def _to_float(value: object | None) -> Optional[float]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _flag(value: object | None) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _BOOLEAN_TRUE


def _non_negative(value: Optional[float], default: float) -> float:
    if value is None or value < 0:
        return default
    return value


def load_config(env: Mapping[str, str]) -> Config:
    """Build a :class:`Config` from a mapping of environment variables.

    Unparseable or negative values fall back to the defaults rather than
    failing, so a typo in a deployment variable degrades to stock behaviour.
    """

    unknown_area_weight = _to_float(env.get("ESTIMATE_UNKNOWN_AREA_WEIGHT"))
    if unknown_area_weight is None or unknown_area_weight <= 0:
        # unknown-area comparables must keep some weight
        unknown_area_weight = DEFAULT_UNKNOWN_AREA_WEIGHT
    location_bonus = _non_negative(_to_float(env.get("ESTIMATE_LOCATION_BONUS")), DEFAULT_LOCATION_BONUS)
    client_bonus = _non_negative(_to_float(env.get("ESTIMATE_CLIENT_BONUS")), DEFAULT_CLIENT_BONUS)
    weight_threshold = _non_negative(
        _to_float(env.get("ESTIMATE_CONFIDENCE_WEIGHT_THRESHOLD")),
        DEFAULT_CONFIDENCE_WEIGHT_THRESHOLD,
    )
    high_min = _to_int(env.get("ESTIMATE_HIGH_CONFIDENCE_MIN"))
    if high_min is None or high_min < DEFAULT_HIGH_CONFIDENCE_MIN:
        # a high tier on fewer than five comparables is never allowed
        high_min = DEFAULT_HIGH_CONFIDENCE_MIN
    due_soon_days = _to_int(env.get("AGING_DUE_SOON_DAYS"))
    if due_soon_days is None or due_soon_days < 0:
        due_soon_days = DEFAULT_DUE_SOON_DAYS
    default_type = normalize_project_type(env.get("DEFAULT_PROJECT_TYPE")) or INTERIOR_DEMOLITION

    return Config(
        unknown_area_weight=unknown_area_weight,
        location_bonus=location_bonus,
        client_bonus=client_bonus,
        confidence_weight_threshold=weight_threshold,
        high_confidence_min=high_min,
        medium_confidence_min=DEFAULT_MEDIUM_CONFIDENCE_MIN,
        due_soon_days=due_soon_days,
        preserve_manual=_flag(env.get("RECONCILE_PRESERVE_MANUAL")),
        default_project_type=default_type,
        tables_path=_to_path(env.get("LEDGER_TABLES_FILE")),
    )


def load_config_from_env(dotenv_path: Optional[Path] = None) -> Config:
    """Load ``.env`` (without overriding real variables) and read ``os.environ``."""

    if dotenv_path is not None:
        load_dotenv(dotenv_path)
    else:
        load_dotenv()
    return load_config(os.environ)


__all__ = ["Config", "load_config", "load_config_from_env"]
