"""
Quote estimation from closed project history.

Pipeline:

1. pool closed projects of the requested type with a settled revenue;
2. weight each by closeness in floor area (unknown area gets a fixed lower
   weight) plus additive bonuses for a shared client and location;
3. with no usable history, price from the fallback rate table (``low``);
4. otherwise take the weighted mean price per square foot (or the weighted
   mean revenue when area is not available) and scale it to the request.

Every step is a function of the request and the corpus only, so the same
inputs always produce the same response, comparable order included.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .classification import classify_project_type
from .config import DEFAULT_HIGH_CONFIDENCE_MIN, DEFAULT_UNKNOWN_AREA_WEIGHT, Config
from .models import (
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    Comparable,
    PriceRange,
    Project,
    QuoteRequest,
    QuoteResponse,
    normalize_project_type,
)
from .tables import DEFAULT_TABLES, LookupTables

logger = logging.getLogger(__name__)

POOL_COLUMNS = ["PROJECT_ID", "CODE", "CLIENT_CODE", "FINAL_REVENUE", "SQUARE_FOOTAGE", "LOCATION_TOKEN"]

RATE_RANGE_PAD = (0.95, 1.05)
REVENUE_RANGE_PAD = (0.90, 1.10)
FALLBACK_RANGE_PAD = (0.80, 1.20)


def client_key(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    key = str(value).strip().upper()
    return key or None


def location_token(value: Optional[str]) -> Optional[str]:
    """Reduce a free-text location to a comparable token.

    ``"Kamloops, BC"`` and ``" kamloops "`` both become ``"kamloops"``.
    """

    if not value:
        return None
    head = str(value).split(",", 1)[0]
    token = " ".join(head.lower().split())
    return token or None


def _positive(value: object) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(number) or number <= 0:
        return None
    return number


def resolve_project_type(
    request: QuoteRequest,
    tables: LookupTables = DEFAULT_TABLES,
    default: Optional[str] = None,
) -> Tuple[str, bool]:
    """Return ``(project_type, inferred)`` for ``request``.

    Types outside the table are treated as omitted and classified from the
    description.
    """

    raw = request.project_type
    if raw:
        known = tables.ordered_types()
        normalized = normalize_project_type(raw) or str(raw).strip().lower()
        if normalized in known:
            return normalized, False
        logger.warning("Unknown project type %r; classifying from description", raw)
    return classify_project_type(request.description, tables, default=default), True


def comparable_pool(project_type: str, projects: Iterable[Project]) -> pd.DataFrame:
    """Closed projects of ``project_type`` with a positive final revenue.

    Area is kept as NaN when missing or zero; a negative area marks the row
    as malformed and drops it.
    """

    rows: List[Dict[str, object]] = []
    for project in projects:
        if not project.is_closed:
            continue
        if (normalize_project_type(project.project_type) or project.project_type) != project_type:
            continue
        revenue = _positive(project.final_revenue)
        if revenue is None:
            continue
        area: Optional[float] = None
        if project.square_footage is not None:
            try:
                raw_area = float(project.square_footage)
            except (TypeError, ValueError):
                raw_area = float("nan")
            if np.isnan(raw_area):
                area = None
            elif raw_area < 0 or np.isinf(raw_area):
                logger.warning("Skipping comparable %s with invalid square footage %r", project.id, project.square_footage)
                continue
            else:
                area = raw_area if raw_area > 0 else None
        rows.append(
            {
                "PROJECT_ID": str(project.id),
                "CODE": project.code,
                "CLIENT_CODE": client_key(project.client_code),
                "FINAL_REVENUE": revenue,
                "SQUARE_FOOTAGE": np.nan if area is None else area,
                "LOCATION_TOKEN": location_token(project.location),
            }
        )
    pool = pd.DataFrame(rows, columns=POOL_COLUMNS)
    pool["FINAL_REVENUE"] = pool["FINAL_REVENUE"].astype(float)
    pool["SQUARE_FOOTAGE"] = pool["SQUARE_FOOTAGE"].astype(float)
    return pool


def weight_comparables(
    pool: pd.DataFrame,
    square_footage: Optional[float],
    location: Optional[str],
    config: Config,
    client_code: Optional[str] = None,
) -> pd.DataFrame:
    """Attach a ``WEIGHT`` column and return the pool ordered for output.

    With a target area each comparable scores ``1 / (1 + |a - target| / target)``;
    comparables without area score ``config.unknown_area_weight``.  Without a
    target area every comparable starts at 1.0.  A matching location token adds
    ``config.location_bonus`` and a matching client code adds
    ``config.client_bonus``.  Bonuses only ever add weight, so every pooled
    comparable is kept.
    """

    out = pool.copy()
    if out.empty:
        out["WEIGHT"] = pd.Series(dtype=float)
        return out

    if square_footage is not None:
        areas = out["SQUARE_FOOTAGE"]
        distance = (areas - square_footage).abs() / square_footage
        unknown_weight = config.unknown_area_weight if config.unknown_area_weight > 0 else DEFAULT_UNKNOWN_AREA_WEIGHT
        weights = (1.0 / (1.0 + distance)).where(areas.notna(), unknown_weight)
    else:
        weights = pd.Series(1.0, index=out.index)

    token = location_token(location)
    if token is not None:
        weights = weights + np.where(out["LOCATION_TOKEN"] == token, max(config.location_bonus, 0.0), 0.0)

    client = client_key(client_code)
    if client is not None:
        weights = weights + np.where(out["CLIENT_CODE"] == client, max(config.client_bonus, 0.0), 0.0)

    out["WEIGHT"] = weights.astype(float)
    out["PRICE_PER_AREA"] = out["FINAL_REVENUE"] / out["SQUARE_FOOTAGE"]
    return out.sort_values(["WEIGHT", "PROJECT_ID"], ascending=[False, True], kind="mergesort").reset_index(drop=True)


def determine_confidence(weights: pd.Series, config: Config) -> str:
    count = int((weights > 0).sum())
    total = float(weights.sum()) if count else 0.0
    high_min = max(config.high_confidence_min, DEFAULT_HIGH_CONFIDENCE_MIN)
    if count >= high_min and total > config.confidence_weight_threshold:
        return CONFIDENCE_HIGH
    if count >= config.medium_confidence_min:
        return CONFIDENCE_MEDIUM
    return CONFIDENCE_LOW


def _money(value: float) -> float:
    return round(max(0.0, float(value)), 2)


def _breakdown(total: float, tables: LookupTables) -> Dict[str, float]:
    if total <= 0:
        return {}
    return {name: _money(total * float(share)) for name, share in tables.breakdown.items()}


def _fallback_quote(
    project_type: str,
    square_footage: Optional[float],
    inferred: bool,
    tables: LookupTables,
) -> QuoteResponse:
    rate = tables.fallback_rate(project_type)
    total = rate * square_footage if square_footage is not None else 0.0
    low_pad, high_pad = FALLBACK_RANGE_PAD
    logger.info(
        "No closed %s history; using fallback rate $%.2f/sqft (area=%s)",
        project_type,
        rate,
        "unknown" if square_footage is None else f"{square_footage:,.0f}",
    )
    return QuoteResponse(
        total_price=_money(total),
        price_per_area=round(rate, 2) if square_footage is not None else None,
        confidence=CONFIDENCE_LOW,
        project_type=project_type,
        comparables=(),
        price_range=PriceRange(low=_money(total * low_pad), high=_money(total * high_pad), average=_money(total)),
        breakdown=_breakdown(total, tables),
        used_fallback=True,
        type_inferred=inferred,
    )


def estimate_quote(
    request: QuoteRequest,
    historical_projects: Iterable[Project],
    config: Optional[Config] = None,
    tables: LookupTables = DEFAULT_TABLES,
) -> QuoteResponse:
    """Price ``request`` against ``historical_projects``.

    The response lists every comparable with its final weight so the figure
    can be reproduced from the same corpus.  Confidence is ``high`` only with
    at least five weighted comparables whose combined weight clears
    ``config.confidence_weight_threshold``.
    """

    config = config or Config()
    project_type, inferred = resolve_project_type(request, tables, default=config.default_project_type)

    square_footage = _positive(request.square_footage)
    if request.square_footage is not None and square_footage is None:
        logger.warning("Ignoring invalid request square footage %r", request.square_footage)

    pool = comparable_pool(project_type, historical_projects)
    weighted = weight_comparables(pool, square_footage, request.location, config, client_code=request.client_code)
    if weighted.empty:
        return _fallback_quote(project_type, square_footage, inferred, tables)

    weights = weighted["WEIGHT"].to_numpy(dtype=float)
    revenues = weighted["FINAL_REVENUE"].to_numpy(dtype=float)
    revenue_average = float(np.average(revenues, weights=weights))

    with_area = weighted.loc[weighted["SQUARE_FOOTAGE"].notna()]
    rate: Optional[float] = None
    if not with_area.empty:
        rate = float(np.average(with_area["PRICE_PER_AREA"].to_numpy(dtype=float), weights=with_area["WEIGHT"].to_numpy(dtype=float)))

    if square_footage is not None and rate is not None:
        total = rate * square_footage
        low_pad, high_pad = RATE_RANGE_PAD
        price_range = PriceRange(
            low=_money(square_footage * float(with_area["PRICE_PER_AREA"].min()) * low_pad),
            high=_money(square_footage * float(with_area["PRICE_PER_AREA"].max()) * high_pad),
            average=_money(total),
        )
        price_per_area = rate
    else:
        total = revenue_average
        low_pad, high_pad = REVENUE_RANGE_PAD
        price_range = PriceRange(
            low=_money(float(revenues.min()) * low_pad),
            high=_money(float(revenues.max()) * high_pad),
            average=_money(total),
        )
        if square_footage is not None:
            price_per_area = total / square_footage
        else:
            price_per_area = rate

    confidence = determine_confidence(weighted["WEIGHT"], config)
    comparables = tuple(
        Comparable(
            project_id=row.PROJECT_ID,
            weight=float(row.WEIGHT),
            code=row.CODE,
            final_revenue=float(row.FINAL_REVENUE),
            square_footage=None if pd.isna(row.SQUARE_FOOTAGE) else float(row.SQUARE_FOOTAGE),
            price_per_area=None if pd.isna(row.PRICE_PER_AREA) else round(float(row.PRICE_PER_AREA), 2),
        )
        for row in weighted.itertuples(index=False)
    )

    logger.info(
        "Quote %s: $%s from %d comparables (weight=%.3f, confidence=%s)",
        project_type,
        f"{total:,.2f}",
        len(comparables),
        float(weights.sum()),
        confidence,
    )
    return QuoteResponse(
        total_price=_money(total),
        price_per_area=None if price_per_area is None else round(max(0.0, price_per_area), 2),
        confidence=confidence,
        project_type=project_type,
        comparables=comparables,
        price_range=price_range,
        breakdown=_breakdown(total, tables),
        used_fallback=False,
        type_inferred=inferred,
    )


__all__ = [
    "client_key",
    "comparable_pool",
    "determine_confidence",
    "estimate_quote",
    "location_token",
    "resolve_project_type",
    "weight_comparables",
]
