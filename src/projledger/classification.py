"""
Keyword-scoring project type classifier.

Each project type owns a set of trigger terms.  A description is scored by
counting how many of a type's terms appear in it as whole words; the type
with the highest count wins and ties fall to the earliest entry in the
table priority order (see :data:`projledger.tables.DEFAULT_PRIORITY`).
When nothing matches, the configured default type is returned, since the
result is only a suggestion the caller may override.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Dict, Optional

from .models import INTERIOR_DEMOLITION
from .tables import DEFAULT_TABLES, LookupTables

LOGGER = logging.getLogger(__name__)


@lru_cache(maxsize=512)
def _term_pattern(term: str) -> re.Pattern:
    return re.compile(r"(?<![a-z0-9])" + re.escape(term) + r"(?![a-z0-9])")


def score_project_types(description: Optional[str], tables: LookupTables = DEFAULT_TABLES) -> Dict[str, int]:
    """Return ``{project_type: matched_term_count}`` for every known type."""

    text = (description or "").lower()
    scores: Dict[str, int] = {}
    for project_type in tables.ordered_types():
        terms = tables.keywords.get(project_type, ())
        scores[project_type] = sum(1 for term in set(terms) if _term_pattern(term).search(text))
    return scores


def classify_project_type(
    description: Optional[str],
    tables: LookupTables = DEFAULT_TABLES,
    default: Optional[str] = None,
) -> str:
    fallback = default or INTERIOR_DEMOLITION
    scores = score_project_types(description, tables)
    best_type: Optional[str] = None
    best_score = 0
    # ordered_types() is already in priority order, so strict ">" keeps the
    # higher-priority type on ties
    for project_type, score in scores.items():
        if score > best_score:
            best_type = project_type
            best_score = score
    if best_type is None:
        LOGGER.debug("No trigger terms matched %r; defaulting to %s", description, fallback)
        return fallback
    return best_type


__all__ = ["classify_project_type", "score_project_types"]
