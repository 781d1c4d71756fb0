"""Cooperative name resolution.

Members type their cooperative's name however they like ("Fusion",
"immigration mcs", "fusoin"). ``resolve`` maps that text onto a canonical
tenant id by running an ordered list of strategies and taking the first
hit:

  1. exact     normalized input equals a table key
  2. contains  input contains a key, or a key contains the input
  3. similar   best Levenshtein similarity above ``SIMILARITY_THRESHOLD``

Each strategy is a plain function so precedence can be tested on its own.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

log = logging.getLogger("memberdesk.tenants")

# Display key -> canonical tenant id. Several keys may share one id.
TENANT_MAP: dict[str, str] = {
    "TESTING": "testing",
    "NSCDCKWACOOP": "nscdckwacoop",
    "NSCDCJOS": "nscdcjos",
    "CTLS": "ctls",
    "FUSION": "fusion",
    "LIFELINEMCS": "lifelinemcs",
    "TFC": "tfc",
    "IMMIGRATION": "immigrationmcs",  # alias
    "IMMIGRATIONMCS": "immigrationmcs",
    "OCTICS": "octics",
    "MILLY": "milly",
    "AVIATIONABJ": "aviationabj",
    "FCDAMCS": "fcdamcs",
    "INECBAUCHI": "inecbauchi",
    "INECKWARA": "ineckwara",
    "GPMS": "gpms",
    "INECHQMCS": "inechqmcs",
    "NNMCSL": "nnmcsl",
    "INECSMCS": "inecsmcs",
    "MODACS": "modacs",
    "NCCMCS": "nccmcs",
    "NICNMCS": "nicnmcs",
    "OAGF": "oagf",
    "SAMCOS": "samcos",
    "VALGEECS": "valgeecs",
}

SIMILARITY_THRESHOLD = 0.6

# A key only "contains" the input when the input is at least this long,
# otherwise a lone "a" would match AVIATIONABJ.
MIN_PARTIAL_LENGTH = 3

_NON_ALNUM = re.compile(r"[^A-Z0-9]")

Strategy = Callable[[str, dict[str, str]], Optional[str]]


def normalize(raw: str) -> str:
    """Uppercase and strip everything that is not A-Z or 0-9."""
    return _NON_ALNUM.sub("", raw.upper())


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance using a single rolling row."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                current[j - 1] + 1,
                previous[j] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - edit_distance / longer length; two empty strings are identical."""
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - edit_distance(a, b)) / longer


# ── Strategies ───────────────────────────────────────────────────


def match_exact(normalized: str, table: dict[str, str]) -> Optional[str]:
    return table.get(normalized)


def match_containment(normalized: str, table: dict[str, str]) -> Optional[str]:
    for key, tenant_id in table.items():
        if key in normalized:
            return tenant_id
        if len(normalized) >= MIN_PARTIAL_LENGTH and normalized in key:
            return tenant_id
    return None


def match_similarity(normalized: str, table: dict[str, str]) -> Optional[str]:
    best_key: Optional[str] = None
    best_score = 0.0
    for key in table:
        score = similarity(normalized, key)
        # Strict ">" keeps the first key on ties
        if score > SIMILARITY_THRESHOLD and score > best_score:
            best_key, best_score = key, score

    if best_key is None:
        return None
    log.info("Fuzzy tenant match: %s ~ %s (score %.2f)", normalized, best_key, best_score)
    return table[best_key]


STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("exact", match_exact),
    ("contains", match_containment),
    ("similar", match_similarity),
)


class TenantResolver:
    """Resolve free-text cooperative names against a tenant table."""

    def __init__(
        self,
        table: dict[str, str] | None = None,
        strategies: tuple[tuple[str, Strategy], ...] = STRATEGIES,
    ) -> None:
        self._table = dict(table if table is not None else TENANT_MAP)
        self._strategies = strategies

    @property
    def table(self) -> dict[str, str]:
        return dict(self._table)

    def resolve(self, raw: str | None) -> Optional[str]:
        """Return the canonical tenant id for ``raw``, or None."""
        if not raw:
            return None
        normalized = normalize(raw)
        if not normalized:
            return None

        for name, strategy in self._strategies:
            tenant_id = strategy(normalized, self._table)
            if tenant_id:
                log.debug("Tenant %r resolved by %s strategy -> %s", raw, name, tenant_id)
                return tenant_id

        log.warning("No tenant match for %r", raw)
        return None

    def find_in_text(self, text: str) -> Optional[tuple[str, str]]:
        """Literal, case-insensitive search for a table key inside ``text``.

        Returns ``(key, tenant_id)`` for the first key in table order.
        """
        lowered = text.lower()
        for key, tenant_id in self._table.items():
            if key.lower() in lowered:
                return key, tenant_id
        return None

    def display_name(self, tenant_id: str) -> str:
        """First table key that maps to ``tenant_id``."""
        for key, value in self._table.items():
            if value == tenant_id:
                return key
        return tenant_id.upper()

    def canonical_names(self) -> list[str]:
        return list(self._table)

    def example_names(self, count: int = 5) -> list[str]:
        return list(self._table)[:count]
