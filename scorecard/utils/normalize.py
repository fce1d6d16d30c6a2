"""Map free-text product and department labels onto the fixed LOB taxonomy.

Matching is substring based on the lower-cased label and the first matching
rule wins, so ``"Thermal Power Unit"`` is ``Thermal``. Product labels that
match nothing keep their original text; department labels collapse to
``Other``. Blank input is always ``Other``.
"""

from __future__ import annotations

from typing import Optional

POWER = "Power"
THERMAL = "Thermal"
CHANNEL = "Channel"
SERVICE = "Service"
BATTS_AND_CAPS = "Batts & Caps"
OTHER = "Other"

# Display order used for target tables and reference lists
TAXONOMY: tuple[str, ...] = (POWER, THERMAL, CHANNEL, SERVICE, BATTS_AND_CAPS)

# Ordered: thermal is checked before power
_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("thermal",), THERMAL),
    (("power", "saskpower"), POWER),
    (("channel",), CHANNEL),
    (("service",), SERVICE),
    (("batts", "caps", "batt"), BATTS_AND_CAPS),
)

UNKNOWN_REP = "Unknown"


def _match_taxonomy(text: str) -> Optional[str]:
    lowered = text.lower()
    for needles, label in _RULES:
        if any(needle in lowered for needle in needles):
            return label
    return None


def normalize_product_type(text: str | None) -> str:
    """Return the taxonomy label for a product type, or the original text."""
    if text is None or not str(text).strip():
        return OTHER
    return _match_taxonomy(str(text)) or str(text)


def normalize_lob(text: str | None) -> str:
    """Return the taxonomy label for a department, defaulting to ``Other``."""
    if text is None or not str(text).strip():
        return OTHER
    return _match_taxonomy(str(text)) or OTHER


def normalize_sales_rep(text: str | None) -> str:
    """Trim a rep name; blank names become ``Unknown``."""
    name = (text or "").strip()
    return name or UNKNOWN_REP


def normalize_key(text: str | None) -> str:
    """Normalize labels for case-insensitive matching.

    Rules:
    - Safe on ``None`` (treated as empty string)
    - Trim and ``casefold``
    - Treat underscores and hyphens as spaces
    - Collapse multiple spaces into a single space
    """
    base = (text or "").strip().casefold()
    base = base.replace("_", " ").replace("-", " ")
    return " ".join(base.split())
