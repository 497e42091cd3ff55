"""
Shared team name normalization for cross-source matching.

Single source of truth: the resolver, the curated table, the fallback tier
lists and every adapter's candidate scoring import from here.
"""

import re
import unicodedata


_SAFE_ORG_TOKENS = [
    r"\bfc\b", r"\bcf\b", r"\bsc\b", r"\bafc\b", r"\bssc\b",
    r"\bac\b", r"\bas\b", r"\bcd\b", r"\bud\b", r"\brc\b",
    r"\bsv\b", r"\bvfb\b", r"\btsv\b", r"\bfk\b", r"\bsk\b",
    r"\bclub\b",
]

EXACT_SCORE = 1.0
CONTAINS_SCORE = 0.8


def normalize_team_name(name: str) -> str:
    """
    Normalize team name for fuzzy matching.

    Steps:
    1. Lowercase + trim
    2. Strip diacritics (NFKD)
    3. Replace punctuation/hyphens/slashes with space (not delete)
    4. Remove ONLY juridical/organizational tokens (FC, CF, AC...)
    5. Collapse whitespace

    Semantic tokens like 'real', 'united', 'city' are kept: they are what
    tells "Real Madrid" from "Atletico Madrid" and the two Manchester clubs
    apart.

    Examples:
        "Real Madrid CF"       -> "real madrid"
        "FC Barcelona"         -> "barcelona"
        "Paris Saint-Germain"  -> "paris saint germain"
        "FC Bayern München"    -> "bayern munchen"
    """
    if not name:
        return ""

    name = name.lower().strip()

    # Manual replacements for chars NFKD doesn't decompose (Nordic letters)
    name = name.replace("ø", "o").replace("æ", "ae").replace("ð", "d")
    name = unicodedata.normalize("NFKD", name)
    name = "".join(c for c in name if not unicodedata.combining(c))

    name = re.sub(r"[^\w\s]", " ", name)

    for token in _SAFE_ORG_TOKENS:
        name = re.sub(token, "", name)

    return " ".join(name.split())


def slugify_team_name(name: str) -> str:
    """Universal id for a team: its normalized name, hyphen-joined."""
    return normalize_team_name(name).replace(" ", "-")


def name_similarity(query: str, candidate: str) -> float:
    """
    Score how well a candidate name matches the query.

    exact = 1.0, substring containment either way = 0.8, otherwise the
    ratio of shared words to the longer name's word count.
    """
    a = normalize_team_name(query)
    b = normalize_team_name(candidate)
    if not a or not b:
        return 0.0
    if a == b:
        return EXACT_SCORE
    if a in b or b in a:
        return CONTAINS_SCORE

    words_a = set(a.split())
    words_b = set(b.split())
    shared = words_a & words_b
    return len(shared) / max(len(words_a), len(words_b))
