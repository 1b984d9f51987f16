"""Brand keyword matching: mark similarity, variations and suspicious content."""

import logging
import re

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_TLD = re.compile(r"\.[a-z]+$")

PHONETIC_SUBSTITUTIONS = [
    ("c", "k"), ("k", "c"), ("f", "ph"), ("ph", "f"),
    ("z", "s"), ("s", "z"), ("i", "y"), ("y", "i"),
]


def clean_mark(mark: str) -> str:
    """Lower-case a mark and drop everything but letters and digits."""
    return _NON_ALNUM.sub("", mark.lower())


def levenshtein_distance(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def calculate_similarity(mark1: str, mark2: str) -> float:
    """Similarity ratio in [0, 1] based on Levenshtein distance of cleaned marks."""
    clean1 = clean_mark(mark1)
    clean2 = clean_mark(mark2)
    max_length = max(len(clean1), len(clean2))
    if max_length == 0:
        return 1.0
    return (max_length - levenshtein_distance(clean1, clean2)) / max_length


def generate_mark_variations(mark: str) -> list[str]:
    """Spelling and phonetic variations of a mark used to widen a search.

    Handles cases like:
    - "Innovatr Tech" -> "innovatrtech", "InnovatrTech", "Innovatr-Tech"
    - "Kool-Fizz" -> "Kool Fizz"
    - phonetic swaps applied in sequence (c/k, f/ph, z/s, i/y)
    """
    cleaned = clean_mark(mark)
    variations = [
        mark,
        cleaned,
        re.sub(r"\s+", "", mark),
        re.sub(r"\s+", "-", mark),
        mark.replace("-", " "),
    ]

    phonetic = cleaned
    for source, target in PHONETIC_SUBSTITUTIONS:
        phonetic = phonetic.replace(source, target)
    variations.append(phonetic)

    seen = set()
    unique = []
    for v in variations:
        if v and v not in seen:
            seen.add(v)
            unique.append(v)
    return unique


# --- Trademark rules ---


def trademark_priority(keyword: str, mark_description: str) -> str:
    similarity = calculate_similarity(keyword, mark_description)
    if similarity > 0.9:
        return "high"
    elif similarity > 0.7:
        return "medium"
    return "low"


def suggest_trademark_action(keyword: str, mark_description: str) -> str:
    similarity = calculate_similarity(keyword, mark_description)
    if similarity > 0.9:
        return "Consider filing opposition - high similarity detected"
    elif similarity > 0.7:
        return "Review application details and assess conflict potential"
    return "Monitor for status changes"


def suggest_similarity_action(similarity: float) -> str:
    if similarity > 0.9:
        return "High similarity - consider legal review"
    elif similarity > 0.8:
        return "Moderate similarity - monitor closely"
    return "Low risk - periodic monitoring sufficient"


# --- Domain rules ---


def is_typosquatting(keyword: str, domain_name: str) -> bool:
    """Similar to the keyword but not an exact copy of it."""
    bare = _TLD.sub("", domain_name.lower())
    similarity = calculate_similarity(keyword.lower(), bare)
    return 0.7 < similarity < 0.95


def is_domain_suspicious(keyword: str, domain_name: str) -> bool:
    return keyword.lower() in domain_name.lower() or is_typosquatting(keyword, domain_name)


def domain_priority(keyword: str, domain_name: str) -> str:
    if keyword.lower() in domain_name.lower():
        return "high"
    if is_typosquatting(keyword, domain_name):
        return "medium"
    return "low"


# --- Marketplace and social rules ---


def _contains_keyword(text: str, keyword: str) -> bool:
    if not text or not keyword:
        return False
    return re.search(re.escape(keyword), text, re.IGNORECASE) is not None


def is_listing_suspicious(keyword: str, listing: dict) -> bool:
    """A listing is suspicious when its title or description uses the keyword."""
    return (
        _contains_keyword(listing.get("title", ""), keyword)
        or _contains_keyword(listing.get("description", ""), keyword)
    )


def is_post_relevant(keyword: str, post: dict) -> bool:
    return _contains_keyword(post.get("content", ""), keyword)
