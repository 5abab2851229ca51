"""
Utility functions for the matching engine
"""

import json
import math
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple


# Words that carry no matching signal in free-text fields
STOP_WORDS = {
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'is', 'are', 'was', 'were', 'be', 'been', 'have',
    'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could', 'should',
    'may', 'might', 'can', 'this', 'that', 'these', 'those', 'i', 'you',
    'he', 'she', 'it', 'we', 'they', 'me', 'him', 'her', 'us', 'them',
    'our', 'your', 'their', 'from', 'into', 'looking', 'offer', 'offering',
    'want', 'need', 'new', 'help', 'other', 'some', 'any', 'all', 'more',
}


def normalize_label(value: Any) -> str:
    """
    Normalize a free-form label for comparison

    Args:
        value: Industry, company name, tag, role...

    Returns:
        Lowercase, trimmed string with collapsed whitespace ('' for None)
    """
    if value is None:
        return ''
    return re.sub(r'\s+', ' ', str(value)).strip().casefold()


def label_map(values: Optional[Iterable[Any]]) -> Dict[str, str]:
    """Map normalized label -> first display form seen, skipping blanks"""
    result: Dict[str, str] = {}
    for value in values or []:
        key = normalize_label(value)
        if key and key not in result:
            result[key] = str(value).strip()
    return result


def extract_keywords(text: Optional[str]) -> Set[str]:
    """Extract meaningful keywords (3+ letters, no stop words) from text"""
    if not text:
        return set()

    words = re.findall(r'\b[a-z]{3,}\b', str(text).lower())
    return {w for w in words if w not in STOP_WORDS}


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round like a person would (2.5 -> 3), unlike Python's banker's rounding"""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def ordered_pair(id_a: str, id_b: str) -> Tuple[str, str]:
    """Return the two ids with the smaller one first (unique key for unordered pairs)"""
    return (id_a, id_b) if id_a < id_b else (id_b, id_a)


def chunked(items: List[Any], size: int) -> Iterator[List[Any]]:
    """Yield successive slices of at most `size` items"""
    for i in range(0, len(items), size):
        yield items[i:i + size]


def embedding_to_json(embedding: List[float]) -> str:
    """Convert embedding list to JSON string for database storage"""
    return json.dumps(embedding)


def json_to_embedding(value: Any) -> List[float]:
    """Convert a stored embedding (JSON text or list) back to a list of floats"""
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return []
    if not isinstance(value, list):
        return []
    try:
        return [float(x) for x in value]
    except (TypeError, ValueError):
        return []
